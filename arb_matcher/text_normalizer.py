"""Text normalization and string similarity primitives.

Titles, condition names and settlement sources arrive as free text from
different venues ("BTC above $100,000 by EOY" vs "Bitcoin above $100k by
year end?"). Everything here is pure and deterministic so scores can be
recomputed from any refresh cycle without coordination.
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet

from rapidfuzz.distance import Jaro, Levenshtein

_STOPWORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "at",
        "be",
        "but",
        "by",
        "can",
        "could",
        "did",
        "do",
        "does",
        "for",
        "from",
        "had",
        "has",
        "have",
        "in",
        "is",
        "of",
        "on",
        "or",
        "should",
        "that",
        "the",
        "these",
        "this",
        "those",
        "to",
        "was",
        "were",
        "will",
        "with",
        "would",
    }
)

# Each key is linked to every listed variant (and vice versa).
_TOKEN_ALIASES: Dict[str, tuple[str, ...]] = {
    "trump": ("donald",),
    "biden": ("joe", "joseph"),
    "election": ("presidential", "president"),
    "fed": ("federal", "reserve"),
    "btc": ("bitcoin",),
    "eth": ("ethereum",),
    "eoy": ("year", "end"),
}

_ALIAS_PAIRS: FrozenSet[tuple[str, str]] = frozenset(
    pair
    for key, variants in _TOKEN_ALIASES.items()
    for variant in variants
    for pair in ((key, variant), (variant, key))
)

# Thousands separators only count when followed by exactly three digits,
# so "1,2,3" stays a list.
_NUMBER_RE = re.compile(r"\$?(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)\s*([kmb]\b)?")
_MULTIPLIERS = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}
# Punctuation, except a decimal point between two digits.
_PUNCT_RE = re.compile(r"[^\w\s.]|(?<!\d)\.|\.(?!\d)")
_NUMERIC_TOKEN_RE = re.compile(r"\d+(?:\.\d+)?")
_MIN_TOKEN_LENGTH = 3
_FUZZY_TOKEN_THRESHOLD = 0.8


def _canonical_number(match: re.Match[str]) -> str:
    digits = match.group(1).replace(",", "")
    suffix = match.group(2)
    value = float(digits)
    if suffix:
        value *= _MULTIPLIERS[suffix]
    if value == int(value):
        return f" {int(value)} "
    return " " + f"{value:.10f}".rstrip("0").rstrip(".") + " "


def normalize_text(text: str) -> str:
    """Lowercase, canonicalize numeric mentions, strip punctuation.

    Decimals survive as one word: "Over 2.5 goals" -> "over 2.5 goals".
    """
    lowered = (text or "").lower()
    lowered = _NUMBER_RE.sub(_canonical_number, lowered)
    cleaned = _PUNCT_RE.sub(" ", lowered)
    return " ".join(cleaned.split())


def is_numeric_token(token: str) -> bool:
    return _NUMERIC_TOKEN_RE.fullmatch(token) is not None


def tokenize(text: str, *, drop_stopwords: bool = True) -> list[str]:
    """Normalized tokens; short words drop, numbers of any length stay."""
    tokens: list[str] = []
    for token in normalize_text(text).split():
        if is_numeric_token(token):
            tokens.append(token)
            continue
        if len(token) < _MIN_TOKEN_LENGTH:
            continue
        if drop_stopwords and token in _STOPWORDS:
            continue
        tokens.append(token)
    return tokens


def word_set(text: str) -> FrozenSet[str]:
    """All normalized words, with no length or stop-word filtering."""
    return frozenset(normalize_text(text).split())


def numeric_tokens(text: str) -> FrozenSet[str]:
    return frozenset(token for token in word_set(text) if is_numeric_token(token))


def numbers_conflict(left: str, right: str) -> bool:
    """True when both texts quote numbers and the quoted sets differ.

    "Over 2.5 goals" and "Over 3.5 goals" conflict; "Harris 2028" and
    "Harris" do not.
    """
    left_numbers = numeric_tokens(left)
    right_numbers = numeric_tokens(right)
    return bool(left_numbers) and bool(right_numbers) and left_numbers != right_numbers


def tokens_similar(left: str, right: str) -> bool:
    if left == right:
        return True
    if (left, right) in _ALIAS_PAIRS:
        return True
    # "100000" vs "150000" is one edit apart; numbers only match exactly.
    if is_numeric_token(left) or is_numeric_token(right):
        return False
    return levenshtein_similarity(left, right) > _FUZZY_TOKEN_THRESHOLD


def levenshtein_distance(left: str, right: str) -> int:
    return Levenshtein.distance(left, right)


def levenshtein_similarity(left: str, right: str) -> float:
    """``1 - distance / max(len)``; two empty strings are identical."""
    return Levenshtein.normalized_similarity(left, right)


def jaro_similarity(left: str, right: str) -> float:
    return Jaro.similarity(left, right)


def token_jaccard(left: str, right: str) -> float:
    left_words = word_set(left)
    right_words = word_set(right)
    if not left_words or not right_words:
        return 0.0
    return len(left_words & right_words) / len(left_words | right_words)


def contains_alias(text: str, aliases: tuple[str, ...]) -> bool:
    """Whole-word containment of any alias (multi-word aliases allowed)."""
    padded = f" {normalize_text(text)} "
    return any(f" {alias} " in padded for alias in aliases)
