"""Relationship classification between two outcome conditions.

The cascade is evaluated top to bottom and the first rule that fires wins;
ties are never broken by the magnitude of the similarity score.
"""

from __future__ import annotations

from arb_matcher.config import ClassifierSettings
from arb_matcher.models import RelationshipType
from arb_matcher.text_normalizer import normalize_text, numbers_conflict, token_jaccard, word_set

_ANTONYM_PAIRS: tuple[tuple[str, str], ...] = (
    ("yes", "no"),
    ("above", "below"),
    ("over", "under"),
    ("increase", "decrease"),
    ("win", "lose"),
    ("true", "false"),
    ("higher", "lower"),
    ("more", "less"),
)

_DEFAULT_SETTINGS = ClassifierSettings()


def has_antonym_pair(name_a: str, name_b: str) -> bool:
    words_a = word_set(name_a)
    words_b = word_set(name_b)
    for left, right in _ANTONYM_PAIRS:
        if (left in words_a and right in words_b) or (right in words_a and left in words_b):
            return True
    return False


def classify_relationship(
    name_a: str,
    name_b: str,
    similarity: float,
    *,
    settings: ClassifierSettings | None = None,
) -> RelationshipType:
    if not (0.0 <= similarity <= 1.0):
        raise ValueError(f"similarity out of range [0, 1]: {similarity}")
    cfg = settings or _DEFAULT_SETTINGS

    norm_a = normalize_text(name_a)
    norm_b = normalize_text(name_b)

    if norm_a == norm_b:
        return RelationshipType.SAME

    # Antonyms are checked before the score: "Yes" vs "No" is never "same".
    if has_antonym_pair(name_a, name_b):
        return RelationshipType.OPPOSITES

    # Different quoted lines ("Over 2.5" vs "Over 3.5") are never the same outcome.
    lines_differ = numbers_conflict(name_a, name_b)

    if not lines_differ and similarity >= cfg.same_threshold:
        return RelationshipType.SAME

    if norm_a and norm_b:
        padded_a = f" {norm_a} "
        padded_b = f" {norm_b} "
        if padded_a in padded_b or padded_b in padded_a:
            return RelationshipType.SUBSET

    if not lines_differ and similarity >= cfg.near_duplicate_threshold:
        return RelationshipType.SAME

    if similarity >= cfg.overlapping_threshold:
        return RelationshipType.OVERLAPPING

    if similarity < cfg.mutually_exclusive_floor:
        return RelationshipType.MUTUALLY_EXCLUSIVE

    if token_jaccard(name_a, name_b) >= cfg.token_overlap_threshold:
        return RelationshipType.OVERLAPPING
    return RelationshipType.COMPLEMENTARY
