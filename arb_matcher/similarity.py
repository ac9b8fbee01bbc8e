"""Multi-factor similarity between market listings from different venues.

Usage::

    scorer = SimilarityScorer()
    score = scorer.score(kalshi_market, polymarket_market)
    if score.overall >= 0.8:
        mappings = scorer.find_condition_mappings(kalshi_market, polymarket_market)

The overall score is a fixed weighted sum of five sub-scores (title, date,
conditions, settlement source, category). Weights are heuristic constants
(see :class:`arb_matcher.config.SimilarityWeights`), not fitted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

import numpy as np

from arb_matcher.config import ClassifierSettings, SimilaritySettings
from arb_matcher.models import ConditionMapping, Market, SimilarityScore
from arb_matcher.relationship import classify_relationship
from arb_matcher.text_normalizer import (
    contains_alias,
    jaro_similarity,
    levenshtein_similarity,
    normalize_text,
    numbers_conflict,
    tokenize,
    tokens_similar,
)

LOGGER = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86_400.0

# (max |days apart|, score); first bucket that fits wins.
_DATE_STEPS: tuple[tuple[float, float], ...] = (
    (1.0, 0.9),
    (7.0, 0.7),
    (30.0, 0.4),
    (90.0, 0.2),
)
_DATE_FLOOR = 0.1

_PRESS_AGENCY_ALIASES = ("ap", "associated press", "ap news", "reuters")
_OFFICIAL_ALIASES = (
    "official",
    "government",
    "federal reserve",
    "fed",
    "central bank",
    "bls",
    "bureau of labor statistics",
)

_CATEGORY_GROUPS: tuple[tuple[str, ...], ...] = (
    ("politics", "political", "election", "elections", "government"),
    ("economics", "economy", "finance", "macro", "economic", "financial"),
    ("crypto", "cryptocurrency", "bitcoin", "eth", "blockchain"),
    ("sports", "sport", "baseball", "football", "basketball", "soccer", "hockey"),
    ("technology", "tech", "ai", "artificial intelligence", "science and technology"),
)

_NEUTRAL_SETTLEMENT = 0.5
_GROUP_MATCH = 0.8
# Texts quoting different numbers ("Over 2.5" vs "Over 3.5") never reach the
# condition-match or classifier "same" thresholds.
_NUMBER_CONFLICT_CAP = 0.5


@dataclass(frozen=True)
class MatchSuggestion:
    market_a: Market
    market_b: Market
    similarity: SimilarityScore
    condition_mappings: tuple[ConditionMapping, ...]


def _overlap_weight(token_count: int) -> float:
    """Token overlap weight; short strings lean on edit distance."""
    if token_count <= 2:
        return 0.3
    if token_count <= 4:
        return 0.5
    return 0.6


def _blend(left: str, right: str, *, drop_stopwords: bool) -> float:
    norm_left = normalize_text(left)
    norm_right = normalize_text(right)
    if norm_left == norm_right:
        return 1.0

    tokens_left = tokenize(left, drop_stopwords=drop_stopwords)
    tokens_right = tokenize(right, drop_stopwords=drop_stopwords)

    edit_score = 0.6 * levenshtein_similarity(norm_left, norm_right) + 0.4 * jaro_similarity(
        norm_left, norm_right
    )
    if not tokens_left and not tokens_right:
        return edit_score

    weight = _overlap_weight(max(len(tokens_left), len(tokens_right)))
    score = weight * _token_overlap(tokens_left, tokens_right) + (1.0 - weight) * edit_score
    if numbers_conflict(norm_left, norm_right):
        return min(score, _NUMBER_CONFLICT_CAP)
    return score


def _token_overlap(tokens_left: Sequence[str], tokens_right: Sequence[str]) -> float:
    """Share of tokens on either side with a similar token on the other."""
    if not tokens_left or not tokens_right:
        return 0.0
    matched_left = sum(
        1 for token in tokens_left if any(tokens_similar(token, other) for other in tokens_right)
    )
    matched_right = sum(
        1 for token in tokens_right if any(tokens_similar(other, token) for other in tokens_left)
    )
    return (matched_left + matched_right) / (len(tokens_left) + len(tokens_right))


def date_similarity(left: datetime, right: datetime) -> float:
    if left == right:
        return 1.0
    days_apart = abs((left - right).total_seconds()) / _SECONDS_PER_DAY
    for max_days, score in _DATE_STEPS:
        if days_apart <= max_days:
            return score
    return _DATE_FLOOR


class SimilarityScorer:
    """Scores market pairs and condition pairs.

    Stateless apart from its settings; safe to share across threads.
    """

    def __init__(
        self,
        settings: SimilaritySettings | None = None,
        classifier_settings: ClassifierSettings | None = None,
    ) -> None:
        self._settings = settings or SimilaritySettings()
        self._classifier_settings = classifier_settings or ClassifierSettings()

    @property
    def settings(self) -> SimilaritySettings:
        return self._settings

    # -- sub-scores ---------------------------------------------------------

    def title_similarity(self, left: str, right: str) -> float:
        return _blend(left, right, drop_stopwords=True)

    def condition_similarity(self, left: str, right: str) -> float:
        return _blend(left, right, drop_stopwords=False)

    def date_similarity(self, left: datetime, right: datetime) -> float:
        return date_similarity(left, right)

    def conditions_similarity(self, market_a: Market, market_b: Market) -> float:
        count_a = len(market_a.conditions)
        count_b = len(market_b.conditions)
        if count_a == 0 or count_b == 0:
            return 0.0
        count_similarity = 1.0 - abs(count_a - count_b) / max(count_a, count_b)

        smaller, larger = (
            (market_a.conditions, market_b.conditions)
            if count_a <= count_b
            else (market_b.conditions, market_a.conditions)
        )
        threshold = self._settings.condition_match_threshold
        matched = sum(
            1
            for condition in smaller
            if any(
                self.condition_similarity(condition.name, other.name) > threshold
                for other in larger
            )
        )
        name_similarity = matched / len(smaller)
        return 0.4 * count_similarity + 0.6 * name_similarity

    def settlement_similarity(self, left: str | None, right: str | None) -> float:
        if not left or not right or not left.strip() or not right.strip():
            return _NEUTRAL_SETTLEMENT
        norm_left = normalize_text(left)
        norm_right = normalize_text(right)
        if norm_left == norm_right:
            return 1.0
        if contains_alias(left, _PRESS_AGENCY_ALIASES) and contains_alias(right, _PRESS_AGENCY_ALIASES):
            return 1.0
        if contains_alias(left, _OFFICIAL_ALIASES) and contains_alias(right, _OFFICIAL_ALIASES):
            return _GROUP_MATCH
        return jaro_similarity(norm_left, norm_right)

    def category_similarity(self, left: str, right: str) -> float:
        norm_left = normalize_text(left)
        norm_right = normalize_text(right)
        if norm_left == norm_right:
            return 1.0
        for group in _CATEGORY_GROUPS:
            if contains_alias(left, group) and contains_alias(right, group):
                return _GROUP_MATCH
        return jaro_similarity(norm_left, norm_right)

    # -- aggregate ----------------------------------------------------------

    def score(self, market_a: Market, market_b: Market) -> SimilarityScore:
        weights = self._settings.weights
        title = self.title_similarity(market_a.title, market_b.title)
        date = self.date_similarity(market_a.close_time, market_b.close_time)
        conditions = self.conditions_similarity(market_a, market_b)
        settlement = self.settlement_similarity(market_a.settlement_source, market_b.settlement_source)
        category = self.category_similarity(market_a.category, market_b.category)

        overall = (
            title * weights.title
            + date * weights.date
            + conditions * weights.conditions
            + settlement * weights.settlement
            + category * weights.category
        )
        return SimilarityScore(
            overall=min(1.0, max(0.0, overall)),
            title=title,
            date=date,
            conditions=conditions,
            settlement=settlement,
            category=category,
        )

    # -- condition mapping --------------------------------------------------

    def find_condition_mappings(
        self,
        market_a: Market,
        market_b: Market,
        threshold: float | None = None,
    ) -> list[ConditionMapping]:
        """Propose one-to-one condition mappings between two markets.

        Candidate pairs at or above ``threshold`` are taken greedily in
        descending confidence order; a condition already assigned is
        skipped, so no condition appears in two mappings.
        """
        cutoff = self._settings.condition_match_threshold if threshold is None else threshold
        candidates: list[tuple[float, str, str]] = []
        for condition_a in market_a.conditions:
            for condition_b in market_b.conditions:
                similarity = self.condition_similarity(condition_a.name, condition_b.name)
                if similarity >= cutoff:
                    candidates.append((similarity, condition_a.name, condition_b.name))

        candidates.sort(key=lambda item: (-item[0], item[1], item[2]))

        assigned_a: set[str] = set()
        assigned_b: set[str] = set()
        mappings: list[ConditionMapping] = []
        for similarity, name_a, name_b in candidates:
            if name_a in assigned_a or name_b in assigned_b:
                continue
            assigned_a.add(name_a)
            assigned_b.add(name_b)
            mappings.append(
                ConditionMapping(
                    condition_a=name_a,
                    condition_b=name_b,
                    relationship=classify_relationship(
                        name_a, name_b, similarity, settings=self._classifier_settings
                    ),
                    confidence=similarity,
                )
            )
        return mappings

    def suggest_matches(
        self,
        markets_a: Sequence[Market],
        markets_b: Sequence[Market],
        threshold: float | None = None,
    ) -> list[MatchSuggestion]:
        """Scan every cross pair and return those scoring at or above ``threshold``.

        Cost is O(len(markets_a) * len(markets_b) * conditions).
        """
        cutoff = self._settings.match_threshold if threshold is None else threshold
        if not markets_a or not markets_b:
            return []

        scores: list[list[SimilarityScore]] = []
        overall = np.zeros((len(markets_a), len(markets_b)), dtype=np.float64)
        for i, market_a in enumerate(markets_a):
            row: list[SimilarityScore] = []
            for j, market_b in enumerate(markets_b):
                score = self.score(market_a, market_b)
                row.append(score)
                overall[i, j] = score.overall
            scores.append(row)

        rows, cols = np.nonzero(overall >= cutoff)
        # Stable ordering: score descending, then scan position.
        order = np.lexsort((cols, rows, -overall[rows, cols]))

        suggestions: list[MatchSuggestion] = []
        for idx in order:
            i, j = int(rows[idx]), int(cols[idx])
            market_a, market_b = markets_a[i], markets_b[j]
            LOGGER.debug(
                "match candidate %s <-> %s overall=%.3f",
                market_a.key,
                market_b.key,
                overall[i, j],
            )
            suggestions.append(
                MatchSuggestion(
                    market_a=market_a,
                    market_b=market_b,
                    similarity=scores[i][j],
                    condition_mappings=tuple(self.find_condition_mappings(market_a, market_b)),
                )
            )

        LOGGER.info(
            "similarity scan: %d x %d markets, %d candidates >= %.2f",
            len(markets_a),
            len(markets_b),
            len(suggestions),
            cutoff,
        )
        return suggestions
