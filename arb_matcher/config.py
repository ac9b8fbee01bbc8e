from __future__ import annotations

import math
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


def _as_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


def _as_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


@dataclass(frozen=True)
class SimilarityWeights:
    """Fixed heuristic weights for the overall market similarity score."""

    title: float = 0.40
    date: float = 0.25
    conditions: float = 0.15
    settlement: float = 0.10
    category: float = 0.10

    def __post_init__(self) -> None:
        values = (self.title, self.date, self.conditions, self.settlement, self.category)
        if any(value < 0 for value in values):
            raise ValueError(f"similarity weights must be non-negative: {values}")
        total = sum(values)
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"similarity weights must sum to 1.0, got {total:.6f}")


@dataclass(frozen=True)
class SimilaritySettings:
    weights: SimilarityWeights = field(default_factory=SimilarityWeights)
    match_threshold: float = 0.80
    condition_match_threshold: float = 0.70


@dataclass(frozen=True)
class ClassifierSettings:
    same_threshold: float = 0.95
    near_duplicate_threshold: float = 0.80
    overlapping_threshold: float = 0.60
    mutually_exclusive_floor: float = 0.10
    token_overlap_threshold: float = 0.25


@dataclass(frozen=True)
class ArbitrageSettings:
    reference_stake: float = 100.0
    max_stake: float = 10_000.0
    days_per_year: int = 365


@dataclass(frozen=True)
class PortfolioSettings:
    risk_days_horizon: float = 365.0
    risk_count_saturation: int = 10
    min_mapping_confidence: float = 0.70


@dataclass(frozen=True)
class MatcherSettings:
    similarity: SimilaritySettings = field(default_factory=SimilaritySettings)
    classifier: ClassifierSettings = field(default_factory=ClassifierSettings)
    arbitrage: ArbitrageSettings = field(default_factory=ArbitrageSettings)
    portfolio: PortfolioSettings = field(default_factory=PortfolioSettings)
    log_level: str = "INFO"


def load_settings(dotenv_path: str | os.PathLike[str] | None = None) -> MatcherSettings:
    load_dotenv(dotenv_path, override=False)

    weights = SimilarityWeights(
        title=_as_float(os.getenv("ARB_MATCHER_WEIGHT_TITLE"), 0.40),
        date=_as_float(os.getenv("ARB_MATCHER_WEIGHT_DATE"), 0.25),
        conditions=_as_float(os.getenv("ARB_MATCHER_WEIGHT_CONDITIONS"), 0.15),
        settlement=_as_float(os.getenv("ARB_MATCHER_WEIGHT_SETTLEMENT"), 0.10),
        category=_as_float(os.getenv("ARB_MATCHER_WEIGHT_CATEGORY"), 0.10),
    )

    return MatcherSettings(
        similarity=SimilaritySettings(
            weights=weights,
            match_threshold=_as_float(os.getenv("ARB_MATCHER_MATCH_THRESHOLD"), 0.80),
            condition_match_threshold=_as_float(
                os.getenv("ARB_MATCHER_CONDITION_MATCH_THRESHOLD"), 0.70
            ),
        ),
        classifier=ClassifierSettings(
            same_threshold=_as_float(os.getenv("ARB_MATCHER_SAME_THRESHOLD"), 0.95),
            near_duplicate_threshold=_as_float(
                os.getenv("ARB_MATCHER_NEAR_DUPLICATE_THRESHOLD"), 0.80
            ),
            overlapping_threshold=_as_float(os.getenv("ARB_MATCHER_OVERLAPPING_THRESHOLD"), 0.60),
            mutually_exclusive_floor=_as_float(
                os.getenv("ARB_MATCHER_MUTUALLY_EXCLUSIVE_FLOOR"), 0.10
            ),
            token_overlap_threshold=_as_float(
                os.getenv("ARB_MATCHER_TOKEN_OVERLAP_THRESHOLD"), 0.25
            ),
        ),
        arbitrage=ArbitrageSettings(
            reference_stake=_as_float(os.getenv("ARB_MATCHER_REFERENCE_STAKE"), 100.0),
            max_stake=_as_float(os.getenv("ARB_MATCHER_MAX_STAKE"), 10_000.0),
            days_per_year=_as_int(os.getenv("ARB_MATCHER_DAYS_PER_YEAR"), 365),
        ),
        portfolio=PortfolioSettings(
            risk_days_horizon=_as_float(os.getenv("ARB_MATCHER_RISK_DAYS_HORIZON"), 365.0),
            risk_count_saturation=_as_int(os.getenv("ARB_MATCHER_RISK_COUNT_SATURATION"), 10),
            min_mapping_confidence=_as_float(
                os.getenv("ARB_MATCHER_MIN_MAPPING_CONFIDENCE"), 0.70
            ),
        ),
        log_level=os.getenv("ARB_MATCHER_LOG_LEVEL", "INFO"),
    )
