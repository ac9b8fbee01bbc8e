"""Qualitative risk flags for a single arbitrage opportunity."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from arb_matcher.models import ArbitrageOpportunity, Market
from arb_matcher.text_normalizer import contains_alias, normalize_text

_PRESS_AGENCY_ALIASES = ("ap", "associated press", "ap news")
_LOW_MARGIN = 0.02


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class RiskAssessment:
    level: RiskLevel
    score: int
    factors: tuple[str, ...]


def assess_opportunity_risk(
    opportunity: ArbitrageOpportunity,
    markets: Mapping[str, Market],
) -> RiskAssessment:
    """Score time-to-close, margin, and settlement-source agreement.

    ``markets`` is keyed by ``Market.key``; legs whose market is absent are
    ignored for the settlement check.
    """
    factors: list[str] = []
    score = 0

    # days_until_close is floored at 1, so compare against the raw close time.
    remaining_days = (opportunity.earliest_close_time - opportunity.updated_at).total_seconds() / 86_400.0
    if remaining_days < 1:
        factors.append("Very short time to expiration")
        score += 3
    elif remaining_days < 7:
        factors.append("Short time to expiration")
        score += 1

    if opportunity.period_return < _LOW_MARGIN:
        factors.append("Low profit margin")
        score += 2

    sources = []
    for leg in opportunity.legs:
        market = markets.get(leg.market_key)
        if market is not None:
            sources.append(market.settlement_source or "")
    normalized = {normalize_text(source) for source in sources}
    if len(normalized) > 1 and not any(contains_alias(source, _PRESS_AGENCY_ALIASES) for source in sources):
        factors.append("Different settlement sources")
        score += 2

    if score <= 1:
        level = RiskLevel.LOW
    elif score <= 3:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.HIGH
    return RiskAssessment(level=level, score=score, factors=tuple(factors))
