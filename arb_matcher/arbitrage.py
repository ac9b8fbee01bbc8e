"""Arbitrage pricing for equivalent conditions listed on several venues.

For a ``same`` mapping, buying YES on the cheapest venue and NO on the
cheapest venue pays exactly 1.0 at settlement whatever the outcome. With

    C = min_yes + min_no

an opportunity exists iff ``C < 1``. Returns:

    period_return     = (1 - C) / C
    days_until_close  = max(1, ceil((earliest_close - now) / 1 day))
    annualized_return = period_return * 365 / days_until_close

Some source variants wrote the period return as ``1 - C / C`` (always 0);
``(1 - C) / C`` (profit over capital outlay) is the definition used here.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Sequence

from arb_matcher.config import ArbitrageSettings
from arb_matcher.models import (
    ArbitrageOpportunity,
    Condition,
    ConditionMapping,
    Market,
    OpportunityLeg,
    Platform,
    RelationshipType,
    Side,
)
from arb_matcher.quotes import CostQuote, PricedLeg, best_ask, quote_cost

LOGGER = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86_400.0


def opportunity_key(kind: str, owner_id: str, mapping_key: str, market_keys: Sequence[str]) -> str:
    """Stable identity for an opportunity.

    Same owner (match or ecosystem), mapping and markets -> same key,
    regardless of market ordering or the prices observed.
    """
    parts = [kind, owner_id, mapping_key, *sorted(market_keys)]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]


def days_until(close_time: datetime, now: datetime) -> int:
    remaining = (close_time - now).total_seconds() / _SECONDS_PER_DAY
    return max(1, math.ceil(remaining))


@dataclass(frozen=True)
class StakeSplit:
    yes_stake: float
    no_stake: float
    total_stake: float
    profit: float


class ArbitrageCalculator:
    """Turns ``same`` condition mappings into priced opportunities."""

    def __init__(self, settings: ArbitrageSettings | None = None) -> None:
        self._settings = settings or ArbitrageSettings()

    @property
    def settings(self) -> ArbitrageSettings:
        return self._settings

    def quote(self, yes_asks: Sequence[float], no_asks: Sequence[float]) -> CostQuote:
        return quote_cost(yes_asks, no_asks)

    def price(
        self,
        mapping: ConditionMapping,
        market_a: Market,
        condition_a: Condition,
        market_b: Market,
        condition_b: Condition,
        *,
        now: datetime | None = None,
        match_id: str = "",
        opportunity_id: str | None = None,
    ) -> ArbitrageOpportunity | None:
        if mapping.relationship is not RelationshipType.SAME:
            return None
        legs = (PricedLeg(market_a, condition_a), PricedLeg(market_b, condition_b))
        if opportunity_id is None:
            opportunity_id = opportunity_key(
                "pair", match_id, mapping.key, [market_a.key, market_b.key]
            )
        return self.price_legs(
            mapping.key,
            legs,
            now=now,
            match_id=match_id,
            opportunity_id=opportunity_id,
        )

    def price_legs(
        self,
        mapping_id: str,
        legs: Sequence[PricedLeg],
        *,
        now: datetime | None = None,
        match_id: str = "",
        ecosystem_id: str = "",
        opportunity_id: str | None = None,
    ) -> ArbitrageOpportunity | None:
        """Price an N-way ``same`` mapping (two legs for a pairwise match)."""
        if len(legs) < 2:
            return None
        current = now or datetime.now(timezone.utc)

        best_yes = best_ask(Side.YES, legs)
        best_no = best_ask(Side.NO, legs)
        if best_yes is None or best_no is None:
            return None
        total_cost = best_yes.price + best_no.price

        if total_cost >= 1.0:
            LOGGER.debug("no arbitrage for %s: total_cost=%.4f", mapping_id, total_cost)
            return None
        if total_cost <= 0.0:
            LOGGER.debug("degenerate zero-cost quote for %s ignored", mapping_id)
            return None

        period_return = (1.0 - total_cost) / total_cost
        earliest_close = min(leg.market.close_time for leg in legs)
        days = days_until(earliest_close, current)
        annualized_return = period_return * (self._settings.days_per_year / days)

        if opportunity_id is None:
            owner = ecosystem_id or match_id
            kind = "ecosystem" if ecosystem_id else "pair"
            opportunity_id = opportunity_key(kind, owner, mapping_id, [leg.market.key for leg in legs])

        return ArbitrageOpportunity(
            opportunity_id=opportunity_id,
            mapping_id=mapping_id,
            legs=tuple(
                OpportunityLeg(
                    platform=leg.market.platform,
                    market_id=leg.market.market_id,
                    condition_name=leg.condition.name,
                    yes_ask=leg.yes_ask,
                    no_ask=leg.no_ask,
                )
                for leg in legs
            ),
            min_yes=best_yes.price,
            min_yes_venue=best_yes.venue,
            min_yes_market_id=best_yes.market_id,
            min_no=best_no.price,
            min_no_venue=best_no.venue,
            min_no_market_id=best_no.market_id,
            total_cost=total_cost,
            period_return=period_return,
            annualized_return=annualized_return,
            days_until_close=days,
            profit_on_100=self._settings.reference_stake * period_return,
            earliest_close_time=earliest_close,
            updated_at=current,
            match_id=match_id,
            ecosystem_id=ecosystem_id,
        )

    # -- stake helpers --------------------------------------------------------

    def expected_stakes(self, opportunity: ArbitrageOpportunity, payout: float) -> StakeSplit:
        """Split needed to receive ``payout`` whichever side settles."""
        yes_stake = payout * opportunity.min_yes
        no_stake = payout * opportunity.min_no
        total = yes_stake + no_stake
        return StakeSplit(
            yes_stake=yes_stake,
            no_stake=no_stake,
            total_stake=total,
            profit=payout - total,
        )

    def max_profit(
        self,
        opportunity: ArbitrageOpportunity,
        liquidity_by_venue: Mapping[Platform, float],
        max_stake: float | None = None,
    ) -> float:
        """Profit at the largest stake every participating venue can absorb."""
        cap = self._settings.max_stake if max_stake is None else max_stake
        available = [liquidity_by_venue.get(venue, 0.0) for venue in opportunity.venues]
        stake = min([*available, cap])
        return max(0.0, stake) * opportunity.period_return


def filter_by_min_apr(
    opportunities: Sequence[ArbitrageOpportunity], min_apr: float
) -> list[ArbitrageOpportunity]:
    return [opp for opp in opportunities if opp.annualized_return >= min_apr]


def filter_by_max_days(
    opportunities: Sequence[ArbitrageOpportunity], max_days: int
) -> list[ArbitrageOpportunity]:
    return [opp for opp in opportunities if opp.days_until_close <= max_days]


def best_opportunity(opportunities: Sequence[ArbitrageOpportunity]) -> ArbitrageOpportunity | None:
    best: ArbitrageOpportunity | None = None
    for opp in opportunities:
        if best is None or opp.annualized_return > best.annualized_return:
            best = opp
    return best
