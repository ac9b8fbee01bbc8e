from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from arb_matcher.models import Condition, Market, Platform, Side


@dataclass(frozen=True)
class PricedLeg:
    """A market/condition pair participating in an arbitrage calculation."""

    market: Market
    condition: Condition

    @property
    def yes_ask(self) -> float:
        return self.condition.ask(Side.YES)

    @property
    def no_ask(self) -> float:
        return self.condition.ask(Side.NO)


@dataclass(frozen=True)
class BestAsk:
    price: float
    venue: Platform
    market_id: str
    leg_index: int


@dataclass(frozen=True)
class CostQuote:
    min_yes: float
    min_no: float
    total_cost: float

    @property
    def has_arbitrage(self) -> bool:
        return self.total_cost < 1.0


def best_ask(side: Side, legs: Sequence[PricedLeg]) -> BestAsk | None:
    """Cheapest venue to buy ``side``. Ties go to the earliest leg."""
    best: BestAsk | None = None
    for index, leg in enumerate(legs):
        price = leg.condition.ask(side)
        if best is None or price < best.price:
            best = BestAsk(
                price=price,
                venue=leg.market.platform,
                market_id=leg.market.market_id,
                leg_index=index,
            )
    return best


def quote_cost(yes_asks: Sequence[float], no_asks: Sequence[float]) -> CostQuote:
    if not yes_asks or not no_asks:
        raise ValueError("at least one yes ask and one no ask are required")
    for price in (*yes_asks, *no_asks):
        if not (0.0 <= price <= 1.0):
            raise ValueError(f"ask price out of range [0, 1]: {price}")
    min_yes = min(yes_asks)
    min_no = min(no_asks)
    return CostQuote(min_yes=min_yes, min_no=min_no, total_cost=min_yes + min_no)
