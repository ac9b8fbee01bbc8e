from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from arb_matcher.arbitrage import (
    ArbitrageCalculator,
    best_opportunity,
    days_until,
    filter_by_max_days,
    filter_by_min_apr,
    opportunity_key,
)
from arb_matcher.config import ArbitrageSettings
from arb_matcher.models import (
    Condition,
    ConditionMapping,
    Market,
    Platform,
    RelationshipType,
    Side,
)
from arb_matcher.quotes import PricedLeg, best_ask, quote_cost

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _market(
    market_id: str,
    platform: Platform,
    yes: float,
    no: float,
    *,
    close_in: timedelta = timedelta(days=30),
    yes_ask: float | None = None,
    no_ask: float | None = None,
    condition: str = "Yes",
) -> Market:
    return Market(
        market_id=market_id,
        platform=platform,
        title="Bitcoin above $100k by year end?",
        category="Crypto",
        close_time=NOW + close_in,
        conditions=(
            Condition(name=condition, yes_price=yes, no_price=no, yes_ask=yes_ask, no_ask=no_ask),
        ),
    )


def _same(name_a: str = "Yes", name_b: str = "Yes") -> ConditionMapping:
    return ConditionMapping(condition_a=name_a, condition_b=name_b, relationship=RelationshipType.SAME)


def _price_pair(calc: ArbitrageCalculator, market_a: Market, market_b: Market, **kwargs):
    return calc.price(
        _same(),
        market_a,
        market_a.conditions[0],
        market_b,
        market_b.conditions[0],
        now=NOW,
        match_id="m1",
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class TestQuotes:
    def test_quote_cost_picks_minimums(self) -> None:
        quote = quote_cost([0.44, 0.42], [0.56, 0.58])
        assert quote.min_yes == 0.42
        assert quote.min_no == 0.56
        assert quote.total_cost == pytest.approx(0.98)
        assert quote.has_arbitrage is True

    def test_quote_cost_without_arbitrage(self) -> None:
        quote = ArbitrageCalculator().quote([0.52, 0.53], [0.50, 0.51])
        assert quote.total_cost == pytest.approx(1.02)
        assert quote.has_arbitrage is False

    def test_quote_cost_rejects_empty(self) -> None:
        with pytest.raises(ValueError):
            quote_cost([], [0.5])

    def test_quote_cost_rejects_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="out of range"):
            quote_cost([1.2], [0.5])

    def test_best_ask_ties_go_to_first_leg(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.5, 0.5)
        poly = _market("P1", Platform.POLYMARKET, 0.5, 0.5)
        legs = [PricedLeg(kalshi, kalshi.conditions[0]), PricedLeg(poly, poly.conditions[0])]
        assert best_ask(Side.YES, legs).venue is Platform.KALSHI
        assert best_ask(Side.NO, legs).leg_index == 0

    def test_best_ask_empty(self) -> None:
        assert best_ask(Side.YES, []) is None


# ---------------------------------------------------------------------------
# Pairwise pricing
# ---------------------------------------------------------------------------


class TestPricePair:
    def test_cross_venue_arbitrage(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.44, 0.56)
        poly = _market("P1", Platform.POLYMARKET, 0.42, 0.58)

        opp = _price_pair(ArbitrageCalculator(), kalshi, poly)

        assert opp is not None
        assert opp.min_yes == 0.42
        assert opp.min_yes_venue is Platform.POLYMARKET
        assert opp.min_yes_market_id == "P1"
        assert opp.min_no == 0.56
        assert opp.min_no_venue is Platform.KALSHI
        assert opp.total_cost == pytest.approx(0.98)
        assert opp.period_return == pytest.approx(0.02 / 0.98)
        assert opp.days_until_close == 30
        assert opp.annualized_return == pytest.approx(0.02 / 0.98 * 365 / 30)
        assert opp.profit_on_100 == pytest.approx(100 * 0.02 / 0.98)
        assert opp.has_arbitrage is True
        assert opp.match_id == "m1"
        assert opp.ecosystem_id == ""

    def test_no_arbitrage_returns_none(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.52, 0.50)
        poly = _market("P1", Platform.POLYMARKET, 0.53, 0.51)
        assert _price_pair(ArbitrageCalculator(), kalshi, poly) is None

    def test_cost_of_exactly_one_is_not_arbitrage(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.5, 0.5)
        poly = _market("P1", Platform.POLYMARKET, 0.5, 0.5)
        assert _price_pair(ArbitrageCalculator(), kalshi, poly) is None

    def test_zero_cost_is_ignored(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.0, 0.0)
        poly = _market("P1", Platform.POLYMARKET, 0.0, 0.0)
        assert _price_pair(ArbitrageCalculator(), kalshi, poly) is None

    def test_non_same_mapping_is_not_priced(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.44, 0.56)
        poly = _market("P1", Platform.POLYMARKET, 0.42, 0.58)
        mapping = ConditionMapping("Yes", "Yes", RelationshipType.OVERLAPPING)
        result = ArbitrageCalculator().price(
            mapping, kalshi, kalshi.conditions[0], poly, poly.conditions[0], now=NOW
        )
        assert result is None

    def test_asks_take_precedence_over_listed_prices(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.44, 0.56, yes_ask=0.46, no_ask=0.55)
        poly = _market("P1", Platform.POLYMARKET, 0.42, 0.50, yes_ask=0.43)
        opp = _price_pair(ArbitrageCalculator(), kalshi, poly)
        assert opp is not None
        assert opp.min_yes == 0.43
        assert opp.min_yes_venue is Platform.POLYMARKET
        # Polymarket has no NO ask, so its listed price is used.
        assert opp.min_no == 0.50
        assert opp.min_no_venue is Platform.POLYMARKET
        assert opp.total_cost == pytest.approx(0.93)

    def test_earliest_close_drives_days(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.44, 0.56, close_in=timedelta(days=90))
        poly = _market("P1", Platform.POLYMARKET, 0.42, 0.58, close_in=timedelta(days=10))
        opp = _price_pair(ArbitrageCalculator(), kalshi, poly)
        assert opp.days_until_close == 10
        assert opp.earliest_close_time == poly.close_time

    def test_idempotent_and_stable_id(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.44, 0.56)
        poly = _market("P1", Platform.POLYMARKET, 0.42, 0.58)
        calc = ArbitrageCalculator()
        first = _price_pair(calc, kalshi, poly)
        second = _price_pair(calc, kalshi, poly)
        assert first == second

        repriced = _price_pair(calc, replace(kalshi, conditions=(Condition("Yes", 0.40, 0.55),)), poly)
        assert repriced.opportunity_id == first.opportunity_id
        assert repriced.total_cost == pytest.approx(0.95)

    def test_custom_days_per_year(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.44, 0.56)
        poly = _market("P1", Platform.POLYMARKET, 0.42, 0.58)
        opp = _price_pair(ArbitrageCalculator(ArbitrageSettings(days_per_year=360)), kalshi, poly)
        assert opp.annualized_return == pytest.approx(opp.period_return * 12)

    def test_to_dict(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.44, 0.56)
        poly = _market("P1", Platform.POLYMARKET, 0.42, 0.58)
        payload = _price_pair(ArbitrageCalculator(), kalshi, poly).to_dict()
        assert payload["minYesVenue"] == "polymarket"
        assert payload["minNoVenue"] == "kalshi"
        assert payload["hasArbitrage"] is True
        assert payload["matchId"] == "m1"
        assert payload["ecosystemId"] is None
        assert payload["daysUntilClose"] == 30


# ---------------------------------------------------------------------------
# Days until close
# ---------------------------------------------------------------------------


class TestDaysUntil:
    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(days=-3), 1),
            (timedelta(0), 1),
            (timedelta(hours=2), 1),
            (timedelta(hours=36), 2),
            (timedelta(days=30), 30),
        ],
    )
    def test_floor_and_ceil(self, delta: timedelta, expected: int) -> None:
        assert days_until(NOW + delta, NOW) == expected

    def test_past_close_still_priced(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.44, 0.56, close_in=timedelta(days=-1))
        poly = _market("P1", Platform.POLYMARKET, 0.42, 0.58)
        opp = _price_pair(ArbitrageCalculator(), kalshi, poly)
        assert opp.days_until_close == 1
        assert opp.annualized_return == pytest.approx(opp.period_return * 365)


# ---------------------------------------------------------------------------
# N-way pricing
# ---------------------------------------------------------------------------


class TestPriceLegs:
    def test_three_venues(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.45, 0.56)
        poly = _market("P1", Platform.POLYMARKET, 0.47, 0.54)
        fcx = _market("F1", Platform.FORECASTEX, 0.41, 0.60)
        legs = [PricedLeg(m, m.conditions[0]) for m in (kalshi, poly, fcx)]

        opp = ArbitrageCalculator().price_legs("winner", legs, now=NOW, ecosystem_id="eco1")

        assert opp is not None
        assert opp.min_yes_venue is Platform.FORECASTEX
        assert opp.min_no_venue is Platform.POLYMARKET
        assert opp.total_cost == pytest.approx(0.95)
        assert len(opp.legs) == 3
        assert opp.venues == {Platform.KALSHI, Platform.POLYMARKET, Platform.FORECASTEX}
        assert opp.opportunity_id == opportunity_key(
            "ecosystem", "eco1", "winner", [kalshi.key, poly.key, fcx.key]
        )

    def test_single_leg_is_not_priced(self) -> None:
        kalshi = _market("K1", Platform.KALSHI, 0.1, 0.1)
        assert ArbitrageCalculator().price_legs("x", [PricedLeg(kalshi, kalshi.conditions[0])], now=NOW) is None


class TestOpportunityKey:
    def test_order_independent(self) -> None:
        assert opportunity_key("pair", "m1", "Yes::Yes", ["a", "b"]) == opportunity_key(
            "pair", "m1", "Yes::Yes", ["b", "a"]
        )

    def test_distinguishes_owner_and_mapping(self) -> None:
        base = opportunity_key("pair", "m1", "Yes::Yes", ["a", "b"])
        assert base != opportunity_key("pair", "m2", "Yes::Yes", ["a", "b"])
        assert base != opportunity_key("pair", "m1", "No::No", ["a", "b"])
        assert base != opportunity_key("ecosystem", "m1", "Yes::Yes", ["a", "b"])
        assert len(base) == 16


# ---------------------------------------------------------------------------
# Stakes / filters
# ---------------------------------------------------------------------------


@pytest.fixture()
def scenario_opportunity():
    kalshi = _market("K1", Platform.KALSHI, 0.44, 0.56)
    poly = _market("P1", Platform.POLYMARKET, 0.42, 0.58)
    return _price_pair(ArbitrageCalculator(), kalshi, poly)


class TestStakes:
    def test_expected_stakes(self, scenario_opportunity) -> None:
        split = ArbitrageCalculator().expected_stakes(scenario_opportunity, 100.0)
        assert split.yes_stake == pytest.approx(42.0)
        assert split.no_stake == pytest.approx(56.0)
        assert split.total_stake == pytest.approx(98.0)
        assert split.profit == pytest.approx(2.0)

    def test_max_profit_limited_by_thinnest_venue(self, scenario_opportunity) -> None:
        calc = ArbitrageCalculator()
        liquidity = {Platform.KALSHI: 300.0, Platform.POLYMARKET: 5_000.0}
        assert calc.max_profit(scenario_opportunity, liquidity) == pytest.approx(
            300.0 * scenario_opportunity.period_return
        )

    def test_max_profit_capped(self, scenario_opportunity) -> None:
        calc = ArbitrageCalculator()
        liquidity = {Platform.KALSHI: 1e9, Platform.POLYMARKET: 1e9}
        assert calc.max_profit(scenario_opportunity, liquidity) == pytest.approx(
            10_000.0 * scenario_opportunity.period_return
        )
        assert calc.max_profit(scenario_opportunity, liquidity, max_stake=50.0) == pytest.approx(
            50.0 * scenario_opportunity.period_return
        )

    def test_max_profit_unknown_venue_is_zero(self, scenario_opportunity) -> None:
        assert ArbitrageCalculator().max_profit(scenario_opportunity, {Platform.KALSHI: 100.0}) == 0.0

    def test_profit_on(self, scenario_opportunity) -> None:
        assert scenario_opportunity.profit_on(100.0) == pytest.approx(scenario_opportunity.profit_on_100)


class TestFilters:
    def test_filters_and_best(self, scenario_opportunity) -> None:
        slow = replace(scenario_opportunity, opportunity_id="slow", annualized_return=0.05, days_until_close=200)
        fast = replace(scenario_opportunity, opportunity_id="fast", annualized_return=0.9, days_until_close=3)
        opps = [slow, fast]

        assert filter_by_min_apr(opps, 0.1) == [fast]
        assert filter_by_max_days(opps, 30) == [fast]
        assert best_opportunity(opps) is fast
        assert best_opportunity([]) is None
