"""Opportunity aggregation across approved matches and ecosystems.

Usage::

    repo = InMemoryMatchRepository()
    aggregator = OpportunityAggregator(repo)
    aggregator.recompute(markets)          # full pass over the repository
    ...
    aggregator.refresh(fresh_markets)      # reprice what is already held
    stats = aggregator.portfolio_stats()

The opportunity collection is only ever replaced wholesale: a new tuple is
built completely and then swapped in under a lock, so readers never see a
half-updated set.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Mapping, Sequence, Tuple, Union

import numpy as np

from arb_matcher.arbitrage import ArbitrageCalculator, opportunity_key
from arb_matcher.config import MatcherSettings, PortfolioSettings
from arb_matcher.mapping_qa import MappingQAConfig, MappingQAPipeline, MappingQAReport
from arb_matcher.match_store import MatchRepository
from arb_matcher.models import (
    ArbitrageOpportunity,
    ConditionMapping,
    Ecosystem,
    EcosystemConditionMapping,
    Market,
    Match,
    RelationshipType,
)
from arb_matcher.quotes import PricedLeg

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioStats:
    total_opportunities: int
    average_apr: float
    total_potential_profit: float
    average_days_until_close: float
    risk_score: float


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def portfolio_stats(
    opportunities: Sequence[ArbitrageOpportunity],
    settings: PortfolioSettings | None = None,
) -> PortfolioStats:
    """Portfolio-level summary.

    ``risk_score`` grows with both average time to close and the number of
    concurrently held opportunities; each factor is clamped to [0, 1]
    before they are multiplied.
    """
    cfg = settings or PortfolioSettings()
    if not opportunities:
        return PortfolioStats(
            total_opportunities=0,
            average_apr=0.0,
            total_potential_profit=0.0,
            average_days_until_close=0.0,
            risk_score=0.0,
        )

    aprs = np.fromiter((opp.annualized_return for opp in opportunities), dtype=np.float64)
    profits = np.fromiter((opp.profit_on_100 for opp in opportunities), dtype=np.float64)
    days = np.fromiter((opp.days_until_close for opp in opportunities), dtype=np.float64)

    count = len(opportunities)
    avg_days = float(days.mean())
    time_factor = _clamp_unit((avg_days - 1.0) / cfg.risk_days_horizon)
    count_factor = _clamp_unit(count / cfg.risk_count_saturation)

    return PortfolioStats(
        total_opportunities=count,
        average_apr=float(aprs.mean()),
        total_potential_profit=float(profits.sum()),
        average_days_until_close=avg_days,
        risk_score=time_factor * count_factor,
    )


def index_markets(markets: Iterable[Market] | Mapping[str, Market]) -> Dict[str, Market]:
    if isinstance(markets, Mapping):
        return dict(markets)
    return {market.key: market for market in markets}


def _sort_key(opp: ArbitrageOpportunity) -> tuple[float, str]:
    return (-opp.annualized_return, opp.opportunity_id)


_LiveMapping = Tuple[Union[Match, Ecosystem], Union[ConditionMapping, EcosystemConditionMapping]]


class OpportunityAggregator:
    """Owns the ranked set of live arbitrage opportunities.

    Writers (``recompute``, ``refresh`` and repository-triggered recomputes)
    run one at a time under ``_write_lock``, from reading the current set to
    swapping in the new one. Readers only take the short ``_lock``.
    """

    def __init__(
        self,
        repository: MatchRepository,
        calculator: ArbitrageCalculator | None = None,
        settings: MatcherSettings | None = None,
        clock: Callable[[], datetime] | None = None,
        *,
        auto_recompute: bool = True,
    ) -> None:
        self._settings = settings or MatcherSettings()
        self._repository = repository
        self._calculator = calculator or ArbitrageCalculator(self._settings.arbitrage)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._qa = MappingQAPipeline(
            MappingQAConfig(min_confidence=self._settings.portfolio.min_mapping_confidence)
        )
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._opportunities: tuple[ArbitrageOpportunity, ...] = ()
        self._markets: Dict[str, Market] | None = None
        self._last_qa_report: MappingQAReport | None = None
        self._unsubscribe: Callable[[], None] | None = None
        if auto_recompute:
            self._unsubscribe = repository.subscribe(self._on_repository_change)

    @property
    def opportunities(self) -> tuple[ArbitrageOpportunity, ...]:
        with self._lock:
            return self._opportunities

    @property
    def last_qa_report(self) -> MappingQAReport | None:
        return self._last_qa_report

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # -- full pass ------------------------------------------------------------

    def compute(
        self,
        markets: Iterable[Market] | Mapping[str, Market],
        now: datetime | None = None,
    ) -> list[ArbitrageOpportunity]:
        """Price every ``same`` mapping in the repository without storing the result."""
        current = now or self._clock()
        by_key = index_markets(markets)
        matches = self._repository.list_matches()
        ecosystems = self._repository.list_ecosystems()

        found: list[ArbitrageOpportunity] = []
        for match in matches:
            found.extend(self._price_match(match, by_key, current))
        for ecosystem in ecosystems:
            found.extend(self._price_ecosystem(ecosystem, by_key, current))

        deduped: Dict[str, ArbitrageOpportunity] = {}
        for opp in found:
            if opp.opportunity_id in deduped:
                LOGGER.debug("duplicate opportunity %s dropped", opp.opportunity_id)
                continue
            deduped[opp.opportunity_id] = opp

        report = self._qa.run(matches, ecosystems, by_key)
        self._last_qa_report = report
        if report.has_warnings or report.has_errors:
            LOGGER.warning("mapping QA: %s", report.summary)
        else:
            LOGGER.debug("mapping QA: %s", report.summary)

        return sorted(deduped.values(), key=_sort_key)

    def recompute(
        self,
        markets: Iterable[Market] | Mapping[str, Market],
        now: datetime | None = None,
    ) -> tuple[ArbitrageOpportunity, ...]:
        by_key = index_markets(markets)
        with self._write_lock:
            return self._recompute_locked(by_key, now)

    # -- incremental refresh -------------------------------------------------

    def refresh(
        self,
        markets: Iterable[Market] | Mapping[str, Market],
        now: datetime | None = None,
    ) -> tuple[ArbitrageOpportunity, ...]:
        """Reprice held opportunities from fresh market data.

        Identity is preserved; every derived field is replaced. Legs are
        rebuilt from the mapping as the repository holds it now, so a
        re-pointed mapping prices its new conditions. Opportunities whose
        mapping is gone or no longer ``same``, whose market or condition
        disappeared, or whose cost is now >= 1 are dropped.
        """
        current = now or self._clock()
        by_key = index_markets(markets)

        with self._write_lock:
            live = self._live_mappings()
            refreshed: list[ArbitrageOpportunity] = []
            dropped = 0
            for opp in self._opportunities:
                kind, owner_id = ("ecosystem", opp.ecosystem_id) if opp.ecosystem_id else ("pair", opp.match_id)
                entry = live.get((kind, owner_id, opp.mapping_id))
                legs = self._legs_for(entry, by_key) if entry is not None else None
                updated = None
                if legs is not None:
                    updated = self._calculator.price_legs(
                        opp.mapping_id,
                        legs,
                        now=current,
                        match_id=opp.match_id,
                        ecosystem_id=opp.ecosystem_id,
                        opportunity_id=opp.opportunity_id,
                    )
                if updated is None:
                    dropped += 1
                    continue
                refreshed.append(updated)

            result = tuple(sorted(refreshed, key=_sort_key))
            self._swap(result, by_key)

        if dropped:
            LOGGER.info("refresh dropped %d opportunities, %d remain", dropped, len(result))
        return result

    def portfolio_stats(
        self, opportunities: Sequence[ArbitrageOpportunity] | None = None
    ) -> PortfolioStats:
        target = self.opportunities if opportunities is None else opportunities
        return portfolio_stats(target, self._settings.portfolio)

    # -- internals ------------------------------------------------------------

    def _recompute_locked(
        self, by_key: Dict[str, Market], now: datetime | None
    ) -> tuple[ArbitrageOpportunity, ...]:
        result = tuple(self.compute(by_key, now))
        self._swap(result, by_key)
        LOGGER.info(
            "recomputed opportunities: %d from %d markets",
            len(result),
            len(by_key),
        )
        return result

    def _swap(self, result: tuple[ArbitrageOpportunity, ...], markets: Dict[str, Market]) -> None:
        with self._lock:
            self._opportunities = result
            self._markets = markets

    def _on_repository_change(self, _repository: MatchRepository) -> None:
        with self._write_lock:
            snapshot = self._markets
            if snapshot is None:
                return
            self._recompute_locked(snapshot, None)

    def _live_mappings(self) -> Dict[tuple[str, str, str], _LiveMapping]:
        live: Dict[tuple[str, str, str], _LiveMapping] = {}
        for match in self._repository.list_matches():
            for mapping in match.condition_mappings:
                if mapping.relationship is RelationshipType.SAME:
                    live[("pair", match.match_id, mapping.key)] = (match, mapping)
        for ecosystem in self._repository.list_ecosystems():
            for mapping in ecosystem.condition_mappings:
                if mapping.relationship is RelationshipType.SAME:
                    live[("ecosystem", ecosystem.ecosystem_id, mapping.key)] = (ecosystem, mapping)
        return live

    def _legs_for(self, entry: _LiveMapping, markets: Mapping[str, Market]) -> list[PricedLeg] | None:
        owner, mapping = entry
        if isinstance(owner, Match) and isinstance(mapping, ConditionMapping):
            return self._match_legs(owner, mapping, markets)
        if isinstance(owner, Ecosystem) and isinstance(mapping, EcosystemConditionMapping):
            return self._ecosystem_legs(owner, mapping, markets)
        return None

    def _match_legs(
        self, match: Match, mapping: ConditionMapping, markets: Mapping[str, Market]
    ) -> list[PricedLeg] | None:
        market_a = markets.get(match.market_a.key)
        market_b = markets.get(match.market_b.key)
        if market_a is None or market_b is None:
            return None
        condition_a = market_a.condition(mapping.condition_a)
        condition_b = market_b.condition(mapping.condition_b)
        if condition_a is None or condition_b is None:
            return None
        return [PricedLeg(market_a, condition_a), PricedLeg(market_b, condition_b)]

    def _ecosystem_legs(
        self, ecosystem: Ecosystem, mapping: EcosystemConditionMapping, markets: Mapping[str, Market]
    ) -> list[PricedLeg] | None:
        legs: list[PricedLeg] = []
        for ref in ecosystem.market_refs:
            name = mapping.conditions.get(ref.key)
            if name is None:
                continue
            market = markets.get(ref.key)
            condition = market.condition(name) if market is not None else None
            if market is None or condition is None:
                return None
            legs.append(PricedLeg(market, condition))
        return legs

    def _price_match(
        self,
        match: Match,
        markets: Mapping[str, Market],
        now: datetime,
    ) -> list[ArbitrageOpportunity]:
        if match.market_a.key not in markets or match.market_b.key not in markets:
            LOGGER.debug("match %s skipped: market missing from snapshot", match.match_id)
            return []

        found: list[ArbitrageOpportunity] = []
        for mapping in match.condition_mappings:
            if mapping.relationship is not RelationshipType.SAME:
                continue
            legs = self._match_legs(match, mapping, markets)
            if legs is None:
                LOGGER.debug(
                    "match %s mapping %s skipped: condition missing",
                    match.match_id,
                    mapping.key,
                )
                continue
            leg_a, leg_b = legs
            opp = self._calculator.price(
                mapping,
                leg_a.market,
                leg_a.condition,
                leg_b.market,
                leg_b.condition,
                now=now,
                match_id=match.match_id,
            )
            if opp is not None:
                found.append(opp)
        return found

    def _price_ecosystem(
        self,
        ecosystem: Ecosystem,
        markets: Mapping[str, Market],
        now: datetime,
    ) -> list[ArbitrageOpportunity]:
        found: list[ArbitrageOpportunity] = []
        for mapping in ecosystem.condition_mappings:
            if mapping.relationship is not RelationshipType.SAME:
                continue
            legs = self._ecosystem_legs(ecosystem, mapping, markets)
            if legs is None or len(legs) < 2:
                LOGGER.debug(
                    "ecosystem %s mapping %s skipped: %s",
                    ecosystem.ecosystem_id,
                    mapping.key,
                    "market or condition missing" if legs is None else "fewer than two legs",
                )
                continue
            opp = self._calculator.price_legs(
                mapping.key,
                legs,
                now=now,
                ecosystem_id=ecosystem.ecosystem_id,
                opportunity_id=opportunity_key(
                    "ecosystem",
                    ecosystem.ecosystem_id,
                    mapping.key,
                    [leg.market.key for leg in legs],
                ),
            )
            if opp is not None:
                found.append(opp)
        return found
