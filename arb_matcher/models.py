from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class InvalidMarketError(ValueError):
    """Raised when a market snapshot violates the input contract."""


class InvalidMappingError(ValueError):
    """Raised when a match or ecosystem assigns a condition twice."""


class Platform(str, Enum):
    KALSHI = "kalshi"
    POLYMARKET = "polymarket"
    FORECASTEX = "forecastex"


class RelationshipType(str, Enum):
    SAME = "same"
    SUBSET = "subset"
    MUTUALLY_EXCLUSIVE = "mutually-exclusive"
    COMPLEMENTARY = "complementary"
    OPPOSITES = "opposites"
    OVERLAPPING = "overlapping"


class Side(str, Enum):
    YES = "yes"
    NO = "no"


def market_key(platform: Platform | str, market_id: str) -> str:
    value = platform.value if isinstance(platform, Platform) else str(platform).lower()
    return f"{value}:{market_id}"


def _check_price(value: float | None, field_name: str, owner: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidMarketError(f"{owner}: {field_name} must be numeric, got {value!r}")
    if math.isnan(value) or value < 0.0 or value > 1.0:
        raise InvalidMarketError(f"{owner}: {field_name} out of range [0, 1]: {value}")


def _check_non_negative(value: float | None, field_name: str, owner: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidMarketError(f"{owner}: {field_name} must be numeric, got {value!r}")
    if math.isnan(value) or value < 0.0:
        raise InvalidMarketError(f"{owner}: {field_name} must be non-negative: {value}")


@dataclass(frozen=True)
class Condition:
    name: str
    yes_price: float
    no_price: float
    yes_bid: float | None = None
    yes_ask: float | None = None
    no_bid: float | None = None
    no_ask: float | None = None
    volume: float | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidMarketError("condition name must be a non-empty string")
        owner = f"condition '{self.name}'"
        for attr in ("yes_price", "no_price", "yes_bid", "yes_ask", "no_bid", "no_ask"):
            _check_price(getattr(self, attr), attr, owner)
        _check_non_negative(self.volume, "volume", owner)

    def ask(self, side: Side) -> float:
        """Cost to buy ``side``: the live ask, else the listed price."""
        if side is Side.YES:
            return self.yes_ask if self.yes_ask is not None else self.yes_price
        return self.no_ask if self.no_ask is not None else self.no_price


@dataclass(frozen=True)
class Market:
    market_id: str
    platform: Platform
    title: str
    category: str
    close_time: datetime
    conditions: tuple[Condition, ...]
    volume: float = 0.0
    liquidity: float | None = None
    settlement_source: str | None = None

    def __post_init__(self) -> None:
        if not self.market_id or not str(self.market_id).strip():
            raise InvalidMarketError("market id is required")
        if not isinstance(self.platform, Platform):
            raise InvalidMarketError(f"market {self.market_id}: unknown platform {self.platform!r}")
        if not isinstance(self.close_time, datetime):
            raise InvalidMarketError(f"market {self.market_id}: close_time is required")
        if self.close_time.tzinfo is None:
            raise InvalidMarketError(f"market {self.market_id}: close_time must be timezone-aware")
        if not self.conditions:
            raise InvalidMarketError(f"market {self.market_id}: at least one condition is required")
        owner = f"market {self.market_id}"
        _check_non_negative(self.volume, "volume", owner)
        _check_non_negative(self.liquidity, "liquidity", owner)
        # Accept lists from callers but keep the snapshot immutable.
        object.__setattr__(self, "conditions", tuple(self.conditions))

    @property
    def key(self) -> str:
        return market_key(self.platform, self.market_id)

    def condition(self, name: str) -> Condition | None:
        for condition in self.conditions:
            if condition.name == name:
                return condition
        return None


@dataclass(frozen=True)
class ConditionMapping:
    condition_a: str
    condition_b: str
    relationship: RelationshipType
    confidence: float = 1.0
    mapping_id: str = ""

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence <= 1.0):
            raise InvalidMappingError(f"mapping confidence out of range [0, 1]: {self.confidence}")

    @property
    def key(self) -> str:
        return self.mapping_id or f"{self.condition_a}::{self.condition_b}"


@dataclass(frozen=True)
class MarketRef:
    platform: Platform
    market_id: str
    title: str = ""

    @property
    def key(self) -> str:
        return market_key(self.platform, self.market_id)


@dataclass(frozen=True)
class Match:
    """An approved pairing of two markets with their condition mappings."""

    match_id: str
    market_a: MarketRef
    market_b: MarketRef
    condition_mappings: tuple[ConditionMapping, ...] = ()
    confidence: float = 1.0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "condition_mappings", tuple(self.condition_mappings))
        seen_a: set[str] = set()
        seen_b: set[str] = set()
        for mapping in self.condition_mappings:
            if mapping.condition_a in seen_a:
                raise InvalidMappingError(
                    f"match {self.match_id}: condition '{mapping.condition_a}' mapped twice on {self.market_a.key}"
                )
            if mapping.condition_b in seen_b:
                raise InvalidMappingError(
                    f"match {self.match_id}: condition '{mapping.condition_b}' mapped twice on {self.market_b.key}"
                )
            seen_a.add(mapping.condition_a)
            seen_b.add(mapping.condition_b)

    @property
    def conditions_matched(self) -> bool:
        return bool(self.condition_mappings)


@dataclass(frozen=True)
class EcosystemConditionMapping:
    """One outcome linked across the markets of an ecosystem.

    ``conditions`` maps a market key (``platform:market_id``) to the name of
    the condition on that market, or ``None`` when the market has no
    counterpart for this outcome.
    """

    mapping_id: str
    conditions: Mapping[str, Optional[str]]
    relationship: RelationshipType = RelationshipType.SAME
    confidence: float = 1.0

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence <= 1.0):
            raise InvalidMappingError(
                f"mapping {self.mapping_id}: confidence out of range [0, 1]: {self.confidence}"
            )

    @property
    def key(self) -> str:
        return self.mapping_id


@dataclass(frozen=True)
class Ecosystem:
    ecosystem_id: str
    name: str
    market_refs: tuple[MarketRef, ...]
    condition_mappings: tuple[EcosystemConditionMapping, ...] = ()
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "market_refs", tuple(self.market_refs))
        object.__setattr__(self, "condition_mappings", tuple(self.condition_mappings))
        member_keys = {ref.key for ref in self.market_refs}
        used: dict[str, set[str]] = {}
        for mapping in self.condition_mappings:
            for key, name in mapping.conditions.items():
                if key not in member_keys:
                    raise InvalidMappingError(
                        f"ecosystem {self.ecosystem_id}: mapping {mapping.mapping_id} references unknown market {key}"
                    )
                if name is None:
                    continue
                names = used.setdefault(key, set())
                if name in names:
                    raise InvalidMappingError(
                        f"ecosystem {self.ecosystem_id}: condition '{name}' mapped twice on {key}"
                    )
                names.add(name)

    @property
    def exchanges(self) -> int:
        return len({ref.platform for ref in self.market_refs})

    @property
    def markets(self) -> int:
        return len(self.market_refs)

    @property
    def conditions_matched(self) -> bool:
        return bool(self.condition_mappings)


@dataclass(frozen=True)
class SimilarityScore:
    overall: float
    title: float
    date: float
    conditions: float
    settlement: float
    category: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "overall": self.overall,
            "title": self.title,
            "date": self.date,
            "conditions": self.conditions,
            "settlement": self.settlement,
            "category": self.category,
        }


@dataclass(frozen=True)
class OpportunityLeg:
    platform: Platform
    market_id: str
    condition_name: str
    yes_ask: float
    no_ask: float

    @property
    def market_key(self) -> str:
        return market_key(self.platform, self.market_id)


@dataclass(frozen=True)
class ArbitrageOpportunity:
    opportunity_id: str
    mapping_id: str
    legs: tuple[OpportunityLeg, ...]
    min_yes: float
    min_yes_venue: Platform
    min_yes_market_id: str
    min_no: float
    min_no_venue: Platform
    min_no_market_id: str
    total_cost: float
    period_return: float
    annualized_return: float
    days_until_close: int
    profit_on_100: float
    earliest_close_time: datetime
    updated_at: datetime
    match_id: str = ""
    ecosystem_id: str = ""

    @property
    def has_arbitrage(self) -> bool:
        return self.total_cost < 1.0

    @property
    def market_ids(self) -> tuple[str, ...]:
        return tuple(leg.market_id for leg in self.legs)

    @property
    def venues(self) -> set[Platform]:
        return {leg.platform for leg in self.legs}

    def profit_on(self, stake: float) -> float:
        return stake * self.period_return

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.opportunity_id,
            "mappingId": self.mapping_id,
            "matchId": self.match_id or None,
            "ecosystemId": self.ecosystem_id or None,
            "minYes": self.min_yes,
            "minYesVenue": self.min_yes_venue.value,
            "minNo": self.min_no,
            "minNoVenue": self.min_no_venue.value,
            "totalCost": self.total_cost,
            "hasArbitrage": self.has_arbitrage,
            "periodReturn": self.period_return,
            "annualizedReturn": self.annualized_return,
            "daysUntilClose": self.days_until_close,
            "profitOn100": self.profit_on_100,
            "earliestCloseTime": self.earliest_close_time.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------------


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _require(payload: Mapping[str, Any], owner: str, *keys: str) -> Any:
    value = _pick(payload, *keys)
    if value is None:
        raise InvalidMarketError(f"{owner}: missing required field '{keys[0]}'")
    return value


def _as_float(value: Any, field_name: str, owner: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidMarketError(f"{owner}: {field_name} is not a number: {value!r}") from None


def _as_optional_float(value: Any, field_name: str, owner: str) -> float | None:
    if value is None:
        return None
    return _as_float(value, field_name, owner)


def _parse_close_time(value: Any, owner: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(float(value), tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidMarketError(f"{owner}: closeTime is not ISO-8601: {value!r}") from None
    else:
        raise InvalidMarketError(f"{owner}: closeTime is not a valid instant: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_platform(value: Any, owner: str) -> Platform:
    try:
        return Platform(str(value).strip().lower())
    except ValueError:
        raise InvalidMarketError(f"{owner}: unknown platform {value!r}") from None


def parse_condition(payload: Mapping[str, Any], owner: str = "condition") -> Condition:
    name = str(_require(payload, owner, "name")).strip()
    owner = f"{owner} '{name}'"
    return Condition(
        name=name,
        yes_price=_as_float(_require(payload, owner, "yesPrice", "yes_price"), "yesPrice", owner),
        no_price=_as_float(_require(payload, owner, "noPrice", "no_price"), "noPrice", owner),
        yes_bid=_as_optional_float(_pick(payload, "yesBid", "yes_bid"), "yesBid", owner),
        yes_ask=_as_optional_float(_pick(payload, "yesAsk", "yes_ask"), "yesAsk", owner),
        no_bid=_as_optional_float(_pick(payload, "noBid", "no_bid"), "noBid", owner),
        no_ask=_as_optional_float(_pick(payload, "noAsk", "no_ask"), "noAsk", owner),
        volume=_as_optional_float(_pick(payload, "volume"), "volume", owner),
    )


def parse_market(payload: Mapping[str, Any]) -> Market:
    """Build a validated :class:`Market` from a normalized market dict.

    Accepts the camelCase shape emitted by the normalization layer as well
    as snake_case keys. Raises :class:`InvalidMarketError` naming the
    offending field rather than repairing bad input.
    """
    market_id = str(_require(payload, "market", "id", "market_id")).strip()
    owner = f"market {market_id}"
    raw_conditions = _require(payload, owner, "conditions")
    if not isinstance(raw_conditions, (list, tuple)):
        raise InvalidMarketError(f"{owner}: conditions must be a list")
    conditions = tuple(parse_condition(item, owner=f"{owner} condition") for item in raw_conditions)
    settlement = _pick(payload, "settlementSource", "settlement_source")
    return Market(
        market_id=market_id,
        platform=_parse_platform(_require(payload, owner, "platform"), owner),
        title=str(_require(payload, owner, "title")),
        category=str(_pick(payload, "category") or ""),
        close_time=_parse_close_time(_require(payload, owner, "closeTime", "close_time"), owner),
        conditions=conditions,
        volume=_as_float(_pick(payload, "volume") or 0.0, "volume", owner),
        liquidity=_as_optional_float(_pick(payload, "liquidity"), "liquidity", owner),
        settlement_source=str(settlement) if settlement else None,
    )
