"""Repository interface for approved matches and ecosystems.

The matcher never persists anything itself. Whatever layer owns storage
(browser state, a database, a JSON file) implements :class:`MatchRepository`
and is injected into the aggregator, which subscribes to changes.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List

from arb_matcher.models import Ecosystem, Match, RelationshipType

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[["MatchRepository"], None]


@dataclass(frozen=True)
class StoreStats:
    total_matches: int
    total_ecosystems: int
    total_condition_mappings: int
    matches_with_mappings: int
    ecosystems_with_mappings: int
    last_updated: datetime


class MatchRepository(ABC):
    @abstractmethod
    def list_matches(self) -> list[Match]:
        raise NotImplementedError

    @abstractmethod
    def list_ecosystems(self) -> list[Ecosystem]:
        raise NotImplementedError

    @abstractmethod
    def upsert_match(self, match: Match) -> None:
        raise NotImplementedError

    @abstractmethod
    def upsert_ecosystem(self, ecosystem: Ecosystem) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_match(self, match_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def remove_ecosystem(self, ecosystem_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        raise NotImplementedError


class InMemoryMatchRepository(MatchRepository):
    """Thread-safe in-process repository.

    Listeners run synchronously after the change is committed and outside
    the lock, so a listener may read the repository back.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._matches: Dict[str, Match] = {}
        self._ecosystems: Dict[str, Ecosystem] = {}
        self._listeners: List[ChangeListener] = []
        self._last_updated = datetime.now(timezone.utc)

    def list_matches(self) -> list[Match]:
        with self._lock:
            return list(self._matches.values())

    def list_ecosystems(self) -> list[Ecosystem]:
        with self._lock:
            return list(self._ecosystems.values())

    def get_match(self, match_id: str) -> Match | None:
        with self._lock:
            return self._matches.get(match_id)

    def get_ecosystem(self, ecosystem_id: str) -> Ecosystem | None:
        with self._lock:
            return self._ecosystems.get(ecosystem_id)

    def upsert_match(self, match: Match) -> None:
        with self._lock:
            self._matches[match.match_id] = match
        self._notify()

    def upsert_ecosystem(self, ecosystem: Ecosystem) -> None:
        with self._lock:
            self._ecosystems[ecosystem.ecosystem_id] = ecosystem
        self._notify()

    def remove_match(self, match_id: str) -> bool:
        with self._lock:
            removed = self._matches.pop(match_id, None) is not None
        if removed:
            self._notify()
        return removed

    def remove_ecosystem(self, ecosystem_id: str) -> bool:
        with self._lock:
            removed = self._ecosystems.pop(ecosystem_id, None) is not None
        if removed:
            self._notify()
        return removed

    def clear(self) -> None:
        with self._lock:
            self._matches.clear()
            self._ecosystems.clear()
        self._notify()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def matches_with_same_conditions(self) -> list[Match]:
        return [
            match
            for match in self.list_matches()
            if any(m.relationship is RelationshipType.SAME for m in match.condition_mappings)
        ]

    def stats(self) -> StoreStats:
        with self._lock:
            matches = list(self._matches.values())
            ecosystems = list(self._ecosystems.values())
            last_updated = self._last_updated
        return StoreStats(
            total_matches=len(matches),
            total_ecosystems=len(ecosystems),
            total_condition_mappings=sum(len(m.condition_mappings) for m in matches),
            matches_with_mappings=sum(1 for m in matches if m.conditions_matched),
            ecosystems_with_mappings=sum(1 for e in ecosystems if e.conditions_matched),
            last_updated=last_updated,
        )

    def _notify(self) -> None:
        with self._lock:
            self._last_updated = datetime.now(timezone.utc)
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(self)
            except Exception as exc:
                LOGGER.warning("match repository listener failed: %s", exc)
