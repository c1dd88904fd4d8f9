"""Process-local storage for entitlement decisions.

Decisions are keyed by ``access:<user>:<audiobook>`` and tagged with
``user:<id>`` and ``audiobook:<id>`` so a purchase, subscription change or
catalog edit can drop every decision it affects in one call.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Protocol, Set

from .models import AccessInfo


class EntitlementCache(Protocol):
    def get(self, key: str) -> Optional[AccessInfo]:
        ...

    def set(self, key: str, value: AccessInfo, expires_at: datetime, tags: Set[str]) -> None:
        ...

    def invalidate(self, tags: Iterable[str]) -> None:
        ...


@dataclass(frozen=True)
class _Decision:
    access: AccessInfo
    expires_at: datetime
    tags: FrozenSet[str]


class InMemoryEntitlementCache:
    """Expiring decisions with a tag index; every operation holds the lock."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._decisions: Dict[str, _Decision] = {}
        self._keys_by_tag: Dict[str, Set[str]] = defaultdict(set)
        self._lock = Lock()

    def get(self, key: str) -> Optional[AccessInfo]:
        with self._lock:
            decision = self._decisions.get(key)
            if decision is None:
                return None
            if decision.expires_at <= self._clock():
                self._discard(key)
                return None
            return decision.access

    def set(self, key: str, value: AccessInfo, expires_at: datetime, tags: Set[str]) -> None:
        if expires_at <= self._clock():
            return
        with self._lock:
            self._discard(key)
            self._decisions[key] = _Decision(access=value, expires_at=expires_at, tags=frozenset(tags))
            for tag in tags:
                self._keys_by_tag[tag].add(key)

    def invalidate(self, tags: Iterable[str]) -> None:
        with self._lock:
            for tag in set(tags):
                for key in self._keys_by_tag.pop(tag, set()):
                    self._discard(key)

    def clear(self) -> None:
        with self._lock:
            self._decisions.clear()
            self._keys_by_tag.clear()

    def __len__(self) -> int:
        """Number of decisions that have not expired yet."""

        with self._lock:
            now = self._clock()
            return sum(1 for decision in self._decisions.values() if decision.expires_at > now)

    def _discard(self, key: str) -> None:
        # Caller holds the lock.
        decision = self._decisions.pop(key, None)
        if decision is None:
            return
        for tag in decision.tags:
            keys = self._keys_by_tag.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._keys_by_tag[tag]
