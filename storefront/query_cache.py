"""Client-side query cache keyed by tuples such as ``("/api/cart",)``."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]


class QueryCache:
    """Stores fetched payloads and drops them by key prefix.

    Invalidating ``("/api/audiobooks", "42")`` also drops
    ``("/api/audiobooks", "42", "favorite")``.
    """

    def __init__(self) -> None:
        self._entries: Dict[QueryKey, Any] = {}
        self.invalidated: List[QueryKey] = []

    def get(self, key: QueryKey, default: Any = None) -> Any:
        return self._entries.get(tuple(key), default)

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[tuple(key)] = value

    def __contains__(self, key: object) -> bool:
        return isinstance(key, tuple) and key in self._entries

    async def fetch(self, key: QueryKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        key = tuple(key)
        if key in self._entries:
            return self._entries[key]
        value = await loader()
        self._entries[key] = value
        return value

    def invalidate(self, *prefixes: QueryKey) -> int:
        removed = 0
        for prefix in prefixes:
            prefix = tuple(prefix)
            self.invalidated.append(prefix)
            stale = [key for key in self._entries if key[: len(prefix)] == prefix]
            for key in stale:
                del self._entries[key]
            removed += len(stale)
        if prefixes:
            logger.debug("Invalidated queries", extra={"prefixes": prefixes, "removed": removed})
        return removed


__all__ = ["QueryCache", "QueryKey"]
