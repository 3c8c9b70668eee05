"""Short-lived in-memory cache for upstream search responses."""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 15 * 60
DEFAULT_MAX_ENTRIES = 512


class TTLCache(Generic[V]):
    """Dict-backed cache whose entries expire ``ttl_seconds`` after being set.

    Expired entries are dropped when read and pruned on write; when the
    cache is full the entry closest to expiry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        # key -> (expires_at, value)
        self._entries: Dict[str, Tuple[float, V]] = {}

    @staticmethod
    def make_key(kind: str, query: str) -> str:
        return f"{kind}:{query}"

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            logger.debug("Search cache entry expired", extra={"cache_key": key})
            return None
        return value

    def set(self, key: str, value: V) -> None:
        now = self._clock()
        self._prune(now)
        if key not in self._entries and len(self._entries) >= self._max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]
        self._entries[key] = (now + self._ttl, value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _prune(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]


__all__ = ["TTLCache", "DEFAULT_TTL_SECONDS"]
