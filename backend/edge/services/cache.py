"""In-process edge cache.

Entries remember when they were fetched; freshness is checked lazily on
read, nothing is evicted on expiry. The backing LRUCache only bounds the
number of keys. Each worker process has its own cache and concurrent
misses may refetch and overwrite an entry (last writer wins).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cachetools import LRUCache  # type: ignore[import-untyped]


class CacheStatus(str, Enum):
    HIT = "HIT"
    MISS = "MISS"
    REFRESH = "REFRESH"
    ERROR = "ERROR"


@dataclass
class CacheEntry:
    payload: Any
    fetched_at: float

    def age(self, now: float) -> float:
        return max(now - self.fetched_at, 0.0)

    @property
    def fetched_at_ms(self) -> int:
        return int(self.fetched_at * 1000)


@dataclass
class CachedRead:
    """Result of a cache-or-fetch read."""

    payload: Any
    status: CacheStatus
    age_seconds: int | None = None

    @property
    def degraded(self) -> bool:
        return self.status == CacheStatus.ERROR


class EdgeCache:
    """Keyed cache of :class:`CacheEntry` with a fixed freshness window."""

    def __init__(
        self,
        ttl_seconds: float,
        maxsize: int = 32,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._entries: LRUCache = LRUCache(maxsize=maxsize)
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def get_fresh(self, key: str) -> CacheEntry | None:
        """Return the entry only if it is younger than the freshness window."""
        entry = self._entries.get(key)
        if entry is not None and entry.age(self.now()) < self.ttl_seconds:
            return entry
        return None

    def set(self, key: str, payload: Any) -> CacheEntry:
        entry = CacheEntry(payload=payload, fetched_at=self.now())
        self._entries[key] = entry
        return entry

    def invalidate(self, key: str) -> None:
        """Drop *key* so the next read refetches."""
        self._entries.pop(key, None)

    @property
    def size(self) -> int:
        return len(self._entries)
