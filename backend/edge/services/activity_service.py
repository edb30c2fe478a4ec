"""Live activity read path: edge cache in front of the snapshot document."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from shared.models import (
    SNAPSHOT_COLLECTION,
    SNAPSHOT_DOCUMENT,
    DegradedSnapshot,
    LiveActivitySnapshot,
)
from shared.store import DocumentStore, StoreError, StoreUnavailableError

from .cache import CachedRead, CacheStatus, EdgeCache

logger = logging.getLogger(__name__)


class ActivityService:
    """Serve the live activity snapshot through a short-lived cache.

    - fresh cache entry → ``HIT``
    - missing or stale entry → read the snapshot document directly from the
      store (never through the aggregator) → ``MISS``
    - store failure → degraded empty payload with an ``error`` marker; the
      degraded payload is not cached
    """

    CACHE_KEY = "current-activity"

    def __init__(
        self,
        store: DocumentStore,
        *,
        freshness_seconds: float = 30,
        degraded_retry_seconds: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.freshness_seconds = freshness_seconds
        self.degraded_retry_seconds = degraded_retry_seconds
        self.cache = EdgeCache(ttl_seconds=freshness_seconds, maxsize=4, clock=clock)

    def _now_ms(self) -> int:
        return int(self.cache.now() * 1000)

    async def fetch_snapshot(self) -> LiveActivitySnapshot:
        """Read and parse the snapshot document; malformed fields are defaulted."""
        data = await self.store.get_document(SNAPSHOT_COLLECTION, SNAPSHOT_DOCUMENT)
        if data is None:
            raise StoreUnavailableError("Live activity snapshot has not been written yet")
        return LiveActivitySnapshot.from_document(data, default_last_update=self._now_ms())

    def degraded(self) -> CachedRead:
        payload = DegradedSnapshot.at(self._now_ms()).to_payload()
        return CachedRead(payload=payload, status=CacheStatus.ERROR)

    async def read(self) -> CachedRead:
        entry = self.cache.get_fresh(self.CACHE_KEY)
        if entry is not None:
            return CachedRead(
                payload=entry.payload,
                status=CacheStatus.HIT,
                age_seconds=int(entry.age(self.cache.now())),
            )

        logger.info("Cache miss - fetching live activity from store")
        try:
            snapshot = await self.fetch_snapshot()
        except StoreError as e:
            logger.error(f"Error fetching live activity: {e}")
            return self.degraded()
        except Exception as e:
            logger.exception(f"Unexpected error fetching live activity: {e}")
            return self.degraded()

        entry = self.cache.set(self.CACHE_KEY, snapshot.to_payload())
        return CachedRead(payload=entry.payload, status=CacheStatus.MISS)

    def response_headers(self, read: CachedRead) -> dict[str, str]:
        if read.degraded:
            return {"Cache-Control": f"public, s-maxage={self.degraded_retry_seconds}"}

        freshness = int(self.freshness_seconds)
        headers = {
            "Cache-Control": f"public, s-maxage={freshness}, stale-while-revalidate={freshness * 2}",
            "X-Cache-Status": read.status.value,
        }
        if read.status == CacheStatus.HIT and read.age_seconds is not None:
            headers["X-Cache-Age"] = str(read.age_seconds)
        return headers
