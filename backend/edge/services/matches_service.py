"""Match documents with vote tallies, cached at the edge per request key."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from shared.models import DEGRADED_ERROR, MatchRecord
from shared.store import DocumentStore, Filter, StoreError

from .cache import CachedRead, CacheStatus, EdgeCache
from .live_matches_service import MATCHES_COLLECTION, match_payload, tally_match_votes

logger = logging.getLogger(__name__)


class MatchNotFoundError(LookupError):
    """No match document has the requested id."""


def cache_key(endpoint: str, match_id: str | None = None) -> str:
    return f"{endpoint}?matchId={match_id}" if match_id else endpoint


class MatchesService:
    """Serve all matches or a single match, refetching at most once per TTL.

    Every endpoint and match id is cached separately. Unknown match ids are
    never cached.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        ttl_seconds: float = 300,
        maxsize: int = 256,
        tournament_id: str = "",
        degraded_retry_seconds: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.tournament_id = tournament_id
        self.degraded_retry_seconds = degraded_retry_seconds
        self.cache = EdgeCache(ttl_seconds=ttl_seconds, maxsize=maxsize, clock=clock)

    async def fetch_match(self, match_id: str) -> dict[str, Any]:
        data = await self.store.get_document(MATCHES_COLLECTION, match_id)
        if data is None:
            raise MatchNotFoundError(match_id)
        match = MatchRecord.from_document(match_id, data)
        return match_payload(match, await tally_match_votes(self.store, match.match_id))

    async def fetch_matches(self) -> list[dict[str, Any]]:
        filters: list[Filter] = []
        if self.tournament_id:
            filters.append(("tournamentId", "==", self.tournament_id))

        docs = await self.store.query(MATCHES_COLLECTION, filters)
        matches = [MatchRecord.from_document(doc.id, doc.data) for doc in docs]
        tallies = await asyncio.gather(
            *(tally_match_votes(self.store, m.match_id) for m in matches)
        )
        return [match_payload(m, t) for m, t in zip(matches, tallies, strict=True)]

    async def read(
        self, endpoint: str, match_id: str | None = None, refresh: bool = False
    ) -> CachedRead:
        """Cached read of one match (*match_id* given) or of all matches.

        Raises:
            MatchNotFoundError: *match_id* does not exist.
        """
        key = cache_key(endpoint, match_id)
        if refresh:
            self.cache.invalidate(key)
        else:
            entry = self.cache.get_fresh(key)
            if entry is not None:
                return CachedRead(
                    payload=entry.payload,
                    status=CacheStatus.HIT,
                    age_seconds=int(entry.age(self.cache.now())),
                )

        logger.info(f"Matches cache {'bypass' if refresh else 'miss'}: {key}")
        try:
            payload = await (self.fetch_match(match_id) if match_id else self.fetch_matches())
        except MatchNotFoundError:
            raise
        except StoreError as e:
            logger.error(f"Error fetching {key}: {e}")
            return self.degraded(endpoint, match_id)
        except Exception as e:
            logger.exception(f"Unexpected error fetching {key}: {e}")
            return self.degraded(endpoint, match_id)

        self.cache.set(key, payload)
        return CachedRead(
            payload=payload, status=CacheStatus.REFRESH if refresh else CacheStatus.MISS
        )

    def degraded(self, endpoint: str, match_id: str | None) -> CachedRead:
        payload = {"error": DEGRADED_ERROR, "endpoint": endpoint, "matchId": match_id}
        return CachedRead(payload=payload, status=CacheStatus.ERROR)

    def response_headers(self, read: CachedRead) -> dict[str, str]:
        if read.degraded:
            return {"Cache-Control": f"public, s-maxage={self.degraded_retry_seconds}"}
        return {
            "Cache-Control": f"public, max-age={int(self.ttl_seconds)}",
            "X-Cache": read.status.value,
        }
