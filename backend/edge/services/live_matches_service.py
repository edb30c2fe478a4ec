"""Live matches with vote tallies, cached at the edge."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from shared.models import DEGRADED_ERROR, MatchRecord, Vote
from shared.store import DocumentStore, Filter, StoreError

from .cache import CachedRead, CacheStatus, EdgeCache

logger = logging.getLogger(__name__)

MATCHES_COLLECTION = "matches"
VOTES_COLLECTION = "votes"


@dataclass
class VoteTally:
    song1_votes: int = 0
    song2_votes: int = 0

    @property
    def total(self) -> int:
        return self.song1_votes + self.song2_votes

    @property
    def song1_percentage(self) -> int:
        """Rounded half up; an empty tally splits 50/50."""
        if self.total == 0:
            return 50
        return math.floor(self.song1_votes * 100 / self.total + 0.5)

    @property
    def song2_percentage(self) -> int:
        if self.total == 0:
            return 50
        return 100 - self.song1_percentage

    @classmethod
    def from_votes(cls, votes: Iterable[Vote]) -> VoteTally:
        tally = cls()
        for vote in votes:
            if vote.choice == "song1":
                tally.song1_votes += 1
            elif vote.choice == "song2":
                tally.song2_votes += 1
        return tally


async def tally_match_votes(store: DocumentStore, match_id: str) -> VoteTally:
    """Count votes for one match; a failed lookup counts as no votes."""
    try:
        docs = await store.query(VOTES_COLLECTION, [("matchId", "==", match_id)])
    except StoreError as e:
        logger.error(f"Error fetching votes for {match_id}: {e}")
        return VoteTally()
    return VoteTally.from_votes(Vote.from_document(doc.id, doc.data) for doc in docs)


def match_payload(match: MatchRecord, tally: VoteTally) -> dict[str, Any]:
    """Match document with counted votes and percentages attached."""
    song1 = match.extra.get("song1")
    song2 = match.extra.get("song2")
    return {
        **match.extra,
        "id": match.match_id,
        "totalVotes": tally.total,
        "competitor1": {
            **(song1 if isinstance(song1, dict) else {}),
            "votes": tally.song1_votes,
            "percentage": tally.song1_percentage,
        },
        "competitor2": {
            **(song2 if isinstance(song2, dict) else {}),
            "votes": tally.song2_votes,
            "percentage": tally.song2_percentage,
        },
    }


class LiveMatchesService:
    """Serve all live matches, refetching at most once per TTL."""

    CACHE_KEY = "live-matches"

    def __init__(
        self,
        store: DocumentStore,
        *,
        ttl_seconds: float = 120,
        tournament_id: str = "",
        degraded_retry_seconds: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.tournament_id = tournament_id
        self.degraded_retry_seconds = degraded_retry_seconds
        self.cache = EdgeCache(ttl_seconds=ttl_seconds, maxsize=4, clock=clock)

    async def fetch_live_matches(self) -> list[dict[str, Any]]:
        filters: list[Filter] = [("status", "==", "live")]
        if self.tournament_id:
            filters.append(("tournamentId", "==", self.tournament_id))

        docs = await self.store.query(MATCHES_COLLECTION, filters)
        matches = [MatchRecord.from_document(doc.id, doc.data) for doc in docs]
        tallies = await asyncio.gather(
            *(tally_match_votes(self.store, m.match_id) for m in matches)
        )

        logger.info(f"Found {len(matches)} live matches")
        return [match_payload(m, t) for m, t in zip(matches, tallies, strict=True)]

    def _payload(self, matches: list[dict[str, Any]], fetched_at_ms: int, cached: bool) -> dict:
        return {
            "matches": matches,
            "cached": cached,
            "timestamp": fetched_at_ms,
            "expiresAt": fetched_at_ms + int(self.ttl_seconds * 1000),
        }

    async def read(self, refresh: bool = False) -> CachedRead:
        if refresh:
            self.cache.invalidate(self.CACHE_KEY)
        else:
            entry = self.cache.get_fresh(self.CACHE_KEY)
            if entry is not None:
                return CachedRead(
                    payload=self._payload(entry.payload, entry.fetched_at_ms, cached=True),
                    status=CacheStatus.HIT,
                    age_seconds=int(entry.age(self.cache.now())),
                )

        logger.info("Live matches cache bypass" if refresh else "Live matches cache miss")
        try:
            matches = await self.fetch_live_matches()
        except StoreError as e:
            logger.error(f"Error fetching live matches: {e}")
            return self.degraded()
        except Exception as e:
            logger.exception(f"Unexpected error fetching live matches: {e}")
            return self.degraded()

        entry = self.cache.set(self.CACHE_KEY, matches)
        return CachedRead(
            payload=self._payload(matches, entry.fetched_at_ms, cached=False),
            status=CacheStatus.REFRESH if refresh else CacheStatus.MISS,
        )

    def degraded(self) -> CachedRead:
        now_ms = int(self.cache.now() * 1000)
        payload = self._payload([], now_ms, cached=False)
        payload["error"] = DEGRADED_ERROR
        return CachedRead(payload=payload, status=CacheStatus.ERROR)

    def response_headers(self, read: CachedRead) -> dict[str, str]:
        if read.degraded:
            return {"Cache-Control": f"public, s-maxage={self.degraded_retry_seconds}"}
        return {
            "Cache-Control": f"public, max-age={int(self.ttl_seconds)}",
            "X-Cache": read.status.value,
            "X-Matches-Count": str(len(read.payload["matches"])),
        }
