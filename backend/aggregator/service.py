"""Live activity aggregation pass.

Each pass reads the live matches, compares every match's vote total with the
total observed on the previous pass (``voteCache``), and writes the hottest
matches to the ``system/liveActivity`` snapshot document.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence

from shared.config import ActiveUsersStrategy, Settings
from shared.models import (
    SNAPSHOT_COLLECTION,
    SNAPSHOT_DOCUMENT,
    HotMatchSummary,
    LiveActivitySnapshot,
    MatchRecord,
    Vote,
    VoteCountEntry,
)
from shared.store import DocumentStore, StoreError
from shared.thumbnails import youtube_thumbnail

logger = logging.getLogger(__name__)

MATCHES_COLLECTION = "matches"
VOTE_CACHE_COLLECTION = "voteCache"
VOTES_COLLECTION = "votes"


class AggregationError(Exception):
    """A pass could not read its input or write the snapshot."""


def build_summary(match: MatchRecord, recent_votes: int) -> HotMatchSummary:
    return HotMatchSummary(
        match_id=match.match_id,
        recent_votes=recent_votes,
        song1=match.song1.display_title,
        song2=match.song2.display_title,
        thumbnail_url=youtube_thumbnail(match.song1.youtube_url),
    )


def rank_hot_matches(summaries: Sequence[HotMatchSummary], limit: int) -> list[HotMatchSummary]:
    """Order by recent votes, highest first, keeping input order on ties."""
    # sorted() is stable, including with reverse=True
    return sorted(summaries, key=lambda s: s.recent_votes, reverse=True)[:limit]


class ActivityAggregator:
    """Computes and persists the live activity snapshot."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        strategy: ActiveUsersStrategy = ActiveUsersStrategy.DISTINCT_VOTERS,
        hot_match_limit: int = 5,
        active_window_seconds: int = 300,
        active_query_limit: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.strategy = strategy
        self.hot_match_limit = hot_match_limit
        self.active_window_seconds = active_window_seconds
        self.active_query_limit = active_query_limit
        self._clock = clock

    @classmethod
    def from_settings(cls, store: DocumentStore, settings: Settings) -> ActivityAggregator:
        return cls(
            store,
            strategy=settings.active_users_strategy,
            hot_match_limit=settings.hot_match_limit,
            active_window_seconds=settings.active_users_window_seconds,
            active_query_limit=settings.active_users_query_limit,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ==================== Vote count baseline ====================

    async def get_previous_count(self, match_id: str) -> int:
        """Last observed total for a match; 0 if unknown or unreadable."""
        try:
            data = await self.store.get_document(VOTE_CACHE_COLLECTION, match_id)
        except Exception as e:
            logger.warning(f"Vote cache read failed for {match_id}: {type(e).__name__}: {e}")
            return 0
        if data is None:
            return 0
        return VoteCountEntry.from_document(match_id, data).count

    async def set_previous_count(self, match_id: str, count: int, now_ms: int) -> None:
        entry = VoteCountEntry(match_id=match_id, count=count, timestamp=now_ms)
        try:
            await self.store.set_document(VOTE_CACHE_COLLECTION, match_id, entry.to_document())
        except Exception as e:
            logger.error(f"Vote cache write failed for {match_id}: {type(e).__name__}: {e}")

    async def observe_match(self, match: MatchRecord, now_ms: int) -> HotMatchSummary | None:
        """Measure one match against its baseline and advance the baseline."""
        total = match.total_votes
        previous = await self.get_previous_count(match.match_id)
        recent_votes = total - previous

        # The baseline advances even when nothing is emitted
        await self.set_previous_count(match.match_id, total, now_ms)

        if recent_votes > 0:
            return build_summary(match, recent_votes)
        return None

    # ==================== Active users ====================

    async def count_distinct_voters(self, now_ms: int) -> int:
        since = now_ms - self.active_window_seconds * 1000
        try:
            docs = await self.store.query(
                VOTES_COLLECTION,
                [("timestamp", ">", since)],
                limit=self.active_query_limit,
            )
        except Exception as e:
            logger.error(f"Error estimating active users: {type(e).__name__}: {e}")
            return 0
        voters = {Vote.from_document(doc.id, doc.data).user_id for doc in docs}
        voters.discard("")
        return len(voters)

    async def count_active_users(self, hot_matches: Sequence[HotMatchSummary], now_ms: int) -> int:
        if self.strategy == ActiveUsersStrategy.HOT_MATCH_VOTES:
            return sum(m.recent_votes for m in hot_matches)
        return await self.count_distinct_voters(now_ms)

    # ==================== Pass ====================

    async def run_once(self, now_ms: int | None = None) -> LiveActivitySnapshot:
        """Run one aggregation pass and persist the snapshot.

        Raises:
            AggregationError: live matches could not be read or the snapshot
                could not be written. Nothing is written in that case.
        """
        if now_ms is None:
            now_ms = self._now_ms()

        try:
            docs = await self.store.query(MATCHES_COLLECTION, [("status", "==", "live")])
        except StoreError as e:
            raise AggregationError(f"Failed to query live matches: {e}") from e

        matches = [MatchRecord.from_document(doc.id, doc.data) for doc in docs]

        # Keys are independent; gather keeps results in match order
        observed = await asyncio.gather(*(self.observe_match(m, now_ms) for m in matches))
        hot_matches = rank_hot_matches(
            [s for s in observed if s is not None], self.hot_match_limit
        )

        active_users = await self.count_active_users(hot_matches, now_ms)

        snapshot = LiveActivitySnapshot(
            hot_matches=hot_matches,
            total_active_users=active_users,
            last_update=now_ms,
        )
        try:
            await self.store.set_document(
                SNAPSHOT_COLLECTION, SNAPSHOT_DOCUMENT, snapshot.to_payload()
            )
        except StoreError as e:
            raise AggregationError(f"Failed to write live activity snapshot: {e}") from e

        logger.info(
            f"Activity aggregated: {len(matches)} live, {len(hot_matches)} hot matches, "
            f"{active_users} active users ({self.strategy.value})"
        )
        return snapshot
