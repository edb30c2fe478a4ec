"""Live activity snapshot models.

The snapshot is the single document the aggregator writes and the edge
service serves. Field names on the wire are camelCase.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .match import coerce_int, coerce_text

SNAPSHOT_COLLECTION = "system"
SNAPSHOT_DOCUMENT = "liveActivity"

DEGRADED_ERROR = "Service temporarily unavailable"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """Serialize with camelCase keys."""
        return self.model_dump(by_alias=True)


class HotMatchSummary(CamelModel):
    """A match whose vote count grew since the previous aggregation pass."""

    match_id: str
    recent_votes: int = Field(ge=0)
    song1: str = ""
    song2: str = ""
    thumbnail_url: str = ""

    @classmethod
    def from_document(cls, data: Any) -> HotMatchSummary | None:
        if not isinstance(data, dict):
            return None
        return cls(
            match_id=coerce_text(data.get("matchId")),
            recent_votes=max(coerce_int(data.get("recentVotes")), 0),
            song1=coerce_text(data.get("song1")),
            song2=coerce_text(data.get("song2")),
            thumbnail_url=coerce_text(data.get("thumbnailUrl")),
        )


class LiveActivitySnapshot(CamelModel):
    hot_matches: list[HotMatchSummary] = Field(default_factory=list)
    total_active_users: int = Field(default=0, ge=0)
    last_update: int = 0

    @classmethod
    def from_document(cls, data: Any, *, default_last_update: int = 0) -> LiveActivitySnapshot:
        """Build a snapshot from a stored document, defaulting malformed fields."""
        if not isinstance(data, dict):
            data = {}
        raw_matches = data.get("hotMatches")
        if not isinstance(raw_matches, list):
            raw_matches = []
        hot_matches = [
            summary
            for summary in (HotMatchSummary.from_document(item) for item in raw_matches)
            if summary is not None
        ]
        return cls(
            hot_matches=hot_matches,
            total_active_users=max(coerce_int(data.get("totalActiveUsers")), 0),
            last_update=coerce_int(data.get("lastUpdate"), default_last_update),
        )


class DegradedSnapshot(LiveActivitySnapshot):
    """Empty snapshot returned when the backing store cannot be read."""

    error: str = DEGRADED_ERROR

    @classmethod
    def at(cls, now_ms: int, error: str = DEGRADED_ERROR) -> DegradedSnapshot:
        return cls(hot_matches=[], total_active_users=0, last_update=now_ms, error=error)
