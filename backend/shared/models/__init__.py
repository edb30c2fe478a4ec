"""Shared data models for the aggregator and edge services."""

from .activity import (
    DEGRADED_ERROR,
    SNAPSHOT_COLLECTION,
    SNAPSHOT_DOCUMENT,
    DegradedSnapshot,
    HotMatchSummary,
    LiveActivitySnapshot,
)
from .match import (
    Contestant,
    MatchRecord,
    Vote,
    VoteCountEntry,
    coerce_int,
    coerce_text,
    first_text,
)

__all__ = [
    "DEGRADED_ERROR",
    "SNAPSHOT_COLLECTION",
    "SNAPSHOT_DOCUMENT",
    "Contestant",
    "DegradedSnapshot",
    "HotMatchSummary",
    "LiveActivitySnapshot",
    "MatchRecord",
    "Vote",
    "VoteCountEntry",
    "coerce_int",
    "coerce_text",
    "first_text",
]
