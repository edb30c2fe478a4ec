"""Data models for match, vote and vote-cache documents."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any


def coerce_int(value: Any, default: int = 0) -> int:
    """Read an integer field from a loosely-typed document.

    Accepts ints, finite floats and numeric strings (Firestore REST encodes
    integers as strings). Anything else yields *default*.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def coerce_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def first_text(*candidates: Any) -> str:
    """Return the first candidate that is a non-empty string, else ``""``."""
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return ""


def _as_mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass
class Contestant:
    """One side of a match (a music video)."""

    votes: int = 0
    title: str = ""
    short_title: str = ""
    youtube_url: str = ""

    @property
    def display_title(self) -> str:
        """Short title, falling back to the full title."""
        return first_text(self.short_title, self.title)

    @classmethod
    def from_dict(cls, data: Any) -> Contestant:
        data = _as_mapping(data)
        return cls(
            votes=coerce_int(data.get("votes")),
            title=coerce_text(data.get("title")),
            short_title=coerce_text(data.get("shortTitle")),
            youtube_url=coerce_text(data.get("youtubeUrl")),
        )


@dataclass
class MatchRecord:
    """A tournament match as stored in the ``matches`` collection."""

    match_id: str
    status: str = ""
    tournament_id: str = ""
    song1: Contestant = field(default_factory=Contestant)
    song2: Contestant = field(default_factory=Contestant)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def total_votes(self) -> int:
        return self.song1.votes + self.song2.votes

    @property
    def is_live(self) -> bool:
        return self.status == "live"

    @classmethod
    def from_document(cls, doc_id: str, data: Any) -> MatchRecord:
        data = _as_mapping(data)
        return cls(
            match_id=first_text(doc_id, data.get("matchId")),
            status=coerce_text(data.get("status")),
            tournament_id=coerce_text(data.get("tournamentId")),
            song1=Contestant.from_dict(data.get("song1")),
            song2=Contestant.from_dict(data.get("song2")),
            extra=data,
        )


@dataclass
class VoteCountEntry:
    """Last observed total vote count of a match (``voteCache`` collection)."""

    match_id: str
    count: int = 0
    timestamp: int = 0

    def to_document(self) -> dict[str, Any]:
        return {"count": self.count, "timestamp": self.timestamp}

    @classmethod
    def from_document(cls, match_id: str, data: Any) -> VoteCountEntry:
        data = _as_mapping(data)
        return cls(
            match_id=match_id,
            count=coerce_int(data.get("count")),
            timestamp=coerce_int(data.get("timestamp")),
        )


@dataclass
class Vote:
    """A single vote event (``votes`` collection)."""

    vote_id: str
    match_id: str = ""
    user_id: str = ""
    choice: str = ""
    timestamp: int = 0

    @classmethod
    def from_document(cls, doc_id: str, data: Any) -> Vote:
        data = _as_mapping(data)
        return cls(
            vote_id=doc_id,
            match_id=coerce_text(data.get("matchId")),
            user_id=coerce_text(data.get("userId")),
            choice=coerce_text(data.get("choice")),
            timestamp=coerce_int(data.get("timestamp")),
        )
