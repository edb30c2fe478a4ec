"""Services layer - cache-backed read paths for the edge API"""

from .activity_service import ActivityService
from .cache import CachedRead, CacheEntry, CacheStatus, EdgeCache
from .live_matches_service import LiveMatchesService, VoteTally
from .matches_service import MatchesService, MatchNotFoundError
from .stream import STREAM_HEADERS, SnapshotStream, format_event

__all__ = [
    "STREAM_HEADERS",
    "ActivityService",
    "CacheEntry",
    "CacheStatus",
    "CachedRead",
    "EdgeCache",
    "LiveMatchesService",
    "MatchNotFoundError",
    "MatchesService",
    "SnapshotStream",
    "VoteTally",
    "format_event",
]
