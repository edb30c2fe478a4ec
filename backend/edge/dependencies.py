"""Dependency injection utilities for FastAPI"""

import logging
from dataclasses import dataclass

from fastapi import HTTPException

from shared.config import Settings
from shared.store import DocumentStore

from .services import ActivityService, LiveMatchesService, MatchesService, SnapshotStream

logger = logging.getLogger(__name__)


@dataclass
class EdgeServices:
    store: DocumentStore
    activity: ActivityService
    live_matches: LiveMatchesService
    matches: MatchesService
    stream: SnapshotStream


_services: EdgeServices | None = None


def init_services(store: DocumentStore, settings: Settings) -> EdgeServices:
    """Build the process-wide services around *store*"""
    global _services
    activity = ActivityService(
        store,
        freshness_seconds=settings.freshness_seconds,
        degraded_retry_seconds=settings.degraded_retry_seconds,
    )
    _services = EdgeServices(
        store=store,
        activity=activity,
        live_matches=LiveMatchesService(
            store,
            ttl_seconds=settings.live_matches_ttl_seconds,
            tournament_id=settings.tournament_id,
            degraded_retry_seconds=settings.degraded_retry_seconds,
        ),
        matches=MatchesService(
            store,
            ttl_seconds=settings.matches_ttl_seconds,
            maxsize=settings.matches_cache_maxsize,
            tournament_id=settings.tournament_id,
            degraded_retry_seconds=settings.degraded_retry_seconds,
        ),
        stream=SnapshotStream(activity, interval_seconds=settings.stream_interval_seconds),
    )
    return _services


def reset_services() -> None:
    global _services
    _services = None


def get_services() -> EdgeServices:
    if _services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return _services


# ============================================
# Service Dependencies
# ============================================


def get_activity_service() -> ActivityService:
    return get_services().activity


def get_live_matches_service() -> LiveMatchesService:
    return get_services().live_matches


def get_matches_service() -> MatchesService:
    return get_services().matches


def get_snapshot_stream() -> SnapshotStream:
    return get_services().stream
