"""API Routers package

Routers are organized by feature domain.
"""

from . import activity_router, live_matches_router, matches_router

__all__ = [
    "activity_router",
    "live_matches_router",
    "matches_router",
]
