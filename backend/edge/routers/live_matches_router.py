"""Live matches API routes"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..dependencies import get_live_matches_service
from ..services import LiveMatchesService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["matches"])


@router.get("/live-matches")
async def get_live_matches(
    refresh: str | None = Query(default=None, alias="_refresh"),
    service: LiveMatchesService = Depends(get_live_matches_service),
) -> JSONResponse:
    """
    Live matches with vote counts and percentages

    Args:
        _refresh: present (any value) to bypass the edge cache, e.g. right after voting
    """
    read = await service.read(refresh=refresh is not None)
    return JSONResponse(read.payload, headers=service.response_headers(read))
