"""Match API routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from ..dependencies import get_matches_service
from ..services import MatchesService, MatchNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["matches"])


async def _respond(
    service: MatchesService, endpoint: str, match_id: str | None, refresh: bool
) -> JSONResponse:
    try:
        read = await service.read(endpoint, match_id, refresh=refresh)
    except MatchNotFoundError:
        raise HTTPException(status_code=404, detail="Match not found") from None
    return JSONResponse(read.payload, headers=service.response_headers(read))


@router.get("/matches")
async def get_matches(
    match_id: str | None = Query(default=None, alias="matchId"),
    refresh: str | None = Query(default=None, alias="_refresh"),
    service: MatchesService = Depends(get_matches_service),
) -> JSONResponse:
    """
    All matches with vote counts, or one match when ``matchId`` is given

    Args:
        _refresh: present (any value) to bypass the edge cache
    """
    return await _respond(service, "/api/matches", match_id, refresh is not None)


@router.get("/match/{match_id}")
async def get_match(
    match_id: str,
    refresh: str | None = Query(default=None, alias="_refresh"),
    service: MatchesService = Depends(get_matches_service),
) -> JSONResponse:
    """Single match with vote counts"""
    return await _respond(service, f"/api/match/{match_id}", match_id, refresh is not None)
