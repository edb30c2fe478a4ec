"""Live activity API routes"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..dependencies import get_activity_service, get_snapshot_stream
from ..services import STREAM_HEADERS, ActivityService, SnapshotStream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["live-activity"])


@router.get("/live-activity")
async def get_live_activity(
    service: ActivityService = Depends(get_activity_service),
) -> JSONResponse:
    """Current live activity snapshot.

    Always 200: when the store is unavailable the body is an empty snapshot
    carrying an ``error`` field.
    """
    read = await service.read()
    return JSONResponse(read.payload, headers=service.response_headers(read))


@router.get("/activity-stream")
async def activity_stream(
    request: Request,
    stream: SnapshotStream = Depends(get_snapshot_stream),
) -> StreamingResponse:
    """Live activity as server-sent events: one frame now, then one per interval"""
    return StreamingResponse(
        stream.events(request.is_disconnected),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )
