"""Server-sent event stream of the live activity snapshot.

Every connection owns one ticker task. The ticker produces a frame every
``interval_seconds`` into a single-slot queue; the response generator sends
one frame immediately and then whatever the ticker produces. The ticker is
cancelled in the generator's ``finally`` block, which runs on client
disconnect, on normal close and on server shutdown.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from .activity_service import ActivityService

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Pushed into a connection's queue to end its stream
_CLOSE = None


def format_event(payload: Any) -> str:
    return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n"


class SnapshotStream:
    """Fan-out of snapshot frames to SSE connections."""

    def __init__(self, service: ActivityService, interval_seconds: float = 30):
        self.service = service
        self.interval_seconds = interval_seconds
        self._connections: dict[asyncio.Task, asyncio.Queue[str | None]] = {}

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    async def next_frame(self) -> str:
        read = await self.service.read()
        return format_event(read.payload)

    async def _tick(self, queue: asyncio.Queue[str | None]) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            frame = await self.next_frame()
            await queue.put(frame)

    def _release(self, ticker: asyncio.Task) -> None:
        if self._connections.pop(ticker, None) is not None:
            ticker.cancel()
            logger.debug(f"Activity stream closed ({self.active_connections} open)")

    async def events(
        self, is_disconnected: Callable[[], Awaitable[bool]] | None = None
    ) -> AsyncIterator[str]:
        """Yield SSE frames until the client goes away or the stream is closed."""
        queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=1)
        ticker = asyncio.create_task(self._tick(queue))
        self._connections[ticker] = queue
        logger.debug(f"Activity stream opened ({self.active_connections} open)")

        try:
            yield await self.next_frame()
            while True:
                frame = await queue.get()
                if frame is _CLOSE:
                    return
                if is_disconnected is not None and await is_disconnected():
                    return
                yield frame
        finally:
            self._release(ticker)

    def close_all(self) -> None:
        """End every open stream (server shutdown)."""
        for queue in list(self._connections.values()):
            while not queue.empty():
                queue.get_nowait()
            queue.put_nowait(_CLOSE)
        logger.info("All activity streams closed")
