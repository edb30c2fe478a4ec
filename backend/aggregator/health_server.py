"""HTTP health check server for the aggregator worker"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from .scheduler import AggregationScheduler

logger = logging.getLogger(__name__)

SERVICE_NAME = "live-activity-aggregator"

# Ready while the last successful pass is younger than this many intervals
STALE_AFTER_INTERVALS = 3


class HealthCheckServer:
    """Liveness, readiness and pass counters for the aggregator"""

    def __init__(self, scheduler: AggregationScheduler, host: str = "0.0.0.0", port: int = 8081):
        self.scheduler = scheduler
        self.host = host
        self.port = port
        self.app = web.Application()
        self.app.router.add_get("/", self.handle_root)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/ready", self.handle_ready)
        self.app.router.add_get("/status", self.handle_status)
        self.app.router.add_get("/ping", self.handle_ping)
        self.runner: web.AppRunner | None = None
        self._start_time = time.time()

    def snapshot_age(self) -> float | None:
        """Seconds since the last successful pass, or None before the first one."""
        if self.scheduler.last_success_at is None:
            return None
        return time.time() - self.scheduler.last_success_at

    def is_ready(self) -> bool:
        age = self.snapshot_age()
        return age is not None and age < self.scheduler.interval_seconds * STALE_AFTER_INTERVALS

    async def handle_root(self, request: web.Request) -> web.Response:
        return web.json_response({"service": SERVICE_NAME, "status": "running"})

    async def handle_health(self, request: web.Request) -> web.Response:
        """Liveness check, always 200"""
        running = self.scheduler.running
        return web.json_response({"status": "healthy" if running else "starting", "ready": running})

    async def handle_ready(self, request: web.Request) -> web.Response:
        """503 until a pass has succeeded recently"""
        age = self.snapshot_age()
        body = {
            "ready": self.is_ready(),
            "snapshot_age_seconds": None if age is None else int(age),
        }
        return web.json_response(body, status=200 if body["ready"] else 503)

    async def handle_status(self, request: web.Request) -> web.Response:
        scheduler = self.scheduler
        snapshot = scheduler.last_snapshot
        return web.json_response(
            {
                "service": SERVICE_NAME,
                "uptime_seconds": int(time.time() - self._start_time),
                "holder": scheduler.holder,
                "interval_seconds": scheduler.interval_seconds,
                "runs": scheduler.runs,
                "failures": scheduler.failures,
                "skipped": scheduler.skipped,
                "last_success_at": scheduler.last_success_at,
                "last_error": scheduler.last_error,
                "hot_matches": len(snapshot.hot_matches) if snapshot else 0,
                "total_active_users": snapshot.total_active_users if snapshot else 0,
            }
        )

    async def handle_ping(self, request: web.Request) -> web.Response:
        return web.Response(text="pong")

    async def start(self) -> None:
        self.runner = web.AppRunner(self.app, access_log=None)
        await self.runner.setup()
        try:
            await web.TCPSite(self.runner, self.host, self.port).start()
        except OSError as e:
            logger.error(f"Health server could not bind {self.host}:{self.port}: {e}")
            await self.runner.cleanup()
            self.runner = None
            raise
        logger.info(f"Health server listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self.runner is None:
            return
        await self.runner.cleanup()
        self.runner = None
        logger.info("Health server stopped")
