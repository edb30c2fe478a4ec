"""Fixed-interval scheduler for aggregation passes."""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import time
import uuid

from shared.models import LiveActivitySnapshot
from shared.store import DocumentStore, StoreError

from .service import ActivityAggregator, AggregationError

logger = logging.getLogger(__name__)

LEASE_NAME = "aggregate-activity"


def default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class AggregationScheduler:
    """Runs :class:`ActivityAggregator` passes on a fixed interval.

    Passes never overlap: an in-process lock guards against a slow pass
    running into the next tick, and a lease in the shared store guards
    against other aggregator processes.
    """

    def __init__(
        self,
        aggregator: ActivityAggregator,
        store: DocumentStore,
        *,
        interval_seconds: float = 60,
        lease_ttl_seconds: float = 50,
        holder: str | None = None,
    ):
        self.aggregator = aggregator
        self.store = store
        self.interval_seconds = interval_seconds
        self.lease_ttl_seconds = lease_ttl_seconds
        self.holder = holder or default_holder()

        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

        self.runs = 0
        self.failures = 0
        self.skipped = 0
        self.last_success_at: float | None = None
        self.last_error: str | None = None
        self.last_snapshot: LiveActivitySnapshot | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_pass(self) -> LiveActivitySnapshot | None:
        """Run one pass if no other pass holds the lock or lease.

        Returns the snapshot, or None if the pass was skipped or failed.
        """
        if self._lock.locked():
            self.skipped += 1
            logger.warning("Previous aggregation pass still running, skipping tick")
            return None

        async with self._lock:
            try:
                acquired = await self.store.acquire_lease(
                    LEASE_NAME, self.holder, self.lease_ttl_seconds
                )
            except StoreError as e:
                self.failures += 1
                self.last_error = f"lease: {e}"
                logger.error(f"Could not acquire aggregation lease: {e}")
                return None

            if not acquired:
                self.skipped += 1
                logger.info("Aggregation lease held by another instance, skipping tick")
                return None

            try:
                self.runs += 1
                snapshot = await self.aggregator.run_once()
                self.last_snapshot = snapshot
                self.last_success_at = time.time()
                self.last_error = None
                return snapshot
            except AggregationError as e:
                self.failures += 1
                self.last_error = str(e)
                logger.error(f"Aggregation pass failed: {e}")
                return None
            except Exception as e:
                self.failures += 1
                self.last_error = f"{type(e).__name__}: {e}"
                logger.exception(f"Unexpected error in aggregation pass: {e}")
                return None
            finally:
                try:
                    await self.store.release_lease(LEASE_NAME, self.holder)
                except StoreError as e:
                    # Expires on its own after lease_ttl_seconds
                    logger.warning(f"Could not release aggregation lease: {e}")

    async def _loop(self) -> None:
        logger.info(f"Aggregation scheduler started (every {self.interval_seconds}s)")
        while True:
            started = time.monotonic()
            await self.run_pass()
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(self.interval_seconds - elapsed, 0))

    def start(self) -> None:
        if self.running:
            logger.warning("Aggregation scheduler already running")
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Aggregation scheduler stopped")

    async def wait(self) -> None:
        """Block until the scheduler task ends (normally on cancellation)."""
        if self._task is not None:
            await self._task
