"""Aggregator worker entry point.

    python -m aggregator          # run a pass every AGGREGATION_INTERVAL_SECONDS
    python -m aggregator --once   # run a single pass and exit
"""

import argparse
import asyncio
import logging
import sys

import httpx

from shared.config import get_settings
from shared.logging import setup_logging
from shared.store import create_store

from .health_server import HealthCheckServer
from .scheduler import AggregationScheduler
from .service import ActivityAggregator

logger = logging.getLogger(__name__)


async def main(once: bool = False) -> int:
    settings = get_settings()
    setup_logging(settings, service="aggregator")

    logger.info("Starting live activity aggregator")
    logger.info(
        f"Store: {settings.store_backend.value} | "
        f"Active users: {settings.active_users_strategy.value} | "
        f"Interval: {settings.aggregation_interval_seconds}s"
    )

    async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as http:
        store = create_store(settings, http, service="aggregator")
        await store.connect()

        aggregator = ActivityAggregator.from_settings(store, settings)
        scheduler = AggregationScheduler(
            aggregator,
            store,
            interval_seconds=settings.aggregation_interval_seconds,
            lease_ttl_seconds=settings.lease_ttl_seconds,
        )

        try:
            if once:
                snapshot = await scheduler.run_pass()
                return 0 if snapshot is not None else 1

            health = HealthCheckServer(scheduler, settings.host, settings.aggregator_health_port)
            await health.start()
            scheduler.start()
            try:
                await scheduler.wait()
            finally:
                await scheduler.stop()
                await health.stop()
            return 0
        finally:
            await store.close()


def cli() -> None:
    parser = argparse.ArgumentParser(description="Live activity aggregator")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(main(once=args.once)))
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Aggregator stopped")


if __name__ == "__main__":
    cli()
