import pytest
from aiohttp.test_utils import TestClient, TestServer
from conftest import live_match

from aggregator import ActivityAggregator, AggregationScheduler
from aggregator.health_server import HealthCheckServer
from shared.config import ActiveUsersStrategy


@pytest.mark.asyncio
async def test_status_reports_scheduler_counters(store):
    store.put("matches", "m1", live_match(2, 2))
    aggregator = ActivityAggregator(store, strategy=ActiveUsersStrategy.HOT_MATCH_VOTES)
    scheduler = AggregationScheduler(aggregator, store, holder="worker-a")
    await scheduler.run_pass()

    server = HealthCheckServer(scheduler)
    async with TestClient(TestServer(server.app)) as client:
        health = await client.get("/health")
        assert health.status == 200
        assert (await health.json())["status"] == "starting"

        status = await (await client.get("/status")).json()
        assert status["holder"] == "worker-a"
        assert status["runs"] == 1
        assert status["failures"] == 0
        assert status["hot_matches"] == 1
        assert status["total_active_users"] == 4

        ping = await client.get("/ping")
        assert await ping.text() == "pong"


@pytest.mark.asyncio
async def test_ready_only_after_a_successful_pass(store):
    aggregator = ActivityAggregator(store, strategy=ActiveUsersStrategy.HOT_MATCH_VOTES)
    scheduler = AggregationScheduler(aggregator, store, holder="worker-a")
    server = HealthCheckServer(scheduler)

    async with TestClient(TestServer(server.app)) as client:
        before = await client.get("/ready")
        assert before.status == 503
        assert (await before.json())["snapshot_age_seconds"] is None

        await scheduler.run_pass()

        after = await client.get("/ready")
        assert after.status == 200
        assert (await after.json())["ready"] is True


@pytest.mark.asyncio
async def test_stale_snapshot_is_not_ready(store):
    aggregator = ActivityAggregator(store, strategy=ActiveUsersStrategy.HOT_MATCH_VOTES)
    scheduler = AggregationScheduler(aggregator, store, interval_seconds=60, holder="worker-a")
    scheduler.last_success_at = 0.0

    assert not HealthCheckServer(scheduler).is_ready()
