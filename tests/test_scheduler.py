import asyncio

import pytest
from conftest import live_match

from aggregator import ActivityAggregator, AggregationScheduler
from aggregator.scheduler import LEASE_NAME
from shared.config import ActiveUsersStrategy


def make_scheduler(store, **kwargs) -> AggregationScheduler:
    aggregator = ActivityAggregator(store, strategy=ActiveUsersStrategy.HOT_MATCH_VOTES)
    kwargs.setdefault("holder", "worker-a")
    return AggregationScheduler(aggregator, store, **kwargs)


class BlockingAggregator:
    """Aggregator stand-in whose pass waits until released."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def run_once(self, now_ms=None):
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return None


@pytest.mark.asyncio
async def test_pass_writes_snapshot_and_releases_lease(store):
    store.put("matches", "m1", live_match(2, 1))
    scheduler = make_scheduler(store)

    snapshot = await scheduler.run_pass()

    assert snapshot is not None
    assert snapshot.total_active_users == 3
    assert scheduler.runs == 1
    assert scheduler.failures == 0
    assert scheduler.last_success_at is not None
    assert LEASE_NAME not in store.leases


@pytest.mark.asyncio
async def test_lease_held_elsewhere_skips_pass(store):
    store.leases[LEASE_NAME] = ("worker-b", 100.0)
    store.put("matches", "m1", live_match(2, 1))
    scheduler = make_scheduler(store)

    assert await scheduler.run_pass() is None

    assert scheduler.skipped == 1
    assert scheduler.runs == 0
    assert store.doc("system", "liveActivity") is None
    assert store.leases[LEASE_NAME][0] == "worker-b"


@pytest.mark.asyncio
async def test_expired_lease_is_taken_over(store):
    store.leases[LEASE_NAME] = ("worker-b", -1.0)
    scheduler = make_scheduler(store)

    await scheduler.run_pass()

    assert scheduler.runs == 1
    assert store.doc("system", "liveActivity") is not None


@pytest.mark.asyncio
async def test_failed_pass_is_counted_and_lease_released(store):
    store.fail_queries.add("matches")
    scheduler = make_scheduler(store)

    assert await scheduler.run_pass() is None

    assert scheduler.failures == 1
    assert "live matches" in scheduler.last_error
    assert LEASE_NAME not in store.leases


@pytest.mark.asyncio
async def test_store_outage_during_lease_counts_failure(store):
    store.fail_all = True
    scheduler = make_scheduler(store)

    assert await scheduler.run_pass() is None

    assert scheduler.failures == 1
    assert scheduler.runs == 0
    assert scheduler.last_error.startswith("lease:")


@pytest.mark.asyncio
async def test_overlapping_pass_is_skipped(store):
    blocking = BlockingAggregator()
    scheduler = AggregationScheduler(blocking, store, holder="worker-a")

    first = asyncio.create_task(scheduler.run_pass())
    await blocking.started.wait()

    assert await scheduler.run_pass() is None
    assert scheduler.skipped == 1

    blocking.release.set()
    await first
    assert blocking.calls == 1


@pytest.mark.asyncio
async def test_loop_runs_until_stopped(store):
    store.put("matches", "m1", live_match(1, 0))
    scheduler = make_scheduler(store, interval_seconds=0.01)

    scheduler.start()
    assert scheduler.running
    for _ in range(100):
        if scheduler.runs >= 2:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert scheduler.runs >= 2
    assert not scheduler.running
