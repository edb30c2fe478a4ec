import asyncio
import json

import pytest

from edge.services import ActivityService, SnapshotStream, format_event

SNAPSHOT = {"hotMatches": [], "totalActiveUsers": 3, "lastUpdate": 1}


async def next_frame(events):
    """Next frame, or None once the stream has ended."""
    try:
        return await asyncio.wait_for(events.__anext__(), timeout=1)
    except StopAsyncIteration:
        return None


def decode(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: ") : -2])


@pytest.fixture
def service(store, clock):
    store.put("system", "liveActivity", SNAPSHOT)
    return ActivityService(store, clock=clock)


def test_format_event_is_compact():
    assert format_event({"a": 1, "b": [1, 2]}) == 'data: {"a":1,"b":[1,2]}\n\n'


@pytest.mark.asyncio
async def test_first_frame_is_sent_immediately(service):
    stream = SnapshotStream(service, interval_seconds=30)
    events = stream.events()

    frame = await next_frame(events)

    assert decode(frame) == SNAPSHOT
    assert stream.active_connections == 1
    await events.aclose()


@pytest.mark.asyncio
async def test_frames_follow_interval(service, store, clock):
    stream = SnapshotStream(service, interval_seconds=0.01)
    events = stream.events()

    first = decode(await events.__anext__())
    store.put("system", "liveActivity", {**SNAPSHOT, "totalActiveUsers": 8})
    clock.advance(60)
    second = decode(await next_frame(events))

    assert first["totalActiveUsers"] == 3
    assert second["totalActiveUsers"] == 8
    await events.aclose()


@pytest.mark.asyncio
async def test_closing_the_stream_cancels_its_ticker(service):
    stream = SnapshotStream(service, interval_seconds=30)
    events = stream.events()
    await events.__anext__()
    (ticker,) = list(stream._connections)

    await events.aclose()

    assert stream.active_connections == 0
    with pytest.raises(asyncio.CancelledError):
        await ticker
    assert ticker.cancelled()


@pytest.mark.asyncio
async def test_close_all_ends_open_streams(service):
    stream = SnapshotStream(service, interval_seconds=30)
    events = stream.events()
    await events.__anext__()

    pending = asyncio.create_task(next_frame(events))
    await asyncio.sleep(0)
    stream.close_all()

    assert await pending is None
    assert stream.active_connections == 0


@pytest.mark.asyncio
async def test_disconnected_client_stops_stream(service):
    async def disconnected() -> bool:
        return True

    stream = SnapshotStream(service, interval_seconds=0.01)
    events = stream.events(disconnected)
    await events.__anext__()

    assert await next_frame(events) is None
    assert stream.active_connections == 0


@pytest.mark.asyncio
async def test_store_outage_sends_degraded_frame(service, store):
    store.fail_all = True
    stream = SnapshotStream(service, interval_seconds=30)
    events = stream.events()

    frame = decode(await events.__anext__())

    assert frame["hotMatches"] == []
    assert frame["error"] == "Service temporarily unavailable"
    await events.aclose()
