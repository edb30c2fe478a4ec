from contextlib import asynccontextmanager

import httpx
import pytest
import pytest_asyncio
from conftest import live_match

from edge.app import create_app
from edge.dependencies import get_snapshot_stream
from edge.routers.activity_router import activity_stream
from shared.config import Settings

SNAPSHOT = {"hotMatches": [], "totalActiveUsers": 4, "lastUpdate": 1}


@asynccontextmanager
async def running_app(store):
    app = create_app(Settings(environment="test", stream_interval_seconds=30), store=store)
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest_asyncio.fixture
async def client(store):
    async with running_app(store) as client:
        yield client


@pytest.mark.asyncio
async def test_live_activity_miss_then_hit(client, store):
    store.put("system", "liveActivity", SNAPSHOT)

    first = await client.get("/api/live-activity")
    second = await client.get("/api/live-activity")

    assert first.status_code == 200
    assert first.json() == SNAPSHOT
    assert first.headers["x-cache-status"] == "MISS"
    assert first.headers["cache-control"] == "public, s-maxage=30, stale-while-revalidate=60"
    assert second.headers["x-cache-status"] == "HIT"
    assert "x-cache-age" in second.headers
    assert store.reads.count(("system", "liveActivity")) == 1


@pytest.mark.asyncio
async def test_live_activity_degraded_when_store_down(client, store):
    store.fail_all = True

    response = await client.get("/api/live-activity")

    assert response.status_code == 200
    body = response.json()
    assert body["hotMatches"] == []
    assert body["totalActiveUsers"] == 0
    assert body["error"] == "Service temporarily unavailable"
    assert response.headers["cache-control"] == "public, s-maxage=10"
    assert "x-cache-status" not in response.headers


@pytest.mark.asyncio
async def test_live_matches_route(client, store):
    store.put("matches", "m1", live_match(0, 0))
    store.put("votes", "v1", {"matchId": "m1", "choice": "song1"})

    cached = await client.get("/api/live-matches")
    refreshed = await client.get("/api/live-matches", params={"_refresh": "1"})

    assert cached.status_code == 200
    assert cached.headers["x-cache"] == "MISS"
    assert cached.headers["x-matches-count"] == "1"
    assert cached.json()["matches"][0]["competitor1"]["percentage"] == 100
    assert refreshed.headers["x-cache"] == "REFRESH"


@pytest.mark.asyncio
async def test_health_and_status(client):
    health = await client.get("/health")
    status = await client.get("/status")
    ping = await client.get("/ping")

    assert health.json()["status"] == "healthy"
    assert status.json()["store_ok"] is True
    assert status.json()["open_streams"] == 0
    assert ping.text == "pong"


@pytest.mark.asyncio
async def test_status_reports_store_outage(client, store):
    store.fail_all = True

    response = await client.get("/status")

    assert response.status_code == 200
    assert response.json()["store_ok"] is False


@pytest.mark.asyncio
async def test_activity_stream_response(store):
    store.put("system", "liveActivity", SNAPSHOT)

    class ConnectedRequest:
        async def is_disconnected(self) -> bool:
            return False

    async with running_app(store):
        stream = get_snapshot_stream()
        response = await activity_stream(request=ConnectedRequest(), stream=stream)

        assert response.media_type == "text/event-stream"
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

        events = response.body_iterator
        frame = await events.__anext__()
        assert frame == 'data: {"hotMatches":[],"totalActiveUsers":4,"lastUpdate":1}\n\n'
        assert stream.active_connections == 1

        await events.aclose()
        assert stream.active_connections == 0


@pytest.mark.asyncio
async def test_services_unavailable_outside_lifespan():
    app = create_app(Settings(environment="test"))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/live-activity")

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_match_routes(client, store):
    store.put("matches", "r1-m1", live_match(0, 0))
    store.put("votes", "v1", {"matchId": "r1-m1", "choice": "song1"})

    listing = await client.get("/api/matches")
    by_query = await client.get("/api/matches", params={"matchId": "r1-m1"})
    by_path = await client.get("/api/match/r1-m1")
    cached = await client.get("/api/match/r1-m1")
    refreshed = await client.get("/api/match/r1-m1", params={"_refresh": ""})
    missing = await client.get("/api/match/unknown")

    assert listing.status_code == 200
    assert [m["id"] for m in listing.json()] == ["r1-m1"]
    assert listing.headers["x-cache"] == "MISS"
    assert listing.headers["cache-control"] == "public, max-age=300"
    assert by_query.json()["competitor1"]["percentage"] == 100
    assert by_path.json()["id"] == "r1-m1"
    assert by_path.headers["x-cache"] == "MISS"
    assert cached.headers["x-cache"] == "HIT"
    assert refreshed.headers["x-cache"] == "REFRESH"
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Match not found"}


@pytest.mark.asyncio
async def test_matches_degraded_when_store_down(client, store):
    store.fail_all = True

    response = await client.get("/api/matches", params={"matchId": "r1-m1"})

    assert response.status_code == 200
    assert response.json() == {
        "error": "Service temporarily unavailable",
        "endpoint": "/api/matches",
        "matchId": "r1-m1",
    }
    assert response.headers["cache-control"] == "public, s-maxage=10"
    assert "x-cache" not in response.headers
