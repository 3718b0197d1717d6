"""Health endpoint tests."""

import pytest

from murmur.main import app


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status, version and DB state."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert data["database"] == "ok"
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_counts_live_topics(client):
    """live_topics reflects conversations that currently have subscribers."""
    broadcaster = app.state.broadcaster
    assert (await client.get("/api/v1/health")).json()["live_topics"] == 0

    sub = await broadcaster.subscribe("some-conversation")
    assert (await client.get("/api/v1/health")).json()["live_topics"] == 1

    await sub.aclose()
    assert (await client.get("/api/v1/health")).json()["live_topics"] == 0
