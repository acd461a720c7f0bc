"""Tests for health check endpoints."""

from unittest.mock import AsyncMock

from redis.exceptions import ConnectionError as RedisConnectionError


async def test_liveness(client):
    response = await client.get("/health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


async def test_readiness(client):
    response = await client.get("/health/ready")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {"database": "ok", "redis": "ok"},
    }


async def test_readiness_degraded_without_redis(client, cache):
    cache.ping = AsyncMock(side_effect=RedisConnectionError("refused"))

    response = await client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["redis"] == "refused"


async def test_info(client):
    response = await client.get("/info")

    assert response.status_code == 200
    assert response.json()["app"] == "Activity Logger"


async def test_request_id_echoed(client):
    response = await client.get("/health/live", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
