"""Health endpoint and middleware tests."""

import pytest


@pytest.mark.asyncio
async def test_health_dispatch_only(client):
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["server"] == "ok"
    assert data["status"] == "healthy"
    assert data["database"] == "disabled"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_with_database(durable_client):
    r = await durable_client.get("/health")
    assert r.json()["database"] == "ok"


@pytest.mark.asyncio
async def test_security_headers(client):
    r = await client.get("/health")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "Strict-Transport-Security" not in r.headers


@pytest.mark.asyncio
async def test_request_id_generated_and_propagated(client):
    r1 = await client.get("/health")
    r2 = await client.get("/health")
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]

    r = await client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert r.headers["X-Request-ID"] == "trace-123"
