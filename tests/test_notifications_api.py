"""Notification, search and metrics endpoint tests."""

import pytest
from fakes import FakeConnection


@pytest.mark.asyncio
async def test_requires_credentials(anonymous_client):
    r = await anonymous_client.post(
        "/notification", json={"channel": "orders", "event": "created", "data": {}}
    )
    assert r.status_code == 401
    assert r.json()["detail"] == "Unauthorized"


@pytest.mark.asyncio
async def test_wrong_credentials(anonymous_client):
    r = await anonymous_client.post(
        "/notification",
        json={"channel": "orders"},
        headers={"key": "wrong", "secret": "wrong"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_send_notification(client, broker):
    conn = FakeConnection()
    broker.connect(conn, "orders")

    r = await client.post(
        "/notification",
        json={"channel": "orders", "event": "created", "data": {"sender": "c1", "amount": 5}},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Notification sent"
    assert body["delivered"] == 1
    assert body["persisted"] is False
    assert conn.frames == [
        {"channel": "orders", "event": "created", "data": {"sender": "c1", "amount": 5}}
    ]


@pytest.mark.asyncio
async def test_invalid_json_is_400(client):
    r = await client.post(
        "/notification",
        content="invalid json",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid input"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"event": "created", "data": {}},
        {"channel": "", "event": "created"},
        {"channel": "orders", "data": {"nested": {"a": 1}}},
    ],
)
async def test_malformed_payload_is_400(client, body):
    r = await client.post("/notification", json=body)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_search_without_database_is_503(client):
    r = await client.post("/search", json={"channel": "orders", "filters": []})
    assert r.status_code == 503
    assert r.json()["detail"] == "Database not available"


@pytest.mark.asyncio
async def test_round_trip_through_api(durable_client):
    r = await durable_client.post(
        "/notification",
        json={"channel": "orders", "event": "created", "data": {"sender": "c1", "amount": 150000}},
    )
    assert r.status_code == 200
    assert r.json()["persisted"] is True

    r = await durable_client.post(
        "/search",
        json={"channel": "orders", "filters": [{"field": "event", "op": "==", "value": "created"}]},
    )
    assert r.status_code == 200
    rows = r.json()["data"]
    assert rows[0]["sender"] == "c1"
    assert rows[0]["amount"] == "150000"


@pytest.mark.asyncio
async def test_search_accepts_get_with_body(durable_client):
    await durable_client.post("/notification", json={"channel": "chat", "event": "msg", "data": {"text": "hi"}})
    r = await durable_client.request(
        "GET", "/search", json={"channel": "chat", "filters": []}
    )
    assert r.status_code == 200
    assert r.json()["data"][0]["text"] == "hi"


@pytest.mark.asyncio
async def test_search_on_base_columns(durable_client):
    for sender in ("c1", "c2", "c3"):
        await durable_client.post(
            "/notification", json={"channel": "orders", "event": "created", "data": {"sender": sender}}
        )

    r = await durable_client.post(
        "/search",
        json={
            "channel": "orders",
            "filters": [
                {"field": "id", "op": ">=", "value": 2},
                {"field": "created_at", "op": ">=", "value": "2000-01-01T00:00:00Z"},
            ],
        },
    )
    assert r.status_code == 200
    assert [row["sender"] for row in r.json()["data"]] == ["c3", "c2"]

    r = await durable_client.post(
        "/search",
        json={"channel": "orders", "filters": [{"field": "id", "op": ">", "value": "two"}]},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid value for id: 'two'"


@pytest.mark.asyncio
async def test_search_invalid_operator(durable_client):
    r = await durable_client.post(
        "/search",
        json={"channel": "orders", "filters": [{"field": "event", "op": "~~", "value": "x"}]},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid operator: ~~"


@pytest.mark.asyncio
async def test_search_requires_channel(durable_client):
    r = await durable_client.post("/search", json={"filters": []})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_unsafe_channel_rejected_on_publish(durable_client):
    r = await durable_client.post(
        "/notification", json={"channel": "orders; DROP TABLE x", "event": "e"}
    )
    assert r.status_code == 400
    assert "Unsafe channel name" in r.json()["detail"]


@pytest.mark.asyncio
async def test_list_notifications_equality_filters(durable_client):
    for sender in ("c1", "c2", "c1"):
        await durable_client.post(
            "/notification",
            json={"channel": "orders", "event": "created", "data": {"sender": sender}},
        )

    r = await durable_client.get("/notifications", params={"channel": "orders", "sender": "c1"})
    assert r.status_code == 200
    rows = r.json()["data"]
    assert [row["id"] for row in rows] == [3, 1]


@pytest.mark.asyncio
async def test_list_notifications_requires_channel(durable_client):
    r = await durable_client.get("/notifications")
    assert r.status_code == 400
    assert r.json()["detail"] == "Channel is required"


@pytest.mark.asyncio
async def test_metrics_snapshot(client, broker):
    broker.connect(FakeConnection("a"), "orders")
    broker.connect(FakeConnection("b", fail=True), "orders")
    await client.post("/notification", json={"channel": "orders", "event": "created"})

    r = await client.get("/api/metrics", headers={"key": "", "secret": ""})
    assert r.status_code == 200
    ws = r.json()["websocketStats"]
    assert ws["totalConnections"] == 2
    assert ws["activeConnections"] == 1
    assert ws["totalMessagesSent"] == 1
    assert ws["totalMessagesFailed"] == 1
    assert ws["messagesByChannel"] == {"orders": 1}
    server = r.json()["serverStats"]
    assert "uptime" in server
    assert "memoryUsage" in server and "cpuUsage" in server


@pytest.mark.asyncio
async def test_channels_endpoint(client, broker):
    broker.connect(FakeConnection("a"), "orders")
    broker.connect(FakeConnection("b"), "chat")
    r = await client.get("/api/channels")
    assert r.json() == {"channels": {"orders": 1, "chat": 1}}
