#!/usr/bin/env python3
"""
notifyrelay Quickstart — publish a few events, then read them back.

Sends a few order notifications,
searches them with filters and prints the relay's metrics.
Run with: python examples/quickstart.py

Requires: pip install httpx
Relay must be running with a database: http://localhost:3000
"""

import os
import sys

import httpx

BASE = os.environ.get("NOTIFYRELAY_API_URL", "http://localhost:3000")
HEADERS = {
    "key": os.environ.get("NOTIFYRELAY_API_KEY", "key"),
    "secret": os.environ.get("NOTIFYRELAY_API_SECRET", "secret"),
}

ORDERS = [
    ("created", {"sender": "c1", "message": "New order #1001", "amount": 150000}),
    ("created", {"sender": "c2", "message": "New order #1002", "amount": 42000}),
    ("paid", {"sender": "c1", "message": "Order #1001 paid", "amount": 150000, "method": "card"}),
]


def main():
    client = httpx.Client(base_url=BASE, headers=HEADERS, timeout=10)

    # ── Health check ──────────────────────────────────────────────
    print("Checking relay health...")
    try:
        resp = client.get("/health")
    except httpx.ConnectError:
        print(f"Relay not reachable at {BASE}")
        print("Start it with:  notifyrelay serve")
        sys.exit(1)
    health = resp.json()
    print(f"  Database: {health['database']}")
    if health["database"] != "ok":
        print("\nSearch needs persistence. Set NOTIFYRELAY_DATABASE_URL and restart.")
        sys.exit(1)

    # ── Publish ───────────────────────────────────────────────────
    print("\n1. Publishing to channel 'new_order'...")
    for event, data in ORDERS:
        resp = client.post("/notification", json={"channel": "new_order", "event": event, "data": data})
        assert resp.status_code == 200, f"Failed: {resp.text}"
        result = resp.json()
        print(f"   {event:8s} delivered={result['delivered']} persisted={result['persisted']}")

    # ── Search ────────────────────────────────────────────────────
    print("\n2. Orders created by c1...")
    resp = client.post("/search", json={
        "channel": "new_order",
        "filters": [
            {"field": "event", "op": "==", "value": "created"},
            {"field": "sender", "op": "==", "value": "c1"},
        ],
    })
    assert resp.status_code == 200, f"Failed: {resp.text}"
    for row in resp.json()["data"]:
        print(f"   #{row['id']} {row['message']} (amount={row['amount']})")

    print("\n3. Anything mentioning 'paid' (case-insensitive)...")
    resp = client.post("/search", json={
        "channel": "new_order",
        "filters": [{"field": "message", "op": "ilike", "value": "%PAID%"}],
    })
    for row in resp.json()["data"]:
        print(f"   #{row['id']} {row['event']}: {row['message']} via {row['method']}")

    print("\n4. Equality shortcut: GET /notifications?channel=new_order&sender=c2")
    resp = client.get("/notifications", params={"channel": "new_order", "sender": "c2"})
    print(f"   {len(resp.json()['data'])} row(s)")

    # ── Metrics ───────────────────────────────────────────────────
    ws = client.get("/api/metrics").json()["websocketStats"]
    print("\n5. Metrics")
    print(f"   active connections: {ws['activeConnections']}")
    print(f"   delivered: {ws['totalMessagesSent']}  failed: {ws['totalMessagesFailed']}")

    print("\nDone.")


if __name__ == "__main__":
    main()
