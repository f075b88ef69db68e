"""CLI tests — argument parsing and commands against a mocked API."""

import json

import click
import httpx
import pytest
from click.testing import CliRunner

from notifyrelay import cli


def test_parse_value_keeps_json_scalars():
    assert cli.parse_value("150000") == 150000
    assert cli.parse_value("1.5") == 1.5
    assert cli.parse_value("true") is True
    assert cli.parse_value("null") is None
    assert cli.parse_value("c1") == "c1"
    assert cli.parse_value('{"a": 1}') == '{"a": 1}'


def test_parse_assignments():
    assert cli.parse_assignments(("sender=c1", "amount=5", "note=a=b")) == {
        "sender": "c1",
        "amount": 5,
        "note": "a=b",
    }
    with pytest.raises(click.BadParameter):
        cli.parse_assignments(("nope",))


def test_parse_filter():
    assert cli.parse_filter("amount:>=:100") == {"field": "amount", "op": ">=", "value": 100}
    assert cli.parse_filter("url:like:http://%") == {
        "field": "url",
        "op": "like",
        "value": "http://%",
    }
    with pytest.raises(click.BadParameter):
        cli.parse_filter("amount>=100")


METRICS = {
    "websocketStats": {
        "totalConnections": 3,
        "activeConnections": 2,
        "totalMessagesSent": 9,
        "totalMessagesFailed": 1,
        "messagesByChannel": {"orders": 9},
        "lastMessageTime": None,
    },
    "serverStats": {
        "startTime": "2026-10-18T00:00:00Z",
        "uptime": "3m 4s",
        "tasks": 4,
        "memoryUsage": "42.0 MB",
        "cpuUsage": "0.50s",
    },
}


@pytest.fixture()
def mock_api(monkeypatch):
    """Route the CLI's httpx client to an in-memory handler."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/notification":
            return httpx.Response(
                200,
                json={"success": True, "persisted": True, "delivered": 2, "failed": 0},
            )
        if request.url.path == "/search":
            return httpx.Response(
                200,
                json={"data": [{"id": 1, "created_at": "now", "event": "created", "sender": "c1"}]},
            )
        if request.url.path == "/api/metrics":
            return httpx.Response(200, json=METRICS)
        return httpx.Response(404, json={"detail": "Not Found"})

    def client():
        return httpx.AsyncClient(
            base_url="http://relay", headers=cli._headers(),
            transport=httpx.MockTransport(handler),
        )

    monkeypatch.setattr(cli, "_client", client)
    return calls


def test_send_command(mock_api):
    result = CliRunner().invoke(
        cli.main, ["send", "orders", "created", "-d", "sender=c1", "-d", "amount=150000"]
    )
    assert result.exit_code == 0, result.output
    assert "delivered=2" in result.output

    body = json.loads(mock_api[0].content)
    assert body == {
        "channel": "orders",
        "event": "created",
        "data": {"sender": "c1", "amount": 150000},
    }
    assert mock_api[0].headers["key"] == "key"


def test_search_command(mock_api):
    result = CliRunner().invoke(cli.main, ["search", "orders", "-f", "event:==:created"])
    assert result.exit_code == 0, result.output
    assert "sender = c1" in result.output


def test_error_exit(mock_api):
    result = CliRunner().invoke(cli.main, ["history", "orders"])
    assert result.exit_code == 1
    assert "Error 404" in result.output


def test_metrics_command(mock_api):
    result = CliRunner().invoke(cli.main, ["metrics"])
    assert result.exit_code == 0, result.output
    assert "success rate: 90%" in result.output
    assert "orders" in result.output
    assert "memory: 42.0 MB" in result.output
