"""notifyrelay CLI — run the relay, push events, query stored ones.

Usage:
    notifyrelay serve                                   # Run the server (uvicorn)
    notifyrelay send orders created -d sender=c1 -d amount=150000
    notifyrelay search orders -f event:==:created -f amount:>=:100
    notifyrelay history orders -q sender=c1             # Equality filters
    notifyrelay metrics                                 # Connection/delivery counters
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Any

import click
import httpx

from notifyrelay import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"


def _api_url() -> str:
    return os.environ.get("NOTIFYRELAY_API_URL", DEFAULT_API_URL).rstrip("/")


def _headers() -> dict[str, str]:
    return {
        "key": os.environ.get("NOTIFYRELAY_API_KEY", "key"),
        "secret": os.environ.get("NOTIFYRELAY_API_SECRET", "secret"),
    }


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the relay."""
    return httpx.AsyncClient(base_url=_api_url(), headers=_headers(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Offloads to a thread when a loop is already running (e.g. tests).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def parse_value(raw: str) -> Any:
    """JSON scalars stay typed (150000, true, null); anything else is a string."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(value, (dict, list)):
        return raw
    return value


def parse_assignments(items: tuple[str, ...]) -> dict[str, Any]:
    """``("a=1", "b=x")`` → ``{"a": 1, "b": "x"}``."""
    data: dict[str, Any] = {}
    for item in items:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}")
        data[key] = parse_value(raw)
    return data


def parse_filter(item: str) -> dict[str, Any]:
    """``"amount:>=:100"`` → ``{"field": "amount", "op": ">=", "value": 100}``."""
    parts = item.split(":", 2)
    if len(parts) != 3 or not parts[0] or not parts[1]:
        raise click.BadParameter(f"expected FIELD:OP:VALUE, got {item!r}")
    field, op, raw = parts
    return {"field": field, "op": op, "value": parse_value(raw)}


def _fail(r: httpx.Response) -> None:
    try:
        detail = r.json().get("detail", r.text)
    except ValueError:
        detail = r.text
    click.secho(f"Error {r.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


def _print_rows(rows: list[dict]) -> None:
    if not rows:
        click.echo("No notifications found.")
        return
    for row in rows:
        head = f"#{row.get('id')}  {row.get('created_at', '')}  {row.get('event') or '—'}"
        click.secho(head, bold=True)
        for key, value in row.items():
            if key in ("id", "created_at", "event") or value is None:
                continue
            click.echo(f"    {key} = {value}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="notifyrelay")
def main():
    """notifyrelay — channel-scoped real-time notification relay."""


@main.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", default=None, type=int, help="Port (default from settings)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the relay server."""
    import uvicorn

    from notifyrelay.config import settings

    uvicorn.run(
        "notifyrelay.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@main.command()
@click.argument("channel")
@click.argument("event", default="")
@click.option("--data", "-d", multiple=True, help="Field as KEY=VALUE (repeatable)")
def send(channel: str, event: str, data: tuple[str, ...]):
    """Publish EVENT to CHANNEL."""
    body = {"channel": channel, "event": event, "data": parse_assignments(data)}
    _run(_send_impl(body))


async def _send_impl(body: dict):
    async with _client() as c:
        r = await c.post("/notification", json=body)
    if r.status_code != 200:
        _fail(r)
    result = r.json()
    click.secho(
        f"Sent to {body['channel']}: delivered={result['delivered']} "
        f"failed={result['failed']} persisted={result['persisted']}",
        fg="green",
    )
    if result.get("warning"):
        click.secho(result["warning"], fg="yellow")


@main.command()
@click.argument("channel")
@click.option("--filter", "-f", "filters", multiple=True, help="FIELD:OP:VALUE (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def search(channel: str, filters: tuple[str, ...], as_json: bool):
    """Search stored notifications of CHANNEL (newest first)."""
    body = {"channel": channel, "filters": [parse_filter(f) for f in filters]}
    _run(_search_impl(body, as_json))


async def _search_impl(body: dict, as_json: bool):
    async with _client() as c:
        r = await c.post("/search", json=body)
    if r.status_code != 200:
        _fail(r)
    rows = r.json()["data"]
    if as_json:
        click.echo(_pretty_json(rows))
    else:
        _print_rows(rows)


@main.command()
@click.argument("channel")
@click.option("--query", "-q", multiple=True, help="Equality filter KEY=VALUE (repeatable)")
def history(channel: str, query: tuple[str, ...]):
    """Recent notifications of CHANNEL, filtered by field equality."""
    params = {"channel": channel}
    for item in query:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}")
        params[key] = value
    _run(_history_impl(params))


async def _history_impl(params: dict):
    async with _client() as c:
        r = await c.get("/notifications", params=params)
    if r.status_code != 200:
        _fail(r)
    _print_rows(r.json()["data"])


@main.command()
def metrics():
    """Show connection and delivery counters."""
    _run(_metrics_impl())


async def _metrics_impl():
    async with _client() as c:
        r = await c.get("/api/metrics")
    if r.status_code != 200:
        _fail(r)
    snap = r.json()
    ws, server = snap["websocketStats"], snap["serverStats"]
    total = ws["totalMessagesSent"] + ws["totalMessagesFailed"]
    rate = round(ws["totalMessagesSent"] * 100 / total) if total else 0

    click.secho("Connections", bold=True)
    click.echo(f"  active: {ws['activeConnections']}   total: {ws['totalConnections']}")
    click.secho("Deliveries", bold=True)
    click.echo(
        f"  sent: {ws['totalMessagesSent']}   failed: {ws['totalMessagesFailed']}   "
        f"success rate: {rate}%"
    )
    if ws["messagesByChannel"]:
        click.secho("Channels", bold=True)
        for channel, count in sorted(ws["messagesByChannel"].items()):
            click.echo(f"  {channel:30s} {count}")
    click.echo(f"Uptime: {server['uptime']}   memory: {server.get('memoryUsage', 'N/A')}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
