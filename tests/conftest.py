"""Test fixtures — isolated brokers, stores and HTTP clients.

Learn: Nothing in notifyrelay is a module global, so every test builds
its own NotificationBroker. Durable-store tests run against a fresh
SQLite file per test (sqlite+aiosqlite); the store is dialect-portable,
so the same code paths run as on PostgreSQL.

httpx's ASGITransport doesn't run the app lifespan, so the `app` fixture
installs the broker on app.state itself.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from notifyrelay.broker import NotificationBroker
from notifyrelay.config import Settings
from notifyrelay.main import create_app
from notifyrelay.storage.sql import SqlChannelStore

AUTH_HEADERS = {"key": "test-key", "secret": "test-secret"}


@pytest.fixture()
def settings():
    return Settings(
        _env_file=None,
        database_url="",
        api_key=AUTH_HEADERS["key"],
        api_secret=AUTH_HEADERS["secret"],
        environment="development",
        delivery_timeout_seconds=1.0,
    )


@pytest_asyncio.fixture()
async def sql_store(tmp_path):
    """Durable store on a throwaway SQLite database."""
    store = SqlChannelStore(f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}")
    try:
        yield store
    finally:
        await store.close()


@pytest.fixture()
def broker():
    """Dispatch-only broker (no persistence)."""
    return NotificationBroker(delivery_timeout=1.0)


@pytest.fixture()
def durable_broker(sql_store):
    return NotificationBroker(sql_store, delivery_timeout=1.0)


def _app_with(settings, broker):
    app = create_app(settings)
    app.state.broker = broker
    return app


@pytest_asyncio.fixture()
async def client(settings, broker):
    """HTTP client for a dispatch-only relay, credentials included."""
    app = _app_with(settings, broker)
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=AUTH_HEADERS
    ) as ac:
        yield ac


@pytest_asyncio.fixture()
async def durable_client(settings, durable_broker):
    """HTTP client for a relay with SQLite persistence."""
    app = _app_with(settings, durable_broker)
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=AUTH_HEADERS
    ) as ac:
        yield ac


@pytest_asyncio.fixture()
async def anonymous_client(settings, broker):
    """HTTP client WITHOUT the key/secret headers."""
    app = _app_with(settings, broker)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
