"""Notification broker — the one object that owns the relay's state.

Learn: The registry, dispatcher, metrics and store are not module-level
globals. main.py builds one NotificationBroker in the lifespan (startup),
hangs it on app.state, and closes it at shutdown. Tests build as many
independent brokers as they like.

publish() has two independent side effects:
1. Persist (if a durable store is configured)
2. Dispatch to live subscribers

A validation failure (missing channel, unsafe identifier) stops both.
A PersistenceError does not stop dispatch. Durability and delivery are
not a transaction; the failure is reported back in PublishResult.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional

import structlog

from notifyrelay.errors import PersistenceError, ValidationError
from notifyrelay.metrics import MetricsCollector
from notifyrelay.realtime.dispatcher import BroadcastDispatcher, DeliveryReport
from notifyrelay.realtime.registry import Connection, ConnectionRegistry
from notifyrelay.schemas import Payload
from notifyrelay.storage.base import ChannelStore, FilterLike, NullChannelStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class PublishResult:
    persisted: bool
    delivered: int
    failed: int
    error: Optional[str] = None


class NotificationBroker:
    """Connection registry + broadcast dispatcher + persistence, wired together."""

    def __init__(
        self,
        store: Optional[ChannelStore] = None,
        *,
        delivery_timeout: Optional[float] = 5.0,
        search_limit: int = 100,
    ):
        self.store = store or NullChannelStore()
        self.registry = ConnectionRegistry()
        self.metrics = MetricsCollector()
        self.dispatcher = BroadcastDispatcher(
            self.registry, self.metrics, timeout=delivery_timeout
        )
        self.search_limit = search_limit

    # ─── Subscribers ───────────────────────────────────────

    def connect(self, handle: Connection, channel: str) -> None:
        """Bind a connection to ``channel`` (replacing any previous binding)."""
        if self.registry.register(handle, channel):
            self.metrics.connection_opened(len(self.registry))
        logger.info("relay.subscribed", channel=channel, active=len(self.registry))

    def disconnect(self, handle: Connection) -> None:
        if self.registry.unregister(handle):
            logger.info("relay.unsubscribed", active=len(self.registry))
        self.metrics.set_active_connections(len(self.registry))

    # ─── Producers ─────────────────────────────────────────

    async def publish(self, payload: Payload) -> PublishResult:
        """Persist then dispatch one event."""
        if not payload.channel:
            raise ValidationError("Channel is required")

        persisted = False
        error = None
        try:
            await self.store.persist(payload)
            persisted = self.store.enabled
        except PersistenceError as e:
            error = str(e)
            logger.error(
                "relay.persist_failed",
                channel=payload.channel,
                kind=payload.event,
                error=error,
            )

        report = await self.dispatch(payload)
        return PublishResult(
            persisted=persisted,
            delivered=report.delivered,
            failed=report.failed,
            error=error,
        )

    async def dispatch(self, payload: Payload) -> DeliveryReport:
        return await self.dispatcher.dispatch(payload)

    # ─── Retrieval ─────────────────────────────────────────

    async def search(
        self, channel: str, filters: Iterable[FilterLike] = ()
    ) -> list[dict[str, Any]]:
        if not channel:
            raise ValidationError("Channel required")
        return await self.store.search(channel, filters, limit=self.search_limit)

    def metrics_snapshot(self) -> dict[str, Any]:
        return self.metrics.snapshot()

    async def close(self) -> None:
        await self.store.close()
