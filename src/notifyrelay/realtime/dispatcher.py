"""Broadcast dispatcher — deliver one event to every matching subscriber.

Learn: dispatch() is one sweep over one registry snapshot:
1. Copy the bindings (no lock held afterwards)
2. Keep the handles bound to payload.channel
3. Send to all of them concurrently, each send bounded by a timeout
4. Any handle whose send fails is presumed dead: it is unregistered and
   asked to close, so its client sees the drop and can reconnect

Delivery is at-most-once and best-effort. A failed send is never retried
and never raised to the producer. It only shows up in the report's
``failed`` count and in the metrics.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from notifyrelay.errors import DeliveryError
from notifyrelay.metrics import MetricsCollector
from notifyrelay.realtime.registry import Connection, ConnectionRegistry
from notifyrelay.schemas import Payload

logger = structlog.get_logger()


@dataclass(frozen=True)
class DeliveryReport:
    """Outcome of one dispatch() call."""
    channel: str
    delivered: int = 0
    failed: int = 0

    @property
    def matched(self) -> int:
        return self.delivered + self.failed


class BroadcastDispatcher:
    def __init__(
        self,
        registry: ConnectionRegistry,
        metrics: Optional[MetricsCollector] = None,
        timeout: Optional[float] = 5.0,
    ):
        self.registry = registry
        self.metrics = metrics
        self.timeout = timeout

    async def dispatch(self, payload: Payload) -> DeliveryReport:
        """Send ``payload`` to every connection bound to its channel."""
        targets = [
            handle
            for handle, channel in self.registry.snapshot().items()
            if channel == payload.channel
        ]
        frame = payload.frame()

        results = await asyncio.gather(
            *(self._deliver(handle, frame, payload.channel) for handle in targets)
        )

        dropped = []
        for handle, error in zip(targets, results):
            if error is None:
                continue
            dropped.append(handle)
            self.registry.unregister(handle)
            logger.warning(
                "relay.delivery_failed",
                channel=payload.channel,
                kind=payload.event,
                reason=error.reason,
            )
        if dropped:
            await asyncio.gather(*(self._close(handle) for handle in dropped))
        failed = len(dropped)

        report = DeliveryReport(
            channel=payload.channel,
            delivered=len(targets) - failed,
            failed=failed,
        )
        if self.metrics is not None:
            self.metrics.record_dispatch(report.channel, report.delivered, report.failed)
            if failed:
                self.metrics.set_active_connections(len(self.registry))

        logger.debug(
            "relay.dispatched",
            channel=report.channel,
            kind=payload.event,
            delivered=report.delivered,
            failed=report.failed,
        )
        return report

    async def _deliver(
        self, handle: Connection, frame: dict, channel: str
    ) -> Optional[DeliveryError]:
        """Send one frame. Returns the failure instead of raising it."""
        try:
            if self.timeout:
                await asyncio.wait_for(handle.send_json(frame), timeout=self.timeout)
            else:
                await handle.send_json(frame)
        except asyncio.TimeoutError:
            return DeliveryError(channel, f"send timed out after {self.timeout}s")
        except Exception as e:
            return DeliveryError(channel, f"{type(e).__name__}: {e}")
        return None

    async def _close(self, handle: Connection) -> None:
        try:
            if self.timeout:
                await asyncio.wait_for(handle.close(), timeout=self.timeout)
            else:
                await handle.close()
        except Exception as e:
            # The handle is unregistered either way.
            logger.debug("relay.close_failed", error=f"{type(e).__name__}: {e}")
