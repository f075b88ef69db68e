"""Metrics API — the snapshot the monitoring dashboard polls."""

from fastapi import APIRouter, Depends

from notifyrelay.api.deps import get_broker
from notifyrelay.broker import NotificationBroker
from notifyrelay.schemas import MetricsSnapshot

router = APIRouter()


@router.get("/api/metrics", response_model=MetricsSnapshot)
async def get_metrics(broker: NotificationBroker = Depends(get_broker)):
    return broker.metrics_snapshot()


@router.get("/api/channels")
async def get_channels(broker: NotificationBroker = Depends(get_broker)):
    """Live subscriber count per channel."""
    return {"channels": broker.registry.channels()}
