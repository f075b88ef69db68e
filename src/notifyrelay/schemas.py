"""Pydantic schemas for the relay's wire formats.

Learn: Pydantic v2 models validate request/response data. The same
Payload shape is used for the ingress body and the outbound WebSocket
frame, so subscribers receive exactly what the producer sent.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

Scalar = Union[str, int, float, bool, None]


# ─── Events ─────────────────────────────────────────────

class Payload(BaseModel):
    """One notification: a channel, an event kind and free-form fields."""

    channel: str = Field(..., min_length=1)
    event: str = ""
    data: dict[str, Scalar] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def frame(self) -> dict[str, Any]:
        """The outbound delivery frame (same shape as the ingress body)."""
        return {"channel": self.channel, "event": self.event, "data": dict(self.data)}


class SubscribeMessage(BaseModel):
    channel: str = Field(..., min_length=1)


# ─── Search ─────────────────────────────────────────────

class Filter(BaseModel):
    field: str
    op: str
    value: Scalar = None


class SearchRequest(BaseModel):
    channel: str = ""
    filters: list[Filter] = Field(default_factory=list)


class SearchResponse(BaseModel):
    data: list[dict[str, Any]]


# ─── Publish ────────────────────────────────────────────

class NotificationResponse(BaseModel):
    success: bool = True
    message: str = "Notification sent"
    persisted: bool
    delivered: int
    failed: int
    warning: Optional[str] = None


# ─── Metrics ────────────────────────────────────────────

class WebSocketStats(BaseModel):
    totalConnections: int
    activeConnections: int
    totalMessagesSent: int
    totalMessagesFailed: int
    messagesByChannel: dict[str, int]
    lastMessageTime: Optional[datetime] = None


class ServerStats(BaseModel):
    startTime: datetime
    uptime: str
    tasks: int
    memoryUsage: str = "N/A"
    cpuUsage: str = "N/A"


class MetricsSnapshot(BaseModel):
    websocketStats: WebSocketStats
    serverStats: ServerStats
