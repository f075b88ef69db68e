"""Metrics collector — connection and delivery counters.

Learn: The dispatcher and the WebSocket endpoint report into this;
GET /api/metrics reads snapshot(). Counters are mutated from many tasks
(and, under a threaded server, many threads), so they sit behind a lock
and snapshot() hands out a copy.
"""

import asyncio
import sys
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

if sys.platform != "win32":
    import resource


def format_uptime(delta: timedelta) -> str:
    """``1d 2h 3m 4s``, dropping leading zero units."""
    total = int(delta.total_seconds())
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)

    if days > 0:
        return f"{days}d {hours}h {minutes}m {seconds}s"
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def format_bytes(size: int) -> str:
    """``512 B``, ``1.5 KB``, ``3.2 MB`` (1024-based)."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in "KMGTP":
        value /= 1024
        if value < 1024:
            break
    return f"{value:.1f} {unit}B"


def process_usage() -> tuple[str, str]:
    """Peak resident memory and CPU time of this process, formatted."""
    if sys.platform == "win32":
        return "N/A", "N/A"
    usage = resource.getrusage(resource.RUSAGE_SELF)
    # ru_maxrss is bytes on macOS, KiB elsewhere
    peak = usage.ru_maxrss if sys.platform == "darwin" else usage.ru_maxrss * 1024
    return format_bytes(peak), f"{usage.ru_utime + usage.ru_stime:.2f}s"


class MetricsCollector:
    """Counts connections and delivery outcomes."""

    def __init__(self, started_at: Optional[datetime] = None):
        self._lock = threading.Lock()
        self.started_at = started_at or datetime.now(timezone.utc)
        self.total_connections = 0
        self.active_connections = 0
        self.messages_sent = 0
        self.messages_failed = 0
        self.messages_by_channel: dict[str, int] = {}
        self.last_message_time: Optional[datetime] = None

    def connection_opened(self, active: int) -> None:
        with self._lock:
            self.total_connections += 1
            self.active_connections = active

    def set_active_connections(self, active: int) -> None:
        with self._lock:
            self.active_connections = active

    def record_dispatch(self, channel: str, delivered: int, failed: int) -> None:
        with self._lock:
            self.messages_sent += delivered
            self.messages_failed += failed
            self.messages_by_channel[channel] = (
                self.messages_by_channel.get(channel, 0) + delivered
            )
            self.last_message_time = datetime.now(timezone.utc)

    def snapshot(self) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        try:
            tasks = len(asyncio.all_tasks())
        except RuntimeError:
            # No running loop (e.g. called from a sync test)
            tasks = 0
        memory, cpu = process_usage()

        with self._lock:
            return {
                "websocketStats": {
                    "totalConnections": self.total_connections,
                    "activeConnections": self.active_connections,
                    "totalMessagesSent": self.messages_sent,
                    "totalMessagesFailed": self.messages_failed,
                    "messagesByChannel": dict(self.messages_by_channel),
                    "lastMessageTime": self.last_message_time,
                },
                "serverStats": {
                    "startTime": self.started_at,
                    "uptime": format_uptime(now - self.started_at),
                    "tasks": tasks,
                    "memoryUsage": memory,
                    "cpuUsage": cpu,
                },
            }
