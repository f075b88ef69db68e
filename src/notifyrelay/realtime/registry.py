"""Connection registry — live connection handle → subscribed channel.

Learn: Each connection is bound to exactly one channel. A second
subscription message from the same connection rebinds it; it never fans
in from two channels.

The map is mutated from every WebSocket task and read by every publish,
so all access goes through one lock. Broadcast never iterates under the
lock: it takes snapshot() (a copy) and does its slow socket I/O on that,
so one stalled subscriber can't block new subscriptions.

The registry never closes a connection; the transport that accepted it
does. It only forgets it.
"""

import threading
from collections.abc import Hashable
from typing import Any, Protocol


class Connection(Protocol):
    """What the registry and dispatcher need from a connection handle."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self) -> None: ...


class ConnectionRegistry:
    """Thread-safe handle → channel map."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bindings: dict[Hashable, str] = {}

    def register(self, handle: Connection, channel: str) -> bool:
        """Bind (or rebind) ``handle`` to ``channel``.

        Returns True when the handle was not registered before.
        """
        with self._lock:
            is_new = handle not in self._bindings
            self._bindings[handle] = channel
            return is_new

    def unregister(self, handle: Connection) -> bool:
        """Forget ``handle``. Unknown handles are a no-op (returns False)."""
        with self._lock:
            return self._bindings.pop(handle, None) is not None

    def channel_of(self, handle: Connection) -> str | None:
        with self._lock:
            return self._bindings.get(handle)

    def snapshot(self) -> dict[Hashable, str]:
        """Point-in-time copy of all bindings, safe to iterate without the lock."""
        with self._lock:
            return dict(self._bindings)

    def subscribers(self, channel: str) -> list[Connection]:
        """Handles currently bound to ``channel`` (from one snapshot)."""
        return [h for h, c in self.snapshot().items() if c == channel]

    def channels(self) -> dict[str, int]:
        """Subscriber count per channel."""
        counts: dict[str, int] = {}
        for channel in self.snapshot().values():
            counts[channel] = counts.get(channel, 0) + 1
        return counts

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._bindings
