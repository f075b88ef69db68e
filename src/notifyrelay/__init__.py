"""notifyrelay — channel-scoped real-time notification relay.

Producers POST events to a channel, every WebSocket subscribed to that
channel receives them immediately, and (optionally) each event is stored
in a per-channel table whose columns grow with the payload's fields.
"""

__version__ = "0.1.0"
