"""WebSocket endpoint — subscribe to one channel, receive its events.

Learn: Each client connects to /ws and sends {"channel": "..."} as its
first frame. The handler:
1. Validates the subscription (invalid → error frame + close)
2. Registers the connection with the broker and confirms
3. Keeps reading: a new {"channel"} frame rebinds, {"type": "ping"}
   gets a pong, anything else is ignored
4. Unregisters as soon as the read loop ends (close or error)
5. A subscriber the dispatcher could not deliver to is closed with 1011,
   which also ends the read loop

Events themselves are pushed by the dispatcher, not by this loop. Both
write to the same socket, so sends go through WebSocketSubscriber's lock.
"""

import asyncio
import json
from typing import Any, Optional

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError
from starlette.websockets import WebSocketState

from notifyrelay.broker import NotificationBroker
from notifyrelay.schemas import SubscribeMessage

logger = structlog.get_logger()
router = APIRouter()

# RFC 6455 "unsupported data"
CLOSE_INVALID_SUBSCRIPTION = 1003
# RFC 6455 "internal error": the relay dropped this subscriber
CLOSE_DELIVERY_FAILED = 1011


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class WebSocketSubscriber:
    """Registry handle for one accepted WebSocket.

    Hashes by identity. The endpoint below owns the socket; close() is how
    the dispatcher hangs up on a subscriber it could not deliver to.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._send_lock = asyncio.Lock()

    async def send_json(self, data: Any) -> None:
        async with self._send_lock:
            await self.websocket.send_text(json.dumps(data, default=str))

    async def close(self, code: int = CLOSE_DELIVERY_FAILED) -> None:
        if not _is_open(self.websocket):
            return
        try:
            await self.websocket.close(code=code)
        except RuntimeError:
            # Close raced with the client going away
            pass


def parse_subscription(raw: Optional[str]) -> Optional[SubscribeMessage]:
    """The subscription in a client frame, or None if it isn't one."""
    if raw is None:
        return None
    try:
        return SubscribeMessage.model_validate_json(raw)
    except PydanticValidationError:
        return None


async def _read_frame(websocket: WebSocket) -> Optional[str]:
    """Next text frame (binary is decoded as UTF-8); None once the client is gone."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        return None
    if message.get("text") is not None:
        return message["text"]
    if message.get("bytes") is not None:
        return message["bytes"].decode("utf-8", errors="replace")
    return ""


@router.websocket("/ws")
async def channel_websocket(websocket: WebSocket):
    """Subscribe this connection to one channel at a time."""
    broker: NotificationBroker = websocket.app.state.broker
    await websocket.accept()
    subscriber = WebSocketSubscriber(websocket)

    try:
        subscription = parse_subscription(await _read_frame(websocket))
    except (WebSocketDisconnect, RuntimeError):
        return

    if subscription is None:
        await subscriber.send_json({"error": "Invalid subscription request"})
        await websocket.close(code=CLOSE_INVALID_SUBSCRIPTION)
        return

    broker.connect(subscriber, subscription.channel)
    try:
        await subscriber.send_json(
            {"message": "Subscribed to channel", "channel": subscription.channel}
        )
        while True:
            raw = await _read_frame(websocket)
            if raw is None:
                break
            await _handle_client_frame(broker, subscriber, raw)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("relay.connection_error", error=str(e))
    finally:
        broker.disconnect(subscriber)
        await subscriber.close(code=1000)


async def _handle_client_frame(
    broker: NotificationBroker, subscriber: WebSocketSubscriber, raw: str
) -> None:
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        return
    if not isinstance(msg, dict):
        return

    if msg.get("type") == "ping":
        await subscriber.send_json({"type": "pong"})
        return

    if "channel" in msg:
        subscription = parse_subscription(raw)
        if subscription is None:
            await subscriber.send_json({"error": "Invalid subscription request"})
            return
        broker.connect(subscriber, subscription.channel)
        await subscriber.send_json(
            {"message": "Subscribed to channel", "channel": subscription.channel}
        )
