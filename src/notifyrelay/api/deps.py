"""Shared route dependencies."""

from fastapi import HTTPException, Request

from notifyrelay.broker import NotificationBroker


def get_broker(request: Request) -> NotificationBroker:
    """The broker created in the app lifespan."""
    broker = getattr(request.app.state, "broker", None)
    if broker is None:
        raise HTTPException(status_code=503, detail="Relay not started")
    return broker
