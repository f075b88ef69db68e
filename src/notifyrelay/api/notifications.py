"""Notifications API — ingress and retrieval.

Learn: Three endpoints, all behind the key/secret headers:
- POST /notification     — persist (if enabled) + broadcast one event
- GET|POST /search       — filtered retrieval: [{field, op, value}, ...]
- GET /notifications     — shortcut: every query param except `channel`
                           becomes an equality filter

Domain errors are mapped here: validation → 400, no database → 503,
storage failure during a read → 500.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from notifyrelay.api.deps import get_broker
from notifyrelay.broker import NotificationBroker
from notifyrelay.errors import PersistenceError, StorageUnavailableError, ValidationError
from notifyrelay.schemas import (
    Filter,
    NotificationResponse,
    Payload,
    SearchRequest,
    SearchResponse,
)

router = APIRouter()


@router.post("/notification", response_model=NotificationResponse)
async def send_notification(
    payload: Payload,
    broker: NotificationBroker = Depends(get_broker),
):
    """Store (when persistence is on) and broadcast one notification.

    A storage failure does not block delivery: the event is still
    broadcast and the response carries `persisted: false` + a warning.
    """
    try:
        result = await broker.publish(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return NotificationResponse(
        persisted=result.persisted,
        delivered=result.delivered,
        failed=result.failed,
        warning=f"Failed to save to DB: {result.error}" if result.error else None,
    )


@router.api_route("/search", methods=["GET", "POST"], response_model=SearchResponse)
async def search(
    body: SearchRequest,
    broker: NotificationBroker = Depends(get_broker),
):
    """Filtered retrieval, newest first, at most 100 rows."""
    return SearchResponse(data=await _search(broker, body.channel, body.filters))


@router.get("/notifications", response_model=SearchResponse)
async def list_notifications(
    request: Request,
    broker: NotificationBroker = Depends(get_broker),
):
    """Recent notifications of a channel, filtered by field equality."""
    params = request.query_params
    channel = params.get("channel")
    if not channel:
        raise HTTPException(status_code=400, detail="Channel is required")

    filters = [
        Filter(field=key, op="==", value=params.getlist(key)[0])
        for key in dict.fromkeys(params.keys())
        if key != "channel"
    ]
    return SearchResponse(data=await _search(broker, channel, filters))


async def _search(broker: NotificationBroker, channel: str, filters: list[Filter]):
    try:
        return await broker.search(channel, filters)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageUnavailableError:
        raise HTTPException(status_code=503, detail="Database not available")
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Query error: {e}")
