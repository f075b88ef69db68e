"""Health check endpoint.

Learn: Reports whether the server is up and whether the configured
database answers. With persistence disabled the database is reported as
"disabled" and the relay is still healthy (dispatch-only mode).
"""

from fastapi import APIRouter, Depends

from notifyrelay import __version__
from notifyrelay.api.deps import get_broker
from notifyrelay.broker import NotificationBroker

router = APIRouter()


@router.get("/health")
async def health_check(broker: NotificationBroker = Depends(get_broker)):
    """Check server health and database connectivity."""
    checks = {"server": "ok", "version": __version__}

    if not broker.store.enabled:
        checks["database"] = "disabled"
    elif await broker.store.ping():
        checks["database"] = "ok"
    else:
        checks["database"] = "unreachable"

    status = "healthy" if checks["database"] != "unreachable" else "degraded"
    return {"status": status, **checks}
