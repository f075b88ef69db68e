"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Credentials are applied at the include_router level, so the
notification routes are protected without touching each handler.
Health and metrics stay open, as the monitoring dashboard polls them
without credentials.
"""

from fastapi import APIRouter, Depends

from notifyrelay.api.health import router as health_router
from notifyrelay.api.metrics import router as metrics_router
from notifyrelay.api.notifications import router as notifications_router
from notifyrelay.auth import require_credentials

api_router = APIRouter()

# Open routes
api_router.include_router(health_router, tags=["health"])
api_router.include_router(metrics_router, tags=["metrics"])

# Protected routes: key/secret headers required
api_router.include_router(
    notifications_router,
    tags=["notifications"],
    dependencies=[Depends(require_credentials)],
)
