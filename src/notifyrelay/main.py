"""FastAPI application factory.

Learn: create_app() returns a configured FastAPI instance. The lifespan
owns the relay's state: it builds the NotificationBroker (and its store)
at startup and closes it at shutdown, so nothing lives in module globals
and each app instance is independent.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from notifyrelay import __version__
from notifyrelay.broker import NotificationBroker
from notifyrelay.config import Settings
from notifyrelay.config import settings as default_settings
from notifyrelay.storage import create_store

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at
    shutdown. A database that can't be reached at startup is logged and
    the relay keeps running. persist() calls fail individually and
    delivery carries on.
    """
    settings: Settings = app.state.settings
    logger.info(
        "notifyrelay.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        persistence=settings.persistence_enabled,
    )

    store = create_store(settings)
    if store.enabled and not await store.ping():
        logger.warning("notifyrelay.database_unavailable")

    broker = NotificationBroker(
        store,
        delivery_timeout=settings.delivery_timeout_seconds or None,
        search_limit=settings.search_limit,
    )
    app.state.broker = broker

    yield

    logger.info("notifyrelay.shutdown", active=len(broker.registry))
    await broker.close()
    app.state.broker = None


async def invalid_input_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are a 400, like any other bad producer input."""
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid input", "errors": jsonable_encoder(exc.errors())},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or default_settings

    app = FastAPI(
        title="notifyrelay",
        description="Channel-scoped real-time notification relay",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.broker = None

    from notifyrelay.middleware import RequestContextMiddleware

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, invalid_input_handler)

    from notifyrelay.api import api_router
    from notifyrelay.realtime.websocket import router as ws_router

    app.include_router(api_router)
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: notifyrelay.main:app)
app = create_app()
