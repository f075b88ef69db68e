"""Adaptive persistence — per-channel tables that grow with the payloads.

Learn: Each channel gets its own table: id, created_at, event, plus one
TEXT column per payload field ever seen on that channel. Columns are only
ever added, never dropped or retyped.
"""

import structlog

from notifyrelay.config import Settings
from notifyrelay.storage.base import ChannelStore, NullChannelStore

logger = structlog.get_logger()


def create_store(settings: Settings) -> ChannelStore:
    """Pick the durable store when a database is configured, else the no-op one."""
    url = settings.resolved_database_url
    if not url:
        logger.info("storage.disabled", reason="no database configured")
        return NullChannelStore()

    from notifyrelay.storage.sql import SqlChannelStore

    return SqlChannelStore(
        url,
        persist_timeout=settings.persist_timeout_seconds,
        echo=settings.debug,
    )
