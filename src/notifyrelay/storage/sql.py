"""Durable channel store — SQLAlchemy async engine, one table per channel.

Learn: Works on any SQLAlchemy async dialect. Production uses
postgresql+asyncpg; tests use sqlite+aiosqlite on a temp file. Nothing
here is PostgreSQL-specific except the ADD COLUMN IF NOT EXISTS guard
chosen in schema.py.

Writes are append-only: no upsert key, every publish is a new row.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import insert, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from notifyrelay.errors import FilterError, PersistenceError
from notifyrelay.identifiers import validate_identifier
from notifyrelay.schemas import Payload
from notifyrelay.storage.base import ChannelStore, FilterLike
from notifyrelay.storage.query import DEFAULT_LIMIT, build_query, parse_filters
from notifyrelay.storage.schema import (
    DB_ERRORS,
    SchemaReconciler,
    channel_table,
    data_columns,
    text_value,
)

logger = structlog.get_logger()


class SqlChannelStore(ChannelStore):
    """Adaptive per-channel tables in a SQL database."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        engine: Optional[AsyncEngine] = None,
        persist_timeout: Optional[float] = 10.0,
        echo: bool = False,
    ):
        if engine is None:
            if not url:
                raise ValueError("SqlChannelStore needs a database url or an engine")
            engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self.engine = engine
        self.schema = SchemaReconciler(engine)
        self.persist_timeout = persist_timeout

    @property
    def enabled(self) -> bool:
        return True

    # ─── Write ─────────────────────────────────────────────

    async def persist(self, payload: Payload) -> Optional[int]:
        """Reconcile the channel's schema, then append one row.

        Identifier problems raise IdentifierSafetyError before any I/O;
        everything that goes wrong in the database is a PersistenceError.
        """
        channel = validate_identifier(payload.channel, "channel")
        fields = data_columns(payload.data)

        try:
            if self.persist_timeout:
                return await asyncio.wait_for(
                    self._write(channel, payload, fields), timeout=self.persist_timeout
                )
            return await self._write(channel, payload, fields)
        except asyncio.TimeoutError as e:
            raise PersistenceError(
                f"Persisting to {channel!r} timed out after {self.persist_timeout}s"
            ) from e

    async def _write(self, channel: str, payload: Payload, fields: list[str]) -> Optional[int]:
        await self.schema.ensure(channel, fields)

        row: dict[str, Any] = {
            "event": payload.event,
            "created_at": datetime.now(timezone.utc),
        }
        for field in fields:
            row[field] = text_value(payload.data[field])

        stmt = insert(channel_table(channel, fields)).values(**row)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        except DB_ERRORS as e:
            # The cached column set may be stale (table dropped/altered
            # behind our back); re-read it on the next write.
            self.schema.forget(channel)
            raise PersistenceError(f"Failed to insert into {channel!r}: {e}") from e

        pk = result.inserted_primary_key
        row_id = pk[0] if pk else None
        logger.debug("storage.persisted", channel=channel, kind=payload.event, id=row_id)
        return row_id

    # ─── Read ──────────────────────────────────────────────

    async def search(
        self,
        channel: str,
        filters: Iterable[FilterLike] = (),
        limit: int = DEFAULT_LIMIT,
    ) -> list[dict[str, Any]]:
        filters = parse_filters(filters)
        # Operators and identifiers are checked before touching the database.
        stmt = build_query(channel, filters, limit=limit)

        columns = await self.schema.columns(channel)
        if columns is None:
            return []
        unknown = [f.field for f in filters if f.field not in columns]
        if unknown:
            columns = await self.schema.columns(channel, refresh=True) or set()
            unknown = [f.field for f in filters if f.field not in columns]
            if unknown:
                raise FilterError(f"Unknown field: {unknown[0]}")

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return [dict(row) for row in result.mappings()]
        except DB_ERRORS as e:
            raise PersistenceError(f"Query on {channel!r} failed: {e}") from e

    # ─── Lifecycle ─────────────────────────────────────────

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except DB_ERRORS:
            return False

    async def close(self) -> None:
        await self.engine.dispose()
