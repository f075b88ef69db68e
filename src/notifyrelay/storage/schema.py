"""Adaptive schema reconciliation for per-channel tables.

Learn: Before a row is written, the channel's table must have a column
for every payload field. ensure() does that in three steps:
1. Table missing → CREATE TABLE IF NOT EXISTS with base + payload columns
2. Table present → ALTER TABLE ADD COLUMN for each missing field (and for
   `event`, which tables created before event kinds existed may lack)
3. Cache the column set so the next event on the channel skips the catalog

Concurrency: reconcilers for one channel are serialized in-process by a
lock from a fixed pool of LOCK_STRIPES asyncio.Locks. Across processes
the DDL itself is idempotent ("IF NOT EXISTS"), and any DDL error is
re-checked against the live schema: if the table or column exists now,
another writer won the race and the error is absorbed. The column cache
holds at most MAX_CACHED_CHANNELS channels.
"""

import asyncio
from collections import OrderedDict
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import Column, DateTime, Integer, MetaData, Table, Text, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.schema import CreateTable

from notifyrelay.errors import PersistenceError
from notifyrelay.identifiers import validate_identifier

logger = structlog.get_logger()

# Columns every channel table has. Payload fields with these names are
# not stored as separate columns.
BASE_COLUMNS = ("id", "created_at", "event")

# Driver-level connection failures (refused, reset) can surface unwrapped.
DB_ERRORS = (SQLAlchemyError, OSError)

# One channel always maps to the same lock; unrelated channels may share one.
LOCK_STRIPES = 64

# Column sets kept in memory, least recently written evicted first.
MAX_CACHED_CHANNELS = 1024


def text_value(value: Any) -> Optional[str]:
    """Dynamic columns are TEXT. Convert a scalar the way it reads in JSON."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def data_columns(data: dict[str, Any]) -> list[str]:
    """Payload keys that become columns, validated as identifiers."""
    return [
        validate_identifier(key, "field")
        for key in data
        if key not in BASE_COLUMNS
    ]


def channel_table(channel: str, fields: Iterable[str] = ()) -> Table:
    """Table definition for ``channel`` with the base columns plus ``fields``."""
    return Table(
        channel,
        MetaData(),
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("created_at", DateTime(timezone=True)),
        Column("event", Text),
        *(Column(name, Text, nullable=True) for name in fields),
    )


def _inspect_columns(sync_conn, table_name: str) -> Optional[set[str]]:
    insp = inspect(sync_conn)
    if not insp.has_table(table_name):
        return None
    return {col["name"] for col in insp.get_columns(table_name)}


class SchemaReconciler:
    """Keeps each channel table's column set a superset of what's written to it."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._columns: OrderedDict[str, set[str]] = OrderedDict()
        self._locks = [asyncio.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, channel: str) -> asyncio.Lock:
        return self._locks[hash(channel) % LOCK_STRIPES]

    def _remember(self, channel: str, columns: set[str]) -> None:
        self._columns[channel] = columns
        self._columns.move_to_end(channel)
        while len(self._columns) > MAX_CACHED_CHANNELS:
            self._columns.popitem(last=False)

    async def columns(self, channel: str, refresh: bool = False) -> Optional[set[str]]:
        """Column names of ``channel``'s table, or None if it doesn't exist."""
        validate_identifier(channel, "channel")
        if not refresh and channel in self._columns:
            return set(self._columns[channel])
        try:
            async with self.engine.connect() as conn:
                found = await conn.run_sync(_inspect_columns, channel)
        except DB_ERRORS as e:
            raise PersistenceError(f"Failed to inspect table {channel!r}: {e}") from e
        if found is None:
            self._columns.pop(channel, None)
            return None
        self._remember(channel, found)
        return set(found)

    async def ensure(self, channel: str, fields: Iterable[str]) -> set[str]:
        """Create/extend ``channel``'s table so it has every column in ``fields``.

        Both ``channel`` and ``fields`` are validated before any DDL runs.
        Returns the resulting column set.
        """
        validate_identifier(channel, "channel")
        fields = [validate_identifier(f, "field") for f in fields if f not in BASE_COLUMNS]
        wanted = {"event", *fields}

        cached = self._columns.get(channel)
        if cached is not None and wanted <= cached:
            return set(cached)

        async with self._lock_for(channel):
            columns = await self.columns(channel, refresh=True)
            if columns is None:
                await self._create_table(channel, fields)
                columns = await self.columns(channel, refresh=True)
                if columns is None:
                    raise PersistenceError(f"Table {channel!r} missing after CREATE")

            for column in sorted(wanted - columns):
                await self._add_column(channel, column)
                columns.add(column)

            self._remember(channel, columns)
            return set(columns)

    def forget(self, channel: Optional[str] = None) -> None:
        """Drop cached column sets (all channels when ``channel`` is None)."""
        if channel is None:
            self._columns.clear()
        else:
            self._columns.pop(channel, None)

    # ─── DDL ───────────────────────────────────────────────

    async def _create_table(self, channel: str, fields: list[str]) -> None:
        ddl = CreateTable(channel_table(channel, fields), if_not_exists=True)
        try:
            async with self.engine.begin() as conn:
                await conn.execute(ddl)
        except DB_ERRORS as e:
            # Concurrent CREATE ... IF NOT EXISTS can still collide in the
            # catalog; that's fine as long as the table is there now.
            if await self.columns(channel, refresh=True) is None:
                raise PersistenceError(f"Failed to create table {channel!r}: {e}") from e
            logger.info("storage.create_raced", channel=channel)
            return
        logger.info("storage.table_created", channel=channel, columns=len(fields) + 3)

    async def _add_column(self, channel: str, column: str) -> None:
        try:
            async with self.engine.begin() as conn:
                preparer = conn.dialect.identifier_preparer
                guard = "IF NOT EXISTS " if conn.dialect.name == "postgresql" else ""
                await conn.execute(
                    text(
                        f"ALTER TABLE {preparer.quote(channel)} "
                        f"ADD COLUMN {guard}{preparer.quote(column)} TEXT"
                    )
                )
        except DB_ERRORS as e:
            current = await self.columns(channel, refresh=True)
            if current is None or column not in current:
                raise PersistenceError(
                    f"Failed to add column {column!r} to {channel!r}: {e}"
                ) from e
            logger.info("storage.add_column_raced", channel=channel, column=column)
            return
        logger.info("storage.column_added", channel=channel, column=column)
