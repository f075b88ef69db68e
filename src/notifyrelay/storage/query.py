"""Filter query builder — search filters → parameterized SELECT.

Learn: Filters arrive from untrusted callers as {field, op, value}:
- op is looked up in a fixed allow-list; anything else is rejected
  before a query exists
- field is an identifier, validated exactly like column names on write
- value is always a bound parameter, never part of the SQL text, and is
  bound with the column's type: INTEGER for id, a timestamp for
  created_at, TEXT for everything the payloads added

Filters are AND-ed, rows come back newest first, capped at 100.
"""

import operator
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Union

from sqlalchemy import (
    DateTime,
    Integer,
    Select,
    Text,
    column,
    literal_column,
    select,
    table,
)
from sqlalchemy.types import TypeEngine

from notifyrelay.errors import FilterError
from notifyrelay.identifiers import validate_identifier
from notifyrelay.schemas import Filter
from notifyrelay.storage.schema import text_value

DEFAULT_LIMIT = 100

# ilike renders as ILIKE on PostgreSQL and lower(x) LIKE lower(y) elsewhere.
OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
    "like": lambda col, value: col.like(value),
    "ilike": lambda col, value: col.ilike(value),
}

PATTERN_OPERATORS = ("like", "ilike")

# Base columns that are not TEXT. Must match storage.schema.channel_table.
TYPED_COLUMNS: dict[str, TypeEngine] = {
    "id": Integer(),
    "created_at": DateTime(timezone=True),
}


def parse_filters(filters: Iterable[Union[Filter, dict[str, Any]]]) -> list[Filter]:
    return [f if isinstance(f, Filter) else Filter.model_validate(f) for f in filters]


def _row_id(value: Any) -> int:
    if isinstance(value, bool):
        raise FilterError(f"Invalid value for id: {value!r}")
    try:
        return int(str(value))
    except ValueError:
        raise FilterError(f"Invalid value for id: {value!r}") from None


def _timestamp(value: Any) -> datetime:
    """ISO 8601 → aware UTC datetime. A naive timestamp is read as UTC."""
    if not isinstance(value, str):
        raise FilterError(f"Invalid value for created_at: {value!r}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise FilterError(f"Invalid value for created_at: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def bind_value(field: str, value: Any) -> Any:
    """Convert a filter value to what ``field``'s column stores."""
    if value is None:
        return None
    if field == "id":
        return _row_id(value)
    if field == "created_at":
        return _timestamp(value)
    return text_value(value)


def build_query(
    channel: str,
    filters: Iterable[Union[Filter, dict[str, Any]]] = (),
    *,
    limit: int = DEFAULT_LIMIT,
) -> Select:
    """Build the read query for ``channel``'s table.

    Raises FilterError for an unknown operator or a value the column
    can't hold, and IdentifierSafetyError for an unsafe channel or field
    name.
    """
    validate_identifier(channel, "channel")

    checked = []
    for f in parse_filters(filters):
        compare = OPERATORS.get(f.op)
        if compare is None:
            raise FilterError(f"Invalid operator: {f.op}")
        validate_identifier(f.field, "field")
        if f.value is None and f.op not in ("==", "!="):
            raise FilterError(f"Operator {f.op} needs a value")
        if f.op in PATTERN_OPERATORS and f.field in TYPED_COLUMNS:
            raise FilterError(f"Operator {f.op} needs a text field, not {f.field}")
        checked.append((f.field, compare, bind_value(f.field, f.value)))

    names = dict.fromkeys(["id", *(field for field, _, _ in checked)])
    tbl = table(channel, *(column(name, TYPED_COLUMNS.get(name, Text())) for name in names))

    stmt = select(literal_column("*")).select_from(tbl)
    for field, compare, value in checked:
        stmt = stmt.where(compare(tbl.c[field], value))
    return stmt.order_by(tbl.c.id.desc()).limit(limit)
