"""Safe identifier check for producer-supplied table and column names.

Learn: Channel names become table names and payload keys become column
names, so both end up inside DDL, where bind parameters cannot go.
The same check applies to channels, columns and filter fields. Unsafe
names are rejected, never rewritten.
"""

import re

from notifyrelay.errors import IdentifierSafetyError

# PostgreSQL truncates identifiers beyond 63 bytes (NAMEDATALEN - 1).
MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# Names the storage engines reserve for their own catalogs.
_RESERVED_PREFIXES = ("sqlite_", "pg_")


def is_safe_identifier(name: object) -> bool:
    if not isinstance(name, str) or not name:
        return False
    if len(name) > MAX_IDENTIFIER_LENGTH:
        return False
    if not _IDENTIFIER_RE.fullmatch(name):
        return False
    return not name.lower().startswith(_RESERVED_PREFIXES)


def validate_identifier(name: object, kind: str = "identifier") -> str:
    """Return ``name`` unchanged, or raise IdentifierSafetyError."""
    if not is_safe_identifier(name):
        raise IdentifierSafetyError(kind, str(name))
    return name  # type: ignore[return-value]
