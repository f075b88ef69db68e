"""Domain errors.

Learn: Routes translate these into HTTP responses; the core never raises
HTTPException itself. Nothing here is fatal to the process. A
PersistenceError degrades the relay to dispatch-only for that event.
"""


class RelayError(Exception):
    """Base class for every notifyrelay error."""


class ValidationError(RelayError):
    """Malformed payload, missing channel, bad filter. Never persisted or dispatched."""


class IdentifierSafetyError(ValidationError):
    """A channel or field name is not a safe SQL identifier."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"Unsafe {kind} name: {name!r}")


class FilterError(ValidationError):
    """A search filter uses an unknown operator or field."""


class PersistenceError(RelayError):
    """Schema reconciliation or row write failed."""


class StorageUnavailableError(RelayError):
    """Persistence is disabled (no database configured)."""


class DeliveryError(RelayError):
    """Writing one frame to one subscriber failed."""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Delivery on {channel!r} failed: {reason}")
