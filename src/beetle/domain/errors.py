"""Request-fatal error kinds raised by the save and query pipelines."""

from __future__ import annotations

from typing import ClassVar


class BeetleError(RuntimeError):
    """Base class for structured failures surfaced to the caller.

    ``index`` points at the offending entity of a save batch where one applies.
    """

    kind: ClassVar[str] = "BeetleError"

    def __init__(self, message: str, *, index: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.index = index

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "message": self.message, "index": self.index}


class TypeNotFound(BeetleError):
    """Raised when an entity type name cannot be resolved."""

    kind = "TypeNotFound"


class UnmappedEntity(BeetleError):
    """Raised when an adapter has no mapping for an entity outside the known types."""

    kind = "UnmappedEntity"


class InvalidQuery(BeetleError):
    """Raised for malformed or unsupported query directives."""

    kind = "InvalidQuery"


class ResultCountExceeded(BeetleError):
    """Raised when a query materialises more records than allowed."""

    kind = "ResultCountExceeded"


class ConcurrencyConflict(BeetleError):
    """Raised when original values no longer match the persisted ones."""

    kind = "ConcurrencyConflict"


class TamperDetected(BeetleError):
    """Raised when the request hash does not match the query string."""

    kind = "TamperDetected"


class PersistenceFailure(BeetleError):
    """Raised when the backend reports a write error."""

    kind = "PersistenceFailure"


class NotSupported(BeetleError):
    """Raised when an operation needs a backend adapter that is not configured."""

    kind = "NotSupported"


class InvalidSaveBundle(BeetleError):
    """Raised when an inbound save payload does not have the expected shape."""

    kind = "InvalidSaveBundle"
