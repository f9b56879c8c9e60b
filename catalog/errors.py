"""Exception types raised by the catalog core and mapped at the API boundary."""
from __future__ import annotations


class CatalogError(Exception):
    """Base class for catalog errors."""
    pass


class UserNotFoundError(CatalogError):
    """Raised when an identifier or email lookup finds no record."""
    pass


class IngestionError(CatalogError):
    """Raised when loading users from the external source fails."""
    pass


class RecordValidationError(CatalogError):
    """Raised when a source record cannot be mapped to a user."""
    pass


def describe_chain(exc: BaseException) -> str:
    """Join an exception's message with those of its causes.

    ``IngestionError("load failed")`` raised from ``ConnectError("refused")``
    becomes ``"load failed: refused"``. Messages already contained in the
    outer text are not repeated.
    """
    parts: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        message = str(current) or type(current).__name__
        if not any(message in p for p in parts):
            parts.append(message)
        current = current.__cause__ or current.__context__
    return ": ".join(parts)
