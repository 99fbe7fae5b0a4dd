"""Failure taxonomy raised by the parsers, the entity service and collaborators.

Every error carries the HTTP status the application maps it to, so the
exception handlers in ``wildlife_tracker.app`` stay generic.
"""

from typing import Any, Iterable, Optional

from fastapi import status


class WildlifeTrackerError(Exception):
    """Base error with an HTTP status and a client-safe detail message"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


# --- Client input (400) ---


class QueryParseError(WildlifeTrackerError):
    """Raised by the filter, field and order parsers"""

    status_code = status.HTTP_400_BAD_REQUEST


class UnknownField(QueryParseError):
    def __init__(self, field: str, available: Optional[Iterable[str]] = None, kind: str = "field"):
        self.field = field
        self.available = sorted(available) if available is not None else []
        detail = f"Unknown {kind} '{field}'."
        if self.available:
            detail += f" Available fields: {', '.join(self.available)}"
        super().__init__(detail)


class InvalidLiteral(QueryParseError):
    def __init__(self, field: str, value: Any, expected: str):
        self.field = field
        self.value = value
        self.expected = expected
        super().__init__(f"Invalid value '{value}' for '{field}': expected {expected}.")


class InvalidOperator(QueryParseError):
    def __init__(self, field: str, operator: str, reason: str = "unknown operator"):
        self.field = field
        self.operator = operator
        super().__init__(f"Invalid operator '{operator}' for '{field}': {reason}.")


class MalformedQuery(QueryParseError):
    """A clause does not follow the ``field:operator:value`` shape"""


class ValidationError(WildlifeTrackerError):
    """A DTO violates a declared or referential constraint"""

    status_code = status.HTTP_400_BAD_REQUEST


class InvalidFile(ValidationError):
    """Uploaded file is empty, too large or not an image"""


# --- Identity / state ---


class Unauthenticated(WildlifeTrackerError):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(WildlifeTrackerError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is not None:
            detail = f"{entity} with id {entity_id} not found"
        else:
            detail = f"{entity} not found"
        super().__init__(detail)


class ConflictingReference(WildlifeTrackerError):
    """The store rejected a mutation because of a foreign relation"""

    status_code = status.HTTP_409_CONFLICT


class ConflictingUpdate(WildlifeTrackerError):
    """Optimistic concurrency check failed in the store"""

    status_code = status.HTTP_409_CONFLICT


class StoreError(WildlifeTrackerError):
    """Unrecognized store failure; the detail never leaks store internals"""

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)
