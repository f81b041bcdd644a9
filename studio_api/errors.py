"""Domain exceptions raised by the store and the user table engine.

Routers never catch these; ``main.studio_error_handler`` renders them using
the same ``{"detail": {"error", "message", "details"}}`` envelope that the
``HTTPException`` responses use.
"""

from typing import Any

from fastapi import status


class StudioError(Exception):
    """Base class for all domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "studio_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message, "details": self.details}


class ValidationError(StudioError):
    """Malformed or missing caller input. Raised before any store mutation."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "validation_error"


class NotFoundError(StudioError):
    """Referenced record does not exist (or a user table never completed creation)."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class StoreError(StudioError):
    """The relational store rejected a read, update or delete."""

    error = "store_error"

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        details: dict[str, Any] | None = None,
    ):
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, details)
        self.cause = cause


class TableCreationError(StoreError):
    """The store rejected the DDL for a new user table; metadata was rolled back."""

    error = "table_creation_failed"
