"""Custom exception hierarchy for Secudo.

Provides structured error types that the centralized error handler
translates into consistent JSON responses.  Cross-tenant lookups are
reported as :class:`NotFoundError` so existence never leaks.
"""

from __future__ import annotations

from typing import Any


class SecudoError(Exception):
    """Base exception for all Secudo errors."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str = "An internal error occurred") -> None:
        self.message = message
        super().__init__(message)


class UnauthenticatedError(SecudoError):
    """No valid session accompanies the request."""

    status_code = 401
    error_type = "unauthenticated"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ForbiddenError(SecudoError):
    """Authenticated, but the role or membership is insufficient."""

    status_code = 403
    error_type = "forbidden"

    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(message)


class NotFoundError(SecudoError):
    """Requested resource was not found (or belongs to another project)."""

    status_code = 404
    error_type = "not_found"


class ConflictError(SecudoError):
    """Uniqueness or structural conflict (duplicate membership, hierarchy cycle)."""

    status_code = 409
    error_type = "conflict"


class ValidationError(SecudoError):
    """Input validation failure beyond Pydantic constraints."""

    status_code = 400
    error_type = "invalid_input"

    def __init__(self, message: str = "Invalid input", details: list[Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class PayloadTooLargeError(SecudoError):
    """Request body exceeds a configured size cap."""

    status_code = 413
    error_type = "payload_too_large"


class StorageError(SecudoError):
    """Database or storage layer failure."""

    status_code = 503
    error_type = "storage_error"
