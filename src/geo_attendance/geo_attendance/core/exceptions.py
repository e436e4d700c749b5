from __future__ import annotations


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class NotFoundError(DomainError):
    """Raised when no matching attendance, session, location log or entity exists."""


class ConflictError(DomainError):
    """Raised on a duplicate clock-in or when an open session/log already exists."""


class AccessDeniedError(DomainError):
    """Raised when a user has no access to the requested entity."""


class ConcurrentOperationError(DomainError):
    """Raised when a same-class operation for the user could not acquire its lock in time.

    Callers may retry.
    """

    def __init__(self, user_id: str, operation: str, message: str | None = None):
        self.user_id = user_id
        self.operation = operation
        super().__init__(message or f"Another {operation} operation is in progress for user {user_id}")


class GeospatialError(ValidationError):
    """Raised for invalid coordinates or a position outside the allowed radius."""
