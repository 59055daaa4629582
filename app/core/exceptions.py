"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across the application
- Machine-readable error codes for client handling
- Detailed error information for debugging

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures
    ├── NotFoundError - Resource not found
    ├── PermissionDeniedError - Authorization failures
    ├── ConflictError - State conflicts (duplicates, illegal transitions)
    │   └── LockAcquisitionError - Single-flight lock already held
    └── ExternalServiceError - Object storage and other backend failures

Usage:
    from core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(
        f"Upload session {session_id} not found",
        error_code="UPLOAD_SESSION_NOT_FOUND",
        details={"session_id": str(session_id)},
    )

    # Convert to dict for API response
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=error_status_for(e))

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, limits, etc.)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Upload session not found",
                "error_code": "UPLOAD_SESSION_NOT_FOUND",
                "details": {"session_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input fails a business rule.

    Use for service-layer checks such as the media type allow-list or the
    declared size limit. Request shape problems are reported by DRF
    serializers instead.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Records owned by another user are reported the same way so their
    existence is not disclosed.
    """

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """Raised when the caller lacks permission for an operation."""

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Invalid state transitions (committing a failed session)
    - Operations already in flight (committing a processing session)

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"


class LockAcquisitionError(ConflictError):
    """
    Raised when a single-flight claim is already held.

    Indicates that another worker is on the same record right now.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when a backing service call fails.

    Log the original error for debugging but don't expose internal
    details to clients. HTTP 502 Bad Gateway is appropriate.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
