"""
Media-specific exceptions.

Exception Hierarchy:
    ValidationError (from core)
    ├── UnsupportedMediaTypeError - MIME type not on the upload allow-list
    └── PayloadTooLargeError - Declared size above the upload limit

    ExternalServiceError (from core)
    └── StorageError - Object store promotion, staging or archive I/O failure

Non-fatal extraction failures (metadata, previews) are defined next to the
processors in media.processors.base.
"""

from __future__ import annotations

from rest_framework import status

from core.exceptions import ExternalServiceError, ValidationError


class UnsupportedMediaTypeError(ValidationError):
    """
    Raised when an upload declares a MIME type outside the allow-list.

    No session record is created when this is raised.
    """

    default_error_code = "UNSUPPORTED_MEDIA_TYPE"
    http_status = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE


class PayloadTooLargeError(ValidationError):
    """Raised when the declared upload size exceeds the configured maximum."""

    default_error_code = "PAYLOAD_TOO_LARGE"
    http_status = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class StorageError(ExternalServiceError):
    """
    Raised when the object store fails an operation.

    Fatal to the enclosing operation: the owning upload session or
    download job moves to ``failed`` before the error propagates.
    """

    default_error_code = "STORAGE_ERROR"
