"""
Core views providing infrastructure endpoints and error translation.

This module contains views that are not part of the business domain but are
essential for application infrastructure, such as health checks, plus the
mapping from domain exceptions to HTTP status codes shared by API views.
"""

from __future__ import annotations

from django.db import connection
from django.http import JsonResponse
from rest_framework import status
from rest_framework.response import Response

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

# Most specific classes first
ERROR_STATUS_MAP: tuple[tuple[type[BaseApplicationError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
)


def error_status_for(exc: BaseApplicationError) -> int:
    """
    HTTP status code for a domain exception.

    An exception class may pin its own code with an ``http_status``
    attribute (e.g. 415 for unsupported media types); otherwise the first
    matching base class in ERROR_STATUS_MAP decides. Unknown application
    errors map to 500.
    """
    explicit = getattr(exc, "http_status", None)
    if explicit:
        return explicit
    for exc_class, status_code in ERROR_STATUS_MAP:
        if isinstance(exc, exc_class):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(exc: BaseApplicationError) -> Response:
    """DRF response carrying ``exc.to_dict()`` with the mapped status."""
    return Response(exc.to_dict(), status=error_status_for(exc))


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: All systems operational
        503: Database unreachable
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    # Cache failure degrades but does not fail the check
    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        health_status["cache"] = "disconnected"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)
