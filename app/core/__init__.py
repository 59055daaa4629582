"""
Core Application - Infrastructure & Base Classes

Generic, reusable building blocks shared by domain apps. Business logic
does not live here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - OrderableMixin: Explicit ordering (position field)

Services (import from core.services):
    - BaseService: Base class for service layer

Exceptions (import from core.exceptions):
    - BaseApplicationError, ValidationError, NotFoundError,
      PermissionDeniedError, ConflictError, LockAcquisitionError,
      ExternalServiceError

Locks (import from core.locks):
    - SingleFlightLock: non-blocking Redis claim for at-most-once work

Views (import from core.views):
    - health_check, error_status_for, error_response

Note:
    Django models, mixins, locks and views are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    LockAcquisitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .services import BaseService

__all__ = [
    "BaseService",
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "LockAcquisitionError",
    "ExternalServiceError",
]
