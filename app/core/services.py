"""
Base service layer patterns for business logic encapsulation.

Services encapsulate business logic separate from views and models.
Views handle HTTP concerns, models handle data, services handle logic.

Error Handling:
    Services raise exceptions from core.exceptions (or an app's own
    exceptions module) for expected failures. Views translate them into
    responses with ``core.views.error_status_for``.

Usage:
    from core.services import BaseService

    class DownloadJobService(BaseService):
        def request_batch(self, user, media_ids):
            with self.atomic():
                job = DownloadJob.objects.create(...)
            self.get_logger().info("Download job created", extra={"job_id": str(job.id)})
            return job
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator


class BaseService:
    """
    Base class for service layer classes.

    Provides:
    - Logging setup per service
    - Database transaction management

    Collaborators (storage gateway, task scheduler) are passed to the
    constructor rather than looked up globally.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for easy
        filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that makes
        transaction boundaries explicit in service code.
        """
        with transaction.atomic():
            yield
