"""
Task scheduling seam for background work.

Services never call ``task.delay()`` directly. They receive a scheduler,
so production code enqueues on Celery once the surrounding transaction
commits, and tests run the same task body synchronously.

Usage:
    from media.services.scheduling import get_scheduler
    from media.tasks import assemble_download_archive

    get_scheduler().schedule(assemble_download_archive, str(job.id))
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from django.db import transaction

if TYPE_CHECKING:
    from celery import Task

logger = logging.getLogger(__name__)


class TaskScheduler(ABC):
    """Runs a Celery task, now or later."""

    @abstractmethod
    def schedule(self, task: "Task", *args) -> None:
        """Arrange for ``task(*args)`` to run."""


class CeleryScheduler(TaskScheduler):
    """
    Enqueue tasks on the broker after the current transaction commits.

    Deferring to commit guarantees the worker can see the rows the task
    is about to load.
    """

    def schedule(self, task: "Task", *args) -> None:
        logger.debug(
            "Scheduling task on commit",
            extra={"task": task.name, "task_args": [str(a) for a in args]},
        )
        transaction.on_commit(lambda: task.delay(*args))


class ImmediateScheduler(TaskScheduler):
    """
    Run tasks in-process, synchronously.

    Used by tests and by management commands that need the result before
    returning. Exceptions raised by the task propagate.
    """

    def schedule(self, task: "Task", *args) -> None:
        task.apply(args=args, throw=True)


def get_scheduler() -> TaskScheduler:
    """Production scheduler."""
    return CeleryScheduler()
