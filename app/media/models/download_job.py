"""
DownloadJob model for batch archive packaging.

A job is created by a batch request, mutated exactly once by archive
assembly (to READY or FAILED) and polled by the client until then.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class DownloadJob(UUIDPrimaryKeyMixin, BaseModel):
    """
    One request to package several media assets into a single archive.

    State Flow:
        PROCESSING → READY (archive written)
        PROCESSING → FAILED (any assembly error)

    Both targets are terminal; no retry is triggered automatically.

    Attributes:
        requested_by: User who requested the archive
        requested_asset_ids: Ordered, de-duplicated media ids (as strings)
        status: Current job status (managed by FSM)
        archive_path: Object key in the downloads container (READY only)
        total_byte_estimate: Sum of asset sizes at request time
        archive_size: Size of the written archive in bytes
        assembly_started_at: When a worker began assembly (None while queued)
        heartbeat_at: Refreshed by the worker after each archive entry
        expires_at: End of the window the job and its archive are offered for
    """

    class Status(models.TextChoices):
        """Download job status."""

        PROCESSING = "processing", "Processing"
        READY = "ready", "Ready"
        FAILED = "failed", "Failed"

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="download_jobs",
        help_text="User who requested the archive",
    )
    requested_asset_ids = models.JSONField(
        default=list,
        help_text="Ordered list of requested media asset ids",
    )
    status = FSMField(
        default=Status.PROCESSING,
        choices=Status.choices,
        db_index=True,
        protected=True,
        help_text="Current job status (managed by FSM)",
    )
    archive_path = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Object key of the archive in the downloads container",
    )
    total_byte_estimate = models.BigIntegerField(
        default=0,
        help_text="Sum of constituent asset sizes at request time",
    )
    archive_size = models.BigIntegerField(
        null=True,
        blank=True,
        help_text="Size of the finished archive in bytes",
    )
    failure_reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Why assembly failed, if it did",
    )
    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the job reached a terminal state",
    )
    assembly_started_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a worker took the job and began writing the archive",
    )
    heartbeat_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last progress report from the assembling worker",
    )
    expires_at = models.DateTimeField(
        help_text="When the archive stops being offered",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["status", "created_at"],
                name="idx_download_job_status",
            ),
        ]

    def __str__(self) -> str:
        return f"DownloadJob({self.id}, {self.status})"

    @property
    def media_count(self) -> int:
        return len(self.requested_asset_ids or [])

    @property
    def is_ready(self) -> bool:
        return self.status == self.Status.READY

    @property
    def is_expired(self) -> bool:
        """Past the retention window; the archive is no longer offered."""
        return self.expires_at <= timezone.now()

    @transition(
        field=status,
        source=Status.PROCESSING,
        target=Status.READY,
    )
    def mark_ready(self, archive_path: str, archive_size: int):
        """
        Record the finished archive.

        Transition: PROCESSING -> READY
        """
        self.archive_path = archive_path
        self.archive_size = archive_size
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=Status.PROCESSING,
        target=Status.FAILED,
    )
    def mark_failed(self, reason: str = ""):
        """
        Record an assembly failure.

        Transition: PROCESSING -> FAILED
        """
        self.failure_reason = reason[:255]
        self.completed_at = timezone.now()
