"""
UploadSession model for tracking direct-to-storage chunked uploads.

Provides:
- Lifecycle tracking from initiation to a terminal state
- Client-reported progress (best-effort)
- Lazy expiry of sessions whose write URL has lapsed

The client stages blocks against pre-signed object store URLs (straight
to the S3 bucket in production, through the local relay in development)
and only reports to the API to request URLs, report progress and commit.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class UploadSession(UUIDPrimaryKeyMixin, BaseModel):
    """
    Server-side record of one upload attempt.

    State Flow:
        PENDING → UPLOADING (first progress report, informational)
        PENDING/UPLOADING → PROCESSING (commit)
        PROCESSING → COMPLETED (pipeline succeeded)
        PROCESSING → FAILED (pipeline or promotion failed)
        PENDING/UPLOADING → FAILED (expired, observed lazily)

    Attributes:
        uploader: User who initiated the upload
        filename: Original filename supplied by the client
        file_size: Declared total size in bytes
        mime_type: Declared MIME type
        object_path: Server-generated object key (same in every container)
        storage_upload_id: Multipart upload id when the store issues one
        album: Optional album to link the resulting media into
        status: Current lifecycle state (managed by FSM)
        uploaded_bytes: Client-reported bytes staged so far
        block_ids: Ordered block list recorded at commit
        client_metadata: Metadata supplied by the client at commit
        expires_at: Deadline of the pre-signed write URL

    Sessions are never deleted by the upload pipeline; they are kept for
    audit and debugging.
    """

    # =========================================================================
    # Enums
    # =========================================================================

    class Status(models.TextChoices):
        """Upload session status."""

        PENDING = "pending", "Pending"
        UPLOADING = "uploading", "Uploading"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    # =========================================================================
    # Relationships
    # =========================================================================

    uploader = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="upload_sessions",
        help_text="User who initiated the upload",
    )
    album = models.ForeignKey(
        "media.Album",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="upload_sessions",
        help_text="Album the media is linked into on success",
    )

    # =========================================================================
    # File Metadata
    # =========================================================================

    filename = models.CharField(
        max_length=255,
        help_text="Original filename of the file being uploaded",
    )
    file_size = models.BigIntegerField(
        help_text="Declared total file size in bytes",
    )
    mime_type = models.CharField(
        max_length=100,
        help_text="Declared MIME type of the file",
    )
    object_path = models.CharField(
        max_length=255,
        unique=True,
        help_text="Server-generated object key (random, extension preserved)",
    )
    storage_upload_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Multipart upload id issued by the object store, if any",
    )

    # =========================================================================
    # Progress Tracking
    # =========================================================================

    uploaded_bytes = models.BigIntegerField(
        default=0,
        help_text="Bytes staged so far, as reported by the client",
    )
    block_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="Ordered block ids recorded at commit",
    )
    client_metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Metadata supplied by the client at commit",
    )

    # =========================================================================
    # Status & Expiration
    # =========================================================================

    status = FSMField(
        default=Status.PENDING,
        choices=Status.choices,
        db_index=True,
        protected=True,
        help_text="Current session status (managed by FSM)",
    )
    failure_reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Why the session failed, if it did",
    )
    expires_at = models.DateTimeField(
        help_text="When the pre-signed write URL expires",
    )
    processing_started_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the commit moved the session to processing",
    )

    # =========================================================================
    # Meta
    # =========================================================================

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["uploader", "status"],
                name="idx_upload_session_user_status",
            ),
            models.Index(
                fields=["status", "expires_at"],
                name="idx_upload_session_status_exp",
            ),
        ]

    def __str__(self) -> str:
        return f"UploadSession({self.filename}, {self.status})"

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_expired(self) -> bool:
        """Check if the write URL deadline has passed."""
        return self.expires_at <= timezone.now()

    @property
    def accepts_blocks(self) -> bool:
        """Whether the client may still stage blocks and commit."""
        return self.status in (self.Status.PENDING, self.Status.UPLOADING)

    @property
    def is_terminal(self) -> bool:
        return self.status in (self.Status.COMPLETED, self.Status.FAILED)

    @property
    def progress_percent(self) -> float:
        """Upload progress as a percentage (0-100)."""
        if self.file_size <= 0:
            return 0.0
        return min(100.0, (self.uploaded_bytes / self.file_size) * 100)

    # =========================================================================
    # State Transitions
    # =========================================================================

    @transition(
        field=status,
        source=[Status.PENDING, Status.UPLOADING],
        target=Status.UPLOADING,
    )
    def record_progress(self, uploaded_bytes: int):
        """
        Record client-reported progress.

        Transition: PENDING/UPLOADING -> UPLOADING

        The count never decreases and never exceeds the declared size.
        """
        bounded = min(max(uploaded_bytes, 0), self.file_size)
        self.uploaded_bytes = max(self.uploaded_bytes, bounded)

    @transition(
        field=status,
        source=[Status.PENDING, Status.UPLOADING],
        target=Status.PROCESSING,
    )
    def start_processing(self, block_ids: list[str], metadata: dict | None = None):
        """
        Accept the client's commit notification.

        Transition: PENDING/UPLOADING -> PROCESSING
        """
        self.block_ids = list(block_ids)
        self.client_metadata = dict(metadata or {})
        self.uploaded_bytes = self.file_size
        self.processing_started_at = timezone.now()

    @transition(
        field=status,
        source=Status.PROCESSING,
        target=Status.COMPLETED,
    )
    def complete(self):
        """
        Mark the pipeline as finished.

        Transition: PROCESSING -> COMPLETED
        """
        self.failure_reason = ""

    @transition(
        field=status,
        source=Status.PROCESSING,
        target=Status.FAILED,
    )
    def fail(self, reason: str = ""):
        """
        Record a fatal pipeline failure.

        Transition: PROCESSING -> FAILED
        """
        self.failure_reason = reason[:255]

    @transition(
        field=status,
        source=[Status.PENDING, Status.UPLOADING],
        target=Status.FAILED,
    )
    def expire(self):
        """
        Abandon a session whose write URL has lapsed.

        Transition: PENDING/UPLOADING -> FAILED
        """
        self.failure_reason = "expired"
