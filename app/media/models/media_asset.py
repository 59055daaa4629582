"""
MediaAsset model: the durable record of a processed upload.

Provides:
- Permanent object location and optional preview location
- Source and preview dimensions for images
- Extracted metadata (capture timestamp, device make/model, client data)

Each asset originates from exactly one upload session. The one-to-one link
doubles as the idempotency key for commit retries.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class MediaAsset(UUIDPrimaryKeyMixin, BaseModel):
    """
    A successfully ingested image or video.

    Attributes:
        owner: User who uploaded the media
        upload_session: Session the asset was created from
        filename: Original filename
        blob_path: Object key in the originals container (unique)
        preview_path: Object key in the thumbnails container, if derived
        mime_type: Final MIME type
        byte_size: Size of the permanent object in bytes
        pixel_width/pixel_height: Source dimensions (images only)
        preview_width/preview_height: Preview dimensions
        extracted_metadata: Open key/value map
        status: Only READY is persisted by the upload pipeline

    Note:
        Deleting an asset deletes its original and preview objects
        (see media.signals).
    """

    class Status(models.TextChoices):
        """Media-level status."""

        PROCESSING = "processing", "Processing"
        READY = "ready", "Ready"
        FAILED = "failed", "Failed"

    class Kind(models.TextChoices):
        """Media category used to route processing steps."""

        IMAGE = "image", "Image"
        VIDEO = "video", "Video"

    # =========================================================================
    # Relationships
    # =========================================================================

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="media_assets",
        help_text="User who uploaded this media",
    )
    upload_session = models.OneToOneField(
        "media.UploadSession",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="media_asset",
        help_text="Upload session this asset was created from",
    )

    # =========================================================================
    # Storage
    # =========================================================================

    filename = models.CharField(
        max_length=255,
        help_text="Original filename",
    )
    blob_path = models.CharField(
        max_length=255,
        unique=True,
        help_text="Object key in the originals container",
    )
    preview_path = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Object key of the derived preview in the thumbnails container",
    )

    # =========================================================================
    # Content Metadata
    # =========================================================================

    kind = models.CharField(
        max_length=10,
        choices=Kind.choices,
        help_text="Media category",
    )
    mime_type = models.CharField(
        max_length=100,
        help_text="MIME type of the stored object",
    )
    byte_size = models.BigIntegerField(
        help_text="Size of the permanent object in bytes",
    )
    pixel_width = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Source width in pixels",
    )
    pixel_height = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Source height in pixels",
    )
    preview_width = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Preview width in pixels",
    )
    preview_height = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Preview height in pixels",
    )
    extracted_metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Capture metadata merged with client-supplied metadata",
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.READY,
        help_text="Media-level status",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["owner", "-created_at"],
                name="idx_media_asset_owner_created",
            ),
        ]

    def __str__(self) -> str:
        return f"MediaAsset({self.filename}, {self.kind})"

    @property
    def has_preview(self) -> bool:
        return bool(self.preview_path)
