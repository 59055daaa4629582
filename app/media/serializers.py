"""
Serializers for upload sessions and batch downloads.

Request serializers only check shape; business rules (MIME allow-list,
size limit, ownership) are enforced by the services.

Provides:
- UploadInitSerializer / UploadTargetSerializer: Begin an upload
- UploadSessionStatusSerializer: Session status and progress
- UploadProgressSerializer: Client progress report
- BlockUrlsRequestSerializer / BlockUrlsSerializer: Per-block staging URLs
- UploadCompleteSerializer / UploadCommitResultSerializer: Commit an upload
- BatchDownloadSerializer / DownloadJobSerializer: Request a batch archive
- DownloadStatusSerializer: Poll a batch archive
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from drf_spectacular.utils import OpenApiExample, extend_schema_serializer
from rest_framework import serializers

from media.models import UploadSession
from media.services.storage import CommitFormat
from media.services.uploads import MAX_BLOCK_URLS_PER_REQUEST

if TYPE_CHECKING:
    from typing import Any

    from media.services.downloads import DownloadStatus
    from media.services.uploads import CommitResult

MAX_BLOCK_IDS = 1_000_000
MAX_BATCH_SIZE = 1000


# =============================================================================
# Uploads
# =============================================================================


class UploadInitSerializer(serializers.Serializer):
    """Begin-upload request."""

    filename = serializers.CharField(max_length=255, help_text="Original filename")
    fileSize = serializers.IntegerField(
        min_value=1, help_text="Declared file size in bytes"
    )
    mimeType = serializers.CharField(max_length=100, help_text="MIME type of the file")
    collectionId = serializers.UUIDField(
        required=False,
        allow_null=True,
        help_text="Album to add the media to once processed",
    )

    def validate_mimeType(self, value: str) -> str:
        """Normalize MIME type."""
        if "/" not in value:
            raise serializers.ValidationError("Invalid MIME type format.")
        return value.strip().lower()


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Upload session created",
            value={
                "sessionId": "e5f6a7b8-c9d0-1234-ef01-234567890abc",
                "uploadUrl": "https://media.s3.amazonaws.com/uploads/9c1d...e2.jpg?uploadId=...&X-Amz-Signature=...",
                "blockSize": 8388608,
                "expiresAt": "2024-01-16T10:30:00Z",
                "commitFormat": "multipart",
            },
            response_only=True,
        ),
    ]
)
class UploadTargetSerializer(serializers.Serializer):
    """Begin-upload response."""

    sessionId = serializers.UUIDField(source="session.id")
    uploadUrl = serializers.CharField(source="upload_url")
    blockSize = serializers.IntegerField(source="block_size")
    expiresAt = serializers.DateTimeField(source="expires_at")
    commitFormat = serializers.ChoiceField(
        source="commit_format",
        choices=[CommitFormat.BLOCK_LIST, CommitFormat.MULTIPART],
        help_text="How to commit staged blocks against uploadUrl",
    )


class UploadSessionStatusSerializer(serializers.ModelSerializer):
    """
    Upload session status.

    ``mediaId`` is present once the session has completed.
    """

    sessionId = serializers.UUIDField(source="id", read_only=True)
    uploadedBytes = serializers.IntegerField(source="uploaded_bytes", read_only=True)
    totalBytes = serializers.IntegerField(source="file_size", read_only=True)
    uploadedBlocks = serializers.ListField(
        source="block_ids",
        child=serializers.CharField(),
        read_only=True,
    )
    expiresAt = serializers.DateTimeField(source="expires_at", read_only=True)

    class Meta:
        model = UploadSession
        fields = [
            "sessionId",
            "status",
            "uploadedBytes",
            "totalBytes",
            "uploadedBlocks",
            "expiresAt",
        ]
        read_only_fields = fields

    def to_representation(self, instance: UploadSession) -> dict[str, Any]:
        data = super().to_representation(instance)
        media_id = self.context.get("media_id")
        if media_id is not None:
            data["mediaId"] = str(media_id)
        if instance.status == UploadSession.Status.FAILED and instance.failure_reason:
            data["failureReason"] = instance.failure_reason
        return data


class UploadProgressSerializer(serializers.Serializer):
    """Client-reported progress."""

    uploadedBytes = serializers.IntegerField(
        min_value=0, help_text="Bytes staged so far"
    )


class BlockUrlsRequestSerializer(serializers.Serializer):
    """Block ids to pre-sign staging URLs for."""

    blockIds = serializers.ListField(
        child=serializers.CharField(max_length=100),
        allow_empty=False,
        max_length=MAX_BLOCK_URLS_PER_REQUEST,
    )


class BlockUrlsSerializer(serializers.Serializer):
    """Staging URLs keyed by block id."""

    blockUrls = serializers.DictField(source="urls", child=serializers.CharField())
    expiresAt = serializers.DateTimeField(source="expires_at")


class UploadCompleteSerializer(serializers.Serializer):
    """Commit request: the ordered block list and optional metadata."""

    blockIds = serializers.ListField(
        child=serializers.CharField(max_length=100),
        allow_empty=False,
        max_length=MAX_BLOCK_IDS,
        help_text="Block ids in the order they were committed to storage",
    )
    metadata = serializers.DictField(
        required=False,
        default=dict,
        help_text="Client metadata stored with the media",
    )


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Processed inline",
            value={
                "success": True,
                "mediaId": "0b6f0c1e-7d7b-4c55-9f55-0f1b8f0f1e2a",
                "previewUrl": "http://localhost:8000/storage/thumbnails/9c1d...e2_thumb.jpg?sig=...",
                "originalUrl": "http://localhost:8000/storage/originals/9c1d...e2.jpg?sig=...",
            },
            response_only=True,
        ),
        OpenApiExample(
            "Processing deferred",
            value={"success": True, "status": "processing"},
            response_only=True,
        ),
    ]
)
class UploadCommitResultSerializer(serializers.Serializer):
    """Commit response."""

    def to_representation(self, instance: "CommitResult") -> dict[str, Any]:
        if instance.deferred:
            return {"success": True, "status": instance.session.status}

        data: dict[str, Any] = {
            "success": True,
            "mediaId": str(instance.media.id),
        }
        if instance.preview_url:
            data["previewUrl"] = instance.preview_url
        data["originalUrl"] = instance.original_url
        return data


# =============================================================================
# Downloads
# =============================================================================


class BatchDownloadSerializer(serializers.Serializer):
    """Batch archive request."""

    mediaIds = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=False,
        max_length=MAX_BATCH_SIZE,
        help_text="Media assets to include, in archive order",
    )


class DownloadJobSerializer(serializers.Serializer):
    """Batch archive request response."""

    downloadId = serializers.UUIDField(source="id")
    status = serializers.CharField()
    estimatedSize = serializers.IntegerField(source="total_byte_estimate")
    mediaCount = serializers.IntegerField(source="media_count")


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Still processing",
            value={
                "downloadId": "7a1c2d3e-4f50-6172-8394-a5b6c7d8e9f0",
                "status": "processing",
            },
            response_only=True,
        ),
        OpenApiExample(
            "Ready",
            value={
                "downloadId": "7a1c2d3e-4f50-6172-8394-a5b6c7d8e9f0",
                "status": "ready",
                "downloadUrl": "http://localhost:8000/storage/downloads/7a1c...f0.zip?sig=...",
                "expiresAt": "2024-01-16T10:30:00Z",
                "size": 52428800,
            },
            response_only=True,
        ),
    ]
)
class DownloadStatusSerializer(serializers.Serializer):
    """
    Batch archive poll response.

    ``downloadUrl``, ``expiresAt`` and ``size`` appear only when ready.
    """

    def to_representation(self, instance: "DownloadStatus") -> dict[str, Any]:
        data: dict[str, Any] = {
            "downloadId": str(instance.job.id),
            "status": instance.job.status,
        }
        if instance.download_url:
            data["downloadUrl"] = instance.download_url
            data["expiresAt"] = serializers.DateTimeField().to_representation(
                instance.expires_at
            )
            data["size"] = instance.size
        return data
