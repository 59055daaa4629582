import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Album",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        help_text="Display name of the album", max_length=200
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        help_text="User who owns the album",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="albums",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="UploadSession",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "filename",
                    models.CharField(
                        help_text="Original filename of the file being uploaded",
                        max_length=255,
                    ),
                ),
                (
                    "file_size",
                    models.BigIntegerField(
                        help_text="Declared total file size in bytes"
                    ),
                ),
                (
                    "mime_type",
                    models.CharField(
                        help_text="Declared MIME type of the file", max_length=100
                    ),
                ),
                (
                    "object_path",
                    models.CharField(
                        help_text="Server-generated object key (random, extension preserved)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "uploaded_bytes",
                    models.BigIntegerField(
                        default=0,
                        help_text="Bytes staged so far, as reported by the client",
                    ),
                ),
                (
                    "block_ids",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Ordered block ids recorded at commit",
                    ),
                ),
                (
                    "client_metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Metadata supplied by the client at commit",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("uploading", "Uploading"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current session status (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Why the session failed, if it did",
                        max_length=255,
                    ),
                ),
                (
                    "expires_at",
                    models.DateTimeField(
                        help_text="When the pre-signed write URL expires"
                    ),
                ),
                (
                    "processing_started_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the commit moved the session to processing",
                        null=True,
                    ),
                ),
                (
                    "album",
                    models.ForeignKey(
                        blank=True,
                        help_text="Album the media is linked into on success",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="upload_sessions",
                        to="media.album",
                    ),
                ),
                (
                    "uploader",
                    models.ForeignKey(
                        help_text="User who initiated the upload",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="upload_sessions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["uploader", "status"],
                        name="idx_upload_session_user_status",
                    ),
                    models.Index(
                        fields=["status", "expires_at"],
                        name="idx_upload_session_status_exp",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MediaAsset",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "filename",
                    models.CharField(help_text="Original filename", max_length=255),
                ),
                (
                    "blob_path",
                    models.CharField(
                        help_text="Object key in the originals container",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "preview_path",
                    models.CharField(
                        blank=True,
                        help_text="Object key of the derived preview in the thumbnails container",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[("image", "Image"), ("video", "Video")],
                        help_text="Media category",
                        max_length=10,
                    ),
                ),
                (
                    "mime_type",
                    models.CharField(
                        help_text="MIME type of the stored object", max_length=100
                    ),
                ),
                (
                    "byte_size",
                    models.BigIntegerField(
                        help_text="Size of the permanent object in bytes"
                    ),
                ),
                (
                    "pixel_width",
                    models.PositiveIntegerField(
                        blank=True, help_text="Source width in pixels", null=True
                    ),
                ),
                (
                    "pixel_height",
                    models.PositiveIntegerField(
                        blank=True, help_text="Source height in pixels", null=True
                    ),
                ),
                (
                    "preview_width",
                    models.PositiveIntegerField(
                        blank=True, help_text="Preview width in pixels", null=True
                    ),
                ),
                (
                    "preview_height",
                    models.PositiveIntegerField(
                        blank=True, help_text="Preview height in pixels", null=True
                    ),
                ),
                (
                    "extracted_metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Capture metadata merged with client-supplied metadata",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("processing", "Processing"),
                            ("ready", "Ready"),
                            ("failed", "Failed"),
                        ],
                        default="ready",
                        help_text="Media-level status",
                        max_length=20,
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        help_text="User who uploaded this media",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="media_assets",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "upload_session",
                    models.OneToOneField(
                        blank=True,
                        help_text="Upload session this asset was created from",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="media_asset",
                        to="media.uploadsession",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["owner", "-created_at"],
                        name="idx_media_asset_owner_created",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AlbumMedia",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "position",
                    models.PositiveIntegerField(
                        db_index=True,
                        default=0,
                        help_text="Position for ordering (lower numbers appear first)",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "album",
                    models.ForeignKey(
                        help_text="Album the media belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="album_media",
                        to="media.album",
                    ),
                ),
                (
                    "media",
                    models.ForeignKey(
                        help_text="Linked media asset",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="album_links",
                        to="media.mediaasset",
                    ),
                ),
            ],
            options={
                "ordering": ["album", "position"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("album", "media"), name="uniq_album_media"
                    ),
                ],
            },
        ),
        migrations.AddField(
            model_name="album",
            name="media",
            field=models.ManyToManyField(
                blank=True,
                related_name="albums",
                through="media.AlbumMedia",
                to="media.mediaasset",
            ),
        ),
        migrations.CreateModel(
            name="DownloadJob",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "requested_asset_ids",
                    models.JSONField(
                        default=list,
                        help_text="Ordered list of requested media asset ids",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("processing", "Processing"),
                            ("ready", "Ready"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="processing",
                        help_text="Current job status (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "archive_path",
                    models.CharField(
                        blank=True,
                        help_text="Object key of the archive in the downloads container",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "total_byte_estimate",
                    models.BigIntegerField(
                        default=0,
                        help_text="Sum of constituent asset sizes at request time",
                    ),
                ),
                (
                    "archive_size",
                    models.BigIntegerField(
                        blank=True,
                        help_text="Size of the finished archive in bytes",
                        null=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Why assembly failed, if it did",
                        max_length=255,
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the job reached a terminal state",
                        null=True,
                    ),
                ),
                (
                    "expires_at",
                    models.DateTimeField(
                        help_text="When the archive stops being offered"
                    ),
                ),
                (
                    "requested_by",
                    models.ForeignKey(
                        help_text="User who requested the archive",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="download_jobs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="idx_download_job_status",
                    ),
                ],
            },
        ),
    ]
