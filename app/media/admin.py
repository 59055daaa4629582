"""Django admin configuration for media app."""

from django.contrib import admin

from media.models import Album, AlbumMedia, DownloadJob, MediaAsset, UploadSession


@admin.register(UploadSession)
class UploadSessionAdmin(admin.ModelAdmin):
    """Read-mostly view of upload sessions; state changes go through services."""

    list_display = [
        "id",
        "filename",
        "file_size",
        "uploaded_bytes",
        "uploader",
        "status",
        "expires_at",
        "created_at",
    ]
    list_filter = ["status", "mime_type"]
    search_fields = ["filename", "object_path", "uploader__username"]
    readonly_fields = [
        "id",
        "status",
        "object_path",
        "block_ids",
        "processing_started_at",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["uploader", "album"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]


@admin.register(MediaAsset)
class MediaAssetAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "filename",
        "kind",
        "byte_size",
        "owner",
        "status",
        "created_at",
    ]
    list_filter = ["kind", "status"]
    search_fields = ["filename", "blob_path", "owner__username"]
    readonly_fields = [
        "id",
        "blob_path",
        "preview_path",
        "byte_size",
        "pixel_width",
        "pixel_height",
        "preview_width",
        "preview_height",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["owner", "upload_session"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]


@admin.register(DownloadJob)
class DownloadJobAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "requested_by",
        "status",
        "total_byte_estimate",
        "archive_size",
        "completed_at",
        "created_at",
    ]
    list_filter = ["status"]
    search_fields = ["requested_by__username"]
    readonly_fields = [
        "id",
        "status",
        "requested_asset_ids",
        "archive_path",
        "archive_size",
        "completed_at",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["requested_by"]
    ordering = ["-created_at"]


class AlbumMediaInline(admin.TabularInline):
    model = AlbumMedia
    raw_id_fields = ["media"]
    extra = 0


@admin.register(Album)
class AlbumAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "owner", "created_at"]
    search_fields = ["name", "owner__username"]
    readonly_fields = ["id", "created_at", "updated_at"]
    raw_id_fields = ["owner"]
    inlines = [AlbumMediaInline]
    ordering = ["name"]
