"""
URL configuration for media app.

API Documentation Groups (following [App Name] - [Group Name] pattern):

Media - Uploads:
    POST /uploads/init                            - Begin upload session
    POST /uploads/{session_id}/blocks             - Issue block URLs
    GET  /uploads/{session_id}/status             - Get upload status
    POST /uploads/{session_id}/progress           - Report upload progress
    POST /uploads/{session_id}/complete           - Commit upload

Media - Downloads:
    POST /downloads/batch                         - Request batch archive
    GET  /downloads/{download_id}                 - Poll batch archive

The development storage relay (``/storage/<container>/<path>``) is mounted
at the project root in config.urls because pre-signed URLs are not
versioned. It answers 404 unless the local object store is configured.
"""

from django.urls import path

from media.views import (
    BatchDownloadView,
    DownloadStatusView,
    UploadBlockUrlsView,
    UploadCompleteView,
    UploadInitView,
    UploadProgressView,
    UploadStatusView,
)

app_name = "media"

urlpatterns = [
    # Uploads
    path("uploads/init", UploadInitView.as_view(), name="upload-init"),
    path(
        "uploads/<uuid:session_id>/blocks",
        UploadBlockUrlsView.as_view(),
        name="upload-block-urls",
    ),
    path(
        "uploads/<uuid:session_id>/status",
        UploadStatusView.as_view(),
        name="upload-status",
    ),
    path(
        "uploads/<uuid:session_id>/progress",
        UploadProgressView.as_view(),
        name="upload-progress",
    ),
    path(
        "uploads/<uuid:session_id>/complete",
        UploadCompleteView.as_view(),
        name="upload-complete",
    ),
    # Downloads
    path("downloads/batch", BatchDownloadView.as_view(), name="download-batch"),
    path(
        "downloads/<uuid:download_id>",
        DownloadStatusView.as_view(),
        name="download-status",
    ),
]
