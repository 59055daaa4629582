"""Media services: upload sessions, processing, batch downloads and storage."""

from media.services.downloads import (
    ArchiveAssembler,
    DownloadJobService,
    DownloadStatus,
    get_archive_assembler,
    get_download_service,
)
from media.services.pipeline import ProcessingPipeline, classify
from media.services.scheduling import (
    CeleryScheduler,
    ImmediateScheduler,
    TaskScheduler,
    get_scheduler,
)
from media.services.uploads import (
    ALLOWED_MIME_TYPES,
    CommitResult,
    UploadSessionService,
    UploadTarget,
    get_upload_service,
)

__all__ = [
    "ALLOWED_MIME_TYPES",
    "ArchiveAssembler",
    "CeleryScheduler",
    "CommitResult",
    "DownloadJobService",
    "DownloadStatus",
    "ImmediateScheduler",
    "ProcessingPipeline",
    "TaskScheduler",
    "UploadSessionService",
    "UploadTarget",
    "classify",
    "get_archive_assembler",
    "get_download_service",
    "get_scheduler",
    "get_upload_service",
]
