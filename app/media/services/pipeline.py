"""
Post-commit processing pipeline.

Turns a committed staging object into a MediaAsset:

    1. Promote uploads/<path> to originals/<path>        (fatal)
    2. Classify as image or video                         (routing only)
    3. Capture metadata from the first 64 KiB (images)    (non-fatal)
    4. Render and store a preview (images)                (non-fatal)
    5. Create the MediaAsset record                       (fatal)
    6. Link the asset into the session's album            (fatal, no rollback)

The pipeline does not touch session state. UploadSessionService owns the
processing -> completed/failed transitions around ``run()``.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from io import BytesIO
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError
from media.models import AlbumMedia, MediaAsset
from media.processors import (
    METADATA_PREFIX_BYTES,
    NonFatalExtractionError,
    extract_capture_metadata,
    render_preview,
)
from media.processors.base import PREVIEW_SPOOL_MAX_MEMORY, PREVIEW_SUFFIX
from media.services.storage import Container

if TYPE_CHECKING:
    from typing import Any

    from media.models import UploadSession
    from media.processors import RenderedPreview
    from media.services.storage import ObjectStoreGateway

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "heic"})
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "webm", "avi"})


def classify(mime_type: str, filename: str) -> str:
    """
    Decide which processing route a file takes.

    The MIME type wins when it names a media family; otherwise the filename
    extension decides. Anything not recognised as an image takes the video
    route, which skips image-only derivation.
    """
    family = (mime_type or "").split("/", 1)[0].lower()
    if family == "image":
        return MediaAsset.Kind.IMAGE
    if family == "video":
        return MediaAsset.Kind.VIDEO

    extension = PurePosixPath(filename or "").suffix.lstrip(".").lower()
    if extension in IMAGE_EXTENSIONS:
        return MediaAsset.Kind.IMAGE
    if extension not in VIDEO_EXTENSIONS:
        logger.debug(
            "Unrecognised media type, skipping image steps",
            extra={"mime_type": mime_type, "filename": filename},
        )
    return MediaAsset.Kind.VIDEO


def preview_path_for(object_path: str) -> str:
    """Key of the preview object derived from an original."""
    return f"{PurePosixPath(object_path).stem}{PREVIEW_SUFFIX}"


class ProcessingPipeline:
    """
    Runs the derivation steps for one committed session.

    Args:
        gateway: Object store the session's blocks were committed to.
    """

    def __init__(self, gateway: "ObjectStoreGateway") -> None:
        self.gateway = gateway

    def run(self, session: "UploadSession") -> MediaAsset:
        """
        Process a committed session.

        Returns:
            The created MediaAsset (status READY).

        Raises:
            StorageError: If promotion fails. No MediaAsset is created.
            Exception: Any error from record creation or album linking.
        """
        object_path = session.object_path
        log_extra = {"session_id": str(session.id), "object_path": object_path}

        byte_size = self.gateway.promote(object_path)
        kind = classify(session.mime_type, session.filename)

        metadata: dict[str, Any] = dict(session.client_metadata or {})
        preview: RenderedPreview | None = None
        preview_path = ""

        if kind == MediaAsset.Kind.IMAGE:
            metadata.update(self._extract_metadata(object_path, log_extra))
            preview = self._derive_preview(object_path, log_extra)
            if preview is not None:
                preview_path = preview_path_for(object_path)

        media = MediaAsset.objects.create(
            owner_id=session.uploader_id,
            upload_session=session,
            filename=session.filename,
            blob_path=object_path,
            preview_path=preview_path,
            kind=kind,
            mime_type=session.mime_type,
            byte_size=byte_size,
            pixel_width=preview.source_width if preview else None,
            pixel_height=preview.source_height if preview else None,
            preview_width=preview.width if preview else None,
            preview_height=preview.height if preview else None,
            extracted_metadata=metadata,
            status=MediaAsset.Status.READY,
        )

        if session.album_id:
            link = AlbumMedia(album_id=session.album_id, media=media)
            link.position = link.next_position()
            link.save()

        logger.info(
            "Processed upload",
            extra={
                **log_extra,
                "media_id": str(media.id),
                "kind": kind,
                "has_preview": media.has_preview,
            },
        )
        return media

    def _extract_metadata(
        self, object_path: str, log_extra: dict[str, str]
    ) -> dict[str, str]:
        try:
            header = self.gateway.read_range(
                Container.ORIGINALS, object_path, 0, METADATA_PREFIX_BYTES
            )
            return extract_capture_metadata(header)
        except (NonFatalExtractionError, BaseApplicationError, OSError) as e:
            logger.warning(
                "Metadata extraction failed",
                extra={**log_extra, "error": str(e)},
            )
            return {}

    def _derive_preview(
        self, object_path: str, log_extra: dict[str, str]
    ) -> "RenderedPreview | None":
        try:
            with (
                self.gateway.open(Container.ORIGINALS, object_path) as source,
                tempfile.SpooledTemporaryFile(
                    max_size=PREVIEW_SPOOL_MAX_MEMORY
                ) as spool,
            ):
                shutil.copyfileobj(source, spool)
                spool.seek(0)
                preview = render_preview(spool)

            self.gateway.write(
                Container.THUMBNAILS,
                preview_path_for(object_path),
                BytesIO(preview.content),
            )
        except (NonFatalExtractionError, BaseApplicationError, OSError) as e:
            logger.warning(
                "Preview derivation failed",
                extra={**log_extra, "error": str(e)},
            )
            return None

        return preview
