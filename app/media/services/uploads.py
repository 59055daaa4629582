"""
Upload session lifecycle.

Tracks a client upload from initiation to a processed MediaAsset without
ever holding the payload. The client stages blocks directly against the
object store through pre-signed URLs; this service only issues those URLs
and records intent, progress and the final commit.

State machine:

    pending   --(progress reported)-----------------> uploading
    pending|uploading --(commit)---------------------> processing
    processing --(pipeline succeeds)-----------------> completed
    processing --(pipeline fails)--------------------> failed
    pending|uploading --(write URL lapsed, observed)-> failed ("expired")

Usage:
    from media.services.uploads import get_upload_service

    service = get_upload_service()
    target = service.begin(user, "a.jpg", 2_000_000, "image/jpeg")
    urls = service.issue_block_urls(target.session.id, user, block_ids)
    # ... client PUTs each block to its URL and commits against upload_url ...
    result = service.commit(target.session.id, user, block_ids)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService
from media.exceptions import PayloadTooLargeError, UnsupportedMediaTypeError
from media.models import Album, MediaAsset, UploadSession
from media.services.chunked_upload.blocks import block_count, parse_block_ordinal
from media.services.pipeline import ProcessingPipeline
from media.services.storage import Container

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any

    from django.contrib.auth.models import AbstractBaseUser

    from media.services.scheduling import TaskScheduler
    from media.services.storage import ObjectStoreGateway


# =============================================================================
# Constants
# =============================================================================

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/heic",
        "video/mp4",
        "video/quicktime",
        "video/webm",
        "video/x-msvideo",
    }
)

MAX_FILE_SIZE = 10 * 1024 * 1024 * 1024  # 10 GiB

# Block URLs pre-signed per request
MAX_BLOCK_URLS_PER_REQUEST = 1000

PROCESSING_MODE_INLINE = "inline"
PROCESSING_MODE_DEFERRED = "deferred"

STUCK_REASON = "stuck"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class UploadTarget:
    """What a client needs to start staging blocks."""

    session: UploadSession
    upload_url: str
    block_size: int
    expires_at: "datetime"
    commit_format: str


@dataclass
class BlockUrls:
    """Pre-signed staging URLs for a batch of blocks."""

    urls: dict[str, str]
    expires_at: "datetime"


@dataclass
class CommitResult:
    """
    Outcome of a commit.

    ``media`` is None when processing was deferred to a worker; the client
    then polls the session status.
    """

    session: UploadSession
    media: MediaAsset | None = None
    original_url: str | None = None
    preview_url: str | None = None

    @property
    def deferred(self) -> bool:
        return self.media is None


# =============================================================================
# Service
# =============================================================================


class UploadSessionService(BaseService):
    """
    Upload session state machine.

    Args:
        gateway: Object store issuing URLs and holding staged objects
        scheduler: Runs deferred processing
        pipeline: Post-commit processing; defaults to one on ``gateway``
        processing_mode: "inline" runs the pipeline inside commit,
            "deferred" schedules it and returns immediately
        max_file_size: Largest declared size accepted by begin
        upload_url_expiry: Validity of the write URL
        read_url_expiry: Validity of URLs returned after processing
    """

    def __init__(
        self,
        gateway: "ObjectStoreGateway",
        scheduler: "TaskScheduler",
        pipeline: ProcessingPipeline | None = None,
        processing_mode: str = PROCESSING_MODE_INLINE,
        max_file_size: int = MAX_FILE_SIZE,
        upload_url_expiry: timedelta = timedelta(minutes=60),
        read_url_expiry: timedelta = timedelta(minutes=60),
    ) -> None:
        if processing_mode not in (PROCESSING_MODE_INLINE, PROCESSING_MODE_DEFERRED):
            raise ValueError(f"Unknown processing mode: {processing_mode}")
        self.gateway = gateway
        self.scheduler = scheduler
        self.pipeline = pipeline or ProcessingPipeline(gateway)
        self.processing_mode = processing_mode
        self.max_file_size = max_file_size
        self.upload_url_expiry = upload_url_expiry
        self.read_url_expiry = read_url_expiry

    # =========================================================================
    # Begin
    # =========================================================================

    def begin(
        self,
        user: "AbstractBaseUser",
        filename: str,
        file_size: int,
        mime_type: str,
        collection_id: uuid.UUID | str | None = None,
    ) -> UploadTarget:
        """
        Open an upload session and issue its write URL.

        Raises:
            UnsupportedMediaTypeError: MIME type is not on the allow-list
            PayloadTooLargeError: Declared size exceeds the maximum
            NotFoundError: ``collection_id`` names no album of this user

        No session is created when any of these is raised.
        """
        mime_type = (mime_type or "").strip().lower()
        if mime_type not in ALLOWED_MIME_TYPES:
            raise UnsupportedMediaTypeError(
                f"Unsupported media type: {mime_type}",
                details={
                    "mime_type": mime_type,
                    "allowed": sorted(ALLOWED_MIME_TYPES),
                },
            )

        if file_size > self.max_file_size:
            raise PayloadTooLargeError(
                "Declared file size exceeds the upload limit",
                details={"file_size": file_size, "max_file_size": self.max_file_size},
            )

        album = None
        if collection_id:
            album = Album.objects.filter(pk=collection_id, owner=user).first()
            if album is None:
                raise NotFoundError(
                    "Album not found",
                    error_code="ALBUM_NOT_FOUND",
                    details={"collection_id": str(collection_id)},
                )

        object_path = self._object_path_for(filename)
        signed = self.gateway.create_upload_url(object_path, self.upload_url_expiry)

        session = UploadSession.objects.create(
            uploader=user,
            album=album,
            filename=filename,
            file_size=file_size,
            mime_type=mime_type,
            object_path=object_path,
            storage_upload_id=signed.upload_id,
            expires_at=signed.expires_at,
        )

        self.get_logger().info(
            "Upload session created",
            extra={
                "session_id": str(session.id),
                "user_id": user.pk,
                "file_size": file_size,
                "mime_type": mime_type,
            },
        )

        return UploadTarget(
            session=session,
            upload_url=signed.url,
            block_size=self.gateway.block_size,
            expires_at=signed.expires_at,
            commit_format=self.gateway.commit_format,
        )

    @staticmethod
    def _object_path_for(filename: str) -> str:
        """Random object key that keeps the file's extension."""
        extension = PurePosixPath(filename).suffix.lower()
        return f"{uuid.uuid4().hex}{extension}"

    # =========================================================================
    # Status & Progress
    # =========================================================================

    def get_status(
        self, session_id: uuid.UUID | str, user: "AbstractBaseUser"
    ) -> UploadSession:
        """
        Current state of a session, expiring it if its URL has lapsed.

        Raises:
            NotFoundError: Unknown session, or owned by another user
        """
        session = self._get_owned(session_id, user)
        self._expire_if_lapsed(session)
        return session

    def record_progress(
        self,
        session_id: uuid.UUID | str,
        user: "AbstractBaseUser",
        uploaded_bytes: int,
    ) -> UploadSession:
        """
        Record client-reported progress.

        Raises:
            NotFoundError: Unknown session
            ConflictError: Session no longer accepts blocks
        """
        with self.atomic():
            session = self._get_owned(session_id, user, for_update=True)
            expired = self._expire_if_lapsed(session)
            if not expired and session.accepts_blocks:
                session.record_progress(uploaded_bytes)
                session.save(update_fields=["status", "uploaded_bytes", "updated_at"])
                return session

        raise ConflictError(
            "Upload session no longer accepts progress",
            error_code="UPLOAD_SESSION_CLOSED",
            details={"session_id": str(session.id), "status": session.status},
        )

    def issue_block_urls(
        self,
        session_id: uuid.UUID | str,
        user: "AbstractBaseUser",
        block_ids: list[str],
    ) -> BlockUrls:
        """
        Pre-sign staging URLs for a batch of blocks.

        Each URL accepts the bytes of one block and expires with the
        session's write URL.

        Raises:
            NotFoundError: Unknown session
            ConflictError: Session no longer accepts blocks
            ValidationError: Empty or oversized batch, or a block id that
                is malformed or past the declared file size
        """
        session = self._get_owned(session_id, user)
        if self._expire_if_lapsed(session) or not session.accepts_blocks:
            raise ConflictError(
                "Upload session no longer accepts blocks",
                error_code="UPLOAD_SESSION_CLOSED",
                details={"session_id": str(session.id), "status": session.status},
            )

        if not block_ids or len(block_ids) > MAX_BLOCK_URLS_PER_REQUEST:
            raise ValidationError(
                f"Request between 1 and {MAX_BLOCK_URLS_PER_REQUEST} block URLs",
                error_code="INVALID_BLOCK_LIST",
                details={"count": len(block_ids)},
            )

        last_ordinal = max(block_count(session.file_size, self.gateway.block_size), 1) - 1
        for block_id in block_ids:
            if parse_block_ordinal(block_id) > last_ordinal:
                raise ValidationError(
                    f"Block {block_id} lies past the declared file size",
                    error_code="BLOCK_OUT_OF_RANGE",
                    details={"block_id": block_id, "last_ordinal": last_ordinal},
                )

        urls = self.gateway.create_block_urls(
            session.object_path,
            block_ids,
            session.expires_at,
            upload_id=session.storage_upload_id,
        )
        return BlockUrls(urls=urls, expires_at=session.expires_at)

    # =========================================================================
    # Commit
    # =========================================================================

    def commit(
        self,
        session_id: uuid.UUID | str,
        user: "AbstractBaseUser",
        block_ids: list[str],
        metadata: dict[str, Any] | None = None,
    ) -> CommitResult:
        """
        Accept the client's commit and process the upload.

        Retrying a commit that already completed returns the same result
        without creating a second MediaAsset.

        Raises:
            NotFoundError: Unknown session (nothing is mutated)
            ConflictError: Session is already processing, failed or expired
            StorageError: Promotion failed (inline mode; session -> failed)
        """
        with self.atomic():
            session = self._get_owned(session_id, user, for_update=True)

            if session.status == UploadSession.Status.COMPLETED:
                return self._completed_result(session)

            # Expiry is persisted by this transaction; the conflict is raised
            # after it commits.
            expired = self._expire_if_lapsed(session)

            if not expired and session.accepts_blocks:
                session.start_processing(block_ids, metadata)
                session.save(
                    update_fields=[
                        "status",
                        "block_ids",
                        "client_metadata",
                        "uploaded_bytes",
                        "processing_started_at",
                        "updated_at",
                    ]
                )
                accepted = True
            else:
                accepted = False

        if not accepted:
            if session.status == UploadSession.Status.PROCESSING:
                raise ConflictError(
                    "Upload is already being processed",
                    error_code="UPLOAD_IN_PROGRESS",
                    details={"session_id": str(session.id)},
                )
            raise ConflictError(
                "Upload session has failed and cannot be committed",
                error_code="UPLOAD_SESSION_FAILED",
                details={
                    "session_id": str(session.id),
                    "reason": session.failure_reason,
                },
            )

        self.get_logger().info(
            "Upload committed",
            extra={
                "session_id": str(session.id),
                "block_count": len(block_ids),
                "mode": self.processing_mode,
            },
        )

        if self.processing_mode == PROCESSING_MODE_DEFERRED:
            from media.tasks import process_upload_session

            self.scheduler.schedule(process_upload_session, str(session.id))
            return CommitResult(session=session)

        media = self.process(session)
        return self._completed_result(session, media)

    # =========================================================================
    # Processing
    # =========================================================================

    def process(self, session: UploadSession) -> MediaAsset:
        """
        Run the pipeline for a session in ``processing``.

        The session ends ``completed`` on success. On any error it ends
        ``failed`` and the error is re-raised.

        Both outcomes are written only while the row is still
        ``processing``, so a session the stuck sweeper already failed stays
        failed. A pipeline that finishes after that raises ConflictError;
        the asset it created is kept.
        """
        logger = self.get_logger()
        try:
            media = self.pipeline.run(session)
        except Exception as e:
            logger.exception(
                "Upload processing failed",
                extra={"session_id": str(session.id), "error": str(e)},
            )
            session.fail(str(e) or e.__class__.__name__)
            self._persist_outcome(session)
            raise

        session.complete()
        if not self._persist_outcome(session):
            # Fresh instance; refresh_from_db cannot reset a protected FSMField
            current = UploadSession.objects.get(pk=session.pk)
            logger.warning(
                "Upload session finalized before its pipeline finished",
                extra={
                    "session_id": str(session.id),
                    "status": current.status,
                    "media_id": str(media.id),
                },
            )
            raise ConflictError(
                "Upload session was finalized while processing",
                error_code="UPLOAD_SESSION_FINALIZED",
                details={
                    "session_id": str(session.id),
                    "status": current.status,
                    "reason": current.failure_reason,
                },
            )
        return media

    def _persist_outcome(self, session: UploadSession) -> bool:
        """Write a terminal state if the row is still ``processing``."""
        return bool(
            UploadSession.objects.filter(
                pk=session.pk, status=UploadSession.Status.PROCESSING
            ).update(
                status=session.status,
                failure_reason=session.failure_reason,
                updated_at=timezone.now(),
            )
        )

    def process_by_id(self, session_id: uuid.UUID | str) -> MediaAsset | None:
        """
        Worker entry point for deferred processing.

        Sessions not in ``processing`` are skipped, so a redelivered task
        does not run the pipeline twice.
        """
        try:
            session = UploadSession.objects.get(pk=session_id)
        except UploadSession.DoesNotExist:
            raise NotFoundError(
                "Upload session not found",
                error_code="UPLOAD_SESSION_NOT_FOUND",
                details={"session_id": str(session_id)},
            )

        if session.status != UploadSession.Status.PROCESSING:
            self.get_logger().info(
                "Skipping processing for session not in processing state",
                extra={"session_id": str(session.id), "status": session.status},
            )
            return None

        return self.process(session)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def expire_abandoned(self) -> int:
        """Fail every open session whose write URL has lapsed."""
        stale = UploadSession.objects.filter(
            status__in=[UploadSession.Status.PENDING, UploadSession.Status.UPLOADING],
            expires_at__lte=timezone.now(),
        )
        expired = 0
        for session in stale.iterator():
            if self._expire_if_lapsed(session):
                expired += 1
        return expired

    def fail_stuck(self, older_than: timedelta) -> int:
        """
        Fail sessions that have been processing longer than ``older_than``.

        Uses a conditional update so a pipeline finishing concurrently
        keeps its own terminal state.
        """
        cutoff = timezone.now() - older_than
        stuck = UploadSession.objects.filter(
            status=UploadSession.Status.PROCESSING,
            processing_started_at__lt=cutoff,
        )
        failed = 0
        for session in stuck.iterator():
            session.fail(STUCK_REASON)
            failed += self._persist_outcome(session)
        if failed:
            self.get_logger().warning(
                "Failed stuck upload sessions", extra={"count": failed}
            )
        return failed

    # =========================================================================
    # Helpers
    # =========================================================================

    def media_for(self, session: UploadSession) -> MediaAsset | None:
        """The asset a completed session produced, if any."""
        return MediaAsset.objects.filter(upload_session=session).first()

    def _get_owned(
        self,
        session_id: uuid.UUID | str,
        user: "AbstractBaseUser",
        for_update: bool = False,
    ) -> UploadSession:
        queryset = UploadSession.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=session_id, uploader=user)
        except (UploadSession.DoesNotExist, ValueError):
            raise NotFoundError(
                "Upload session not found",
                error_code="UPLOAD_SESSION_NOT_FOUND",
                details={"session_id": str(session_id)},
            )

    def _expire_if_lapsed(self, session: UploadSession) -> bool:
        """Persist expiry for an open session past its deadline."""
        if not (session.accepts_blocks and session.is_expired):
            return False

        session.expire()
        session.save(update_fields=["status", "failure_reason", "updated_at"])
        self.gateway.discard_upload(session.object_path, session.storage_upload_id)

        self.get_logger().info(
            "Upload session expired",
            extra={"session_id": str(session.id)},
        )
        return True

    def _completed_result(
        self, session: UploadSession, media: MediaAsset | None = None
    ) -> CommitResult:
        media = media or self.media_for(session)
        if media is None:
            raise ConflictError(
                "Completed session has no media record",
                error_code="UPLOAD_MEDIA_MISSING",
                details={"session_id": str(session.id)},
            )

        original_url = self.gateway.create_read_url(
            Container.ORIGINALS,
            media.blob_path,
            self.read_url_expiry,
            download_name=media.filename,
        ).url
        preview_url = None
        if media.has_preview:
            preview_url = self.gateway.create_read_url(
                Container.THUMBNAILS, media.preview_path, self.read_url_expiry
            ).url

        return CommitResult(
            session=session,
            media=media,
            original_url=original_url,
            preview_url=preview_url,
        )


def get_upload_service() -> UploadSessionService:
    """Build the service with production collaborators from settings."""
    from media.services.scheduling import get_scheduler
    from media.services.storage import get_object_store

    return UploadSessionService(
        gateway=get_object_store(),
        scheduler=get_scheduler(),
        processing_mode=settings.UPLOAD_PROCESSING_MODE,
        max_file_size=settings.UPLOAD_MAX_FILE_SIZE,
        upload_url_expiry=timedelta(minutes=settings.UPLOAD_URL_EXPIRY_MINUTES),
        read_url_expiry=timedelta(minutes=settings.DOWNLOAD_URL_EXPIRY_MINUTES),
    )
