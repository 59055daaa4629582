"""
Batch download jobs.

A client asks for a set of media assets as one archive. The request is
answered immediately with a job id; a worker on the ``archives`` queue
builds the ZIP and the client polls until the job is ready.

    processing --(archive written)--> ready
    processing --(any error)--------> failed

Each job is finalized exactly once. Assembly holds a per-job single-flight
claim and the terminal write is conditional on the job still being
processing, so a duplicate delivery can neither rebuild nor overwrite the
result. Jobs and their archives are offered until ``expires_at`` and then
purged by a periodic sweep.

Usage:
    from media.services.downloads import get_download_service

    job = get_download_service().request_batch(user, media_ids)
    status = get_download_service().poll(job.id, user)
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from datetime import timedelta
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import Q, Sum
from django.utils import timezone

from core.exceptions import (
    ConflictError,
    LockAcquisitionError,
    NotFoundError,
    ValidationError,
)
from core.locks import SingleFlightLock
from core.services import BaseService
from media.exceptions import StorageError
from media.models import DownloadJob, MediaAsset
from media.services.storage import Container

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from datetime import datetime

    from django.contrib.auth.models import AbstractBaseUser

    from media.services.scheduling import TaskScheduler
    from media.services.storage import ObjectStoreGateway

logger = logging.getLogger(__name__)

ARCHIVE_SPOOL_MAX_MEMORY = 16 * 1024 * 1024
STUCK_REASON = "stuck"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class DownloadStatus:
    """
    Poll result for a download job.

    URL fields are only set once the job is ready.
    """

    job: DownloadJob
    download_url: str | None = None
    expires_at: "datetime | None" = None
    size: int | None = None


# =============================================================================
# Request / Poll
# =============================================================================


class DownloadJobService(BaseService):
    """
    Accepts batch requests and reports their progress.

    Args:
        gateway: Object store holding originals and archives
        scheduler: Runs archive assembly
        url_expiry: Validity of archive download URLs
        retention: How long a finished archive is offered
    """

    def __init__(
        self,
        gateway: "ObjectStoreGateway",
        scheduler: "TaskScheduler",
        url_expiry: timedelta = timedelta(minutes=60),
        retention: timedelta = timedelta(hours=24),
    ) -> None:
        self.gateway = gateway
        self.scheduler = scheduler
        self.url_expiry = url_expiry
        self.retention = retention

    def request_batch(
        self,
        user: "AbstractBaseUser",
        media_ids: "Iterable[uuid.UUID | str]",
    ) -> DownloadJob:
        """
        Create a download job for the given assets and schedule assembly.

        Resolution is all-or-nothing: if any id does not name one of the
        caller's assets, no job is created.

        Raises:
            ValidationError: No ids given
            NotFoundError: At least one id could not be resolved
        """
        requested = list(dict.fromkeys(str(media_id) for media_id in media_ids))
        if not requested:
            raise ValidationError(
                "At least one media id is required",
                error_code="EMPTY_BATCH",
            )

        assets = MediaAsset.objects.filter(pk__in=requested, owner=user)
        found = {str(pk) for pk in assets.values_list("pk", flat=True)}
        missing = [media_id for media_id in requested if media_id not in found]
        if missing:
            raise NotFoundError(
                "Some media could not be found",
                error_code="MEDIA_NOT_FOUND",
                details={"missing_ids": missing},
            )

        estimate = assets.aggregate(total=Sum("byte_size"))["total"] or 0

        with self.atomic():
            job = DownloadJob.objects.create(
                requested_by=user,
                requested_asset_ids=requested,
                total_byte_estimate=estimate,
                expires_at=timezone.now() + self.retention,
            )
            from media.tasks import assemble_download_archive

            self.scheduler.schedule(assemble_download_archive, str(job.id))

        self.get_logger().info(
            "Download job created",
            extra={
                "job_id": str(job.id),
                "media_count": len(requested),
                "estimated_size": estimate,
            },
        )
        return job

    def poll(
        self, job_id: "uuid.UUID | str", user: "AbstractBaseUser"
    ) -> DownloadStatus:
        """
        Current state of a job, with a fresh download URL once ready.

        Polling never changes the job. Download URLs never outlive the
        job's retention window.

        Raises:
            NotFoundError: Unknown job, requested by another user, or past
                its retention window (DOWNLOAD_EXPIRED)
        """
        try:
            job = DownloadJob.objects.get(pk=job_id, requested_by=user)
        except (DownloadJob.DoesNotExist, ValueError):
            raise NotFoundError(
                "Download not found",
                error_code="DOWNLOAD_NOT_FOUND",
                details={"download_id": str(job_id)},
            )

        if job.is_expired:
            raise NotFoundError(
                "Download has expired",
                error_code="DOWNLOAD_EXPIRED",
                details={
                    "download_id": str(job.id),
                    "expired_at": job.expires_at.isoformat(),
                },
            )

        if not job.is_ready:
            return DownloadStatus(job=job)

        signed = self.gateway.create_read_url(
            Container.DOWNLOADS,
            job.archive_path,
            min(self.url_expiry, job.expires_at - timezone.now()),
            download_name=f"media-{job.id}.zip",
        )
        return DownloadStatus(
            job=job,
            download_url=signed.url,
            expires_at=signed.expires_at,
            size=job.archive_size,
        )

    def fail_stuck(self, older_than: timedelta) -> int:
        """
        Fail processing jobs whose assembly has gone quiet.

        A job is stuck when its worker has not reported progress for
        ``older_than``, or when no worker picked it up before its retention
        window closed. Jobs merely waiting in the queue are left alone.
        """
        now = timezone.now()
        stuck = DownloadJob.objects.filter(status=DownloadJob.Status.PROCESSING).filter(
            Q(heartbeat_at__lt=now - older_than)
            | Q(heartbeat_at__isnull=True, expires_at__lte=now)
        )
        failed = 0
        for job in stuck.iterator():
            job.mark_failed(STUCK_REASON)
            failed += _finalize(job)
        if failed:
            self.get_logger().warning(
                "Failed stuck download jobs", extra={"count": failed}
            )
        return failed

    def purge_expired(self) -> int:
        """
        Delete finished jobs past their retention window and their archives.

        A job whose archive cannot be deleted is kept and retried on the
        next sweep.
        """
        logger = self.get_logger()
        expired = DownloadJob.objects.filter(expires_at__lte=timezone.now()).exclude(
            status=DownloadJob.Status.PROCESSING
        )
        purged = 0
        for job in expired.iterator():
            if job.archive_path:
                try:
                    self.gateway.delete(Container.DOWNLOADS, job.archive_path)
                except StorageError as e:
                    logger.warning(
                        "Could not delete expired archive",
                        extra={"job_id": str(job.id), "error": str(e)},
                    )
                    continue
            job.delete()
            purged += 1
        if purged:
            logger.info("Purged expired download jobs", extra={"count": purged})
        return purged


# =============================================================================
# Assembly
# =============================================================================


class ArchiveAssembler:
    """
    Builds the ZIP archive for one download job.

    Originals are streamed one at a time into an uncompressed ZIP spooled
    to a temporary file, so memory use does not grow with the batch.

    After each entry the worker refreshes its single-flight claim and the
    job's heartbeat, so a large batch outlives ``lock_ttl`` while a dead
    worker's job is still recognised as stuck.

    Args:
        gateway: Object store holding originals and archives
        lock_ttl: Seconds the claim survives without progress
    """

    def __init__(self, gateway: "ObjectStoreGateway", lock_ttl: int = 900) -> None:
        self.gateway = gateway
        self.lock_ttl = lock_ttl

    def assemble(self, job_id: "uuid.UUID | str") -> DownloadJob | None:
        """
        Build and publish the archive for a job.

        Returns:
            The job after assembly, or None if another worker holds the
            claim for it.

        Raises:
            NotFoundError: Unknown job
        """
        claim = SingleFlightLock(f"download-job:{job_id}", ttl=self.lock_ttl)
        try:
            claim.acquire()
        except LockAcquisitionError:
            logger.info(
                "Archive assembly already in progress",
                extra={"job_id": str(job_id)},
            )
            return None

        try:
            return self._assemble_claimed(job_id, claim)
        finally:
            claim.release()

    def _assemble_claimed(
        self, job_id: "uuid.UUID | str", claim: SingleFlightLock
    ) -> DownloadJob:
        try:
            job = DownloadJob.objects.get(pk=job_id)
        except DownloadJob.DoesNotExist:
            raise NotFoundError(
                "Download not found",
                error_code="DOWNLOAD_NOT_FOUND",
                details={"download_id": str(job_id)},
            )

        if job.status != DownloadJob.Status.PROCESSING or not _heartbeat(
            job, started=True
        ):
            logger.info(
                "Download job already finalized",
                extra={"job_id": str(job.id), "status": job.status},
            )
            return DownloadJob.objects.get(pk=job.pk)

        archive_path = f"{job.id}.zip"
        try:
            archive_size = self._build(job, archive_path, claim)
        except Exception as e:
            logger.exception(
                "Archive assembly failed",
                extra={"job_id": str(job.id), "error": str(e)},
            )
            job.mark_failed(str(e) or e.__class__.__name__)
            if not _finalize(job):
                return DownloadJob.objects.get(pk=job.pk)
            return job

        job.mark_ready(archive_path, archive_size)
        if not _finalize(job):
            logger.warning(
                "Download job finalized concurrently",
                extra={"job_id": str(job.id)},
            )
            return DownloadJob.objects.get(pk=job.pk)

        logger.info(
            "Archive ready",
            extra={
                "job_id": str(job.id),
                "archive_size": archive_size,
                "media_count": job.media_count,
            },
        )
        return job

    def _build(
        self, job: DownloadJob, archive_path: str, claim: SingleFlightLock
    ) -> int:
        assets = self._resolve_assets(job)

        with tempfile.SpooledTemporaryFile(max_size=ARCHIVE_SPOOL_MAX_MEMORY) as spool:
            with zipfile.ZipFile(spool, "w", compression=zipfile.ZIP_STORED) as archive:
                names = ArchiveNames()
                for asset in assets:
                    entry = zipfile.ZipInfo(
                        names.claim(asset.filename),
                        date_time=timezone.localtime(asset.created_at).timetuple()[:6],
                    )
                    entry.compress_type = zipfile.ZIP_STORED
                    with (
                        self.gateway.open(Container.ORIGINALS, asset.blob_path) as source,
                        archive.open(entry, "w", force_zip64=True) as target,
                    ):
                        shutil.copyfileobj(source, target)
                    self._keep_alive(job, claim)

            spool.seek(0)
            return self.gateway.write(Container.DOWNLOADS, archive_path, spool)

    @staticmethod
    def _keep_alive(job: DownloadJob, claim: SingleFlightLock) -> None:
        """
        Report progress after an archive entry.

        Raises:
            ConflictError: The job was finalized elsewhere (e.g. failed as
                stuck); there is no point finishing the archive.
        """
        if not claim.refresh():
            logger.warning(
                "Archive claim lapsed during assembly",
                extra={"job_id": str(job.id)},
            )
        if not _heartbeat(job):
            raise ConflictError(
                "Download job was finalized during assembly",
                error_code="DOWNLOAD_JOB_FINALIZED",
                details={"download_id": str(job.id)},
            )

    @staticmethod
    def _resolve_assets(job: DownloadJob) -> list[MediaAsset]:
        by_id = {
            str(asset.pk): asset
            for asset in MediaAsset.objects.filter(pk__in=job.requested_asset_ids)
        }
        missing = [pk for pk in job.requested_asset_ids if pk not in by_id]
        if missing:
            raise StorageError(
                "Requested media no longer available",
                error_code="MEDIA_GONE",
                details={"missing_ids": missing},
            )
        return [by_id[pk] for pk in job.requested_asset_ids]


class ArchiveNames:
    """
    Unique entry names within one archive.

    Repeated filenames get a counter before the extension:
    ``a.jpg``, ``a (1).jpg``, ``a (2).jpg``.
    """

    def __init__(self) -> None:
        self._used: set[str] = set()

    def claim(self, filename: str) -> str:
        name = PurePosixPath(filename.replace("\\", "/")).name or "file"
        candidate = name
        stem, suffix = PurePosixPath(name).stem, PurePosixPath(name).suffix
        counter = 1
        while candidate.lower() in self._used:
            candidate = f"{stem} ({counter}){suffix}"
            counter += 1
        self._used.add(candidate.lower())
        return candidate


def _heartbeat(job: DownloadJob, started: bool = False) -> int:
    """
    Stamp worker progress on a job that is still processing.

    Returns:
        Number of rows updated (0 once the job is finalized)
    """
    now = timezone.now()
    fields = {"heartbeat_at": now, "updated_at": now}
    if started:
        fields["assembly_started_at"] = now
    return DownloadJob.objects.filter(
        pk=job.pk, status=DownloadJob.Status.PROCESSING
    ).update(**fields)


def _finalize(job: DownloadJob) -> int:
    """
    Persist a terminal transition only if the row is still processing.

    Returns:
        Number of rows updated (0 or 1)
    """
    return DownloadJob.objects.filter(
        pk=job.pk, status=DownloadJob.Status.PROCESSING
    ).update(
        status=job.status,
        archive_path=job.archive_path,
        archive_size=job.archive_size,
        failure_reason=job.failure_reason,
        completed_at=job.completed_at,
        updated_at=timezone.now(),
    )


def get_download_service() -> DownloadJobService:
    """Build the service with production collaborators from settings."""
    from media.services.scheduling import get_scheduler
    from media.services.storage import get_object_store

    return DownloadJobService(
        gateway=get_object_store(),
        scheduler=get_scheduler(),
        url_expiry=timedelta(minutes=settings.DOWNLOAD_URL_EXPIRY_MINUTES),
        retention=timedelta(hours=settings.DOWNLOAD_JOB_RETENTION_HOURS),
    )


def get_archive_assembler() -> ArchiveAssembler:
    from media.services.storage import get_object_store

    return ArchiveAssembler(
        gateway=get_object_store(),
        lock_ttl=settings.ARCHIVE_LOCK_TTL_SECONDS,
    )
