"""
Celery tasks for upload processing, archive assembly and maintenance.

This module provides async tasks for:
- Processing committed uploads when the pipeline runs deferred
- Assembling batch download archives (``archives`` queue)
- Expiring abandoned upload sessions
- Failing sessions and jobs left processing by a crashed worker
- Purging download archives past their retention window

Tasks never retry automatically. Every terminal state is written at most
once, and a redelivered task finds its record already finalized.

Usage:
    from media.tasks import assemble_download_archive

    assemble_download_archive.delay(str(job.id))

Periodic tasks are registered with django-celery-beat by the
``0002_add_celery_beat_schedules`` and ``0004_add_download_purge_schedule``
migrations.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30


# =============================================================================
# Pipeline Tasks
# =============================================================================


@shared_task(bind=True, acks_late=True)
def process_upload_session(self, session_id: str) -> dict:
    """
    Run the processing pipeline for a committed upload session.

    Sessions not in ``processing`` are skipped. A pipeline failure has
    already moved the session to ``failed`` when it reaches this task.

    Args:
        session_id: UUID of the UploadSession.

    Returns:
        Dict with session id, outcome and media id if created.
    """
    from media.services.uploads import get_upload_service

    logger.info(
        "Processing upload session",
        extra={"session_id": session_id, "task_id": self.request.id},
    )

    try:
        media = get_upload_service().process_by_id(session_id)
    except BaseApplicationError as e:
        return {
            "session_id": session_id,
            "status": "failed",
            "error_code": e.error_code,
        }

    if media is None:
        return {"session_id": session_id, "status": "skipped"}

    return {
        "session_id": session_id,
        "status": "completed",
        "media_id": str(media.id),
    }


@shared_task(bind=True, acks_late=True)
def assemble_download_archive(self, job_id: str) -> dict:
    """
    Build the archive for a download job.

    Routed to the ``archives`` queue (see CELERY_TASK_ROUTES), whose worker
    concurrency bounds how many originals are streamed at once.

    Args:
        job_id: UUID of the DownloadJob.

    Returns:
        Dict with job id and resulting status, or ``locked`` if another
        worker is already assembling the job.
    """
    from media.services.downloads import get_archive_assembler

    logger.info(
        "Assembling download archive",
        extra={"job_id": job_id, "task_id": self.request.id},
    )

    job = get_archive_assembler().assemble(job_id)
    if job is None:
        return {"job_id": job_id, "status": "locked"}

    return {"job_id": job_id, "status": job.status}


# =============================================================================
# Maintenance Tasks
# =============================================================================


@shared_task
def expire_abandoned_upload_sessions() -> dict:
    """
    Periodic task to expire upload sessions whose write URL has lapsed.

    Sessions are also expired lazily when polled; this catches the ones a
    client never came back for and discards their staged blocks.

    Returns:
        Dict with count of sessions expired.
    """
    from media.services.uploads import get_upload_service

    expired_count = get_upload_service().expire_abandoned()

    logger.info(
        "Expired abandoned upload sessions",
        extra={"expired_count": expired_count},
    )
    return {"expired_count": expired_count}


@shared_task
def fail_stuck_upload_sessions() -> dict:
    """
    Periodic task to fail sessions stuck in processing.

    Handles cases where the worker crashed mid-pipeline.

    Returns:
        Dict with count of sessions failed.
    """
    from media.services.uploads import get_upload_service

    failed_count = get_upload_service().fail_stuck(
        timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)
    )
    return {"failed_count": failed_count}


@shared_task
def fail_stuck_download_jobs() -> dict:
    """
    Periodic task to fail download jobs stuck in processing.

    A job whose worker has reported no progress for the archive claim TTL
    has outlived any worker that could have been assembling it. Queued
    jobs are only failed once their retention window has closed.

    Returns:
        Dict with count of jobs failed.
    """
    from media.services.downloads import get_download_service

    failed_count = get_download_service().fail_stuck(
        timedelta(seconds=settings.ARCHIVE_LOCK_TTL_SECONDS)
    )
    return {"failed_count": failed_count}

@shared_task
def purge_expired_download_jobs() -> dict:
    """
    Periodic task to delete download jobs past their retention window.

    Removes the archive object first, then the job row.

    Returns:
        Dict with count of jobs purged.
    """
    from media.services.downloads import get_download_service

    purged_count = get_download_service().purge_expired()
    return {"purged_count": purged_count}
