"""
Tests for media Celery tasks.

Tasks are run eagerly with ``.apply()``. Services are built from settings
pointing at a temporary object store.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from django.utils import timezone

from media.models import DownloadJob, MediaAsset, UploadSession
from media.tasks import (
    assemble_download_archive,
    expire_abandoned_upload_sessions,
    fail_stuck_download_jobs,
    fail_stuck_upload_sessions,
    process_upload_session,
    purge_expired_download_jobs,
)
from media.tests.factories import DownloadJobFactory, MediaAssetFactory, UploadSessionFactory

pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def _store(object_store_root, settings):
    settings.UPLOAD_PROCESSING_MODE = "deferred"
    settings.ARCHIVE_LOCK_TTL_SECONDS = 900


class TestProcessUploadSession:
    def test_completes_processing_session(self, user, stage_original, plain_jpeg):
        session = UploadSessionFactory(
            uploader=user,
            status=UploadSession.Status.PROCESSING,
            file_size=len(plain_jpeg),
        )
        stage_original(session.object_path, plain_jpeg)

        result = process_upload_session.apply(args=[str(session.id)]).get()

        media = MediaAsset.objects.get(upload_session=session)
        assert result == {
            "session_id": str(session.id),
            "status": "completed",
            "media_id": str(media.id),
        }
        assert UploadSession.objects.get(pk=session.pk).status == UploadSession.Status.COMPLETED

    def test_skips_session_not_processing(self, user):
        session = UploadSessionFactory(uploader=user, status=UploadSession.Status.COMPLETED)

        result = process_upload_session.apply(args=[str(session.id)]).get()

        assert result == {"session_id": str(session.id), "status": "skipped"}

    def test_pipeline_failure_reported(self, user):
        session = UploadSessionFactory(uploader=user, status=UploadSession.Status.PROCESSING)

        result = process_upload_session.apply(args=[str(session.id)]).get()

        assert result["status"] == "failed"
        assert result["error_code"] == "STAGED_OBJECT_MISSING"
        assert UploadSession.objects.get(pk=session.pk).status == UploadSession.Status.FAILED

    def test_unknown_session(self):
        session_id = str(uuid.uuid4())

        result = process_upload_session.apply(args=[session_id]).get()

        assert result == {
            "session_id": session_id,
            "status": "failed",
            "error_code": "UPLOAD_SESSION_NOT_FOUND",
        }


class TestAssembleDownloadArchive:
    def test_builds_archive(self, user, store_original, mock_redis):
        asset = MediaAssetFactory(owner=user)
        store_original(asset.blob_path, b"original")
        job = DownloadJobFactory(requested_by=user, requested_asset_ids=[str(asset.id)])

        result = assemble_download_archive.apply(args=[str(job.id)]).get()

        assert result == {"job_id": str(job.id), "status": DownloadJob.Status.READY}

    def test_locked_job(self, user, mock_redis):
        mock_redis.set.return_value = False
        job = DownloadJobFactory(requested_by=user)

        result = assemble_download_archive.apply(args=[str(job.id)]).get()

        assert result == {"job_id": str(job.id), "status": "locked"}
        assert DownloadJob.objects.get(pk=job.pk).status == DownloadJob.Status.PROCESSING

    def test_uses_configured_lock_ttl(self, user, mock_redis, settings):
        settings.ARCHIVE_LOCK_TTL_SECONDS = 123
        job = DownloadJobFactory(requested_by=user, status=DownloadJob.Status.FAILED)

        assemble_download_archive.apply(args=[str(job.id)]).get()

        assert mock_redis.set.call_args[1]["ex"] == 123


class TestMaintenanceTasks:
    def test_expire_abandoned_upload_sessions(self):
        UploadSessionFactory(expires_at=timezone.now() - timedelta(minutes=5))
        UploadSessionFactory()

        assert expire_abandoned_upload_sessions() == {"expired_count": 1}

    def test_fail_stuck_upload_sessions(self):
        UploadSessionFactory(
            status=UploadSession.Status.PROCESSING,
            processing_started_at=timezone.now() - timedelta(hours=1),
        )

        assert fail_stuck_upload_sessions() == {"failed_count": 1}

    def test_fail_stuck_download_jobs(self):
        job = DownloadJobFactory(heartbeat_at=timezone.now() - timedelta(hours=1))
        DownloadJobFactory(heartbeat_at=timezone.now())
        DownloadJobFactory()

        assert fail_stuck_download_jobs() == {"failed_count": 1}
        assert DownloadJob.objects.get(pk=job.pk).status == DownloadJob.Status.FAILED

    def test_purge_expired_download_jobs(self):
        DownloadJobFactory(
            status=DownloadJob.Status.FAILED,
            expires_at=timezone.now() - timedelta(minutes=1),
        )
        kept = DownloadJobFactory(status=DownloadJob.Status.FAILED)

        assert purge_expired_download_jobs() == {"purged_count": 1}
        assert list(DownloadJob.objects.values_list("pk", flat=True)) == [kept.pk]


def test_archive_task_routed_to_archives_queue(settings):
    route = settings.CELERY_TASK_ROUTES[assemble_download_archive.name]

    assert route == {"queue": "archives"}
