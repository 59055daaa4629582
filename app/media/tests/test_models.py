"""Tests for media model state machines and helpers."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.db import IntegrityError
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from media.models import AlbumMedia, DownloadJob, UploadSession
from media.tests.factories import (
    AlbumFactory,
    AlbumMediaFactory,
    DownloadJobFactory,
    MediaAssetFactory,
    UploadSessionFactory,
)

pytestmark = pytest.mark.django_db


class TestUploadSessionTransitions:
    def test_progress_moves_to_uploading(self):
        session = UploadSessionFactory(file_size=1000)

        session.record_progress(400)

        assert session.status == UploadSession.Status.UPLOADING
        assert session.uploaded_bytes == 400
        assert session.progress_percent == 40.0

    def test_progress_never_decreases(self):
        session = UploadSessionFactory(file_size=1000)
        session.record_progress(600)

        session.record_progress(100)

        assert session.uploaded_bytes == 600

    def test_progress_capped_at_declared_size(self):
        session = UploadSessionFactory(file_size=1000)

        session.record_progress(5000)

        assert session.uploaded_bytes == 1000
        assert session.progress_percent == 100.0

    def test_start_processing_records_commit(self):
        session = UploadSessionFactory(file_size=1000)

        session.start_processing(["b1", "b2"], {"caption": "hi"})

        assert session.status == UploadSession.Status.PROCESSING
        assert session.block_ids == ["b1", "b2"]
        assert session.client_metadata == {"caption": "hi"}
        assert session.uploaded_bytes == 1000
        assert session.processing_started_at is not None
        assert not session.accepts_blocks

    def test_complete_and_fail_require_processing(self):
        session = UploadSessionFactory()

        with pytest.raises(TransitionNotAllowed):
            session.complete()
        with pytest.raises(TransitionNotAllowed):
            session.fail("boom")

    def test_fail_truncates_reason(self):
        session = UploadSessionFactory(status=UploadSession.Status.PROCESSING)

        session.fail("x" * 500)

        assert session.status == UploadSession.Status.FAILED
        assert len(session.failure_reason) == 255
        assert session.is_terminal

    def test_terminal_sessions_cannot_expire(self):
        session = UploadSessionFactory(status=UploadSession.Status.COMPLETED)

        with pytest.raises(TransitionNotAllowed):
            session.expire()

    def test_expire(self):
        session = UploadSessionFactory(status=UploadSession.Status.UPLOADING)

        session.expire()

        assert session.status == UploadSession.Status.FAILED
        assert session.failure_reason == "expired"

    def test_status_is_protected(self):
        session = UploadSessionFactory()

        with pytest.raises(AttributeError):
            session.status = UploadSession.Status.COMPLETED

    def test_is_expired(self):
        assert UploadSessionFactory(expires_at=timezone.now() - timedelta(seconds=1)).is_expired
        assert not UploadSessionFactory().is_expired


class TestDownloadJobTransitions:
    def test_mark_ready(self):
        job = DownloadJobFactory(requested_asset_ids=["a", "b"])

        job.mark_ready("job.zip", 99)

        assert job.is_ready
        assert job.archive_path == "job.zip"
        assert job.archive_size == 99
        assert job.completed_at is not None
        assert job.media_count == 2

    def test_mark_failed(self):
        job = DownloadJobFactory()

        job.mark_failed("disk full")

        assert job.status == DownloadJob.Status.FAILED
        assert job.failure_reason == "disk full"

    def test_terminal_is_final(self):
        job = DownloadJobFactory(status=DownloadJob.Status.READY, archive_path="x.zip")

        with pytest.raises(TransitionNotAllowed):
            job.mark_failed("late")
        with pytest.raises(TransitionNotAllowed):
            job.mark_ready("y.zip", 1)

    def test_is_expired(self):
        assert DownloadJobFactory(expires_at=timezone.now() - timedelta(seconds=1)).is_expired
        assert not DownloadJobFactory().is_expired


class TestMediaAsset:
    def test_has_preview(self):
        assert MediaAssetFactory(preview_path="a_thumb.jpg").has_preview
        assert not MediaAssetFactory(preview_path="").has_preview

    def test_blob_path_unique(self):
        asset = MediaAssetFactory()

        with pytest.raises(IntegrityError):
            MediaAssetFactory(blob_path=asset.blob_path)


class TestAlbumMedia:
    def test_next_position_appends(self):
        album = AlbumFactory()
        AlbumMediaFactory(album=album, position=0)
        AlbumMediaFactory(album=album, position=4)
        AlbumMediaFactory(position=10)

        assert AlbumMedia(album=album).next_position() == 5

    def test_next_position_empty_album(self):
        assert AlbumMedia(album=AlbumFactory()).next_position() == 0

    def test_media_linked_once(self):
        link = AlbumMediaFactory()

        with pytest.raises(IntegrityError):
            AlbumMediaFactory(album=link.album, media=link.media)
