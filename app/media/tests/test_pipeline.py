"""Tests for the post-commit processing pipeline."""

from __future__ import annotations

import pytest

from media.exceptions import StorageError
from media.models import AlbumMedia, MediaAsset, UploadSession
from media.services.pipeline import ProcessingPipeline, classify, preview_path_for
from media.services.storage import Container
from media.tests.factories import (
    AlbumFactory,
    AlbumMediaFactory,
    UploadSessionFactory,
)

pytestmark = pytest.mark.django_db


@pytest.fixture
def pipeline(gateway) -> ProcessingPipeline:
    return ProcessingPipeline(gateway)


def _processing_session(**kwargs) -> UploadSession:
    return UploadSessionFactory(status=UploadSession.Status.PROCESSING, **kwargs)


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize(
        ("mime_type", "filename", "expected"),
        [
            ("image/jpeg", "a.mov", MediaAsset.Kind.IMAGE),
            ("video/mp4", "a.jpg", MediaAsset.Kind.VIDEO),
            ("application/octet-stream", "a.HEIC", MediaAsset.Kind.IMAGE),
            ("", "clip.webm", MediaAsset.Kind.VIDEO),
            ("", "notes.txt", MediaAsset.Kind.VIDEO),
            ("", "", MediaAsset.Kind.VIDEO),
        ],
    )
    def test_routes(self, mime_type, filename, expected):
        assert classify(mime_type, filename) == expected


class TestPreviewPath:
    def test_stem_with_suffix(self):
        assert preview_path_for("9c1de2.png") == "9c1de2_thumb.jpg"


class TestImagePipeline:
    """Images get metadata and a preview."""

    def test_creates_ready_asset_with_preview(
        self, pipeline, gateway, stage_original, sample_jpeg, user
    ):
        session = _processing_session(
            uploader=user, filename="IMG_1.JPG", file_size=len(sample_jpeg)
        )
        stage_original(session.object_path, sample_jpeg)

        media = pipeline.run(session)

        assert media.status == MediaAsset.Status.READY
        assert media.owner == user
        assert media.upload_session == session
        assert media.kind == MediaAsset.Kind.IMAGE
        assert media.blob_path == session.object_path
        assert media.byte_size == len(sample_jpeg)
        assert (media.pixel_width, media.pixel_height) == (800, 600)
        assert (media.preview_width, media.preview_height) == (400, 300)
        assert media.preview_path == preview_path_for(session.object_path)
        assert gateway.exists(Container.THUMBNAILS, media.preview_path)
        assert gateway.exists(Container.ORIGINALS, session.object_path)
        assert not gateway.exists(Container.UPLOADS, session.object_path)

    def test_extracted_metadata_overrides_client_values(
        self, pipeline, stage_original, sample_jpeg
    ):
        session = _processing_session(
            client_metadata={"caption": "Beach", "deviceMake": "typed by hand"}
        )
        stage_original(session.object_path, sample_jpeg)

        media = pipeline.run(session)

        assert media.extracted_metadata == {
            "caption": "Beach",
            "capturedAt": "2024:05:01 10:20:30",
            "deviceMake": "Canon",
            "deviceModel": "EOS R5",
        }

    def test_corrupt_image_is_non_fatal(self, pipeline, stage_original, corrupt_image):
        session = _processing_session(client_metadata={"caption": "x"})
        stage_original(session.object_path, corrupt_image)

        media = pipeline.run(session)

        assert media.status == MediaAsset.Status.READY
        assert media.has_preview is False
        assert media.pixel_width is None
        assert media.extracted_metadata == {"caption": "x"}

    def test_preview_write_failure_is_non_fatal(
        self, pipeline, gateway, stage_original, sample_jpeg, mocker
    ):
        session = _processing_session()
        stage_original(session.object_path, sample_jpeg)
        mocker.patch.object(gateway, "write", side_effect=StorageError("disk full"))

        media = pipeline.run(session)

        assert media.has_preview is False
        assert media.extracted_metadata["deviceMake"] == "Canon"

    def test_undecodable_preview_is_non_fatal(
        self, pipeline, stage_original, sample_jpeg, mocker
    ):
        session = _processing_session()
        stage_original(session.object_path, sample_jpeg)
        mocker.patch(
            "media.processors.image.Image.open", side_effect=ValueError("bad tile")
        )

        media = pipeline.run(session)

        assert media.status == MediaAsset.Status.READY
        assert media.has_preview is False

    def test_metadata_reads_only_prefix(
        self, pipeline, gateway, stage_original, sample_jpeg, mocker
    ):
        session = _processing_session()
        stage_original(session.object_path, sample_jpeg)
        spy = mocker.spy(gateway, "read_range")

        pipeline.run(session)

        spy.assert_called_once_with(Container.ORIGINALS, session.object_path, 0, 65536)


class TestVideoPipeline:
    def test_video_skips_image_steps(
        self, pipeline, gateway, stage_original, video_bytes, mocker
    ):
        session = _processing_session(
            filename="clip.mp4",
            mime_type="video/mp4",
            client_metadata={"caption": "run"},
        )
        stage_original(session.object_path, video_bytes)
        extract = mocker.patch("media.services.pipeline.extract_capture_metadata")
        render = mocker.patch("media.services.pipeline.render_preview")

        media = pipeline.run(session)

        extract.assert_not_called()
        render.assert_not_called()
        assert media.kind == MediaAsset.Kind.VIDEO
        assert media.has_preview is False
        assert media.byte_size == len(video_bytes)
        assert media.extracted_metadata == {"caption": "run"}


class TestFatalSteps:
    def test_promotion_failure_creates_nothing(self, pipeline):
        session = _processing_session()

        with pytest.raises(StorageError):
            pipeline.run(session)

        assert not MediaAsset.objects.exists()


class TestAlbumLink:
    def test_appends_to_album(self, pipeline, stage_original, plain_jpeg, user):
        album = AlbumFactory(owner=user)
        AlbumMediaFactory(album=album, position=0)
        session = _processing_session(uploader=user, album=album)
        stage_original(session.object_path, plain_jpeg)

        media = pipeline.run(session)

        link = AlbumMedia.objects.get(album=album, media=media)
        assert link.position == 1

    def test_no_album_no_link(self, pipeline, stage_original, plain_jpeg):
        session = _processing_session()
        stage_original(session.object_path, plain_jpeg)

        pipeline.run(session)

        assert not AlbumMedia.objects.exists()
