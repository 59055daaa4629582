"""Tests for media signal handlers."""

from __future__ import annotations

import io

import pytest

from media.exceptions import StorageError
from media.services.storage import Container
from media.tests.factories import MediaAssetFactory

pytestmark = pytest.mark.django_db


class TestDeleteStoredObjects:
    def test_deletes_original_and_preview(self, gateway, django_capture_on_commit_callbacks):
        asset = MediaAssetFactory(preview_path="p_thumb.jpg")
        gateway.write(Container.ORIGINALS, asset.blob_path, io.BytesIO(b"orig"))
        gateway.write(Container.THUMBNAILS, asset.preview_path, io.BytesIO(b"thumb"))

        with django_capture_on_commit_callbacks(execute=True):
            asset.delete()

        assert not gateway.exists(Container.ORIGINALS, asset.blob_path)
        assert not gateway.exists(Container.THUMBNAILS, "p_thumb.jpg")

    def test_objects_kept_until_commit(self, gateway, django_capture_on_commit_callbacks):
        asset = MediaAssetFactory()
        gateway.write(Container.ORIGINALS, asset.blob_path, io.BytesIO(b"orig"))

        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            asset.delete()

        assert len(callbacks) == 1
        assert gateway.exists(Container.ORIGINALS, asset.blob_path)

    def test_missing_objects_ignored(self, gateway, django_capture_on_commit_callbacks):
        asset = MediaAssetFactory(preview_path="")

        with django_capture_on_commit_callbacks(execute=True):
            asset.delete()

        assert not gateway.exists(Container.ORIGINALS, asset.blob_path)

    def test_storage_error_logged(self, gateway, mocker, django_capture_on_commit_callbacks):
        mocker.patch.object(
            type(gateway),
            "delete",
            side_effect=StorageError("disk"),
        )
        log = mocker.patch("media.signals.logger")
        asset = MediaAssetFactory()

        with django_capture_on_commit_callbacks(execute=True):
            asset.delete()

        log.error.assert_called_once()
