"""Tests for the pre-signed storage relay (ObjectRelayView)."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from media.services.chunked_upload import make_block_id, render_block_list
from media.services.storage import Container


def _block_url(upload_url: str, block_id: str) -> str:
    from urllib.parse import quote

    return f"{upload_url}&comp=block&blockid={quote(block_id, safe='')}"


class TestStageAndCommit:
    """PUT requests speaking the block protocol."""

    def test_full_block_protocol(self, api_client, gateway):
        upload_url = gateway.create_upload_url("clip.mp4", timedelta(minutes=60)).url
        ids = [make_block_id(0), make_block_id(1)]

        for block_id, data in zip(ids, [b"hello ", b"world"]):
            response = api_client.put(
                _block_url(upload_url, block_id),
                data=data,
                content_type="application/octet-stream",
            )
            assert response.status_code == 201
            assert response.json() == {"size": len(data)}

        response = api_client.put(
            f"{upload_url}&comp=blocklist",
            data=render_block_list(ids),
            content_type="application/xml",
        )

        assert response.status_code == 201
        assert response.json() == {"size": 11}
        assert gateway.read_range(Container.UPLOADS, "clip.mp4", 0, 100) == b"hello world"

    def test_issued_block_urls(self, api_client, gateway):
        upload_url = gateway.create_upload_url("clip.mp4", timedelta(minutes=60)).url
        ids = [make_block_id(0), make_block_id(1)]
        block_urls = gateway.create_block_urls(
            "clip.mp4", ids, timezone.now() + timedelta(minutes=60)
        )

        for block_id, data in zip(ids, [b"abc", b"def"]):
            response = api_client.put(
                block_urls[block_id],
                data=data,
                content_type="application/octet-stream",
            )
            assert response.status_code == 201

        api_client.put(
            f"{upload_url}&comp=blocklist",
            data=render_block_list(ids),
            content_type="application/xml",
        )

        assert gateway.read_range(Container.UPLOADS, "clip.mp4", 0, 100) == b"abcdef"

    def test_block_url_cannot_commit(self, api_client, gateway):
        block_id = make_block_id(0)
        block_url = gateway.create_block_urls(
            "clip.mp4", [block_id], timezone.now() + timedelta(minutes=60)
        )[block_id]

        response = api_client.put(
            block_url.split("&comp=")[0] + "&comp=blocklist",
            data=render_block_list([block_id]),
            content_type="application/xml",
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "SIGNATURE_PERMISSION_DENIED"

    def test_blocklist_naming_unstaged_block(self, api_client, gateway):
        upload_url = gateway.create_upload_url("clip.mp4", timedelta(minutes=60)).url

        response = api_client.put(
            f"{upload_url}&comp=blocklist",
            data=render_block_list([make_block_id(0)]),
            content_type="application/xml",
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_BLOCK_LIST"

    def test_malformed_blocklist(self, api_client, gateway):
        upload_url = gateway.create_upload_url("clip.mp4", timedelta(minutes=60)).url

        response = api_client.put(
            f"{upload_url}&comp=blocklist",
            data=b"<BlockList>",
            content_type="application/xml",
        )

        assert response.status_code == 400

    def test_unknown_operation(self, api_client, gateway):
        upload_url = gateway.create_upload_url("clip.mp4", timedelta(minutes=60)).url

        response = api_client.put(
            f"{upload_url}&comp=appendblock",
            data=b"x",
            content_type="application/octet-stream",
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "UNSUPPORTED_OPERATION"

    def test_missing_signature(self, api_client, gateway):
        response = api_client.put(
            "/storage/uploads/clip.mp4?comp=block&blockid=MDAwMDAw",
            data=b"x",
            content_type="application/octet-stream",
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "SIGNATURE_REQUIRED"

    def test_url_for_other_object_rejected(self, api_client, gateway):
        upload_url = gateway.create_upload_url("a.mp4", timedelta(minutes=60)).url
        forged = upload_url.replace("/storage/uploads/a.mp4", "/storage/uploads/b.mp4")

        response = api_client.put(
            _block_url(forged, make_block_id(0)),
            data=b"x",
            content_type="application/octet-stream",
        )

        assert response.status_code == 403

    def test_read_url_cannot_write(self, api_client, gateway, store_original):
        store_original("a.jpg", b"x")
        read_url = gateway.create_read_url(
            Container.ORIGINALS, "a.jpg", timedelta(minutes=5)
        ).url

        response = api_client.put(
            _block_url(read_url, make_block_id(0)),
            data=b"x",
            content_type="application/octet-stream",
        )

        assert response.status_code == 403

    def test_expired_upload_url(self, api_client, gateway):
        with freeze_time("2024-01-01 12:00:00"):
            upload_url = gateway.create_upload_url("a.mp4", timedelta(minutes=60)).url

        with freeze_time("2024-01-01 13:30:00"):
            response = api_client.put(
                _block_url(upload_url, make_block_id(0)),
                data=b"x",
                content_type="application/octet-stream",
            )

        assert response.status_code == 403
        assert response.json()["error_code"] == "SIGNATURE_EXPIRED"

    def test_user_credentials_ignored(self, authenticated_client, gateway):
        """A logged-in user without a signature gets nowhere."""
        response = authenticated_client.put(
            "/storage/uploads/a.mp4?comp=block&blockid=MDAwMDAw",
            data=b"x",
            content_type="application/octet-stream",
        )

        assert response.status_code == 403


class TestRead:
    """GET requests for stored objects."""

    def test_read_object(self, api_client, gateway, store_original):
        store_original("a.jpg", b"jpeg-bytes")
        url = gateway.create_read_url(
            Container.ORIGINALS, "a.jpg", timedelta(minutes=5)
        ).url

        response = api_client.get(url)

        assert response.status_code == 200
        assert b"".join(response.streaming_content) == b"jpeg-bytes"

    def test_download_name_sets_attachment(self, db, api_client, gateway, store_original):
        store_original("a.jpg", b"x")
        url = gateway.create_read_url(
            Container.ORIGINALS,
            "a.jpg",
            timedelta(minutes=5),
            download_name="Holiday.jpg",
        ).url

        response = api_client.get(url)

        assert response.status_code == 200
        assert 'attachment; filename="Holiday.jpg"' in response["Content-Disposition"]
        response.close()

    def test_missing_object(self, api_client, gateway):
        url = gateway.create_read_url(
            Container.ORIGINALS, "gone.jpg", timedelta(minutes=5)
        ).url

        response = api_client.get(url)

        assert response.status_code == 404

    def test_write_url_cannot_read(self, api_client, gateway, stage_original):
        stage_original("a.jpg", b"x")
        upload_url = gateway.create_upload_url("a.jpg", timedelta(minutes=5)).url

        response = api_client.get(upload_url)

        assert response.status_code == 403
        assert response.json()["error_code"] == "SIGNATURE_PERMISSION_DENIED"

    @pytest.mark.parametrize("container", ["originals", "thumbnails", "downloads"])
    def test_url_scoped_to_container(self, api_client, gateway, container):
        url = gateway.create_read_url(
            Container(container), "a.jpg", timedelta(minutes=5)
        ).url
        other = "uploads"

        response = api_client.get(url.replace(f"/storage/{container}/", f"/storage/{other}/"))

        assert response.status_code == 403


class TestRelayDisabled:
    """With the S3 backend the relay serves nothing."""

    @pytest.fixture(autouse=True)
    def _s3_backend(self, settings):
        settings.OBJECT_STORE_BACKEND = "s3"
        settings.OBJECT_STORE_BUCKET = "media-bucket"

    def test_put_not_found(self, api_client):
        response = api_client.put(
            "/storage/uploads/a.mp4?sig=x&comp=block&blockid=MDAwMDAw",
            data=b"x",
            content_type="application/octet-stream",
        )

        assert response.status_code == 404
        assert response.json()["error_code"] == "RELAY_DISABLED"

    def test_get_not_found(self, api_client):
        response = api_client.get("/storage/originals/a.jpg?sig=x")

        assert response.status_code == 404
        assert response.json()["error_code"] == "RELAY_DISABLED"

