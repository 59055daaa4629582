"""
Tests for S3ObjectStoreGateway.

boto3 is replaced by a MagicMock client; these tests check the requests
the gateway makes and how it maps S3 errors.
"""

from __future__ import annotations

import io
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from django.core.exceptions import ImproperlyConfigured
from freezegun import freeze_time

from core.exceptions import NotFoundError, ValidationError
from media.exceptions import StorageError
from media.services.chunked_upload import make_block_id
from media.services.storage import Container, get_object_store
from media.services.storage.s3 import MIN_PART_SIZE, S3ObjectStoreGateway

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=dt_timezone.utc)


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_s3_client():
    """Create a mock boto3 S3 client."""
    client = MagicMock()

    client.create_multipart_upload.return_value = {"UploadId": "mock-upload-id-12345"}
    client.generate_presigned_url.return_value = (
        "https://bucket.s3.amazonaws.com/uploads/abc.jpg?X-Amz-Signature=sig"
    )
    client.head_object.return_value = {"ContentLength": 2048}
    client.get_object.return_value = {"Body": io.BytesIO(b"header")}

    return client


@pytest.fixture
def s3_gateway(mock_s3_client):
    """S3ObjectStoreGateway with the mocked client injected."""
    gateway = S3ObjectStoreGateway(bucket_name="test-bucket")
    gateway._s3_client = mock_s3_client
    return gateway


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:
    def test_block_size_raised_to_part_minimum(self):
        assert S3ObjectStoreGateway("b", block_size=1024).block_size == MIN_PART_SIZE
        assert (
            S3ObjectStoreGateway("b", block_size=8 * 1024 * 1024).block_size
            == 8 * 1024 * 1024
        )

    def test_commit_format_is_multipart(self, s3_gateway):
        assert s3_gateway.commit_format == "multipart"

    def test_from_settings(self, settings):
        settings.OBJECT_STORE_BUCKET = "media-bucket"
        settings.AWS_S3_REGION_NAME = "eu-west-1"
        settings.AWS_S3_ENDPOINT_URL = ""

        gateway = S3ObjectStoreGateway.from_settings()

        assert gateway.bucket_name == "media-bucket"
        assert gateway.region_name == "eu-west-1"
        assert gateway.endpoint_url is None

    def test_client_created_lazily(self, mocker):
        mock_boto3 = mocker.patch("media.services.storage.s3.boto3")
        gateway = S3ObjectStoreGateway("b", endpoint_url="http://minio:9000")

        mock_boto3.client.assert_not_called()
        assert gateway.s3_client is gateway.s3_client
        mock_boto3.client.assert_called_once()
        assert mock_boto3.client.call_args[1]["endpoint_url"] == "http://minio:9000"


class TestFactory:
    def test_s3_backend_selected(self, settings):
        settings.OBJECT_STORE_BACKEND = "s3"
        settings.OBJECT_STORE_BUCKET = "media-bucket"

        assert isinstance(get_object_store(), S3ObjectStoreGateway)

    def test_unknown_backend_rejected(self, settings):
        settings.OBJECT_STORE_BACKEND = "ftp"

        with pytest.raises(ImproperlyConfigured):
            get_object_store()


# =============================================================================
# Pre-signed URLs
# =============================================================================


class TestUploadUrls:
    @freeze_time(NOW)
    def test_upload_url_starts_multipart_upload(self, s3_gateway, mock_s3_client):
        signed = s3_gateway.create_upload_url("abc.jpg", timedelta(minutes=60))

        mock_s3_client.create_multipart_upload.assert_called_once_with(
            Bucket="test-bucket", Key="uploads/abc.jpg"
        )
        presign = mock_s3_client.generate_presigned_url.call_args[1]
        assert presign["ClientMethod"] == "complete_multipart_upload"
        assert presign["HttpMethod"] == "POST"
        assert presign["Params"] == {
            "Bucket": "test-bucket",
            "Key": "uploads/abc.jpg",
            "UploadId": "mock-upload-id-12345",
        }
        assert presign["ExpiresIn"] == 3600
        assert signed.upload_id == "mock-upload-id-12345"
        assert signed.expires_at == NOW + timedelta(minutes=60)

    @freeze_time(NOW)
    def test_block_urls_presign_upload_part(self, s3_gateway, mock_s3_client):
        block_ids = [make_block_id(0), make_block_id(1)]

        urls = s3_gateway.create_block_urls(
            "abc.jpg",
            block_ids,
            NOW + timedelta(minutes=30),
            upload_id="mock-upload-id-12345",
        )

        assert set(urls) == set(block_ids)
        calls = mock_s3_client.generate_presigned_url.call_args_list
        assert [c[1]["Params"]["PartNumber"] for c in calls] == [1, 2]
        assert all(c[1]["ClientMethod"] == "upload_part" for c in calls)
        assert all(c[1]["HttpMethod"] == "PUT" for c in calls)
        assert all(c[1]["ExpiresIn"] == 1800 for c in calls)

    def test_block_urls_require_upload_id(self, s3_gateway):
        with pytest.raises(ValidationError) as exc_info:
            s3_gateway.create_block_urls(
                "abc.jpg", [make_block_id(0)], NOW + timedelta(minutes=30)
            )

        assert exc_info.value.error_code == "UPLOAD_ID_REQUIRED"

    def test_block_past_last_part_rejected(self, s3_gateway):
        with pytest.raises(ValidationError) as exc_info:
            s3_gateway.create_block_urls(
                "abc.jpg", [make_block_id(10_000)], NOW, upload_id="u"
            )

        assert exc_info.value.error_code == "INVALID_BLOCK_ID"

    def test_read_url_sets_download_name(self, s3_gateway, mock_s3_client):
        s3_gateway.create_read_url(
            Container.DOWNLOADS, "job.zip", timedelta(minutes=5), download_name="a.zip"
        )

        presign = mock_s3_client.generate_presigned_url.call_args[1]
        assert presign["ClientMethod"] == "get_object"
        assert presign["Params"]["Key"] == "downloads/job.zip"
        assert "a.zip" in presign["Params"]["ResponseContentDisposition"]
        assert "HttpMethod" not in presign

    def test_presign_failure_is_storage_error(self, s3_gateway, mock_s3_client):
        mock_s3_client.generate_presigned_url.side_effect = _client_error("AccessDenied")

        with pytest.raises(StorageError):
            s3_gateway.create_read_url(
                Container.ORIGINALS, "abc.jpg", timedelta(minutes=5)
            )


# =============================================================================
# Staging
# =============================================================================


class TestStaging:
    def test_discard_aborts_and_deletes(self, s3_gateway, mock_s3_client):
        s3_gateway.discard_upload("abc.jpg", "mock-upload-id-12345")

        mock_s3_client.abort_multipart_upload.assert_called_once_with(
            Bucket="test-bucket", Key="uploads/abc.jpg", UploadId="mock-upload-id-12345"
        )
        mock_s3_client.delete_object.assert_called_once_with(
            Bucket="test-bucket", Key="uploads/abc.jpg"
        )

    def test_discard_tolerates_closed_upload(self, s3_gateway, mock_s3_client):
        mock_s3_client.abort_multipart_upload.side_effect = _client_error("NoSuchUpload")

        s3_gateway.discard_upload("abc.jpg", "gone")

        mock_s3_client.delete_object.assert_called_once()

    def test_discard_without_upload_id_only_deletes(self, s3_gateway, mock_s3_client):
        s3_gateway.discard_upload("abc.jpg")

        mock_s3_client.abort_multipart_upload.assert_not_called()
        mock_s3_client.delete_object.assert_called_once()

    def test_promote_copies_then_deletes(self, s3_gateway, mock_s3_client):
        size = s3_gateway.promote("abc.jpg")

        mock_s3_client.copy.assert_called_once_with(
            Bucket="test-bucket",
            CopySource={"Bucket": "test-bucket", "Key": "uploads/abc.jpg"},
            Key="originals/abc.jpg",
        )
        mock_s3_client.delete_object.assert_called_once_with(
            Bucket="test-bucket", Key="uploads/abc.jpg"
        )
        mock_s3_client.head_object.assert_called_once_with(
            Bucket="test-bucket", Key="originals/abc.jpg"
        )
        assert size == 2048

    def test_promote_missing_staged_object(self, s3_gateway, mock_s3_client):
        mock_s3_client.copy.side_effect = _client_error("404")

        with pytest.raises(StorageError) as exc_info:
            s3_gateway.promote("abc.jpg")

        assert exc_info.value.error_code == "STAGED_OBJECT_MISSING"
        mock_s3_client.delete_object.assert_not_called()


# =============================================================================
# Object Operations
# =============================================================================


class TestObjectOperations:
    def test_read_range_header(self, s3_gateway, mock_s3_client):
        data = s3_gateway.read_range(Container.ORIGINALS, "abc.jpg", 0, 64)

        assert data == b"header"
        mock_s3_client.get_object.assert_called_once_with(
            Bucket="test-bucket", Key="originals/abc.jpg", Range="bytes=0-63"
        )

    def test_read_range_past_end_is_empty(self, s3_gateway, mock_s3_client):
        mock_s3_client.get_object.side_effect = _client_error("InvalidRange", "GetObject")

        assert s3_gateway.read_range(Container.ORIGINALS, "abc.jpg", 4096, 64) == b""

    def test_read_range_zero_length(self, s3_gateway, mock_s3_client):
        assert s3_gateway.read_range(Container.ORIGINALS, "abc.jpg", 0, 0) == b""
        mock_s3_client.get_object.assert_not_called()

    def test_open_returns_body(self, s3_gateway):
        assert s3_gateway.open(Container.ORIGINALS, "abc.jpg").read() == b"header"

    def test_write_uploads_stream(self, s3_gateway, mock_s3_client):
        stream = io.BytesIO(b"zip")

        size = s3_gateway.write(Container.DOWNLOADS, "job.zip", stream)

        mock_s3_client.upload_fileobj.assert_called_once_with(
            Bucket="test-bucket", Fileobj=stream, Key="downloads/job.zip"
        )
        assert size == 2048

    def test_exists(self, s3_gateway, mock_s3_client):
        assert s3_gateway.exists(Container.ORIGINALS, "abc.jpg") is True

        mock_s3_client.head_object.side_effect = _client_error("404")
        assert s3_gateway.exists(Container.ORIGINALS, "abc.jpg") is False

    def test_missing_object_is_not_found(self, s3_gateway, mock_s3_client):
        mock_s3_client.head_object.side_effect = _client_error("NoSuchKey")

        with pytest.raises(NotFoundError) as exc_info:
            s3_gateway.size(Container.ORIGINALS, "abc.jpg")

        assert exc_info.value.error_code == "OBJECT_NOT_FOUND"

    def test_other_client_errors_are_storage_errors(self, s3_gateway, mock_s3_client):
        mock_s3_client.delete_object.side_effect = _client_error("AccessDenied")

        with pytest.raises(StorageError) as exc_info:
            s3_gateway.delete(Container.DOWNLOADS, "job.zip")

        assert exc_info.value.details["code"] == "AccessDenied"

    def test_transport_errors_are_storage_errors(self, s3_gateway, mock_s3_client):
        mock_s3_client.head_object.side_effect = EndpointConnectionError(
            endpoint_url="https://s3.test"
        )

        with pytest.raises(StorageError):
            s3_gateway.size(Container.ORIGINALS, "abc.jpg")

    @pytest.mark.parametrize("object_path", ["", "/abs.jpg", "../escape.jpg"])
    def test_invalid_paths_rejected(self, s3_gateway, object_path):
        with pytest.raises(ValidationError) as exc_info:
            s3_gateway.size(Container.ORIGINALS, object_path)

        assert exc_info.value.error_code == "INVALID_OBJECT_PATH"
