"""
S3 implementation of the object store gateway.

Containers are key prefixes in one bucket (``uploads/``, ``originals/``,
``thumbnails/``, ``downloads/``). Uploads use S3 multipart upload:

- create_upload_url starts a multipart upload and pre-signs its
  CompleteMultipartUpload request
- create_block_urls pre-signs one UploadPart request per block, block
  ordinal ``n`` being part ``n + 1``
- the client PUTs each block to its URL, keeps the returned ETags and
  POSTs the completion XML to the upload URL

Payload bytes go from the client straight to the bucket. The application
only copies staged objects server-side, reads small header ranges and
streams originals into download archives.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.utils import timezone
from django.utils.http import content_disposition_header

from core.exceptions import NotFoundError, ValidationError
from media.exceptions import StorageError
from media.services.chunked_upload.blocks import part_number_for
from media.services.storage.base import (
    CommitFormat,
    Container,
    ObjectStoreGateway,
    SignedUrl,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime, timedelta
    from typing import Any, BinaryIO

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

MIN_PART_SIZE = 5 * 1024 * 1024  # S3 minimum for every part but the last
MAX_PART_NUMBER = 10_000

MISSING_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchUpload"})


class S3ObjectStoreGateway(ObjectStoreGateway):
    """
    Object store backed by one S3 (or S3-compatible) bucket.

    Args:
        bucket_name: Bucket holding every container
        block_size: Requested client block size; raised to the S3 minimum
        region_name: AWS region, None for the SDK default
        endpoint_url: Custom endpoint for S3-compatible stores (MinIO etc.)
    """

    commit_format = CommitFormat.MULTIPART

    def __init__(
        self,
        bucket_name: str,
        block_size: int = MIN_PART_SIZE,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self.bucket_name = bucket_name
        self.block_size = max(block_size, MIN_PART_SIZE)
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self._s3_client = None

    @classmethod
    def from_settings(cls) -> "S3ObjectStoreGateway":
        """Build the gateway from Django settings."""
        return cls(
            bucket_name=settings.OBJECT_STORE_BUCKET,
            block_size=settings.UPLOAD_BLOCK_SIZE,
            region_name=settings.AWS_S3_REGION_NAME or None,
            endpoint_url=settings.AWS_S3_ENDPOINT_URL or None,
        )

    @property
    def s3_client(self):
        """Get or create S3 client."""
        if self._s3_client is None:
            self._s3_client = boto3.client(
                "s3",
                region_name=self.region_name,
                endpoint_url=self.endpoint_url,
                config=Config(signature_version="s3v4"),
            )
        return self._s3_client

    # =========================================================================
    # Pre-signed URLs
    # =========================================================================

    def create_upload_url(
        self,
        object_path: str,
        expires_in: "timedelta",
    ) -> SignedUrl:
        key = self._key(Container.UPLOADS, object_path)
        upload_id = self._call("create_multipart_upload", Key=key)["UploadId"]
        url = self._presign(
            "complete_multipart_upload",
            {"Key": key, "UploadId": upload_id},
            expires_in,
            http_method="POST",
        )

        logger.info(
            "Started multipart upload",
            extra={"object_path": object_path, "upload_id": upload_id},
        )
        return SignedUrl(
            url=url,
            expires_at=timezone.now() + expires_in,
            upload_id=upload_id,
        )

    def create_block_urls(
        self,
        object_path: str,
        block_ids: "Iterable[str]",
        expires_at: "datetime",
        upload_id: str = "",
    ) -> dict[str, str]:
        if not upload_id:
            raise ValidationError(
                "Staging object has no multipart upload",
                error_code="UPLOAD_ID_REQUIRED",
                details={"object_path": object_path},
            )

        key = self._key(Container.UPLOADS, object_path)
        expires_in = expires_at - timezone.now()
        urls = {}
        for block_id in block_ids:
            part_number = part_number_for(block_id)
            if part_number > MAX_PART_NUMBER:
                raise ValidationError(
                    f"Block {block_id} is past the last multipart part",
                    error_code="INVALID_BLOCK_ID",
                    details={"block_id": block_id, "max_parts": MAX_PART_NUMBER},
                )
            urls[block_id] = self._presign(
                "upload_part",
                {"Key": key, "UploadId": upload_id, "PartNumber": part_number},
                expires_in,
                http_method="PUT",
            )
        return urls

    def create_read_url(
        self,
        container: Container,
        object_path: str,
        expires_in: "timedelta",
        download_name: str | None = None,
    ) -> SignedUrl:
        params: dict[str, Any] = {"Key": self._key(container, object_path)}
        if download_name:
            params["ResponseContentDisposition"] = content_disposition_header(
                as_attachment=True, filename=download_name
            )
        return SignedUrl(
            url=self._presign("get_object", params, expires_in),
            expires_at=timezone.now() + expires_in,
        )

    def _presign(
        self,
        client_method: str,
        params: dict[str, Any],
        expires_in: "timedelta",
        http_method: str | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {
            "ClientMethod": client_method,
            "Params": {"Bucket": self.bucket_name, **params},
            "ExpiresIn": max(1, int(expires_in.total_seconds())),
        }
        if http_method:
            kwargs["HttpMethod"] = http_method
        try:
            return self.s3_client.generate_presigned_url(**kwargs)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(
                f"Failed to pre-sign {client_method}: {e}",
                details={"key": params.get("Key")},
            ) from e

    # =========================================================================
    # Staging
    # =========================================================================

    def discard_upload(self, object_path: str, upload_id: str = "") -> None:
        if upload_id:
            try:
                self._call(
                    "abort_multipart_upload",
                    Key=self._key(Container.UPLOADS, object_path),
                    UploadId=upload_id,
                )
            except NotFoundError:
                # Completed or aborted already; the delete below covers it
                logger.debug(
                    "Multipart upload already closed",
                    extra={"object_path": object_path, "upload_id": upload_id},
                )
        self.delete(Container.UPLOADS, object_path)

    def promote(self, object_path: str) -> int:
        source_key = self._key(Container.UPLOADS, object_path)
        try:
            # Managed copy; switches to multipart copy above 5 GiB
            self._call(
                "copy",
                CopySource={"Bucket": self.bucket_name, "Key": source_key},
                Key=self._key(Container.ORIGINALS, object_path),
            )
        except NotFoundError as e:
            raise StorageError(
                "Staged object not found; the upload was never completed",
                error_code="STAGED_OBJECT_MISSING",
                details={"object_path": object_path},
            ) from e

        self._call("delete_object", Key=source_key)
        size = self.size(Container.ORIGINALS, object_path)

        logger.info(
            "Promoted upload to originals",
            extra={"object_path": object_path, "size": size},
        )
        return size

    # =========================================================================
    # Object Operations
    # =========================================================================

    def read_range(
        self,
        container: Container,
        object_path: str,
        offset: int,
        length: int,
    ) -> bytes:
        if length <= 0:
            return b""
        try:
            response = self._call(
                "get_object",
                Key=self._key(container, object_path),
                Range=f"bytes={offset}-{offset + length - 1}",
            )
        except StorageError as e:
            # Offset at or past the end of the object
            if e.details.get("code") == "InvalidRange":
                return b""
            raise
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def open(self, container: Container, object_path: str) -> "BinaryIO":
        return self._call("get_object", Key=self._key(container, object_path))["Body"]

    def write(
        self,
        container: Container,
        object_path: str,
        stream: "BinaryIO",
    ) -> int:
        self._call(
            "upload_fileobj",
            Fileobj=stream,
            Key=self._key(container, object_path),
        )
        return self.size(container, object_path)

    def delete(self, container: Container, object_path: str) -> None:
        # DeleteObject succeeds for missing keys
        self._call("delete_object", Key=self._key(container, object_path))

    def size(self, container: Container, object_path: str) -> int:
        response = self._call("head_object", Key=self._key(container, object_path))
        return int(response["ContentLength"])

    def exists(self, container: Container, object_path: str) -> bool:
        try:
            self._call("head_object", Key=self._key(container, object_path))
        except NotFoundError:
            return False
        return True

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _key(container: Container, object_path: str) -> str:
        """Bucket key of an object; rejects paths escaping the container."""
        parts = object_path.split("/") if object_path else []
        if not parts or object_path.startswith("/") or ".." in parts:
            raise ValidationError(
                "Invalid object path",
                error_code="INVALID_OBJECT_PATH",
                details={"object_path": object_path},
            )
        return f"{Container(container).value}/{object_path}"

    def _call(self, operation: str, **params: Any) -> Any:
        """
        Run one client operation against the bucket.

        Raises:
            NotFoundError: The key (or multipart upload) does not exist
            StorageError: Any other S3 or transport failure
        """
        key = params.get("Key")
        try:
            return getattr(self.s3_client, operation)(Bucket=self.bucket_name, **params)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in MISSING_CODES:
                raise NotFoundError(
                    "Object not found",
                    error_code="OBJECT_NOT_FOUND",
                    details={"key": key},
                ) from e
            raise StorageError(
                f"S3 {operation} failed: {code or e}",
                details={"key": key, "code": code},
            ) from e
        except (BotoCoreError, S3UploadFailedError) as e:
            raise StorageError(
                f"S3 {operation} failed: {e}",
                details={"key": key},
            ) from e
