"""
Local filesystem implementation of the object store gateway.

For development and tests only: block bytes are relayed through the app
server, which the S3 backend avoids. Objects live under
``OBJECT_STORE_ROOT/<container>/<object_path>``. Clients reach the store
through signed relay endpoints (media.views) that speak the block staging
protocol:

    PUT <block url>                            raw block bytes
    PUT <upload url>&comp=blocklist            <BlockList> XML body
    GET <read url>                             object bytes

Staged blocks are kept under ``.blocks/<object_path>/`` until a block list
commit concatenates them, in list order, into ``uploads/<object_path>``.
Bytes are always streamed to disk; no object is held in memory whole.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote

from django.conf import settings
from django.core import signing
from django.urls import reverse
from django.utils import timezone

from core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from media.exceptions import PayloadTooLargeError, StorageError
from media.services.storage.base import (
    CommitFormat,
    Container,
    ObjectStoreGateway,
    Permission,
    SignedUrl,
)

if TYPE_CHECKING:
    from collections.abc import Generator, Iterable
    from datetime import datetime, timedelta
    from typing import Any, BinaryIO

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

COPY_BUFFER_SIZE = 1024 * 1024  # 1MB
BLOCK_DIR_NAME = ".blocks"
MAX_BLOCK_ID_BYTES = 64


class LocalObjectStoreGateway(ObjectStoreGateway):
    """
    Object store backed by a local directory tree.

    Pre-signed URLs are Django-signed tokens carrying the container, the
    object path, the permission set and an expiry timestamp.
    """

    commit_format = CommitFormat.BLOCK_LIST

    def __init__(
        self,
        root: str | os.PathLike,
        base_url: str,
        signing_salt: str = "media.object-store",
        block_size: int = 4 * 1024 * 1024,
        max_block_size: int = 100 * 1024 * 1024,
    ) -> None:
        """
        Initialize the local object store.

        Args:
            root: Directory holding all containers.
            base_url: Public origin used when building signed URLs.
            signing_salt: Salt separating these signatures from others.
            block_size: Recommended client block size in bytes.
            max_block_size: Largest block accepted by stage_block.
        """
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.signing_salt = signing_salt
        self.block_size = block_size
        self.max_block_size = max_block_size

    @classmethod
    def from_settings(cls) -> "LocalObjectStoreGateway":
        """Build the gateway from Django settings."""
        return cls(
            root=settings.OBJECT_STORE_ROOT,
            base_url=settings.OBJECT_STORE_BASE_URL,
            signing_salt=settings.OBJECT_STORE_SIGNING_SALT,
            block_size=settings.UPLOAD_BLOCK_SIZE,
            max_block_size=settings.UPLOAD_MAX_BLOCK_SIZE,
        )

    # =========================================================================
    # Pre-signed URLs
    # =========================================================================

    def create_upload_url(
        self,
        object_path: str,
        expires_in: "timedelta",
    ) -> SignedUrl:
        return self._sign(Container.UPLOADS, object_path, Permission.WRITE, expires_in)

    def create_block_urls(
        self,
        object_path: str,
        block_ids: "Iterable[str]",
        expires_at: "datetime",
        upload_id: str = "",
    ) -> dict[str, str]:
        block_ids = list(block_ids)
        for block_id in block_ids:
            self._validate_block_id(block_id)
        signed = self._sign(
            Container.UPLOADS,
            object_path,
            Permission.STAGE_BLOCK,
            expires_at - timezone.now(),
        )
        return {
            block_id: f"{signed.url}&comp=block&blockid={quote(block_id, safe='')}"
            for block_id in block_ids
        }

    def create_read_url(
        self,
        container: Container,
        object_path: str,
        expires_in: "timedelta",
        download_name: str | None = None,
    ) -> SignedUrl:
        return self._sign(
            container,
            object_path,
            Permission.READ,
            expires_in,
            download_name=download_name,
        )

    def _sign(
        self,
        container: Container,
        object_path: str,
        permission: str,
        expires_in: "timedelta",
        download_name: str | None = None,
    ) -> SignedUrl:
        self._resolve(container, object_path)
        expires_at = timezone.now() + expires_in
        payload: dict[str, Any] = {
            "c": Container(container).value,
            "p": object_path,
            "sp": permission,
            "se": int(expires_at.timestamp()),
        }
        if download_name:
            payload["dn"] = download_name
        token = signing.dumps(payload, salt=self.signing_salt, compress=True)
        path = reverse(
            "object-relay",
            kwargs={
                "container": Container(container).value,
                "object_path": object_path,
            },
        )
        return SignedUrl(
            url=f"{self.base_url}{path}?sig={quote(token, safe='')}",
            expires_at=expires_at,
        )

    def verify_signature(
        self,
        token: str | None,
        container: str,
        object_path: str,
        required: str,
    ) -> dict[str, Any]:
        """
        Validate a relay request's signature.

        Args:
            token: Value of the ``sig`` query parameter.
            container: Container named in the request path.
            object_path: Object path named in the request path.
            required: Permission letter the operation needs ("c", "w" or "r").

        Returns:
            The decoded signature payload.

        Raises:
            PermissionDeniedError: If the signature is missing, forged,
                expired, scoped to another object, or lacks the permission.
        """
        if not token:
            raise PermissionDeniedError(
                "Missing signature", error_code="SIGNATURE_REQUIRED"
            )
        try:
            payload = signing.loads(token, salt=self.signing_salt)
        except signing.BadSignature as e:
            raise PermissionDeniedError(
                "Invalid signature", error_code="SIGNATURE_INVALID"
            ) from e

        if payload.get("c") != container or payload.get("p") != object_path:
            raise PermissionDeniedError(
                "Signature is not valid for this object",
                error_code="SIGNATURE_SCOPE_MISMATCH",
            )
        if required not in payload.get("sp", ""):
            raise PermissionDeniedError(
                "Signature does not permit this operation",
                error_code="SIGNATURE_PERMISSION_DENIED",
                details={"required": required},
            )
        if payload.get("se", 0) <= timezone.now().timestamp():
            raise PermissionDeniedError(
                "Signature has expired", error_code="SIGNATURE_EXPIRED"
            )
        return payload

    # =========================================================================
    # Block Staging Protocol
    # =========================================================================

    def stage_block(self, object_path: str, block_id: str, stream: "BinaryIO") -> int:
        """
        Store one uncommitted block.

        Re-staging the same block id replaces the earlier content.

        Returns:
            Number of bytes staged.

        Raises:
            ValidationError: If the block id is not valid base64 or too long.
            PayloadTooLargeError: If the block exceeds max_block_size.
        """
        self._validate_block_id(block_id)
        written = 0
        with self._atomic_writer(self._block_file(object_path, block_id)) as out:
            while True:
                chunk = stream.read(COPY_BUFFER_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_block_size:
                    raise PayloadTooLargeError(
                        f"Block exceeds maximum size of {self.max_block_size} bytes",
                        details={"max_block_size": self.max_block_size},
                    )
                out.write(chunk)

        logger.debug(
            "Staged block",
            extra={
                "object_path": object_path,
                "block_id": block_id,
                "size": written,
            },
        )
        return written

    def commit_block_list(self, object_path: str, block_ids: "Iterable[str]") -> int:
        """
        Concatenate staged blocks, in the given order, into the upload object.

        Blocks not named in the list are discarded. The list is not checked
        for completeness against the declared size.

        Returns:
            Size of the committed object in bytes.

        Raises:
            ValidationError: If a named block was never staged.
        """
        block_ids = list(block_ids)
        if not block_ids:
            raise ValidationError(
                "Block list is empty", error_code="INVALID_BLOCK_LIST"
            )

        block_files = []
        for block_id in block_ids:
            self._validate_block_id(block_id)
            block_file = self._block_file(object_path, block_id)
            if not block_file.exists():
                raise ValidationError(
                    f"Block {block_id} was never staged",
                    error_code="INVALID_BLOCK_LIST",
                    details={"block_id": block_id},
                )
            block_files.append(block_file)

        target = self._resolve(Container.UPLOADS, object_path)
        with self._atomic_writer(target) as out:
            for block_file in block_files:
                with block_file.open("rb") as src:
                    shutil.copyfileobj(src, out, COPY_BUFFER_SIZE)

        shutil.rmtree(self._block_dir(object_path), ignore_errors=True)
        size = target.stat().st_size
        logger.info(
            "Committed block list",
            extra={
                "object_path": object_path,
                "block_count": len(block_ids),
                "size": size,
            },
        )
        return size

    def discard_upload(self, object_path: str, upload_id: str = "") -> None:
        shutil.rmtree(self._block_dir(object_path), ignore_errors=True)
        self.delete(Container.UPLOADS, object_path)

    # =========================================================================
    # Object Operations
    # =========================================================================

    def promote(self, object_path: str) -> int:
        source = self._resolve(Container.UPLOADS, object_path)
        target = self._resolve(Container.ORIGINALS, object_path)
        try:
            with source.open("rb") as src, self._atomic_writer(target) as out:
                shutil.copyfileobj(src, out, COPY_BUFFER_SIZE)
            source.unlink()
            size = target.stat().st_size
        except FileNotFoundError as e:
            raise StorageError(
                "Staged object not found; the block list was never committed",
                error_code="STAGED_OBJECT_MISSING",
                details={"object_path": object_path},
            ) from e
        except OSError as e:
            raise StorageError(
                f"Failed to promote object: {e}",
                details={"object_path": object_path},
            ) from e

        logger.info(
            "Promoted upload to originals",
            extra={"object_path": object_path, "size": size},
        )
        return size

    def read_range(
        self,
        container: Container,
        object_path: str,
        offset: int,
        length: int,
    ) -> bytes:
        with self.open(container, object_path) as f:
            f.seek(offset)
            return f.read(length)

    def open(self, container: Container, object_path: str) -> "BinaryIO":
        path = self._resolve(container, object_path)
        try:
            return path.open("rb")
        except FileNotFoundError as e:
            raise NotFoundError(
                "Object not found",
                error_code="OBJECT_NOT_FOUND",
                details={
                    "container": Container(container).value,
                    "object_path": object_path,
                },
            ) from e
        except OSError as e:
            raise StorageError(f"Failed to open object: {e}") from e

    def write(
        self,
        container: Container,
        object_path: str,
        stream: "BinaryIO",
    ) -> int:
        target = self._resolve(container, object_path)
        try:
            with self._atomic_writer(target) as out:
                shutil.copyfileobj(stream, out, COPY_BUFFER_SIZE)
            return target.stat().st_size
        except OSError as e:
            raise StorageError(
                f"Failed to write object: {e}",
                details={
                    "container": Container(container).value,
                    "object_path": object_path,
                },
            ) from e

    def delete(self, container: Container, object_path: str) -> None:
        try:
            self._resolve(container, object_path).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete object: {e}") from e

    def size(self, container: Container, object_path: str) -> int:
        try:
            return self._resolve(container, object_path).stat().st_size
        except FileNotFoundError as e:
            raise NotFoundError(
                "Object not found", error_code="OBJECT_NOT_FOUND"
            ) from e

    def exists(self, container: Container, object_path: str) -> bool:
        return self._resolve(container, object_path).is_file()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve(self, container: Container, object_path: str) -> Path:
        """Filesystem path of an object; rejects paths escaping the container."""
        base = (self.root / Container(container).value).resolve()
        candidate = (base / object_path).resolve()
        if not object_path or base not in candidate.parents:
            raise ValidationError(
                "Invalid object path",
                error_code="INVALID_OBJECT_PATH",
                details={"object_path": object_path},
            )
        return candidate

    def _block_dir(self, object_path: str) -> Path:
        self._resolve(Container.UPLOADS, object_path)
        return self.root / BLOCK_DIR_NAME / object_path

    def _block_file(self, object_path: str, block_id: str) -> Path:
        # Block ids are base64 and may contain "/" so store them hex-encoded
        return self._block_dir(object_path) / block_id.encode("ascii").hex()

    @staticmethod
    def _validate_block_id(block_id: str) -> None:
        try:
            decoded = base64.b64decode(block_id, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(
                "Block id must be base64", error_code="INVALID_BLOCK_ID"
            ) from e
        if not decoded or len(decoded) > MAX_BLOCK_ID_BYTES:
            raise ValidationError(
                f"Block id must decode to 1-{MAX_BLOCK_ID_BYTES} bytes",
                error_code="INVALID_BLOCK_ID",
            )

    @staticmethod
    @contextmanager
    def _atomic_writer(target: Path) -> "Generator[BinaryIO, None, None]":
        """Write to a temp file beside ``target`` and move it into place on success."""
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as out:
                yield out
            os.replace(temp_name, target)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
