"""
Base types and abstract base class for the object store gateway.

The gateway is the only component that touches stored bytes. Everything
else in the upload and download pipelines talks to it through this
interface. The S3 implementation hands clients pre-signed URLs so payloads
go straight to the bucket; the local one is a development stand-in that
relays blocks through the app.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime, timedelta
    from typing import BinaryIO


# =============================================================================
# Constants
# =============================================================================


class Container(str, Enum):
    """Top-level object namespaces."""

    UPLOADS = "uploads"  # staging, written by clients
    ORIGINALS = "originals"  # permanent media objects
    THUMBNAILS = "thumbnails"  # derived previews
    DOWNLOADS = "downloads"  # batch archives


class Permission:
    """Permission sets carried by pre-signed URLs."""

    WRITE = "cw"  # stage blocks + commit block list
    READ = "r"

    # Single letters checked per operation
    STAGE_BLOCK = "w"
    COMMIT_BLOCK_LIST = "c"


class CommitFormat:
    """How a client finalizes its staged blocks against the upload URL."""

    BLOCK_LIST = "blocklist"  # PUT <BlockList> XML of block ids
    MULTIPART = "multipart"  # POST <CompleteMultipartUpload> XML of part ETags


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class SignedUrl:
    """
    A pre-signed, time-limited URL for one object.

    Attributes:
        url: Absolute URL including the signature
        expires_at: Moment the signature stops being accepted
        upload_id: Multipart upload id the URL belongs to, if the store
            issued one
    """

    url: str
    expires_at: "datetime"
    upload_id: str = ""


# =============================================================================
# Abstract Base Class
# =============================================================================


class ObjectStoreGateway(ABC):
    """
    Abstract interface to durable object storage.

    Implementations must provide:
    - Pre-signed URLs scoped to one staging object: one to commit it and
      one per block to stage its bytes
    - Pre-signed read URLs scoped to one object
    - Server-side promotion from staging to permanent storage
    - Ranged reads, streamed reads, writes and deletes

    Attributes:
        block_size: Client block size in bytes
        commit_format: One of CommitFormat, tells clients how to commit
    """

    block_size: int
    commit_format: str

    @abstractmethod
    def create_upload_url(
        self,
        object_path: str,
        expires_in: "timedelta",
    ) -> SignedUrl:
        """
        Open a staging object at ``uploads/<object_path>``.

        Returns the URL the client commits its blocks to. ``upload_id`` is
        set when the store tracks the staging object under its own id;
        callers keep it and pass it back to the other staging methods.
        """

    @abstractmethod
    def create_block_urls(
        self,
        object_path: str,
        block_ids: "Iterable[str]",
        expires_at: "datetime",
        upload_id: str = "",
    ) -> dict[str, str]:
        """
        Issue one pre-signed URL per block, each valid until ``expires_at``.

        The client PUTs the block's bytes to its URL; nothing passes
        through the application.

        Raises:
            ValidationError: A block id is malformed or out of range.
        """

    @abstractmethod
    def create_read_url(
        self,
        container: Container,
        object_path: str,
        expires_in: "timedelta",
        download_name: str | None = None,
    ) -> SignedUrl:
        """Issue a read-scoped URL for one object."""

    @abstractmethod
    def promote(self, object_path: str) -> int:
        """
        Move a committed upload into permanent storage.

        Copies ``uploads/<object_path>`` to ``originals/<object_path>`` and
        then deletes the staging object.

        Returns:
            Size of the permanent object in bytes.

        Raises:
            StorageError: If the copy or the staging delete fails.
        """

    @abstractmethod
    def discard_upload(self, object_path: str, upload_id: str = "") -> None:
        """Drop staged blocks and any committed staging object for a path."""

    @abstractmethod
    def read_range(
        self,
        container: Container,
        object_path: str,
        offset: int,
        length: int,
    ) -> bytes:
        """Read at most ``length`` bytes starting at ``offset``."""

    @abstractmethod
    def open(self, container: Container, object_path: str) -> "BinaryIO":
        """Open an object for streamed reading. Caller closes it."""

    @abstractmethod
    def write(
        self,
        container: Container,
        object_path: str,
        stream: "BinaryIO",
    ) -> int:
        """
        Store the remaining content of ``stream`` as one object.

        Returns:
            Number of bytes written.
        """

    @abstractmethod
    def delete(self, container: Container, object_path: str) -> None:
        """Delete an object. Missing objects are ignored."""

    @abstractmethod
    def size(self, container: Container, object_path: str) -> int:
        """Size of an object in bytes."""

    @abstractmethod
    def exists(self, container: Container, object_path: str) -> bool:
        """Whether an object exists."""
