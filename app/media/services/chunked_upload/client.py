"""
Client half of the chunked transfer protocol.

Pushes a file straight to object storage: ``POST uploads/init`` opens a
session, ``POST uploads/<id>/blocks`` hands out one pre-signed URL per
block, the blocks are PUT to those URLs and committed against the upload
URL, then the API is told the upload is complete. With the S3 backend the
file bytes only ever travel between this client and the bucket.

Usage:
    import httpx

    api = httpx.Client(
        base_url="https://example.com/api/v1/media/",
        headers={"Authorization": f"Bearer {token}"},
    )
    uploader = ChunkedUploader(api, max_workers=4)
    with open("IMG_0001.jpg", "rb") as f:
        result = uploader.upload(f, "IMG_0001.jpg", "image/jpeg", file_size=2_000_000)
    print(result["mediaId"])
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

import httpx

from media.services.chunked_upload.blocks import (
    block_count,
    iter_blocks,
    make_block_id,
    part_number_for,
    render_block_list,
    render_multipart_completion,
)
from media.services.storage.base import CommitFormat

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import Future
    from typing import Any, BinaryIO

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0

# Block URLs requested per call to uploads/<id>/blocks
BLOCK_URL_BATCH_SIZE = 100


class BlockStagingClient:
    """
    Speaks the storage side of the protocol for one upload.

    Blocks go to their own pre-signed URLs; the commit goes to the upload
    URL in the format the store asked for. The URLs are the only
    credential.
    """

    def __init__(
        self,
        upload_url: str,
        commit_format: str = CommitFormat.BLOCK_LIST,
        http: httpx.Client | None = None,
    ) -> None:
        if commit_format not in (CommitFormat.BLOCK_LIST, CommitFormat.MULTIPART):
            raise ValueError(f"Unknown commit format: {commit_format}")
        self.upload_url = upload_url
        self.commit_format = commit_format
        self.http = http or httpx.Client(timeout=DEFAULT_TIMEOUT)

    def _url(self, **params: str) -> str:
        separator = "&" if "?" in self.upload_url else "?"
        query = "&".join(f"{key}={value}" for key, value in params.items())
        return f"{self.upload_url}{separator}{query}"

    def stage_block(self, block_url: str, data: bytes) -> str:
        """
        PUT one block to its pre-signed URL. Safe to repeat.

        Returns:
            The ETag the store answered with ("" if none).
        """
        response = self.http.put(
            block_url,
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        response.raise_for_status()
        return response.headers.get("ETag", "")

    def commit(self, parts: "list[tuple[str, str]]") -> None:
        """
        Make the object readable as the concatenation of the staged blocks.

        Args:
            parts: ``(block_id, etag)`` pairs in file order.
        """
        if self.commit_format == CommitFormat.MULTIPART:
            response = self.http.post(
                self.upload_url,
                content=render_multipart_completion(
                    (part_number_for(block_id), etag) for block_id, etag in parts
                ),
                headers={"Content-Type": "application/xml"},
            )
            response.raise_for_status()
            # CompleteMultipartUpload can fail with a 200 and an <Error> body
            if b"<Error>" in response.content:
                raise httpx.HTTPStatusError(
                    "Multipart completion rejected by the store",
                    request=response.request,
                    response=response,
                )
            return

        response = self.http.put(
            self._url(comp="blocklist"),
            content=render_block_list([block_id for block_id, _ in parts]),
            headers={"Content-Type": "application/xml"},
        )
        response.raise_for_status()


class ChunkedUploader:
    """
    End-to-end upload: init, stage blocks, commit, complete.

    Blocks are staged by up to ``max_workers`` threads; at most that many
    blocks are held in memory at once. Arrival order at the store does not
    matter because the commit fixes the final order.
    """

    def __init__(
        self,
        api: httpx.Client,
        storage: httpx.Client | None = None,
        max_workers: int = 4,
        report_progress: bool = True,
        on_progress: "Callable[[int, int], None] | None" = None,
    ) -> None:
        """
        Args:
            api: Client whose base_url points at the media API and which
                 carries the caller's credentials.
            storage: Client used for the pre-signed storage requests. Must
                     not carry API credentials; defaults to a bare client.
            max_workers: Concurrent block uploads.
            report_progress: Whether to POST progress after each block.
            on_progress: Optional callback ``(uploaded_bytes, total_bytes)``.
        """
        self.api = api
        self.storage = storage or httpx.Client(timeout=DEFAULT_TIMEOUT)
        self.max_workers = max(1, max_workers)
        self.report_progress = report_progress
        self.on_progress = on_progress

    def upload(
        self,
        fileobj: "BinaryIO",
        filename: str,
        mime_type: str,
        file_size: int | None = None,
        collection_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Upload a file and return the API's commit response body.

        Raises:
            httpx.HTTPStatusError: If the API or the store rejects a request.
                A 403 from the store usually means the upload URL expired and
                the upload must be restarted from init.
        """
        if file_size is None:
            file_size = os.fstat(fileobj.fileno()).st_size

        payload: dict[str, Any] = {
            "filename": filename,
            "fileSize": file_size,
            "mimeType": mime_type,
        }
        if collection_id:
            payload["collectionId"] = str(collection_id)

        response = self.api.post("uploads/init", json=payload)
        response.raise_for_status()
        session = response.json()
        session_id = session["sessionId"]

        logger.info(
            "Upload session started",
            extra={"session_id": session_id, "size": file_size},
        )

        staging = BlockStagingClient(
            session["uploadUrl"],
            commit_format=session.get("commitFormat", CommitFormat.BLOCK_LIST),
            http=self.storage,
        )
        parts = self._stage_all(
            staging, fileobj, session["blockSize"], session_id, file_size
        )
        staging.commit(parts)

        response = self.api.post(
            f"uploads/{session_id}/complete",
            json={
                "blockIds": [block_id for block_id, _ in parts],
                "metadata": metadata or {},
            },
        )
        response.raise_for_status()
        return response.json()

    def _stage_all(
        self,
        staging: BlockStagingClient,
        fileobj: "BinaryIO",
        block_size: int,
        session_id: str,
        file_size: int,
    ) -> "list[tuple[str, str]]":
        total_blocks = block_count(file_size, block_size)
        block_ids: list[str] = []
        block_urls: dict[str, str] = {}
        etags: dict[str, str] = {}
        uploaded = 0
        pending: set[Future] = set()

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for ordinal, (block_id, data) in enumerate(iter_blocks(fileobj, block_size)):
                if block_id not in block_urls:
                    batch_end = max(
                        ordinal + 1, min(ordinal + BLOCK_URL_BATCH_SIZE, total_blocks)
                    )
                    block_urls.update(
                        self._request_block_urls(
                            session_id,
                            [make_block_id(n) for n in range(ordinal, batch_end)],
                        )
                    )
                block_ids.append(block_id)
                if len(pending) >= self.max_workers:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    uploaded = self._collect(done, etags, uploaded, session_id, file_size)
                pending.add(
                    executor.submit(
                        self._stage_one, staging, block_urls[block_id], block_id, data
                    )
                )

            done, _ = wait(pending)
            self._collect(done, etags, uploaded, session_id, file_size)

        return [(block_id, etags[block_id]) for block_id in block_ids]

    def _request_block_urls(self, session_id: str, block_ids: list[str]) -> dict[str, str]:
        response = self.api.post(
            f"uploads/{session_id}/blocks", json={"blockIds": block_ids}
        )
        response.raise_for_status()
        return response.json()["blockUrls"]

    @staticmethod
    def _stage_one(
        staging: BlockStagingClient, block_url: str, block_id: str, data: bytes
    ) -> tuple[str, str, int]:
        etag = staging.stage_block(block_url, data)
        return block_id, etag, len(data)

    def _collect(
        self,
        done: "set[Future]",
        etags: dict[str, str],
        uploaded: int,
        session_id: str,
        file_size: int,
    ) -> int:
        for future in done:
            # Re-raises the staging error, if any
            block_id, etag, size = future.result()
            etags[block_id] = etag
            uploaded += size
        if self.on_progress:
            self.on_progress(uploaded, file_size)
        if self.report_progress:
            response = self.api.post(
                f"uploads/{session_id}/progress",
                json={"uploadedBytes": uploaded},
            )
            response.raise_for_status()
        return uploaded
