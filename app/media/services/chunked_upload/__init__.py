"""
Chunked transfer protocol.

Large files never pass through the API. A client asks for an upload
session, splits the file into fixed-size blocks, asks for one pre-signed
URL per block, stages each block against its URL, commits the ordered
blocks (a block list or an S3 multipart completion), then tells the API
to process the committed object.

Usage:
    from media.services.chunked_upload import ChunkedUploader

    uploader = ChunkedUploader(api_client)
    result = uploader.upload(fileobj, "clip.mp4", "video/mp4")
"""

from media.services.chunked_upload.blocks import (
    block_count,
    iter_blocks,
    make_block_id,
    parse_block_list,
    parse_block_ordinal,
    part_number_for,
    render_block_list,
    render_multipart_completion,
)
from media.services.chunked_upload.client import BlockStagingClient, ChunkedUploader

__all__ = [
    "BlockStagingClient",
    "ChunkedUploader",
    "block_count",
    "iter_blocks",
    "make_block_id",
    "parse_block_list",
    "parse_block_ordinal",
    "part_number_for",
    "render_block_list",
    "render_multipart_completion",
]
