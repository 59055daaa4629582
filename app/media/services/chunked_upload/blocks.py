"""
Block identifiers and block list encoding for chunked transfers.

Shared by both halves of the protocol: the client uses these helpers to
split a file, name its blocks and encode the commit body; the S3 gateway
maps block ids to multipart part numbers and the local relay reads the
committed block list.

Block ids are the base64 encoding of the block's zero-padded ordinal, so
every id of one object has the same length and lexical order matches
concatenation order:

    >>> make_block_id(0)
    'MDAwMDAw'
    >>> make_block_id(12)
    'MDAwMDEy'
"""

from __future__ import annotations

import base64
import binascii
from typing import TYPE_CHECKING
from xml.etree import ElementTree

from core.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from typing import BinaryIO

# Six digits covers a million blocks (4 TiB at the default block size)
BLOCK_ORDINAL_WIDTH = 6
MAX_BLOCK_ORDINAL = 10**BLOCK_ORDINAL_WIDTH - 1

BLOCK_LIST_TAGS = ("Latest", "Committed", "Uncommitted")


def make_block_id(ordinal: int) -> str:
    """Deterministic block id for a 0-based block ordinal."""
    if ordinal < 0 or ordinal > MAX_BLOCK_ORDINAL:
        raise ValueError(f"Block ordinal {ordinal} out of range")
    padded = str(ordinal).zfill(BLOCK_ORDINAL_WIDTH)
    return base64.b64encode(padded.encode("ascii")).decode("ascii")


def parse_block_ordinal(block_id: str) -> int:
    """Inverse of make_block_id."""
    try:
        decoded = base64.b64decode(block_id, validate=True).decode("ascii")
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise ValidationError(
            f"Not an ordinal block id: {block_id!r}",
            error_code="INVALID_BLOCK_ID",
        ) from e
    if not decoded.isdigit() or len(decoded) > BLOCK_ORDINAL_WIDTH:
        raise ValidationError(
            f"Not an ordinal block id: {block_id!r}",
            error_code="INVALID_BLOCK_ID",
        )
    return int(decoded)


def part_number_for(block_id: str) -> int:
    """1-based multipart part number of an ordinal block id."""
    return parse_block_ordinal(block_id) + 1


def block_count(total_size: int, block_size: int) -> int:
    """Number of blocks needed for ``total_size`` bytes."""
    if total_size <= 0 or block_size <= 0:
        return 0
    return (total_size + block_size - 1) // block_size


def iter_blocks(stream: "BinaryIO", block_size: int) -> "Iterator[tuple[str, bytes]]":
    """
    Split a stream into ``(block_id, data)`` pairs.

    Every block except possibly the last is exactly ``block_size`` bytes.
    Only one block is held in memory at a time.
    """
    if block_size <= 0:
        raise ValueError("block_size must be positive")
    ordinal = 0
    while True:
        data = stream.read(block_size)
        if not data:
            return
        yield make_block_id(ordinal), data
        ordinal += 1


def render_block_list(block_ids: "Iterable[str]") -> bytes:
    """Encode an ordered block list as the commit request body."""
    root = ElementTree.Element("BlockList")
    for block_id in block_ids:
        ElementTree.SubElement(root, "Latest").text = block_id
    return ElementTree.tostring(root, encoding="utf-8", xml_declaration=True)


def render_multipart_completion(parts: "Iterable[tuple[int, str]]") -> bytes:
    """
    Encode (part number, ETag) pairs as a CompleteMultipartUpload body.

    Parts are written in ascending part number order.
    """
    root = ElementTree.Element("CompleteMultipartUpload")
    for part_number, etag in sorted(parts):
        part = ElementTree.SubElement(root, "Part")
        ElementTree.SubElement(part, "PartNumber").text = str(part_number)
        ElementTree.SubElement(part, "ETag").text = etag
    return ElementTree.tostring(root, encoding="utf-8", xml_declaration=True)


def parse_block_list(body: bytes) -> list[str]:
    """
    Decode a commit request body into an ordered block list.

    Raises:
        ValidationError: If the body is not a well-formed BlockList.
    """
    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as e:
        raise ValidationError(
            "Malformed block list", error_code="INVALID_BLOCK_LIST"
        ) from e

    if root.tag != "BlockList":
        raise ValidationError(
            "Block list root element must be BlockList",
            error_code="INVALID_BLOCK_LIST",
        )

    block_ids = []
    for element in root:
        if element.tag not in BLOCK_LIST_TAGS or not (element.text or "").strip():
            raise ValidationError(
                f"Unexpected block list entry <{element.tag}>",
                error_code="INVALID_BLOCK_LIST",
            )
        block_ids.append(element.text.strip())
    return block_ids
