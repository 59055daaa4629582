"""
Image processing for the upload pipeline.

Uses Pillow for image handling with proper error handling for:
- Corrupted image files
- Unsupported formats
- Images exceeding the decompression limit

Functions:
    extract_capture_metadata: Capture timestamp and device from EXIF
    render_preview: Bounded JPEG preview of an image
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from io import BytesIO
from typing import TYPE_CHECKING

from PIL import Image

from media.processors.base import (
    PREVIEW_FORMAT,
    PREVIEW_QUALITY,
    PREVIEW_SIZE,
    NonFatalExtractionError,
)

if TYPE_CHECKING:
    from typing import BinaryIO

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

# EXIF tag ids (IFD0)
EXIF_MAKE = 0x010F
EXIF_MODEL = 0x0110

# Exif sub-IFD pointer and the tag that lives in it
EXIF_IFD_POINTER = 0x8769
EXIF_DATETIME_ORIGINAL = 0x9003

# Output keys, merged over client metadata
CAPTURE_METADATA_KEYS = {
    EXIF_DATETIME_ORIGINAL: "capturedAt",
    EXIF_MAKE: "deviceMake",
    EXIF_MODEL: "deviceModel",
}


# =============================================================================
# Exceptions
# =============================================================================


class ImageProcessingError(NonFatalExtractionError):
    """
    Raised when an image cannot be parsed.

    Covers corrupted content, unknown formats and decompression bombs.
    The pipeline treats it as non-fatal.
    """

    pass


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RenderedPreview:
    """
    A rendered preview ready to be stored.

    Attributes:
        content: Encoded preview bytes
        width: Preview width in pixels
        height: Preview height in pixels
        source_width: Width of the original image
        source_height: Height of the original image
    """

    content: bytes
    width: int
    height: int
    source_width: int
    source_height: int

    @property
    def byte_size(self) -> int:
        return len(self.content)


# =============================================================================
# Metadata Extraction
# =============================================================================


def extract_capture_metadata(header: bytes) -> dict[str, str]:
    """
    Read capture metadata from the leading bytes of an image.

    Only the header is parsed; pixel data is never decoded, so a prefix of
    the object is enough for formats that store EXIF up front (JPEG, HEIC
    containers read by Pillow plugins, WebP).

    Args:
        header: Leading bytes of the image object.

    Returns:
        Dict with any of ``capturedAt``, ``deviceMake``, ``deviceModel``.
        Values are the raw EXIF strings (``capturedAt`` keeps the EXIF
        ``YYYY:MM:DD HH:MM:SS`` form). Empty if the image has no EXIF.

    Raises:
        ImageProcessingError: If the header cannot be parsed.
    """
    try:
        with Image.open(BytesIO(header)) as img:
            exif = img.getexif()
            exif_ifd = exif.get_ifd(EXIF_IFD_POINTER) if exif else {}
    except (Image.UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise ImageProcessingError(f"Cannot read image header: {e}") from e
    except (OSError, SyntaxError, ValueError) as e:
        # Truncated headers and malformed EXIF blocks
        raise ImageProcessingError(f"Malformed image metadata: {e}") from e

    metadata: dict[str, str] = {}
    for tag_id, key in CAPTURE_METADATA_KEYS.items():
        value = exif_ifd.get(tag_id) if tag_id == EXIF_DATETIME_ORIGINAL else exif.get(tag_id)
        value = _clean_exif_string(value)
        if value:
            metadata[key] = value

    return metadata


def _clean_exif_string(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).strip().strip("\x00").strip()
    return text or None


# =============================================================================
# Preview Generation
# =============================================================================


def render_preview(source: "BinaryIO") -> RenderedPreview:
    """
    Render a preview that fits within the preview bounding box.

    Aspect ratio is preserved and images already inside the box keep their
    size. Output is a baseline (non-progressive) JPEG.

    Args:
        source: Readable, seekable file object holding the full image.

    Returns:
        RenderedPreview with encoded bytes and dimensions.

    Raises:
        ImageProcessingError: If the image cannot be decoded.
    """
    try:
        with Image.open(source) as img:
            # Force load to detect corrupt images early
            img.load()
            source_width, source_height = img.size

            preview = _convert_to_rgb(img)
            # thumbnail() only ever shrinks
            preview.thumbnail(PREVIEW_SIZE, Image.Resampling.LANCZOS)

            buffer = BytesIO()
            preview.save(
                buffer,
                format=PREVIEW_FORMAT,
                quality=PREVIEW_QUALITY,
                progressive=False,
            )
            width, height = preview.size

    except Image.DecompressionBombError as e:
        raise ImageProcessingError(f"Image exceeds maximum size limit: {e}") from e

    except Image.UnidentifiedImageError as e:
        raise ImageProcessingError(
            f"Cannot identify image format - file may be corrupted: {e}"
        ) from e

    except OSError as e:
        # Truncated data, unsupported codecs (e.g. HEIC without a plugin)
        raise ImageProcessingError(f"Cannot decode image: {e}") from e

    except (SyntaxError, ValueError, struct.error) as e:
        # Malformed chunks and tiles that Pillow reports outside OSError
        raise ImageProcessingError(f"Malformed image data: {e}") from e

    logger.debug(
        "Rendered preview",
        extra={
            "original_size": f"{source_width}x{source_height}",
            "preview_size": f"{width}x{height}",
        },
    )

    return RenderedPreview(
        content=buffer.getvalue(),
        width=width,
        height=height,
        source_width=source_width,
        source_height=source_height,
    )


def _convert_to_rgb(img: Image.Image) -> Image.Image:
    """
    Convert image to RGB mode for JPEG output.

    Handles various color modes:
    - RGBA / LA: Composites onto white background
    - P (palette): Composites if it has transparency, else converts
    - Other (L, CMYK, I;16, ...): Converts directly to RGB

    Args:
        img: PIL Image in any color mode.

    Returns:
        PIL Image in RGB mode. Always a new image, so callers may resize it
        in place.
    """
    if img.mode == "RGB":
        return img.copy()

    if img.mode == "P" and "transparency" in img.info:
        img = img.convert("RGBA")

    if img.mode in ("RGBA", "LA", "PA"):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background

    return img.convert("RGB")
