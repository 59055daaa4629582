"""
Media processors package.

Pure derivation functions used by the processing pipeline. They work on
bytes and file objects, never on models or storage, so the pipeline owns
all reads and writes.

- Capture metadata from the first bytes of an image (EXIF)
- Bounded JPEG previews

Usage:
    from media.processors import extract_capture_metadata, render_preview

    metadata = extract_capture_metadata(header_bytes)
    preview = render_preview(fileobj)
"""

from media.processors.base import (
    METADATA_PREFIX_BYTES,
    PREVIEW_SIZE,
    NonFatalExtractionError,
    ProcessingError,
)
from media.processors.image import (
    ImageProcessingError,
    RenderedPreview,
    extract_capture_metadata,
    render_preview,
)

__all__ = [
    "METADATA_PREFIX_BYTES",
    "PREVIEW_SIZE",
    "ImageProcessingError",
    "NonFatalExtractionError",
    "ProcessingError",
    "RenderedPreview",
    "extract_capture_metadata",
    "render_preview",
]
