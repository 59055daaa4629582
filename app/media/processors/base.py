"""
Base module for media processors.

Provides the shared exceptions and constants used by the processing
pipeline's derivation steps.

Exception Hierarchy:
    ProcessingError (base)
    └── NonFatalExtractionError (logged and skipped by the pipeline)
        └── ImageProcessingError

Usage:
    from media.processors.base import NonFatalExtractionError

    try:
        metadata = extract_capture_metadata(header)
    except NonFatalExtractionError:
        # Continue with client-supplied metadata only
        metadata = {}
"""

from __future__ import annotations

# =============================================================================
# Constants
# =============================================================================

# Bytes of the original read for capture metadata (EXIF lives near the start)
METADATA_PREFIX_BYTES = 64 * 1024

# Preview bounding box; previews are never enlarged
PREVIEW_SIZE = (400, 400)
PREVIEW_QUALITY = 80
PREVIEW_FORMAT = "JPEG"
PREVIEW_SUFFIX = "_thumb.jpg"

# Full objects are spooled to disk above this size while deriving previews
PREVIEW_SPOOL_MAX_MEMORY = 8 * 1024 * 1024


# =============================================================================
# Exceptions
# =============================================================================


class ProcessingError(Exception):
    """
    Base exception for all media processing errors.

    Catching this class will catch all processing-related exceptions.
    """

    pass


class NonFatalExtractionError(ProcessingError):
    """
    Derivation failed but the pipeline should carry on.

    Raised by metadata extraction and preview rendering when the source
    cannot be parsed: corrupted content, unsupported encoding, images over
    the decompression limit. The pipeline logs a warning and creates the
    media record without the derived data.
    """

    pass
