"""
Media models package.

Exports:
    Album: Collection media can be linked into
    AlbumMedia: Ordered album/media link
    DownloadJob: Batch archive packaging request
    MediaAsset: Durable record of a processed upload
    UploadSession: Tracks direct-to-storage chunked uploads
"""

from media.models.album import Album, AlbumMedia
from media.models.download_job import DownloadJob
from media.models.media_asset import MediaAsset
from media.models.upload_session import UploadSession

__all__ = [
    "Album",
    "AlbumMedia",
    "DownloadJob",
    "MediaAsset",
    "UploadSession",
]
