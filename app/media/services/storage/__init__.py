"""
Object store gateway package.

Usage:
    from media.services.storage import Container, get_object_store

    gateway = get_object_store()
    size = gateway.promote(session.object_path)
    header = gateway.read_range(Container.ORIGINALS, session.object_path, 0, 65536)

The S3 gateway lives in media.services.storage.s3 and is imported by the
factory only when selected.
"""

from media.services.storage.base import (
    CommitFormat,
    Container,
    ObjectStoreGateway,
    Permission,
    SignedUrl,
)
from media.services.storage.factory import get_object_store
from media.services.storage.local import LocalObjectStoreGateway

__all__ = [
    "CommitFormat",
    "Container",
    "LocalObjectStoreGateway",
    "ObjectStoreGateway",
    "Permission",
    "SignedUrl",
    "get_object_store",
]
