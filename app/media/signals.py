"""
Django signals for the media app.

Provides handlers for:
- Removing stored objects when a MediaAsset row is deleted
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models.signals import post_delete

if TYPE_CHECKING:
    from media.models import MediaAsset

logger = logging.getLogger(__name__)


def connect_signals():
    """
    Connect all signal handlers.

    Called from MediaConfig.ready() to ensure signals are connected
    after all models are loaded.
    """
    from media.models import MediaAsset

    post_delete.connect(
        delete_stored_objects,
        sender=MediaAsset,
        dispatch_uid="media_asset_delete_objects",
    )

    logger.debug("Media signals connected")


def delete_stored_objects(
    sender,
    instance: "MediaAsset",
    **kwargs,
) -> None:
    """
    Delete the original and the preview once the row deletion commits.

    Args:
        sender: MediaAsset model class.
        instance: MediaAsset being deleted.
        **kwargs: Additional signal arguments.
    """
    blob_path = instance.blob_path
    preview_path = instance.preview_path
    transaction.on_commit(lambda: _delete_objects(blob_path, preview_path))


def _delete_objects(blob_path: str, preview_path: str | None) -> None:
    from core.exceptions import BaseApplicationError
    from media.services.storage import Container, get_object_store

    gateway = get_object_store()
    targets = [(Container.ORIGINALS, blob_path)]
    if preview_path:
        targets.append((Container.THUMBNAILS, preview_path))

    for container, object_path in targets:
        try:
            gateway.delete(container, object_path)
        except BaseApplicationError as e:
            # Row is already gone; leave the orphan for manual cleanup
            logger.error(
                "Failed to delete stored object",
                extra={
                    "container": container.value,
                    "object_path": object_path,
                    "error": str(e),
                },
            )
