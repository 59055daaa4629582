"""
Factory function for object store backend selection.

Provides a single place that turns settings into a gateway instance so
services, tasks and views share one construction path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

if TYPE_CHECKING:
    from media.services.storage.base import ObjectStoreGateway

BACKEND_S3 = "s3"
BACKEND_LOCAL = "local"


def get_object_store() -> "ObjectStoreGateway":
    """
    Get the gateway for the configured OBJECT_STORE_BACKEND.

    "s3" hands clients pre-signed S3 URLs so payloads never reach the app
    servers. "local" relays blocks through the app and is meant for
    development and tests.

    Settings are read at call time, so tests overriding OBJECT_STORE_ROOT
    get a gateway rooted in their temporary directory.

    Usage:
        gateway = get_object_store()
        target = gateway.create_upload_url("3f2a...9c.jpg", timedelta(minutes=60))
    """
    backend = settings.OBJECT_STORE_BACKEND

    if backend == BACKEND_S3:
        from media.services.storage.s3 import S3ObjectStoreGateway

        return S3ObjectStoreGateway.from_settings()

    if backend == BACKEND_LOCAL:
        from media.services.storage.local import LocalObjectStoreGateway

        return LocalObjectStoreGateway.from_settings()

    raise ImproperlyConfigured(f"Unknown OBJECT_STORE_BACKEND: {backend!r}")
