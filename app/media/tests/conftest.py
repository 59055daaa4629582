"""
Test fixtures for media app.

Provides fixtures for:
- Users and authenticated API clients
- An object store rooted in a per-test temporary directory
- Services wired with the immediate scheduler
- Sample images (with and without EXIF) and raw bytes
- A mocked Redis connection for the single-flight lock
"""

from __future__ import annotations

import io
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest
from PIL import Image
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from media.services.downloads import ArchiveAssembler, DownloadJobService
from media.services.scheduling import ImmediateScheduler
from media.services.storage import Container, LocalObjectStoreGateway
from media.services.uploads import PROCESSING_MODE_INLINE, UploadSessionService
from media.tests.factories import UserFactory, make_jpeg

if TYPE_CHECKING:
    from pathlib import Path

    from django.contrib.auth.models import User

TEST_BASE_URL = "http://testserver"
TEST_BLOCK_SIZE = 1024


# =============================================================================
# Users & Clients
# =============================================================================


@pytest.fixture
def user(db) -> "User":
    return UserFactory()


@pytest.fixture
def other_user(db) -> "User":
    return UserFactory()


@pytest.fixture
def api_client() -> APIClient:
    """Return unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client(user: "User") -> APIClient:
    """Return API client authenticated with JWT token."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


# =============================================================================
# Object Store
# =============================================================================


@pytest.fixture
def object_store_root(settings, tmp_path: "Path") -> "Path":
    """Point the configured object store at a temporary directory."""
    root = tmp_path / "objects"
    settings.OBJECT_STORE_BACKEND = "local"
    settings.OBJECT_STORE_ROOT = str(root)
    settings.OBJECT_STORE_BASE_URL = TEST_BASE_URL
    settings.UPLOAD_BLOCK_SIZE = TEST_BLOCK_SIZE
    return root


@pytest.fixture
def gateway(object_store_root: "Path") -> LocalObjectStoreGateway:
    """Gateway built from settings, so relay views see the same store."""
    return LocalObjectStoreGateway.from_settings()


@pytest.fixture
def stage_original(gateway: LocalObjectStoreGateway):
    """
    Write bytes straight into the uploads container, as a committed block
    list would have left them.
    """

    def _stage(object_path: str, content: bytes) -> None:
        gateway.write(Container.UPLOADS, object_path, io.BytesIO(content))

    return _stage


@pytest.fixture
def store_original(gateway: LocalObjectStoreGateway):
    """Write bytes into the originals container."""

    def _store(object_path: str, content: bytes) -> None:
        gateway.write(Container.ORIGINALS, object_path, io.BytesIO(content))

    return _store


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def immediate_scheduler() -> ImmediateScheduler:
    return ImmediateScheduler()


@pytest.fixture
def upload_service(
    gateway: LocalObjectStoreGateway, immediate_scheduler: ImmediateScheduler
) -> UploadSessionService:
    """Inline-mode upload service on the temporary store."""
    return UploadSessionService(
        gateway=gateway,
        scheduler=immediate_scheduler,
        processing_mode=PROCESSING_MODE_INLINE,
        upload_url_expiry=timedelta(minutes=60),
    )


@pytest.fixture
def download_service(
    gateway: LocalObjectStoreGateway, immediate_scheduler: ImmediateScheduler
) -> DownloadJobService:
    return DownloadJobService(gateway=gateway, scheduler=immediate_scheduler)


@pytest.fixture
def assembler(gateway: LocalObjectStoreGateway) -> ArchiveAssembler:
    return ArchiveAssembler(gateway=gateway, lock_ttl=60)


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for single-flight claim tests.

    Returns a MagicMock configured so every lock is free.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.eval.return_value = 1
    mocker.patch("core.locks.get_redis_connection", return_value=mock_client)
    return mock_client


# =============================================================================
# Sample Files
# =============================================================================


@pytest.fixture
def sample_jpeg() -> bytes:
    """800x600 JPEG with camera EXIF."""
    return make_jpeg(
        make="Canon",
        model="EOS R5",
        captured_at="2024:05:01 10:20:30",
    )


@pytest.fixture
def plain_jpeg() -> bytes:
    """Small JPEG without EXIF."""
    return make_jpeg(size=(120, 80), color="blue")


@pytest.fixture
def sample_png() -> bytes:
    """RGBA PNG, 1000x500."""
    img = Image.new("RGBA", (1000, 500), color=(0, 255, 0, 128))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def corrupt_image() -> bytes:
    """Bytes that claim to be a JPEG but are not decodable."""
    return b"\xff\xd8\xff\xe0" + b"not really a jpeg" * 64


@pytest.fixture
def video_bytes() -> bytes:
    """Opaque payload standing in for a video container."""
    return b"\x00\x00\x00\x18ftypmp42" + bytes(range(256)) * 8
