"""
Album and AlbumMedia models.

Only the parts the upload pipeline writes to are modelled here: an album
to link into and the link row itself. Listing, cover selection and album
management belong elsewhere.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import OrderableMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel


class Album(UUIDPrimaryKeyMixin, BaseModel):
    """A named collection of media owned by one user."""

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="albums",
        help_text="User who owns the album",
    )
    name = models.CharField(
        max_length=200,
        help_text="Display name of the album",
    )
    media = models.ManyToManyField(
        "media.MediaAsset",
        through="media.AlbumMedia",
        related_name="albums",
        blank=True,
    )

    def __str__(self) -> str:
        return f"Album({self.name})"


class AlbumMedia(UUIDPrimaryKeyMixin, OrderableMixin, BaseModel):
    """
    Link between an album and a media asset.

    New links are appended after the album's current last position.
    """

    album = models.ForeignKey(
        Album,
        on_delete=models.CASCADE,
        related_name="album_media",
        help_text="Album the media belongs to",
    )
    media = models.ForeignKey(
        "media.MediaAsset",
        on_delete=models.CASCADE,
        related_name="album_links",
        help_text="Linked media asset",
    )

    class Meta:
        ordering = ["album", "position"]
        constraints = [
            models.UniqueConstraint(
                fields=["album", "media"],
                name="uniq_album_media",
            ),
        ]

    def __str__(self) -> str:
        return f"AlbumMedia(album={self.album_id}, media={self.media_id})"

    def sibling_queryset(self) -> models.QuerySet:
        return AlbumMedia.objects.filter(album_id=self.album_id)
