"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    OrderableMixin: Explicit ordering within a parent (position field)

Usage:
    from core.models import BaseModel
    from core.model_mixins import OrderableMixin, UUIDPrimaryKeyMixin

    class AlbumMedia(UUIDPrimaryKeyMixin, OrderableMixin, BaseModel):
        album = models.ForeignKey(...)

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Ids are non-guessable and don't reveal record counts, which matters for
    ids handed to untrusted clients (upload sessions, download jobs).

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class OrderableMixin(models.Model):
    """
    Explicit ordering of records within a parent.

    Fields:
        position: Integer position for ordering (0-indexed)

    Subclasses that are ordered per parent should implement
    ``sibling_queryset()`` so ``next_position()`` appends at the end.
    """

    position = models.PositiveIntegerField(
        default=0,
        db_index=True,
        help_text="Position for ordering (lower numbers appear first)",
    )

    class Meta:
        abstract = True
        ordering = ["position"]

    def sibling_queryset(self) -> models.QuerySet:
        """Records sharing this record's ordering scope."""
        return self.__class__.objects.all()

    def next_position(self) -> int:
        """Position just after the current last sibling."""
        max_position = self.sibling_queryset().aggregate(
            max_pos=models.Max("position")
        )["max_pos"]
        return 0 if max_position is None else max_position + 1
