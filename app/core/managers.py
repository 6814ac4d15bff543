"""
Custom QuerySet classes for common patterns.

Usage:
    from core.managers import SoftDeleteQuerySet

    class Message(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteQuerySet.as_manager()

    Message.objects.active()   # Not soft-deleted
    Message.objects.deleted()  # Only soft-deleted

Note:
    Unlike a default-filtering manager, soft-deleted rows stay visible to
    plain queries so replies to a deleted message still resolve. History
    and search call active() explicitly.
"""

from __future__ import annotations

from django.db import models


class SoftDeleteQuerySet(models.QuerySet):
    """QuerySet with explicit filters for soft-deleted records."""

    def active(self) -> SoftDeleteQuerySet:
        """Filter to records that have not been soft deleted."""
        return self.filter(is_deleted=False)

    def deleted(self) -> SoftDeleteQuerySet:
        """Filter to soft-deleted records only."""
        return self.filter(is_deleted=True)
