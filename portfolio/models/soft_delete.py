"""
Soft Delete Mixin.

Adds `deleted_at` / `deleted_by` columns.  Models that include this mixin
are marked as deleted rather than physically removed.

There is no global query filter: every read path applies
``Model.not_deleted()`` itself.

Usage:
    class MyModel(SoftDeleteMixin, db.Model):
        ...

    obj.soft_delete(user_id)
    select(MyModel).where(MyModel.id == pk, MyModel.not_deleted())
"""

from portfolio.models import db
from portfolio.utils.time import utcnow


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)
    deleted_by = db.Column(db.Integer, nullable=True)

    def soft_delete(self, user_id=None):
        """Mark this record as deleted."""
        self.deleted_at = utcnow()
        self.deleted_by = user_id

    @classmethod
    def not_deleted(cls):
        """WHERE-clause predicate excluding soft-deleted rows."""
        return cls.deleted_at.is_(None)

