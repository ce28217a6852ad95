"""
AuditMixin — created/updated bookkeeping for mutable aggregates.

Adds:
  - created_at / created_by
  - updated_at / updated_by

``created_at`` is filled by a column default.  The ``*_by`` columns and
``updated_at`` are stamped explicitly by ``unit_of_work.stamp_audit_fields``
right before a flush, from the acting user.
"""

from portfolio.models import db
from portfolio.utils.time import utcnow


class AuditMixin:
    """Mixin for tables that record who created and last changed a row."""

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)

    def mark_created(self, actor_id, at):
        if self.created_at is None:
            self.created_at = at
        if self.created_by is None:
            self.created_by = actor_id

    def mark_updated(self, actor_id, at):
        self.updated_at = at
        self.updated_by = actor_id
