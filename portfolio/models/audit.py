"""
Portfolio Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of document lifecycle events
      (created, updated, version uploaded, submitted, approved, ...).
"""

import json

from portfolio.models import db
from portfolio.utils.time import isoformat, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"document", "approval_request", "workflow"}

AUDIT_ACTIONS = {
    "document.create",
    "document.update",
    "document.delete",
    "document.upload_version",
    "document.tag",
    "document.untag",
    "document.revert_to_draft",
    "approval.submit",
    "approval.approve_step",
    "approval.reject",
    "approval.complete",
    "approval.cancel",
    "workflow.create",
    "workflow.activate",
    "workflow.deactivate",
}


class AuditLog(db.Model):
    """
    One row per lifecycle action.  ``metadata_json`` carries small
    action-specific context (version number, step order, comment).
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_ts", "performed_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(60), nullable=False)
    performed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    metadata_json = db.Column(db.Text, default="{}")

    @property
    def meta(self) -> dict:
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "performed_by": self.performed_by,
            "performed_at": isoformat(self.performed_at),
            "metadata": self.meta,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id: int,
    action: str,
    performed_by: int | None = None,
    metadata: dict | None = None,
) -> AuditLog:
    """
    Queue a single audit row on the current session.  The caller's
    ``unit_of_work.commit()`` persists it with the rest of the change.
    """
    log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        performed_by=performed_by,
        metadata_json=json.dumps(metadata or {}, default=str),
    )
    db.session.add(log)
    return log
