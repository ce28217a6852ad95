"""
Portfolio Platform
Document manager domain models.

Models:
    - Folder: hierarchical container (self-referencing parent_id)
    - Tag: global label with optional colour
    - Document: versioned business document with an approval status
    - DocumentVersion: immutable uploaded file revision
    - DocumentTag: document ↔ tag association row

Document lifecycle:
    draft → pending_approval → approved
                             → rejected → draft (revert, then resubmit)
                             → draft    (approval request cancelled)
    approved is final.
"""

from portfolio.core.exceptions import (
    ConflictError,
    DocumentHasNoVersionsError,
    DocumentNotInDraftError,
    InvalidDocumentStateError,
    NotFoundError,
    UnauthorizedDocumentAccessError,
    ValidationError,
)
from portfolio.models import db
from portfolio.models.base import AuditMixin
from portfolio.models.soft_delete import SoftDeleteMixin
from portfolio.utils.time import isoformat, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

DOCUMENT_STATUSES = {"draft", "pending_approval", "approved", "rejected"}

DOCUMENT_TRANSITIONS = {
    "draft": {"pending_approval"},
    "pending_approval": {"approved", "rejected", "draft"},
    "rejected": {"draft"},
    "approved": set(),
}


def validate_document_transition(current: str, target: str) -> bool:
    return target in DOCUMENT_TRANSITIONS.get(current, set())


# ═════════════════════════════════════════════════════════════════════════════
# FOLDER
# ═════════════════════════════════════════════════════════════════════════════


class Folder(AuditMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "folders"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey("folders.id", ondelete="CASCADE"), nullable=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    __table_args__ = (
        db.Index("ix_folders_parent", "parent_id"),
    )

    parent = db.relationship("Folder", remote_side=[id], back_populates="children")
    children = db.relationship("Folder", back_populates="parent", order_by="Folder.name")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "owner_id": self.owner_id,
            "created_at": isoformat(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# TAG
# ═════════════════════════════════════════════════════════════════════════════


class Tag(db.Model):
    __tablename__ = "tags"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    color = db.Column(db.String(7), nullable=True)  # "#RRGGBB"
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "color": self.color}


class DocumentTag(db.Model):
    __tablename__ = "document_tags"

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    tag_id = db.Column(db.Integer, db.ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)
    assigned_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("document_id", "tag_id", name="uq_document_tag"),
    )

    document = db.relationship("Document", back_populates="document_tags")
    tag = db.relationship("Tag")


# ═════════════════════════════════════════════════════════════════════════════
# DOCUMENT
# ═════════════════════════════════════════════════════════════════════════════


class Document(AuditMixin, SoftDeleteMixin, db.Model):
    """
    A versioned document owned by one user.

    Business rules:
    - Only draft documents accept new versions, edits and tag changes, and
      only from their owner.
    - version_number increases by one per upload, starting at 1.
    - Submission for approval needs at least one version.
    """

    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default="draft")
    current_version_number = db.Column(db.Integer, nullable=False, default=0)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    folder_id = db.Column(db.Integer, db.ForeignKey("folders.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        db.Index("ix_documents_owner_status", "owner_id", "status"),
        db.Index("ix_documents_folder", "folder_id"),
    )

    versions = db.relationship(
        "DocumentVersion", back_populates="document",
        order_by="DocumentVersion.version_number", cascade="all, delete-orphan",
    )
    document_tags = db.relationship(
        "DocumentTag", back_populates="document", cascade="all, delete-orphan",
    )
    folder = db.relationship("Folder")

    # ── Guards ───────────────────────────────────────────────────────────

    def ensure_draft(self):
        if self.status != "draft":
            raise DocumentNotInDraftError(self.id, self.status)

    def ensure_can_be_modified_by(self, user_id):
        self.ensure_draft()
        if self.owner_id != user_id:
            raise UnauthorizedDocumentAccessError(self.id)

    def _transition(self, target):
        if not validate_document_transition(self.status, target):
            raise InvalidDocumentStateError(
                f"Document id={self.id} cannot move from '{self.status}' to '{target}'"
            )
        self.status = target

    # ── Content ──────────────────────────────────────────────────────────

    def update_details(self, title, description=None):
        self.ensure_draft()
        self.title = title
        self.description = description

    def add_version(self, *, file_name, mime_type, file_size, storage_path, uploaded_by):
        self.ensure_draft()
        if file_size is None or file_size <= 0:
            raise ValidationError("File size must be greater than zero", code="INVALID_FILE_SIZE")
        self.current_version_number = (self.current_version_number or 0) + 1
        version = DocumentVersion(
            version_number=self.current_version_number,
            file_name=file_name,
            mime_type=mime_type,
            file_size=file_size,
            storage_path=storage_path,
            uploaded_by=uploaded_by,
        )
        self.versions.append(version)
        return version

    def add_tag(self, tag):
        self.ensure_draft()
        if any(dt.tag_id == tag.id for dt in self.document_tags):
            raise ConflictError(
                f"Tag '{tag.name}' is already assigned to document id={self.id}",
                code="TAG_ALREADY_ASSIGNED",
            )
        self.document_tags.append(DocumentTag(tag=tag, tag_id=tag.id))

    def remove_tag(self, tag_id):
        self.ensure_draft()
        for dt in self.document_tags:
            if dt.tag_id == tag_id:
                self.document_tags.remove(dt)
                return
        raise NotFoundError("DocumentTag", tag_id, code="TAG_NOT_ASSIGNED")

    # ── Approval lifecycle ───────────────────────────────────────────────

    def submit_for_approval(self):
        self.ensure_draft()
        if not self.current_version_number:
            raise DocumentHasNoVersionsError(self.id)
        self._transition("pending_approval")

    def approve(self):
        self._transition("approved")

    def reject(self):
        self._transition("rejected")

    def withdraw_from_approval(self):
        """Cancelled approval request: pending_approval → draft."""
        if self.status != "pending_approval":
            raise InvalidDocumentStateError(f"Document id={self.id} is not pending approval")
        self._transition("draft")

    def revert_to_draft(self):
        """Rejected → draft so the owner can revise and resubmit."""
        if self.status == "approved":
            raise InvalidDocumentStateError("An approved document cannot be reverted to draft")
        if self.status != "rejected":
            raise InvalidDocumentStateError(f"Document id={self.id} is '{self.status}', not rejected")
        self._transition("draft")

    def to_dict(self, include_versions=False):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "current_version_number": self.current_version_number,
            "owner_id": self.owner_id,
            "folder_id": self.folder_id,
            "tags": sorted(dt.tag.name for dt in self.document_tags if dt.tag),
            "created_at": isoformat(self.created_at),
            "created_by": self.created_by,
            "updated_at": isoformat(self.updated_at),
            "updated_by": self.updated_by,
        }
        if include_versions:
            d["versions"] = [v.to_dict() for v in self.versions]
        return d


class DocumentVersion(db.Model):
    """Immutable file revision.  version_number is unique per document."""

    __tablename__ = "document_versions"

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    version_number = db.Column(db.Integer, nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(120), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=False)
    storage_path = db.Column(db.String(1024), nullable=False)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("document_id", "version_number", name="uq_document_version_number"),
    )

    document = db.relationship("Document", back_populates="versions")

    def to_dict(self):
        return {
            "id": self.id,
            "document_id": self.document_id,
            "version_number": self.version_number,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "file_size": self.file_size,
            "storage_path": self.storage_path,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": isoformat(self.uploaded_at),
        }
