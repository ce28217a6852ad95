"""
Document Service — documents, versions, tags and folders.

Design decisions:
    - Edits, uploads and tag changes need a draft document and its owner
      (``Document.ensure_can_be_modified_by``).
    - File name / mime type checks return ``(value, None)`` or
      ``(None, message)``; ``upload_version`` turns a message into the
      matching ``INVALID_*`` ValidationError before touching storage.
    - Every lifecycle change writes an AuditLog row in the same transaction.
    - Soft-deleted documents and folders are filtered on every read.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import or_, select

from portfolio.core.exceptions import (
    ConflictError,
    DocumentNotFoundError,
    InvalidDocumentStateError,
    NotFoundError,
    UnauthorizedDocumentAccessError,
    ValidationError,
)
from portfolio.models import db
from portfolio.models.audit import AuditLog, write_audit
from portfolio.models.document import DOCUMENT_STATUSES, Document, Folder, Tag
from portfolio.services import document_authorization, file_storage, unit_of_work
from portfolio.services.current_user import CurrentUser

logger = logging.getLogger(__name__)

MAX_FILE_NAME_LENGTH = 255
_INVALID_FILE_NAME_CHARS = set('<>:"/\\|?*') | {chr(c) for c in range(32)}


# ── Value checks ─────────────────────────────────────────────────────────────


def parse_file_name(raw: str | None) -> tuple[str, None] | tuple[None, str]:
    value = (raw or "").strip()
    if not value:
        return None, "File name cannot be empty."
    if len(value) > MAX_FILE_NAME_LENGTH:
        return None, f"File name cannot exceed {MAX_FILE_NAME_LENGTH} characters."
    if any(ch in _INVALID_FILE_NAME_CHARS for ch in value):
        return None, "File name contains invalid characters."
    return value, None


def parse_mime_type(raw: str | None) -> tuple[str, None] | tuple[None, str]:
    value = (raw or "").strip().lower()
    if not value:
        return None, "MIME type cannot be empty."
    allowed = current_app.config["ALLOWED_MIME_TYPES"]
    if value not in allowed:
        return None, f"MIME type '{value}' is not allowed. Allowed types: {', '.join(allowed)}"
    return value, None


# ── Lookups ──────────────────────────────────────────────────────────────────


def _load(document_id: int) -> Document:
    doc = db.session.execute(
        select(Document).where(Document.id == document_id, Document.not_deleted())
    ).scalar_one_or_none()
    if doc is None:
        raise DocumentNotFoundError(document_id)
    return doc


def get_document_for_view(document_id: int, user: CurrentUser) -> Document:
    doc = _load(document_id)
    if not document_authorization.can_view(doc, user.user_id, user.roles):
        # indistinguishable from a missing document
        raise DocumentNotFoundError(document_id)
    return doc


def get_document_for_manage(document_id: int, user: CurrentUser) -> Document:
    doc = _load(document_id)
    if not document_authorization.can_manage(doc, user.user_id, user.roles):
        raise UnauthorizedDocumentAccessError(document_id)
    return doc


def _load_folder(folder_id: int) -> Folder:
    folder = db.session.execute(
        select(Folder).where(Folder.id == folder_id, Folder.not_deleted())
    ).scalar_one_or_none()
    if folder is None:
        raise NotFoundError("Folder", folder_id, code="FOLDER_NOT_FOUND")
    return folder


# ═════════════════════════════════════════════════════════════════════════════
# Documents
# ═════════════════════════════════════════════════════════════════════════════


def create_document(user: CurrentUser, title: str, description: str | None = None,
                    folder_id: int | None = None) -> Document:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required", code="INVALID_DOCUMENT")
    if folder_id is not None:
        folder = _load_folder(folder_id)
        if folder.owner_id != user.user_id:
            raise NotFoundError("Folder", folder_id, code="FOLDER_NOT_FOUND")

    doc = Document(title=title, description=description, owner_id=user.user_id, folder_id=folder_id)
    db.session.add(doc)
    unit_of_work.flush(user.user_id)
    write_audit(entity_type="document", entity_id=doc.id, action="document.create",
                performed_by=user.user_id, metadata={"title": title})
    unit_of_work.commit(user.user_id)
    logger.info("Document created", extra={"document_id": doc.id})
    return doc


def update_document(document_id: int, user: CurrentUser, title: str,
                    description: str | None = None) -> Document:
    doc = _load(document_id)
    doc.ensure_can_be_modified_by(user.user_id)
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required", code="INVALID_DOCUMENT")
    doc.update_details(title, description)
    write_audit(entity_type="document", entity_id=doc.id, action="document.update",
                performed_by=user.user_id)
    unit_of_work.commit(user.user_id)
    return doc


def delete_document(document_id: int, user: CurrentUser) -> None:
    doc = get_document_for_manage(document_id, user)
    if doc.status == "pending_approval":
        raise InvalidDocumentStateError("A document pending approval cannot be deleted")
    doc.soft_delete(user.user_id)
    write_audit(entity_type="document", entity_id=doc.id, action="document.delete",
                performed_by=user.user_id)
    unit_of_work.commit(user.user_id)
    logger.info("Document soft-deleted", extra={"document_id": doc.id})


def list_documents(user: CurrentUser, status: str | None = None, folder_id: int | None = None,
                   owner_id: int | None = None):
    """Documents the caller may see, newest first."""
    if status is not None and status not in DOCUMENT_STATUSES:
        raise ValidationError(f"Unknown status '{status}'", code="INVALID_DOCUMENT_STATUS")
    stmt = select(Document).where(Document.not_deleted())
    if not document_authorization.is_document_admin(user.user_id, user.roles):
        stmt = stmt.where(or_(Document.owner_id == user.user_id, Document.status == "approved"))
    if status:
        stmt = stmt.where(Document.status == status)
    if folder_id is not None:
        stmt = stmt.where(Document.folder_id == folder_id)
    if owner_id is not None:
        stmt = stmt.where(Document.owner_id == owner_id)
    return db.session.execute(stmt.order_by(Document.created_at.desc(), Document.id.desc())).scalars().all()


def revert_to_draft(document_id: int, user: CurrentUser) -> Document:
    doc = get_document_for_manage(document_id, user)
    doc.revert_to_draft()
    write_audit(entity_type="document", entity_id=doc.id, action="document.revert_to_draft",
                performed_by=user.user_id)
    unit_of_work.commit(user.user_id)
    logger.info("Document reverted to draft", extra={"document_id": doc.id})
    return doc


def get_document_history(document_id: int, user: CurrentUser) -> list[AuditLog]:
    doc = get_document_for_view(document_id, user)
    return db.session.execute(
        select(AuditLog)
        .where(AuditLog.entity_type == "document", AuditLog.entity_id == doc.id)
        .order_by(AuditLog.performed_at, AuditLog.id)
    ).scalars().all()


# ═════════════════════════════════════════════════════════════════════════════
# Versions
# ═════════════════════════════════════════════════════════════════════════════


def upload_version(document_id: int, user: CurrentUser, file_name: str, mime_type: str,
                   content: bytes):
    doc = _load(document_id)
    doc.ensure_can_be_modified_by(user.user_id)

    file_name, err = parse_file_name(file_name)
    if err:
        raise ValidationError(err, code="INVALID_FILE_NAME")
    mime_type, err = parse_mime_type(mime_type)
    if err:
        raise ValidationError(err, code="INVALID_MIME_TYPE")
    size = len(content or b"")
    if size <= 0:
        raise ValidationError("File size must be greater than zero", code="INVALID_FILE_SIZE")
    if size > current_app.config["MAX_UPLOAD_BYTES"]:
        raise ValidationError("File exceeds the maximum upload size", code="INVALID_FILE_SIZE")

    next_number = (doc.current_version_number or 0) + 1
    storage_path = file_storage.save_file(content, file_name, f"documents/{doc.id}/v{next_number}")
    try:
        version = doc.add_version(
            file_name=file_name,
            mime_type=mime_type,
            file_size=size,
            storage_path=storage_path,
            uploaded_by=user.user_id,
        )
        write_audit(entity_type="document", entity_id=doc.id, action="document.upload_version",
                    performed_by=user.user_id,
                    metadata={"version_number": version.version_number, "file_name": file_name})
        unit_of_work.commit(user.user_id)
    except Exception:
        # the row never landed; do not leave an orphan file behind
        file_storage.delete_file(storage_path)
        raise
    logger.info("Document version uploaded",
                extra={"document_id": doc.id, "version_number": version.version_number})
    return version


def get_version_content(document_id: int, version_number: int, user: CurrentUser):
    doc = get_document_for_view(document_id, user)
    version = next((v for v in doc.versions if v.version_number == version_number), None)
    if version is None:
        raise NotFoundError("DocumentVersion", version_number, code="DOCUMENT_VERSION_NOT_FOUND")
    return version, file_storage.get_file(version.storage_path)


# ═════════════════════════════════════════════════════════════════════════════
# Tags
# ═════════════════════════════════════════════════════════════════════════════


def create_tag(name: str, color: str | None = None) -> Tag:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Tag name is required", code="INVALID_TAG")
    if color and (len(color) != 7 or not color.startswith("#")):
        raise ValidationError("Tag color must look like #RRGGBB", code="INVALID_TAG")
    if db.session.execute(select(Tag).where(Tag.name == name)).scalar_one_or_none():
        raise ConflictError(f"Tag {name!r} already exists", code="TAG_ALREADY_EXISTS")
    tag = Tag(name=name, color=color)
    db.session.add(tag)
    unit_of_work.commit()
    return tag


def list_tags() -> list[Tag]:
    return db.session.execute(select(Tag).order_by(Tag.name)).scalars().all()


def add_tag(document_id: int, tag_id: int, user: CurrentUser) -> Document:
    doc = _load(document_id)
    doc.ensure_can_be_modified_by(user.user_id)
    tag = db.session.get(Tag, tag_id)
    if tag is None:
        raise NotFoundError("Tag", tag_id, code="TAG_NOT_FOUND")
    doc.add_tag(tag)
    write_audit(entity_type="document", entity_id=doc.id, action="document.tag",
                performed_by=user.user_id, metadata={"tag": tag.name})
    unit_of_work.commit(user.user_id)
    return doc


def remove_tag(document_id: int, tag_id: int, user: CurrentUser) -> Document:
    doc = _load(document_id)
    doc.ensure_can_be_modified_by(user.user_id)
    doc.remove_tag(tag_id)
    write_audit(entity_type="document", entity_id=doc.id, action="document.untag",
                performed_by=user.user_id, metadata={"tag_id": tag_id})
    unit_of_work.commit(user.user_id)
    return doc


# ═════════════════════════════════════════════════════════════════════════════
# Folders
# ═════════════════════════════════════════════════════════════════════════════


def create_folder(user: CurrentUser, name: str, parent_id: int | None = None) -> Folder:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Folder name is required", code="INVALID_FOLDER")
    if parent_id is not None:
        parent = _load_folder(parent_id)
        if parent.owner_id != user.user_id:
            raise NotFoundError("Folder", parent_id, code="FOLDER_NOT_FOUND")

    clash = db.session.execute(
        select(Folder.id).where(
            Folder.owner_id == user.user_id,
            Folder.name == name,
            Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id,
            Folder.not_deleted(),
        )
    ).first()
    if clash:
        raise ConflictError(f"Folder {name!r} already exists here", code="FOLDER_ALREADY_EXISTS")

    folder = Folder(name=name, parent_id=parent_id, owner_id=user.user_id)
    db.session.add(folder)
    unit_of_work.commit(user.user_id)
    return folder


def get_folder_tree(user: CurrentUser) -> list[dict]:
    """Caller's folders as nested dicts, siblings sorted by name."""
    folders = db.session.execute(
        select(Folder)
        .where(Folder.owner_id == user.user_id, Folder.not_deleted())
        .order_by(Folder.name)
    ).scalars().all()

    nodes = {f.id: {**f.to_dict(), "children": []} for f in folders}
    roots = []
    for f in folders:
        node = nodes[f.id]
        if f.parent_id is not None and f.parent_id in nodes:
            nodes[f.parent_id]["children"].append(node)
        else:
            roots.append(node)
    return roots
