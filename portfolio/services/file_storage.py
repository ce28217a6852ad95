"""
File storage — local filesystem backend for document versions.

Callers deal only in opaque storage paths ("documents/12/v3/3f2a…_report.pdf")
relative to ``STORAGE_ROOT``.  Paths are validated before any disk access.
"""

import logging
import os
import uuid

from flask import current_app

from portfolio.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_PATH_LENGTH = 1024


def parse_storage_path(raw: str | None) -> tuple[str, None] | tuple[None, str]:
    value = (raw or "").strip()
    if not value:
        return None, "Storage path cannot be empty."
    if len(value) > MAX_PATH_LENGTH:
        return None, f"Storage path cannot exceed {MAX_PATH_LENGTH} characters."
    if ".." in value or value.startswith(("/", "\\")):
        return None, "Storage path cannot contain path traversal sequences."
    return value, None


def _root() -> str:
    return current_app.config["STORAGE_ROOT"]


def _absolute(storage_path: str) -> str:
    path, err = parse_storage_path(storage_path)
    if err:
        raise ValidationError(err, code="INVALID_STORAGE_PATH")
    return os.path.join(_root(), *path.split("/"))


def save_file(content: bytes, file_name: str, folder: str) -> str:
    """Write ``content`` under ``folder`` and return its storage path."""
    storage_path = f"{folder.strip('/')}/{uuid.uuid4().hex}_{file_name}"
    target = _absolute(storage_path)
    os.makedirs(os.path.dirname(target), exist_ok=True)
    with open(target, "wb") as fh:
        fh.write(content)
    logger.debug("Stored %d bytes at %s", len(content), storage_path)
    return storage_path


def get_file(storage_path: str) -> bytes:
    if not file_exists(storage_path):
        raise NotFoundError("File", storage_path, code="FILE_NOT_FOUND")
    with open(_absolute(storage_path), "rb") as fh:
        return fh.read()


def delete_file(storage_path: str) -> bool:
    if not file_exists(storage_path):
        return False
    os.remove(_absolute(storage_path))
    return True


def file_exists(storage_path: str) -> bool:
    return os.path.isfile(_absolute(storage_path))
