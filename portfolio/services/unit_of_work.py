"""
Unit of work — the single commit path for every use case.

One HTTP request (one service call) is one transaction.  Services queue
changes on ``db.session`` and finish with ``commit(actor_id)``:

    1. ``stamp_audit_fields`` walks pending new / changed rows and fills
       created_by / updated_at / updated_by from the acting user.
    2. The session is committed.
    3. Persistence failures are rolled back and re-raised as domain errors:
         IntegrityError → DuplicateEntryError   (409)
         StaleDataError → ConcurrentUpdateError (409, retryable)

If a service raises before ``commit`` nothing is written: the session is
discarded at request teardown.
"""

import logging

from flask import g
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from portfolio.core.exceptions import ConcurrentUpdateError, DuplicateEntryError
from portfolio.models import db
from portfolio.models.base import AuditMixin
from portfolio.utils.time import utcnow

logger = logging.getLogger(__name__)


def _context_actor_id():
    try:
        return getattr(g, "jwt_user_id", None)
    except RuntimeError:
        # outside an app context (scripts)
        return None


def stamp_audit_fields(session, actor_id=None):
    """Fill audit columns on pending AuditMixin rows.  Returns the number stamped."""
    if actor_id is None:
        actor_id = _context_actor_id()
    now = utcnow()
    stamped = 0
    for obj in list(session.new):
        if isinstance(obj, AuditMixin):
            obj.mark_created(actor_id, now)
            stamped += 1
    for obj in list(session.dirty):
        if isinstance(obj, AuditMixin) and session.is_modified(obj, include_collections=False):
            obj.mark_updated(actor_id, now)
            stamped += 1
    return stamped


def _translate(exc):
    db.session.rollback()
    if isinstance(exc, StaleDataError):
        logger.warning("Optimistic concurrency conflict: %s", exc)
        return ConcurrentUpdateError()
    logger.warning("Integrity violation: %s", getattr(exc, "orig", exc))
    return DuplicateEntryError()


def flush(actor_id=None):
    """Flush pending rows (to obtain ids) inside the current transaction."""
    stamp_audit_fields(db.session, actor_id)
    try:
        db.session.flush()
    except (IntegrityError, StaleDataError) as exc:
        raise _translate(exc) from exc


def commit(actor_id=None):
    """Stamp audit fields and commit the current transaction."""
    stamp_audit_fields(db.session, actor_id)
    try:
        db.session.commit()
    except (IntegrityError, StaleDataError) as exc:
        raise _translate(exc) from exc
