"""
Approval Service — drives a document through an approval workflow.

Lifecycle:
    submit_for_approval   document draft → pending_approval, request pending
    approve_step          decision appended; next step or request approved
    reject_step           decision appended; request and document rejected
    cancel_approval       request cancelled; document back to draft

Check order for decisions: request exists → request active → attempted step
is the current step → caller may decide it.  The step check runs before
authorization so an out-of-order attempt reports the step violation even for
a document admin.

Every mutation is one unit-of-work commit.  Lost races surface as
ConcurrentUpdateError (request ``version``) or, for concurrent submissions,
ApprovalRequestAlreadyExistsError (unique ``active_document_id``).
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from portfolio.core.exceptions import (
    ApprovalRequestAlreadyExistsError,
    ApprovalRequestNotFoundError,
    DocumentHasNoVersionsError,
    DocumentNotFoundError,
    DuplicateEntryError,
    ForbiddenError,
    UnauthorizedApproverError,
    UnauthorizedDocumentAccessError,
    WorkflowNotActiveError,
    WorkflowNotFoundError,
)
from portfolio.models import db
from portfolio.models.approval import ACTIVE_REQUEST_STATUSES, ApprovalRequest, ApprovalWorkflow
from portfolio.models.audit import write_audit
from portfolio.models.document import Document
from portfolio.services import document_authorization, document_service, unit_of_work
from portfolio.services.current_user import CurrentUser

logger = logging.getLogger(__name__)


def _get_request(approval_request_id: int) -> ApprovalRequest:
    req = db.session.get(ApprovalRequest, approval_request_id)
    if req is None:
        raise ApprovalRequestNotFoundError(approval_request_id)
    return req


def _active_request_for(document_id: int) -> ApprovalRequest | None:
    return db.session.execute(
        select(ApprovalRequest).where(
            ApprovalRequest.document_id == document_id,
            ApprovalRequest.status.in_(ACTIVE_REQUEST_STATUSES),
        )
    ).scalar_one_or_none()


# ═════════════════════════════════════════════════════════════════════════════
# Submit
# ═════════════════════════════════════════════════════════════════════════════


def submit_for_approval(document_id: int, workflow_id: int, user: CurrentUser) -> ApprovalRequest:
    doc = db.session.execute(
        select(Document).where(Document.id == document_id, Document.not_deleted())
    ).scalar_one_or_none()
    if doc is None:
        raise DocumentNotFoundError(document_id)
    if not document_authorization.can_manage(doc, user.user_id, user.roles):
        raise UnauthorizedDocumentAccessError(document_id)
    doc.ensure_draft()
    if not doc.current_version_number:
        raise DocumentHasNoVersionsError(doc.id)

    workflow = db.session.get(ApprovalWorkflow, workflow_id)
    if workflow is None:
        raise WorkflowNotFoundError(workflow_id)
    if not workflow.is_active:
        raise WorkflowNotActiveError(workflow_id)

    if _active_request_for(doc.id) is not None:
        raise ApprovalRequestAlreadyExistsError(doc.id)

    req = ApprovalRequest.start(doc, workflow, requested_by=user.user_id)
    doc.submit_for_approval()
    db.session.add(req)
    try:
        unit_of_work.flush(user.user_id)
        write_audit(entity_type="document", entity_id=doc.id, action="approval.submit",
                    performed_by=user.user_id,
                    metadata={"approval_request_id": req.id, "workflow_id": workflow.id})
        unit_of_work.commit(user.user_id)
    except DuplicateEntryError as exc:
        raise ApprovalRequestAlreadyExistsError(document_id) from exc

    logger.info(
        "Document submitted for approval",
        extra={"approval_request_id": req.id, "document_id": doc.id, "workflow_id": workflow.id},
    )
    return req


# ═════════════════════════════════════════════════════════════════════════════
# Decisions
# ═════════════════════════════════════════════════════════════════════════════


def _authorize_decision(req: ApprovalRequest, user: CurrentUser, step_order: int | None) -> None:
    req.ensure_active()
    req.ensure_step(req.current_step_order if step_order is None else step_order)
    if not document_authorization.can_approve(req, user.user_id, user.roles):
        step = req.current_step()
        raise UnauthorizedApproverError(step.required_role if step else "")


def approve_step(approval_request_id: int, user: CurrentUser, comment: str | None = None,
                 step_order: int | None = None) -> ApprovalRequest:
    """Approve the current step.  ``step_order``, when given, must match it."""
    req = _get_request(approval_request_id)
    _authorize_decision(req, user, step_order)

    decision = req.record_approval(user.user_id, comment)
    write_audit(entity_type="document", entity_id=req.document_id, action="approval.approve_step",
                performed_by=user.user_id,
                metadata={"approval_request_id": req.id, "step_order": decision.step_order,
                          "comment": comment})
    if req.status == "approved":
        write_audit(entity_type="document", entity_id=req.document_id, action="approval.complete",
                    performed_by=user.user_id, metadata={"approval_request_id": req.id})
    unit_of_work.commit(user.user_id)

    logger.info(
        "Approval step approved",
        extra={"approval_request_id": req.id, "step_order": decision.step_order, "status": req.status},
    )
    return req


def reject_step(approval_request_id: int, user: CurrentUser, comment: str | None = None,
                step_order: int | None = None) -> ApprovalRequest:
    req = _get_request(approval_request_id)
    _authorize_decision(req, user, step_order)

    decision = req.record_rejection(user.user_id, comment)
    write_audit(entity_type="document", entity_id=req.document_id, action="approval.reject",
                performed_by=user.user_id,
                metadata={"approval_request_id": req.id, "step_order": decision.step_order,
                          "comment": comment})
    unit_of_work.commit(user.user_id)

    logger.info("Approval request rejected",
                extra={"approval_request_id": req.id, "step_order": decision.step_order})
    return req


def cancel_approval(approval_request_id: int, user: CurrentUser) -> ApprovalRequest:
    """Requester, document owner or document admin withdraws an active request."""
    req = _get_request(approval_request_id)
    req.ensure_active()
    allowed = (
        req.requested_by == user.user_id
        or document_authorization.can_manage(req.document, user.user_id, user.roles)
    )
    if not allowed:
        raise ForbiddenError("Only the requester or the document owner can cancel this request",
                             code="UNAUTHORIZED_DOCUMENT_ACCESS")

    req.cancel()
    write_audit(entity_type="document", entity_id=req.document_id, action="approval.cancel",
                performed_by=user.user_id, metadata={"approval_request_id": req.id})
    unit_of_work.commit(user.user_id)
    logger.info("Approval request cancelled", extra={"approval_request_id": req.id})
    return req


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def get_approval_status(approval_request_id: int, user: CurrentUser) -> dict:
    req = _get_request(approval_request_id)
    can_see = (
        req.requested_by == user.user_id
        or document_authorization.can_view(req.document, user.user_id, user.roles)
        or document_authorization.can_approve(req, user.user_id, user.roles)
    )
    if not can_see:
        raise ApprovalRequestNotFoundError(approval_request_id)
    return req.to_dict(include_decisions=True)


def get_document_approvals(document_id: int, user: CurrentUser) -> list[dict]:
    doc = document_service.get_document_for_view(document_id, user)
    requests = db.session.execute(
        select(ApprovalRequest)
        .where(ApprovalRequest.document_id == doc.id)
        .order_by(ApprovalRequest.requested_at.desc(), ApprovalRequest.id.desc())
    ).scalars().all()
    return [r.to_dict(include_decisions=True) for r in requests]
