"""
Workflow Service — approval workflow definitions.

Workflows are written once with their full step list and afterwards only
activated or deactivated.  Creating and toggling need ADMIN or
DOCUMENT_ADMIN; reading is open to every authenticated user.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from portfolio.core.exceptions import (
    DuplicateStepOrderError,
    ForbiddenError,
    ValidationError,
    WorkflowNotFoundError,
)
from portfolio.models import db
from portfolio.models.approval import ApprovalWorkflow
from portfolio.models.audit import write_audit
from portfolio.services import unit_of_work
from portfolio.services.current_user import CurrentUser

logger = logging.getLogger(__name__)

WORKFLOW_ADMIN_ROLES = ("ADMIN", "DOCUMENT_ADMIN")


def _ensure_workflow_admin(user: CurrentUser) -> None:
    if not any(user.has_role(r) for r in WORKFLOW_ADMIN_ROLES):
        raise ForbiddenError("Managing approval workflows requires ADMIN or DOCUMENT_ADMIN",
                             code="FORBIDDEN")


def _parse_steps(raw_steps) -> list[dict]:
    if not isinstance(raw_steps, list) or not raw_steps:
        raise ValidationError("A workflow needs at least one step", code="INVALID_WORKFLOW")
    parsed = []
    for i, raw in enumerate(raw_steps, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Step #{i} must be an object", code="INVALID_WORKFLOW")
        order = raw.get("step_order", i)
        if isinstance(order, bool) or not isinstance(order, int):
            raise ValidationError(f"Step #{i}: step_order must be an integer", code="INVALID_STEP_ORDER")
        parsed.append({
            "step_order": order,
            "required_role": raw.get("required_role"),
            "name": raw.get("name"),
            "description": raw.get("description"),
        })
    seen = set()
    for step in parsed:
        if step["step_order"] in seen:
            raise DuplicateStepOrderError(step["step_order"])
        seen.add(step["step_order"])
    return parsed


def create_workflow(user: CurrentUser, name: str, steps, description: str | None = None) -> ApprovalWorkflow:
    """Create an active workflow from ``steps`` (list of dicts).

    A step without ``step_order`` takes its 1-based list position.
    """
    _ensure_workflow_admin(user)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Workflow name is required", code="INVALID_WORKFLOW")

    workflow = ApprovalWorkflow(name=name, description=description, is_active=True)
    for step in _parse_steps(steps):
        workflow.add_step(**step)

    db.session.add(workflow)
    unit_of_work.flush(user.user_id)
    write_audit(entity_type="workflow", entity_id=workflow.id, action="workflow.create",
                performed_by=user.user_id, metadata={"steps": workflow.step_count})
    unit_of_work.commit(user.user_id)
    logger.info("Approval workflow created",
                extra={"workflow_id": workflow.id, "steps": workflow.step_count})
    return workflow


def get_workflow(workflow_id: int) -> ApprovalWorkflow:
    workflow = db.session.get(ApprovalWorkflow, workflow_id)
    if workflow is None:
        raise WorkflowNotFoundError(workflow_id)
    return workflow


def get_workflows(active_only: bool = False) -> list[ApprovalWorkflow]:
    stmt = select(ApprovalWorkflow).order_by(ApprovalWorkflow.name, ApprovalWorkflow.id)
    if active_only:
        stmt = stmt.where(ApprovalWorkflow.is_active.is_(True))
    return db.session.execute(stmt).scalars().all()


def set_workflow_active(workflow_id: int, user: CurrentUser, active: bool) -> ApprovalWorkflow:
    """Toggle ``is_active``.  Requests already in flight are unaffected."""
    _ensure_workflow_admin(user)
    workflow = get_workflow(workflow_id)
    if workflow.is_active != bool(active):
        workflow.is_active = bool(active)
        write_audit(entity_type="workflow", entity_id=workflow.id,
                    action="workflow.activate" if active else "workflow.deactivate",
                    performed_by=user.user_id)
        unit_of_work.commit(user.user_id)
    return workflow
