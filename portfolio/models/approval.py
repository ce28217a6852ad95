"""
Approval workflow models.

Models:
    - ApprovalWorkflow: named, ordered list of required-role steps
    - ApprovalStep: one step (step_order ≥ 1, unique within the workflow)
    - ApprovalRequest: a document's traversal of a workflow — the state machine
    - ApprovalDecision: append-only ledger entry, one per decided step

Request state machine:
    pending ──approve (more steps)──→ in_progress ──approve (last)──→ approved
       │                                   │
       ├──approve (single step)──→ approved ├──reject──→ rejected
       ├──reject──→ rejected               └──cancel──→ cancelled
       └──cancel──→ cancelled

    approved / rejected / cancelled are terminal: no further decisions.

Concurrency:
    - ``version`` is the optimistic-locking column of approval_requests; two
      approvers racing on one request cannot both flush.
    - ``active_document_id`` equals ``document_id`` while the request is
      pending / in_progress and NULL afterwards; its UNIQUE constraint keeps
      a document to one active request even under concurrent submission.
    - (approval_request_id, step_order) is unique in the decision ledger.
"""

from portfolio.core.exceptions import (
    ApprovalRequestNotInProgressError,
    ApprovalStepOrderViolationError,
    DuplicateStepOrderError,
    InvalidStateError,
    ValidationError,
)
from portfolio.models import db
from portfolio.models.base import AuditMixin
from portfolio.utils.time import isoformat, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

REQUEST_STATUSES = {"pending", "in_progress", "approved", "rejected", "cancelled"}
ACTIVE_REQUEST_STATUSES = {"pending", "in_progress"}
TERMINAL_REQUEST_STATUSES = {"approved", "rejected", "cancelled"}

REQUEST_TRANSITIONS = {
    "pending": {"in_progress", "approved", "rejected", "cancelled"},
    "in_progress": {"approved", "rejected", "cancelled"},
    "approved": set(),
    "rejected": set(),
    "cancelled": set(),
}

DECISION_APPROVED = "approved"
DECISION_REJECTED = "rejected"
DECISIONS = {DECISION_APPROVED, DECISION_REJECTED}


def validate_request_transition(current: str, target: str) -> bool:
    return target in REQUEST_TRANSITIONS.get(current, set())


# ═════════════════════════════════════════════════════════════════════════════
# WORKFLOW DEFINITION
# ═════════════════════════════════════════════════════════════════════════════


class ApprovalWorkflow(AuditMixin, db.Model):
    """
    Ordered list of steps.  Steps are append-only; the only mutation after
    creation is toggling ``is_active``.  Inactive workflows cannot start new
    requests.
    """

    __tablename__ = "approval_workflows"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    steps = db.relationship(
        "ApprovalStep", back_populates="workflow",
        order_by="ApprovalStep.step_order", cascade="all, delete-orphan",
    )

    def add_step(self, step_order, required_role, name=None, description=None):
        if step_order is None or step_order < 1:
            raise ValidationError("Step order must be 1 or greater", code="INVALID_STEP_ORDER")
        if not (required_role or "").strip():
            raise ValidationError("Each step needs a required role", code="INVALID_WORKFLOW")
        if any(s.step_order == step_order for s in self.steps):
            raise DuplicateStepOrderError(step_order)
        step = ApprovalStep(
            step_order=step_order,
            required_role=required_role.strip(),
            name=name,
            description=description,
        )
        self.steps.append(step)
        return step

    def ordered_steps(self):
        return sorted(self.steps, key=lambda s: s.step_order)

    @property
    def step_count(self):
        return len(self.steps)

    def first_step(self):
        ordered = self.ordered_steps()
        return ordered[0] if ordered else None

    def get_step(self, step_order):
        return next((s for s in self.steps if s.step_order == step_order), None)

    def next_step_after(self, step_order):
        """The step with the smallest order greater than ``step_order``, or None."""
        return next((s for s in self.ordered_steps() if s.step_order > step_order), None)

    def to_dict(self, include_steps=True):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "step_count": self.step_count,
            "created_at": isoformat(self.created_at),
        }
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.ordered_steps()]
        return d


class ApprovalStep(db.Model):
    __tablename__ = "approval_steps"

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("approval_workflows.id", ondelete="CASCADE"), nullable=False,
    )
    step_order = db.Column(db.Integer, nullable=False)
    required_role = db.Column(db.String(100), nullable=False)
    name = db.Column(db.String(200))
    description = db.Column(db.Text)

    __table_args__ = (
        db.UniqueConstraint("workflow_id", "step_order", name="uq_approval_step_order"),
        db.CheckConstraint("step_order >= 1", name="ck_approval_step_order_positive"),
    )

    workflow = db.relationship("ApprovalWorkflow", back_populates="steps")

    def to_dict(self):
        return {
            "id": self.id,
            "step_order": self.step_order,
            "required_role": self.required_role,
            "name": self.name,
            "description": self.description,
        }


# ═════════════════════════════════════════════════════════════════════════════
# APPROVAL REQUEST STATE MACHINE
# ═════════════════════════════════════════════════════════════════════════════


class ApprovalRequest(AuditMixin, db.Model):
    __tablename__ = "approval_requests"

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    workflow_id = db.Column(db.Integer, db.ForeignKey("approval_workflows.id"), nullable=False)
    current_step_order = db.Column(db.Integer, nullable=False)
    total_steps = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    active_document_id = db.Column(db.Integer, nullable=True, unique=True)
    version = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.Index("ix_approval_requests_document", "document_id"),
        db.Index("ix_approval_requests_status", "status"),
    )
    __mapper_args__ = {"version_id_col": version}

    document = db.relationship("Document")
    workflow = db.relationship("ApprovalWorkflow")
    decisions = db.relationship(
        "ApprovalDecision", back_populates="approval_request",
        order_by="ApprovalDecision.step_order", cascade="all, delete-orphan",
    )

    @classmethod
    def start(cls, document, workflow, requested_by):
        """Open a request at the workflow's lowest step order."""
        first = workflow.first_step()
        if first is None:
            raise ValidationError(
                f"Workflow id={workflow.id} has no steps", code="INVALID_WORKFLOW",
            )
        return cls(
            document=document,
            document_id=document.id,
            workflow=workflow,
            workflow_id=workflow.id,
            current_step_order=first.step_order,
            total_steps=workflow.step_count,
            status="pending",
            requested_by=requested_by,
            requested_at=utcnow(),
            active_document_id=document.id,
        )

    @property
    def is_active(self):
        return self.status in ACTIVE_REQUEST_STATUSES

    def current_step(self):
        return self.workflow.get_step(self.current_step_order) if self.workflow else None

    # ── Guards ───────────────────────────────────────────────────────────

    def ensure_active(self):
        if not self.is_active:
            raise ApprovalRequestNotInProgressError(self.id, self.status)

    def ensure_step(self, attempted_step_order):
        """Decisions only land on the live step."""
        if attempted_step_order != self.current_step_order:
            raise ApprovalStepOrderViolationError(self.current_step_order, attempted_step_order)

    def _transition(self, target):
        if not validate_request_transition(self.status, target):
            raise ApprovalRequestNotInProgressError(self.id, self.status)
        self.status = target
        if target in TERMINAL_REQUEST_STATUSES:
            self.completed_at = utcnow()
            self.active_document_id = None

    def _append_decision(self, decision, step, decided_by, comment):
        last = self.decisions[-1].step_order if self.decisions else 0
        if step.step_order != self.current_step_order or step.step_order <= last:
            raise ApprovalStepOrderViolationError(self.current_step_order, step.step_order)
        entry = ApprovalDecision(
            step_order=step.step_order,
            step_name=step.name,
            required_role=step.required_role,
            decision=decision,
            decided_by=decided_by,
            comment=comment,
            decided_at=utcnow(),
        )
        self.decisions.append(entry)
        return entry

    # ── Transitions ──────────────────────────────────────────────────────

    def record_approval(self, decided_by, comment=None):
        """Approve the current step; completes the request on the last step.

        Returns the appended decision.
        """
        self.ensure_active()
        step = self.current_step()
        if step is None:
            raise InvalidStateError(
                f"Workflow has no step {self.current_step_order}", code="INVALID_WORKFLOW",
            )
        entry = self._append_decision(DECISION_APPROVED, step, decided_by, comment)
        following = self.workflow.next_step_after(step.step_order)
        if following is None:
            self._transition("approved")
            self.document.approve()
        else:
            if self.status != "in_progress":
                self._transition("in_progress")
            self.current_step_order = following.step_order
        return entry

    def record_rejection(self, decided_by, comment=None):
        """Reject the current step; the request ends and current_step_order freezes."""
        self.ensure_active()
        step = self.current_step()
        if step is None:
            raise InvalidStateError(
                f"Workflow has no step {self.current_step_order}", code="INVALID_WORKFLOW",
            )
        entry = self._append_decision(DECISION_REJECTED, step, decided_by, comment)
        self._transition("rejected")
        self.document.reject()
        return entry

    def cancel(self):
        self.ensure_active()
        self._transition("cancelled")
        self.document.withdraw_from_approval()

    def to_dict(self, include_decisions=False):
        step = self.current_step()
        d = {
            "id": self.id,
            "document_id": self.document_id,
            "document_title": self.document.title if self.document else None,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow.name if self.workflow else None,
            "status": self.status,
            "current_step_order": self.current_step_order,
            "current_step_name": step.name if step else None,
            "current_step_role": step.required_role if step else None,
            "total_steps": self.total_steps,
            "requested_by": self.requested_by,
            "requested_at": isoformat(self.requested_at),
            "completed_at": isoformat(self.completed_at),
        }
        if include_decisions:
            d["decisions"] = [x.to_dict() for x in self.decisions]
        return d


class ApprovalDecision(db.Model):
    """
    Append-only ledger row.  Never updated or deleted.

    step_name / required_role are snapshots so history stays readable even
    if the workflow definition is later replaced.
    """

    __tablename__ = "approval_decisions"

    id = db.Column(db.Integer, primary_key=True)
    approval_request_id = db.Column(
        db.Integer, db.ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False,
    )
    step_order = db.Column(db.Integer, nullable=False)
    step_name = db.Column(db.String(200))
    required_role = db.Column(db.String(100))
    decision = db.Column(db.String(20), nullable=False)
    decided_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    comment = db.Column(db.Text)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("approval_request_id", "step_order", name="uq_approval_decision_step"),
    )

    approval_request = db.relationship("ApprovalRequest", back_populates="decisions")

    def to_dict(self):
        return {
            "id": self.id,
            "step_order": self.step_order,
            "step_name": self.step_name,
            "required_role": self.required_role,
            "decision": self.decision,
            "decided_by": self.decided_by,
            "comment": self.comment,
            "decided_at": isoformat(self.decided_at),
        }
