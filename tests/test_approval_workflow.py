"""
Approval engine tests.

Tests cover:
  - Submission preconditions (versions, active workflow, draft state, ownership)
  - Step-by-step approval through a REVIEWER → MANAGER workflow
  - Role checks and the DOCUMENT_ADMIN / approval:review overrides
  - Step-order enforcement, terminal states, rejection and resubmission
  - Cancellation, read access and the audit trail
"""

import io

import pytest
from sqlalchemy import text

from portfolio.core.exceptions import (
    ApprovalStepOrderViolationError,
    ConcurrentUpdateError,
    DuplicateEntryError,
)
from portfolio.models import db
from portfolio.models.approval import ApprovalRequest
from portfolio.services import approval_service, unit_of_work


# ── Fixtures ────────────────────────────────────────────────────────────

@pytest.fixture()
def workflow(client, doc_admin):
    """REVIEWER (step 1) then MANAGER (step 2)."""
    res = client.post(
        "/api/v1/workflows",
        json={
            "name": "Two-step sign-off",
            "steps": [
                {"step_order": 1, "required_role": "REVIEWER", "name": "Review"},
                {"step_order": 2, "required_role": "MANAGER", "name": "Approve"},
            ],
        },
        headers=doc_admin.headers,
    )
    assert res.status_code == 201
    return res.get_json()["workflow"]


@pytest.fixture()
def document(client, owner):
    """Draft document with one uploaded version."""
    res = client.post("/api/v1/documents", json={"title": "Supplier contract"}, headers=owner.headers)
    assert res.status_code == 201
    doc = res.get_json()
    up = client.post(
        f"/api/v1/documents/{doc['id']}/versions",
        data={"file": (io.BytesIO(b"contract text"), "contract.txt", "text/plain")},
        headers=owner.headers,
        content_type="multipart/form-data",
    )
    assert up.status_code == 201
    return doc


def _submit(client, actor, document, workflow):
    return client.post(
        "/api/v1/approvals",
        json={"document_id": document["id"], "workflow_id": workflow["id"]},
        headers=actor.headers,
    )


@pytest.fixture()
def request_(client, owner, document, workflow):
    res = _submit(client, owner, document, workflow)
    assert res.status_code == 201
    return res.get_json()


def _approve(client, actor, aid, **body):
    return client.post(f"/api/v1/approvals/{aid}/approve", json=body, headers=actor.headers)


def _reject(client, actor, aid, **body):
    return client.post(f"/api/v1/approvals/{aid}/reject", json=body, headers=actor.headers)


def _doc_status(client, actor, document):
    return client.get(f"/api/v1/documents/{document['id']}", headers=actor.headers).get_json()["status"]


# ═════════════════════════════════════════════════════════════════════════
# SUBMIT
# ═════════════════════════════════════════════════════════════════════════

class TestSubmit:
    def test_submit_for_approval(self, client, owner, document, request_):
        assert request_["status"] == "pending"
        assert request_["current_step_order"] == 1
        assert request_["current_step_role"] == "REVIEWER"
        assert request_["total_steps"] == 2
        assert request_["requested_by"] == owner.id
        assert _doc_status(client, owner, document) == "pending_approval"

    def test_submit_without_versions(self, client, owner, workflow):
        doc = client.post("/api/v1/documents", json={"title": "Empty"}, headers=owner.headers).get_json()
        res = _submit(client, owner, doc, workflow)
        assert res.status_code == 400
        assert res.get_json()["code"] == "DOCUMENT_HAS_NO_VERSIONS"

    def test_submit_inactive_workflow(self, client, owner, doc_admin, document, workflow):
        client.post(f"/api/v1/workflows/{workflow['id']}/deactivate", headers=doc_admin.headers)
        res = _submit(client, owner, document, workflow)
        assert res.status_code == 400
        assert res.get_json()["code"] == "WORKFLOW_NOT_ACTIVE"

    def test_submit_unknown_workflow(self, client, owner, document):
        res = _submit(client, owner, document, {"id": 999})
        assert res.status_code == 404
        assert res.get_json()["code"] == "WORKFLOW_NOT_FOUND"

    def test_submit_twice(self, client, owner, document, workflow, request_):
        res = _submit(client, owner, document, workflow)
        assert res.status_code == 400
        assert res.get_json()["code"] == "DOCUMENT_NOT_IN_DRAFT"

    def test_submit_someone_elses_document(self, client, other, document, workflow):
        res = _submit(client, other, document, workflow)
        assert res.status_code == 403
        assert res.get_json()["code"] == "UNAUTHORIZED_DOCUMENT_ACCESS"

    def test_delete_while_pending(self, client, owner, document, request_):
        res = client.delete(f"/api/v1/documents/{document['id']}", headers=owner.headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "INVALID_DOCUMENT_STATE"

    def test_versions_frozen_while_pending(self, client, owner, document, request_):
        res = client.post(
            f"/api/v1/documents/{document['id']}/versions",
            data={"file": (io.BytesIO(b"v2"), "contract.txt", "text/plain")},
            headers=owner.headers,
            content_type="multipart/form-data",
        )
        assert res.status_code == 400
        assert res.get_json()["code"] == "DOCUMENT_NOT_IN_DRAFT"


# ═════════════════════════════════════════════════════════════════════════
# APPROVE
# ═════════════════════════════════════════════════════════════════════════

class TestApprove:
    def test_full_approval(self, client, owner, reviewer, manager, document, request_):
        aid = request_["id"]
        first = _approve(client, reviewer, aid, comment="Looks right")
        assert first.status_code == 200
        data = first.get_json()
        assert data["status"] == "in_progress"
        assert data["current_step_order"] == 2
        assert _doc_status(client, owner, document) == "pending_approval"

        second = _approve(client, manager, aid)
        assert second.status_code == 200
        data = second.get_json()
        assert data["status"] == "approved"
        assert data["completed_at"] is not None
        assert [(d["step_order"], d["decision"], d["decided_by"]) for d in data["decisions"]] == [
            (1, "approved", reviewer.id),
            (2, "approved", manager.id),
        ]
        assert data["decisions"][0]["comment"] == "Looks right"
        assert _doc_status(client, owner, document) == "approved"

    def test_wrong_role(self, client, manager, request_):
        res = _approve(client, manager, request_["id"])
        assert res.status_code == 403
        body = res.get_json()
        assert body["code"] == "UNAUTHORIZED_APPROVER"
        assert body["details"]["required_role"] == "REVIEWER"

    def test_owner_cannot_approve_own_document(self, client, owner, request_):
        res = _approve(client, owner, request_["id"])
        assert res.status_code == 403

    def test_document_admin_approves_any_step(self, client, doc_admin, request_):
        assert _approve(client, doc_admin, request_["id"]).get_json()["status"] == "in_progress"
        assert _approve(client, doc_admin, request_["id"]).get_json()["status"] == "approved"

    def test_review_permission_via_admin(self, client, admin, request_):
        res = _approve(client, admin, request_["id"])
        assert res.status_code == 200

    def test_step_order_must_match_current(self, client, reviewer, doc_admin, request_):
        res = _approve(client, reviewer, request_["id"], step_order=2)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "APPROVAL_STEP_ORDER_VIOLATION"
        assert body["details"] == {"current_step_order": 1, "attempted_step_order": 2}

        # admins do not get to skip ahead either
        res = _approve(client, doc_admin, request_["id"], step_order=2)
        assert res.get_json()["code"] == "APPROVAL_STEP_ORDER_VIOLATION"

    def test_matching_step_order_accepted(self, client, reviewer, request_):
        res = _approve(client, reviewer, request_["id"], step_order=1)
        assert res.status_code == 200

    def test_terminal_request_rejects_decisions(self, client, doc_admin, request_):
        aid = request_["id"]
        _approve(client, doc_admin, aid)
        _approve(client, doc_admin, aid)

        res = _approve(client, doc_admin, aid)
        assert res.status_code == 400
        assert res.get_json()["code"] == "APPROVAL_REQUEST_NOT_IN_PROGRESS"
        res = _reject(client, doc_admin, aid)
        assert res.get_json()["code"] == "APPROVAL_REQUEST_NOT_IN_PROGRESS"

    def test_unknown_request(self, client, reviewer):
        res = _approve(client, reviewer, 999)
        assert res.status_code == 404
        assert res.get_json()["code"] == "APPROVAL_REQUEST_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════
# REJECT & RESUBMIT
# ═════════════════════════════════════════════════════════════════════════

class TestRejectAndResubmit:
    def test_reject_then_resubmit(self, client, owner, reviewer, manager, document, workflow, request_):
        aid = request_["id"]
        _approve(client, reviewer, aid)
        res = _reject(client, manager, aid, comment="Missing annex")
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "rejected"
        assert data["current_step_order"] == 2
        assert data["decisions"][-1]["decision"] == "rejected"
        assert _doc_status(client, owner, document) == "rejected"

        # rejected documents must go back to draft first
        assert _submit(client, owner, document, workflow).status_code == 400
        rev = client.post(f"/api/v1/documents/{document['id']}/revert-to-draft", headers=owner.headers)
        assert rev.status_code == 200
        assert rev.get_json()["status"] == "draft"

        again = _submit(client, owner, document, workflow)
        assert again.status_code == 201
        assert again.get_json()["id"] != aid

        history = client.get(f"/api/v1/documents/{document['id']}/approvals", headers=owner.headers).get_json()
        assert [r["status"] for r in history] == ["pending", "rejected"]

    def test_approved_document_cannot_revert(self, client, owner, doc_admin, document, request_):
        _approve(client, doc_admin, request_["id"])
        _approve(client, doc_admin, request_["id"])
        res = client.post(f"/api/v1/documents/{document['id']}/revert-to-draft", headers=owner.headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "INVALID_DOCUMENT_STATE"


# ═════════════════════════════════════════════════════════════════════════
# CANCEL
# ═════════════════════════════════════════════════════════════════════════

class TestCancel:
    def test_owner_cancels(self, client, owner, document, request_):
        res = client.post(f"/api/v1/approvals/{request_['id']}/cancel", headers=owner.headers)
        assert res.status_code == 200
        assert res.get_json()["status"] == "cancelled"
        assert _doc_status(client, owner, document) == "draft"

    def test_other_user_cannot_cancel(self, client, other, request_):
        res = client.post(f"/api/v1/approvals/{request_['id']}/cancel", headers=other.headers)
        assert res.status_code == 403

    def test_cancel_terminal_request(self, client, owner, request_):
        client.post(f"/api/v1/approvals/{request_['id']}/cancel", headers=owner.headers)
        res = client.post(f"/api/v1/approvals/{request_['id']}/cancel", headers=owner.headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "APPROVAL_REQUEST_NOT_IN_PROGRESS"


# ═════════════════════════════════════════════════════════════════════════
# READS & AUDIT
# ═════════════════════════════════════════════════════════════════════════

class TestReads:
    def test_status_visible_to_approver(self, client, reviewer, request_):
        res = client.get(f"/api/v1/approvals/{request_['id']}", headers=reviewer.headers)
        assert res.status_code == 200
        assert res.get_json()["decisions"] == []

    def test_status_hidden_from_bystander(self, client, other, request_):
        res = client.get(f"/api/v1/approvals/{request_['id']}", headers=other.headers)
        assert res.status_code == 404

    def test_audit_trail(self, client, owner, reviewer, manager, document, request_):
        _approve(client, reviewer, request_["id"])
        _approve(client, manager, request_["id"])
        res = client.get(f"/api/v1/documents/{document['id']}/history", headers=owner.headers)
        actions = [e["action"] for e in res.get_json()]
        assert actions == [
            "document.create",
            "document.upload_version",
            "approval.submit",
            "approval.approve_step",
            "approval.approve_step",
            "approval.complete",
        ]

    def test_approved_document_visible_to_everyone(self, client, other, doc_admin, document, request_):
        _approve(client, doc_admin, request_["id"])
        _approve(client, doc_admin, request_["id"])
        res = client.get(f"/api/v1/documents/{document['id']}", headers=other.headers)
        assert res.status_code == 200


# ═════════════════════════════════════════════════════════════════════════
# SERVICE-LEVEL GUARDS
# ═════════════════════════════════════════════════════════════════════════

class TestServiceGuards:
    def test_step_order_checked_before_role(self, manager, request_):
        with pytest.raises(ApprovalStepOrderViolationError):
            approval_service.approve_step(request_["id"], manager.current, step_order=2)

    def test_one_active_request_per_document(self, owner, document, workflow, request_):
        req = db.session.get(ApprovalRequest, request_["id"])
        dup = ApprovalRequest.start(req.document, req.workflow, requested_by=owner.id)
        db.session.add(dup)
        with pytest.raises(DuplicateEntryError):
            unit_of_work.commit(owner.id)

    def test_stale_version_is_a_concurrent_update(self, reviewer, request_):
        req = db.session.get(ApprovalRequest, request_["id"])
        # another transaction advanced the row after it was loaded
        db.session.execute(
            text("UPDATE approval_requests SET version = version + 1 WHERE id = :id"),
            {"id": req.id},
        )
        with pytest.raises(ConcurrentUpdateError) as exc:
            approval_service.approve_step(req.id, reviewer.current)
        assert exc.value.code == "CONCURRENT_UPDATE"
        assert exc.value.details == {"retryable": True}


# ═════════════════════════════════════════════════════════════════════════
# REVIEWER → ADMIN SIGN-OFF
# ═════════════════════════════════════════════════════════════════════════

class TestReviewerThenAdmin:
    @pytest.fixture()
    def admin_workflow(self, client, doc_admin):
        res = client.post(
            "/api/v1/workflows",
            json={
                "name": "Review then admin",
                "steps": [
                    {"step_order": 1, "required_role": "REVIEWER", "name": "Review"},
                    {"step_order": 2, "required_role": "ADMIN", "name": "Final"},
                ],
            },
            headers=doc_admin.headers,
        )
        assert res.status_code == 201
        return res.get_json()["workflow"]

    def test_two_step_sign_off(self, client, owner, reviewer, admin, document, admin_workflow):
        res = _submit(client, owner, document, admin_workflow)
        assert res.status_code == 201
        aid = res.get_json()["id"]

        first = _approve(client, reviewer, aid)
        assert first.status_code == 200
        assert first.get_json()["status"] == "in_progress"
        assert first.get_json()["current_step_order"] == 2

        again = _approve(client, reviewer, aid)
        assert again.status_code == 403
        assert again.get_json()["code"] == "UNAUTHORIZED_APPROVER"
        assert again.get_json()["details"]["required_role"] == "ADMIN"

        final = _approve(client, admin, aid)
        assert final.status_code == 200
        assert final.get_json()["status"] == "approved"
        assert _doc_status(client, owner, document) == "approved"
