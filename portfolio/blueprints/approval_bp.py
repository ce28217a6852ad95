"""
Approval Blueprint — approval requests and decisions.

Routes:
  POST   /approvals                       – submit a document for approval
  GET    /approvals/<aid>                 – status with decision history
  POST   /approvals/<aid>/approve         – approve current step
  POST   /approvals/<aid>/reject          – reject current step
  POST   /approvals/<aid>/cancel          – withdraw an active request
  GET    /documents/<did>/approvals       – request history of a document

Decision body: { comment?, step_order? }.  ``step_order`` guards against
deciding a step other than the one the caller looked at.
"""

from flask import Blueprint, jsonify

from portfolio.blueprints import json_body, parse_int_field
from portfolio.services import approval_service
from portfolio.services.current_user import current_user, require_auth

approval_bp = Blueprint("approval_bp", __name__, url_prefix="/api/v1")


@approval_bp.route("/approvals", methods=["POST"])
@require_auth
def submit():
    """Body: { document_id, workflow_id }"""
    data = json_body()
    req = approval_service.submit_for_approval(
        parse_int_field(data.get("document_id"), "document_id"),
        parse_int_field(data.get("workflow_id"), "workflow_id"),
        current_user(),
    )
    return jsonify(req.to_dict()), 201


@approval_bp.route("/approvals/<int:aid>", methods=["GET"])
@require_auth
def status(aid):
    return jsonify(approval_service.get_approval_status(aid, current_user())), 200


@approval_bp.route("/approvals/<int:aid>/approve", methods=["POST"])
@require_auth
def approve(aid):
    data = json_body()
    req = approval_service.approve_step(
        aid,
        current_user(),
        comment=data.get("comment"),
        step_order=parse_int_field(data.get("step_order"), "step_order", required=False),
    )
    return jsonify(req.to_dict(include_decisions=True)), 200


@approval_bp.route("/approvals/<int:aid>/reject", methods=["POST"])
@require_auth
def reject(aid):
    data = json_body()
    req = approval_service.reject_step(
        aid,
        current_user(),
        comment=data.get("comment"),
        step_order=parse_int_field(data.get("step_order"), "step_order", required=False),
    )
    return jsonify(req.to_dict(include_decisions=True)), 200


@approval_bp.route("/approvals/<int:aid>/cancel", methods=["POST"])
@require_auth
def cancel(aid):
    req = approval_service.cancel_approval(aid, current_user())
    return jsonify(req.to_dict()), 200


@approval_bp.route("/documents/<int:did>/approvals", methods=["GET"])
@require_auth
def document_approvals(did):
    return jsonify(approval_service.get_document_approvals(did, current_user())), 200
