"""
Workflow Blueprint — approval workflow definitions.

Routes:
  POST   /workflows                     – create workflow with steps (ADMIN / DOCUMENT_ADMIN)
  GET    /workflows                     – list (?active=true for active only)
  GET    /workflows/<wid>               – workflow with ordered steps
  POST   /workflows/<wid>/activate      – activate
  POST   /workflows/<wid>/deactivate    – deactivate
"""

from flask import Blueprint, jsonify, request

from portfolio.blueprints import json_body
from portfolio.services import workflow_service
from portfolio.services.current_user import current_user, require_auth

workflow_bp = Blueprint("workflow_bp", __name__, url_prefix="/api/v1")


@workflow_bp.route("/workflows", methods=["POST"])
@require_auth
def create_workflow():
    """Create a workflow.

    Body: { name, description?, steps: [{step_order, required_role, name?, description?}] }
    """
    data = json_body()
    workflow = workflow_service.create_workflow(
        current_user(), data.get("name"), data.get("steps"), description=data.get("description"),
    )
    return jsonify({
        "id": workflow.id,
        "step_count": workflow.step_count,
        "workflow": workflow.to_dict(),
    }), 201


@workflow_bp.route("/workflows", methods=["GET"])
@require_auth
def list_workflows():
    active_only = request.args.get("active") == "true"
    return jsonify([w.to_dict() for w in workflow_service.get_workflows(active_only)]), 200


@workflow_bp.route("/workflows/<int:wid>", methods=["GET"])
@require_auth
def get_workflow(wid):
    return jsonify(workflow_service.get_workflow(wid).to_dict()), 200


@workflow_bp.route("/workflows/<int:wid>/activate", methods=["POST"])
@require_auth
def activate_workflow(wid):
    workflow = workflow_service.set_workflow_active(wid, current_user(), True)
    return jsonify(workflow.to_dict(include_steps=False)), 200


@workflow_bp.route("/workflows/<int:wid>/deactivate", methods=["POST"])
@require_auth
def deactivate_workflow(wid):
    workflow = workflow_service.set_workflow_active(wid, current_user(), False)
    return jsonify(workflow.to_dict(include_steps=False)), 200
