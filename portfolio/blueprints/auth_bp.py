"""
Auth Blueprint — registration, login and role administration.

Endpoints:
  POST   /api/v1/auth/register                      — create an account
  POST   /api/v1/auth/login                         — email + password → access token
  GET    /api/v1/auth/me                            — current user profile

  GET    /api/v1/admin/roles                        — list roles          (ADMIN)
  POST   /api/v1/admin/roles                        — create role         (ADMIN)
  POST   /api/v1/admin/permissions                  — create permission   (ADMIN)
  POST   /api/v1/admin/roles/<id>/permissions       — grant permission    (ADMIN)
  POST   /api/v1/admin/users/<id>/roles             — assign role         (ADMIN)
  DELETE /api/v1/admin/users/<id>/roles/<role_id>   — remove role         (ADMIN)
"""

from flask import Blueprint, jsonify

from portfolio.blueprints import json_body, parse_int_field
from portfolio.services import identity_service
from portfolio.services.current_user import current_user, require_auth, require_role
from portfolio.utils.errors import E, api_error

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")
admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/v1/admin")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "email": "...", "password": "...", "full_name": "..." }
    """
    data = json_body()
    user = identity_service.register_user(
        data.get("email"), data.get("password"), data.get("full_name"),
    )
    return jsonify(user.to_dict(include_roles=True)), 201


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return an access token.

    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    if not data.get("email") or not data.get("password"):
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")
    return jsonify(identity_service.authenticate(data["email"], data["password"])), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    user = identity_service.get_user(current_user().user_id)
    return jsonify(user.to_dict(include_roles=True)), 200


# ═══════════════════════════════════════════════════════════════
# Admin: roles & permissions
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/roles", methods=["GET"])
@require_role("ADMIN")
def list_roles():
    return jsonify([r.to_dict(include_permissions=True) for r in identity_service.list_roles()]), 200


@admin_bp.route("/roles", methods=["POST"])
@require_role("ADMIN")
def create_role():
    data = json_body()
    role = identity_service.create_role(data.get("name"), data.get("description"))
    return jsonify(role.to_dict()), 201


@admin_bp.route("/permissions", methods=["POST"])
@require_role("ADMIN")
def create_permission():
    data = json_body()
    perm = identity_service.create_permission(data.get("codename"), data.get("description"))
    return jsonify(perm.to_dict()), 201


@admin_bp.route("/roles/<int:role_id>/permissions", methods=["POST"])
@require_role("ADMIN")
def grant_permission(role_id):
    permission_id = parse_int_field(json_body().get("permission_id"), "permission_id")
    link = identity_service.assign_permission_to_role(role_id, permission_id)
    return jsonify(link.role.to_dict(include_permissions=True)), 201


@admin_bp.route("/users/<int:user_id>/roles", methods=["POST"])
@require_role("ADMIN")
def assign_role(user_id):
    role_id = parse_int_field(json_body().get("role_id"), "role_id")
    link = identity_service.assign_role_to_user(user_id, role_id, assigned_by=current_user().user_id)
    return jsonify(link.to_dict()), 201


@admin_bp.route("/users/<int:user_id>/roles/<int:role_id>", methods=["DELETE"])
@require_role("ADMIN")
def remove_role(user_id, role_id):
    identity_service.remove_role_from_user(user_id, role_id)
    return "", 204
