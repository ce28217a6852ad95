"""
Identity Service — registration, login and role/permission administration.

Value checks (email format, password length) return ``(value, None)`` or
``(None, message)`` so callers cannot skip them.
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select

from portfolio.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from portfolio.models import db
from portfolio.models.auth import Permission, Role, RolePermission, User, UserRole
from portfolio.services import jwt_service, permission_service, unit_of_work
from portfolio.utils.crypto import hash_password, verify_password
from portfolio.utils.time import utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

DEFAULT_ROLES = {
    "ADMIN": "Full platform administration",
    "DOCUMENT_ADMIN": "May manage and approve any document",
    "REVIEWER": "First-line document reviewer",
    "MANAGER": "Line manager approval",
}
DEFAULT_PERMISSIONS = {
    "approval:review": "Decide any approval step",
    "document:manage_all": "View and manage documents of other users",
}
DEFAULT_ROLE_PERMISSIONS = {
    "DOCUMENT_ADMIN": ["approval:review", "document:manage_all"],
}


# ── Value checks ─────────────────────────────────────────────────────────────


def parse_email(raw: str | None) -> tuple[str, None] | tuple[None, str]:
    value = (raw or "").strip()
    if not value:
        return None, "Email cannot be empty."
    try:
        valid = validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        return None, f"Invalid email: {e}"
    return valid.normalized.lower(), None


def check_password(raw: str | None) -> tuple[str, None] | tuple[None, str]:
    if not raw or len(raw) < MIN_PASSWORD_LENGTH:
        return None, f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    return raw, None


# ── Users ────────────────────────────────────────────────────────────────────


def register_user(email: str, password: str, full_name: str) -> User:
    email, err = parse_email(email)
    if err:
        raise ValidationError(err, code="INVALID_EMAIL")
    password, err = check_password(password)
    if err:
        raise ValidationError(err, code="INVALID_PASSWORD")
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationError("Full name is required", code="INVALID_USER")

    existing = db.session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(f"User with email {email!r} already exists", code="USER_ALREADY_EXISTS")

    user = User(email=email, password_hash=hash_password(password), full_name=full_name)
    db.session.add(user)
    unit_of_work.commit()
    logger.info("User registered", extra={"user_id": user.id})
    return user


def authenticate(email: str, password: str) -> dict:
    """Verify credentials and return a token envelope plus the user."""
    email, err = parse_email(email)
    user = None
    if not err:
        user = db.session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None or not verify_password(password or "", user.password_hash):
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise ForbiddenError("This account has been deactivated", code="USER_DEACTIVATED")

    user.last_login_at = utcnow()
    unit_of_work.commit(user.id)
    roles = permission_service.get_user_role_names(user.id)
    tokens = jwt_service.generate_access_token(user.id, roles)
    return {**tokens, "user": user.to_dict(include_roles=True)}


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id, code="USER_NOT_FOUND")
    return user


# ── Roles & permissions ──────────────────────────────────────────────────────


def list_roles() -> list[Role]:
    return list(db.session.execute(select(Role).order_by(Role.name)).scalars())


def create_role(name: str, description: str | None = None) -> Role:
    name = (name or "").strip().upper()
    if not name:
        raise ValidationError("Role name is required", code="INVALID_ROLE")
    if db.session.execute(select(Role).where(Role.name == name)).scalar_one_or_none():
        raise ConflictError(f"Role {name!r} already exists", code="ROLE_ALREADY_EXISTS")
    role = Role(name=name, description=description)
    db.session.add(role)
    unit_of_work.commit()
    return role


def create_permission(codename: str, description: str | None = None) -> Permission:
    codename = (codename or "").strip()
    if not codename:
        raise ValidationError("Permission codename is required", code="INVALID_PERMISSION")
    if db.session.execute(select(Permission).where(Permission.codename == codename)).scalar_one_or_none():
        raise ConflictError(f"Permission {codename!r} already exists", code="PERMISSION_ALREADY_EXISTS")
    perm = Permission(codename=codename, description=description)
    db.session.add(perm)
    unit_of_work.commit()
    return perm


def _get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role", role_id, code="ROLE_NOT_FOUND")
    return role


def assign_permission_to_role(role_id: int, permission_id: int) -> RolePermission:
    role = _get_role(role_id)
    perm = db.session.get(Permission, permission_id)
    if perm is None:
        raise NotFoundError("Permission", permission_id, code="PERMISSION_NOT_FOUND")
    if any(rp.permission_id == perm.id for rp in role.role_permissions):
        raise ConflictError(f"Role {role.name!r} already has {perm.codename!r}",
                            code="PERMISSION_ALREADY_ASSIGNED")
    link = RolePermission(role=role, permission=perm)
    db.session.add(link)
    unit_of_work.commit()
    permission_service.invalidate_all_cache()
    return link


def assign_role_to_user(user_id: int, role_id: int, assigned_by: int | None = None) -> UserRole:
    user = get_user(user_id)
    role = _get_role(role_id)
    if any(ur.role_id == role.id for ur in user.user_roles):
        raise ConflictError(f"User already has role {role.name!r}", code="ROLE_ALREADY_ASSIGNED")
    link = UserRole(user=user, role=role, assigned_by=assigned_by)
    db.session.add(link)
    unit_of_work.commit(assigned_by)
    permission_service.invalidate_cache(user.id)
    logger.info("Role assigned", extra={"user_id": user.id, "role": role.name})
    return link


def remove_role_from_user(user_id: int, role_id: int) -> None:
    user = get_user(user_id)
    link = next((ur for ur in user.user_roles if ur.role_id == role_id), None)
    if link is None:
        raise NotFoundError("UserRole", role_id, code="ROLE_NOT_ASSIGNED")
    user.user_roles.remove(link)
    unit_of_work.commit()
    permission_service.invalidate_cache(user.id)


def seed_default_roles() -> int:
    """Create the built-in roles and permissions.  Idempotent; returns rows created."""
    created = 0
    roles = {r.name: r for r in db.session.execute(select(Role)).scalars()}
    for name, description in DEFAULT_ROLES.items():
        if name not in roles:
            roles[name] = Role(name=name, description=description)
            db.session.add(roles[name])
            created += 1
    perms = {p.codename: p for p in db.session.execute(select(Permission)).scalars()}
    for codename, description in DEFAULT_PERMISSIONS.items():
        if codename not in perms:
            perms[codename] = Permission(codename=codename, description=description)
            db.session.add(perms[codename])
            created += 1
    for role_name, codenames in DEFAULT_ROLE_PERMISSIONS.items():
        role = roles[role_name]
        granted = {rp.permission.codename for rp in role.role_permissions if rp.permission}
        for codename in codenames:
            if codename not in granted:
                db.session.add(RolePermission(role=role, permission=perms[codename]))
                created += 1
    unit_of_work.commit()
    permission_service.invalidate_all_cache()
    return created
