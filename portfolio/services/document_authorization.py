"""
Document authorization rules.

can_approve:  caller holds the current step's required role, the
              DOCUMENT_ADMIN role, or the ``approval:review`` permission.
can_manage:   document owner, DOCUMENT_ADMIN, or ``document:manage_all``.
can_view:     anyone who can manage it, plus everyone once it is approved.
"""

from portfolio.services import permission_service

DOCUMENT_ADMIN_ROLE = "DOCUMENT_ADMIN"
REVIEW_PERMISSION = "approval:review"
MANAGE_ALL_PERMISSION = "document:manage_all"


def _has_role(roles, role) -> bool:
    wanted = (role or "").strip().upper()
    return bool(wanted) and any((r or "").upper() == wanted for r in roles or ())


def is_document_admin(user_id, roles) -> bool:
    return _has_role(roles, DOCUMENT_ADMIN_ROLE) or permission_service.has_permission(
        user_id, MANAGE_ALL_PERMISSION,
    )


def can_approve(approval_request, user_id, roles) -> bool:
    if user_id is None:
        return False
    step = approval_request.current_step()
    if step is not None and _has_role(roles, step.required_role):
        return True
    if _has_role(roles, DOCUMENT_ADMIN_ROLE):
        return True
    return permission_service.has_permission(user_id, REVIEW_PERMISSION)


def can_manage(document, user_id, roles) -> bool:
    if user_id is None:
        return False
    return document.owner_id == user_id or is_document_admin(user_id, roles)


def can_view(document, user_id, roles) -> bool:
    return document.status == "approved" or can_manage(document, user_id, roles)
