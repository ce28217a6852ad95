"""
Current-user context.

The JWT middleware decodes the bearer token into ``g.jwt_user_id`` and
``g.jwt_roles``; ``current_user()`` wraps them in a ``CurrentUser`` that
services use for ownership, role and permission checks.
"""

import functools
from dataclasses import dataclass, field

from flask import g

from portfolio.services import permission_service
from portfolio.utils.errors import E, api_error


@dataclass(frozen=True)
class CurrentUser:
    user_id: int | None
    roles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def has_role(self, role: str | None) -> bool:
        """Case-insensitive role membership."""
        if not role:
            return False
        wanted = role.strip().upper()
        return any(r.upper() == wanted for r in self.roles)

    def has_permission(self, codename: str) -> bool:
        return permission_service.has_permission(self.user_id, codename)


ANONYMOUS = CurrentUser(user_id=None)


def current_user() -> CurrentUser:
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        return ANONYMOUS
    return CurrentUser(user_id=user_id, roles=tuple(getattr(g, "jwt_roles", None) or ()))


def require_auth(f):
    """Decorator: 401 unless a valid bearer token was presented."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not current_user().is_authenticated:
            return api_error(E.UNAUTHENTICATED, "Authentication required", status=401)
        return f(*args, **kwargs)

    return decorated


def require_role(*roles: str):
    """Decorator: 403 unless the caller holds at least one of ``roles``."""

    def decorator(f):
        @functools.wraps(f)
        @require_auth
        def decorated(*args, **kwargs):
            user = current_user()
            if not any(user.has_role(r) for r in roles):
                return api_error(E.FORBIDDEN, "Permission denied", details={"required_roles": list(roles)})
            return f(*args, **kwargs)

        return decorated

    return decorator
