"""
Permission Service — DB-driven RBAC with cache.

A user's permissions are the union of the permissions granted to each of
their roles (user_roles → role_permissions → permissions).  Members of a
SUPERUSER role hold every permission.

Results are cached per user for CACHE_TTL seconds; role or permission
assignment changes call ``invalidate_cache``.
"""

import logging
import threading
import time
from typing import Optional

from portfolio.models import db
from portfolio.models.auth import Permission, Role, RolePermission, UserRole

logger = logging.getLogger(__name__)

CACHE_TTL = 300  # 5 minutes

_permission_cache: dict[int, tuple[float, set[str]]] = {}
_cache_lock = threading.Lock()

SUPERUSER_ROLES = {"ADMIN"}
ALL_PERMISSIONS = "*"


def _get_cached(user_id: int) -> Optional[set[str]]:
    with _cache_lock:
        entry = _permission_cache.get(user_id)
        if entry is None:
            return None
        cached_at, perms = entry
        if time.time() - cached_at > CACHE_TTL:
            del _permission_cache[user_id]
            return None
        return perms


def _set_cached(user_id: int, perms: set[str]) -> None:
    with _cache_lock:
        _permission_cache[user_id] = (time.time(), perms)


def invalidate_cache(user_id: int) -> None:
    with _cache_lock:
        _permission_cache.pop(user_id, None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _permission_cache.clear()


def get_user_role_names(user_id: int) -> list[str]:
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return sorted({name for (name,) in rows})


def get_user_permissions(user_id: int) -> set[str]:
    cached = _get_cached(user_id)
    if cached is not None:
        return cached

    roles = get_user_role_names(user_id)
    if SUPERUSER_ROLES.intersection(roles):
        perms = {ALL_PERMISSIONS}
    else:
        rows = (
            db.session.query(Permission.codename)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(UserRole, UserRole.role_id == RolePermission.role_id)
            .filter(UserRole.user_id == user_id)
            .all()
        )
        perms = {codename for (codename,) in rows}

    _set_cached(user_id, perms)
    return perms


def has_permission(user_id: int | None, codename: str) -> bool:
    if user_id is None:
        return False
    perms = get_user_permissions(user_id)
    return ALL_PERMISSIONS in perms or codename in perms

