"""
Identity models — users, roles, permissions and their assignments.

Role↔Permission and User↔Role are explicit association rows (RolePermission,
UserRole) holding both keys plus ``assigned_at``; there is no ORM-level
many-to-many collection.
"""

from portfolio.models import db
from portfolio.utils.time import isoformat, utcnow

USER_STATUSES = {"active", "inactive"}


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), nullable=False, unique=True)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active")
    last_login_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    user_roles = db.relationship(
        "UserRole", back_populates="user", lazy="select",
        cascade="all, delete-orphan", foreign_keys="UserRole.user_id",
    )

    @property
    def is_active(self):
        return self.status == "active"

    @property
    def role_names(self):
        """Sorted role names assigned to this user."""
        return sorted(ur.role.name for ur in self.user_roles)

    def to_dict(self, include_roles=False):
        d = {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "status": self.status,
            "last_login_at": isoformat(self.last_login_at),
            "created_at": isoformat(self.created_at),
        }
        if include_roles:
            d["roles"] = self.role_names
        return d


# ═══════════════════════════════════════════════════════════════
# 2. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    user_roles = db.relationship("UserRole", back_populates="role", cascade="all, delete-orphan")
    role_permissions = db.relationship(
        "RolePermission", back_populates="role", cascade="all, delete-orphan",
    )

    def to_dict(self, include_permissions=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }
        if include_permissions:
            d["permissions"] = sorted(rp.permission.codename for rp in self.role_permissions)
        return d


# ═══════════════════════════════════════════════════════════════
# 3. PERMISSIONS
# ═══════════════════════════════════════════════════════════════
class Permission(db.Model):
    __tablename__ = "permissions"

    id = db.Column(db.Integer, primary_key=True)
    codename = db.Column(db.String(100), nullable=False, unique=True)  # e.g. "approval:review"
    description = db.Column(db.Text)

    role_permissions = db.relationship("RolePermission", back_populates="permission")

    def to_dict(self):
        return {"id": self.id, "codename": self.codename, "description": self.description}


# ═══════════════════════════════════════════════════════════════
# 4. ROLE ↔ PERMISSION
# ═══════════════════════════════════════════════════════════════
class RolePermission(db.Model):
    __tablename__ = "role_permissions"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    permission_id = db.Column(
        db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False,
    )
    assigned_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    role = db.relationship("Role", back_populates="role_permissions")
    permission = db.relationship("Permission", back_populates="role_permissions")


# ═══════════════════════════════════════════════════════════════
# 5. USER ↔ ROLE
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    assigned_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
        db.Index("ix_user_roles_user_id", "user_id"),
    )

    user = db.relationship("User", back_populates="user_roles", foreign_keys=[user_id])
    role = db.relationship("Role", back_populates="user_roles")

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "role_id": self.role_id,
            "role": self.role.name if self.role else None,
            "assigned_by": self.assigned_by,
            "assigned_at": isoformat(self.assigned_at),
        }
