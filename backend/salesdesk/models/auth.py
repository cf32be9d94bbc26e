from __future__ import annotations

from ..extensions import db
from ..permissions import ADMIN_ROLE, get_all_permission_codes
from salesdesk.time_utils import to_utc_z, utcnow


class Role(db.Model):
    """
    Named bundle of permissions.

    Permissions are linked through RolePermission rows. The admin role is a
    system role: it always resolves to the full catalog and cannot be edited,
    deleted or deactivated.
    """
    __tablename__ = "roles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True, index=True)  # stored lowercased
    display_name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    is_system_role = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.name == ADMIN_ROLE

    def permission_codes(self) -> set[str]:
        if self.is_admin:
            return set(get_all_permission_codes())
        return {rp.permission.code for rp in self.role_permissions if rp.permission}

    def permission_map(self) -> dict[str, bool]:
        held = self.permission_codes()
        return {code: code in held for code in get_all_permission_codes()}

    def to_dict(self, include_permissions: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "is_system_role": self.is_system_role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_permissions:
            data["permissions"] = self.permission_map()
        return data


class User(db.Model):
    """
    Back-office account.

    New self-registered accounts wait for admin approval (is_approved=False,
    is_active=False). Virtual users never log in; they own historical or
    imported sales of people who no longer have an account.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_active_approved", "is_active", "is_approved"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(128), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)  # stored lowercased
    password_hash = db.Column(db.String(255), nullable=False)

    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_virtual = db.Column(db.Boolean, nullable=False, default=False)

    # Penalty system
    is_penalty_deactivated = db.Column(db.Boolean, nullable=False, default=False)
    penalty_deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Daily communication entry obligation
    requires_communication_entry = db.Column(db.Boolean, nullable=False, default=True)
    communication_exemption_reason = db.Column(db.Text, nullable=True)
    communication_exemption_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    communication_exemption_at = db.Column(db.DateTime(timezone=True), nullable=True)

    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)

    role = db.relationship("Role", backref=db.backref("users", lazy=True))
    approved_by = db.relationship("User", remote_side=[id], foreign_keys=[approved_by_user_id])

    @property
    def is_admin(self) -> bool:
        return bool(self.role and self.role.is_admin)

    @property
    def can_login(self) -> bool:
        return self.is_active and self.is_approved and not self.is_virtual and not self.is_penalty_deactivated

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "name": self.name,
            "email": self.email,
            "role": self.role.to_dict(include_permissions=False) if self.role else None,
            "is_active": self.is_active,
            "is_approved": self.is_approved,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "is_virtual": self.is_virtual,
            "is_penalty_deactivated": self.is_penalty_deactivated,
            "penalty_deactivated_at": to_utc_z(self.penalty_deactivated_at),
            "requires_communication_entry": self.requires_communication_entry,
            "communication_exemption_reason": self.communication_exemption_reason,
            "communication_exemption_at": to_utc_z(self.communication_exemption_at),
            "last_login_at": to_utc_z(self.last_login_at),
            "created_at": to_utc_z(self.created_at),
        }


class Permission(db.Model):
    """
    Permissions for role-based access control.

    Codes are the catalog's camelCase flags (e.g. "canViewAllSales").
    Categories group related permissions for UI display.
    """
    __tablename__ = "permissions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "category": self.category,
        }


class RolePermission(db.Model):
    """Role-Permission association."""
    __tablename__ = "role_permissions"
    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permissions"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False, index=True)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id"), nullable=False, index=True)

    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    role = db.relationship(
        "Role",
        backref=db.backref("role_permissions", lazy=True, cascade="all, delete-orphan"),
    )
    permission = db.relationship("Permission", backref=db.backref("role_permissions", lazy=True))


class UserPermissionOverride(db.Model):
    """
    Per-user permission overrides (grant or deny).

    A user without an override for a code inherits it from the role.
    GRANT adds the permission, DENY removes it. Admins ignore overrides.
    """
    __tablename__ = "user_permission_overrides"
    __table_args__ = (
        db.UniqueConstraint("user_id", "permission_code", name="uq_user_perm_override"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    permission_code = db.Column(db.String(64), nullable=False, index=True)
    override_type = db.Column(db.String(8), nullable=False)  # GRANT, DENY

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    reason = db.Column(db.Text, nullable=True)

    user = db.relationship(
        "User",
        foreign_keys=[user_id],
        backref=db.backref("permission_overrides", lazy=True, cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "permission_code": self.permission_code,
            "override_type": self.override_type,
            "granted_by_user_id": self.granted_by_user_id,
            "granted_at": to_utc_z(self.granted_at),
            "reason": self.reason,
        }


class SessionToken(db.Model):
    """
    Opaque bearer session.

    Only the SHA-256 hash of the token is stored. Sessions expire after an
    absolute lifetime or an idle period and can be revoked explicitly.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship(
        "User",
        backref=db.backref("session_tokens", lazy=True, cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
