# Overview: Service-layer operations for user administration; encapsulates business logic and database work.

"""
Administrative user management: approval queue, role changes, per-user
permission overrides and the daily communication entry obligation.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Role, User
from ..permissions import ADMIN_ROLE, SALESPERSON_ROLE
from salesdesk.time_utils import utcnow
from . import auth_service, permission_service, session_service


class UserError(ValueError):
    pass


class UserNotFoundError(LookupError):
    pass


class UserPermissionError(PermissionError):
    pass


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFoundError("User not found")
    return user


def _active_role(role_id) -> Role:
    try:
        role_id = int(role_id)
    except (TypeError, ValueError):
        raise UserError("role_id must be an integer")
    role = db.session.get(Role, role_id)
    if role is None or not role.is_active:
        raise UserError("Role not found or inactive")
    return role


def list_active_users() -> list[User]:
    return (
        db.session.query(User)
        .filter(User.is_active.is_(True), User.is_approved.is_(True))
        .order_by(User.name.asc())
        .all()
    )


def list_all_users() -> list[User]:
    return db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def list_salespeople() -> list[dict]:
    """Active, approved, non-admin accounts, including virtual ones."""
    users = (
        db.session.query(User)
        .join(Role, Role.id == User.role_id)
        .filter(
            User.is_active.is_(True),
            User.is_approved.is_(True),
            Role.name != ADMIN_ROLE,
        )
        .order_by(User.name.asc())
        .all()
    )
    return [
        {
            **u.to_summary(),
            "role": u.role.name if u.role else None,
            "is_virtual": u.is_virtual,
            "requires_communication_entry": u.requires_communication_entry,
        }
        for u in users
    ]


def list_pending_users() -> list[User]:
    return (
        db.session.query(User)
        .filter(User.is_approved.is_(False))
        .order_by(User.created_at.asc())
        .all()
    )


def approve_user(user_id: int, approved_by: User, role_id=None) -> User:
    user = get_user(user_id)
    if user.is_approved:
        raise UserError("User is already approved")
    if role_id is not None:
        user.role_id = _active_role(role_id).id
    user.is_approved = True
    user.is_active = True
    user.approved_by_user_id = approved_by.id
    user.approved_at = utcnow()
    db.session.commit()
    return user


def reject_user(user_id: int) -> None:
    """Delete a registration that was never approved."""
    user = get_user(user_id)
    if user.is_approved:
        raise UserError("Only pending users can be rejected")
    db.session.delete(user)
    db.session.commit()


def change_role(user_id: int, role_id, actor: User) -> User:
    user = get_user(user_id)
    if user.id == actor.id:
        raise UserPermissionError("You cannot change your own role")
    user.role_id = _active_role(role_id).id
    db.session.commit()
    db.session.refresh(user)
    return user


def create_user(data: dict, actor: User) -> User:
    is_virtual = bool(data.get("is_virtual"))
    try:
        return auth_service.create_user(
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            email=data.get("email"),
            password=data.get("password"),
            role_name=data.get("role") or SALESPERSON_ROLE,
            role_id=data.get("role_id"),
            is_virtual=is_virtual,
            created_by_user_id=actor.id,
        )
    except ValueError as e:
        raise UserError(str(e))


def update_user(user_id: int, data: dict, actor: User) -> User:
    """Edit names, email and the active flag. Deactivation revokes sessions."""
    user = get_user(user_id)

    if "first_name" in data or "last_name" in data:
        first = (data.get("first_name", user.first_name) or "").strip()
        last = (data.get("last_name", user.last_name) or "").strip()
        if not first or not last:
            raise UserError("first_name and last_name cannot be empty")
        user.first_name = first
        user.last_name = last
        user.name = f"{first} {last}"

    if data.get("email"):
        try:
            email = auth_service.normalize_email(data["email"])
        except ValueError as e:
            raise UserError(str(e))
        clash = db.session.query(User).filter(User.email == email, User.id != user.id).first()
        if clash:
            raise UserError("A user with this email already exists")
        user.email = email

    deactivated = False
    if "is_active" in data:
        is_active = bool(data["is_active"])
        if not is_active and user.id == actor.id:
            raise UserPermissionError("You cannot deactivate your own account")
        deactivated = user.is_active and not is_active
        user.is_active = is_active

    db.session.commit()
    if deactivated:
        session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    return user


def set_permissions(user_id: int, permissions, actor: User) -> dict:
    user = get_user(user_id)
    if user.is_admin:
        raise UserError("Admin permissions cannot be overridden")
    try:
        overrides = permission_service.set_user_overrides(user, permissions, granted_by_user_id=actor.id)
    except ValueError as e:
        raise UserError(str(e))
    return {
        "user_id": user.id,
        "overrides": overrides,
        "effective_permissions": sorted(permission_service.get_user_permissions(user)),
    }


def set_communication_requirement(user_id: int, required, reason: str | None, actor: User) -> User:
    if not isinstance(required, bool):
        raise UserError("requires_communication_entry must be a boolean")
    user = get_user(user_id)
    user.requires_communication_entry = required
    if required:
        user.communication_exemption_reason = None
        user.communication_exemption_by_user_id = None
        user.communication_exemption_at = None
    else:
        user.communication_exemption_reason = (reason or "").strip() or None
        user.communication_exemption_by_user_id = actor.id
        user.communication_exemption_at = utcnow()
    db.session.commit()
    return user
