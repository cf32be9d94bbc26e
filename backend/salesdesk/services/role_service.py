# Overview: Service-layer operations for roles; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Role, User
from ..permissions import ADMIN_ROLE
from . import permission_service


class RoleError(ValueError):
    pass


class RoleNotFoundError(LookupError):
    pass


def _normalize_name(name: str | None) -> str:
    value = (name or "").strip().lower()
    if not value:
        raise RoleError("Role name is required")
    if len(value) > 64:
        raise RoleError("Role name must be at most 64 characters")
    return value


def get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise RoleNotFoundError("Role not found")
    return role


def _user_count(role_id: int) -> int:
    return db.session.query(func.count(User.id)).filter(User.role_id == role_id).scalar() or 0


def role_payload(role: Role) -> dict:
    data = role.to_dict()
    data["user_count"] = _user_count(role.id)
    return data


def list_roles() -> list[dict]:
    roles = db.session.query(Role).order_by(Role.is_system_role.desc(), Role.name.asc()).all()
    return [role_payload(r) for r in roles]


def create_role(name: str, display_name: str | None, description: str | None, permissions: dict | None) -> Role:
    """Create a role and persist the given permission map in one commit."""
    name = _normalize_name(name)
    if db.session.query(Role).filter(Role.name == name).first():
        raise RoleError("A role with this name already exists")

    role = Role(
        name=name,
        display_name=(display_name or "").strip() or name,
        description=description,
        is_system_role=False,
        is_active=True,
    )
    db.session.add(role)
    db.session.flush()

    if permissions:
        try:
            permission_service.set_role_permissions(role, permissions)
        except ValueError as e:
            db.session.rollback()
            raise RoleError(str(e))

    db.session.commit()
    return role


def update_role(role_id: int, data: dict) -> Role:
    role = get_role(role_id)
    if role.is_admin:
        raise RoleError("The admin role cannot be edited")

    if "name" in data:
        name = _normalize_name(data.get("name"))
        clash = db.session.query(Role).filter(Role.name == name, Role.id != role.id).first()
        if clash:
            raise RoleError("A role with this name already exists")
        if role.is_system_role and name != role.name:
            raise RoleError("System roles cannot be renamed")
        role.name = name
    if "display_name" in data:
        display_name = (data.get("display_name") or "").strip()
        if not display_name:
            raise RoleError("display_name cannot be empty")
        role.display_name = display_name
    if "description" in data:
        role.description = data.get("description")
    if "permissions" in data and data["permissions"] is not None:
        try:
            permission_service.set_role_permissions(role, data["permissions"])
        except ValueError as e:
            db.session.rollback()
            raise RoleError(str(e))

    db.session.commit()
    return role


def delete_role(role_id: int) -> None:
    role = get_role(role_id)
    if role.is_admin or role.is_system_role:
        raise RoleError("System roles cannot be deleted")
    count = _user_count(role.id)
    if count:
        raise RoleError(f"Role is assigned to {count} user(s) and cannot be deleted")
    db.session.delete(role)
    db.session.commit()


def toggle_role_status(role_id: int) -> Role:
    role = get_role(role_id)
    if role.name == ADMIN_ROLE:
        raise RoleError("The admin role cannot be deactivated")
    role.is_active = not role.is_active
    db.session.commit()
    return role
