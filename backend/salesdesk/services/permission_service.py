# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission resolution and role/user permission assignment.

Effective permissions of a user:
1. Nothing if the user's role is inactive.
2. The full catalog if the role is admin (overrides are ignored).
3. Otherwise the role's permissions, then per-user overrides:
   GRANT adds a code, DENY removes it, no override inherits.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Permission, Role, RolePermission, User, UserPermissionOverride
from ..permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    get_all_permission_codes,
    get_permission_definition,
    validate_permission_code,
)
from . import activity_service


OVERRIDE_GRANT = "GRANT"
OVERRIDE_DENY = "DENY"


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def _as_user(user_or_id) -> User | None:
    if isinstance(user_or_id, User):
        return user_or_id
    return db.session.get(User, user_or_id)


def get_user_permissions(user_or_id) -> set[str]:
    """Resolve the set of permission codes a user holds."""
    user = _as_user(user_or_id)
    if not user or not user.role or not user.role.is_active:
        return set()

    if user.role.is_admin:
        return set(get_all_permission_codes())

    permission_codes = user.role.permission_codes()

    for override in user.permission_overrides:
        if override.override_type == OVERRIDE_GRANT:
            permission_codes.add(override.permission_code)
        elif override.override_type == OVERRIDE_DENY:
            permission_codes.discard(override.permission_code)

    return permission_codes


def user_has_permission(user_or_id, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_or_id)


def require_permission(
    user: User,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Raise PermissionDeniedError if the user lacks the permission.

    Denials (never grants) are written to the activity log.
    """
    if user_has_permission(user, permission_code):
        return

    activity_service.log_activity(
        user_id=user.id,
        action="permission_denied",
        description=f"Missing permission: {permission_code}",
        details={"resource": resource, "permission": permission_code},
        ip_address=ip_address,
        user_agent=user_agent,
        severity="medium",
    )
    raise PermissionDeniedError(f"Permission denied: {permission_code}")


def get_user_override_map(user: User) -> dict[str, bool]:
    """Overrides as {code: True|False}; codes without an override are absent."""
    return {
        o.permission_code: o.override_type == OVERRIDE_GRANT
        for o in user.permission_overrides
    }


def set_user_overrides(user: User, permissions: dict, granted_by_user_id: int | None = None) -> dict[str, bool]:
    """
    Apply {code: True|False|None} to a user's overrides.

    True grants, False denies, None removes the override so the role decides.
    Unknown codes raise ValueError before anything changes.
    """
    if not isinstance(permissions, dict):
        raise ValueError("permissions must be an object")
    unknown = [code for code in permissions if not validate_permission_code(code)]
    if unknown:
        raise ValueError(f"Unknown permission codes: {', '.join(sorted(unknown))}")

    existing = {o.permission_code: o for o in user.permission_overrides}
    for code, value in permissions.items():
        override = existing.get(code)
        if value is None:
            if override:
                db.session.delete(override)
            continue
        override_type = OVERRIDE_GRANT if bool(value) else OVERRIDE_DENY
        if override:
            override.override_type = override_type
            override.granted_by_user_id = granted_by_user_id
        else:
            db.session.add(UserPermissionOverride(
                user_id=user.id,
                permission_code=code,
                override_type=override_type,
                granted_by_user_id=granted_by_user_id,
            ))

    db.session.commit()
    db.session.refresh(user)
    return get_user_override_map(user)


def set_role_permissions(role: Role, permissions: dict) -> None:
    """
    Replace a role's permissions with the codes set to True in the mapping.

    Caller commits.
    """
    if not isinstance(permissions, dict):
        raise ValueError("permissions must be an object")
    unknown = [code for code in permissions if not validate_permission_code(code)]
    if unknown:
        raise ValueError(f"Unknown permission codes: {', '.join(sorted(unknown))}")

    wanted = {code for code, enabled in permissions.items() if enabled}
    current = {rp.permission.code: rp for rp in role.role_permissions if rp.permission}

    for code, rp in current.items():
        if code not in wanted:
            role.role_permissions.remove(rp)

    if wanted - set(current):
        by_code = {
            p.code: p
            for p in db.session.query(Permission).filter(Permission.code.in_(wanted - set(current))).all()
        }
        for code in wanted - set(current):
            permission = by_code.get(code)
            if permission is None:
                definition = get_permission_definition(code)
                permission = Permission(
                    code=code,
                    name=definition["name"],
                    description=definition["description"],
                    category=definition["category"],
                )
                db.session.add(permission)
            role.role_permissions.append(RolePermission(permission=permission))


def initialize_permissions() -> int:
    """
    Create Permission records for every catalog entry.

    Idempotent: Safe to run multiple times.
    """
    created_count = 0

    for code, name, description, category in PERMISSION_DEFINITIONS:
        existing = db.session.query(Permission).filter_by(code=code).first()

        if not existing:
            db.session.add(Permission(code=code, name=name, description=description, category=category))
            created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_permissions() -> int:
    """
    Link default roles to their default permissions.

    Idempotent: existing links are skipped.
    """
    created_count = 0

    for role_name, permission_codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            continue

        for permission_code in permission_codes:
            permission = db.session.query(Permission).filter_by(code=permission_code).first()
            if not permission:
                continue

            existing = db.session.query(RolePermission).filter_by(
                role_id=role.id,
                permission_id=permission.id,
            ).first()

            if not existing:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                created_count += 1

    db.session.commit()
    return created_count
