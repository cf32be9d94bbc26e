# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User management routes: approval queue, roles, per-user permission
overrides and the daily communication entry requirement.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..responses import error_response
from ..services import user_service, permission_service
from ..services.user_service import UserError, UserNotFoundError, UserPermissionError
from ..decorators import require_auth, require_permission


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _with_permissions(user) -> dict:
    data = user.to_dict()
    data["permissions"] = sorted(permission_service.get_user_permissions(user))
    data["permission_overrides"] = permission_service.get_user_override_map(user)
    return data


@users_bp.get("")
@require_auth
@require_permission("canViewUsers")
def list_users_route():
    users = user_service.list_active_users()
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@users_bp.get("/all-users")
@require_auth
@require_permission("canViewUsers")
def list_all_users_route():
    users = user_service.list_all_users()
    return jsonify({"users": [_with_permissions(u) for u in users], "count": len(users)})


@users_bp.get("/salespeople")
@require_auth
def list_salespeople_route():
    salespeople = user_service.list_salespeople()
    return jsonify({"salespeople": salespeople, "count": len(salespeople)})


@users_bp.get("/pending")
@require_auth
@require_permission("canEditUsers")
def list_pending_route():
    users = user_service.list_pending_users()
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@users_bp.put("/<int:user_id>/approve")
@require_auth
@require_permission("canEditUsers")
def approve_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.approve_user(user_id, g.current_user, role_id=data.get("role_id"))
    except UserNotFoundError as e:
        return error_response(str(e), 404)
    except UserError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "User approved", "user": user.to_dict()})


@users_bp.delete("/<int:user_id>/reject")
@require_auth
@require_permission("canDeleteUsers")
def reject_user_route(user_id: int):
    try:
        user_service.reject_user(user_id)
    except UserNotFoundError as e:
        return error_response(str(e), 404)
    except UserError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Registration rejected"})


@users_bp.put("/<int:user_id>/role")
@require_auth
@require_permission("canManageRoles")
def change_role_route(user_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("role_id") is None:
        return error_response("role_id is required", 400)
    try:
        user = user_service.change_role(user_id, data.get("role_id"), g.current_user)
    except UserNotFoundError as e:
        return error_response(str(e), 404)
    except UserPermissionError as e:
        return error_response(str(e), 403)
    except UserError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Role updated", "user": user.to_dict()})


@users_bp.post("")
@require_auth
@require_permission("canCreateUsers")
def create_user_route():
    """
    Create an approved, active account.

    Request body: first_name, last_name, email, password, role_id or role,
    is_virtual (virtual users never log in; password not needed).
    """
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.create_user(data, g.current_user)
    except UserError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return error_response("Internal server error", 500)

    return jsonify({"message": "User created", "user": user.to_dict()}), 201


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("canEditUsers")
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.update_user(user_id, data, g.current_user)
    except UserNotFoundError as e:
        return error_response(str(e), 404)
    except UserPermissionError as e:
        return error_response(str(e), 403)
    except UserError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "User updated", "user": user.to_dict()})


@users_bp.put("/<int:user_id>/permissions")
@require_auth
@require_permission("canManageRoles")
def set_permissions_route(user_id: int):
    """Body: {"permissions": {code: true | false | null}}; null clears the override."""
    data = request.get_json(silent=True) or {}
    if "permissions" not in data:
        return error_response("permissions is required", 400)
    try:
        result = user_service.set_permissions(user_id, data.get("permissions"), g.current_user)
    except UserNotFoundError as e:
        return error_response(str(e), 404)
    except UserError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Permissions updated", **result})


@users_bp.put("/<int:user_id>/communication-requirement")
@require_auth
@require_permission("canEditUsers")
def communication_requirement_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.set_communication_requirement(
            user_id,
            data.get("requires_communication_entry"),
            data.get("reason"),
            g.current_user,
        )
    except UserNotFoundError as e:
        return error_response(str(e), 404)
    except UserError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Communication requirement updated", "user": user.to_dict()})
