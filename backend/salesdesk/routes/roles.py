# Overview: Flask API routes for role operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..responses import error_response
from ..permissions import grouped_permission_catalog
from ..services import role_service
from ..services.role_service import RoleError, RoleNotFoundError
from ..decorators import require_auth, require_permission


roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


@roles_bp.get("")
@require_auth
@require_permission("canManageRoles")
def list_roles_route():
    roles = role_service.list_roles()
    return jsonify({"roles": roles, "count": len(roles)})


@roles_bp.get("/permissions/list")
@require_auth
@require_permission("canManageRoles")
def list_permissions_route():
    return jsonify({"permissions": grouped_permission_catalog()})


@roles_bp.get("/<int:role_id>")
@require_auth
@require_permission("canManageRoles")
def get_role_route(role_id: int):
    try:
        role = role_service.get_role(role_id)
    except RoleNotFoundError as e:
        return error_response(str(e), 404)
    return jsonify({"role": role_service.role_payload(role)})


@roles_bp.post("")
@require_auth
@require_permission("canManageRoles")
def create_role_route():
    data = request.get_json(silent=True) or {}
    try:
        role = role_service.create_role(
            name=data.get("name"),
            display_name=data.get("display_name"),
            description=data.get("description"),
            permissions=data.get("permissions"),
        )
    except RoleError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Role created", "role": role_service.role_payload(role)}), 201


@roles_bp.put("/<int:role_id>")
@require_auth
@require_permission("canManageRoles")
def update_role_route(role_id: int):
    data = request.get_json(silent=True) or {}
    try:
        role = role_service.update_role(role_id, data)
    except RoleNotFoundError as e:
        return error_response(str(e), 404)
    except RoleError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Role updated", "role": role_service.role_payload(role)})


@roles_bp.delete("/<int:role_id>")
@require_auth
@require_permission("canManageRoles")
def delete_role_route(role_id: int):
    try:
        role_service.delete_role(role_id)
    except RoleNotFoundError as e:
        return error_response(str(e), 404)
    except RoleError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Role deleted"})


@roles_bp.post("/<int:role_id>/toggle-status")
@require_auth
@require_permission("canManageRoles")
def toggle_role_route(role_id: int):
    try:
        role = role_service.toggle_role_status(role_id)
    except RoleNotFoundError as e:
        return error_response(str(e), 404)
    except RoleError as e:
        return error_response(str(e), 400)

    state = "activated" if role.is_active else "deactivated"
    return jsonify({"message": f"Role {state}", "role": role_service.role_payload(role)})
