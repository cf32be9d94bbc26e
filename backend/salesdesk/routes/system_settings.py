# Overview: Flask API routes for system settings (sale and payment type catalogs); parses input and returns JSON responses.

"""
Sale types and payment types share one set of routes:
/api/system-settings/sale-types and /api/system-settings/payment-types.
"""

from flask import Blueprint, request, jsonify, g

from ..responses import error_response
from ..services import catalog_service
from ..services.catalog_service import CatalogError, CatalogNotFoundError
from ..decorators import require_auth, require_permission


system_settings_bp = Blueprint("system_settings", __name__, url_prefix="/api/system-settings")

CATALOG_KINDS = {
    "sale-types": ("sale_type", "sale_types"),
    "payment-types": ("payment_type", "payment_types"),
}
CATALOG_PATH = '<any("sale-types", "payment-types"):catalog>'


@system_settings_bp.get(f"/{CATALOG_PATH}")
@require_auth
@require_permission("canAccessSystemSettings")
def list_entries_route(catalog: str):
    kind, key = CATALOG_KINDS[catalog]
    active_only = request.args.get("active", "false").lower() == "true"
    entries = catalog_service.list_entries(kind, active_only=active_only)
    return jsonify({key: [e.to_dict() for e in entries], "count": len(entries)})


@system_settings_bp.post(f"/{CATALOG_PATH}")
@require_auth
@require_permission("canAccessSystemSettings")
def create_entry_route(catalog: str):
    kind, _ = CATALOG_KINDS[catalog]
    data = request.get_json(silent=True) or {}
    try:
        entry = catalog_service.create_entry(kind, data, g.current_user.id)
    except CatalogError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Entry created", "entry": entry.to_dict()}), 201


@system_settings_bp.put(f"/{CATALOG_PATH}/<int:entry_id>")
@require_auth
@require_permission("canAccessSystemSettings")
def update_entry_route(catalog: str, entry_id: int):
    kind, _ = CATALOG_KINDS[catalog]
    data = request.get_json(silent=True) or {}
    try:
        entry = catalog_service.update_entry(kind, entry_id, data)
    except CatalogNotFoundError as e:
        return error_response(str(e), 404)
    except CatalogError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Entry updated", "entry": entry.to_dict()})


@system_settings_bp.delete(f"/{CATALOG_PATH}/<int:entry_id>")
@require_auth
@require_permission("canAccessSystemSettings")
def delete_entry_route(catalog: str, entry_id: int):
    kind, _ = CATALOG_KINDS[catalog]
    try:
        catalog_service.delete_entry(kind, entry_id)
    except CatalogNotFoundError as e:
        return error_response(str(e), 404)
    except CatalogError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Entry deleted"})


@system_settings_bp.put(f"/{CATALOG_PATH}/<int:entry_id>/toggle-status")
@require_auth
@require_permission("canAccessSystemSettings")
def toggle_entry_route(catalog: str, entry_id: int):
    kind, _ = CATALOG_KINDS[catalog]
    try:
        entry = catalog_service.toggle_entry(kind, entry_id)
    except CatalogNotFoundError as e:
        return error_response(str(e), 404)
    except CatalogError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Entry updated", "entry": entry.to_dict()})
