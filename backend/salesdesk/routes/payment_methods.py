# Overview: Flask API routes for payment method operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..responses import error_response
from ..services import catalog_service
from ..services.catalog_service import CatalogError, CatalogNotFoundError
from ..decorators import require_auth, require_permission


payment_methods_bp = Blueprint("payment_methods", __name__, url_prefix="/api/payment-methods")

KIND = "payment_method"


@payment_methods_bp.get("")
@require_auth
def list_payment_methods_route():
    entries = catalog_service.list_entries(KIND)
    return jsonify({"payment_methods": [e.to_dict() for e in entries], "count": len(entries)})


@payment_methods_bp.get("/active")
@require_auth
def list_active_payment_methods_route():
    entries = catalog_service.list_entries(KIND, active_only=True)
    return jsonify({"payment_methods": [e.to_dict() for e in entries], "count": len(entries)})


@payment_methods_bp.post("")
@require_auth
@require_permission("canAccessSystemSettings")
def create_payment_method_route():
    data = request.get_json(silent=True) or {}
    try:
        entry = catalog_service.create_entry(KIND, data, g.current_user.id)
    except CatalogError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Payment method created", "payment_method": entry.to_dict()}), 201


@payment_methods_bp.put("/<int:entry_id>")
@require_auth
@require_permission("canAccessSystemSettings")
def update_payment_method_route(entry_id: int):
    data = request.get_json(silent=True) or {}
    try:
        entry = catalog_service.update_entry(KIND, entry_id, data)
    except CatalogNotFoundError as e:
        return error_response(str(e), 404)
    except CatalogError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Payment method updated", "payment_method": entry.to_dict()})


@payment_methods_bp.delete("/<int:entry_id>")
@require_auth
@require_permission("canAccessSystemSettings")
def delete_payment_method_route(entry_id: int):
    try:
        catalog_service.delete_entry(KIND, entry_id)
    except CatalogNotFoundError as e:
        return error_response(str(e), 404)
    except CatalogError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Payment method deleted"})


@payment_methods_bp.put("/<int:entry_id>/toggle-status")
@require_auth
@require_permission("canAccessSystemSettings")
def toggle_payment_method_route(entry_id: int):
    try:
        entry = catalog_service.toggle_entry(KIND, entry_id)
    except CatalogNotFoundError as e:
        return error_response(str(e), 404)
    except CatalogError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Payment method updated", "payment_method": entry.to_dict()})
