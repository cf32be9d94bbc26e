# Overview: Flask API routes for communication operations; parses input and returns JSON responses.

"""
Communication routes: type catalog, daily records, report and the
communication years that hold penalty settings and legacy totals.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..responses import error_response
from ..services import communication_service
from ..services.communication_service import CommunicationError, CommunicationNotFoundError
from ..decorators import require_auth, require_permission, has_permission


communications_bp = Blueprint("communications", __name__, url_prefix="/api/communications")


def _visible_user_id() -> int | None:
    """None means every salesperson is visible."""
    if has_permission("canViewAllCommunications"):
        return None
    return g.current_user.id


def _filters() -> dict:
    return {
        key: request.args.get(key)
        for key in ("salesperson", "start_date", "end_date", "year", "month")
        if request.args.get(key)
    }


# =============================================================================
# COMMUNICATION TYPES
# =============================================================================

@communications_bp.get("/types")
@require_auth
def list_types_route():
    active_only = request.args.get("active", "false").lower() == "true"
    types = communication_service.list_types(active_only=active_only)
    return jsonify({"types": [t.to_dict() for t in types], "count": len(types)})


@communications_bp.get("/types/<int:type_id>")
@require_auth
def get_type_route(type_id: int):
    try:
        comm_type = communication_service.get_type(type_id)
    except CommunicationNotFoundError as e:
        return error_response(str(e), 404)
    return jsonify({"type": comm_type.to_dict()})


@communications_bp.post("/types")
@require_auth
@require_permission("canAccessSystemSettings")
def create_type_route():
    data = request.get_json(silent=True) or {}
    try:
        comm_type = communication_service.create_type(data, g.current_user.id)
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Communication type created", "type": comm_type.to_dict()}), 201


@communications_bp.put("/types/<int:type_id>")
@require_auth
@require_permission("canAccessSystemSettings")
def update_type_route(type_id: int):
    data = request.get_json(silent=True) or {}
    try:
        comm_type = communication_service.update_type(type_id, data)
    except CommunicationNotFoundError as e:
        return error_response(str(e), 404)
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Communication type updated", "type": comm_type.to_dict()})


@communications_bp.delete("/types/<int:type_id>")
@require_auth
@require_permission("canAccessSystemSettings")
def delete_type_route(type_id: int):
    try:
        communication_service.delete_type(type_id)
    except CommunicationNotFoundError as e:
        return error_response(str(e), 404)
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Communication type deleted"})


@communications_bp.patch("/types/<int:type_id>/toggle")
@require_auth
@require_permission("canAccessSystemSettings")
def toggle_type_route(type_id: int):
    try:
        comm_type = communication_service.toggle_type(type_id)
    except CommunicationNotFoundError as e:
        return error_response(str(e), 404)
    return jsonify({"message": "Communication type updated", "type": comm_type.to_dict()})


@communications_bp.put("/types/reorder")
@require_auth
@require_permission("canAccessSystemSettings")
def reorder_types_route():
    data = request.get_json(silent=True) or {}
    try:
        count = communication_service.reorder_types(data.get("items"))
    except CommunicationNotFoundError as e:
        return error_response(str(e), 404)
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Order updated", "updated": count})


@communications_bp.post("/types/create-defaults")
@require_auth
@require_permission("canAccessSystemSettings")
def create_default_types_route():
    try:
        types = communication_service.create_default_types(g.current_user.id)
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Default types created", "types": [t.to_dict() for t in types]}), 201


# =============================================================================
# DAILY RECORDS
# =============================================================================

@communications_bp.get("/today")
@require_auth
@require_permission("canViewCommunications")
def today_route():
    return jsonify({"record": communication_service.today_record(g.current_user)})


@communications_bp.post("/daily")
@require_auth
@require_permission("canEditCommunications")
def save_daily_route():
    """Body: {date?, counts: {CODE: n}} or flat fields, notes."""
    data = request.get_json(silent=True) or {}
    try:
        record = communication_service.save_daily(g.current_user, data)
    except CommunicationError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to save daily communication record")
        return error_response("Internal server error", 500)

    return jsonify({"message": "Daily record saved", "record": record.to_dict()})


@communications_bp.get("/records")
@require_auth
@require_permission("canViewCommunications")
def list_records_route():
    try:
        result = communication_service.list_records(
            _filters(),
            _visible_user_id(),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 50, type=int),
        )
    except CommunicationError as e:
        return error_response(str(e), 400)

    return jsonify({
        "records": result["items"],
        "pagination": {k: result[k] for k in ("page", "limit", "total", "total_pages")},
    })


@communications_bp.get("/report")
@require_auth
@require_permission("canViewCommunications")
def report_route():
    try:
        result = communication_service.report(_filters(), _visible_user_id())
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify(result)


# =============================================================================
# COMMUNICATION YEARS
# =============================================================================

@communications_bp.get("/years")
@require_auth
@require_permission("canViewCommunications")
def list_years_route():
    years = communication_service.list_years()
    return jsonify({"years": [y.to_dict() for y in years], "count": len(years)})


@communications_bp.get("/years/current")
@require_auth
def current_year_route():
    year = communication_service.get_current_year()
    if year is None:
        return error_response("No active communication year", 404)
    return jsonify({"year": year.to_dict()})


@communications_bp.put("/years/current/settings")
@require_auth
@require_permission("canAccessSystemSettings")
def update_current_settings_route():
    data = request.get_json(silent=True) or {}
    settings = data.get("settings", data)
    try:
        year = communication_service.update_current_settings(settings)
    except CommunicationNotFoundError as e:
        return error_response(str(e), 404)
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Settings updated", "year": year.to_dict()})


@communications_bp.post("/years")
@require_auth
@require_permission("canAccessSystemSettings")
def create_year_route():
    data = request.get_json(silent=True) or {}
    try:
        year = communication_service.create_year(data, g.current_user.id)
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Year created", "year": year.to_dict()}), 201


@communications_bp.put("/years/<int:year_id>")
@require_auth
@require_permission("canAccessSystemSettings")
def update_year_route(year_id: int):
    data = request.get_json(silent=True) or {}
    try:
        year = communication_service.update_year(year_id, data)
    except CommunicationNotFoundError as e:
        return error_response(str(e), 404)
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Year updated", "year": year.to_dict()})


@communications_bp.delete("/years/<int:year_id>")
@require_auth
@require_permission("canAccessSystemSettings")
def delete_year_route(year_id: int):
    try:
        communication_service.delete_year(year_id)
    except CommunicationNotFoundError as e:
        return error_response(str(e), 404)
    except CommunicationError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Year deleted"})
