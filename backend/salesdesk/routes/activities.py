# Overview: Flask API routes for activity log operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..responses import error_response
from ..services import activity_service
from ..decorators import require_auth, require_permission


activities_bp = Blueprint("activities", __name__, url_prefix="/api/activities")


def _page_payload(result: dict) -> dict:
    return {
        "activities": result["items"],
        "pagination": {k: result[k] for k in ("page", "limit", "total", "total_pages")},
    }


@activities_bp.get("")
@require_auth
def list_my_activities_route():
    result = activity_service.list_user_activities(
        g.current_user.id,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
        action=request.args.get("action"),
    )
    return jsonify(_page_payload(result))


@activities_bp.get("/unread-count")
@require_auth
def unread_count_route():
    return jsonify({"count": activity_service.unread_count(g.current_user.id)})


@activities_bp.post("/<int:activity_id>/read")
@require_auth
def mark_read_route(activity_id: int):
    entry = activity_service.mark_read(activity_id, g.current_user.id)
    if entry is None:
        return error_response("Activity not found", 404)
    return jsonify({"message": "Marked as read", "activity": entry.to_dict()})


@activities_bp.post("/mark-all-read")
@require_auth
def mark_all_read_route():
    updated = activity_service.mark_all_read(g.current_user.id)
    return jsonify({"message": "All activities marked as read", "updated": updated})


@activities_bp.get("/system")
@require_auth
@require_permission("canViewSystemLogs")
def system_activities_route():
    result = activity_service.list_system_activities(
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 50, type=int),
        user_id=request.args.get("user", type=int),
        action=request.args.get("action"),
        severity=request.args.get("severity"),
    )
    return jsonify(_page_payload(result))


@activities_bp.get("/stats")
@require_auth
@require_permission("canViewSystemLogs")
def activity_stats_route():
    try:
        stats = activity_service.activity_stats(request.args.get("days", 7, type=int))
    except ValueError as e:
        return error_response(str(e), 400)
    return jsonify(stats)
