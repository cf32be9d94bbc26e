# Overview: Flask API routes for announcement operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..responses import error_response
from ..services import announcement_service
from ..services.announcement_service import AnnouncementError, AnnouncementNotFoundError
from ..decorators import require_auth, require_permission


announcements_bp = Blueprint("announcements", __name__, url_prefix="/api/announcements")


@announcements_bp.get("")
@require_auth
def list_announcements_route():
    include_read = request.args.get("include_read", "true").lower() != "false"
    items = announcement_service.list_for_user(g.current_user, include_read=include_read)
    return jsonify({"announcements": items, "count": len(items)})


@announcements_bp.get("/unread-count")
@require_auth
def unread_count_route():
    return jsonify({"count": announcement_service.unread_count(g.current_user)})


@announcements_bp.post("/<int:announcement_id>/read")
@require_auth
def mark_read_route(announcement_id: int):
    try:
        newly_read = announcement_service.mark_read(announcement_id, g.current_user)
    except AnnouncementNotFoundError as e:
        return error_response(str(e), 404)
    message = "Announcement marked as read" if newly_read else "Announcement was already read"
    return jsonify({"message": message})


@announcements_bp.get("/admin")
@require_auth
@require_permission("canManageAnnouncements")
def admin_list_route():
    items = announcement_service.list_for_admin()
    return jsonify({"announcements": items, "count": len(items)})


@announcements_bp.post("")
@require_auth
@require_permission("canManageAnnouncements")
def create_announcement_route():
    data = request.get_json(silent=True) or {}
    try:
        announcement = announcement_service.create_announcement(data, g.current_user)
    except AnnouncementError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Announcement created", "announcement": announcement.to_dict()}), 201


@announcements_bp.put("/<int:announcement_id>")
@require_auth
@require_permission("canManageAnnouncements")
def update_announcement_route(announcement_id: int):
    data = request.get_json(silent=True) or {}
    try:
        announcement = announcement_service.update_announcement(announcement_id, data, g.current_user)
    except AnnouncementNotFoundError as e:
        return error_response(str(e), 404)
    except AnnouncementError as e:
        return error_response(str(e), 400)
    return jsonify({"message": "Announcement updated", "announcement": announcement.to_dict()})


@announcements_bp.delete("/<int:announcement_id>")
@require_auth
@require_permission("canManageAnnouncements")
def delete_announcement_route(announcement_id: int):
    try:
        announcement_service.delete_announcement(announcement_id, g.current_user)
    except AnnouncementNotFoundError as e:
        return error_response(str(e), 404)
    return jsonify({"message": "Announcement deleted"})
