# Overview: Flask API routes for penalty operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..responses import error_response
from ..services import penalty_service
from ..services.penalty_service import PenaltyError, PenaltyNotFoundError
from ..decorators import require_auth, require_permission


penalties_bp = Blueprint("penalties", __name__, url_prefix="/api/penalties")


@penalties_bp.get("/my-status")
@require_auth
def my_status_route():
    year = request.args.get("year", type=int)
    return jsonify(penalty_service.user_status(g.current_user, year))


@penalties_bp.get("/all-users")
@require_auth
@require_permission("canViewPenalties")
def all_users_route():
    year = request.args.get("year", type=int)
    rows = penalty_service.all_users_status(year)
    return jsonify({"users": rows, "count": len(rows)})


@penalties_bp.post("/manual-penalty")
@require_auth
@require_permission("canApplyPenalties")
def manual_penalty_route():
    data = request.get_json(silent=True) or {}
    try:
        penalty, deactivated = penalty_service.apply_manual_penalty(
            data.get("user_id"), data.get("points"), data.get("reason"), g.current_user
        )
    except PenaltyNotFoundError as e:
        return error_response(str(e), 404)
    except PenaltyError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to apply penalty")
        return error_response("Internal server error", 500)

    return jsonify({
        "message": "Penalty applied",
        "penalty": penalty.to_dict(),
        "user_deactivated": deactivated,
    }), 201


@penalties_bp.post("/<int:penalty_id>/cancel")
@require_auth
@require_permission("canApplyPenalties")
def cancel_penalty_route(penalty_id: int):
    data = request.get_json(silent=True) or {}
    try:
        penalty = penalty_service.cancel_penalty(penalty_id, data.get("reason"), g.current_user)
    except PenaltyNotFoundError as e:
        return error_response(str(e), 404)
    except PenaltyError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Penalty cancelled", "penalty": penalty.to_dict()})


@penalties_bp.post("/reactivate/<int:user_id>")
@require_auth
@require_permission("canApplyPenalties")
def reactivate_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user, resolved = penalty_service.reactivate_user(user_id, data.get("reason"), g.current_user)
    except PenaltyNotFoundError as e:
        return error_response(str(e), 404)

    return jsonify({
        "message": f"{user.name} reactivated",
        "user": user.to_dict(),
        "resolved_penalties": resolved,
    })


@penalties_bp.post("/check-daily")
@require_auth
@require_permission("canApplyPenalties")
def check_daily_route():
    data = request.get_json(silent=True) or {}
    try:
        result = penalty_service.check_daily(data.get("date"))
    except PenaltyError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to run daily penalty check")
        return error_response("Internal server error", 500)

    return jsonify(result)
