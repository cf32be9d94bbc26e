# Overview: Flask API routes for historical data migration; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..responses import error_response
from ..services import migration_service
from ..services.migration_service import MigrationError
from ..decorators import require_auth, require_permission


migration_bp = Blueprint("migration", __name__, url_prefix="/api/migration")


@migration_bp.get("/historical-years")
@require_auth
@require_permission("canAccessSystemSettings")
def historical_years_route():
    years = migration_service.historical_years()
    return jsonify({"years": years, "count": len(years)})


@migration_bp.post("/historical-to-daily")
@require_auth
@require_permission("canAccessSystemSettings")
def historical_to_daily_route():
    """Body: {years: [int], dry_run: bool (default true), force: bool}."""
    data = request.get_json(silent=True) or {}
    dry_run = data.get("dry_run", True) is not False
    try:
        results = migration_service.historical_to_daily(
            data.get("years"),
            dry_run=dry_run,
            force=bool(data.get("force")),
            user_id=g.current_user.id,
        )
    except MigrationError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to migrate historical data")
        return error_response("Internal server error", 500)

    return jsonify({
        "success": True,
        "message": "Migration simulation completed" if dry_run else "Migration completed",
        "results": results,
    })
