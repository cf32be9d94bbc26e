# Overview: Flask API routes for prim (commission) operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..responses import error_response
from ..services import prim_service
from ..services.prim_service import PrimError, PrimNotFoundError
from ..decorators import require_auth, require_permission, has_permission


prims_bp = Blueprint("prims", __name__, url_prefix="/api/prims")


def _visible_salesperson_id() -> int | None:
    """Own id unless the caller may see everyone's earnings."""
    if has_permission("canViewAllEarnings"):
        return request.args.get("salesperson", type=int)
    return g.current_user.id


@prims_bp.get("/rate")
@require_auth
@require_permission("canViewPrims")
def get_rate_route():
    rate = prim_service.get_active_rate()
    if rate is None:
        return error_response("No active prim rate", 404)
    return jsonify({"rate": rate.to_dict()})


@prims_bp.post("/rate")
@require_auth
@require_permission("canEditPrimRates")
def set_rate_route():
    data = request.get_json(silent=True) or {}
    try:
        rate = prim_service.set_rate(data.get("rate"), data.get("description"), g.current_user.id)
    except PrimError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Prim rate updated", "rate": rate.to_dict()}), 201


@prims_bp.get("/periods")
@require_auth
@require_permission("canViewPrims")
def list_periods_route():
    periods = prim_service.list_periods()
    return jsonify({"periods": [p.to_dict() for p in periods], "count": len(periods)})


@prims_bp.post("/periods")
@require_auth
@require_permission("canManagePrimPeriods")
def create_period_route():
    data = request.get_json(silent=True) or {}
    try:
        period = prim_service.create_period(
            data.get("month"), data.get("year"), data.get("name"), g.current_user.id
        )
    except PrimError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Period created", "period": period.to_dict()}), 201


@prims_bp.get("/transactions")
@require_auth
@require_permission("canViewPrims")
def list_transactions_route():
    try:
        result = prim_service.list_transactions(
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 20, type=int),
            salesperson_id=_visible_salesperson_id(),
            period_id=request.args.get("period", type=int),
            transaction_type=request.args.get("type"),
        )
    except PrimError as e:
        return error_response(str(e), 400)

    return jsonify({
        "transactions": result["items"],
        "pagination": {k: result[k] for k in ("page", "limit", "total", "total_pages")},
    })


@prims_bp.get("/earnings")
@require_auth
@require_permission("canViewPrims")
def earnings_route():
    rows = prim_service.earnings(
        salesperson_id=_visible_salesperson_id(),
        period_id=request.args.get("period", type=int),
    )
    return jsonify({"earnings": rows, "count": len(rows)})


@prims_bp.put("/sales/<int:sale_id>/period")
@require_auth
@require_permission("canManagePrimPeriods")
def change_sale_period_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("prim_period_id") is None:
        return error_response("prim_period_id is required", 400)
    try:
        sale = prim_service.change_sale_period(sale_id, data.get("prim_period_id"), g.current_user.id)
    except PrimNotFoundError as e:
        return error_response(str(e), 404)
    except PrimError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Sale period updated", "sale": sale.to_dict()})
