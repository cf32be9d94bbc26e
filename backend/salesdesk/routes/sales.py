# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sale routes.

Row-level rules (ownership, canViewAllSales visibility) live in
sales_service; these routes only parse input and map errors:
SaleError -> 400, SaleNotFoundError -> 404, SalePermissionError -> 403.
"""

from flask import Blueprint, request, jsonify, g, current_app, send_file

from ..responses import error_response
from ..services import sales_service
from ..services.sales_service import SaleError, SaleNotFoundError, SalePermissionError
from ..decorators import require_auth, require_permission
from ..time_utils import today


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALE_ERRORS = (SaleError, SaleNotFoundError, SalePermissionError)


def _sale_error(e: Exception):
    if isinstance(e, SaleNotFoundError):
        return error_response(str(e), 404)
    if isinstance(e, SalePermissionError):
        return error_response(str(e), 403)
    return error_response(str(e), 400)


def _list_filters() -> dict:
    return {
        key: request.args.get(key)
        for key in (
            "search", "sale_type", "prim_status", "status", "salesperson",
            "start_date", "end_date", "prim_period", "sort_by", "sort_order",
        )
        if request.args.get(key)
    }


@sales_bp.post("")
@require_auth
@require_permission("canCreateSales")
def create_sale_route():
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.create_sale(data, g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return error_response("Internal server error", 500)

    return jsonify({"message": "Sale created", "sale": sale.to_dict()}), 201


@sales_bp.get("")
@require_auth
@require_permission("canViewSales")
def list_sales_route():
    """
    Query params: search, sale_type, prim_status, status, salesperson,
    start_date, end_date, prim_period, sort_by, sort_order, page, limit.
    """
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", 20, type=int)
    try:
        result = sales_service.list_sales(g.current_user, _list_filters(), page=page, limit=limit)
    except SALE_ERRORS as e:
        return _sale_error(e)

    return jsonify(result)


@sales_bp.get("/upcoming-entries")
@require_auth
@require_permission("canViewSales")
def upcoming_entries_route():
    try:
        result = sales_service.upcoming_entries(g.current_user, request.args.get("days", 7))
    except SALE_ERRORS as e:
        return _sale_error(e)
    return jsonify(result)


@sales_bp.get("/export")
@require_auth
@require_permission("canExportData")
def export_sales_route():
    try:
        buffer = sales_service.export_sales(g.current_user, _list_filters())
    except SALE_ERRORS as e:
        return _sale_error(e)
    except Exception:
        current_app.logger.exception("Failed to export sales")
        return error_response("Internal server error", 500)

    return send_file(
        buffer,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=f"satislar_{today().isoformat()}.xlsx",
    )


@sales_bp.put("/bulk-prim-status")
@require_auth
@require_permission("canProcessPayments")
def bulk_prim_status_route():
    data = request.get_json(silent=True) or {}
    try:
        count = sales_service.bulk_update_prim_status(data.get("prim_status"), data.get("filters"), g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    except Exception:
        current_app.logger.exception("Failed to update prim status in bulk")
        return error_response("Internal server error", 500)

    return jsonify({
        "message": f'{count} sales set to "{data.get("prim_status")}"',
        "affected_count": count,
    })


@sales_bp.post("/bulk-prim-status/preview")
@require_auth
@require_permission("canProcessPayments")
def bulk_prim_status_preview_route():
    data = request.get_json(silent=True) or {}
    try:
        result = sales_service.preview_bulk_prim_status(data.get("prim_status"), data.get("filters"))
    except SALE_ERRORS as e:
        return _sale_error(e)
    return jsonify(result)


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("canViewSales")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id, g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    return jsonify({"sale": sale.to_dict()})


@sales_bp.put("/<int:sale_id>")
@require_auth
@require_permission("canEditSales")
def update_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.update_sale(sale_id, data, g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return error_response("Internal server error", 500)

    return jsonify({"message": "Sale updated", "sale": sale.to_dict()})


@sales_bp.put("/<int:sale_id>/cancel")
@require_auth
@require_permission("canCancelSales")
def cancel_sale_route(sale_id: int):
    try:
        sale = sales_service.cancel_sale(sale_id, g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    return jsonify({"message": "Sale cancelled", "sale": sale.to_dict()})


@sales_bp.put("/<int:sale_id>/restore")
@require_auth
@require_permission("canCancelSales")
def restore_sale_route(sale_id: int):
    try:
        sale = sales_service.restore_sale(sale_id, g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    return jsonify({"message": "Sale restored", "sale": sale.to_dict()})


@sales_bp.put("/<int:sale_id>/transfer")
@require_auth
@require_permission("canTransferSales")
def transfer_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale, previous, target = sales_service.transfer_sale(
            sale_id, data.get("new_salesperson_id"), data.get("reason"), g.current_user
        )
    except SALE_ERRORS as e:
        return _sale_error(e)
    except Exception:
        current_app.logger.exception("Failed to transfer sale")
        return error_response("Internal server error", 500)

    return jsonify({
        "message": f"Sale transferred from {previous.name} to {target.name}",
        "sale": sale.to_dict(),
    })


@sales_bp.put("/<int:sale_id>/prim-status")
@require_auth
@require_permission("canProcessPayments")
def prim_status_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.set_prim_status(sale_id, data.get("prim_status"), g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    return jsonify({"message": "Prim status updated", "sale": sale.to_dict()})


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_permission("canDeleteSales")
def delete_sale_route(sale_id: int):
    try:
        sales_service.delete_sale(sale_id, g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    return jsonify({"message": "Sale deleted"})


@sales_bp.put("/<int:sale_id>/notes")
@require_auth
def set_notes_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.set_notes(sale_id, data.get("notes"), g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    return jsonify({"message": "Notes saved", "sale": sale.to_dict()})


@sales_bp.delete("/<int:sale_id>/notes")
@require_auth
def clear_notes_route(sale_id: int):
    try:
        sale = sales_service.clear_notes(sale_id, g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    return jsonify({"message": "Notes deleted", "sale": sale.to_dict()})


@sales_bp.put("/<int:sale_id>/convert-to-sale")
@require_auth
@require_permission("canEditSales")
def convert_to_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.convert_to_sale(
            sale_id, data.get("sale_date"), data.get("payment_type"), g.current_user
        )
    except SALE_ERRORS as e:
        return _sale_error(e)
    except Exception:
        current_app.logger.exception("Failed to convert kapora")
        return error_response("Internal server error", 500)

    return jsonify({"message": "Kapora converted to sale", "sale": sale.to_dict()})


@sales_bp.put("/<int:sale_id>/modify")
@require_auth
@require_permission("canModifySales")
def modify_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.modify_sale(sale_id, data, g.current_user)
    except SALE_ERRORS as e:
        return _sale_error(e)
    except Exception:
        current_app.logger.exception("Failed to modify sale")
        return error_response("Internal server error", 500)

    return jsonify({"message": "Sale modified", "sale": sale.to_dict()})
