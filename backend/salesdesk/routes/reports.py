# Overview: Flask API routes for report operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..responses import error_response
from ..services import report_service
from ..services.report_service import ReportError
from ..decorators import require_auth, require_permission


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
@require_permission("canViewDashboard")
def dashboard_route():
    return jsonify(report_service.dashboard(g.current_user))


@reports_bp.get("/sales-summary")
@require_auth
@require_permission("canViewReports")
def sales_summary_route():
    try:
        report = report_service.sales_summary(
            g.current_user,
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
            salesperson=request.args.get("salesperson"),
            period=request.args.get("period"),
        )
    except ReportError as e:
        return error_response(str(e), 400)

    return jsonify(report)


@reports_bp.get("/top-performers")
@require_auth
@require_permission("canViewReports")
def top_performers_route():
    try:
        rows = report_service.top_performers(
            g.current_user,
            period=request.args.get("period"),
            limit=request.args.get("limit", 10),
            sort_by=request.args.get("sort_by", "count"),
        )
    except ReportError as e:
        return error_response(str(e), 400)

    return jsonify({"performers": rows, "count": len(rows)})


@reports_bp.get("/salesperson-performance")
@require_auth
@require_permission("canViewReports")
def salesperson_performance_route():
    try:
        rows = report_service.salesperson_performance(
            g.current_user,
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
            period=request.args.get("period"),
        )
    except ReportError as e:
        return error_response(str(e), 400)

    return jsonify({"salespeople": rows, "count": len(rows)})


@reports_bp.get("/period-comparison")
@require_auth
@require_permission("canViewReports")
def period_comparison_route():
    return jsonify({"periods": report_service.period_comparison(g.current_user)})
