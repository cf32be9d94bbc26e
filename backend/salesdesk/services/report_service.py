# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

"""
Aggregates over sales for the dashboard and report screens.

Scope follows sales visibility: without canViewAllSales every figure is
limited to the caller's own sales and the salesperson filter is ignored.
Amounts are sums of base_prim_price; prims are sums of prim_amount.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import case, extract, func

from ..extensions import db
from ..models import PrimPeriod, Sale, User
from ..models.sales import PRIM_PAID, PRIM_UNPAID, SALE_TYPE_KAPORA, SALE_TYPE_SATIS, STATUS_ACTIVE, STATUS_CANCELLED
from salesdesk.time_utils import parse_ymd, to_iso_date, today
from . import sales_service


class ReportError(ValueError):
    """Raised when report parameters are invalid."""
    pass


TOP_PERFORMER_SORTS = ("count", "amount", "prim")
DASHBOARD_LEADERS = 5
MAX_LIMIT = 100
COMPARED_PERIODS = 6


def _money(value) -> float:
    return round(float(value or 0), 2)


def _scoped(query, user: User, salesperson=None):
    if not sales_service.can_view_all(user):
        return query.filter(Sale.salesperson_id == user.id)
    if salesperson not in (None, ""):
        try:
            return query.filter(Sale.salesperson_id == int(salesperson))
        except (TypeError, ValueError):
            raise ReportError("salesperson must be a user id")
    return query


def _period_id(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ReportError("period must be a period id")


def _date_range(start, end) -> tuple[date | None, date | None]:
    try:
        start_d = parse_ymd(start, "start_date")
        end_d = parse_ymd(end, "end_date")
    except ValueError as e:
        raise ReportError(str(e))
    if start_d and end_d and start_d > end_d:
        raise ReportError("start_date must be before end_date")
    return start_d, end_d


def _filtered(user: User, start=None, end=None, salesperson=None, period=None):
    start_d, end_d = _date_range(start, end)
    query = _scoped(db.session.query(Sale), user, salesperson)
    if start_d:
        query = query.filter(Sale.sale_date >= start_d)
    if end_d:
        query = query.filter(Sale.sale_date <= end_d)
    period_id = _period_id(period)
    if period_id:
        query = query.filter(Sale.prim_period_id == period_id)
    return query


def _totals(query) -> dict:
    count, list_total, activity_total, amount, prim, paid, unpaid = query.with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.list_price), 0),
        func.coalesce(func.sum(Sale.activity_sale_price), 0),
        func.coalesce(func.sum(Sale.base_prim_price), 0),
        func.coalesce(func.sum(Sale.prim_amount), 0),
        func.coalesce(func.sum(case((Sale.prim_status == PRIM_PAID, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Sale.prim_status == PRIM_UNPAID, 1), else_=0)), 0),
    ).one()
    return {
        "count": int(count or 0),
        "total_list_price": _money(list_total),
        "total_activity_price": _money(activity_total),
        "total_amount": _money(amount),
        "total_prim": _money(prim),
        "paid_prims": int(paid or 0),
        "unpaid_prims": int(unpaid or 0),
    }


def _leaders(query, sort: str, limit: int) -> list[dict]:
    count = func.count(Sale.id).label("sale_count")
    amount = func.coalesce(func.sum(Sale.base_prim_price), 0).label("total_amount")
    prim = func.coalesce(func.sum(Sale.prim_amount), 0).label("total_prim")
    order = {"count": count, "amount": amount, "prim": prim}[sort]
    rows = (
        query.join(User, User.id == Sale.salesperson_id)
        .with_entities(User.id, User.name, User.email, count, amount, prim)
        .group_by(User.id, User.name, User.email)
        .order_by(order.desc(), User.name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "salesperson": {"id": user_id, "name": name, "email": email},
            "total_sales": int(sale_count),
            "total_amount": _money(total_amount),
            "total_prim": _money(total_prim),
            "avg_amount": _money(total_amount / sale_count) if sale_count else 0.0,
        }
        for user_id, name, email, sale_count, total_amount, total_prim in rows
    ]


def dashboard(user: User) -> dict:
    base = _scoped(db.session.query(Sale), user)
    active = base.filter(Sale.status == STATUS_ACTIVE)
    totals = _totals(active)
    month_start = today().replace(day=1)

    result = {
        "total_sales": totals["count"],
        "cancelled_sales": base.filter(Sale.status == STATUS_CANCELLED).count(),
        "kapora_sales": active.filter(Sale.sale_type == SALE_TYPE_KAPORA).count(),
        "total_sales_amount": totals["total_amount"],
        "total_prim_amount": totals["total_prim"],
        "this_month_sales": active.filter(Sale.sale_date >= month_start).count(),
        "paid_prims": totals["paid_prims"],
        "unpaid_prims": totals["unpaid_prims"],
        "top_performers": None,
    }
    if sales_service.can_view_all(user):
        satis = active.filter(Sale.sale_type == SALE_TYPE_SATIS)
        result["top_performers"] = {
            "sales_count": _leaders(satis, "count", DASHBOARD_LEADERS),
            "sales_amount": _leaders(satis, "amount", DASHBOARD_LEADERS),
            "prim_amount": _leaders(satis, "prim", DASHBOARD_LEADERS),
        }
    return result


def sales_summary(user: User, start=None, end=None, salesperson=None, period=None) -> dict:
    query = _filtered(user, start, end, salesperson, period)
    active = query.filter(Sale.status == STATUS_ACTIVE)
    cancelled = _totals(query.filter(Sale.status == STATUS_CANCELLED))
    for key in ("paid_prims", "unpaid_prims"):
        cancelled.pop(key)

    by_type = (
        query.with_entities(Sale.sale_type, Sale.status, func.count(Sale.id), func.coalesce(func.sum(Sale.base_prim_price), 0))
        .group_by(Sale.sale_type, Sale.status)
        .order_by(Sale.sale_type.asc(), Sale.status.asc())
        .all()
    )
    by_payment = (
        active.with_entities(Sale.payment_type, func.count(Sale.id), func.coalesce(func.sum(Sale.base_prim_price), 0))
        .group_by(Sale.payment_type)
        .order_by(func.count(Sale.id).desc())
        .all()
    )
    year = extract("year", Sale.sale_date)
    month = extract("month", Sale.sale_date)
    monthly = (
        active.filter(Sale.sale_date.isnot(None))
        .with_entities(year, month, func.count(Sale.id), func.coalesce(func.sum(Sale.base_prim_price), 0), func.coalesce(func.sum(Sale.prim_amount), 0))
        .group_by(year, month)
        .order_by(year.asc(), month.asc())
        .all()
    )

    start_d, end_d = _date_range(start, end)
    return {
        "start_date": to_iso_date(start_d),
        "end_date": to_iso_date(end_d),
        "active_sales": _totals(active),
        "cancelled_sales": cancelled,
        "by_type": [
            {"sale_type": t, "status": s, "count": int(c), "total_amount": _money(a)}
            for t, s, c, a in by_type
        ],
        "payment_type_distribution": [
            {"payment_type": p, "count": int(c), "total_amount": _money(a)}
            for p, c, a in by_payment
        ],
        "monthly_sales": [
            {"year": int(y), "month": int(m), "count": int(c), "total_amount": _money(a), "total_prim": _money(p)}
            for y, m, c, a, p in monthly
        ],
    }


def top_performers(user: User, period=None, limit=10, sort_by: str = "count") -> list[dict]:
    if sort_by not in TOP_PERFORMER_SORTS:
        raise ReportError(f"sort_by must be one of: {', '.join(TOP_PERFORMER_SORTS)}")
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise ReportError("limit must be an integer")
    if not 1 <= limit <= MAX_LIMIT:
        raise ReportError(f"limit must be between 1 and {MAX_LIMIT}")
    query = _filtered(user, period=period).filter(Sale.status == STATUS_ACTIVE)
    return _leaders(query, sort_by, limit)


def salesperson_performance(user: User, start=None, end=None, period=None) -> list[dict]:
    """Per-salesperson active totals with their cancelled counts merged in."""
    query = _filtered(user, start, end, period=period)
    paid = func.coalesce(func.sum(case((Sale.prim_status == PRIM_PAID, 1), else_=0)), 0)
    rows = (
        query.filter(Sale.status == STATUS_ACTIVE)
        .join(User, User.id == Sale.salesperson_id)
        .with_entities(
            User.id, User.name, User.email,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.base_prim_price), 0),
            func.coalesce(func.sum(Sale.prim_amount), 0),
            paid,
        )
        .group_by(User.id, User.name, User.email)
        .order_by(func.count(Sale.id).desc(), User.name.asc())
        .all()
    )
    cancelled_rows = (
        query.filter(Sale.status == STATUS_CANCELLED)
        .with_entities(Sale.salesperson_id, func.count(Sale.id), func.coalesce(func.sum(Sale.base_prim_price), 0))
        .group_by(Sale.salesperson_id)
        .all()
    )
    cancelled = {sp_id: (int(c), _money(a)) for sp_id, c, a in cancelled_rows}

    result = []
    for user_id, name, email, count, amount, prim, paid_count in rows:
        cancelled_count, cancelled_amount = cancelled.get(user_id, (0, 0.0))
        result.append({
            "salesperson": {"id": user_id, "name": name, "email": email},
            "total_sales": int(count),
            "total_amount": _money(amount),
            "total_prim": _money(prim),
            "paid_prims": int(paid_count),
            "unpaid_prims": int(count) - int(paid_count),
            "avg_amount": _money(amount / count) if count else 0.0,
            "cancelled_sales": cancelled_count,
            "cancelled_amount": cancelled_amount,
        })
    return result


def period_comparison(user: User) -> list[dict]:
    periods = (
        db.session.query(PrimPeriod)
        .filter(PrimPeriod.is_active.is_(True))
        .order_by(PrimPeriod.year.desc(), PrimPeriod.month.desc())
        .limit(COMPARED_PERIODS)
        .all()
    )
    result = []
    for period in periods:
        query = _scoped(db.session.query(Sale), user).filter(Sale.prim_period_id == period.id)
        totals = _totals(query.filter(Sale.status == STATUS_ACTIVE))
        result.append({
            "period": {"id": period.id, "name": period.name, "month": period.month, "year": period.year},
            "active_sales": totals["count"],
            "cancelled_sales": query.filter(Sale.status == STATUS_CANCELLED).count(),
            "total_amount": totals["total_amount"],
            "total_prim": totals["total_prim"],
            "paid_prims": totals["paid_prims"],
        })
    return result
