# Overview: Service-layer operations for prims (commissions); encapsulates business logic and database work.

"""
Commission (prim) rules.

- The rate is a percentage; exactly one PrimRate is active at a time.
- The commission base is the lowest positive price among the original list
  price, the discounted list price and the activity sale price.
- Every prim movement is a PrimTransaction in the sale's period; earnings are
  the sum of non-cancelled transactions.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import PrimPeriod, PrimRate, PrimTransaction, Sale, User
from ..models.prims import (
    TRANSACTION_TYPES,
    TX_APPROVED,
    TX_CANCELLED,
    TX_DEDUCTION,
    TX_EARNING,
    TX_TRANSFER_IN,
    TX_TRANSFER_OUT,
)
from ..models.sales import PRIM_PAID, PRIM_UNPAID
from salesdesk.time_utils import turkish_period_name
from .activity_service import _paginate


class PrimError(ValueError):
    pass


class PrimNotFoundError(LookupError):
    pass


def _money(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def discounted_price(original_list_price, discount_rate) -> float:
    """Original list price after discount; 0 when there is no discount."""
    rate = _money(discount_rate)
    if rate <= 0:
        return 0.0
    return round(_money(original_list_price) * (1 - rate / 100), 2)


def calculate_base_price(original_list_price, discount_rate, activity_sale_price) -> float:
    """Lowest positive candidate price; 0 when none is positive."""
    discounted = discounted_price(original_list_price, discount_rate)
    candidates = [v for v in (_money(original_list_price), discounted, _money(activity_sale_price)) if v > 0]
    return min(candidates) if candidates else 0.0


def calculate_prim(base_price: float, rate: float) -> float:
    return round(_money(base_price) * _money(rate) / 100, 2)


def get_active_rate() -> PrimRate | None:
    return (
        db.session.query(PrimRate)
        .filter(PrimRate.is_active.is_(True))
        .order_by(PrimRate.created_at.desc(), PrimRate.id.desc())
        .first()
    )


def set_rate(rate, description: str | None, user_id: int | None) -> PrimRate:
    """Replace the active rate. Previous rates are kept inactive for history."""
    try:
        value = float(rate)
    except (TypeError, ValueError):
        raise PrimError("rate must be a number")
    if value < 0 or value > 100:
        raise PrimError("rate must be between 0 and 100")

    db.session.query(PrimRate).filter(PrimRate.is_active.is_(True)).update(
        {PrimRate.is_active: False}, synchronize_session=False
    )
    new_rate = PrimRate(rate=value, description=description, is_active=True, created_by_user_id=user_id)
    db.session.add(new_rate)
    db.session.commit()
    return new_rate


def list_periods() -> list[PrimPeriod]:
    return db.session.query(PrimPeriod).order_by(PrimPeriod.year.desc(), PrimPeriod.month.desc()).all()


def get_period(period_id) -> PrimPeriod:
    period = db.session.get(PrimPeriod, period_id) if period_id is not None else None
    if period is None:
        raise PrimNotFoundError("Prim period not found")
    return period


def create_period(month, year, name: str | None, user_id: int | None) -> PrimPeriod:
    try:
        month = int(month)
        year = int(year)
    except (TypeError, ValueError):
        raise PrimError("month and year must be integers")
    if not 1 <= month <= 12:
        raise PrimError("month must be between 1 and 12")
    if not 2020 <= year <= 2050:
        raise PrimError("year must be between 2020 and 2050")

    name = (name or "").strip() or turkish_period_name(month, year)
    if db.session.query(PrimPeriod).filter_by(month=month, year=year).first():
        raise PrimError("A period for this month already exists")
    if db.session.query(PrimPeriod).filter_by(name=name).first():
        raise PrimError("A period with this name already exists")

    period = PrimPeriod(name=name, month=month, year=year, is_active=True, created_by_user_id=user_id)
    db.session.add(period)
    db.session.commit()
    return period


def get_or_create_period(on_date: date, user_id: int | None = None) -> PrimPeriod:
    """Period of the month containing on_date. Caller commits."""
    period = db.session.query(PrimPeriod).filter_by(month=on_date.month, year=on_date.year).first()
    if period:
        return period
    period = PrimPeriod(
        name=turkish_period_name(on_date.month, on_date.year),
        month=on_date.month,
        year=on_date.year,
        is_active=True,
        created_by_user_id=user_id,
    )
    db.session.add(period)
    db.session.flush()
    return period


def add_transaction(
    salesperson_id: int,
    period_id: int,
    transaction_type: str,
    amount: float,
    description: str,
    sale_id: int | None = None,
    user_id: int | None = None,
) -> PrimTransaction:
    """Append a ledger line. Caller commits."""
    if transaction_type not in TRANSACTION_TYPES:
        raise PrimError(f"Unknown transaction type: {transaction_type}")
    tx = PrimTransaction(
        salesperson_id=salesperson_id,
        sale_id=sale_id,
        prim_period_id=period_id,
        transaction_type=transaction_type,
        amount=round(float(amount), 2),
        description=description[:255],
        status=TX_APPROVED,
        created_by_user_id=user_id,
    )
    db.session.add(tx)
    return tx


def record_earning(sale: Sale, user_id: int | None = None, description: str | None = None) -> PrimTransaction | None:
    if sale.is_kapora or not sale.prim_period_id or not sale.prim_amount:
        return None
    return add_transaction(
        salesperson_id=sale.salesperson_id,
        period_id=sale.prim_period_id,
        transaction_type=TX_EARNING,
        amount=sale.prim_amount,
        description=description or f"Satış primi - {sale.contract_no}",
        sale_id=sale.id,
        user_id=user_id,
    )


def record_deduction(sale: Sale, user_id: int | None = None, description: str | None = None) -> PrimTransaction | None:
    if sale.is_kapora or not sale.prim_period_id or not sale.prim_amount:
        return None
    return add_transaction(
        salesperson_id=sale.salesperson_id,
        period_id=sale.prim_period_id,
        transaction_type=TX_DEDUCTION,
        amount=-abs(sale.prim_amount),
        description=description or f"Satış iptali - {sale.contract_no}",
        sale_id=sale.id,
        user_id=user_id,
    )


def record_transfer(sale: Sale, from_user_id: int, to_user_id: int, user_id: int | None = None) -> None:
    """Move a sale's prim between salespeople as an out/in pair."""
    if sale.is_kapora or not sale.prim_period_id or not sale.prim_amount:
        return
    add_transaction(
        salesperson_id=from_user_id,
        period_id=sale.prim_period_id,
        transaction_type=TX_TRANSFER_OUT,
        amount=-abs(sale.prim_amount),
        description=f"Satış transferi (giden) - {sale.contract_no}",
        sale_id=sale.id,
        user_id=user_id,
    )
    add_transaction(
        salesperson_id=to_user_id,
        period_id=sale.prim_period_id,
        transaction_type=TX_TRANSFER_IN,
        amount=abs(sale.prim_amount),
        description=f"Satış transferi (gelen) - {sale.contract_no}",
        sale_id=sale.id,
        user_id=user_id,
    )


def reset_sale_ledger(sale: Sale) -> int:
    """
    Mark every live ledger line of the sale cancelled, whatever its type.

    Earnings, deductions and transfer pairs go together so that the sale nets
    to zero for every salesperson and period. Caller commits.
    """
    lines = (
        db.session.query(PrimTransaction)
        .filter(
            PrimTransaction.sale_id == sale.id,
            PrimTransaction.status != TX_CANCELLED,
        )
        .all()
    )
    for tx in lines:
        tx.status = TX_CANCELLED
    return len(lines)


def rebook_sale(
    sale: Sale, user_id: int | None, description: str, include_paid: bool = False
) -> PrimTransaction | None:
    """
    Replace the sale's ledger with a single earning for its current owner,
    period and prim amount. Cancelled sales end with no live line, and so do
    paid ones unless include_paid is set. Caller commits.
    """
    reset_sale_ledger(sale)
    db.session.flush()
    if sale.is_cancelled or (sale.prim_status != PRIM_UNPAID and not include_paid):
        return None
    return record_earning(sale, user_id=user_id, description=description)


def sale_ledger_total(sale_id: int, salesperson_id: int | None = None) -> float:
    """Net of the sale's live ledger lines, optionally for one salesperson."""
    query = db.session.query(func.coalesce(func.sum(PrimTransaction.amount), 0)).filter(
        PrimTransaction.sale_id == sale_id,
        PrimTransaction.status != TX_CANCELLED,
    )
    if salesperson_id is not None:
        query = query.filter(PrimTransaction.salesperson_id == salesperson_id)
    return round(float(query.scalar()), 2)


def change_sale_period(sale_id: int, period_id, user_id: int | None) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise PrimNotFoundError("Sale not found")
    if sale.prim_status == PRIM_PAID:
        raise PrimError("The prim of this sale is already paid; its period cannot change")
    if sale.is_kapora:
        raise PrimError("Kapora sales have no prim period")
    period = get_period(period_id)
    if sale.prim_period_id == period.id:
        raise PrimError("Sale is already in this period")

    sale.prim_period_id = period.id
    rebook_sale(sale, user_id, f"Dönem değişikliği - {sale.contract_no}")
    db.session.commit()
    return sale


def list_transactions(
    page: int = 1,
    limit: int = 20,
    salesperson_id: int | None = None,
    period_id: int | None = None,
    transaction_type: str | None = None,
) -> dict:
    query = db.session.query(PrimTransaction)
    if salesperson_id:
        query = query.filter(PrimTransaction.salesperson_id == salesperson_id)
    if period_id:
        query = query.filter(PrimTransaction.prim_period_id == period_id)
    if transaction_type:
        if transaction_type not in TRANSACTION_TYPES:
            raise PrimError(f"type must be one of: {', '.join(TRANSACTION_TYPES)}")
        query = query.filter(PrimTransaction.transaction_type == transaction_type)
    query = query.order_by(PrimTransaction.created_at.desc(), PrimTransaction.id.desc())
    return _paginate(query, page, limit)


def earnings(salesperson_id: int | None = None, period_id: int | None = None) -> list[dict]:
    """Totals of non-cancelled transactions per (salesperson, period)."""
    query = (
        db.session.query(
            PrimTransaction.salesperson_id,
            PrimTransaction.prim_period_id,
            PrimTransaction.transaction_type,
            func.count(PrimTransaction.id),
            func.coalesce(func.sum(PrimTransaction.amount), 0),
        )
        .filter(PrimTransaction.status != TX_CANCELLED)
    )
    if salesperson_id:
        query = query.filter(PrimTransaction.salesperson_id == salesperson_id)
    if period_id:
        query = query.filter(PrimTransaction.prim_period_id == period_id)
    rows = query.group_by(
        PrimTransaction.salesperson_id,
        PrimTransaction.prim_period_id,
        PrimTransaction.transaction_type,
    ).all()

    grouped = defaultdict(lambda: {"total": 0.0, "counts": {t: 0 for t in TRANSACTION_TYPES}})
    for sp_id, p_id, tx_type, count, total in rows:
        entry = grouped[(sp_id, p_id)]
        entry["total"] += float(total)
        entry["counts"][tx_type] = count

    users = {u.id: u for u in db.session.query(User).filter(User.id.in_({k[0] for k in grouped})).all()} if grouped else {}
    periods = {p.id: p for p in db.session.query(PrimPeriod).filter(PrimPeriod.id.in_({k[1] for k in grouped})).all()} if grouped else {}

    result = []
    for (sp_id, p_id), entry in grouped.items():
        period = periods.get(p_id)
        user = users.get(sp_id)
        result.append({
            "salesperson": user.to_summary() if user else {"id": sp_id},
            "prim_period": {"id": period.id, "name": period.name, "month": period.month, "year": period.year} if period else None,
            "total_earnings": round(entry["total"], 2),
            "transaction_counts": entry["counts"],
        })
    result.sort(key=lambda r: (
        -(r["prim_period"]["year"] if r["prim_period"] else 0),
        -(r["prim_period"]["month"] if r["prim_period"] else 0),
        r["salesperson"].get("name") or "",
    ))
    return result
