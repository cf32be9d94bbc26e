# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sale lifecycle: create, edit, cancel/restore, transfer, kapora conversion,
price modification and bulk prim status changes.

Ownership rule: a sale may be changed by its salesperson or by an admin.
Visibility rule: without canViewAllSales a user only sees their own sales.

Every change to a sale's prim goes through prim_service so the prim ledger
(PrimTransaction) follows the sale.
"""

from __future__ import annotations

import re
from datetime import timedelta
from io import BytesIO

from openpyxl import Workbook
from sqlalchemy import and_, or_

from ..extensions import db
from ..models import PaymentType, Sale, SaleType, User
from ..models.sales import (
    BUILTIN_SALE_TYPES,
    PRIM_PAID,
    PRIM_STATUSES,
    PRIM_UNPAID,
    SALE_STATUSES,
    SALE_TYPE_KAPORA,
    SALE_TYPE_SATIS,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
)
from ..permissions import ADMIN_ROLE
from salesdesk.time_utils import month_bounds, parse_ymd, to_iso_date, to_utc_z, today, utcnow
from . import activity_service, permission_service, prim_service
from .activity_service import MAX_PAGE_SIZE


class SaleError(ValueError):
    pass


class SaleNotFoundError(LookupError):
    pass


class SalePermissionError(PermissionError):
    pass


PHONE_RE = re.compile(r"^[\d\s\-\+\(\)]+$")
DAY_MONTH_RE = re.compile(r"^(0[1-9]|[12]\d|3[01])/(0[1-9]|1[0-2])$")

REQUIRED_TEXT_FIELDS = {
    "customer_name": "Customer name is required",
    "block_no": "Block no is required",
    "apartment_no": "Apartment no is required",
    "period_no": "Period no is required",
    "contract_no": "Contract no is required",
}
PRICE_FIELDS = ("list_price", "original_list_price", "discount_rate", "activity_sale_price")

SORTABLE_FIELDS = {
    "created_at": Sale.created_at,
    "sale_date": Sale.sale_date,
    "kapora_date": Sale.kapora_date,
    "customer_name": Sale.customer_name,
    "contract_no": Sale.contract_no,
    "list_price": Sale.list_price,
    "activity_sale_price": Sale.activity_sale_price,
    "prim_amount": Sale.prim_amount,
}

UPCOMING_LIMIT = 100
BULK_PREVIEW_LIMIT = 50

EXPORT_COLUMNS = (
    ("Sözleşme No", "contract_no"),
    ("Müşteri Adı", "customer_name"),
    ("Telefon", "phone"),
    ("Blok", "block_no"),
    ("Daire", "apartment_no"),
    ("Dönem No", "period_no"),
    ("Satış Türü", "sale_type"),
    ("Satış Tarihi", "sale_date"),
    ("Kapora Tarihi", "kapora_date"),
    ("Giriş", "entry_date"),
    ("Çıkış", "exit_date"),
    ("Liste Fiyatı", "list_price"),
    ("Orijinal Liste Fiyatı", "original_list_price"),
    ("İndirim Oranı", "discount_rate"),
    ("İndirimli Liste Fiyatı", "discounted_list_price"),
    ("Aktivite Satış Fiyatı", "activity_sale_price"),
    ("Ödeme Türü", "payment_type"),
    ("Prim Oranı", "prim_rate"),
    ("Prim Tutarı", "prim_amount"),
    ("Prim Durumu", "prim_status"),
    ("Prim Dönemi", "prim_period"),
    ("Temsilci", "salesperson"),
    ("Durum", "status"),
)


# Validation helpers

def _text(data: dict, field: str) -> str:
    return str(data.get(field) or "").strip()


def _number(value, field: str) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise SaleError(f"{field} must be numeric")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise SaleError(f"{field} must be numeric")
    if number < 0:
        raise SaleError(f"{field} cannot be negative")
    return number


def _date(value, field: str):
    try:
        return parse_ymd(value, field)
    except ValueError as e:
        raise SaleError(str(e))


def _normalize_type_name(value: str) -> str:
    return re.sub(r"[^\w]", "", value.lower())


def validate_sale_type(value) -> str:
    """Built-in type, or the name of an active custom SaleType."""
    value = str(value or "").strip()
    if not value:
        return SALE_TYPE_SATIS
    if value in BUILTIN_SALE_TYPES:
        return value
    wanted = _normalize_type_name(value)
    for sale_type in db.session.query(SaleType).filter(SaleType.is_active.is_(True)).all():
        if _normalize_type_name(sale_type.name) == wanted:
            return sale_type.name
    raise SaleError(f"Invalid sale type: {value}")


def validate_payment_type(value) -> str | None:
    value = str(value or "").strip()
    if not value:
        return None
    match = (
        db.session.query(PaymentType)
        .filter(PaymentType.name == value, PaymentType.is_active.is_(True))
        .first()
    )
    if not match:
        raise SaleError(f"Invalid payment type: {value}")
    return value


def _validate_phone(value) -> str | None:
    value = str(value or "").strip()
    if value and not PHONE_RE.match(value):
        raise SaleError("Phone number may only contain digits, spaces and + - ( )")
    return value or None


def _validate_day_month(value, field: str) -> str | None:
    value = str(value or "").strip()
    if not value:
        return None
    if not DAY_MONTH_RE.match(value):
        raise SaleError(f"{field} must be in GG/AA format")
    return value


def _contract_taken(contract_no: str, exclude_sale_id: int | None = None) -> bool:
    query = db.session.query(Sale.id).filter(Sale.contract_no == contract_no)
    if exclude_sale_id is not None:
        query = query.filter(Sale.id != exclude_sale_id)
    return query.first() is not None


# Access helpers

def can_view_all(user: User) -> bool:
    return permission_service.user_has_permission(user, "canViewAllSales")


def can_edit_paid(user: User) -> bool:
    return permission_service.user_has_permission(user, "canOverrideValidations")


def _get(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError("Sale not found")
    return sale


def _require_owner(sale: Sale, user: User) -> None:
    if not user.is_admin and sale.salesperson_id != user.id:
        raise SalePermissionError("You can only change your own sales")


def get_sale(sale_id: int, user: User) -> Sale:
    sale = _get(sale_id)
    if sale.salesperson_id != user.id and not can_view_all(user):
        raise SalePermissionError("You can only view your own sales")
    return sale


# Prim helpers

def apply_prim(sale: Sale, rate: float) -> None:
    """Set discounted price, base price and prim amount from the sale's prices."""
    sale.discounted_list_price = prim_service.discounted_price(sale.original_list_price, sale.discount_rate)
    sale.base_prim_price = prim_service.calculate_base_price(
        sale.original_list_price, sale.discount_rate, sale.activity_sale_price
    )
    sale.prim_rate = rate
    sale.prim_amount = prim_service.calculate_prim(sale.base_prim_price, rate)


def _clear_prim(sale: Sale) -> None:
    sale.discounted_list_price = prim_service.discounted_price(sale.original_list_price, sale.discount_rate)
    sale.prim_rate = None
    sale.base_prim_price = 0
    sale.prim_amount = 0
    sale.prim_period_id = None


# Operations

def create_sale(data: dict, user: User) -> Sale:
    for field, message in REQUIRED_TEXT_FIELDS.items():
        if not _text(data, field):
            raise SaleError(message)

    contract_no = _text(data, "contract_no")
    if _contract_taken(contract_no):
        raise SaleError("This contract number is already in use")

    sale_type = validate_sale_type(data.get("sale_type"))
    is_kapora = sale_type == SALE_TYPE_KAPORA

    sale_date = _date(data.get("sale_date"), "sale_date")
    kapora_date = _date(data.get("kapora_date"), "kapora_date")
    if not is_kapora and not sale_date:
        raise SaleError("sale_date is required for sales")
    if is_kapora and not kapora_date:
        raise SaleError("kapora_date is required for kapora")

    if data.get("list_price") in (None, ""):
        raise SaleError("list_price is required")
    list_price = _number(data.get("list_price"), "list_price")
    original_list_price = _number(data.get("original_list_price"), "original_list_price") or list_price
    discount_rate = _number(data.get("discount_rate"), "discount_rate")
    if discount_rate > 100:
        raise SaleError("discount_rate must be between 0 and 100")

    sale = Sale(
        customer_name=_text(data, "customer_name"),
        phone=_validate_phone(data.get("phone")),
        block_no=_text(data, "block_no"),
        apartment_no=_text(data, "apartment_no"),
        period_no=_text(data, "period_no"),
        contract_no=contract_no,
        sale_type=sale_type,
        sale_date=sale_date,
        kapora_date=kapora_date,
        entry_date=_validate_day_month(data.get("entry_date"), "entry_date"),
        exit_date=_validate_day_month(data.get("exit_date"), "exit_date"),
        list_price=list_price,
        original_list_price=original_list_price,
        discount_rate=discount_rate,
        activity_sale_price=_number(data.get("activity_sale_price"), "activity_sale_price"),
        payment_type=validate_payment_type(data.get("payment_type")),
        prim_status=PRIM_UNPAID,
        salesperson_id=user.id,
        created_by_user_id=user.id,
        status=STATUS_ACTIVE,
        transfer_history=[],
        modification_history=[],
    )

    if is_kapora:
        _clear_prim(sale)
    else:
        rate = prim_service.get_active_rate()
        if rate is None:
            raise SaleError("No active prim rate is configured")
        apply_prim(sale, rate.rate)
        sale.prim_period_id = prim_service.get_or_create_period(sale_date, user.id).id

    db.session.add(sale)
    db.session.flush()
    prim_service.record_earning(sale, user_id=user.id)
    db.session.commit()
    return sale


def _sales_query(user: User, filters: dict):
    """Base query with list filters. Without canViewAllSales only own sales."""
    query = db.session.query(Sale)

    if can_view_all(user):
        salesperson = filters.get("salesperson")
        if salesperson:
            try:
                query = query.filter(Sale.salesperson_id == int(salesperson))
            except (TypeError, ValueError):
                raise SaleError("salesperson must be a user id")
    else:
        query = query.filter(Sale.salesperson_id == user.id)

    search = (filters.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Sale.customer_name.ilike(like),
            Sale.contract_no.ilike(like),
            Sale.block_no.ilike(like),
            Sale.apartment_no.ilike(like),
        ))

    if filters.get("sale_type"):
        query = query.filter(Sale.sale_type == filters["sale_type"])
    if filters.get("prim_status"):
        if filters["prim_status"] not in PRIM_STATUSES:
            raise SaleError(f"prim_status must be one of: {', '.join(PRIM_STATUSES)}")
        query = query.filter(Sale.prim_status == filters["prim_status"])
    if filters.get("status"):
        if filters["status"] not in SALE_STATUSES:
            raise SaleError(f"status must be one of: {', '.join(SALE_STATUSES)}")
        query = query.filter(Sale.status == filters["status"])
    if filters.get("prim_period"):
        try:
            query = query.filter(Sale.prim_period_id == int(filters["prim_period"]))
        except (TypeError, ValueError):
            raise SaleError("prim_period must be a period id")

    start = _date(filters.get("start_date"), "start_date")
    end = _date(filters.get("end_date"), "end_date")
    if start and end:
        query = query.filter(or_(
            and_(Sale.sale_date >= start, Sale.sale_date <= end),
            and_(Sale.kapora_date >= start, Sale.kapora_date <= end),
        ))
    elif start:
        query = query.filter(or_(Sale.sale_date >= start, Sale.kapora_date >= start))
    elif end:
        query = query.filter(or_(Sale.sale_date <= end, Sale.kapora_date <= end))

    sort_by = filters.get("sort_by") or "created_at"
    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise SaleError(f"sort_by must be one of: {', '.join(SORTABLE_FIELDS)}")
    if (filters.get("sort_order") or "desc").lower() == "asc":
        query = query.order_by(column.asc(), Sale.id.asc())
    else:
        query = query.order_by(column.desc(), Sale.id.desc())
    return query


def list_sales(user: User, filters: dict, page: int = 1, limit: int = 20) -> dict:
    page = max(1, page or 1)
    limit = min(MAX_PAGE_SIZE, max(1, limit or 20))
    query = _sales_query(user, filters)
    total = query.count()
    sales = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "sales": [s.to_dict() for s in sales],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


def update_sale(sale_id: int, data: dict, user: User) -> Sale:
    """
    Edit a sale's fields.

    Price or type changes recalculate the prim and rebook its earning. Once
    the prim is paid such changes need canOverrideValidations.
    """
    sale = _get(sale_id)
    _require_owner(sale, user)

    for field, message in REQUIRED_TEXT_FIELDS.items():
        if field in data:
            if not _text(data, field):
                raise SaleError(message)
            if field == "contract_no" and _contract_taken(_text(data, field), exclude_sale_id=sale.id):
                raise SaleError("This contract number is already in use")
            setattr(sale, field, _text(data, field))

    if "phone" in data:
        sale.phone = _validate_phone(data.get("phone"))
    if "entry_date" in data:
        sale.entry_date = _validate_day_month(data.get("entry_date"), "entry_date")
    if "exit_date" in data:
        sale.exit_date = _validate_day_month(data.get("exit_date"), "exit_date")
    if "payment_type" in data:
        sale.payment_type = validate_payment_type(data.get("payment_type"))

    recalc = False
    if "sale_type" in data:
        new_type = validate_sale_type(data.get("sale_type"))
        recalc = recalc or new_type != sale.sale_type
        sale.sale_type = new_type

    if "sale_date" in data and data.get("sale_date"):
        new_date = _date(data.get("sale_date"), "sale_date")
        recalc = recalc or new_date != sale.sale_date
        sale.sale_date = new_date
    if "kapora_date" in data and data.get("kapora_date"):
        sale.kapora_date = _date(data.get("kapora_date"), "kapora_date")

    for field in PRICE_FIELDS:
        if field in data:
            value = _number(data.get(field), field)
            if value != (getattr(sale, field) or 0):
                recalc = True
                setattr(sale, field, value)
    if sale.discount_rate > 100:
        raise SaleError("discount_rate must be between 0 and 100")

    if recalc:
        if sale.prim_status == PRIM_PAID and not can_edit_paid(user):
            db.session.rollback()
            raise SaleError("Prices cannot change after the prim is paid")
        if sale.is_kapora:
            if not sale.kapora_date:
                db.session.rollback()
                raise SaleError("kapora_date is required for kapora")
            prim_service.reset_sale_ledger(sale)
            _clear_prim(sale)
        else:
            if not sale.sale_date:
                db.session.rollback()
                raise SaleError("sale_date is required for sales")
            rate = prim_service.get_active_rate()
            if rate is None:
                db.session.rollback()
                raise SaleError("No active prim rate is configured")
            apply_prim(sale, rate.rate)
            sale.prim_period_id = prim_service.get_or_create_period(sale.sale_date, user.id).id
            prim_service.rebook_sale(
                sale, user.id, f"Satış güncellemesi - {sale.contract_no}", include_paid=True
            )

    db.session.commit()
    return sale


def cancel_sale(sale_id: int, user: User) -> Sale:
    sale = _get(sale_id)
    _require_owner(sale, user)
    if sale.is_cancelled:
        raise SaleError("This sale is already cancelled")

    sale.status = STATUS_CANCELLED
    sale.cancelled_at = utcnow()
    sale.cancelled_by_user_id = user.id
    if sale.prim_status == PRIM_UNPAID:
        prim_service.record_deduction(sale, user_id=user.id)

    activity_service.log_activity(
        user_id=user.id,
        action="sale_cancelled",
        description=f"Sale {sale.contract_no} cancelled",
        related_model="Sale",
        related_id=sale.id,
        commit=False,
    )
    db.session.commit()
    return sale


def restore_sale(sale_id: int, user: User) -> Sale:
    sale = _get(sale_id)
    _require_owner(sale, user)
    if not sale.is_cancelled:
        raise SaleError("This sale is already active")

    sale.status = STATUS_ACTIVE
    sale.cancelled_at = None
    sale.cancelled_by_user_id = None
    if sale.prim_status == PRIM_UNPAID:
        prim_service.record_earning(sale, user_id=user.id, description=f"Satış geri alındı - {sale.contract_no}")

    db.session.commit()
    return sale


def transfer_sale(sale_id: int, new_salesperson_id, reason: str | None, user: User) -> tuple[Sale, User, User]:
    sale = _get(sale_id)
    try:
        new_salesperson_id = int(new_salesperson_id)
    except (TypeError, ValueError):
        raise SaleError("new_salesperson_id is required")

    target = db.session.get(User, new_salesperson_id)
    if (
        target is None
        or not target.is_active
        or not target.is_approved
        or (target.role and target.role.name == ADMIN_ROLE)
    ):
        raise SaleNotFoundError("No active salesperson found with this id")
    if sale.salesperson_id == target.id:
        raise SaleError("The sale already belongs to this salesperson")

    previous = sale.salesperson
    history = list(sale.transfer_history or [])
    history.append({
        "from_salesperson_id": previous.id if previous else None,
        "from_salesperson_name": previous.name if previous else None,
        "to_salesperson_id": target.id,
        "to_salesperson_name": target.name,
        "transferred_by_user_id": user.id,
        "transferred_at": to_utc_z(utcnow()),
        "reason": (reason or "").strip() or "Belirtilmedi",
    })
    sale.transfer_history = history

    if not sale.is_cancelled and sale.prim_status == PRIM_UNPAID:
        prim_service.record_transfer(sale, from_user_id=sale.salesperson_id, to_user_id=target.id, user_id=user.id)
    sale.salesperson_id = target.id

    activity_service.log_activity(
        user_id=user.id,
        action="sale_transferred",
        description=f"Sale {sale.contract_no} transferred to {target.name}",
        details={"from": previous.id if previous else None, "to": target.id},
        related_model="Sale",
        related_id=sale.id,
        severity="medium",
        commit=False,
    )
    db.session.commit()
    db.session.refresh(sale)
    return sale, previous, target


def set_prim_status(sale_id: int, prim_status, user: User) -> Sale:
    if prim_status not in PRIM_STATUSES:
        raise SaleError(f"prim_status must be one of: {', '.join(PRIM_STATUSES)}")
    sale = _get(sale_id)
    sale.prim_status = prim_status
    sale.prim_status_updated_at = utcnow()
    sale.prim_status_updated_by_user_id = user.id
    db.session.commit()
    return sale


def delete_sale(sale_id: int, user: User) -> None:
    """Hard delete; the sale's prim transactions go with it."""
    sale = _get(sale_id)
    for tx in list(sale.prim_transactions):
        db.session.delete(tx)
    activity_service.log_activity(
        user_id=user.id,
        action="sale_deleted",
        description=f"Sale {sale.contract_no} deleted",
        details={"customer_name": sale.customer_name},
        related_model="Sale",
        related_id=sale.id,
        severity="high",
        commit=False,
    )
    db.session.delete(sale)
    db.session.commit()


def set_notes(sale_id: int, notes, user: User) -> Sale:
    sale = _get(sale_id)
    _require_owner(sale, user)
    notes = str(notes or "").strip()
    if not notes:
        raise SaleError("notes cannot be empty")
    if len(notes) > 1000:
        raise SaleError("notes must be at most 1000 characters")
    sale.notes = notes
    sale.notes_updated_at = utcnow()
    sale.notes_updated_by_user_id = user.id
    db.session.commit()
    return sale


def clear_notes(sale_id: int, user: User) -> Sale:
    sale = _get(sale_id)
    _require_owner(sale, user)
    sale.notes = None
    sale.notes_updated_at = utcnow()
    sale.notes_updated_by_user_id = user.id
    db.session.commit()
    return sale


def convert_to_sale(sale_id: int, sale_date, payment_type, user: User) -> Sale:
    """Turn a kapora into a satis sale with prim, period and earning."""
    if not sale_date:
        raise SaleError("sale_date must be a valid date (YYYY-MM-DD)")
    parsed = _date(sale_date, "sale_date")
    sale = _get(sale_id)
    _require_owner(sale, user)
    if not sale.is_kapora:
        raise SaleError("Only kapora records can be converted")

    rate = prim_service.get_active_rate()
    if rate is None:
        raise SaleError("No active prim rate is configured")

    sale.sale_type = SALE_TYPE_SATIS
    sale.sale_date = parsed
    if payment_type:
        sale.payment_type = validate_payment_type(payment_type)
    sale.prim_status = PRIM_UNPAID
    apply_prim(sale, rate.rate)
    sale.prim_period_id = prim_service.get_or_create_period(parsed, user.id).id
    prim_service.rebook_sale(sale, user.id, f"Kapora satışa çevrildi - {sale.contract_no}")
    db.session.commit()
    return sale


MODIFICATION_TYPES = ("price_increase", "price_decrease", "other")


def modify_sale(sale_id: int, data: dict, user: User) -> Sale:
    """
    Record a price modification.

    The new list price replaces both list and original list price; the prim
    is recalculated at the active rate and its earning rebooked.
    """
    modification_type = data.get("modification_type")
    if modification_type not in MODIFICATION_TYPES:
        raise SaleError(f"modification_type must be one of: {', '.join(MODIFICATION_TYPES)}")
    if data.get("new_list_price") in (None, ""):
        raise SaleError("new_list_price is required")
    new_list_price = _number(data.get("new_list_price"), "new_list_price")
    new_activity_price = data.get("new_activity_sale_price")
    new_activity_price = _number(new_activity_price, "new_activity_sale_price") if new_activity_price not in (None, "") else None
    reason = str(data.get("reason") or data.get("modification_reason") or "").strip()
    if not reason:
        raise SaleError("reason is required")

    sale = _get(sale_id)
    _require_owner(sale, user)
    if sale.prim_status == PRIM_PAID and not sale.is_kapora and not can_edit_paid(user):
        raise SaleError("Prices cannot change after the prim is paid")

    history = list(sale.modification_history or [])
    history.append({
        "modification_type": modification_type,
        "old_list_price": sale.list_price,
        "new_list_price": new_list_price,
        "old_activity_sale_price": sale.activity_sale_price,
        "new_activity_sale_price": new_activity_price if new_activity_price is not None else sale.activity_sale_price,
        "reason": reason,
        "modified_by_user_id": user.id,
        "modified_at": to_utc_z(utcnow()),
    })
    sale.modification_history = history

    sale.list_price = new_list_price
    sale.original_list_price = new_list_price
    if new_activity_price is not None:
        sale.activity_sale_price = new_activity_price

    if sale.is_kapora:
        _clear_prim(sale)
    else:
        rate = prim_service.get_active_rate()
        if rate is None:
            db.session.rollback()
            raise SaleError("No active prim rate is configured")
        apply_prim(sale, rate.rate)
        prim_service.rebook_sale(sale, user.id, f"Satış modifikasyonu - {sale.contract_no}", include_paid=True)

    db.session.commit()
    return sale


def upcoming_entries(user: User, days) -> dict:
    """Kapora records whose kapora date falls within the next `days` days."""
    try:
        days = int(days)
    except (TypeError, ValueError):
        raise SaleError("days must be between 1 and 365")
    if days < 1 or days > 365:
        raise SaleError("days must be between 1 and 365")

    start = today()
    end = start + timedelta(days=days)
    query = db.session.query(Sale).filter(
        Sale.sale_type == SALE_TYPE_KAPORA,
        Sale.kapora_date >= start,
        Sale.kapora_date <= end,
    )
    if not can_view_all(user):
        query = query.filter(Sale.salesperson_id == user.id)
    sales = query.order_by(Sale.kapora_date.asc(), Sale.id.asc()).limit(UPCOMING_LIMIT).all()

    grouped: dict[str, list] = {}
    for sale in sales:
        grouped.setdefault(to_iso_date(sale.kapora_date), []).append(sale.to_dict())

    return {
        "entries": [s.to_dict() for s in sales],
        "grouped_entries": grouped,
        "total_count": len(sales),
        "date_range": {"start": to_iso_date(start), "end": to_iso_date(end), "days": days},
    }


def _bulk_query(prim_status, filters):
    if prim_status not in PRIM_STATUSES:
        raise SaleError(f"prim_status must be one of: {', '.join(PRIM_STATUSES)}")
    filters = filters or {}
    if not isinstance(filters, dict):
        raise SaleError("filters must be an object")

    query = db.session.query(Sale).filter(Sale.sale_type == SALE_TYPE_SATIS)

    if filters.get("period"):
        try:
            query = query.filter(Sale.prim_period_id == int(filters["period"]))
        except (TypeError, ValueError):
            raise SaleError("period must be a period id")

    if filters.get("salesperson"):
        name = str(filters["salesperson"]).strip()
        salesperson = (
            db.session.query(User)
            .filter(User.name == name, User.is_active.is_(True), User.is_approved.is_(True))
            .first()
        )
        if salesperson is None:
            raise SaleNotFoundError(f'No salesperson named "{name}" was found')
        query = query.filter(Sale.salesperson_id == salesperson.id)

    if filters.get("start_date") and filters.get("end_date"):
        start = _date(filters["start_date"], "start_date")
        end = _date(filters["end_date"], "end_date")
        query = query.filter(Sale.sale_date >= start, Sale.sale_date <= end)
    elif filters.get("month") and filters.get("year"):
        try:
            start, end = month_bounds(int(filters["year"]), int(filters["month"]))
        except (TypeError, ValueError):
            raise SaleError("month and year must form a valid month")
        query = query.filter(Sale.sale_date >= start, Sale.sale_date <= end)

    return query


def preview_bulk_prim_status(prim_status, filters) -> dict:
    query = _bulk_query(prim_status, filters)
    total = query.count()
    sales = query.order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(BULK_PREVIEW_LIMIT).all()
    return {
        "count": total,
        "new_status": prim_status,
        "sales": [
            {
                "id": s.id,
                "contract_no": s.contract_no,
                "customer_name": s.customer_name,
                "salesperson": s.salesperson.name if s.salesperson else None,
                "sale_date": to_iso_date(s.sale_date),
                "prim_amount": s.prim_amount,
                "prim_status": s.prim_status,
            }
            for s in sales
        ],
        "total_prim_amount": round(sum(s.prim_amount or 0 for s in query.all()), 2),
    }


def bulk_update_prim_status(prim_status, filters, user: User) -> int:
    sales = _bulk_query(prim_status, filters).all()
    if not sales:
        raise SaleNotFoundError("No sales match the given filters")

    now = utcnow()
    for sale in sales:
        sale.prim_status = prim_status
        sale.prim_status_updated_at = now
        sale.prim_status_updated_by_user_id = user.id

    activity_service.log_activity(
        user_id=user.id,
        action="bulk_prim_status_update",
        description=f'Prim status of {len(sales)} sales set to "{prim_status}"',
        details={"filters": filters or {}, "prim_status": prim_status, "affected_count": len(sales)},
        severity="medium",
        commit=False,
    )
    db.session.commit()
    return len(sales)


def _export_value(sale: Sale, field: str):
    if field == "salesperson":
        return sale.salesperson.name if sale.salesperson else None
    if field == "prim_period":
        return sale.prim_period.name if sale.prim_period else None
    if field in ("sale_date", "kapora_date"):
        return to_iso_date(getattr(sale, field))
    return getattr(sale, field)


def export_sales(user: User, filters: dict) -> BytesIO:
    """The filtered sale list as an xlsx workbook."""
    sales = _sales_query(user, filters).all()

    wb = Workbook()
    ws = wb.active
    ws.title = "Satışlar"
    ws.append([header for header, _ in EXPORT_COLUMNS])
    for sale in sales:
        ws.append([_export_value(sale, field) for _, field in EXPORT_COLUMNS])

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer
