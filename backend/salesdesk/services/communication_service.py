# Overview: Service-layer operations for communications; encapsulates business logic and database work.

"""
Daily communication tracking.

- CommunicationType: configurable kinds of contact (WhatsApp, calls, meetings...).
- CommunicationRecord: one row per salesperson per day with counts per type.
- CommunicationYear: per-year penalty settings and legacy yearly totals.
"""

from __future__ import annotations

import re
from collections import defaultdict

from sqlalchemy import func

from ..extensions import db
from ..models import CommunicationRecord, CommunicationType, CommunicationYear, Sale, User
from ..models.communications import (
    CODE_FIELD_MAP,
    COUNTER_FIELDS,
    TYPE_CATEGORIES,
    YEAR_ACTIVE,
    YEAR_HISTORICAL,
)
from ..models.sales import SALE_TYPE_KAPORA, STATUS_ACTIVE
from salesdesk.time_utils import parse_ymd, to_iso_date, today, utcnow
from .activity_service import _paginate


class CommunicationError(ValueError):
    pass


class CommunicationNotFoundError(LookupError):
    pass


CODE_RE = re.compile(r"^[A-Z0-9_]+$")
COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
FIELD_CODE_MAP = {field: code for code, field in CODE_FIELD_MAP.items()}

DEFAULT_TYPES = (
    {
        "name": "WhatsApp Gelen Mesaj",
        "code": "WHATSAPP_INCOMING",
        "description": "WhatsApp üzerinden gelen mesajlar",
        "category": "incoming",
        "color": "#25D366",
        "icon": "FiMessageCircle",
        "sort_order": 1,
    },
    {
        "name": "Telefon Gelen Arama",
        "code": "CALL_INCOMING",
        "description": "Telefon üzerinden gelen aramalar",
        "category": "incoming",
        "color": "#28a745",
        "icon": "FiPhone",
        "sort_order": 2,
    },
    {
        "name": "Telefon Giden Arama",
        "code": "CALL_OUTGOING",
        "description": "Telefon üzerinden yapılan aramalar",
        "category": "outgoing",
        "color": "#007bff",
        "icon": "FiPhone",
        "sort_order": 3,
    },
    {
        "name": "Yeni Müşteri Toplantısı",
        "code": "MEETING_NEW_CUSTOMER",
        "description": "Yeni müşterilerle yapılan toplantılar",
        "category": "meeting",
        "color": "#ffc107",
        "icon": "FiUsers",
        "sort_order": 4,
    },
    {
        "name": "Satış Sonrası Toplantı",
        "code": "MEETING_AFTER_SALE",
        "description": "Satış sonrası müşteri takip toplantıları",
        "category": "meeting",
        "color": "#fd7e14",
        "icon": "FiUserCheck",
        "sort_order": 5,
    },
)

SETTING_BOUNDS = {
    "entry_deadline_hour": (0, 23),
    "entry_deadline_minute": (0, 59),
    "daily_penalty_points": (0, None),
    "max_penalty_points": (0, None),
}
BOOLEAN_SETTINGS = ("daily_entry_required", "penalty_system_active")


def whole_number(value) -> int:
    """Integer from an int, an integral float or a digit string; ValueError otherwise."""
    if isinstance(value, bool):
        raise ValueError("booleans are not counts")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("not a whole number")
        return int(value)
    if isinstance(value, int):
        return value
    return int(str(value).strip())


def _int(value, field: str, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        number = whole_number(value)
    except (TypeError, ValueError):
        raise CommunicationError(f"{field} must be an integer")
    if minimum is not None and number < minimum:
        raise CommunicationError(f"{field} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise CommunicationError(f"{field} must be at most {maximum}")
    return number


# Communication types

def list_types(active_only: bool = False) -> list[CommunicationType]:
    query = db.session.query(CommunicationType)
    if active_only:
        query = query.filter(CommunicationType.is_active.is_(True))
    return query.order_by(CommunicationType.sort_order.asc(), CommunicationType.name.asc()).all()


def get_type(type_id: int) -> CommunicationType:
    comm_type = db.session.get(CommunicationType, type_id)
    if comm_type is None:
        raise CommunicationNotFoundError("Communication type not found")
    return comm_type


def _apply_type_fields(comm_type: CommunicationType, data: dict, creating: bool) -> None:
    if creating or "name" in data:
        name = str(data.get("name") or "").strip()
        if not name or len(name) > 100:
            raise CommunicationError("name is required (max 100 characters)")
        clash = db.session.query(CommunicationType).filter(CommunicationType.name == name)
        if comm_type.id:
            clash = clash.filter(CommunicationType.id != comm_type.id)
        if clash.first():
            raise CommunicationError("A communication type with this name already exists")
        comm_type.name = name

    if creating or "code" in data:
        code = str(data.get("code") or "").strip().upper()
        if not code or len(code) > 50 or not CODE_RE.match(code):
            raise CommunicationError("code is required and may only contain A-Z, 0-9 and _")
        clash = db.session.query(CommunicationType).filter(CommunicationType.code == code)
        if comm_type.id:
            clash = clash.filter(CommunicationType.id != comm_type.id)
        if clash.first():
            raise CommunicationError("A communication type with this code already exists")
        comm_type.code = code

    if "description" in data:
        comm_type.description = data.get("description")
    if creating or "category" in data:
        category = data.get("category") or "other"
        if category not in TYPE_CATEGORIES:
            raise CommunicationError(f"category must be one of: {', '.join(TYPE_CATEGORIES)}")
        comm_type.category = category
    if "color" in data:
        color = str(data.get("color") or "")
        if not COLOR_RE.match(color):
            raise CommunicationError("color must be a hex color like #1A2B3C")
        comm_type.color = color
    if "icon" in data and data.get("icon"):
        comm_type.icon = str(data["icon"])[:64]
    if "sort_order" in data:
        comm_type.sort_order = _int(data.get("sort_order"), "sort_order", 0)
    if "min_value" in data:
        comm_type.min_value = _int(data.get("min_value"), "min_value", 0)
    if "max_value" in data:
        comm_type.max_value = _int(data.get("max_value"), "max_value", 0)
    if "is_required" in data:
        comm_type.is_required = bool(data.get("is_required"))
    if "is_active" in data:
        comm_type.is_active = bool(data.get("is_active"))

    if comm_type.max_value and comm_type.min_value and comm_type.max_value < comm_type.min_value:
        raise CommunicationError("max_value cannot be lower than min_value")


def create_type(data: dict, user_id: int | None) -> CommunicationType:
    comm_type = CommunicationType(created_by_user_id=user_id, min_value=0, max_value=0, sort_order=0)
    _apply_type_fields(comm_type, data, creating=True)
    db.session.add(comm_type)
    db.session.commit()
    return comm_type


def update_type(type_id: int, data: dict) -> CommunicationType:
    comm_type = get_type(type_id)
    try:
        _apply_type_fields(comm_type, data, creating=False)
    except CommunicationError:
        db.session.rollback()
        raise
    db.session.commit()
    return comm_type


def _type_in_use(code: str) -> bool:
    field = CODE_FIELD_MAP.get(code)
    if field:
        column = getattr(CommunicationRecord, field)
        return db.session.query(CommunicationRecord.id).filter(column > 0).first() is not None
    for (extra,) in db.session.query(CommunicationRecord.extra_counts).all():
        if extra and int(extra.get(code) or 0) > 0:
            return True
    return False


def delete_type(type_id: int) -> None:
    comm_type = get_type(type_id)
    if _type_in_use(comm_type.code):
        raise CommunicationError("This communication type is in use; deactivate it instead")
    db.session.delete(comm_type)
    db.session.commit()


def toggle_type(type_id: int) -> CommunicationType:
    comm_type = get_type(type_id)
    comm_type.is_active = not comm_type.is_active
    db.session.commit()
    return comm_type


def reorder_types(items) -> int:
    if not isinstance(items, list) or not items:
        raise CommunicationError("items must be a non-empty list")
    for item in items:
        if not isinstance(item, dict):
            raise CommunicationError("each item needs id and sort_order")
        comm_type = get_type(_int(item.get("id"), "id"))
        comm_type.sort_order = _int(item.get("sort_order"), "sort_order", 0)
    db.session.commit()
    return len(items)


def create_default_types(user_id: int | None) -> list[CommunicationType]:
    if db.session.query(CommunicationType.id).first():
        raise CommunicationError("Communication types already exist")
    created = []
    for definition in DEFAULT_TYPES:
        comm_type = CommunicationType(
            created_by_user_id=user_id,
            is_active=True,
            min_value=0,
            max_value=0,
            is_required=False,
            **definition,
        )
        db.session.add(comm_type)
        created.append(comm_type)
    db.session.commit()
    return created


# Daily records

def _empty_record(salesperson_id: int, on_date) -> dict:
    record = CommunicationRecord(
        salesperson_id=salesperson_id,
        date=on_date,
        year=on_date.year,
        month=on_date.month,
        day=on_date.day,
        extra_counts={},
        is_entered=False,
        penalty_applied=False,
        is_historical_migration=False,
    )
    for field in COUNTER_FIELDS:
        setattr(record, field, 0)
    record.recalculate_totals()
    data = record.to_dict()
    data["salesperson"] = None
    data["salesperson_id"] = salesperson_id
    return data


def get_record(salesperson_id: int, on_date) -> CommunicationRecord | None:
    return db.session.query(CommunicationRecord).filter_by(salesperson_id=salesperson_id, date=on_date).first()


def today_record(user: User) -> dict:
    record = get_record(user.id, today())
    if record is None:
        return _empty_record(user.id, today())
    return record.to_dict()


def _collect_counts(data: dict) -> dict[str, object]:
    """Counts keyed by type code, from a `counts` object or flat fields."""
    counts = {}
    nested = data.get("counts")
    if nested is not None:
        if not isinstance(nested, dict):
            raise CommunicationError("counts must be an object")
        for key, value in nested.items():
            counts[str(key).upper()] = value
    for key, value in data.items():
        if key in ("counts", "date", "notes"):
            continue
        if key in FIELD_CODE_MAP:
            counts.setdefault(FIELD_CODE_MAP[key], value)
        elif CODE_RE.match(key):
            counts.setdefault(key, value)
    return counts


def save_daily(user: User, data: dict) -> CommunicationRecord:
    """
    Create or update the caller's record for a day.

    Only the given counts change; each is checked against its type's
    min/max (max 0 means unlimited). Required types must be present.
    """
    try:
        on_date = parse_ymd(data.get("date"), "date") or today()
    except ValueError as e:
        raise CommunicationError(str(e))
    if on_date > today():
        raise CommunicationError("Records cannot be entered for future dates")

    types = {t.code: t for t in list_types(active_only=True)}
    counts = _collect_counts(data)

    errors = []
    values: dict[str, int] = {}
    for code, raw in counts.items():
        comm_type = types.get(code)
        if comm_type is None:
            errors.append(f"Unknown or inactive communication type: {code}")
            continue
        try:
            value = 0 if raw is None or raw == "" else whole_number(raw)
        except (TypeError, ValueError):
            errors.append(f"{comm_type.name} must be an integer")
            continue
        if value < 0:
            errors.append(f"{comm_type.name} cannot be negative")
        elif comm_type.min_value > 0 and value < comm_type.min_value:
            errors.append(f"{comm_type.name} must be at least {comm_type.min_value}")
        elif comm_type.max_value > 0 and value > comm_type.max_value:
            errors.append(f"{comm_type.name} must be at most {comm_type.max_value}")
        values[code] = value

    for code, comm_type in types.items():
        if comm_type.is_required and code not in counts:
            errors.append(f"{comm_type.name} is required")

    if errors:
        raise CommunicationError("; ".join(errors))

    record = get_record(user.id, on_date)
    if record is None:
        record = CommunicationRecord(
            salesperson_id=user.id,
            date=on_date,
            year=on_date.year,
            month=on_date.month,
            day=on_date.day,
            extra_counts={},
        )
        for field in COUNTER_FIELDS:
            setattr(record, field, 0)
        db.session.add(record)

    extra = dict(record.extra_counts or {})
    for code, value in values.items():
        field = CODE_FIELD_MAP.get(code)
        if field:
            setattr(record, field, value)
        else:
            extra[code] = value
    record.extra_counts = extra

    if "notes" in data:
        record.notes = str(data.get("notes") or "").strip() or None
    record.is_entered = True
    record.entered_at = utcnow()
    record.entered_by_user_id = user.id
    record.recalculate_totals()

    db.session.commit()
    return record


def _date_range(filters: dict):
    try:
        start = parse_ymd(filters.get("start_date"), "start_date")
        end = parse_ymd(filters.get("end_date"), "end_date")
    except ValueError as e:
        raise CommunicationError(str(e))
    if start and end and start > end:
        raise CommunicationError("start_date must not be after end_date")
    return start, end


def list_records(filters: dict, visible_user_id: int | None, page: int = 1, limit: int = 50) -> dict:
    """visible_user_id restricts results to one salesperson (no view-all permission)."""
    query = db.session.query(CommunicationRecord)
    if visible_user_id is not None:
        query = query.filter(CommunicationRecord.salesperson_id == visible_user_id)
    elif filters.get("salesperson") and filters["salesperson"] != "all":
        query = query.filter(CommunicationRecord.salesperson_id == _int(filters["salesperson"], "salesperson"))

    start, end = _date_range(filters)
    if start:
        query = query.filter(CommunicationRecord.date >= start)
    if end:
        query = query.filter(CommunicationRecord.date <= end)
    if not start and not end and filters.get("year"):
        query = query.filter(CommunicationRecord.year == _int(filters["year"], "year"))
        if filters.get("month"):
            query = query.filter(CommunicationRecord.month == _int(filters["month"], "month", 1, 12))

    query = query.order_by(CommunicationRecord.date.desc(), CommunicationRecord.id.desc())
    return _paginate(query, page, limit)


def report(filters: dict, visible_user_id: int | None) -> dict:
    """Per-salesperson communication totals merged with sales in the same range."""
    start, end = _date_range(filters)
    salesperson_id = visible_user_id
    if salesperson_id is None and filters.get("salesperson") and filters["salesperson"] != "all":
        salesperson_id = _int(filters["salesperson"], "salesperson")

    records = db.session.query(CommunicationRecord)
    sales = db.session.query(
        Sale.salesperson_id,
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.activity_sale_price), 0),
    ).filter(Sale.status == STATUS_ACTIVE, Sale.sale_type != SALE_TYPE_KAPORA)

    if salesperson_id is not None:
        records = records.filter(CommunicationRecord.salesperson_id == salesperson_id)
        sales = sales.filter(Sale.salesperson_id == salesperson_id)
    if start:
        records = records.filter(CommunicationRecord.date >= start)
        sales = sales.filter(Sale.sale_date >= start)
    if end:
        records = records.filter(CommunicationRecord.date <= end)
        sales = sales.filter(Sale.sale_date <= end)

    rows = defaultdict(lambda: {
        **{field: 0 for field in COUNTER_FIELDS},
        "extra_counts": defaultdict(int),
        "total_meetings": 0,
        "total_communication": 0,
        "record_count": 0,
        "sales_count": 0,
        "sales_amount": 0.0,
    })
    for record in records.all():
        row = rows[record.salesperson_id]
        for field in COUNTER_FIELDS:
            row[field] += getattr(record, field) or 0
        for code, value in (record.extra_counts or {}).items():
            row["extra_counts"][code] += int(value or 0)
        row["total_meetings"] += record.total_meetings or 0
        row["total_communication"] += record.total_communication or 0
        row["record_count"] += 1

    for sp_id, count, amount in sales.group_by(Sale.salesperson_id).all():
        rows[sp_id]["sales_count"] = count
        rows[sp_id]["sales_amount"] = round(float(amount), 2)

    users = {u.id: u for u in db.session.query(User).filter(User.id.in_(list(rows))).all()} if rows else {}
    result = []
    for sp_id, row in rows.items():
        user = users.get(sp_id)
        row["extra_counts"] = dict(row["extra_counts"])
        result.append({"salesperson": user.to_summary() if user else {"id": sp_id}, **row})
    result.sort(key=lambda r: -r["total_communication"])

    return {
        "start_date": to_iso_date(start),
        "end_date": to_iso_date(end),
        "types": [t.to_dict() for t in list_types(active_only=True)],
        "rows": result,
    }


# Years

def list_years() -> list[CommunicationYear]:
    return db.session.query(CommunicationYear).order_by(CommunicationYear.year.desc()).all()


def get_year(year_id: int) -> CommunicationYear:
    year = db.session.get(CommunicationYear, year_id)
    if year is None:
        raise CommunicationNotFoundError("Year not found")
    return year


def get_current_year() -> CommunicationYear | None:
    """The active-type year that is switched on; None if there is none."""
    return (
        db.session.query(CommunicationYear)
        .filter(CommunicationYear.type == YEAR_ACTIVE, CommunicationYear.is_active.is_(True))
        .order_by(CommunicationYear.year.desc())
        .first()
    )


def get_year_settings(year: int) -> CommunicationYear | None:
    return (
        db.session.query(CommunicationYear)
        .filter(CommunicationYear.year == year, CommunicationYear.type == YEAR_ACTIVE, CommunicationYear.is_active.is_(True))
        .first()
    )


def _apply_settings(year: CommunicationYear, settings: dict) -> None:
    if not isinstance(settings, dict):
        raise CommunicationError("settings must be an object")
    for field, (minimum, maximum) in SETTING_BOUNDS.items():
        if field in settings:
            setattr(year, field, _int(settings[field], field, minimum, maximum))
    for field in BOOLEAN_SETTINGS:
        if field in settings:
            if not isinstance(settings[field], bool):
                raise CommunicationError(f"{field} must be a boolean")
            setattr(year, field, settings[field])


def _apply_year_data(year: CommunicationYear, data: dict) -> None:
    for field in ("monthly_data", "yearly_sales_data", "yearly_communication_data"):
        if field in data:
            value = data.get(field) or {}
            if not isinstance(value, dict):
                raise CommunicationError(f"{field} must be an object")
            setattr(year, field, value)
    if "historical_users" in data:
        value = data.get("historical_users") or []
        if not isinstance(value, list):
            raise CommunicationError("historical_users must be a list")
        year.historical_users = value


def _activate_only(year: CommunicationYear) -> None:
    """A single active-type year is switched on at a time."""
    db.session.query(CommunicationYear).filter(
        CommunicationYear.type == YEAR_ACTIVE,
        CommunicationYear.id != year.id,
        CommunicationYear.is_active.is_(True),
    ).update({CommunicationYear.is_active: False}, synchronize_session=False)


def create_year(data: dict, user_id: int | None) -> CommunicationYear:
    year_value = _int(data.get("year"), "year", 2021, 2030)
    year_type = data.get("type") or YEAR_ACTIVE
    if year_type not in (YEAR_HISTORICAL, YEAR_ACTIVE):
        raise CommunicationError("type must be historical or active")
    if db.session.query(CommunicationYear).filter_by(year=year_value).first():
        raise CommunicationError("This year is already registered")

    year = CommunicationYear(
        year=year_value,
        type=year_type,
        is_active=year_type == YEAR_ACTIVE,
        monthly_data={},
        yearly_sales_data={},
        yearly_communication_data={},
        historical_users=[],
        created_by_user_id=user_id,
    )
    _apply_year_data(year, data)
    if data.get("settings"):
        _apply_settings(year, data["settings"])
    db.session.add(year)
    db.session.flush()
    if year.is_active:
        _activate_only(year)
    db.session.commit()
    return year


def update_year(year_id: int, data: dict) -> CommunicationYear:
    year = get_year(year_id)
    try:
        if "year" in data:
            value = _int(data.get("year"), "year", 2021, 2030)
            clash = db.session.query(CommunicationYear).filter(
                CommunicationYear.year == value, CommunicationYear.id != year.id
            ).first()
            if clash:
                raise CommunicationError("This year is already registered")
            year.year = value
        if "type" in data:
            if data["type"] not in (YEAR_HISTORICAL, YEAR_ACTIVE):
                raise CommunicationError("type must be historical or active")
            year.type = data["type"]
            year.is_active = data["type"] == YEAR_ACTIVE
        _apply_year_data(year, data)
        if data.get("settings"):
            _apply_settings(year, data["settings"])
    except CommunicationError:
        db.session.rollback()
        raise
    if year.is_active and year.type == YEAR_ACTIVE:
        _activate_only(year)
    db.session.commit()
    return year


def delete_year(year_id: int) -> None:
    year = get_year(year_id)
    if year.type == YEAR_ACTIVE and year.is_active:
        raise CommunicationError("The active year cannot be deleted")
    db.session.delete(year)
    db.session.commit()


def update_current_settings(settings: dict) -> CommunicationYear:
    year = get_current_year()
    if year is None:
        raise CommunicationNotFoundError("No active communication year")
    try:
        _apply_settings(year, settings)
    except CommunicationError:
        db.session.rollback()
        raise
    db.session.commit()
    return year
