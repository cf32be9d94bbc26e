# Overview: Service-layer operations for sales imports; encapsulates business logic and database work.

"""
Bulk sale import from Excel (.xlsx) and rollback of imported sales.

Rows are read from the first worksheet; the first row holds the headers.
Headers may be the template's camelCase keys or their Turkish titles.
Row numbers in messages follow Excel (the first data row is row 2).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from io import BytesIO
from zipfile import BadZipFile

from flask import current_app
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import func

from ..extensions import db
from ..models import PrimTransaction, Role, Sale, User
from ..models.sales import (
    BUILTIN_SALE_TYPES,
    PRIM_PAID,
    PRIM_STATUSES,
    SALE_STATUSES,
    SALE_TYPE_KAPORA,
    STATUS_CANCELLED,
)
from ..permissions import ADMIN_ROLE
from salesdesk.time_utils import parse_iso_datetime, to_utc_z, today, tr_local_to_utc, utcnow
from . import activity_service, backup_service, prim_service


class SalesImportError(ValueError):
    pass


ALLOWED_EXTENSIONS = (".xlsx",)
ROLLBACK_HOURS_RANGE = (1, 48)
DEFAULT_ROLLBACK_HOURS = 2
EXCEL_EPOCH = date(1899, 12, 30)
MAX_EXCEL_SERIAL = 2958465
DEFAULT_PAYMENT_TYPE = "Nakit"

TEMPLATE_FILENAME = "satis_import_sablonu.xlsx"
TEMPLATE_SHEET = "Satışlar"

# Template column key, Turkish title.
COLUMNS = (
    ("customerName", "Müşteri Adı"),
    ("phone", "Telefon"),
    ("blockNo", "Blok No"),
    ("apartmentNo", "Daire No"),
    ("periodNo", "Dönem No"),
    ("saleType", "Satış Türü"),
    ("contractNo", "Sözleşme No"),
    ("saleDate", "Satış Tarihi"),
    ("entryDate", "Giriş Tarihi"),
    ("exitDate", "Çıkış Tarihi"),
    ("listPrice", "Liste Fiyatı"),
    ("originalListPrice", "Orijinal Liste Fiyatı"),
    ("discountRate", "İndirim Oranı"),
    ("activitySalePrice", "Aktivite Satış Fiyatı"),
    ("paymentType", "Ödeme Tipi"),
    ("primStatus", "Prim Durumu"),
    ("status", "Durum"),
    ("salesperson", "Satış Temsilcisi"),
    ("notes", "Notlar"),
)

REQUIRED_FIELDS = (
    "customerName", "blockNo", "apartmentNo", "periodNo",
    "saleType", "saleDate", "entryDate", "exitDate",
    "listPrice", "activitySalePrice", "primStatus", "status", "salesperson",
)

TEMPLATE_SAMPLE = {
    "customerName": "Ahmet Yılmaz",
    "phone": "0532 123 45 67",
    "blockNo": "A1",
    "apartmentNo": "12",
    "periodNo": "1",
    "saleType": "satis",
    "contractNo": "SZL2021001",
    "saleDate": "2021-03-15",
    "entryDate": "01/06",
    "exitDate": "15/06",
    "listPrice": 150000,
    "originalListPrice": 150000,
    "discountRate": 10,
    "activitySalePrice": 130000,
    "paymentType": "Nakit",
    "primStatus": "ödendi",
    "status": "aktif",
    "salesperson": "admin",
    "notes": "Örnek kayıt",
}


def _header_key(value) -> str:
    return str(value or "").strip().casefold()


HEADER_ALIASES = {}
for _key, _title in COLUMNS:
    HEADER_ALIASES[_header_key(_key)] = _key
    HEADER_ALIASES[_header_key(_title)] = _key


# Cell parsing

def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text(value) -> str:
    if _blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _serial_to_date(serial) -> date:
    number = float(serial)
    # Excel serials run from 1 (1900-01-01) to 2958465 (9999-12-31)
    if not 1 <= number <= MAX_EXCEL_SERIAL:
        raise ValueError("date serial out of range")
    return EXCEL_EPOCH + timedelta(days=int(number))


def parse_cell_date(value, default_year: int | None = None) -> tuple[date, bool]:
    """
    Parse a date cell; returns (date, year_given).

    Accepts datetime/date cells, Excel serial numbers, YYYY-MM-DD,
    DD/MM/YYYY (also with dots) and D/M, which takes default_year.
    Raises ValueError when the value is not a date.
    """
    if isinstance(value, datetime):
        return value.date(), True
    if isinstance(value, date):
        return value, True
    if isinstance(value, bool):
        raise ValueError("not a date")
    if isinstance(value, (int, float)):
        return _serial_to_date(value), True

    text = _text(value)
    if not text:
        raise ValueError("empty date")
    if text.isdigit():
        return _serial_to_date(text), True
    if "-" in text:
        return date.fromisoformat(text[:10]), True

    parts = text.replace(".", "/").split("/")
    if len(parts) == 3:
        day, month, year = (int(p) for p in parts)
        return date(year, month, day), True
    if len(parts) == 2:
        day, month = (int(p) for p in parts)
        return date(default_year or today().year, month, day), False
    raise ValueError("not a date")


def _day_month(d: date) -> str:
    return d.strftime("%d/%m")


def _float(value) -> float:
    if _blank(value):
        return 0.0
    if isinstance(value, bool):
        raise ValueError("not a number")
    if isinstance(value, (int, float)):
        return float(value)
    return float(str(value).strip().replace(",", "."))


# Reading

def _check_filename(filename: str | None) -> None:
    name = (filename or "").lower()
    if name.endswith(".xls"):
        raise SalesImportError("Legacy .xls files are not supported. Save the file as .xlsx and upload again")
    if not name.endswith(ALLOWED_EXTENSIONS):
        raise SalesImportError("Only Excel files (.xlsx) are allowed")


def read_rows(stream) -> list[dict]:
    """Rows of the first worksheet as dicts keyed by template column keys."""
    try:
        workbook = load_workbook(stream, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
        raise SalesImportError(f"Excel file could not be read: {e}")

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        keys = [HEADER_ALIASES.get(_header_key(cell)) for cell in header]
        records = []
        for values in rows:
            record = {}
            for key, value in zip(keys, values):
                if key:
                    record[key] = value
            records.append(record)
        return records
    finally:
        workbook.close()


# Validation

def validate_record(record: dict, row: int) -> list[str]:
    errors = []
    for field in REQUIRED_FIELDS:
        if _blank(record.get(field)):
            errors.append(f"Satır {row}: {field} alanı zorunludur")

    for field in ("saleDate", "entryDate", "exitDate"):
        if _blank(record.get(field)):
            continue
        try:
            parse_cell_date(record[field])
        except (TypeError, ValueError, OverflowError):
            example = "2021-03-15" if field == "saleDate" else "21/08"
            errors.append(f"Satır {row}: {field} geçerli bir tarih formatında olmalıdır (örn: {example})")

    for field in ("listPrice", "activitySalePrice", "originalListPrice", "discountRate"):
        if _blank(record.get(field)):
            continue
        try:
            number = _float(record[field])
        except (TypeError, ValueError):
            errors.append(f"Satır {row}: {field} sayısal olmalıdır")
            continue
        if number < 0:
            errors.append(f"Satır {row}: {field} negatif olamaz")
        elif field == "discountRate" and number > 100:
            errors.append(f"Satır {row}: discountRate 0 ile 100 arasında olmalıdır")

    sale_type = _text(record.get("saleType"))
    if sale_type and sale_type not in BUILTIN_SALE_TYPES:
        errors.append(f"Satır {row}: saleType geçerli değil ({', '.join(BUILTIN_SALE_TYPES)})")
    prim_status = _text(record.get("primStatus"))
    if prim_status and prim_status not in PRIM_STATUSES:
        errors.append(f"Satır {row}: primStatus geçerli değil ({', '.join(PRIM_STATUSES)})")
    status = _text(record.get("status"))
    if status and status not in SALE_STATUSES:
        errors.append(f"Satır {row}: status geçerli değil ({', '.join(SALE_STATUSES)})")
    return errors


# Conversion

def _admin_user() -> User | None:
    return (
        db.session.query(User)
        .join(Role, Role.id == User.role_id)
        .filter(Role.name == ADMIN_ROLE, User.is_active.is_(True))
        .order_by(User.id.asc())
        .first()
    )


def find_salesperson(value) -> User | None:
    """Match by full name (case-insensitive) or email."""
    text = _text(value)
    if not text or text.lower() == "admin":
        return None
    return (
        db.session.query(User)
        .filter((func.lower(User.name) == text.lower()) | (User.email == text.lower()))
        .first()
    )


def _contract_no(record: dict, row: int) -> str:
    contract_no = _text(record.get("contractNo"))
    if contract_no:
        return contract_no
    return f"IMP-{utcnow().strftime('%Y%m%d%H%M%S')}-{row}"


def convert_record(record: dict, row: int, actor: User, rate: float | None, warnings: list[str]) -> dict:
    """Column values for a Sale built from a validated row."""
    salesperson = find_salesperson(record.get("salesperson"))
    if salesperson is None:
        admin = _admin_user() or actor
        if _text(record.get("salesperson")).lower() != "admin":
            warnings.append(
                f"Satır {row}: Satış temsilcisi '{_text(record.get('salesperson'))}' bulunamadı, {admin.name} atandı"
            )
        salesperson = admin

    sale_date, _ = parse_cell_date(record.get("saleDate"))
    entry, _ = parse_cell_date(record.get("entryDate"), default_year=sale_date.year)
    exit_, exit_year_given = parse_cell_date(record.get("exitDate"), default_year=sale_date.year)
    if not exit_year_given and exit_ < entry:
        exit_ = exit_.replace(year=exit_.year + 1)

    list_price = _float(record.get("listPrice"))
    discount_rate = _float(record.get("discountRate"))
    original_list_price = _float(record.get("originalListPrice"))
    if not original_list_price and list_price:
        if 0 < discount_rate < 100:
            original_list_price = round(list_price / (1 - discount_rate / 100), 2)
        else:
            original_list_price = list_price

    sale_type = _text(record.get("saleType"))
    is_kapora = sale_type == SALE_TYPE_KAPORA
    values = {
        "customer_name": _text(record.get("customerName")),
        "phone": _text(record.get("phone")) or None,
        "block_no": _text(record.get("blockNo")),
        "apartment_no": _text(record.get("apartmentNo")),
        "period_no": _text(record.get("periodNo")),
        "contract_no": _contract_no(record, row),
        "sale_type": sale_type,
        "sale_date": None if is_kapora else sale_date,
        "kapora_date": sale_date if is_kapora else None,
        "entry_date": _day_month(entry),
        "exit_date": _day_month(exit_),
        "list_price": list_price,
        "original_list_price": original_list_price,
        "discount_rate": discount_rate,
        "activity_sale_price": _float(record.get("activitySalePrice")),
        "payment_type": _text(record.get("paymentType")) or DEFAULT_PAYMENT_TYPE,
        "prim_status": _text(record.get("primStatus")) or PRIM_PAID,
        "status": _text(record.get("status")),
        "salesperson_id": salesperson.id,
        "notes": _text(record.get("notes")) or None,
        "is_imported": True,
        "imported_at": utcnow(),
        "imported_by_user_id": actor.id,
    }

    values["discounted_list_price"] = prim_service.discounted_price(original_list_price, discount_rate)
    if is_kapora or rate is None:
        values.update(prim_rate=None, base_prim_price=0, prim_amount=0, prim_period_id=None)
    else:
        base = prim_service.calculate_base_price(original_list_price, discount_rate, values["activity_sale_price"])
        values.update(
            prim_rate=rate,
            base_prim_price=base,
            prim_amount=prim_service.calculate_prim(base, rate),
            prim_period_id=prim_service.get_or_create_period(sale_date, actor.id).id,
        )
    if values["status"] == STATUS_CANCELLED:
        values.update(cancelled_at=utcnow(), cancelled_by_user_id=actor.id)
    return values


def _save(values: dict, existing: Sale | None, actor: User) -> Sale:
    if existing is None:
        sale = Sale(created_by_user_id=actor.id, transfer_history=[], modification_history=[], **values)
        db.session.add(sale)
    else:
        sale = existing
        for key, value in values.items():
            setattr(sale, key, value)
    db.session.flush()
    prim_service.rebook_sale(sale, actor.id, f"İçe aktarılan satış primi - {sale.contract_no}")
    return sale


# Operations

def import_sales(stream, filename: str | None, actor: User, dry_run: bool = True, overwrite: bool = False) -> dict:
    """
    Validate every row and, unless dry_run, write the valid ones.

    Returns the result summary; `success` is False when no row is valid.
    Duplicate contract numbers (in the database or earlier in the file)
    are skipped with a warning unless overwrite is set.
    """
    _check_filename(filename)
    records = read_rows(stream)
    if not records:
        raise SalesImportError("No data rows found in the Excel file")

    results = {
        "total_rows": len(records),
        "valid_rows": 0,
        "invalid_rows": 0,
        "imported_rows": 0,
        "skipped_rows": 0,
        "errors": [],
        "warnings": [],
        "dry_run": dry_run,
    }

    valid = []
    for index, record in enumerate(records):
        row = index + 2
        if _blank(record.get("customerName")) and _blank(record.get("blockNo")):
            results["skipped_rows"] += 1
            continue
        errors = validate_record(record, row)
        if errors:
            results["invalid_rows"] += 1
            results["errors"].append({"row": row, "errors": errors})
        else:
            results["valid_rows"] += 1
            valid.append((row, record))

    if not valid:
        results["success"] = False
        results["message"] = "No valid sale records found"
        return results

    rate_row = prim_service.get_active_rate()
    rate = rate_row.rate if rate_row else None
    if rate is None:
        results["warnings"].append("No active prim rate is configured; imported sales carry no prim")

    seen = set()
    duplicates = 0
    for row, record in valid:
        contract_no = _text(record.get("contractNo"))
        if not contract_no:
            continue
        exists = contract_no in seen or (
            db.session.query(Sale.id).filter(Sale.contract_no == contract_no).first() is not None
        )
        seen.add(contract_no)
        if exists and not overwrite:
            duplicates += 1
            results["warnings"].append(f"Satır {row}: Sözleşme {contract_no} zaten mevcut, atlandı")

    if dry_run:
        results["skipped_rows"] += duplicates
        results["success"] = True
        results["message"] = f"Dry run completed: {results['valid_rows']} valid records found"
        return results

    existing_sales = db.session.query(Sale).order_by(Sale.id.asc()).all()
    if existing_sales:
        backup_service.backup_sales(
            existing_sales, "sales", f"Before import of {filename}", actor.id, commit=False
        )

    for row, record in valid:
        contract_no = _text(record.get("contractNo"))
        existing = None
        if contract_no:
            existing = db.session.query(Sale).filter(Sale.contract_no == contract_no).first()
            if existing is not None and not overwrite:
                results["skipped_rows"] += 1
                continue
        try:
            with db.session.begin_nested():
                _save(convert_record(record, row, actor, rate, results["warnings"]), existing, actor)
            results["imported_rows"] += 1
        except (ValueError, TypeError) as e:
            results["invalid_rows"] += 1
            results["errors"].append({"row": row, "errors": [f"Satır {row}: Kayıt hatası - {e}"]})

    activity_service.log_activity(
        user_id=actor.id,
        action="sales_imported",
        description=f"{results['imported_rows']} sales imported from {filename}",
        details={
            "filename": filename,
            "imported": results["imported_rows"],
            "skipped": results["skipped_rows"],
            "invalid": results["invalid_rows"],
        },
        related_model="Sale",
        severity="high",
        commit=False,
    )
    db.session.commit()
    current_app.logger.info("Imported %s sales from %s", results["imported_rows"], filename)

    results["success"] = True
    results["message"] = f"Import completed: {results['imported_rows']} records imported"
    return results


def _rollback_window(data: dict) -> tuple[datetime, datetime, str]:
    start_raw = data.get("start_date") or data.get("startDate")
    end_raw = data.get("end_date") or data.get("endDate")
    if start_raw and end_raw:
        try:
            start = parse_iso_datetime(str(start_raw))
            end = parse_iso_datetime(str(end_raw))
        except ValueError:
            raise SalesImportError("Invalid date format")
        if start >= end:
            raise SalesImportError("start_date must be before end_date")
        return tr_local_to_utc(start), tr_local_to_utc(end), f"{start_raw} - {end_raw} (TR)"

    hours = data.get("hours", DEFAULT_ROLLBACK_HOURS)
    try:
        hours = int(hours)
    except (TypeError, ValueError):
        raise SalesImportError("hours must be an integer")
    low, high = ROLLBACK_HOURS_RANGE
    if hours < low or hours > high:
        raise SalesImportError(f"hours must be between {low} and {high}")
    end = utcnow()
    return end - timedelta(hours=hours), end, f"last {hours} hours"


def rollback(data: dict, actor: User) -> dict:
    """Delete imported sales created inside the window, after backing them up."""
    if not data.get("confirm"):
        raise SalesImportError("Rollback must be confirmed (confirm: true)")
    start, end, label = _rollback_window(data)

    sales = (
        db.session.query(Sale)
        .filter(Sale.is_imported.is_(True), Sale.created_at >= start, Sale.created_at <= end)
        .order_by(Sale.id.asc())
        .all()
    )
    if not sales:
        return {
            "deleted_count": 0,
            "deleted_transactions": 0,
            "backup_file": None,
            "window": {"start": to_utc_z(start), "end": to_utc_z(end), "label": label},
        }

    backup = backup_service.backup_sales(sales, "rollback", f"Import rollback: {label}", actor.id, commit=False)
    sale_ids = [s.id for s in sales]
    deleted_transactions = (
        db.session.query(PrimTransaction)
        .filter(PrimTransaction.sale_id.in_(sale_ids))
        .delete(synchronize_session=False)
    )
    for sale in sales:
        db.session.delete(sale)

    activity_service.log_activity(
        user_id=actor.id,
        action="sales_import_rollback",
        description=f"{len(sales)} imported sales rolled back ({label})",
        details={"deleted": len(sales), "transactions": deleted_transactions, "backup": backup.filename},
        related_model="Sale",
        severity="critical",
        commit=False,
    )
    db.session.commit()
    current_app.logger.info("Rolled back %s imported sales (%s)", len(sales), label)
    return {
        "deleted_count": len(sales),
        "deleted_transactions": deleted_transactions,
        "backup_file": backup.filename,
        "window": {"start": to_utc_z(start), "end": to_utc_z(end), "label": label},
    }


def build_template() -> BytesIO:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = TEMPLATE_SHEET
    sheet.append([key for key, _ in COLUMNS])
    sheet.append([TEMPLATE_SAMPLE.get(key, "") for key, _ in COLUMNS])
    for column_cells in sheet.columns:
        sheet.column_dimensions[column_cells[0].column_letter].width = 18

    stream = BytesIO()
    workbook.save(stream)
    stream.seek(0)
    return stream
