# Overview: Service-layer operations for backups; encapsulates business logic and database work.

"""
JSON snapshots of sales and communication records.

Snapshots are stored in the backups table. Each row carries the full
column dump of the records it covers so that restore can upsert them:
sales by contract_no, communication records by (salesperson, date).
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Backup, CommunicationRecord, Sale, User
from ..models.backups import BACKUP_TYPES
from salesdesk.time_utils import parse_iso_datetime, to_utc_z, utcnow
from . import activity_service


class BackupError(ValueError):
    pass


class BackupNotFoundError(LookupError):
    pass


BACKUP_VERSION = "1.0"
LIST_LIMIT = 100
KIND_SALES = "sales"
KIND_COMMUNICATIONS = "communications"
RESTORABLE_KINDS = (KIND_SALES, KIND_COMMUNICATIONS)

# Columns that are regenerated on restore instead of copied back.
_SKIP_ON_RESTORE = ("id", "created_at", "updated_at")


def _json_value(value):
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def snapshot(obj) -> dict:
    """Column dump of a model row with JSON-safe values."""
    return {column.name: _json_value(getattr(obj, column.name)) for column in obj.__table__.columns}


def _column_value(column, value):
    if value is None or value == "":
        return None
    if isinstance(column.type, db.DateTime):
        return parse_iso_datetime(str(value))
    if isinstance(column.type, db.Date):
        return date.fromisoformat(str(value)[:10])
    return value


def _restore_values(model, item: dict) -> dict:
    values = {}
    for column in model.__table__.columns:
        if column.name in _SKIP_ON_RESTORE or column.name not in item:
            continue
        values[column.name] = _column_value(column, item[column.name])
    return values


def validate_filename(filename: str | None) -> str:
    name = (filename or "").strip()
    if not name or ".." in name or "/" in name or "\\" in name:
        raise BackupError("Invalid backup filename")
    return name


def _unique_filename(backup_type: str) -> str:
    stamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S")
    filename = f"{backup_type}_{stamp}.json"
    suffix = 1
    while db.session.query(Backup.id).filter_by(filename=filename).first():
        suffix += 1
        filename = f"{backup_type}_{stamp}_{suffix}.json"
    return filename


def create_backup(
    data: list,
    backup_type: str,
    description: str | None = None,
    user_id: int | None = None,
    kind: str = KIND_SALES,
    commit: bool = True,
) -> Backup:
    """
    Store a snapshot list.

    `kind` records which table the snapshot came from so restore knows how
    to match rows; the type says why the backup was taken.
    """
    if backup_type not in BACKUP_TYPES:
        raise BackupError(f"Invalid backup type: {backup_type}")
    if not isinstance(data, list):
        raise BackupError("Backup data must be a list")

    backup = Backup(
        filename=_unique_filename(backup_type),
        type=backup_type,
        description=(description or "")[:500] or None,
        data=data,
        record_count=len(data),
        file_size=len(json.dumps(data, ensure_ascii=False).encode("utf-8")),
        metadata_json={
            "original_timestamp": to_utc_z(utcnow()),
            "backup_version": BACKUP_VERSION,
            "compression": "none",
            "kind": kind,
        },
        created_by_user_id=user_id,
    )
    db.session.add(backup)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return backup


def backup_sales(sales: list[Sale], backup_type: str, description: str | None, user_id: int | None, commit: bool = True) -> Backup:
    return create_backup(
        [snapshot(s) for s in sales], backup_type, description, user_id, kind=KIND_SALES, commit=commit
    )


def _current_data(kind: str) -> list[dict]:
    if kind == KIND_SALES:
        rows = db.session.query(Sale).order_by(Sale.id.asc()).all()
    else:
        rows = db.session.query(CommunicationRecord).order_by(CommunicationRecord.id.asc()).all()
    return [snapshot(r) for r in rows]


def create_manual_backup(kind, description: str | None, user_id: int | None) -> Backup:
    if kind not in RESTORABLE_KINDS:
        raise BackupError("Invalid backup type. Use 'sales' or 'communications'")
    data = _current_data(kind)
    if not data:
        raise BackupError(f"No {kind} records to back up")
    backup = create_backup(
        data,
        "manual",
        description or f"Manual {kind} backup",
        user_id,
        kind=kind,
        commit=False,
    )
    activity_service.log_activity(
        user_id=user_id,
        action="backup_created",
        description=f"Manual {kind} backup created ({len(data)} records)",
        details={"filename": backup.filename, "kind": kind},
        related_model="Backup",
        related_id=backup.id,
        severity="medium",
        commit=False,
    )
    db.session.commit()
    return backup


def list_backups(backup_type: str | None = None) -> list[Backup]:
    query = db.session.query(Backup).filter(Backup.is_active.is_(True))
    if backup_type:
        query = query.filter(Backup.type == backup_type)
    return query.order_by(Backup.created_at.desc(), Backup.id.desc()).limit(LIST_LIMIT).all()


def get_backup(filename: str) -> Backup:
    name = validate_filename(filename)
    backup = db.session.query(Backup).filter_by(filename=name, is_active=True).first()
    if backup is None:
        raise BackupNotFoundError("Backup not found")
    return backup


def backup_kind(backup: Backup) -> str:
    kind = (backup.metadata_json or {}).get("kind")
    if kind in RESTORABLE_KINDS:
        return kind
    return KIND_COMMUNICATIONS if backup.type == KIND_COMMUNICATIONS else KIND_SALES


def download_payload(filename: str) -> tuple[str, bytes]:
    backup = get_backup(filename)
    payload = {
        "timestamp": (backup.metadata_json or {}).get("original_timestamp") or to_utc_z(backup.created_at),
        "type": backup.type,
        "count": backup.record_count,
        "data": backup.data,
    }
    return backup.filename, json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")


def _restore_sale(item: dict) -> None:
    contract_no = item.get("contract_no")
    if not contract_no:
        raise BackupError("contract_no missing")
    if not item.get("salesperson_id") or db.session.get(User, item["salesperson_id"]) is None:
        raise BackupError(f"salesperson of contract {contract_no} not found")
    values = _restore_values(Sale, item)
    sale = db.session.query(Sale).filter_by(contract_no=contract_no).first()
    if sale is None:
        db.session.add(Sale(**values))
    else:
        for key, value in values.items():
            setattr(sale, key, value)


def _restore_record(item: dict) -> None:
    values = _restore_values(CommunicationRecord, item)
    salesperson_id = values.get("salesperson_id")
    on_date = values.get("date")
    if not salesperson_id or on_date is None:
        raise BackupError("salesperson_id and date are required")
    if db.session.get(User, salesperson_id) is None:
        raise BackupError(f"salesperson {salesperson_id} not found")
    record = (
        db.session.query(CommunicationRecord)
        .filter_by(salesperson_id=salesperson_id, date=on_date)
        .first()
    )
    if record is None:
        db.session.add(CommunicationRecord(**values))
    else:
        for key, value in values.items():
            setattr(record, key, value)


def restore_backup(filename: str, confirm: bool, user_id: int | None) -> dict:
    """
    Upsert the snapshot's rows back into their table.

    A pre-restore backup of the current table is taken first. Row failures
    are collected and do not stop the restore.
    """
    if not confirm:
        raise BackupError("Restore must be confirmed (confirm_restore: true)")
    backup = get_backup(filename)
    if not isinstance(backup.data, list):
        raise BackupError("Backup data is not a list of records")

    kind = backup_kind(backup)
    current = _current_data(kind)
    pre_restore = None
    if current:
        pre_restore = create_backup(
            current,
            "pre-restore",
            f"Before restoring {backup.filename}",
            user_id,
            kind=kind,
        )

    restore_one = _restore_sale if kind == KIND_SALES else _restore_record
    restored = 0
    errors = []
    for index, item in enumerate(backup.data):
        try:
            with db.session.begin_nested():
                restore_one(item)
            restored += 1
        except (BackupError, ValueError, TypeError) as e:
            errors.append({"index": index, "error": str(e)})

    activity_service.log_activity(
        user_id=user_id,
        action="backup_restored",
        description=f"Backup {backup.filename} restored ({restored}/{len(backup.data)} records)",
        details={"filename": backup.filename, "kind": kind, "errors": len(errors)},
        related_model="Backup",
        related_id=backup.id,
        severity="high",
        commit=False,
    )
    db.session.commit()
    current_app.logger.info("Restored %s of %s records from %s", restored, len(backup.data), backup.filename)

    total = len(backup.data)
    return {
        "restored_records": restored,
        "errors": errors,
        "total_records": total,
        "success_rate": round(restored / total * 100, 2) if total else 0,
        "pre_restore_backup": pre_restore.filename if pre_restore else None,
    }


def soft_delete(filename: str, user_id: int | None) -> Backup:
    backup = get_backup(filename)
    backup.is_active = False
    activity_service.log_activity(
        user_id=user_id,
        action="backup_deleted",
        description=f"Backup {backup.filename} deleted",
        related_model="Backup",
        related_id=backup.id,
        severity="medium",
        commit=False,
    )
    db.session.commit()
    return backup


def clean_old_backups(days: int | None = None) -> int:
    """Deactivate active backups older than `days` (BACKUP_RETENTION_DAYS by default)."""
    if days is None:
        days = current_app.config.get("BACKUP_RETENTION_DAYS", 30)
    days = int(days)
    if days < 1:
        raise BackupError("days must be at least 1")
    cutoff = utcnow() - timedelta(days=days)
    updated = (
        db.session.query(Backup)
        .filter(Backup.is_active.is_(True), Backup.created_at < cutoff)
        .update({Backup.is_active: False}, synchronize_session=False)
    )
    db.session.commit()
    current_app.logger.info("Deactivated %s backups older than %s days", updated, days)
    return updated
