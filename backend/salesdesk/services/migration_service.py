# Overview: Service-layer operations for historical data migration; encapsulates business logic and database work.

"""
Spread the yearly communication totals of historical years into daily
CommunicationRecords so reports can treat old years like current ones.

Each counted unit lands on a random day of its year. Generated records are
flagged is_historical_migration so a forced re-run can replace them.
Set MIGRATION_RANDOM_SEED for a repeatable distribution.
"""

from __future__ import annotations

import random
from collections import defaultdict
from datetime import date, timedelta

from flask import current_app

from ..extensions import db
from ..models import CommunicationRecord, CommunicationYear, Sale, User
from ..models.communications import COUNTER_FIELDS, YEAR_HISTORICAL
from salesdesk.time_utils import utcnow
from . import activity_service, communication_service


class MigrationError(ValueError):
    pass


# Legacy camelCase keys of yearly totals.
LEGACY_KEYS = {
    "whatsappIncoming": "whatsapp_incoming",
    "callIncoming": "call_incoming",
    "callOutgoing": "call_outgoing",
    "meetingNewCustomer": "meeting_new_customer",
    "meetingAfterSale": "meeting_after_sale",
}

# Upper bound of one yearly counter; each unit is placed on a day one by one.
MAX_YEARLY_TOTAL = 100_000


def _yearly_totals(raw, year: int, user_key) -> dict[str, int]:
    totals = {field: 0 for field in COUNTER_FIELDS}
    if not isinstance(raw, dict):
        return totals
    for key, value in raw.items():
        field = LEGACY_KEYS.get(key, key)
        if field in totals:
            try:
                number = 0 if value is None or value == "" else communication_service.whole_number(value)
            except (TypeError, ValueError, OverflowError):
                raise MigrationError(f"Year {year}: user {user_key}: {key} must be an integer")
            if number > MAX_YEARLY_TOTAL:
                raise MigrationError(
                    f"Year {year}: user {user_key}: {key} is {number}, above the limit of {MAX_YEARLY_TOTAL}"
                )
            totals[field] = max(0, number)
    return totals


def _migrated_count(year: int) -> int:
    return (
        db.session.query(CommunicationRecord)
        .filter(CommunicationRecord.year == year, CommunicationRecord.is_historical_migration.is_(True))
        .count()
    )


def historical_years() -> list[dict]:
    years = (
        db.session.query(CommunicationYear)
        .filter(CommunicationYear.type == YEAR_HISTORICAL)
        .order_by(CommunicationYear.year.desc())
        .all()
    )
    result = []
    for year in years:
        sales_data = year.yearly_sales_data or {}
        comm_data = year.yearly_communication_data or {}
        migrated = _migrated_count(year.year)
        migrated_sales = (
            db.session.query(Sale)
            .filter(Sale.is_historical.is_(True), Sale.sale_date >= date(year.year, 1, 1), Sale.sale_date <= date(year.year, 12, 31))
            .count()
        )
        result.append({
            "year": year.year,
            "has_data": bool(sales_data) or bool(comm_data),
            "users_count": len(sales_data),
            "communication_users_count": len(comm_data),
            "already_migrated": migrated > 0 or migrated_sales > 0,
            "migrated_records": {"communication": migrated, "sales": migrated_sales},
        })
    return result


def distribute(year: int, totals: dict[str, int], rng: random.Random) -> dict[date, dict[str, int]]:
    """Place each unit of each total on a random day of the year."""
    start = date(year, 1, 1)
    days_in_year = (date(year, 12, 31) - start).days + 1
    daily: dict[date, dict[str, int]] = defaultdict(lambda: {field: 0 for field in COUNTER_FIELDS})
    for field, count in totals.items():
        for _ in range(count):
            day = start + timedelta(days=rng.randrange(days_in_year))
            daily[day][field] += 1
    return dict(sorted(daily.items()))


def _resolve_user(user_key) -> User | None:
    try:
        user_id = int(user_key)
    except (TypeError, ValueError):
        return None
    return db.session.get(User, user_id)


def _migrate_year(year_row: CommunicationYear, rng: random.Random, dry_run: bool, force: bool) -> dict:
    year = year_row.year
    stats = {
        "year": year,
        "communication_records": 0,
        "sales_records": 0,
        "processed_users": 0,
        "skipped_users": [],
        "skipped_days": 0,
        "replaced_records": 0,
    }

    existing = _migrated_count(year)
    if existing and not force:
        raise MigrationError(f"Year {year}: already migrated ({existing} records). Use force to override")
    if existing and force:
        stats["replaced_records"] = existing
        if not dry_run:
            db.session.query(CommunicationRecord).filter(
                CommunicationRecord.year == year,
                CommunicationRecord.is_historical_migration.is_(True),
            ).delete(synchronize_session=False)

    comm_data = year_row.yearly_communication_data or {}
    user_keys = sorted(set(comm_data) | set(year_row.yearly_sales_data or {}), key=str)
    now = utcnow()
    for user_key in user_keys:
        totals = _yearly_totals(comm_data.get(user_key), year, user_key)
        stats["processed_users"] += 1
        if not any(totals.values()):
            continue
        user = _resolve_user(user_key)
        if user is None:
            stats["skipped_users"].append(str(user_key))
            continue

        daily = distribute(year, totals, rng)
        taken = set()
        if daily:
            taken = {
                d for (d,) in db.session.query(CommunicationRecord.date).filter(
                    CommunicationRecord.salesperson_id == user.id,
                    CommunicationRecord.year == year,
                    CommunicationRecord.is_historical_migration.is_(False),
                )
            }
        for day, counts in daily.items():
            if day in taken:
                stats["skipped_days"] += 1
                continue
            stats["communication_records"] += 1
            if dry_run:
                continue
            record = CommunicationRecord(
                salesperson_id=user.id,
                date=day,
                year=day.year,
                month=day.month,
                day=day.day,
                extra_counts={},
                is_entered=True,
                entered_at=now,
                is_historical_migration=True,
                notes="Geçmiş yıl verisinden aktarıldı",
                **counts,
            )
            record.recalculate_totals()
            db.session.add(record)
    return stats


def historical_to_daily(years, dry_run: bool = True, force: bool = False, user_id: int | None = None) -> dict:
    """
    Migrate each requested year; a failing year is reported in `errors`
    and does not stop the others.
    """
    if not isinstance(years, list) or not years:
        raise MigrationError("years must be a non-empty list")
    try:
        years = [int(y) for y in years]
    except (TypeError, ValueError):
        raise MigrationError("years must be integers")

    rng = random.Random(current_app.config.get("MIGRATION_RANDOM_SEED"))
    results = {
        "processed_years": [],
        "total_communication_records": 0,
        "total_sales_records": 0,
        "errors": [],
        "dry_run": dry_run,
    }

    for year in years:
        year_row = db.session.query(CommunicationYear).filter_by(year=year).first()
        if year_row is None:
            results["errors"].append(f"Year {year}: no data found")
            continue
        if not (year_row.yearly_communication_data or year_row.yearly_sales_data):
            results["errors"].append(f"Year {year}: no yearly data found")
            continue
        try:
            with db.session.begin_nested():
                stats = _migrate_year(year_row, rng, dry_run, force)
        except MigrationError as e:
            results["errors"].append(str(e))
            continue
        results["processed_years"].append(stats)
        results["total_communication_records"] += stats["communication_records"]

    if not dry_run:
        activity_service.log_activity(
            user_id=user_id,
            action="historical_migration",
            description=f"Historical data migrated: {results['total_communication_records']} communication records",
            details={"years": years, "force": force},
            related_model="CommunicationRecord",
            severity="high",
            commit=False,
        )
    db.session.commit()
    current_app.logger.info(
        "Historical migration for %s (dry_run=%s): %s communication records",
        years, dry_run, results["total_communication_records"],
    )
    return results
