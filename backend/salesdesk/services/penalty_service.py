# Overview: Service-layer operations for penalties; encapsulates business logic and database work.

"""
Penalty points for missed daily communication entries.

A user's yearly total is the sum of their active PenaltyRecord rows (not
cancelled, not resolved). Reaching the year's max_penalty_points sets
is_penalty_deactivated, which blocks login until an admin reactivates them.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import PenaltyRecord, Role, User
from ..models.communications import PENALTY_MANUAL, PENALTY_MISSED_ENTRY
from ..permissions import ADMIN_ROLE
from salesdesk.time_utils import parse_ymd, to_iso_date, to_utc_z, today, utcnow
from . import activity_service, communication_service, session_service


class PenaltyError(ValueError):
    pass


class PenaltyNotFoundError(LookupError):
    pass


DEFAULT_MAX_POINTS = 100
MANUAL_POINTS_RANGE = (1, 100)


def _max_points(year: int) -> int:
    settings = communication_service.get_year_settings(year)
    return settings.max_penalty_points if settings else DEFAULT_MAX_POINTS


def total_points(user_id: int, year: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(PenaltyRecord.points), 0))
        .filter(
            PenaltyRecord.user_id == user_id,
            PenaltyRecord.year == year,
            PenaltyRecord.is_cancelled.is_(False),
            PenaltyRecord.is_resolved.is_(False),
        )
        .scalar()
    )
    return int(total or 0)


def _history(user_id: int, year: int) -> list[PenaltyRecord]:
    return (
        db.session.query(PenaltyRecord)
        .filter(PenaltyRecord.user_id == user_id, PenaltyRecord.year == year)
        .order_by(PenaltyRecord.date.desc(), PenaltyRecord.id.desc())
        .all()
    )


def user_status(user: User, year: int | None = None) -> dict:
    year = year or today().year
    return {
        "user": user.to_summary(),
        "year": year,
        "total_penalty_points": total_points(user.id, year),
        "max_penalty_points": _max_points(year),
        "is_account_active": not user.is_penalty_deactivated,
        "is_penalty_deactivated": user.is_penalty_deactivated,
        "deactivated_at": to_utc_z(user.penalty_deactivated_at),
        "penalty_history": [p.to_dict() for p in _history(user.id, year)],
    }


def all_users_status(year: int | None = None) -> list[dict]:
    """One row per approved, non-virtual, non-admin user; highest totals first."""
    year = year or today().year
    users = (
        db.session.query(User)
        .join(Role, Role.id == User.role_id)
        .filter(User.is_approved.is_(True), User.is_virtual.is_(False), Role.name != ADMIN_ROLE)
        .order_by(User.name.asc())
        .all()
    )
    rows = [user_status(u, year) for u in users]
    rows.sort(key=lambda r: -r["total_penalty_points"])
    return rows


def _deactivate_if_over_limit(user: User, year: int) -> bool:
    if user.is_penalty_deactivated:
        return False
    if total_points(user.id, year) < _max_points(year):
        return False
    user.is_penalty_deactivated = True
    user.penalty_deactivated_at = utcnow()
    current_app.logger.info("User %s deactivated after reaching the penalty limit for %s", user.id, year)
    return True


def apply_manual_penalty(user_id, points, reason, actor: User) -> tuple[PenaltyRecord, bool]:
    """Returns (penalty, deactivated)."""
    try:
        points = int(points)
    except (TypeError, ValueError):
        raise PenaltyError("points must be an integer")
    low, high = MANUAL_POINTS_RANGE
    if points < low or points > high:
        raise PenaltyError(f"points must be between {low} and {high}")
    reason = str(reason or "").strip()
    if not reason:
        raise PenaltyError("reason is required")

    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise PenaltyNotFoundError("User not found")

    on_date = today()
    penalty = PenaltyRecord(
        user_id=user.id,
        points=points,
        reason=reason[:500],
        date=on_date,
        year=on_date.year,
        penalty_type=PENALTY_MANUAL,
        created_by_user_id=actor.id,
    )
    db.session.add(penalty)
    db.session.flush()

    deactivated = _deactivate_if_over_limit(user, on_date.year)
    activity_service.log_activity(
        user_id=actor.id,
        action="penalty_applied",
        description=f"{points} penalty points given to {user.name}",
        details={"user_id": user.id, "points": points, "reason": reason},
        related_model="PenaltyRecord",
        related_id=penalty.id,
        severity="medium",
        commit=False,
    )
    db.session.commit()
    if deactivated:
        session_service.revoke_all_user_sessions(user.id, reason="Penalty limit reached")
    return penalty, deactivated


def cancel_penalty(penalty_id: int, reason, actor: User) -> PenaltyRecord:
    penalty = db.session.get(PenaltyRecord, penalty_id)
    if penalty is None:
        raise PenaltyNotFoundError("Penalty record not found")
    if penalty.is_cancelled:
        raise PenaltyError("This penalty is already cancelled")
    penalty.is_cancelled = True
    penalty.cancelled_by_user_id = actor.id
    penalty.cancelled_at = utcnow()
    penalty.cancellation_reason = (str(reason or "").strip() or None)
    db.session.commit()
    return penalty


def reactivate_user(user_id: int, reason, actor: User) -> tuple[User, int]:
    """Resolve the user's active penalties of the current year and lift the lock."""
    user = db.session.get(User, user_id)
    if user is None:
        raise PenaltyNotFoundError("User not found")

    year = today().year
    now = utcnow()
    active = (
        db.session.query(PenaltyRecord)
        .filter(
            PenaltyRecord.user_id == user.id,
            PenaltyRecord.year == year,
            PenaltyRecord.is_cancelled.is_(False),
            PenaltyRecord.is_resolved.is_(False),
        )
        .all()
    )
    if not active and not user.is_penalty_deactivated:
        raise PenaltyNotFoundError("No active penalties for this user")

    for penalty in active:
        penalty.is_resolved = True
        penalty.resolved_by_user_id = actor.id
        penalty.resolved_at = now
        if reason:
            penalty.notes = str(reason).strip()

    user.is_penalty_deactivated = False
    user.penalty_deactivated_at = None

    activity_service.log_activity(
        user_id=actor.id,
        action="user_reactivated",
        description=f"{user.name} reactivated after penalties",
        details={"user_id": user.id, "resolved": len(active), "reason": reason},
        related_model="User",
        related_id=user.id,
        severity="medium",
        commit=False,
    )
    db.session.commit()
    return user, len(active)


def check_daily(on_date=None) -> dict:
    """
    Penalize every obliged user without an entered record on the given day.

    Skipped when the day's year has no active settings or the penalty
    system is off. At most one missed_entry penalty per user per day; a
    cancelled one still counts, so re-running the check never re-applies it.
    """
    if on_date is None:
        on_date = today()
    elif not isinstance(on_date, date):
        try:
            on_date = parse_ymd(on_date, "date")
        except ValueError as e:
            raise PenaltyError(str(e))

    result = {
        "date": to_iso_date(on_date),
        "skipped": False,
        "reason": None,
        "checked_users": 0,
        "penalized_users": [],
        "deactivated_users": [],
    }

    settings = communication_service.get_year_settings(on_date.year)
    if settings is None:
        result.update(skipped=True, reason="No active communication year settings")
        return result
    if not settings.penalty_system_active:
        result.update(skipped=True, reason="Penalty system is disabled")
        return result
    if not settings.daily_entry_required:
        result.update(skipped=True, reason="Daily entry is not required")
        return result

    users = (
        db.session.query(User)
        .filter(
            User.is_active.is_(True),
            User.is_approved.is_(True),
            User.is_virtual.is_(False),
            User.is_penalty_deactivated.is_(False),
            User.requires_communication_entry.is_(True),
        )
        .all()
    )

    deactivated_ids = []
    for user in users:
        if user.is_admin:
            continue
        result["checked_users"] += 1

        record = communication_service.get_record(user.id, on_date)
        if record is not None and record.is_entered:
            continue

        already = (
            db.session.query(PenaltyRecord.id)
            .filter(
                PenaltyRecord.user_id == user.id,
                PenaltyRecord.date == on_date,
                PenaltyRecord.penalty_type == PENALTY_MISSED_ENTRY,
            )
            .first()
        )
        if already:
            continue

        db.session.add(PenaltyRecord(
            user_id=user.id,
            points=settings.daily_penalty_points,
            reason=f"Günlük iletişim kaydı girilmedi ({on_date.isoformat()})",
            date=on_date,
            year=on_date.year,
            penalty_type=PENALTY_MISSED_ENTRY,
        ))
        if record is not None:
            record.penalty_applied = True
            record.penalty_applied_at = utcnow()
        db.session.flush()
        result["penalized_users"].append(user.to_summary())

        if _deactivate_if_over_limit(user, on_date.year):
            deactivated_ids.append(user.id)
            result["deactivated_users"].append(user.to_summary())

    db.session.commit()
    for user_id in deactivated_ids:
        session_service.revoke_all_user_sessions(user_id, reason="Penalty limit reached")

    current_app.logger.info(
        "Daily penalty check for %s: %s penalized, %s deactivated",
        on_date, len(result["penalized_users"]), len(deactivated_ids),
    )
    return result
