# Overview: Service-layer operations for activity logs; encapsulates business logic and database work.

from __future__ import annotations

from collections import Counter
from datetime import timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import ActivityLog, User
from ..models.notifications import SEVERITIES
from salesdesk.time_utils import utcnow


MAX_PAGE_SIZE = 100


def log_activity(
    user_id: int | None,
    action: str,
    description: str,
    details: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    related_model: str | None = None,
    related_id: int | None = None,
    severity: str = "low",
    commit: bool = True,
) -> ActivityLog:
    """
    Append an activity log entry.

    commit=False lets callers write the log in the same transaction as the
    change it describes.
    """
    if severity not in SEVERITIES:
        raise ValueError(f"severity must be one of: {', '.join(SEVERITIES)}")

    entry = ActivityLog(
        user_id=user_id,
        action=action,
        description=description[:500],
        details=details,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        related_model=related_model,
        related_id=related_id,
        severity=severity,
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry


def _paginate(query, page: int, limit: int) -> dict:
    page = max(1, page or 1)
    limit = min(MAX_PAGE_SIZE, max(1, limit or 20))
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [item.to_dict() for item in items],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


def list_user_activities(user_id: int, page: int = 1, limit: int = 20, action: str | None = None) -> dict:
    query = db.session.query(ActivityLog).filter(ActivityLog.user_id == user_id)
    if action:
        query = query.filter(ActivityLog.action == action)
    query = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    return _paginate(query, page, limit)


def unread_count(user_id: int) -> int:
    return db.session.query(ActivityLog).filter_by(user_id=user_id, is_read=False).count()


def mark_read(activity_id: int, user_id: int) -> ActivityLog | None:
    entry = db.session.query(ActivityLog).filter_by(id=activity_id, user_id=user_id).first()
    if not entry:
        return None
    entry.is_read = True
    db.session.commit()
    return entry


def mark_all_read(user_id: int) -> int:
    updated = db.session.query(ActivityLog).filter_by(user_id=user_id, is_read=False).update(
        {ActivityLog.is_read: True}, synchronize_session=False
    )
    db.session.commit()
    return updated


def list_system_activities(
    page: int = 1,
    limit: int = 50,
    user_id: int | None = None,
    action: str | None = None,
    severity: str | None = None,
) -> dict:
    query = db.session.query(ActivityLog)
    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)
    if action:
        query = query.filter(ActivityLog.action == action)
    if severity:
        query = query.filter(ActivityLog.severity == severity)
    query = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    return _paginate(query, page, limit)


def activity_stats(days: int = 7) -> dict:
    """Counts of the last `days` days grouped by action, user, day and severity."""
    if days < 1 or days > 365:
        raise ValueError("days must be between 1 and 365")
    since = utcnow() - timedelta(days=days)
    base = db.session.query(ActivityLog).filter(ActivityLog.created_at >= since)

    by_action = (
        base.with_entities(ActivityLog.action, func.count(ActivityLog.id))
        .group_by(ActivityLog.action)
        .order_by(func.count(ActivityLog.id).desc())
        .all()
    )
    by_user = (
        base.join(User, User.id == ActivityLog.user_id)
        .with_entities(User.id, User.name, func.count(ActivityLog.id))
        .group_by(User.id, User.name)
        .order_by(func.count(ActivityLog.id).desc())
        .limit(10)
        .all()
    )
    by_severity = (
        base.with_entities(ActivityLog.severity, func.count(ActivityLog.id))
        .group_by(ActivityLog.severity)
        .all()
    )
    by_day = Counter(
        created_at.date().isoformat()
        for (created_at,) in base.with_entities(ActivityLog.created_at).all()
    )

    return {
        "days": days,
        "total": base.count(),
        "by_action": [{"action": action, "count": count} for action, count in by_action],
        "by_user": [{"user_id": uid, "name": name, "count": count} for uid, name, count in by_user],
        "by_day": [{"date": day, "count": by_day[day]} for day in sorted(by_day)],
        "by_severity": {severity: count for severity, count in by_severity},
    }
