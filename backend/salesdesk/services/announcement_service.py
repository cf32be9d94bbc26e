# Overview: Service-layer operations for announcements; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Announcement, AnnouncementRead, User
from ..models.notifications import ANNOUNCEMENT_PRIORITIES, ANNOUNCEMENT_TYPES, PRIORITY_RANK
from salesdesk.time_utils import parse_iso_datetime, utcnow
from . import activity_service


class AnnouncementError(ValueError):
    pass


class AnnouncementNotFoundError(LookupError):
    pass


MAX_TITLE_LENGTH = 200


def get_announcement(announcement_id: int) -> Announcement:
    announcement = db.session.get(Announcement, announcement_id)
    if announcement is None:
        raise AnnouncementNotFoundError("Announcement not found")
    return announcement


def _visible_query():
    now = utcnow()
    return db.session.query(Announcement).filter(
        Announcement.is_active.is_(True),
        or_(Announcement.expires_at.is_(None), Announcement.expires_at > now),
    )


def _sort_key(announcement: Announcement):
    # Priority first, then newest
    created = announcement.created_at.timestamp() if announcement.created_at else 0
    return (PRIORITY_RANK.get(announcement.priority, 99), -created, -announcement.id)


def list_for_user(user: User, include_read: bool = True) -> list[dict]:
    """Active, unexpired announcements targeted at the user, each with is_read."""
    items = []
    for announcement in _visible_query().all():
        if not announcement.is_targeted_at(user.id):
            continue
        is_read = announcement.is_read_by(user.id)
        if is_read and not include_read:
            continue
        items.append((announcement, is_read))

    items.sort(key=lambda pair: _sort_key(pair[0]))
    return [{**a.to_dict(), "is_read": is_read} for a, is_read in items]


def unread_count(user: User) -> int:
    return len(list_for_user(user, include_read=False))


def mark_read(announcement_id: int, user: User) -> bool:
    """Idempotent. Returns False if the user had already read it."""
    announcement = get_announcement(announcement_id)
    if not announcement.is_targeted_at(user.id):
        raise AnnouncementNotFoundError("Announcement not found")
    if announcement.is_read_by(user.id):
        return False
    db.session.add(AnnouncementRead(announcement_id=announcement.id, user_id=user.id, read_at=utcnow()))
    db.session.commit()
    return True


def list_for_admin() -> list[dict]:
    total_users = (
        db.session.query(User)
        .filter(User.is_active.is_(True), User.is_approved.is_(True), User.is_virtual.is_(False))
        .count()
    )
    result = []
    announcements = db.session.query(Announcement).order_by(Announcement.created_at.desc(), Announcement.id.desc()).all()
    for announcement in announcements:
        audience = len(announcement.target_users) if announcement.target_users else total_users
        read_count = len(announcement.reads)
        result.append({
            **announcement.to_dict(),
            "read_count": read_count,
            "total_users": audience,
            "read_percentage": round(read_count * 100 / audience, 1) if audience else 0,
        })
    return result


def _target_users(ids) -> list[User]:
    if ids in (None, ""):
        return []
    if not isinstance(ids, list):
        raise AnnouncementError("target_users must be a list of user ids")
    try:
        wanted = {int(i) for i in ids}
    except (TypeError, ValueError):
        raise AnnouncementError("target_users must be a list of user ids")
    if not wanted:
        return []
    users = (
        db.session.query(User)
        .filter(User.id.in_(wanted), User.is_active.is_(True))
        .all()
    )
    if len(users) != len(wanted):
        raise AnnouncementError("Some target users do not exist or are inactive")
    return users


def _apply_fields(announcement: Announcement, data: dict, creating: bool) -> None:
    if creating or "title" in data:
        title = str(data.get("title") or "").strip()
        if not title:
            raise AnnouncementError("title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise AnnouncementError(f"title must be at most {MAX_TITLE_LENGTH} characters")
        announcement.title = title
    if creating or "content" in data:
        content = str(data.get("content") or "").strip()
        if not content:
            raise AnnouncementError("content is required")
        announcement.content = content
    if creating or "type" in data:
        value = data.get("type") or "info"
        if value not in ANNOUNCEMENT_TYPES:
            raise AnnouncementError(f"type must be one of: {', '.join(ANNOUNCEMENT_TYPES)}")
        announcement.type = value
    if creating or "priority" in data:
        value = data.get("priority") or "medium"
        if value not in ANNOUNCEMENT_PRIORITIES:
            raise AnnouncementError(f"priority must be one of: {', '.join(ANNOUNCEMENT_PRIORITIES)}")
        announcement.priority = value
    if "is_active" in data:
        announcement.is_active = bool(data.get("is_active"))
    if "expires_at" in data:
        try:
            announcement.expires_at = parse_iso_datetime(data.get("expires_at"))
        except ValueError:
            raise AnnouncementError("expires_at must be an ISO-8601 datetime")
    if "target_users" in data:
        announcement.target_users = _target_users(data.get("target_users"))


def _log(actor: User, action: str, announcement: Announcement, description: str) -> None:
    activity_service.log_activity(
        user_id=actor.id,
        action=action,
        description=description,
        details={"title": announcement.title, "priority": announcement.priority},
        related_model="Announcement",
        related_id=announcement.id,
        severity="high" if announcement.priority == "urgent" else "medium",
        commit=False,
    )


def create_announcement(data: dict, actor: User) -> Announcement:
    announcement = Announcement(created_by_user_id=actor.id, is_active=True)
    _apply_fields(announcement, data, creating=True)
    db.session.add(announcement)
    db.session.flush()
    _log(actor, "announcement_created", announcement, f"Announcement created: {announcement.title}")
    db.session.commit()
    return announcement


def update_announcement(announcement_id: int, data: dict, actor: User) -> Announcement:
    announcement = get_announcement(announcement_id)
    try:
        _apply_fields(announcement, data, creating=False)
    except AnnouncementError:
        db.session.rollback()
        raise
    _log(actor, "announcement_updated", announcement, f"Announcement updated: {announcement.title}")
    db.session.commit()
    return announcement


def delete_announcement(announcement_id: int, actor: User) -> None:
    announcement = get_announcement(announcement_id)
    _log(actor, "announcement_deleted", announcement, f"Announcement deleted: {announcement.title}")
    announcement.target_users = []
    db.session.delete(announcement)
    db.session.commit()
