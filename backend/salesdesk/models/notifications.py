from __future__ import annotations

from ..extensions import db
from salesdesk.time_utils import to_utc_z, utcnow


ANNOUNCEMENT_TYPES = ("info", "warning", "success", "danger")
ANNOUNCEMENT_PRIORITIES = ("low", "medium", "high", "urgent")
PRIORITY_RANK = {"urgent": 0, "high": 1, "medium": 2, "low": 3}

SEVERITIES = ("low", "medium", "high", "critical")


announcement_targets = db.Table(
    "announcement_targets",
    db.Column("announcement_id", db.Integer, db.ForeignKey("announcements.id"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)


class Announcement(db.Model):
    """
    Broadcast message from administrators.

    An empty target list means every user sees it. Expired or inactive
    announcements are hidden from user feeds but kept for the admin list.
    """
    __tablename__ = "announcements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(16), nullable=False, default="info")
    priority = db.Column(db.String(16), nullable=False, default="medium")
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    target_users = db.relationship("User", secondary=announcement_targets, lazy="subquery")
    reads = db.relationship("AnnouncementRead", backref="announcement", lazy=True, cascade="all, delete-orphan")

    def is_targeted_at(self, user_id: int) -> bool:
        return not self.target_users or any(u.id == user_id for u in self.target_users)

    def is_read_by(self, user_id: int) -> bool:
        return any(r.user_id == user_id for r in self.reads)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "type": self.type,
            "priority": self.priority,
            "is_active": self.is_active,
            "expires_at": to_utc_z(self.expires_at),
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "target_users": [u.to_summary() for u in self.target_users],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AnnouncementRead(db.Model):
    __tablename__ = "announcement_reads"
    __table_args__ = (
        db.UniqueConstraint("announcement_id", "user_id", name="uq_announcement_reads"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    announcement_id = db.Column(db.Integer, db.ForeignKey("announcements.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    read_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())


class ActivityLog(db.Model):
    """Audit trail of user and system actions."""
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.String(500), nullable=False)
    details = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    related_model = db.Column(db.String(64), nullable=True)
    related_id = db.Column(db.Integer, nullable=True)
    severity = db.Column(db.String(16), nullable=False, default="low", index=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), index=True)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user.to_summary() if self.user else None,
            "action": self.action,
            "description": self.description,
            "details": self.details,
            "ip_address": self.ip_address,
            "related_model": self.related_model,
            "related_id": self.related_id,
            "severity": self.severity,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
