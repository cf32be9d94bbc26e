from __future__ import annotations

from ..extensions import db
from salesdesk.time_utils import to_iso_date, to_utc_z, utcnow


TYPE_CATEGORIES = ("incoming", "outgoing", "meeting", "other")

# Built-in type codes and the record column each one is stored in.
CODE_FIELD_MAP = {
    "WHATSAPP_INCOMING": "whatsapp_incoming",
    "CALL_INCOMING": "call_incoming",
    "CALL_OUTGOING": "call_outgoing",
    "MEETING_NEW_CUSTOMER": "meeting_new_customer",
    "MEETING_AFTER_SALE": "meeting_after_sale",
}
COUNTER_FIELDS = tuple(CODE_FIELD_MAP.values())

YEAR_HISTORICAL = "historical"
YEAR_ACTIVE = "active"

PENALTY_MISSED_ENTRY = "missed_entry"
PENALTY_MANUAL = "manual"
PENALTY_LATE_ENTRY = "late_entry"
PENALTY_INVALID_ENTRY = "invalid_entry"
PENALTY_TYPES = (PENALTY_MISSED_ENTRY, PENALTY_MANUAL, PENALTY_LATE_ENTRY, PENALTY_INVALID_ENTRY)


class CommunicationType(db.Model):
    """
    Kind of customer contact that salespeople count daily.

    max_value 0 means unlimited. Codes are stored uppercased.
    """
    __tablename__ = "communication_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(16), nullable=False, default="other")
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    color = db.Column(db.String(7), nullable=False, default="#007bff")
    icon = db.Column(db.String(64), nullable=False, default="FiMessageCircle")
    min_value = db.Column(db.Integer, nullable=False, default=0)
    max_value = db.Column(db.Integer, nullable=False, default=0)
    is_required = db.Column(db.Boolean, nullable=False, default=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "category": self.category,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "color": self.color,
            "icon": self.icon,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "is_required": self.is_required,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CommunicationRecord(db.Model):
    """
    One salesperson's communication counts for one day.

    Built-in types have their own columns; custom type codes go into
    extra_counts. Totals are stored so reports can aggregate in SQL.
    """
    __tablename__ = "communication_records"
    __table_args__ = (
        db.UniqueConstraint("salesperson_id", "date", name="uq_communication_records_salesperson_date"),
        db.Index("ix_communication_records_year_month", "year", "month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    salesperson_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    day = db.Column(db.Integer, nullable=False)

    whatsapp_incoming = db.Column(db.Integer, nullable=False, default=0)
    call_incoming = db.Column(db.Integer, nullable=False, default=0)
    call_outgoing = db.Column(db.Integer, nullable=False, default=0)
    meeting_new_customer = db.Column(db.Integer, nullable=False, default=0)
    meeting_after_sale = db.Column(db.Integer, nullable=False, default=0)
    extra_counts = db.Column(db.JSON, nullable=False, default=dict)

    total_meetings = db.Column(db.Integer, nullable=False, default=0)
    total_communication = db.Column(db.Integer, nullable=False, default=0)

    is_entered = db.Column(db.Boolean, nullable=False, default=False)
    entered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    entered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    penalty_applied = db.Column(db.Boolean, nullable=False, default=False)
    penalty_applied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    is_historical_migration = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)

    salesperson = db.relationship("User", foreign_keys=[salesperson_id])

    def recalculate_totals(self) -> None:
        self.total_meetings = (self.meeting_new_customer or 0) + (self.meeting_after_sale or 0)
        self.total_communication = (
            (self.whatsapp_incoming or 0)
            + (self.call_incoming or 0)
            + (self.call_outgoing or 0)
            + self.total_meetings
            + sum(int(v or 0) for v in (self.extra_counts or {}).values())
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "salesperson": self.salesperson.to_summary() if self.salesperson else None,
            "date": to_iso_date(self.date),
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "whatsapp_incoming": self.whatsapp_incoming,
            "call_incoming": self.call_incoming,
            "call_outgoing": self.call_outgoing,
            "meeting_new_customer": self.meeting_new_customer,
            "meeting_after_sale": self.meeting_after_sale,
            "extra_counts": self.extra_counts or {},
            "total_meetings": self.total_meetings,
            "total_communication": self.total_communication,
            "is_entered": self.is_entered,
            "entered_at": to_utc_z(self.entered_at),
            "penalty_applied": self.penalty_applied,
            "penalty_applied_at": to_utc_z(self.penalty_applied_at),
            "notes": self.notes,
            "is_historical_migration": self.is_historical_migration,
        }


class CommunicationYear(db.Model):
    """
    Per-year container for penalty settings and legacy yearly totals.

    Historical years hold totals keyed by user id (as strings) in
    yearly_communication_data and yearly_sales_data; only the active year's
    settings drive the daily penalty check.
    """
    __tablename__ = "communication_years"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False, unique=True, index=True)
    type = db.Column(db.String(16), nullable=False, default=YEAR_ACTIVE)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Settings
    daily_entry_required = db.Column(db.Boolean, nullable=False, default=True)
    penalty_system_active = db.Column(db.Boolean, nullable=False, default=True)
    daily_penalty_points = db.Column(db.Integer, nullable=False, default=10)
    max_penalty_points = db.Column(db.Integer, nullable=False, default=100)
    entry_deadline_hour = db.Column(db.Integer, nullable=False, default=23)
    entry_deadline_minute = db.Column(db.Integer, nullable=False, default=59)

    # Historical data
    monthly_data = db.Column(db.JSON, nullable=False, default=dict)
    yearly_sales_data = db.Column(db.JSON, nullable=False, default=dict)
    yearly_communication_data = db.Column(db.JSON, nullable=False, default=dict)
    historical_users = db.Column(db.JSON, nullable=False, default=list)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)

    def settings_dict(self) -> dict:
        return {
            "daily_entry_required": self.daily_entry_required,
            "penalty_system_active": self.penalty_system_active,
            "daily_penalty_points": self.daily_penalty_points,
            "max_penalty_points": self.max_penalty_points,
            "entry_deadline_hour": self.entry_deadline_hour,
            "entry_deadline_minute": self.entry_deadline_minute,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year": self.year,
            "type": self.type,
            "is_active": self.is_active,
            "settings": self.settings_dict(),
            "monthly_data": self.monthly_data or {},
            "yearly_sales_data": self.yearly_sales_data or {},
            "yearly_communication_data": self.yearly_communication_data or {},
            "historical_users": self.historical_users or [],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PenaltyRecord(db.Model):
    """
    A single penalty point entry against a user.

    Only active entries (neither cancelled nor resolved) count toward the
    user's yearly total.
    """
    __tablename__ = "penalty_records"
    __table_args__ = (
        db.Index("ix_penalty_records_user_year", "user_id", "year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(500), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    penalty_type = db.Column(db.String(16), nullable=False, default=PENALTY_MANUAL)

    is_cancelled = db.Column(db.Boolean, nullable=False, default=False)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    is_resolved = db.Column(db.Boolean, nullable=False, default=False)
    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])

    @property
    def is_active(self) -> bool:
        return not self.is_cancelled and not self.is_resolved

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user.to_summary() if self.user else None,
            "points": self.points,
            "reason": self.reason,
            "date": to_iso_date(self.date),
            "year": self.year,
            "type": self.penalty_type,
            "is_active": self.is_active,
            "is_cancelled": self.is_cancelled,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "is_resolved": self.is_resolved,
            "resolved_at": to_utc_z(self.resolved_at),
            "created_by_user_id": self.created_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
