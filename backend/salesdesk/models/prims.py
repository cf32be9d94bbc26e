from __future__ import annotations

from ..extensions import db
from salesdesk.time_utils import to_utc_z, utcnow


TX_EARNING = "kazanç"
TX_DEDUCTION = "kesinti"
TX_TRANSFER_IN = "transfer_gelen"
TX_TRANSFER_OUT = "transfer_giden"
TRANSACTION_TYPES = (TX_EARNING, TX_DEDUCTION, TX_TRANSFER_IN, TX_TRANSFER_OUT)

TX_PENDING = "beklemede"
TX_APPROVED = "onaylandı"
TX_CANCELLED = "iptal"
TRANSACTION_STATUSES = (TX_PENDING, TX_APPROVED, TX_CANCELLED)


class PrimRate(db.Model):
    """
    Commission rate, stored as a percentage (1.0 means 1%).

    Exactly one rate is active; setting a new rate deactivates the others.
    """
    __tablename__ = "prim_rates"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    rate = db.Column(db.Float, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    created_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rate": self.rate,
            "description": self.description,
            "is_active": self.is_active,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }


class PrimPeriod(db.Model):
    """Monthly commission accounting period (dönem), e.g. "Mart 2025"."""
    __tablename__ = "prim_periods"
    __table_args__ = (
        db.UniqueConstraint("month", "year", name="uq_prim_periods_month_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "month": self.month,
            "year": self.year,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class PrimTransaction(db.Model):
    """
    Ledger line of a salesperson's commission in a period.

    Earnings are the sum of non-cancelled amounts; deductions and outgoing
    transfers carry negative amounts.
    """
    __tablename__ = "prim_transactions"
    __table_args__ = (
        db.Index("ix_prim_tx_salesperson_period", "salesperson_id", "prim_period_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    salesperson_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    prim_period_id = db.Column(db.Integer, db.ForeignKey("prim_periods.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=TX_APPROVED, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    salesperson = db.relationship("User", foreign_keys=[salesperson_id])
    sale = db.relationship("Sale", backref=db.backref("prim_transactions", lazy=True))
    prim_period = db.relationship("PrimPeriod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "salesperson": self.salesperson.to_summary() if self.salesperson else None,
            "sale": (
                {"id": self.sale.id, "contract_no": self.sale.contract_no, "customer_name": self.sale.customer_name}
                if self.sale else None
            ),
            "prim_period": {"id": self.prim_period.id, "name": self.prim_period.name} if self.prim_period else None,
            "transaction_type": self.transaction_type,
            "amount": self.amount,
            "description": self.description,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
