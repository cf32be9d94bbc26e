from __future__ import annotations

from ..extensions import db
from salesdesk.time_utils import to_iso_date, to_utc_z, utcnow


SALE_TYPE_SATIS = "satis"
SALE_TYPE_KAPORA = "kapora"
BUILTIN_SALE_TYPES = ("satis", "kapora", "yazlik", "kislik")

PRIM_UNPAID = "ödenmedi"
PRIM_PAID = "ödendi"
PRIM_STATUSES = (PRIM_UNPAID, PRIM_PAID)

STATUS_ACTIVE = "aktif"
STATUS_CANCELLED = "iptal"
SALE_STATUSES = (STATUS_ACTIVE, STATUS_CANCELLED)


class Sale(db.Model):
    """
    A unit sale or deposit (kapora) recorded by a salesperson.

    Prim (commission) fields are derived from the price fields and the prim
    rate active at calculation time. Kapora records carry no prim until they
    are converted into a sale.

    Transfer and modification history are append-only JSON lists; callers
    reassign the list so the change is persisted.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_salesperson_date", "salesperson_id", "sale_date"),
        db.Index("ix_sales_type_status", "sale_type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Customer and unit
    customer_name = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True)
    block_no = db.Column(db.String(32), nullable=False)
    apartment_no = db.Column(db.String(32), nullable=False)
    period_no = db.Column(db.String(32), nullable=False)
    contract_no = db.Column(db.String(64), nullable=False, unique=True, index=True)

    sale_type = db.Column(db.String(64), nullable=False, default=SALE_TYPE_SATIS, index=True)
    sale_date = db.Column(db.Date, nullable=True, index=True)
    kapora_date = db.Column(db.Date, nullable=True, index=True)
    entry_date = db.Column(db.String(5), nullable=True)  # GG/AA
    exit_date = db.Column(db.String(5), nullable=True)  # GG/AA

    # Prices (TL)
    list_price = db.Column(db.Float, nullable=False, default=0)
    original_list_price = db.Column(db.Float, nullable=False, default=0)
    discount_rate = db.Column(db.Float, nullable=False, default=0)
    discounted_list_price = db.Column(db.Float, nullable=False, default=0)
    activity_sale_price = db.Column(db.Float, nullable=False, default=0)
    payment_type = db.Column(db.String(64), nullable=True)

    # Prim
    prim_rate = db.Column(db.Float, nullable=True)
    base_prim_price = db.Column(db.Float, nullable=False, default=0)
    prim_amount = db.Column(db.Float, nullable=False, default=0)
    prim_status = db.Column(db.String(16), nullable=False, default=PRIM_UNPAID, index=True)
    prim_period_id = db.Column(db.Integer, db.ForeignKey("prim_periods.id"), nullable=True, index=True)
    prim_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    prim_status_updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    salesperson_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Lifecycle
    status = db.Column(db.String(8), nullable=False, default=STATUS_ACTIVE, index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    notes_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes_updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    transfer_history = db.Column(db.JSON, nullable=False, default=list)
    modification_history = db.Column(db.JSON, nullable=False, default=list)

    # Provenance
    is_imported = db.Column(db.Boolean, nullable=False, default=False, index=True)
    imported_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    imported_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    is_historical = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)

    salesperson = db.relationship("User", foreign_keys=[salesperson_id])
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_user_id])
    prim_period = db.relationship("PrimPeriod", backref=db.backref("sales", lazy=True))

    @property
    def is_cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED

    @property
    def is_kapora(self) -> bool:
        return self.sale_type == SALE_TYPE_KAPORA

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "phone": self.phone,
            "block_no": self.block_no,
            "apartment_no": self.apartment_no,
            "period_no": self.period_no,
            "contract_no": self.contract_no,
            "sale_type": self.sale_type,
            "sale_date": to_iso_date(self.sale_date),
            "kapora_date": to_iso_date(self.kapora_date),
            "entry_date": self.entry_date,
            "exit_date": self.exit_date,
            "list_price": self.list_price,
            "original_list_price": self.original_list_price,
            "discount_rate": self.discount_rate,
            "discounted_list_price": self.discounted_list_price,
            "activity_sale_price": self.activity_sale_price,
            "payment_type": self.payment_type,
            "prim_rate": self.prim_rate,
            "base_prim_price": self.base_prim_price,
            "prim_amount": self.prim_amount,
            "prim_status": self.prim_status,
            "prim_period": {"id": self.prim_period.id, "name": self.prim_period.name} if self.prim_period else None,
            "salesperson": self.salesperson.to_summary() if self.salesperson else None,
            "status": self.status,
            "is_cancelled": self.is_cancelled,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by.to_summary() if self.cancelled_by else None,
            "notes": self.notes,
            "notes_updated_at": to_utc_z(self.notes_updated_at),
            "transfer_history": self.transfer_history or [],
            "modification_history": self.modification_history or [],
            "is_imported": self.is_imported,
            "imported_at": to_utc_z(self.imported_at),
            "is_historical": self.is_historical,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
