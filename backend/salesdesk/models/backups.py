from __future__ import annotations

from ..extensions import db
from salesdesk.time_utils import to_utc_z, utcnow


BACKUP_TYPES = ("sales", "communications", "manual", "rollback", "pre-restore", "test")


class Backup(db.Model):
    """
    JSON snapshot of sales or communication records.

    Snapshots live in the database so they survive container restarts;
    deleting a backup only clears is_active.
    """
    __tablename__ = "backups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(255), nullable=False, unique=True, index=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.String(500), nullable=True)
    data = db.Column(db.JSON, nullable=False)
    record_count = db.Column(db.Integer, nullable=False, default=0)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    metadata_json = db.Column(db.JSON, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), index=True)

    created_by = db.relationship("User")

    @property
    def formatted_size(self) -> str:
        size = float(self.file_size or 0)
        if size < 1024:
            return f"{int(size)} Bytes"
        for unit in ("KB", "MB", "GB"):
            size /= 1024
            if size < 1024 or unit == "GB":
                break
        return f"{size:.2f} {unit}"

    @property
    def age_in_days(self) -> int:
        if not self.created_at:
            return 0
        return (utcnow() - self.created_at.replace(tzinfo=None)).days

    def to_dict(self, include_data: bool = False) -> dict:
        result = {
            "id": self.id,
            "filename": self.filename,
            "type": self.type,
            "description": self.description,
            "record_count": self.record_count,
            "file_size": self.file_size,
            "formatted_size": self.formatted_size,
            "age_in_days": self.age_in_days,
            "metadata": self.metadata_json or {},
            "is_active": self.is_active,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_data:
            result["data"] = self.data
        return result
