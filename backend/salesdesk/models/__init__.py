# Overview: SQLAlchemy models package; re-exports every model for Alembic discovery and imports.

from .auth import Role, User, Permission, RolePermission, UserPermissionOverride, SessionToken
from .prims import PrimRate, PrimPeriod, PrimTransaction
from .sales import Sale
from .settings import SaleType, PaymentType, PaymentMethod
from .communications import CommunicationType, CommunicationRecord, CommunicationYear, PenaltyRecord
from .notifications import Announcement, AnnouncementRead, ActivityLog, announcement_targets
from .backups import Backup

__all__ = [
    "Role",
    "User",
    "Permission",
    "RolePermission",
    "UserPermissionOverride",
    "SessionToken",
    "PrimRate",
    "PrimPeriod",
    "PrimTransaction",
    "Sale",
    "SaleType",
    "PaymentType",
    "PaymentMethod",
    "CommunicationType",
    "CommunicationRecord",
    "CommunicationYear",
    "PenaltyRecord",
    "Announcement",
    "AnnouncementRead",
    "ActivityLog",
    "announcement_targets",
    "Backup",
]
