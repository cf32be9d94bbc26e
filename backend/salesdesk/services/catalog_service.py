# Overview: Service-layer operations for lookup catalogs; encapsulates business logic and database work.

"""
Admin-maintained lookup lists: payment methods, sale types and payment types.

All three share one shape (unique name, description, active flag, a single
default entry, sort order) and one set of rules:
- setting is_default clears it on every other entry,
- the default entry cannot be deleted.
"""

from __future__ import annotations

from ..extensions import db
from ..models import PaymentMethod, PaymentType, SaleType
from ..models.settings import SALE_TYPE_COLORS


class CatalogError(ValueError):
    pass


class CatalogNotFoundError(LookupError):
    pass


CATALOGS = {
    "payment_method": PaymentMethod,
    "sale_type": SaleType,
    "payment_type": PaymentType,
}

DEFAULT_SALE_TYPES = (
    {"name": "Normal Satış", "description": "Standart satış işlemi", "color": "success", "is_default": True, "sort_order": 1},
    {"name": "Kapora", "description": "Kapora ödemesi", "color": "warning", "is_default": False, "sort_order": 2},
)
DEFAULT_PAYMENT_TYPES = (
    {"name": "Nakit", "description": "Nakit ödeme", "is_default": True, "sort_order": 1},
    {"name": "Kredi Kartı", "description": "Kredi kartı ile ödeme", "is_default": False, "sort_order": 2},
    {"name": "Banka Transferi", "description": "Banka havalesi veya EFT", "is_default": False, "sort_order": 3},
    {"name": "Çek", "description": "Çek ile ödeme", "is_default": False, "sort_order": 4},
)
DEFAULT_PAYMENT_METHODS = (
    {"name": "Nakit", "description": "Peşin ödeme", "is_default": True, "sort_order": 1},
    {"name": "Kredi", "description": "Banka kredisi", "is_default": False, "sort_order": 2},
    {"name": "Taksit", "description": "Taksitli ödeme", "is_default": False, "sort_order": 3},
    {"name": "Diğer", "description": "Diğer ödeme yöntemleri", "is_default": False, "sort_order": 4},
)


def _model(kind: str):
    return CATALOGS[kind]


def list_entries(kind: str, active_only: bool = False) -> list:
    model = _model(kind)
    query = db.session.query(model)
    if active_only:
        query = query.filter(model.is_active.is_(True))
    return query.order_by(model.sort_order.asc(), model.name.asc()).all()


def get_entry(kind: str, entry_id: int):
    entry = db.session.get(_model(kind), entry_id)
    if entry is None:
        raise CatalogNotFoundError(f"{kind.replace('_', ' ').capitalize()} not found")
    return entry


def _clear_other_defaults(model, keep_id: int) -> None:
    db.session.query(model).filter(model.id != keep_id, model.is_default.is_(True)).update(
        {model.is_default: False}, synchronize_session=False
    )


def _apply_fields(model, entry, data: dict, creating: bool) -> None:
    if creating or "name" in data:
        name = str(data.get("name") or "").strip()
        if not name or len(name) > 64:
            raise CatalogError("name is required (max 64 characters)")
        clash = db.session.query(model).filter(model.name == name)
        if entry.id:
            clash = clash.filter(model.id != entry.id)
        if clash.first():
            raise CatalogError("An entry with this name already exists")
        entry.name = name
    if "description" in data:
        entry.description = data.get("description")
    if "is_active" in data:
        entry.is_active = bool(data.get("is_active"))
    if "is_default" in data:
        entry.is_default = bool(data.get("is_default"))
    if "sort_order" in data:
        try:
            entry.sort_order = int(data.get("sort_order") or 0)
        except (TypeError, ValueError):
            raise CatalogError("sort_order must be an integer")
    if model is SaleType and "color" in data:
        color = data.get("color") or "primary"
        if color not in SALE_TYPE_COLORS:
            raise CatalogError(f"color must be one of: {', '.join(SALE_TYPE_COLORS)}")
        entry.color = color
    if entry.is_default and not entry.is_active:
        raise CatalogError("The default entry must be active")


def create_entry(kind: str, data: dict, user_id: int | None):
    model = _model(kind)
    entry = model(created_by_user_id=user_id, is_active=True, is_default=False, sort_order=0)
    _apply_fields(model, entry, data, creating=True)
    db.session.add(entry)
    db.session.flush()
    if entry.is_default:
        _clear_other_defaults(model, entry.id)
    db.session.commit()
    return entry


def update_entry(kind: str, entry_id: int, data: dict):
    model = _model(kind)
    entry = get_entry(kind, entry_id)
    try:
        _apply_fields(model, entry, data, creating=False)
    except CatalogError:
        db.session.rollback()
        raise
    if entry.is_default:
        _clear_other_defaults(model, entry.id)
    db.session.commit()
    return entry


def delete_entry(kind: str, entry_id: int) -> None:
    entry = get_entry(kind, entry_id)
    if entry.is_default:
        raise CatalogError("The default entry cannot be deleted")
    db.session.delete(entry)
    db.session.commit()


def toggle_entry(kind: str, entry_id: int):
    entry = get_entry(kind, entry_id)
    if entry.is_default and entry.is_active:
        raise CatalogError("The default entry cannot be deactivated")
    entry.is_active = not entry.is_active
    db.session.commit()
    return entry


def seed_defaults(user_id: int | None = None) -> dict[str, int]:
    """Create the default entries of each empty catalog. Idempotent."""
    created = {}
    for kind, defaults in (
        ("sale_type", DEFAULT_SALE_TYPES),
        ("payment_type", DEFAULT_PAYMENT_TYPES),
        ("payment_method", DEFAULT_PAYMENT_METHODS),
    ):
        model = _model(kind)
        count = 0
        if not db.session.query(model.id).first():
            for definition in defaults:
                db.session.add(model(created_by_user_id=user_id, is_active=True, **definition))
                count += 1
        created[kind] = count
    db.session.commit()
    return created
