from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional


# Turkey has used a fixed UTC+3 offset since 2016.
TR_UTC_OFFSET = timedelta(hours=3)

TURKISH_MONTHS = (
    "Ocak", "Şubat", "Mart", "Nisan", "Mayıs", "Haziran",
    "Temmuz", "Ağustos", "Eylül", "Ekim", "Kasım", "Aralık",
)

_YMD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_ymd(value: Optional[str], field: str = "date") -> Optional[date]:
    """Strict YYYY-MM-DD parsing; raises ValueError naming the field."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not _YMD_RE.match(s):
        raise ValueError(f"{field} must be a valid date (YYYY-MM-DD)")
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise ValueError(f"{field} must be a valid date (YYYY-MM-DD)")


def tr_local_to_utc(dt: datetime) -> datetime:
    """Convert a naive Turkey-local datetime to naive UTC."""
    return dt - TR_UTC_OFFSET


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    start = date(year, month, 1)
    if month == 12:
        end = date(year, 12, 31)
    else:
        end = date(year, month + 1, 1) - timedelta(days=1)
    return start, end


def turkish_period_name(month: int, year: int) -> str:
    return f"{TURKISH_MONTHS[month - 1]} {year}"


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
