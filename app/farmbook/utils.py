"""
Small parsing helpers shared by the module services.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean_str(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD (a full ISO timestamp is truncated to its date)."""
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    if "T" in s:
        return parse_datetime(s).date()  # type: ignore[union-attr]
    return date.fromisoformat(s)


def parse_datetime(s: str | None) -> datetime | None:
    """Parse an ISO date or timestamp. Aware values are converted to naive UTC."""
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_amount(value) -> Decimal | None:
    """Parse a money amount to a 2-place Decimal; None when absent or not a number."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    try:
        return amount.quantize(Decimal("0.01"))
    except InvalidOperation:
        # More digits than the context precision; always beyond any accepted amount.
        return amount


def parse_int(value, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def iso(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def money(value: Decimal | float | None) -> float:
    if value is None:
        return 0.0
    return float(value)
