"""Shared parsing utilities for provider clients.

Provider SDKs hand back a mix of plain dicts and generated model objects,
with dates as ISO strings and amounts as strings, floats or nested
``{"amount": ...}`` objects. These helpers flatten those differences.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from a dict or an object attribute.

    Args:
        obj: A dict, SDK model object, or None.
        name: Key / attribute name.
        default: Returned when the field is absent or None.
    """
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(name)
    elif hasattr(obj, "get") and not hasattr(obj, name):
        # SDK schema objects are dict-like
        try:
            value = obj.get(name)
        except (TypeError, KeyError):
            value = None
    else:
        value = getattr(obj, name, None)
    return default if value is None else value


def first_present(obj: Any, aliases: Iterable[str]) -> tuple[str, Any] | None:
    """Return ``(alias, value)`` for the first alias with a non-empty value.

    Aliases are tried in order; empty strings count as missing.
    """
    for alias in aliases:
        value = get_field(obj, alias)
        if value is None or value == "":
            continue
        return alias, value
    return None


def parse_decimal(value: Any, default: Decimal | None = None) -> Decimal | None:
    """Convert a provider amount to Decimal.

    Accepts numbers, numeric strings, and ``{"amount": ...}`` objects.
    Returns ``default`` for anything unparseable.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    if not isinstance(value, (int, float, str)):
        nested = get_field(value, "amount")
        if nested is None:
            return default
        return parse_decimal(nested, default)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def parse_iso_datetime(value) -> datetime | None:
    """Parse an ISO 8601 string (or date/datetime object) to a UTC-aware datetime.

    Handles:
    - Z suffix ("2024-01-15T10:30:00Z")
    - +0000 no-colon offset ("2024-01-15T10:30:00+0000")
    - Standard ISO with colon offset ("2024-06-28 18:42:46+00:00")
    - Date-only strings ("2024-06-28")
    - datetime/date objects passed through with UTC normalisation

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    value_str = str(value)

    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"

    if (
        len(value_str) >= 5
        and value_str[-5] in ("+", "-")
        and value_str[-4:].isdigit()
    ):
        value_str = value_str[:-2] + ":" + value_str[-2:]

    try:
        return ensure_utc(datetime.fromisoformat(value_str))
    except (ValueError, TypeError):
        pass

    try:
        d = date.fromisoformat(str(value))
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    except (ValueError, TypeError):
        return None


def parse_date(value) -> date | None:
    """Parse an ISO date or datetime string to a ``date``."""
    dt = parse_iso_datetime(value)
    return dt.date() if dt else None


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC).

    If the datetime is naive, attach UTC; otherwise return as-is.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
