"""
Date normalization for work-order and guide edits.

Incoming dates arrive as ISO-8601 strings, datetimes or epoch milliseconds.
They are normalized to a canonical aware UTC instant before any comparison
or write.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from dispatch_kernel.exceptions import InvalidDateError


def normalize_instant(value: object) -> datetime:
    """Normalize a date-like value to an aware UTC datetime.

    Naive values are interpreted as UTC.  Numbers are epoch milliseconds.

    Raises:
        InvalidDateError: if the value is empty or cannot be parsed.
    """
    if value is None or value == "" or isinstance(value, bool):
        raise InvalidDateError(value, "no date provided")

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidDateError(value, "timestamp out of range") from exc
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidDateError(value, "not an ISO-8601 date") from exc
    else:
        raise InvalidDateError(value, f"unsupported type {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def precedes_beyond_tolerance(
    candidate: datetime, current: datetime | None, tolerance: timedelta
) -> bool:
    """True if ``candidate`` is earlier than ``current`` by more than ``tolerance``."""
    if current is None:
        return False
    return candidate < current - tolerance
