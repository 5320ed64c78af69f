"""Datetime parsing helpers for query bounds and request payloads.

Stored timestamps are naive wall-clock values; aware inputs are converted to
local time and stripped of tzinfo before they reach the database.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from clinic_api.core.errors import BadRequestError

DATE_ONLY_FORMATS = ("%Y-%m-%d", "%d/%m/%Y")


def to_naive(value: datetime) -> datetime:
    """Drop tzinfo after converting to local time."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _parse_date_only(value: str) -> date | None:
    for fmt in DATE_ONLY_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def parse_datetime(raw_value: str) -> datetime:
    """
    Parse an ISO 8601 timestamp or a date-only string (midnight).

    Raises:
        ValueError: when the value matches no supported format
    """
    value = raw_value.strip()
    only_date = _parse_date_only(value)
    if only_date is not None:
        return datetime.combine(only_date, time.min)
    return to_naive(datetime.fromisoformat(value.replace("Z", "+00:00")))


def parse_range_bound(raw_value: str | None, *, end: bool = False) -> datetime | None:
    """
    Parse an inclusive range bound.

    A date-only upper bound covers the whole day (``23:59:59.999999``).
    """
    if raw_value is None or not raw_value.strip():
        return None
    value = raw_value.strip()
    only_date = _parse_date_only(value)
    if only_date is not None:
        if end:
            return datetime.combine(only_date, time.max)
        return datetime.combine(only_date, time.min)
    return to_naive(datetime.fromisoformat(value.replace("Z", "+00:00")))


def month_bounds(today: date) -> tuple[datetime, datetime]:
    """[first instant of the month, first instant of the next month)."""
    start = datetime.combine(today.replace(day=1), time.min)
    next_month = (today.replace(day=28) + timedelta(days=4)).replace(day=1)
    return start, datetime.combine(next_month, time.min)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """[midnight, next midnight) for ``day``."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def parse_query_range(
    start_raw: str | None, end_raw: str | None
) -> tuple[datetime | None, datetime | None]:
    """
    Parse ``startDate``/``endDate`` query parameters.

    Raises:
        BadRequestError: either bound is unparseable
    """
    try:
        start = parse_range_bound(start_raw)
        end = parse_range_bound(end_raw, end=True)
    except ValueError:
        raise BadRequestError("invalid date range", code="INVALID_DATE")
    return start, end
