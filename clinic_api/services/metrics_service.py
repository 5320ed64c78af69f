"""Dashboard metrics - pure reductions over appointment-like records.

Accepts normalized ``AppointmentRecord`` objects or raw lead dicts (legacy
``appointment_date``/``status``/``attendance_status`` keys). No I/O.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping

from clinic_api.db.enums import AppointmentStatus, AttendanceStatus, LeadStatus
from clinic_api.schemas.appointment import AppointmentRecord
from clinic_api.utils.formatting import format_currency, format_growth

DEFAULT_CAPACITY = 10

# First {"financial": {...}} object embedded in free-text notes
FINANCIAL_PATTERN = re.compile(r'\{\s*"financial"\s*:\s*\{[^{}]*\}\s*\}')
# "150", "150.5", "150,00", "90 reais"
LEADING_NUMBER = re.compile(r"[-+]?(?:\d+(?:[.,]\d+)?|[.,]\d+)")

MetricSource = AppointmentRecord | Mapping[str, Any]


@dataclass(frozen=True)
class _MetricItem:
    day: date | None
    status: str
    attendance: str | None
    value: float
    notes: str | None
    source: MetricSource

    @property
    def is_scheduled(self) -> bool:
        return self.status in (AppointmentStatus.SCHEDULED.value, LeadStatus.SCHEDULED.value)

    @property
    def is_completed(self) -> bool:
        if self.status == AppointmentStatus.COMPLETED.value:
            return True
        return (
            self.status == LeadStatus.FINISHED.value
            and self.attendance == AttendanceStatus.ATTENDED.value
        )


def _to_float(value: Any) -> float:
    """Leading number of ``value`` (decimal comma accepted), else 0."""
    if isinstance(value, (int, float)):
        return float(value)
    if not value:
        return 0.0
    match = LEADING_NUMBER.match(str(value).strip())
    if not match:
        return 0.0
    return float(match.group(0).replace(",", "."))


def _day_of(value: Any) -> date | None:
    """Date portion of a timestamp; strings keep only the part before ``T``."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).split("T")[0].split(" ")[0]
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _to_item(source: MetricSource) -> _MetricItem:
    if isinstance(source, AppointmentRecord):
        # Lead-sourced records are judged by their legacy pipeline status
        legacy = source.lead_status is not None
        return _MetricItem(
            day=_day_of(source.start_time),
            status=source.lead_status if legacy else source.status.value,
            attendance=source.attendance_status if legacy else None,
            value=_to_float(source.value),
            notes=source.notes,
            source=source,
        )
    return _MetricItem(
        day=_day_of(source.get("appointment_date") or source.get("startTime")),
        status=str(source.get("status") or ""),
        attendance=source.get("attendance_status"),
        value=_to_float(source.get("value")),
        notes=source.get("notes"),
        source=source,
    )


def parse_financial_data(notes: str | None) -> dict[str, Any]:
    """
    Extract the embedded ``financial`` object from notes.

    Unparseable or missing data yields an empty dict.
    """
    if not notes:
        return {}
    match = FINANCIAL_PATTERN.search(notes)
    if not match:
        return {}
    try:
        financial = json.loads(match.group(0)).get("financial")
    except json.JSONDecodeError:
        return {}
    return financial if isinstance(financial, dict) else {}


def _item_revenue(item: _MetricItem) -> float:
    if item.value:
        return item.value
    return _to_float(parse_financial_data(item.notes).get("paymentValue"))


def calculate_daily_revenue(items: Iterable[_MetricItem]) -> float:
    return sum(_item_revenue(item) for item in items)


def calculate_growth(current: float, previous: float) -> dict[str, Any]:
    """Percentage change; a zero baseline yields +100% for positive, else 0%."""
    if not previous:
        return {
            "value": 100 if current > 0 else 0,
            "formatted": "+100%" if current > 0 else "0%",
            "isPositive": current >= 0,
        }
    growth = (current - previous) / previous * 100
    return {
        "value": growth,
        "formatted": format_growth(growth),
        "isPositive": growth >= 0,
    }


def calculate_occupancy(count: int, capacity: int = DEFAULT_CAPACITY) -> float:
    """Share of capacity in use, capped at 100."""
    if capacity <= 0:
        return 0
    return min(count / capacity * 100, 100)


def calculate_average_ticket(items: Iterable[_MetricItem]) -> float:
    values = [item.value for item in items if item.is_completed and item.value > 0]
    if not values:
        return 0
    return sum(values) / len(values)


def _serialize(source: MetricSource) -> Any:
    if isinstance(source, AppointmentRecord):
        return source.model_dump(mode="json", by_alias=True)
    return dict(source)


def empty_metrics(capacity: int = DEFAULT_CAPACITY) -> dict[str, Any]:
    return {
        "dailyRevenue": {"value": 0, "formatted": format_currency(0)},
        "revenueGrowth": {"value": 0, "formatted": "+0%", "isPositive": True},
        "tomorrowConfirmations": {"count": 0, "items": []},
        "todayOccupancy": {"count": 0, "total": capacity, "percent": 0},
        "averageTicket": {"value": 0, "formatted": format_currency(0)},
    }


def calculate_metrics(
    records: Iterable[MetricSource] | None,
    today: date | None = None,
    capacity: int = DEFAULT_CAPACITY,
) -> dict[str, Any]:
    """Reduce records into the dashboard metrics object."""
    if records is None:
        return empty_metrics(capacity)

    today = today or date.today()
    tomorrow = today + timedelta(days=1)
    yesterday = today - timedelta(days=1)
    items = [_to_item(record) for record in records]

    today_items = [item for item in items if item.day == today]
    yesterday_items = [item for item in items if item.day == yesterday]
    tomorrow_items = [item for item in items if item.day == tomorrow and item.is_scheduled]

    daily_revenue = calculate_daily_revenue(today_items)
    growth = calculate_growth(daily_revenue, calculate_daily_revenue(yesterday_items))
    average_ticket = calculate_average_ticket(items)

    return {
        "dailyRevenue": {"value": daily_revenue, "formatted": format_currency(daily_revenue)},
        "revenueGrowth": growth,
        "tomorrowConfirmations": {
            "count": len(tomorrow_items),
            "items": [_serialize(item.source) for item in tomorrow_items],
        },
        "todayOccupancy": {
            "count": len(today_items),
            "total": capacity,
            "percent": calculate_occupancy(len(today_items), capacity),
        },
        "averageTicket": {"value": average_ticket, "formatted": format_currency(average_ticket)},
    }
