"""Trip date arithmetic and place date helpers."""

from __future__ import annotations

import calendar
import datetime as dt
import math
from collections.abc import Iterable, Sequence
from typing import Optional, Protocol, TypeVar

NO_DATE_KEY = "no-date"
NO_DATE_TEXT = "No date set"

_MINUTES_PER_DAY = 24 * 60
_MINUTES_PER_MONTH = 30 * _MINUTES_PER_DAY


class _TripDates(Protocol):
    start_date: Optional[dt.date]
    end_date: Optional[dt.date]


class _DatedPlace(Protocol):
    scheduled_date: Optional[dt.date]
    day: Optional[int]
    visit_date: Optional[dt.date]
    created_at: str


P = TypeVar("P", bound=_DatedPlace)


def parse_date(value: object) -> Optional[dt.date]:
    """Lenient date parsing: accepts date, datetime or ISO strings; junk becomes None."""
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    raw = str(value).strip()
    try:
        return dt.date.fromisoformat(raw[:10])
    except ValueError:
        return None


def trip_duration_days(start: Optional[dt.date], end: Optional[dt.date]) -> int:
    """Inclusive number of days; 0 when either bound is missing."""
    if start is None or end is None:
        return 0
    diff_days = (end - start).total_seconds() / 86400
    return math.ceil(diff_days) + 1


def trip_date_for_day(start: Optional[dt.date], day_number: int, *, today: Optional[dt.date] = None) -> dt.date:
    """Calendar date of trip day N (1-based); without a start date, counts from today."""
    anchor = start or today or dt.date.today()
    return anchor + dt.timedelta(days=day_number - 1)


def trip_date_range(start: Optional[dt.date], end: Optional[dt.date]) -> list[dt.date]:
    return [trip_date_for_day(start, n) for n in range(1, trip_duration_days(start, end) + 1)]


def day_number_for_date(start: Optional[dt.date], when: dt.date) -> int:
    if start is None:
        return 1
    return max(1, (when - start).days + 1)


def is_date_in_trip(start: Optional[dt.date], end: Optional[dt.date], when: dt.date) -> bool:
    if start is None or end is None:
        return False
    return start <= when <= end


def is_date_within_trip_range(start: Optional[dt.date], end: Optional[dt.date], when: dt.date) -> bool:
    """Open-ended variant: a missing bound does not constrain."""
    if start is not None and when < start:
        return False
    if end is not None and when > end:
        return False
    return True


def _split_minutes(minutes: float) -> tuple[int, int, int, int]:
    total = int(math.floor(minutes))
    months = total // _MINUTES_PER_MONTH
    days = (total % _MINUTES_PER_MONTH) // _MINUTES_PER_DAY
    hours = (total % _MINUTES_PER_DAY) // 60
    mins = total % 60
    return months, days, hours, mins


def format_duration(minutes: float) -> str:
    """Long form, e.g. ``1 month 2 days 3h 15m``; seconds are dropped."""
    if minutes < 1:
        return "0m"
    months, days, hours, mins = _split_minutes(minutes)
    parts: list[str] = []
    if months > 0:
        parts.append(f"{months} month{'s' if months > 1 else ''}")
    if days > 0:
        parts.append(f"{days} day{'s' if days > 1 else ''}")
    if hours > 0:
        parts.append(f"{hours}h")
    if mins > 0:
        parts.append(f"{mins}m")
    return " ".join(parts)


def format_duration_compact(minutes: float) -> str:
    if minutes < 1:
        return "0m"
    months, days, hours, mins = _split_minutes(minutes)
    if months > 0:
        return f"{months}mo"
    if days > 0:
        return f"{days}d"
    if hours > 0:
        return f"{hours}h"
    return f"{mins}m"


def format_calendar_date(value: dt.date) -> str:
    return f"{value:%a}, {value:%b} {value.day}, {value.year}"


def place_display_date(place: _DatedPlace, trip: Optional[_TripDates] = None) -> Optional[dt.date]:
    """scheduled_date, then trip day, then visit_date, then created_at."""
    if place.scheduled_date:
        return place.scheduled_date
    if place.day and trip is not None:
        return trip_date_for_day(trip.start_date, place.day)
    if place.visit_date:
        return place.visit_date
    return parse_date(place.created_at)


def format_place_date(place: _DatedPlace, trip: Optional[_TripDates] = None, fallback: str = NO_DATE_TEXT) -> str:
    shown = place_display_date(place, trip)
    return format_calendar_date(shown) if shown else fallback


def sort_places_by_date(places: Iterable[P], trip: Optional[_TripDates] = None) -> list[P]:
    """Stable sort by display date; undated places go last."""
    def key(place: P) -> tuple[int, dt.date]:
        shown = place_display_date(place, trip)
        return (1, dt.date.max) if shown is None else (0, shown)

    return sorted(places, key=key)


def group_places_by_date(places: Iterable[P], trip: Optional[_TripDates] = None) -> dict[str, list[P]]:
    groups: dict[str, list[P]] = {}
    for place in places:
        shown = place_display_date(place, trip)
        groups.setdefault(shown.isoformat() if shown else NO_DATE_KEY, []).append(place)
    return groups


def month_grid(year: int, month: int) -> list[Optional[dt.date]]:
    """Sunday-first calendar cells: leading blanks, then every day of the month."""
    first = dt.date(year, month, 1)
    # date.weekday(): Monday=0 ... Sunday=6
    leading = (first.weekday() + 1) % 7
    _, days_in_month = calendar.monthrange(year, month)
    cells: list[Optional[dt.date]] = [None] * leading
    cells.extend(dt.date(year, month, d) for d in range(1, days_in_month + 1))
    return cells


def months_spanned(start: dt.date, end: dt.date) -> Sequence[tuple[int, int]]:
    months: list[tuple[int, int]] = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append((year, month))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months


def days_until(target: Optional[dt.date], today: dt.date) -> Optional[int]:
    if target is None:
        return None
    return (target - today).days
