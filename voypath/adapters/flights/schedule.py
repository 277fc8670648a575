"""HH:MM arithmetic for flight times."""

from __future__ import annotations

import datetime as dt
from typing import Optional


def _to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def _fmt(total_minutes: int) -> str:
    return f"{(total_minutes // 60) % 24:02d}:{total_minutes % 60:02d}"


def arrival_time(departure: str, duration_hours: float) -> str:
    return _fmt(_to_minutes(departure) + int(duration_hours * 60))


def duration_between(departure: str, arrival: str) -> str:
    """``6h`` or ``2h 30m``; an earlier arrival is read as next day."""
    start = _to_minutes(departure)
    end = _to_minutes(arrival)
    if end < start:
        end += 24 * 60
    hours, minutes = divmod(end - start, 60)
    return f"{hours}h" if minutes == 0 else f"{hours}h {minutes}m"


def time_difference(first: str, second: str) -> int:
    return abs(_to_minutes(first) - _to_minutes(second))


def same_clock(first: Optional[str], second: Optional[str]) -> bool:
    """``9:00`` and ``09:00`` are the same time; a missing side never matches."""
    if not first or not second:
        return False
    try:
        return time_difference(first, second) == 0
    except ValueError:
        return False



def parse_timestamp(value: Optional[str]) -> Optional[dt.datetime]:
    if not value:
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return dt.datetime.fromisoformat(raw)
    except ValueError:
        return None


def clock_time(value: Optional[str]) -> str:
    """HH:MM of an ISO timestamp in its own offset; '' when absent or unparsable."""
    parsed = parse_timestamp(value)
    return parsed.strftime("%H:%M") if parsed else ""


def elapsed(departure: Optional[str], arrival: Optional[str]) -> str:
    start = parse_timestamp(departure)
    end = parse_timestamp(arrival)
    if start is None or end is None:
        return ""
    if (start.tzinfo is None) != (end.tzinfo is None):
        start, end = start.replace(tzinfo=None), end.replace(tzinfo=None)
    total_minutes = int((end - start).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"
