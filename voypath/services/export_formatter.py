"""Itinerary export renderers."""

from __future__ import annotations

from typing import Any, Optional

from voypath.application.context import AppContext
from voypath.domain.dates import format_calendar_date, format_duration, format_place_date, sort_places_by_date, trip_duration_days
from voypath.domain.enums import BookingType
from voypath.domain.models import Booking, OptimizationResult, Place, Trip
from voypath.domain.pricing import format_price, hotel_total
from voypath.domain.transport import transport_style
from voypath.services.access import require_member, require_trip


def _safe_text(value: Any) -> str:
    return str(value or "").strip()


def _inline(value: Any) -> str:
    return _safe_text(value).replace("\n", " ").replace("\r", " ")


def _format_time_range(start: Optional[str], end: Optional[str]) -> str:
    if start and end:
        return f"{start}-{end}"
    if start:
        return f"{start}-?"
    if end:
        return f"?-{end}"
    return "time_tbd"


def _header(trip: Trip) -> list[str]:
    lines = [f"# {_inline(trip.name)}", ""]
    destination = trip.destination or trip.departure_location
    lines.append(f"- Route: {_inline(trip.departure_location)} -> {_inline(destination)}")
    if trip.start_date and trip.end_date:
        days = trip_duration_days(trip.start_date, trip.end_date)
        lines.append(
            f"- Dates: {format_calendar_date(trip.start_date)} - {format_calendar_date(trip.end_date)} ({days} days)"
        )
    if trip.description:
        lines.append(f"- Notes: {_inline(trip.description)}")
    lines.append("")
    return lines


def _itinerary_lines(result: OptimizationResult) -> list[str]:
    lines = ["## Itinerary", ""]
    for day in result.daily_schedules:
        title = f"### Day {day.day}"
        if day.date:
            title = f"{title} ({format_calendar_date(day.date)})"
        lines.append(title)
        if not day.scheduled_places:
            lines.append("- No schedule items")
            lines.append("")
            continue
        for item in day.scheduled_places:
            if item.transport_mode or item.travel_time_minutes:
                style = transport_style(item.transport_mode)
                lines.append(f"  - {style.emoji} {style.name} {format_duration(item.travel_time_minutes or 0)}")
            time_range = _format_time_range(item.scheduled_time_start, item.scheduled_time_end)
            lines.append(f"- {time_range} {_inline(item.name)} ({format_duration(item.stay_duration_minutes)})")
        lines.append(
            f"- Total: visit {format_duration(day.total_visit_time_minutes)}, "
            f"travel {format_duration(day.total_travel_time_minutes)}"
        )
        lines.append("")
    return lines


def _places_lines(places: list[Place], trip: Trip) -> list[str]:
    lines = ["## Places", ""]
    if not places:
        lines.extend(["- No places yet", ""])
        return lines
    for place in sort_places_by_date(places, trip):
        stars = "★" * place.wish_level
        lines.append(f"- {format_place_date(place, trip)}: {_inline(place.name)} [{place.category}] {stars}")
    lines.append("")
    return lines


def _booking_line(booking: Booking, currency: str) -> str:
    if booking.booking_type == BookingType.FLIGHT:
        parts = [_safe_text(booking.airline), _safe_text(booking.flight_number), _safe_text(booking.route)]
        times = _format_time_range(booking.departure_time, booking.arrival_time)
        text = f"Flight {' '.join(p for p in parts if p)} {times}".strip()
    elif booking.booking_type == BookingType.HOTEL:
        text = f"Hotel {_inline(booking.hotel_name)}"
        if booking.check_in_date and booking.check_out_date:
            text += f" {booking.check_in_date.isoformat()} - {booking.check_out_date.isoformat()}"
        total = hotel_total(booking.price_per_night, booking.check_in_date, booking.check_out_date)
        if total is not None:
            text += f" (total {format_price(total, currency)})"
    else:
        style = transport_style(booking.booking_type.value)
        text = f"{style.name} {_inline(booking.transport_route)}".strip()
        if booking.duration:
            text += f" ({_inline(booking.duration)})"
    if booking.price is not None:
        text += f" - {format_price(booking.price, currency)}"
    if booking.booking_link:
        text += f" <{booking.booking_link}>"
    return f"- {text}"


def render_trip_markdown(
    trip: Trip,
    result: Optional[OptimizationResult],
    places: list[Place],
    bookings: list[Booking],
    *,
    currency: str = "JPY",
) -> str:
    lines = _header(trip)
    if result is not None and result.daily_schedules:
        lines.extend(_itinerary_lines(result))
    else:
        lines.extend(["## Itinerary", "", "- Not optimized yet", ""])
    lines.extend(_places_lines(places, trip))
    if bookings:
        lines.extend(["## Bookings", ""])
        lines.extend(_booking_line(b, currency) for b in bookings)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def export_trip_markdown(*, ctx: AppContext, trip_id: str, user_id: str, currency: str = "JPY") -> str:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    require_member(repo, trip_id, user_id)
    return render_trip_markdown(
        trip,
        repo.get_active_optimization(trip_id),
        repo.list_places(trip_id),
        repo.list_bookings(trip_id),
        currency=currency,
    )


__all__ = ["export_trip_markdown", "render_trip_markdown"]
