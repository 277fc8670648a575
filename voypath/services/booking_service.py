"""Trip bookings (flights, hotels and ground legs)."""

from __future__ import annotations

import logging
from typing import Any, Optional

from voypath.application.context import AppContext
from voypath.application.contracts import BookingCreate, BookingUpdate
from voypath.domain.enums import BookingType
from voypath.domain.exceptions import NotFound, PermissionDenied, ValidationFailed
from voypath.domain.models import Booking
from voypath.domain.pricing import format_price, hotel_total, nights_between, price_range_label
from voypath.domain.transport import transport_style
from voypath.services.access import new_id, now_iso, require_member, require_trip

_logger = logging.getLogger("voypath.bookings")


def present_booking(booking: Booking, currency: str = "JPY") -> dict[str, Any]:
    data = booking.model_dump(mode="json")
    data["price_display"] = format_price(booking.price, currency)
    if booking.booking_type == BookingType.HOTEL:
        total = hotel_total(booking.price_per_night, booking.check_in_date, booking.check_out_date)
        data["nights"] = nights_between(booking.check_in_date, booking.check_out_date)
        data["total_price"] = total
        data["total_price_display"] = format_price(total, currency)
    if booking.booking_type in (BookingType.WALKING, BookingType.CAR, BookingType.FLIGHT):
        data["transport"] = transport_style(booking.booking_type.value).model_dump()
    return data


def _booking_cost(booking: Booking) -> Optional[float]:
    if booking.booking_type == BookingType.HOTEL and booking.price_per_night is not None:
        return hotel_total(booking.price_per_night, booking.check_in_date, booking.check_out_date)
    return booking.price


def summarize_bookings(bookings: list[Booking], currency: str = "JPY") -> dict[str, Any]:
    """Counts per type, the cheapest-to-dearest range and the known total."""
    by_type = {t.value: 0 for t in BookingType}
    costs: list[float] = []
    for booking in bookings:
        by_type[booking.booking_type.value] += 1
        cost = _booking_cost(booking)
        if cost is not None:
            costs.append(cost)
    return {
        "count": len(bookings),
        "by_type": by_type,
        "price_range": price_range_label(costs, currency),
        "total_price": sum(costs),
        "total_price_display": format_price(sum(costs), currency),
    }


def create_booking(*, ctx: AppContext, trip_id: str, user_id: str, payload: BookingCreate) -> Booking:
    repo = ctx.repo
    require_trip(repo, trip_id)
    require_member(repo, trip_id, user_id)
    stamp = now_iso()
    booking = Booking(
        id=new_id(),
        trip_id=trip_id,
        user_id=user_id,
        created_at=stamp,
        updated_at=stamp,
        **payload.model_dump(),
    )
    repo.save_booking(booking)
    _logger.info("%s booking %s added to trip %s", booking.booking_type.value, booking.id, trip_id)
    return booking


def list_bookings(
    *,
    ctx: AppContext,
    trip_id: str,
    user_id: str,
    booking_type: Optional[BookingType] = None,
    created_by: Optional[str] = None,
) -> list[Booking]:
    repo = ctx.repo
    require_trip(repo, trip_id)
    require_member(repo, trip_id, user_id)
    return repo.list_bookings(
        trip_id,
        booking_type=booking_type.value if booking_type else None,
        user_id=created_by,
    )


def _editable_booking(ctx: AppContext, booking_id: str, user_id: str) -> Booking:
    repo = ctx.repo
    booking = repo.get_booking(booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    trip = require_trip(repo, booking.trip_id)
    member = require_member(repo, booking.trip_id, user_id)
    if booking.user_id != user_id and not (member.is_admin or trip.owner_id == user_id):
        raise PermissionDenied("Only the member who added this booking or an admin can change it")
    return booking


def get_booking(*, ctx: AppContext, booking_id: str, user_id: str) -> Booking:
    booking = ctx.repo.get_booking(booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    require_member(ctx.repo, booking.trip_id, user_id)
    return booking


def update_booking(*, ctx: AppContext, booking_id: str, user_id: str, payload: BookingUpdate) -> Booking:
    booking = _editable_booking(ctx, booking_id, user_id)
    changes = payload.model_dump(exclude_unset=True)
    check_in = changes.get("check_in_date", booking.check_in_date)
    check_out = changes.get("check_out_date", booking.check_out_date)
    if check_in and check_out and check_out < check_in:
        raise ValidationFailed("check_out_date must not be before check_in_date")
    updated = booking.model_copy(update={**changes, "updated_at": now_iso()})
    ctx.repo.save_booking(updated)
    return updated


def delete_booking(*, ctx: AppContext, booking_id: str, user_id: str) -> None:
    booking = _editable_booking(ctx, booking_id, user_id)
    ctx.repo.delete_booking(booking.id)
    _logger.info("booking %s deleted by %s", booking_id, user_id)


__all__ = [
    "create_booking",
    "delete_booking",
    "get_booking",
    "list_bookings",
    "present_booking",
    "summarize_bookings",
    "update_booking",
]
