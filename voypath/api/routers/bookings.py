"""Trip bookings."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response

from voypath.api.deps import get_app_context, get_current_user_id
from voypath.application.context import AppContext
from voypath.application.contracts import BookingCreate, BookingUpdate
from voypath.config.settings import resolve_default_currency
from voypath.domain.enums import BookingType
from voypath.services import booking_service

router = APIRouter(tags=["bookings"])


@router.post("/trips/{trip_id}/bookings", status_code=201)
def create_booking(
    trip_id: str,
    payload: BookingCreate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    booking = booking_service.create_booking(ctx=ctx, trip_id=trip_id, user_id=user_id, payload=payload)
    return booking_service.present_booking(booking, resolve_default_currency())


@router.get("/trips/{trip_id}/bookings")
def list_bookings(
    trip_id: str,
    booking_type: Optional[BookingType] = None,
    created_by: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    bookings = booking_service.list_bookings(
        ctx=ctx,
        trip_id=trip_id,
        user_id=user_id,
        booking_type=booking_type,
        created_by=created_by,
    )
    currency = resolve_default_currency()
    return {
        "bookings": [booking_service.present_booking(b, currency) for b in bookings],
        "summary": booking_service.summarize_bookings(bookings, currency),
    }


@router.get("/bookings/{booking_id}")
def get_booking(booking_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    booking = booking_service.get_booking(ctx=ctx, booking_id=booking_id, user_id=user_id)
    return booking_service.present_booking(booking, resolve_default_currency())


@router.patch("/bookings/{booking_id}")
def update_booking(
    booking_id: str,
    payload: BookingUpdate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    booking = booking_service.update_booking(ctx=ctx, booking_id=booking_id, user_id=user_id, payload=payload)
    return booking_service.present_booking(booking, resolve_default_currency())


@router.delete("/bookings/{booking_id}", status_code=204)
def delete_booking(booking_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    booking_service.delete_booking(ctx=ctx, booking_id=booking_id, user_id=user_id)
    return Response(status_code=204)
