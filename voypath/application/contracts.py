"""Application request contracts.

Create contracts carry the validation ranges; update contracts are
partial and only the fields a caller actually sent are applied
(``model_dump(exclude_unset=True)``).
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from voypath.domain.constants import (
    DEFAULT_INVITATION_DESCRIPTION,
    DEFAULT_INVITATION_EXPIRES_HOURS,
    DEFAULT_INVITATION_MAX_USES,
    DEFAULT_MAX_MEMBERS,
    DEFAULT_SHARE_EXPIRES_HOURS,
    MAX_INVITATION_EXPIRES_HOURS,
    MAX_INVITATION_USES,
    MAX_MEMBERS_LIMIT,
    MAX_SHARE_EXPIRES_HOURS,
)
from voypath.domain.enums import BookingType, MemberRole, ScheduleEditAction, ShareType


def _check_date_order(start: Optional[dt.date], end: Optional[dt.date]) -> None:
    if start and end and end < start:
        raise ValueError("end_date must not be before start_date")


class TripCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    departure_location: str = Field(min_length=1, max_length=200)
    destination: Optional[str] = Field(default=None, max_length=200)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    max_members: int = Field(default=DEFAULT_MAX_MEMBERS, ge=1, le=MAX_MEMBERS_LIMIT)
    optimization_preferences: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _dates(self) -> "TripCreate":
        _check_date_order(self.start_date, self.end_date)
        return self


class TripUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    departure_location: Optional[str] = Field(default=None, min_length=1, max_length=200)
    destination: Optional[str] = Field(default=None, max_length=200)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    max_members: Optional[int] = Field(default=None, ge=1, le=MAX_MEMBERS_LIMIT)
    optimization_preferences: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _dates(self) -> "TripUpdate":
        _check_date_order(self.start_date, self.end_date)
        return self


class InvitationCreate(BaseModel):
    expires_hours: int = Field(default=DEFAULT_INVITATION_EXPIRES_HOURS, ge=1, le=MAX_INVITATION_EXPIRES_HOURS)
    max_uses: int = Field(default=DEFAULT_INVITATION_MAX_USES, ge=1, le=MAX_INVITATION_USES)
    description: str = Field(default=DEFAULT_INVITATION_DESCRIPTION, max_length=500)


class ShareLinkCreate(BaseModel):
    share_type: ShareType = ShareType.EXTERNAL_VIEW
    permissions: Optional[dict[str, bool]] = None
    password: Optional[str] = Field(default=None, min_length=4, max_length=128)
    expires_hours: int = Field(default=DEFAULT_SHARE_EXPIRES_HOURS, ge=1, le=MAX_SHARE_EXPIRES_HOURS)


class MemberUpdate(BaseModel):
    role: Optional[MemberRole] = None
    can_add_places: Optional[bool] = None
    can_edit_places: Optional[bool] = None
    can_optimize: Optional[bool] = None
    can_invite_members: Optional[bool] = None
    nickname: Optional[str] = Field(default=None, max_length=100)


class PlaceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1, max_length=100)
    address: Optional[str] = Field(default=None, max_length=500)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    price_level: Optional[int] = Field(default=None, ge=1, le=4)
    estimated_cost: Optional[float] = Field(default=None, ge=0)
    wish_level: int = Field(default=3, ge=1, le=5)
    stay_duration_minutes: int = Field(default=60, gt=0)
    scheduled_date: Optional[dt.date] = None
    scheduled_time_start: Optional[str] = None
    scheduled_time_end: Optional[str] = None
    visit_date: Optional[dt.date] = None
    day: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = Field(default=None, max_length=2000)
    tags: list[str] = Field(default_factory=list)
    place_type: Optional[str] = None
    image_url: Optional[str] = None


class PlaceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    address: Optional[str] = Field(default=None, max_length=500)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    price_level: Optional[int] = Field(default=None, ge=1, le=4)
    estimated_cost: Optional[float] = Field(default=None, ge=0)
    wish_level: Optional[int] = Field(default=None, ge=1, le=5)
    stay_duration_minutes: Optional[int] = Field(default=None, gt=0)
    scheduled: Optional[bool] = None
    scheduled_date: Optional[dt.date] = None
    scheduled_time_start: Optional[str] = None
    scheduled_time_end: Optional[str] = None
    visit_date: Optional[dt.date] = None
    day: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = Field(default=None, max_length=2000)
    tags: Optional[list[str]] = None
    image_url: Optional[str] = None


SCHEDULING_FIELDS = frozenset({
    "scheduled",
    "scheduled_date",
    "scheduled_time_start",
    "scheduled_time_end",
    "visit_date",
    "day",
})


class PlaceQuery(BaseModel):
    category: Optional[str] = None
    min_wish_level: Optional[int] = Field(default=None, ge=1, le=5)
    max_wish_level: Optional[int] = Field(default=None, ge=1, le=5)
    scheduled: Optional[bool] = None
    user_id: Optional[str] = None
    sort_by: str = Field(default="created_at", pattern="^(created_at|wish_level|rating|name)$")
    sort_order: str = Field(default="desc", pattern="^(asc|desc)$")


class WishUpdate(BaseModel):
    wish_level: int = Field(ge=1, le=5)


class OptimizationIngest(BaseModel):
    """An externally computed itinerary; schedule entries are loose dicts."""

    daily_schedules: list[dict[str, Any]] = Field(default_factory=list)
    optimization_score: dict[str, Any] = Field(default_factory=dict)
    execution_time_ms: int = Field(default=0, ge=0)


class ScheduleEdit(BaseModel):
    """One edit of the active itinerary.

    ``index`` addresses a stop inside ``day``. ``reorder`` moves it to
    ``target_index`` (of ``target_day`` when given), ``resize`` sets its stay,
    ``insert`` puts a stored trip place at ``index`` and ``delete`` drops it.
    """

    action: ScheduleEditAction
    day: int = Field(ge=1)
    index: int = Field(default=0, ge=0)
    target_day: Optional[int] = Field(default=None, ge=1)
    target_index: Optional[int] = Field(default=None, ge=0)
    duration_minutes: Optional[int] = Field(default=None, ge=5, le=24 * 60)
    place_id: Optional[str] = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def _required_fields(self) -> "ScheduleEdit":
        if self.action == ScheduleEditAction.REORDER and self.target_index is None and self.target_day is None:
            raise ValueError("reorder needs target_index or target_day")
        if self.action == ScheduleEditAction.RESIZE and self.duration_minutes is None:
            raise ValueError("resize needs duration_minutes")
        if self.action == ScheduleEditAction.INSERT and not self.place_id:
            raise ValueError("insert needs place_id")
        return self


class BookingCreate(BaseModel):
    booking_type: BookingType
    booking_link: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)
    price: Optional[float] = Field(default=None, ge=0)
    airline: Optional[str] = None
    flight_number: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    route: Optional[str] = None
    hotel_name: Optional[str] = None
    address: Optional[str] = None
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    check_in_date: Optional[dt.date] = None
    check_out_date: Optional[dt.date] = None
    price_per_night: Optional[float] = Field(default=None, ge=0)
    guests: Optional[int] = Field(default=None, ge=1)
    transport_route: Optional[str] = None
    distance: Optional[str] = None
    duration: Optional[str] = None

    @model_validator(mode="after")
    def _stay_dates(self) -> "BookingCreate":
        if self.check_in_date and self.check_out_date and self.check_out_date < self.check_in_date:
            raise ValueError("check_out_date must not be before check_in_date")
        return self


class BookingUpdate(BaseModel):
    booking_link: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)
    price: Optional[float] = Field(default=None, ge=0)
    airline: Optional[str] = None
    flight_number: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    route: Optional[str] = None
    hotel_name: Optional[str] = None
    address: Optional[str] = None
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    check_in_date: Optional[dt.date] = None
    check_out_date: Optional[dt.date] = None
    price_per_night: Optional[float] = Field(default=None, ge=0)
    guests: Optional[int] = Field(default=None, ge=1)
    transport_route: Optional[str] = None
    distance: Optional[str] = None
    duration: Optional[str] = None
