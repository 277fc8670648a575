"""Pydantic domain models."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from voypath.domain.constants import DEFAULT_MAX_MEMBERS, DEFAULT_OPTIMIZATION_PREFERENCES
from voypath.domain.enums import BookingType, MemberRole, PlaceSource, ShareType


class User(BaseModel):
    id: str
    name: str = ""
    email: Optional[str] = None
    created_at: str = ""


class Trip(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    departure_location: str
    destination: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    owner_id: str
    max_members: int = DEFAULT_MAX_MEMBERS
    optimization_preferences: dict[str, Any] = Field(
        default_factory=lambda: dict(DEFAULT_OPTIMIZATION_PREFERENCES)
    )
    created_at: str = ""
    updated_at: str = ""

    @model_validator(mode="after")
    def _check_dates(self) -> "Trip":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class TripMember(BaseModel):
    trip_id: str
    user_id: str
    role: MemberRole = MemberRole.MEMBER
    can_add_places: bool = True
    can_edit_places: bool = False
    can_optimize: bool = True
    can_invite_members: bool = False
    nickname: Optional[str] = None
    assigned_color_index: Optional[int] = None
    invitation_code_used: Optional[str] = None
    joined_at: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN


class Place(BaseModel):
    id: str
    trip_id: str
    user_id: str
    name: str
    category: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    rating: Optional[float] = None
    price_level: Optional[int] = None
    estimated_cost: Optional[float] = None
    wish_level: int = 3
    stay_duration_minutes: int = 60
    scheduled: bool = False
    scheduled_date: Optional[dt.date] = None
    scheduled_time_start: Optional[str] = None
    scheduled_time_end: Optional[str] = None
    visit_date: Optional[dt.date] = None
    day: Optional[int] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    source: PlaceSource = PlaceSource.USER
    place_type: Optional[str] = None
    image_url: Optional[str] = None
    display_color: Optional[str] = None
    member_contribution: dict[str, Any] = Field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""


class PlaceContribution(BaseModel):
    place_id: str
    user_id: str
    wish_level: Optional[int] = None
    edit_count: int = 0
    comment_count: int = 0
    updated_at: str = ""


class InvitationCode(BaseModel):
    id: str
    trip_id: str
    code: str
    created_by: str
    max_uses: int = 1
    current_uses: int = 0
    expires_at: Optional[str] = None
    is_active: bool = True
    description: Optional[str] = None
    used_by: list[dict[str, Any]] = Field(default_factory=list)
    created_at: str = ""


class TripShare(BaseModel):
    """Public read-only link to a trip; the password is stored salted and hashed."""

    id: str
    trip_id: str
    share_token: str
    share_type: ShareType = ShareType.EXTERNAL_VIEW
    permissions: dict[str, Any] = Field(default_factory=dict)
    password_hash: Optional[str] = None
    expires_at: Optional[str] = None
    is_active: bool = True
    view_count: int = 0
    created_by: str
    created_at: str = ""


class ScheduledPlace(BaseModel):
    """One stop inside an externally computed daily schedule."""

    place_id: Optional[str] = None
    name: str
    category: str
    scheduled_time_start: str
    scheduled_time_end: Optional[str] = None
    stay_duration_minutes: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    member_contribution: dict[str, Any] = Field(default_factory=dict)
    transport_mode: Optional[str] = None
    travel_time_minutes: Optional[int] = None
    travel_distance_km: Optional[float] = None


class DailySchedule(BaseModel):
    day: int
    date: Optional[dt.date] = None
    scheduled_places: list[ScheduledPlace] = Field(default_factory=list)
    total_travel_time_minutes: int = 0
    total_visit_time_minutes: int = 0


class OptimizationResult(BaseModel):
    id: str
    trip_id: str
    created_by: str
    daily_schedules: list[DailySchedule] = Field(default_factory=list)
    optimization_score: dict[str, Any] = Field(default_factory=dict)
    execution_time_ms: int = 0
    places_count: int = 0
    total_travel_time_minutes: int = 0
    total_visit_time_minutes: int = 0
    is_active: bool = True
    created_at: str = ""


class Booking(BaseModel):
    id: str
    trip_id: str
    user_id: str
    booking_type: BookingType
    booking_link: Optional[str] = None
    notes: Optional[str] = None
    price: Optional[float] = None
    # flight
    airline: Optional[str] = None
    flight_number: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    route: Optional[str] = None
    # hotel
    hotel_name: Optional[str] = None
    address: Optional[str] = None
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    check_in_date: Optional[dt.date] = None
    check_out_date: Optional[dt.date] = None
    price_per_night: Optional[float] = None
    guests: Optional[int] = None
    # walking / car
    transport_route: Optional[str] = None
    distance: Optional[str] = None
    duration: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
