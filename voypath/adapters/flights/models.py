"""Flight search request/response shapes shared by the providers."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class TimePreferences(BaseModel):
    departure_time: Optional[str] = None  # HH:MM
    arrival_time: Optional[str] = None
    duration: Optional[str] = None


class FlightSearchParams(BaseModel):
    origin: str
    destination: str
    depart_date: str
    return_date: Optional[str] = None
    currency: str = "JPY"


class FlightOption(BaseModel):
    airline: str
    flight_number: str
    departure: str
    arrival: str
    duration: str
    price: int
    currency: str
    booking_url: str
    transfers: int = 0
    source: str = "WayAway"
    actual: Optional[bool] = None
    distance: Optional[float] = None
    expires_at: Optional[str] = None
    gates: Optional[str] = None
    matches_schedule: bool = False


class FlightPriceResponse(BaseModel):
    """Normalised TravelPayouts payload: route key -> raw price record."""

    success: bool = True
    data: dict[str, dict[str, Any]] = Field(default_factory=dict)
    currency: str = "JPY"
    source: str = "TravelPayouts Data API"
    timestamp: str = ""
