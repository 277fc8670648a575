"""Flight price proxy and search."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Header, Query

from voypath.adapters.flights import FlightSearchParams, TimePreferences
from voypath.api.schemas import FlightQuery, FlightSearchResponse
from voypath.services import flight_service

router = APIRouter(prefix="/flights", tags=["flights"])


def _params(query: FlightQuery) -> FlightSearchParams:
    return FlightSearchParams(
        origin=query.origin,
        destination=query.destination,
        depart_date=query.depart_date,
        return_date=query.return_date,
        currency=query.currency,
    )


@router.get("/prices")
def direct_prices(query: Annotated[FlightQuery, Query()], x_access_token: Optional[str] = Header(default=None)):
    """TravelPayouts direct prices as returned upstream (route key -> record)."""
    return flight_service.get_direct_prices(_params(query), token=x_access_token).model_dump()


@router.get("/search", response_model=FlightSearchResponse)
def search(query: Annotated[FlightQuery, Query()], x_access_token: Optional[str] = Header(default=None)):
    preferences = TimePreferences(
        departure_time=query.departure_time,
        arrival_time=query.arrival_time,
        duration=query.duration,
    )
    return flight_service.search_flights(_params(query), preferences, token=x_access_token)
