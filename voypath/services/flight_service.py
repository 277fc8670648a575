"""Flight price lookups for the API and CLI."""

from __future__ import annotations

import logging
from typing import Any, Optional

from voypath.adapters.flights import (
    FlightPriceResponse,
    FlightSearchParams,
    TimePreferences,
    get_flight_provider,
)
from voypath.adapters.flights import mock as mock_flights
from voypath.adapters.flights.links import tripcom_booking_url, wayaway_booking_url
from voypath.config.settings import strict_external_data_enabled
from voypath.security.redact import redact_sensitive
from voypath.shared.exceptions import ToolError

_logger = logging.getLogger("voypath.flights")


def get_direct_prices(params: FlightSearchParams, *, token: Optional[str] = None) -> FlightPriceResponse:
    """Raw TravelPayouts prices; never falls back to mock data."""
    from voypath.adapters.flights import travelpayouts

    return travelpayouts.fetch_direct_prices(params, token=token)


def search_flights(
    params: FlightSearchParams,
    preferences: Optional[TimePreferences] = None,
    *,
    token: Optional[str] = None,
) -> dict[str, Any]:
    if token:
        from voypath.adapters.flights import travelpayouts as provider
    else:
        provider = get_flight_provider()

    source = "travelpayouts" if provider is not mock_flights else "mock"
    try:
        options = provider.search_flights(params, preferences, token=token)
    except ToolError as exc:
        if strict_external_data_enabled() or provider is mock_flights:
            raise
        _logger.warning("flight search failed, fallback to mock: %s", redact_sensitive(str(exc)))
        options = mock_flights.search_flights(params, preferences)
        source = "mock"
    if not options and provider is not mock_flights and not strict_external_data_enabled():
        _logger.info("no direct prices for %s-%s, fallback to mock", params.origin, params.destination)
        options = mock_flights.search_flights(params, preferences)
        source = "mock"

    origin = params.origin.upper()
    destination = params.destination.upper()
    return {
        "source": source,
        "flights": [o.model_dump() for o in options],
        "links": {
            "wayaway": wayaway_booking_url(origin, destination, params.depart_date, params.return_date, params.currency.upper()),
            "trip_com": tripcom_booking_url(origin, destination, params.depart_date),
        },
    }


__all__ = ["get_direct_prices", "search_flights"]
