"""Flight price providers."""

from __future__ import annotations

import logging

from voypath.adapters.flights import mock as mock_flights
from voypath.adapters.flights.models import FlightOption, FlightPriceResponse, FlightSearchParams, TimePreferences
from voypath.config.settings import resolve_flight_provider, strict_external_data_enabled
from voypath.security.key_manager import TRAVELPAYOUTS_TOKEN, get_key_manager
from voypath.shared.exceptions import ToolError

_logger = logging.getLogger("voypath.flights")


def get_flight_provider():
    """TravelPayouts when a token is configured, else the mock; strict mode forbids the mock."""
    provider = resolve_flight_provider()
    has_token = get_key_manager().has_key(TRAVELPAYOUTS_TOKEN)
    if provider == "travelpayouts" and has_token:
        from voypath.adapters.flights import travelpayouts

        return travelpayouts
    if strict_external_data_enabled():
        raise ToolError("flights", "STRICT_EXTERNAL_DATA=true requires TRAVELPAYOUTS_TOKEN")
    if provider == "travelpayouts":
        _logger.warning("FLIGHT_PROVIDER=travelpayouts without TRAVELPAYOUTS_TOKEN, fallback to mock")
    return mock_flights


__all__ = [
    "FlightOption",
    "FlightPriceResponse",
    "FlightSearchParams",
    "TimePreferences",
    "get_flight_provider",
]
