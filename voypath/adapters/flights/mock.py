"""Mock flight adapter: 无 Token 时的确定性航班数据"""

from __future__ import annotations

from typing import Optional

from voypath.adapters.flights import links
from voypath.adapters.flights.models import FlightOption, FlightSearchParams, TimePreferences
from voypath.adapters.flights.schedule import arrival_time, duration_between

_CARRIERS = (("ANA", "NH"), ("JAL", "JL"), ("United", "UA"), ("Delta", "DL"))
_FLIGHT_HOURS = 6
_BASE_PRICE = 35000
_PRICE_STEP = 8000
_PREFERRED_PRICE = 45000


def search_flights(
    params: FlightSearchParams,
    preferences: Optional[TimePreferences] = None,
    *,
    token: Optional[str] = None,
) -> list[FlightOption]:
    preferences = preferences or TimePreferences()
    currency = (params.currency or "JPY").upper()
    booking_url = links.wayaway_booking_url(
        params.origin.upper(),
        params.destination.upper(),
        params.depart_date,
        params.return_date,
        currency,
    )

    options: list[FlightOption] = []
    if preferences.departure_time and preferences.arrival_time:
        options.append(
            FlightOption(
                airline="ANA",
                flight_number="NH123",
                departure=preferences.departure_time,
                arrival=preferences.arrival_time,
                duration=preferences.duration or duration_between(preferences.departure_time, preferences.arrival_time),
                price=_PREFERRED_PRICE,
                currency=currency,
                booking_url=booking_url,
                source="mock_wayaway",
                matches_schedule=True,
            )
        )

    for i, (airline, code) in enumerate(_CARRIERS):
        departure = f"{7 + 3 * i:02d}:{(20 * i) % 60:02d}"
        if departure == preferences.departure_time:
            continue
        options.append(
            FlightOption(
                airline=airline,
                flight_number=f"{code}{str(100 + i * 111)[:3]}",
                departure=departure,
                arrival=arrival_time(departure, _FLIGHT_HOURS),
                duration=f"{_FLIGHT_HOURS}h",
                price=_BASE_PRICE + i * _PRICE_STEP,
                currency=currency,
                booking_url=booking_url,
                transfers=0 if i % 2 == 0 else 1,
                source="mock_wayaway",
            )
        )
    return options
