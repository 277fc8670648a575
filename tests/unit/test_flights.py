"""航班价格：时刻计算、联盟链接、Mock 与 TravelPayouts 适配器"""

from __future__ import annotations

from urllib.parse import unquote

import pytest

from voypath.adapters.flights import get_flight_provider, links, schedule
from voypath.adapters.flights import mock as mock_flights
from voypath.adapters.flights import travelpayouts
from voypath.adapters.flights.models import FlightPriceResponse, FlightSearchParams, TimePreferences
from voypath.domain.exceptions import AuthenticationRequired, ValidationFailed
from voypath.security.key_manager import TRAVELPAYOUTS_TOKEN, get_key_manager
from voypath.services import flight_service
from voypath.shared.exceptions import ToolError

_TOKEN = "tp_unit_token_0123456789"

_NESTED_PAYLOAD = {
    "success": True,
    "currency": "jpy",
    "data": {
        "NRT": {
            "0": {
                "airline": "NH",
                "flight_number": 105,
                "price": 42000,
                "transfers": 0,
                "departure_at": "2025-05-01T09:00:00+09:00",
                "return_at": "2025-05-01T15:30:00+09:00",
                "expires_at": "2025-04-20T00:00:00Z",
            },
            "1": {
                "airline": "ZZ",
                "flight_number": 7,
                "price": 38000,
                "transfers": 1,
                "departure_at": "2025-05-01T11:15:00+09:00",
                "return_at": "2025-05-01T17:15:00+09:00",
            },
        }
    },
}


def _params(**overrides) -> FlightSearchParams:
    values = {"origin": "lax", "destination": "nrt", "depart_date": "2025-05-01"}
    values.update(overrides)
    return FlightSearchParams(**values)


def _use_token(monkeypatch, value: str = _TOKEN) -> None:
    monkeypatch.setenv(TRAVELPAYOUTS_TOKEN, value)
    get_key_manager().reload(TRAVELPAYOUTS_TOKEN)


class TestSchedule:
    def test_arrival_wraps_midnight(self):
        assert schedule.arrival_time("07:00", 6) == "13:00"
        assert schedule.arrival_time("22:30", 3.5) == "02:00"

    def test_duration_between(self):
        assert schedule.duration_between("07:00", "13:00") == "6h"
        assert schedule.duration_between("09:15", "11:45") == "2h 30m"
        assert schedule.duration_between("23:00", "01:30") == "2h 30m"

    def test_time_difference(self):
        assert schedule.time_difference("10:00", "08:45") == 75

    def test_same_clock(self):
        assert schedule.same_clock("9:00", "09:00")
        assert not schedule.same_clock("09:00", "21:00")
        assert not schedule.same_clock(None, "09:00")
        assert not schedule.same_clock("soon", "09:00")

    def test_timestamps(self):
        assert schedule.clock_time("2025-05-01T09:05:00Z") == "09:05"
        assert schedule.clock_time(None) == ""
        assert schedule.clock_time("later") == ""
        assert schedule.elapsed("2025-05-01T09:00:00+09:00", "2025-05-01T15:30:00+09:00") == "6h 30m"
        assert schedule.elapsed("2025-05-01T09:00:00+09:00", None) == ""


class TestLinks:
    def test_city_codes(self):
        assert links.iata_to_city_code("NRT") == "tyo"
        assert links.iata_to_city_code("hnd") == "tyo"
        assert links.iata_to_city_code("XYZ") == "xyz"

    def test_wayaway_link_goes_through_tp_media(self):
        url = links.wayaway_booking_url("LAX", "NRT", "2025-05-01", "2025-05-08", "JPY")
        assert url.startswith("https://tp.media/r?marker=649297&trs=434567&p=5976&u=https%3A%2F%2Fwayaway.io%2Fsearch%3F")
        assert url.endswith("&campaign_id=200")
        target = unquote(url.split("&u=", 1)[1])
        assert "origin_iata=LAX" in target
        assert "return_date=2025-05-08" in target

    def test_marker_from_env(self, monkeypatch):
        monkeypatch.setenv("TRAVELPAYOUTS_MARKER", "123456")
        assert "marker=123456" in links.wayaway_search_url("LAX", "NRT", "2025-05-01")

    def test_tripcom_link_uses_city_codes(self):
        url = links.tripcom_booking_url("NRT", "LHR", "2025-05-01")
        assert "&p=8626&" in url
        assert url.endswith("&campaign_id=121")
        target = unquote(url.split("&u=", 1)[1])
        assert target.startswith("https://jp.trip.com/flights/showfarefirst?")
        assert "dcity=tyo" in target
        assert "acity=lon" in target


class TestMockProvider:
    def test_four_carriers_without_preferences(self):
        options = mock_flights.search_flights(_params())
        assert [o.flight_number for o in options] == ["NH100", "JL211", "UA322", "DL433"]
        assert [o.departure for o in options] == ["07:00", "10:20", "13:40", "16:00"]
        assert [o.price for o in options] == [35000, 43000, 51000, 59000]
        assert [o.transfers for o in options] == [0, 1, 0, 1]
        assert options[0].arrival == "13:00"
        assert all(o.source == "mock_wayaway" and o.currency == "JPY" for o in options)

    def test_preferred_times_add_matching_flight(self):
        prefs = TimePreferences(departure_time="10:20", arrival_time="16:50")
        options = mock_flights.search_flights(_params(), prefs)
        assert options[0].flight_number == "NH123"
        assert options[0].matches_schedule is True
        assert options[0].price == 45000
        assert options[0].duration == "6h 30m"
        # the regular 10:20 departure is replaced by the preferred one
        assert "JL211" not in [o.flight_number for o in options]
        assert len(options) == 4


class TestTravelPayouts:
    def test_missing_token(self):
        with pytest.raises(AuthenticationRequired):
            travelpayouts.fetch_direct_prices(_params())

    def test_token_length_checked(self):
        with pytest.raises(AuthenticationRequired, match="Invalid token format"):
            travelpayouts.fetch_direct_prices(_params(), token="short")

    def test_missing_params(self):
        with pytest.raises(ValidationFailed):
            travelpayouts.fetch_direct_prices(_params(destination=""), token=_TOKEN)

    def test_fetch_flattens_and_caches(self, monkeypatch):
        calls = []

        def fake_get(url, *, params=None, headers=None):
            calls.append((url, params, headers))
            return _NESTED_PAYLOAD

        monkeypatch.setattr(travelpayouts._http, "get", fake_get)
        _use_token(monkeypatch)

        first = travelpayouts.fetch_direct_prices(_params())
        second = travelpayouts.fetch_direct_prices(_params())

        assert len(calls) == 1
        url, query, headers = calls[0]
        assert url == "https://api.travelpayouts.com/v1/prices/direct"
        assert query == {"origin": "LAX", "destination": "NRT", "depart_date": "2025-05-01", "currency": "JPY"}
        assert headers["X-Access-Token"] == _TOKEN
        assert headers["User-Agent"] == "VoyPath/1.0"
        assert set(first.data) == {"LAX_NRT", "LAX_NRT_1"}
        assert first.currency == "jpy"
        assert second is first

    def test_flat_payload_passes_through(self, monkeypatch):
        payload = {"success": True, "data": {"LAX_NRT": {"airline": "JL", "price": 50000}}}
        monkeypatch.setattr(travelpayouts._http, "get", lambda url, **kw: payload)
        prices = travelpayouts.fetch_direct_prices(_params(), token=_TOKEN)
        assert prices.data == {"LAX_NRT": {"airline": "JL", "price": 50000}}

    def test_api_error_payload(self, monkeypatch):
        monkeypatch.setattr(travelpayouts._http, "get", lambda url, **kw: {"success": False, "error": "quota"})
        with pytest.raises(ToolError, match="quota"):
            travelpayouts.fetch_direct_prices(_params(), token=_TOKEN)

    def test_rejected_token_maps_to_auth_error(self, monkeypatch):
        def fake_get(url, **kw):
            raise ToolError("travelpayouts", "HTTP 401: unauthorized", status_code=401)

        monkeypatch.setattr(travelpayouts._http, "get", fake_get)
        with pytest.raises(AuthenticationRequired):
            travelpayouts.fetch_direct_prices(_params(), token=_TOKEN)

    def test_search_sorts_by_price(self, monkeypatch):
        monkeypatch.setattr(travelpayouts._http, "get", lambda url, **kw: _NESTED_PAYLOAD)
        options = travelpayouts.search_flights(_params(), token=_TOKEN)

        assert [o.flight_number for o in options] == ["ZZ7", "NH105"]
        cheapest, ana = options
        assert cheapest.airline == "ZZ Airlines"
        assert cheapest.transfers == 1
        assert ana.airline == "ANA"
        assert ana.departure == "09:00"
        assert ana.arrival == "15:30"
        assert ana.duration == "6h 30m"
        assert ana.currency == "JPY"
        assert ana.source == "WayAway"
        assert ana.booking_url.startswith("https://tp.media/r?")
        assert not any(o.matches_schedule for o in options)

    def test_preferred_schedule_sorts_before_cheaper_flights(self, monkeypatch):
        payload = {
            "success": True,
            "currency": "JPY",
            "data": {
                "LAX_NRT": {
                    "airline": "NH",
                    "flight_number": 1,
                    "price": 90000,
                    "departure_at": "2025-05-01T10:00:00+09:00",
                    "return_at": "2025-05-01T16:00:00+09:00",
                },
                "LAX_NRT_1": {
                    "airline": "JL",
                    "flight_number": 2,
                    "price": 50000,
                    "departure_at": "2025-05-01T07:00:00+09:00",
                    "return_at": "2025-05-01T13:00:00+09:00",
                },
            },
        }
        monkeypatch.setattr(travelpayouts._http, "get", lambda url, **kw: payload)
        prefs = TimePreferences(departure_time="10:00", arrival_time="16:00")
        options = travelpayouts.search_flights(_params(), prefs, token=_TOKEN)

        assert [(o.flight_number, o.matches_schedule) for o in options] == [("NH1", True), ("JL2", False)]

    def test_one_way_record_arrival_falls_back_to_departure(self):
        prices = FlightPriceResponse(
            data={"LAX_NRT": {"airline": "UA", "flight_number": 9, "price": 1, "departure_at": "2025-05-01T08:05:00Z"}},
        )
        prefs = TimePreferences(departure_time="8:05", arrival_time="08:05")
        (option,) = travelpayouts.transform_to_flight_options(prices, _params(), prefs)

        assert option.arrival == "08:05"
        assert option.duration == ""
        assert option.matches_schedule is True



class TestProviderSelection:
    def test_mock_without_token(self):
        assert get_flight_provider() is mock_flights

    def test_travelpayouts_with_token(self, monkeypatch):
        _use_token(monkeypatch)
        assert get_flight_provider() is travelpayouts

    def test_explicit_mock_wins(self, monkeypatch):
        _use_token(monkeypatch)
        monkeypatch.setenv("FLIGHT_PROVIDER", "mock")
        assert get_flight_provider() is mock_flights

    def test_strict_mode_requires_token(self, monkeypatch):
        monkeypatch.setenv("STRICT_EXTERNAL_DATA", "true")
        with pytest.raises(ToolError, match="STRICT_EXTERNAL_DATA"):
            get_flight_provider()


class TestFlightService:
    def test_mock_search_includes_links(self):
        result = flight_service.search_flights(_params())
        assert result["source"] == "mock"
        assert len(result["flights"]) == 4
        assert result["links"]["wayaway"].endswith("&campaign_id=200")
        assert result["links"]["trip_com"].endswith("&campaign_id=121")

    def test_upstream_failure_falls_back_to_mock(self, monkeypatch):
        def fake_get(url, **kw):
            raise ToolError("travelpayouts", "HTTP 502: bad gateway")

        monkeypatch.setattr(travelpayouts._http, "get", fake_get)
        _use_token(monkeypatch)

        result = flight_service.search_flights(_params())
        assert result["source"] == "mock"
        assert result["flights"][0]["source"] == "mock_wayaway"

    def test_empty_upstream_falls_back_to_mock(self, monkeypatch):
        monkeypatch.setattr(travelpayouts._http, "get", lambda url, **kw: {"success": True, "data": {}})
        _use_token(monkeypatch)

        result = flight_service.search_flights(_params())
        assert result["source"] == "mock"
        assert len(result["flights"]) == 4

    def test_empty_upstream_stays_empty_in_strict_mode(self, monkeypatch):
        monkeypatch.setattr(travelpayouts._http, "get", lambda url, **kw: {"success": True, "data": {}})
        monkeypatch.setenv("STRICT_EXTERNAL_DATA", "true")
        _use_token(monkeypatch)

        result = flight_service.search_flights(_params())
        assert result["source"] == "travelpayouts"
        assert result["flights"] == []

    def test_upstream_failure_in_strict_mode_raises(self, monkeypatch):
        def fake_get(url, **kw):
            raise ToolError("travelpayouts", "HTTP 502: bad gateway")

        monkeypatch.setattr(travelpayouts._http, "get", fake_get)
        monkeypatch.setenv("STRICT_EXTERNAL_DATA", "true")
        _use_token(monkeypatch)

        with pytest.raises(ToolError):
            flight_service.search_flights(_params())

    def test_caller_token_uses_travelpayouts(self, monkeypatch):
        monkeypatch.setattr(travelpayouts._http, "get", lambda url, **kw: _NESTED_PAYLOAD)
        result = flight_service.search_flights(_params(), token=_TOKEN)
        assert result["source"] == "travelpayouts"
        assert result["flights"][0]["price"] == 38000

    def test_direct_prices_never_mock(self):
        with pytest.raises(AuthenticationRequired):
            flight_service.get_direct_prices(_params())
