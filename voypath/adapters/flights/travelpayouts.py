"""TravelPayouts Data API adapter: 直飞最低价查询

环境变量: TRAVELPAYOUTS_TOKEN
文档: https://support.travelpayouts.com/hc/en-us/articles/203956163
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from voypath.adapters.flights import links, schedule
from voypath.adapters.flights.models import (
    FlightOption,
    FlightPriceResponse,
    FlightSearchParams,
    TimePreferences,
)
from voypath.domain.exceptions import AuthenticationRequired, ValidationFailed
from voypath.infrastructure.logging import get_logger
from voypath.observability.tracing import get_current_trace_id, trace_span
from voypath.security.http_client import SecureHttpClient
from voypath.security.key_manager import TRAVELPAYOUTS_TOKEN, get_key_manager
from voypath.shared.exceptions import ToolError

_BASE_URL = "https://api.travelpayouts.com/v1/prices/direct"
_USER_AGENT = "VoyPath/1.0"
_TOKEN_MIN_LEN = 16
_TOKEN_MAX_LEN = 64

AIRLINE_NAMES: dict[str, str] = {
    "NH": "ANA",
    "JL": "JAL",
    "UA": "United Airlines",
    "AA": "American Airlines",
    "DL": "Delta Airlines",
    "UT": "UTair",
    "SU": "Aeroflot",
    "LH": "Lufthansa",
    "AF": "Air France",
    "BA": "British Airways",
    "KL": "KLM",
    "TK": "Turkish Airlines",
    "EK": "Emirates",
    "QR": "Qatar Airways",
    "SQ": "Singapore Airlines",
    "CX": "Cathay Pacific",
    "OZ": "Asiana Airlines",
    "KE": "Korean Air",
}

_http = SecureHttpClient(tool_name="travelpayouts", max_retries=1)


def airline_name(code: str) -> str:
    return AIRLINE_NAMES.get(code, f"{code} Airlines")


def _resolve_token(token: Optional[str]) -> str:
    """调用方 Token 优先，否则走 KeyManager；格式不合法直接拒绝"""
    km = get_key_manager()
    if token:
        km.register_transient(TRAVELPAYOUTS_TOKEN, token)
        value = token
    else:
        value = km.get_travelpayouts_token()
    if not value:
        raise AuthenticationRequired("TravelPayouts API token is required")
    if not (_TOKEN_MIN_LEN <= len(value) <= _TOKEN_MAX_LEN):
        raise AuthenticationRequired("Invalid token format")
    return value


def _validate_params(params: FlightSearchParams) -> None:
    if not (params.origin and params.destination and params.depart_date):
        raise ValidationFailed("Missing required parameters: origin, destination, depart_date")


def _flatten_routes(data: Any, origin: str, destination: str) -> dict[str, dict[str, Any]]:
    """
    TravelPayouts 返回两种结构：
      {DST: {"0": {...}, "1": {...}}}   (官方嵌套格式)
      {"ORG_DST": {...}}                 (扁平格式)
    统一成 route key -> 价格记录。
    """
    if not isinstance(data, dict):
        return {}
    route_key = f"{origin}_{destination}"
    flattened: dict[str, dict[str, Any]] = {}
    for key, value in data.items():
        if not isinstance(value, dict):
            continue
        if "price" in value:
            flattened[key] = value
            continue
        for idx, record in value.items():
            if isinstance(record, dict) and "price" in record:
                suffix = "" if idx == "0" else f"_{idx}"
                flattened[f"{route_key}{suffix}"] = record
    return flattened


def fetch_direct_prices(params: FlightSearchParams, *, token: Optional[str] = None) -> FlightPriceResponse:
    """
    查询直飞最低价，原样返回 TravelPayouts 数据（按航线展平）。
    相同查询 30 分钟内走缓存。
    """
    from voypath.infrastructure.cache import flight_cache, make_cache_key

    _validate_params(params)
    access_token = _resolve_token(token)

    origin = params.origin.upper()
    destination = params.destination.upper()
    currency = (params.currency or "JPY").upper()

    cache_key = make_cache_key("tp_direct", origin, destination, params.depart_date, params.return_date, currency)
    return flight_cache.get_or_load(
        cache_key, lambda: _request_direct_prices(origin, destination, params, currency, access_token)
    )


def _request_direct_prices(
    origin: str, destination: str, params: FlightSearchParams, currency: str, access_token: str
) -> FlightPriceResponse:
    query: dict[str, Any] = {
        "origin": origin,
        "destination": destination,
        "depart_date": params.depart_date,
        "currency": currency,
    }
    if params.return_date:
        query["return_date"] = params.return_date

    headers = {
        "Accept": "application/json",
        "User-Agent": _USER_AGENT,
        "X-Access-Token": access_token,
    }

    log = get_logger(get_current_trace_id() or None)
    with trace_span("travelpayouts.prices_direct", logger=log, origin=origin, destination=destination):
        try:
            payload = _http.get(_BASE_URL, params=query, headers=headers)
        except ToolError as exc:
            log.external_call("travelpayouts", ok=False, origin=origin, destination=destination)
            if exc.status_code == 401:
                raise AuthenticationRequired("TravelPayouts rejected the API token") from None
            raise

    if payload.get("success") is False:
        log.external_call("travelpayouts", ok=False, origin=origin, destination=destination)
        raise ToolError("travelpayouts", f"API returned error: {payload.get('error') or 'unknown error'}")

    data = _flatten_routes(payload.get("data"), origin, destination)
    log.external_call("travelpayouts", ok=True, origin=origin, destination=destination, results=len(data))

    return FlightPriceResponse(
        success=True,
        data=data,
        currency=payload.get("currency") or currency,
        timestamp=dt.datetime.now(dt.timezone.utc).isoformat(),
    )


def transform_to_flight_options(
    prices: FlightPriceResponse,
    params: FlightSearchParams,
    preferences: Optional[TimePreferences] = None,
) -> list[FlightOption]:
    """价格记录 → 航班选项，先按是否匹配期望时刻，再按价格排序"""
    preferences = preferences or TimePreferences()
    currency = prices.currency.upper()
    booking_url = links.wayaway_booking_url(
        params.origin.upper(),
        params.destination.upper(),
        params.depart_date,
        params.return_date,
        currency,
    )

    options: list[FlightOption] = []
    for record in prices.data.values():
        code = str(record.get("airline") or "")
        departed_at = record.get("departure_at")
        departure = schedule.clock_time(departed_at)
        arrival = schedule.clock_time(record.get("return_at") or departed_at)
        options.append(
            FlightOption(
                airline=airline_name(code),
                flight_number=f"{code}{record.get('flight_number', '')}",
                departure=departure,
                arrival=arrival,
                duration=schedule.elapsed(departed_at, record.get("return_at")),
                price=int(record.get("price") or 0),
                currency=currency,
                booking_url=booking_url,
                transfers=int(record.get("transfers") or 0),
                source="WayAway",
                actual=record.get("actual"),
                distance=record.get("distance"),
                expires_at=record.get("expires_at"),
                matches_schedule=(
                    schedule.same_clock(preferences.departure_time, departure)
                    and schedule.same_clock(preferences.arrival_time, arrival)
                ),
            )
        )

    options.sort(key=lambda o: (not o.matches_schedule, o.price))
    return options


def search_flights(
    params: FlightSearchParams,
    preferences: Optional[TimePreferences] = None,
    *,
    token: Optional[str] = None,
) -> list[FlightOption]:
    prices = fetch_direct_prices(params, token=token)
    return transform_to_flight_options(prices, params, preferences)
