"""Affiliate booking links (WayAway and Trip.com through tp.media)."""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote, urlencode

from voypath.config.settings import resolve_affiliate_marker

_TP_REDIRECT = "https://tp.media/r"
_TRS = "434567"
_WAYAWAY_PARTNER = "5976"
_WAYAWAY_CAMPAIGN = "200"
_TRIPCOM_PARTNER = "8626"
_TRIPCOM_CAMPAIGN = "121"

_CITY_CODES = {
    "JFK": "nyc", "LGA": "nyc", "EWR": "nyc",
    "NRT": "tyo", "HND": "tyo",
    "LAX": "lax",
    "CKG": "ckg",
    "PEK": "bjs", "PKX": "bjs",
    "PVG": "sha", "SHA": "sha",
    "ICN": "sel", "GMP": "sel",
    "BKK": "bkk",
    "SIN": "sin",
    "HKG": "hkg",
    "TPE": "tpe",
    "KUL": "kul",
    "MNL": "mnl",
    "CGK": "jkt",
    "BOM": "bom",
    "DEL": "del",
    "DXB": "dxb",
    "DOH": "doh",
    "LHR": "lon", "LGW": "lon", "STN": "lon",
    "CDG": "par", "ORY": "par",
    "FRA": "fra",
    "AMS": "ams",
    "ZUR": "zur",
    "SYD": "syd",
    "MEL": "mel",
    "YVR": "yvr",
    "YYZ": "yyz",
    "GRU": "sao",
    "GIG": "rio",
    "MAD": "mad",
    "BCN": "bcn",
    "FCO": "rom",
    "MXP": "mil",
}


def iata_to_city_code(iata: str) -> str:
    return _CITY_CODES.get(iata.upper(), iata.lower())


def _tp_redirect(target_url: str, *, partner: str, campaign: str, marker: str) -> str:
    encoded = quote(target_url, safe="")
    return f"{_TP_REDIRECT}?marker={marker}&trs={_TRS}&p={partner}&u={encoded}&campaign_id={campaign}"


def wayaway_search_url(
    origin: str,
    destination: str,
    depart_date: str,
    return_date: Optional[str] = None,
    currency: str = "JPY",
    *,
    marker: Optional[str] = None,
) -> str:
    params = {
        "origin_iata": origin,
        "destination_iata": destination,
        "depart_date": depart_date,
        "adults": "1",
        "children": "0",
        "infants": "0",
        "currency": currency,
        "marker": marker or resolve_affiliate_marker(),
    }
    if return_date:
        params["return_date"] = return_date
    return f"https://wayaway.io/search?{urlencode(params)}"


def wayaway_booking_url(
    origin: str,
    destination: str,
    depart_date: str,
    return_date: Optional[str] = None,
    currency: str = "JPY",
) -> str:
    marker = resolve_affiliate_marker()
    target = wayaway_search_url(origin, destination, depart_date, return_date, currency, marker=marker)
    return _tp_redirect(target, partner=_WAYAWAY_PARTNER, campaign=_WAYAWAY_CAMPAIGN, marker=marker)


def tripcom_search_url(origin: str, destination: str, depart_date: str) -> str:
    params = {
        "dcity": iata_to_city_code(origin),
        "acity": iata_to_city_code(destination),
        "ddate": depart_date,
        "dairport": origin.lower(),
        "triptype": "ow",
        "class": "y",
        "lowpricesource": "searchform",
        "quantity": "1",
        "searchboxarg": "t",
        "nonstoponly": "off",
        "locale": "ja-JP",
        "curr": "JPY",
    }
    return f"https://jp.trip.com/flights/showfarefirst?{urlencode(params)}"


def tripcom_booking_url(origin: str, destination: str, depart_date: str) -> str:
    target = tripcom_search_url(origin, destination, depart_date)
    return _tp_redirect(
        target,
        partner=_TRIPCOM_PARTNER,
        campaign=_TRIPCOM_CAMPAIGN,
        marker=resolve_affiliate_marker(),
    )
