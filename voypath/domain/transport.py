"""Transport mode display metadata (icon, label, color, emoji)."""

from __future__ import annotations

import math
from typing import Optional

from pydantic import BaseModel

_CAR_ICON = "/icons8-car-24.png"
_TRAIN_ICON = "/icons8-train-50 (1).png"

_ALIASES = {
    "walk": "walking",
    "driving": "car",
    "travel": "car",
}


class TransportStyle(BaseModel):
    mode: str
    icon: str
    name: str
    color: str
    emoji: str


_STYLES: dict[str, TransportStyle] = {
    "walking": TransportStyle(mode="walking", icon="/icons8-walking-50.png", name="Walking", color="#6B7280", emoji="🚶"),
    "car": TransportStyle(mode="car", icon=_CAR_ICON, name="Car", color="#92400E", emoji="🚗"),
    "flight": TransportStyle(mode="flight", icon="/icons8-plane-24.png", name="Flight", color="#2563EB", emoji="✈️"),
    "public_transport": TransportStyle(mode="public_transport", icon=_TRAIN_ICON, name="Bus", color="#6B7280", emoji="🚌"),
    "bus": TransportStyle(mode="bus", icon=_TRAIN_ICON, name="Bus", color="#6B7280", emoji="🚌"),
    "train": TransportStyle(mode="train", icon=_TRAIN_ICON, name="Train", color="#6B7280", emoji="🚆"),
    "bicycle": TransportStyle(mode="bicycle", icon=_CAR_ICON, name="Bicycle", color="#F59E0B", emoji="🚲"),
    "taxi": TransportStyle(mode="taxi", icon=_CAR_ICON, name="Taxi", color="#EF4444", emoji="🚕"),
}
# Unknown modes render as a car in neutral gray.
_DEFAULT_STYLE = TransportStyle(mode="car", icon=_CAR_ICON, name="Car", color="#6B7280", emoji="🚗")


def normalize_mode(mode: Optional[str]) -> str:
    lowered = str(mode or "").strip().lower()
    return _ALIASES.get(lowered, lowered)


def transport_style(mode: Optional[str]) -> TransportStyle:
    return _STYLES.get(normalize_mode(mode), _DEFAULT_STYLE)


def known_modes() -> list[str]:
    return sorted(_STYLES)


_EARTH_RADIUS_KM = 6371.0
_WALKING_MAX_KM = 2.0
_DRIVING_MAX_KM = 500.0


class TransportLeg(BaseModel):
    mode: str
    minutes: int
    distance_km: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    return _EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def estimate_leg(distance_km: float) -> TransportLeg:
    """Walk up to 2 km, drive up to 500 km, fly beyond; minutes include boarding overhead."""
    if distance_km <= _WALKING_MAX_KM:
        mode, minutes = "walking", distance_km * 12 + 5  # 5 km/h
    elif distance_km <= _DRIVING_MAX_KM:
        mode, minutes = "car", distance_km + 10  # 60 km/h
    else:
        # airport time: 1h, 1.5h for long haul
        mode, minutes = "flight", round(distance_km / 700 * 60) + (90 if distance_km > 3000 else 60)
    return TransportLeg(mode=mode, minutes=int(round(minutes)), distance_km=round(distance_km, 1))
