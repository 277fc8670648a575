"""Lookup-or-raise helpers shared by the services."""

from __future__ import annotations

import datetime as dt
import uuid

from voypath.domain.exceptions import NotFound, PermissionDenied
from voypath.domain.models import Place, Trip, TripMember
from voypath.persistence.repository import TripRepository


def now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


def require_trip(repo: TripRepository, trip_id: str) -> Trip:
    trip = repo.get_trip(trip_id)
    if trip is None:
        raise NotFound("Trip not found")
    return trip


def require_member(repo: TripRepository, trip_id: str, user_id: str) -> TripMember:
    member = repo.get_member(trip_id, user_id)
    if member is None:
        raise PermissionDenied("You are not a member of this trip")
    return member


def require_admin(repo: TripRepository, trip: Trip, user_id: str) -> TripMember:
    member = require_member(repo, trip.id, user_id)
    if trip.owner_id != user_id and not member.is_admin:
        raise PermissionDenied("Only trip admins can perform this action")
    return member


def require_place(repo: TripRepository, place_id: str) -> Place:
    place = repo.get_place(place_id)
    if place is None:
        raise NotFound("Place not found")
    return place
