"""Trip lifecycle (create, list, inspect, update, delete) and public share links."""

from __future__ import annotations

import datetime as dt
import hashlib
import hmac
import logging
import secrets
from typing import Any, Optional

from voypath.application.context import AppContext
from voypath.application.contracts import ShareLinkCreate, TripCreate, TripUpdate
from voypath.domain.constants import (
    DEFAULT_OPTIMIZATION_PREFERENCES,
    DEFAULT_SHARE_PERMISSIONS,
    SAME_AS_DEPARTURE,
    SHARE_TOKEN_ALPHABET,
    SHARE_TOKEN_LENGTH,
    SYSTEM_PLACE_STAY_MINUTES,
    SYSTEM_PLACE_WISH_LEVEL,
)
from voypath.domain.dates import days_until, trip_date_range
from voypath.domain.enums import MemberRole, PlaceSource, TripStatus
from voypath.domain.exceptions import AuthenticationRequired, Conflict, Gone, NotFound, PermissionDenied, ValidationFailed
from voypath.domain.models import Place, Trip, TripMember, TripShare
from voypath.domain.place_colors import SYSTEM_PLACE_COLOR, is_system_place
from voypath.domain.pricing import price_level_label
from voypath.services.access import new_id, now_iso, require_admin, require_member, require_trip
from voypath.services.color_service import next_free_color_index
from voypath.services.itinerary_service import build_day_timeline

_logger = logging.getLogger("voypath.trips")


def resolve_destination(departure: str, destination: Optional[str]) -> str:
    """Blank or "same as departure location" means a round trip."""
    value = (destination or "").strip()
    if not value or value.lower() == SAME_AS_DEPARTURE:
        return departure
    return value


def default_trip_name(departure: str) -> str:
    return f"{departure}からの旅行"


def trip_status(trip: Trip, today: Optional[dt.date] = None) -> TripStatus:
    today = today or dt.date.today()
    if trip.start_date and today < trip.start_date:
        return TripStatus.PLANNING
    if trip.end_date and today > trip.end_date:
        return TripStatus.COMPLETED
    if trip.start_date:
        return TripStatus.ACTIVE
    return TripStatus.PLANNING


def _system_place(trip: Trip, *, name: str, category: str, place_type: str, when: Optional[dt.date], stamp: str) -> Place:
    return Place(
        id=new_id(),
        trip_id=trip.id,
        user_id=trip.owner_id,
        name=name,
        category=category,
        wish_level=SYSTEM_PLACE_WISH_LEVEL,
        stay_duration_minutes=SYSTEM_PLACE_STAY_MINUTES,
        scheduled=when is not None,
        scheduled_date=when,
        source=PlaceSource.SYSTEM,
        place_type=place_type,
        display_color=SYSTEM_PLACE_COLOR,
        created_at=stamp,
        updated_at=stamp,
    )


def build_system_places(trip: Trip, stamp: str) -> list[Place]:
    """Departure point plus either the final destination or the return leg."""
    departure = trip.departure_location
    places = [
        _system_place(
            trip,
            name=f"{departure} (Departure)",
            category="departure_point",
            place_type="departure",
            when=trip.start_date,
            stamp=stamp,
        )
    ]
    destination = trip.destination or departure
    if destination != departure:
        places.append(
            _system_place(
                trip,
                name=f"{destination} (Final Destination)",
                category="destination_point",
                place_type="destination",
                when=trip.end_date,
                stamp=stamp,
            )
        )
    else:
        places.append(
            _system_place(
                trip,
                name=f"{departure} (Return)",
                category="return_point",
                place_type="departure",
                when=trip.end_date,
                stamp=stamp,
            )
        )
    return places


def create_trip(*, ctx: AppContext, user_id: str, payload: TripCreate) -> dict[str, Any]:
    departure = payload.departure_location.strip()
    if not departure:
        raise ValidationFailed("departure_location is required")
    stamp = now_iso()
    preferences = dict(DEFAULT_OPTIMIZATION_PREFERENCES)
    preferences.update(payload.optimization_preferences or {})

    trip = Trip(
        id=new_id(),
        name=(payload.name or "").strip() or default_trip_name(departure),
        description=payload.description,
        departure_location=departure,
        destination=resolve_destination(departure, payload.destination),
        start_date=payload.start_date,
        end_date=payload.end_date,
        owner_id=user_id,
        max_members=payload.max_members,
        optimization_preferences=preferences,
        created_at=stamp,
        updated_at=stamp,
    )
    owner = TripMember(
        trip_id=trip.id,
        user_id=user_id,
        role=MemberRole.ADMIN,
        can_add_places=True,
        can_edit_places=True,
        can_optimize=True,
        can_invite_members=True,
        assigned_color_index=next_free_color_index([]),
        joined_at=stamp,
    )
    system_places = build_system_places(trip, stamp)
    ctx.repo.create_trip(trip, owner, system_places)
    _logger.info("trip %s created by %s", trip.id, user_id)
    return {
        "trip": trip.model_dump(mode="json"),
        "system_places": [p.model_dump(mode="json") for p in system_places],
    }


def _trip_summary(ctx: AppContext, trip: Trip, user_id: str, today: dt.date) -> dict[str, Any]:
    member = ctx.repo.get_member(trip.id, user_id)
    return {
        **trip.model_dump(mode="json"),
        "member_count": ctx.repo.count_members(trip.id),
        "place_count": ctx.repo.count_places(trip.id),
        "user_role": member.role.value if member else None,
        "is_owner": trip.owner_id == user_id,
        "days_until_start": days_until(trip.start_date, today),
        "status": trip_status(trip, today).value,
    }


def list_trips(*, ctx: AppContext, user_id: str, today: Optional[dt.date] = None) -> list[dict[str, Any]]:
    today = today or dt.date.today()
    return [_trip_summary(ctx, trip, user_id, today) for trip in ctx.repo.list_trips_for_user(user_id)]


def _statistics(places: list[Place], member_count: int) -> dict[str, Any]:
    by_user: dict[str, int] = {}
    for place in places:
        by_user[place.user_id] = by_user.get(place.user_id, 0) + 1
    avg = sum(p.wish_level for p in places) / len(places) if places else 0.0
    return {
        "total_members": member_count,
        "total_places": len(places),
        "places_by_user": by_user,
        "avg_wish_level": round(avg, 2),
    }


def get_trip_detail(*, ctx: AppContext, trip_id: str, user_id: str, today: Optional[dt.date] = None) -> dict[str, Any]:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    member = require_member(repo, trip_id, user_id)
    members = repo.list_members(trip_id)
    places = repo.list_places(trip_id)
    active = repo.get_active_optimization(trip_id)
    today = today or dt.date.today()
    return {
        **trip.model_dump(mode="json"),
        "status": trip_status(trip, today).value,
        "days_until_start": days_until(trip.start_date, today),
        "trip_dates": [d.isoformat() for d in trip_date_range(trip.start_date, trip.end_date)],
        "user_permissions": {
            "role": member.role.value,
            "is_owner": trip.owner_id == user_id,
            "can_add_places": member.can_add_places,
            "can_edit_places": member.can_edit_places,
            "can_optimize": member.can_optimize,
            "can_invite_members": member.can_invite_members,
        },
        "statistics": _statistics(places, len(members)),
        "optimization_result": active.model_dump(mode="json") if active else None,
    }


def update_trip(*, ctx: AppContext, trip_id: str, user_id: str, payload: TripUpdate) -> Trip:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    require_admin(repo, trip, user_id)

    changes = payload.model_dump(exclude_unset=True)
    if "departure_location" in changes:
        if changes["departure_location"] is None:
            raise ValidationFailed("departure_location cannot be empty")
        changes["departure_location"] = changes["departure_location"].strip()
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationFailed("name cannot be empty")
    if "destination" in changes:
        departure = changes.get("departure_location") or trip.departure_location
        changes["destination"] = resolve_destination(departure, changes["destination"])
    if "optimization_preferences" in changes:
        merged = dict(trip.optimization_preferences)
        merged.update(changes["optimization_preferences"] or {})
        changes["optimization_preferences"] = merged
    if "max_members" in changes:
        if changes["max_members"] is None:
            del changes["max_members"]
        elif changes["max_members"] < repo.count_members(trip_id):
            raise ValidationFailed("max_members cannot be lower than the current member count")

    start = changes.get("start_date", trip.start_date)
    end = changes.get("end_date", trip.end_date)
    if start and end and end < start:
        raise ValidationFailed("end_date must not be before start_date")

    updated = trip.model_copy(update={**changes, "updated_at": now_iso()})
    repo.update_trip(updated)
    return updated


def delete_trip(*, ctx: AppContext, trip_id: str, user_id: str) -> None:
    trip = require_trip(ctx.repo, trip_id)
    if trip.owner_id != user_id:
        raise PermissionDenied("Only the trip owner can delete this trip")
    ctx.repo.delete_trip(trip_id)
    _logger.info("trip %s deleted by %s", trip_id, user_id)


# ── share links ───────────────────────────────────────

_PASSWORD_ITERATIONS = 120_000
_TOKEN_ATTEMPTS = 10


def generate_share_token() -> str:
    return "".join(secrets.choice(SHARE_TOKEN_ALPHABET) for _ in range(SHARE_TOKEN_LENGTH))


def hash_share_password(password: str, *, salt: Optional[str] = None) -> str:
    """``pbkdf2_sha256$iterations$salt$digest``"""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), _PASSWORD_ITERATIONS)
    return f"pbkdf2_sha256${_PASSWORD_ITERATIONS}${salt}${digest.hex()}"


def verify_share_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored.split("$")
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), int(iterations))
    except ValueError:
        return False
    return scheme == "pbkdf2_sha256" and hmac.compare_digest(digest.hex(), expected)


def share_is_expired(share: TripShare, now: Optional[dt.datetime] = None) -> bool:
    if not share.expires_at:
        return False
    expires = dt.datetime.fromisoformat(share.expires_at.replace("Z", "+00:00"))
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=dt.timezone.utc)
    return (now or dt.datetime.now(dt.timezone.utc)) >= expires


def _share_permissions(requested: Optional[dict[str, bool]]) -> dict[str, bool]:
    permissions = dict(DEFAULT_SHARE_PERMISSIONS)
    for key, value in (requested or {}).items():
        if key not in DEFAULT_SHARE_PERMISSIONS:
            raise ValidationFailed(f"Unknown share permission: {key}")
        permissions[key] = bool(value)
    return permissions


def describe_share(share: TripShare, now: Optional[dt.datetime] = None) -> dict[str, Any]:
    data = share.model_dump(mode="json", exclude={"password_hash"})
    data["share_url"] = f"/shared/{share.share_token}"
    data["password_protected"] = share.password_hash is not None
    data["is_expired"] = share_is_expired(share, now)
    return data


def create_share_link(*, ctx: AppContext, trip_id: str, user_id: str, payload: ShareLinkCreate) -> dict[str, Any]:
    """Public read-only link; an open link of the same type and permissions is reused."""
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    require_admin(repo, trip, user_id)
    permissions = _share_permissions(payload.permissions)
    now = dt.datetime.now(dt.timezone.utc)

    if payload.password is None:
        for existing in repo.list_shares(trip_id):
            if (
                existing.is_active
                and existing.share_type == payload.share_type
                and existing.password_hash is None
                and existing.permissions == permissions
                and not share_is_expired(existing, now)
            ):
                return {**describe_share(existing, now), "reused": True}

    for _ in range(_TOKEN_ATTEMPTS):
        token = generate_share_token()
        if repo.get_share_by_token(token) is None:
            break
    else:
        raise Conflict("Could not generate a unique share token")

    share = TripShare(
        id=new_id(),
        trip_id=trip_id,
        share_token=token,
        share_type=payload.share_type,
        permissions=permissions,
        password_hash=hash_share_password(payload.password) if payload.password else None,
        expires_at=(now + dt.timedelta(hours=payload.expires_hours)).isoformat(),
        created_by=user_id,
        created_at=now.isoformat(),
    )
    repo.save_share(share)
    _logger.info("share link %s created for trip %s by %s", share.id, trip_id, user_id)
    return {**describe_share(share, now), "reused": False}


def list_share_links(*, ctx: AppContext, trip_id: str, user_id: str) -> list[dict[str, Any]]:
    trip = require_trip(ctx.repo, trip_id)
    require_admin(ctx.repo, trip, user_id)
    now = dt.datetime.now(dt.timezone.utc)
    return [describe_share(share, now) for share in ctx.repo.list_shares(trip_id)]


def revoke_share_link(*, ctx: AppContext, trip_id: str, share_id: str, user_id: str) -> dict[str, Any]:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    require_admin(repo, trip, user_id)
    share = repo.get_share(share_id)
    if share is None or share.trip_id != trip_id:
        raise NotFound("Share link not found")
    revoked = share.model_copy(update={"is_active": False})
    repo.save_share(revoked)
    _logger.info("share link %s revoked by %s", share_id, user_id)
    return describe_share(revoked)


def _public_place(place: Place) -> dict[str, Any]:
    system = is_system_place(source=place.source.value, category=place.category, place_type=place.place_type)
    return {
        "id": place.id,
        "name": place.name,
        "category": place.category,
        "address": place.address,
        "latitude": place.latitude,
        "longitude": place.longitude,
        "wish_level": place.wish_level,
        "stay_duration_minutes": place.stay_duration_minutes,
        "scheduled_date": place.scheduled_date.isoformat() if place.scheduled_date else None,
        "price_level_label": price_level_label(place.price_level),
        "display_color": SYSTEM_PLACE_COLOR if system else place.display_color,
        "is_system_place": system,
    }


def get_shared_trip(
    *,
    ctx: AppContext,
    token: str,
    password: Optional[str] = None,
    today: Optional[dt.date] = None,
) -> dict[str, Any]:
    """Read-only trip view for anyone holding the link; no membership needed."""
    repo = ctx.repo
    share = repo.get_share_by_token(token)
    if share is None or not share.is_active:
        raise NotFound("Share link not found or expired")
    if share_is_expired(share):
        raise Gone("Share link has expired")
    if share.password_hash:
        if not password:
            raise AuthenticationRequired("Password required to access this shared trip")
        if not verify_share_password(password, share.password_hash):
            raise AuthenticationRequired("Invalid password")
    trip = repo.get_trip(share.trip_id)
    if trip is None:
        raise NotFound("Associated trip not found")

    today = today or dt.date.today()
    view: dict[str, Any] = {
        "share_type": share.share_type.value,
        "permissions": share.permissions,
        "expires_at": share.expires_at,
        "trip": {
            "id": trip.id,
            "name": trip.name,
            "description": trip.description,
            "departure_location": trip.departure_location,
            "destination": trip.destination,
            "start_date": trip.start_date.isoformat() if trip.start_date else None,
            "end_date": trip.end_date.isoformat() if trip.end_date else None,
            "trip_dates": [d.isoformat() for d in trip_date_range(trip.start_date, trip.end_date)],
            "status": trip_status(trip, today).value,
            "member_count": repo.count_members(trip.id),
        },
    }
    places = repo.list_places(trip.id)
    if share.permissions.get("can_view_places"):
        view["places"] = [_public_place(p) for p in places]
    if share.permissions.get("can_view_optimization"):
        result = repo.get_active_optimization(trip.id)
        stored = {p.id: p for p in places}
        view["itinerary"] = None if result is None else [
            {
                "day": schedule.day,
                "date": schedule.date.isoformat() if schedule.date else None,
                "events": build_day_timeline(schedule, stored),
            }
            for schedule in result.daily_schedules
        ]
    repo.record_share_view(share.id)
    return view


__all__ = [
    "build_system_places",
    "create_share_link",
    "create_trip",
    "default_trip_name",
    "delete_trip",
    "describe_share",
    "get_shared_trip",
    "get_trip_detail",
    "hash_share_password",
    "list_share_links",
    "list_trips",
    "resolve_destination",
    "revoke_share_link",
    "share_is_expired",
    "trip_status",
    "update_trip",
    "verify_share_password",
]
