"""Places of a trip and their contributor colors.

The adder of a place is always its first contributor. Other members
become contributors by recording a wish level or by editing the
place; every such change recomputes and stores the place color.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Optional

from voypath.application.context import AppContext
from voypath.application.contracts import SCHEDULING_FIELDS, PlaceCreate, PlaceQuery, PlaceUpdate, WishUpdate
from voypath.domain.colors import color_for_index_fallback
from voypath.domain.dates import is_date_within_trip_range
from voypath.domain.enums import ColorType, PlaceSource
from voypath.domain.exceptions import PermissionDenied, ValidationFailed
from voypath.domain.models import Place, PlaceContribution, Trip, TripMember
from voypath.domain.place_colors import (
    SYSTEM_PLACE_COLOR,
    MemberContribution,
    PlaceColorResult,
    calculate_contribution_weights,
    calculate_place_color,
    describe_place_color,
    format_for_storage,
    generate_marker_css,
    is_system_place,
)
from voypath.domain.pricing import price_level_label
from voypath.services.access import new_id, now_iso, require_member, require_place, require_trip
from voypath.services.color_service import member_color

_logger = logging.getLogger("voypath.places")


def _place_is_system(place: Place) -> bool:
    return is_system_place(source=place.source.value, category=place.category, place_type=place.place_type)


def compute_place_color(ctx: AppContext, place: Place) -> PlaceColorResult:
    repo = ctx.repo
    if _place_is_system(place):
        return PlaceColorResult(display_color=SYSTEM_PLACE_COLOR, color_type=ColorType.SINGLE)

    contributions = repo.list_place_contributions(place.id)
    wish_levels = {place.user_id: place.wish_level}
    edit_counts: dict[str, int] = {}
    comment_counts: dict[str, int] = {}
    for c in contributions:
        if c.wish_level:
            wish_levels[c.user_id] = c.wish_level
        if c.edit_count:
            edit_counts[c.user_id] = c.edit_count
        if c.comment_count:
            comment_counts[c.user_id] = c.comment_count

    weights = calculate_contribution_weights(place.user_id, wish_levels, edit_counts, comment_counts)
    members = {m.user_id: m for m in repo.list_members(place.trip_id)}
    users = repo.get_users([user_id for user_id, _ in weights])

    entries: list[MemberContribution] = []
    for user_id, weight in weights:
        member: Optional[TripMember] = members.get(user_id)
        user = users.get(user_id)
        name = (member.nickname if member else None) or (user.name if user else "") or user_id
        color = member_color(member) if member else color_for_index_fallback(user_id)
        entries.append(MemberContribution(user_id=user_id, user_name=name, color=color, weight=weight))
    return calculate_place_color(entries)


def _refresh_color(ctx: AppContext, place: Place) -> tuple[Place, PlaceColorResult]:
    result = compute_place_color(ctx, place)
    stored = format_for_storage(result)
    if _place_is_system(place):
        stored["member_contribution"] = {}
    updated = place.model_copy(update=stored)
    ctx.repo.save_place(updated)
    return updated, result


def present_place(place: Place, result: Optional[PlaceColorResult] = None) -> dict[str, Any]:
    data = place.model_dump(mode="json")
    data["is_system_place"] = _place_is_system(place)
    data["price_level_label"] = price_level_label(place.price_level)
    if result is not None:
        data["color"] = {
            "display_color": result.display_color,
            "color_type": result.color_type.value,
            "css_gradient": result.css_gradient,
            "gold_reason": result.gold_reason,
            "description": describe_place_color(result),
            "marker_css": generate_marker_css(result),
        }
    return data


def _check_scheduled_date(trip: Trip, when: Optional[dt.date]) -> None:
    if when is not None and not is_date_within_trip_range(trip.start_date, trip.end_date, when):
        raise ValidationFailed(f"scheduled_date {when.isoformat()} is outside the trip dates")


def _can_edit(member: TripMember, place: Place, owner_id: str) -> bool:
    return place.user_id == member.user_id or member.can_edit_places or member.is_admin or member.user_id == owner_id


def create_place(*, ctx: AppContext, trip_id: str, user_id: str, payload: PlaceCreate) -> dict[str, Any]:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    member = require_member(repo, trip_id, user_id)
    if not (member.can_add_places or member.is_admin or trip.owner_id == user_id):
        raise PermissionDenied("You do not have permission to add places")
    _check_scheduled_date(trip, payload.scheduled_date)

    stamp = now_iso()
    place = Place(
        id=new_id(),
        trip_id=trip_id,
        user_id=user_id,
        source=PlaceSource.USER,
        scheduled=payload.scheduled_date is not None,
        created_at=stamp,
        updated_at=stamp,
        **payload.model_dump(),
    )
    repo.save_place(place)
    place, result = _refresh_color(ctx, place)
    _logger.info("place %s added to trip %s by %s", place.id, trip_id, user_id)
    return present_place(place, result)


def _sort_key(sort_by: str):
    if sort_by == "name":
        return lambda p: p.name.lower()
    return lambda p: getattr(p, sort_by)


def place_stats(places: list[Place]) -> dict[str, Any]:
    by_wish = {level: 0 for level in range(1, 6)}
    by_category: dict[str, int] = {}
    for place in places:
        by_wish[place.wish_level] = by_wish.get(place.wish_level, 0) + 1
        by_category[place.category] = by_category.get(place.category, 0) + 1
    avg = sum(p.wish_level for p in places) / len(places) if places else 0.0
    return {
        "total_places": len(places),
        "avg_wish_level": round(avg, 2),
        "total_estimated_time": sum(p.stay_duration_minutes for p in places),
        "places_by_wish_level": by_wish,
        "places_by_category": by_category,
    }


def list_places(*, ctx: AppContext, trip_id: str, user_id: str, query: Optional[PlaceQuery] = None) -> dict[str, Any]:
    repo = ctx.repo
    require_trip(repo, trip_id)
    require_member(repo, trip_id, user_id)
    query = query or PlaceQuery()

    places = repo.list_places(trip_id)
    if query.category:
        places = [p for p in places if p.category == query.category]
    if query.min_wish_level is not None:
        places = [p for p in places if p.wish_level >= query.min_wish_level]
    if query.max_wish_level is not None:
        places = [p for p in places if p.wish_level <= query.max_wish_level]
    if query.scheduled is not None:
        places = [p for p in places if p.scheduled == query.scheduled]
    if query.user_id:
        places = [p for p in places if p.user_id == query.user_id]

    # unset values sort last in both directions
    present = [p for p in places if getattr(p, query.sort_by) is not None]
    missing = [p for p in places if getattr(p, query.sort_by) is None]
    present.sort(key=_sort_key(query.sort_by), reverse=query.sort_order == "desc")

    ordered = present + missing
    return {
        "places": [present_place(p) for p in ordered],
        "stats": place_stats(ordered),
    }


def get_place(*, ctx: AppContext, place_id: str, user_id: str) -> dict[str, Any]:
    place = require_place(ctx.repo, place_id)
    require_member(ctx.repo, place.trip_id, user_id)
    return present_place(place, compute_place_color(ctx, place))


def _bump_edit_count(ctx: AppContext, place: Place, user_id: str) -> None:
    existing = {c.user_id: c for c in ctx.repo.list_place_contributions(place.id)}
    current = existing.get(user_id) or PlaceContribution(place_id=place.id, user_id=user_id)
    ctx.repo.save_place_contribution(
        current.model_copy(update={"edit_count": current.edit_count + 1, "updated_at": now_iso()})
    )


def update_place(*, ctx: AppContext, place_id: str, user_id: str, payload: PlaceUpdate) -> dict[str, Any]:
    repo = ctx.repo
    place = require_place(repo, place_id)
    trip = require_trip(repo, place.trip_id)
    member = require_member(repo, place.trip_id, user_id)
    if not _can_edit(member, place, trip.owner_id):
        raise PermissionDenied("You do not have permission to edit this place")

    changes = payload.model_dump(exclude_unset=True)
    system = _place_is_system(place)
    if system and set(changes) - SCHEDULING_FIELDS:
        raise ValidationFailed("System places only allow schedule changes")
    for required in ("name", "category", "wish_level", "stay_duration_minutes", "scheduled", "tags"):
        if required in changes and changes[required] is None:
            raise ValidationFailed(f"{required} cannot be null")
    if "scheduled_date" in changes:
        _check_scheduled_date(trip, changes["scheduled_date"])
    if "scheduled_date" in changes and "scheduled" not in changes:
        changes["scheduled"] = changes["scheduled_date"] is not None

    updated = place.model_copy(update={**changes, "updated_at": now_iso()})
    repo.save_place(updated)
    if not system:
        _bump_edit_count(ctx, updated, user_id)
    updated, result = _refresh_color(ctx, updated)
    return present_place(updated, result)


def delete_place(*, ctx: AppContext, place_id: str, user_id: str) -> None:
    repo = ctx.repo
    place = require_place(repo, place_id)
    trip = require_trip(repo, place.trip_id)
    member = require_member(repo, place.trip_id, user_id)
    if _place_is_system(place):
        raise ValidationFailed("System places cannot be deleted")
    if place.user_id != user_id and not (member.is_admin or trip.owner_id == user_id):
        raise PermissionDenied("Only the member who added this place or an admin can delete it")
    repo.delete_place(place_id)
    _logger.info("place %s deleted by %s", place_id, user_id)


def record_wish(*, ctx: AppContext, place_id: str, user_id: str, payload: WishUpdate) -> dict[str, Any]:
    """A member's own wish level for a place; the adder's wish is the place's wish_level."""
    repo = ctx.repo
    place = require_place(repo, place_id)
    require_member(repo, place.trip_id, user_id)
    if _place_is_system(place):
        raise ValidationFailed("Wish levels cannot be recorded on system places")

    stamp = now_iso()
    if place.user_id == user_id:
        place = place.model_copy(update={"wish_level": payload.wish_level, "updated_at": stamp})
        repo.save_place(place)
    else:
        existing = {c.user_id: c for c in repo.list_place_contributions(place.id)}
        current = existing.get(user_id) or PlaceContribution(place_id=place.id, user_id=user_id)
        repo.save_place_contribution(
            current.model_copy(update={"wish_level": payload.wish_level, "updated_at": stamp})
        )
    place, result = _refresh_color(ctx, place)
    return present_place(place, result)


__all__ = [
    "compute_place_color",
    "create_place",
    "delete_place",
    "get_place",
    "list_places",
    "place_stats",
    "present_place",
    "record_wish",
    "update_place",
]
