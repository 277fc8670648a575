"""Member color assignment for a trip.

Each member holds one palette index (1..20), unique within the trip.
Assignments are sticky: a member keeps their color until they leave,
at which point the index becomes free again.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from voypath.application.context import AppContext
from voypath.domain.colors import (
    PALETTE,
    RefinedColor,
    available_colors,
    color_by_index,
    color_for_index_fallback,
    first_free_index,
    used_colors,
)
from voypath.domain.constants import MAX_MEMBER_COLORS, PALETTE_EXHAUSTED
from voypath.domain.exceptions import Conflict, NotFound
from voypath.domain.models import TripMember
from voypath.services.access import require_member, require_trip

_logger = logging.getLogger("voypath.colors")


def member_color(member: TripMember) -> RefinedColor:
    """Assigned palette color, or a stable id-derived one for unassigned members."""
    assigned = color_by_index(member.assigned_color_index or 0)
    return assigned or color_for_index_fallback(member.user_id)


def next_free_color_index(members: list[TripMember], *, exclude_user: Optional[str] = None) -> int:
    index = first_free_index(m.assigned_color_index for m in members if m.user_id != exclude_user)
    if index is None:
        raise Conflict(PALETTE_EXHAUSTED)
    return index


def assign_member_color(*, ctx: AppContext, trip_id: str, user_id: str) -> RefinedColor:
    repo = ctx.repo
    member = repo.get_member(trip_id, user_id)
    if member is None:
        raise NotFound("Member not found")
    current = color_by_index(member.assigned_color_index or 0)
    if current is not None:
        return current

    index = next_free_color_index(repo.list_members(trip_id), exclude_user=user_id)
    repo.set_member_color(trip_id, user_id, index)
    _logger.info("assigned color %d to member %s of trip %s", index, user_id, trip_id)
    return PALETTE[index - 1]


def recycle_member_color(*, ctx: AppContext, trip_id: str, user_id: str) -> Optional[int]:
    """Release a member's color; returns the freed index, if any."""
    member = ctx.repo.get_member(trip_id, user_id)
    if member is None or member.assigned_color_index is None:
        return None
    freed = member.assigned_color_index
    ctx.repo.set_member_color(trip_id, user_id, None)
    _logger.info("recycled color %d from member %s of trip %s", freed, user_id, trip_id)
    return freed


def get_trip_member_colors(*, ctx: AppContext, trip_id: str) -> dict[str, str]:
    return {m.user_id: member_color(m).hex for m in ctx.repo.list_members(trip_id)}


def validate_color_assignment(members: list[TripMember]) -> dict[str, Any]:
    issues: list[str] = []
    seen: dict[int, str] = {}
    for member in members:
        index = member.assigned_color_index
        if index is None:
            continue
        if index in seen:
            issues.append(f"Color {index} is assigned to both {seen[index]} and {member.user_id}")
        else:
            seen[index] = member.user_id
    if len(members) > MAX_MEMBER_COLORS:
        issues.append(f"Trip has {len(members)} members, more than the {MAX_MEMBER_COLORS} available colors")
    return {
        "is_valid": not issues,
        "member_count": len(members),
        "max_colors": MAX_MEMBER_COLORS,
        "issues": issues,
    }


def get_trip_colors(*, ctx: AppContext, trip_id: str, user_id: str) -> dict[str, Any]:
    repo = ctx.repo
    require_trip(repo, trip_id)
    require_member(repo, trip_id, user_id)
    members = repo.list_members(trip_id)
    used = [m.assigned_color_index for m in members]
    return {
        "trip_id": trip_id,
        "member_colors": {m.user_id: member_color(m).model_dump() for m in members},
        "available_colors": [c.model_dump() for c in available_colors(used)],
        "used_colors": [c.model_dump() for c in used_colors(used)],
        "remaining_colors": MAX_MEMBER_COLORS - sum(1 for i in used if i is not None),
        "validation": validate_color_assignment(members),
    }


__all__ = [
    "PALETTE_EXHAUSTED",
    "assign_member_color",
    "get_trip_colors",
    "get_trip_member_colors",
    "member_color",
    "next_free_color_index",
    "recycle_member_color",
    "validate_color_assignment",
]
