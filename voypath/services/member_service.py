"""Trip membership and invitation codes."""

from __future__ import annotations

import datetime as dt
import logging
import secrets
from typing import Any, Optional

from voypath.application.context import AppContext
from voypath.application.contracts import InvitationCreate, MemberUpdate
from voypath.domain.constants import INVITATION_CODE_ALPHABET, INVITATION_CODE_LENGTH
from voypath.domain.enums import MemberRole
from voypath.domain.exceptions import Conflict, Gone, NotFound, PermissionDenied, ValidationFailed
from voypath.domain.models import InvitationCode, TripMember
from voypath.services.access import new_id, now_iso, require_admin, require_member, require_trip
from voypath.services.color_service import member_color, recycle_member_color

_logger = logging.getLogger("voypath.members")

_CODE_ATTEMPTS = 10


def generate_invitation_code() -> str:
    return "".join(secrets.choice(INVITATION_CODE_ALPHABET) for _ in range(INVITATION_CODE_LENGTH))


def _parse_ts(value: Optional[str]) -> Optional[dt.datetime]:
    if not value:
        return None
    parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.timezone.utc)


def is_expired(invitation: InvitationCode, now: Optional[dt.datetime] = None) -> bool:
    expires = _parse_ts(invitation.expires_at)
    return expires is not None and (now or dt.datetime.now(dt.timezone.utc)) >= expires


def is_exhausted(invitation: InvitationCode) -> bool:
    return invitation.current_uses >= invitation.max_uses


def describe_invitation(invitation: InvitationCode, now: Optional[dt.datetime] = None) -> dict[str, Any]:
    return {
        **invitation.model_dump(mode="json"),
        "is_expired": is_expired(invitation, now),
        "is_exhausted": is_exhausted(invitation),
        "remaining_uses": max(0, invitation.max_uses - invitation.current_uses),
    }


def create_invitation(*, ctx: AppContext, trip_id: str, user_id: str, payload: InvitationCreate) -> dict[str, Any]:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    member = require_member(repo, trip_id, user_id)
    if not (member.is_admin or member.can_invite_members or trip.owner_id == user_id):
        raise PermissionDenied("You do not have permission to invite members")

    for _ in range(_CODE_ATTEMPTS):
        code = generate_invitation_code()
        if not repo.code_exists(code):
            break
    else:
        raise Conflict("Could not generate a unique invitation code")

    now = dt.datetime.now(dt.timezone.utc)
    invitation = InvitationCode(
        id=new_id(),
        trip_id=trip_id,
        code=code,
        created_by=user_id,
        max_uses=payload.max_uses,
        expires_at=(now + dt.timedelta(hours=payload.expires_hours)).isoformat(),
        description=payload.description,
        created_at=now.isoformat(),
    )
    repo.save_invitation(invitation)
    _logger.info("invitation created for trip %s by %s", trip_id, user_id)
    return describe_invitation(invitation, now)


def join_trip(*, ctx: AppContext, user_id: str, code: str) -> dict[str, Any]:
    repo = ctx.repo
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationFailed("Invitation code is required")

    invitation = repo.get_invitation_by_code(normalized)
    if invitation is None or not invitation.is_active:
        raise NotFound("Invalid invitation code")
    if is_expired(invitation):
        raise Gone("Invitation code has expired")
    if is_exhausted(invitation):
        raise Gone("Invitation code has reached its usage limit")

    trip = require_trip(repo, invitation.trip_id)
    if repo.get_member(trip.id, user_id) is not None:
        raise Conflict("You are already a member of this trip")
    if repo.count_members(trip.id) >= trip.max_members:
        raise Conflict("Trip has reached its member limit")

    stamp = now_iso()
    candidate = TripMember(
        trip_id=trip.id,
        user_id=user_id,
        role=MemberRole.MEMBER,
        can_add_places=True,
        can_edit_places=False,
        can_optimize=True,
        can_invite_members=False,
        invitation_code_used=normalized,
        joined_at=stamp,
    )
    member = repo.redeem_invitation(invitation.id, candidate)
    _logger.info("user %s joined trip %s", user_id, trip.id)
    return {
        "trip": trip.model_dump(mode="json"),
        "member": member.model_dump(mode="json"),
        "color": member_color(member).model_dump(),
    }


def list_invitations(*, ctx: AppContext, trip_id: str, user_id: str) -> list[dict[str, Any]]:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    member = require_member(repo, trip_id, user_id)
    sees_all = member.is_admin or trip.owner_id == user_id
    invitations = repo.list_invitations(trip_id)
    now = dt.datetime.now(dt.timezone.utc)
    return [describe_invitation(inv, now) for inv in invitations if sees_all or inv.created_by == user_id]


def deactivate_invitation(*, ctx: AppContext, trip_id: str, invitation_id: str, user_id: str) -> dict[str, Any]:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    member = require_member(repo, trip_id, user_id)
    invitation = repo.get_invitation(invitation_id)
    if invitation is None or invitation.trip_id != trip_id:
        raise NotFound("Invitation not found")
    if invitation.created_by != user_id and not (member.is_admin or trip.owner_id == user_id):
        raise PermissionDenied("Only the creator or an admin can deactivate this invitation")
    updated = invitation.model_copy(update={"is_active": False})
    repo.save_invitation(updated)
    return describe_invitation(updated)


def _days_since(stamp: str, today: dt.date) -> Optional[int]:
    parsed = _parse_ts(stamp) if stamp else None
    return (today - parsed.date()).days if parsed else None


def list_members(*, ctx: AppContext, trip_id: str, user_id: str, today: Optional[dt.date] = None) -> list[dict[str, Any]]:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    require_member(repo, trip_id, user_id)
    members = repo.list_members(trip_id)
    users = repo.get_users([m.user_id for m in members])
    places_added: dict[str, int] = {}
    for place in repo.list_places(trip_id):
        places_added[place.user_id] = places_added.get(place.user_id, 0) + 1
    today = today or dt.date.today()

    result = []
    for member in members:
        user = users.get(member.user_id)
        result.append({
            **member.model_dump(mode="json"),
            "user_name": member.nickname or (user.name if user else "") or member.user_id,
            "is_owner": member.user_id == trip.owner_id,
            "color": member_color(member).model_dump(),
            "places_added": places_added.get(member.user_id, 0),
            "days_since_joined": _days_since(member.joined_at, today),
        })
    return result


def update_member(
    *,
    ctx: AppContext,
    trip_id: str,
    member_user_id: str,
    user_id: str,
    payload: MemberUpdate,
) -> TripMember:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    require_admin(repo, trip, user_id)
    target = repo.get_member(trip_id, member_user_id)
    if target is None:
        raise NotFound("Member not found")

    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None or k == "nickname"}
    if member_user_id == trip.owner_id and changes.get("role") == MemberRole.MEMBER:
        raise ValidationFailed("The trip owner must remain an admin")
    updated = target.model_copy(update=changes)
    repo.update_member(updated)
    return updated


def remove_member(*, ctx: AppContext, trip_id: str, member_user_id: str, user_id: str) -> None:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    actor = require_member(repo, trip_id, user_id)
    if member_user_id != user_id and not (actor.is_admin or trip.owner_id == user_id):
        raise PermissionDenied("Only admins can remove other members")
    if member_user_id == trip.owner_id:
        raise ValidationFailed("The trip owner cannot be removed")
    if repo.get_member(trip_id, member_user_id) is None:
        raise NotFound("Member not found")

    recycle_member_color(ctx=ctx, trip_id=trip_id, user_id=member_user_id)
    repo.remove_member(trip_id, member_user_id)
    _logger.info("member %s removed from trip %s by %s", member_user_id, trip_id, user_id)


__all__ = [
    "create_invitation",
    "deactivate_invitation",
    "describe_invitation",
    "generate_invitation_code",
    "is_exhausted",
    "is_expired",
    "join_trip",
    "list_invitations",
    "list_members",
    "remove_member",
    "update_member",
]
