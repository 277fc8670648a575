"""Trips, members, invitations and member colors."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Path, Response

from voypath.api.deps import get_app_context, get_current_user_id
from voypath.api.schemas import JoinRequest
from voypath.application.context import AppContext
from voypath.application.contracts import InvitationCreate, MemberUpdate, ShareLinkCreate, TripCreate, TripUpdate
from voypath.domain.constants import SHARE_TOKEN_LENGTH
from voypath.services import color_service, member_service, trip_service

router = APIRouter(tags=["trips"])


@router.post("/trips", status_code=201)
def create_trip(
    payload: TripCreate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    return trip_service.create_trip(ctx=ctx, user_id=user_id, payload=payload)


@router.get("/trips")
def list_trips(user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return {"trips": trip_service.list_trips(ctx=ctx, user_id=user_id)}


@router.get("/trips/{trip_id}")
def get_trip(trip_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return trip_service.get_trip_detail(ctx=ctx, trip_id=trip_id, user_id=user_id)


@router.patch("/trips/{trip_id}")
def update_trip(
    trip_id: str,
    payload: TripUpdate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    trip = trip_service.update_trip(ctx=ctx, trip_id=trip_id, user_id=user_id, payload=payload)
    return trip.model_dump(mode="json")


@router.delete("/trips/{trip_id}", status_code=204)
def delete_trip(trip_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    trip_service.delete_trip(ctx=ctx, trip_id=trip_id, user_id=user_id)
    return Response(status_code=204)


# ── members ───────────────────────────────────────────


@router.get("/trips/{trip_id}/members")
def list_members(trip_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return {"members": member_service.list_members(ctx=ctx, trip_id=trip_id, user_id=user_id)}


@router.patch("/trips/{trip_id}/members/{member_user_id}")
def update_member(
    trip_id: str,
    member_user_id: str,
    payload: MemberUpdate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    member = member_service.update_member(
        ctx=ctx,
        trip_id=trip_id,
        member_user_id=member_user_id,
        user_id=user_id,
        payload=payload,
    )
    return member.model_dump(mode="json")


@router.delete("/trips/{trip_id}/members/{member_user_id}", status_code=204)
def remove_member(
    trip_id: str,
    member_user_id: str,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    member_service.remove_member(ctx=ctx, trip_id=trip_id, member_user_id=member_user_id, user_id=user_id)
    return Response(status_code=204)


# ── invitations ───────────────────────────────────────


@router.post("/trips/{trip_id}/invitations", status_code=201)
def create_invitation(
    trip_id: str,
    payload: InvitationCreate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    return member_service.create_invitation(ctx=ctx, trip_id=trip_id, user_id=user_id, payload=payload)


@router.get("/trips/{trip_id}/invitations")
def list_invitations(trip_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return {"invitations": member_service.list_invitations(ctx=ctx, trip_id=trip_id, user_id=user_id)}


@router.delete("/trips/{trip_id}/invitations/{invitation_id}")
def deactivate_invitation(
    trip_id: str,
    invitation_id: str,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    return member_service.deactivate_invitation(
        ctx=ctx,
        trip_id=trip_id,
        invitation_id=invitation_id,
        user_id=user_id,
    )


@router.post("/invitations/join")
def join_trip(payload: JoinRequest, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return member_service.join_trip(ctx=ctx, user_id=user_id, code=payload.code)


# ── colors ────────────────────────────────────────────


@router.get("/trips/{trip_id}/colors")
def trip_colors(trip_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return color_service.get_trip_colors(ctx=ctx, trip_id=trip_id, user_id=user_id)


@router.post("/trips/{trip_id}/colors/assign")
def assign_color(trip_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    color = color_service.assign_member_color(ctx=ctx, trip_id=trip_id, user_id=user_id)
    return color.model_dump()


# ── share links ───────────────────────────────────────


@router.post("/trips/{trip_id}/shares", status_code=201)
def create_share_link(
    trip_id: str,
    payload: ShareLinkCreate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    return trip_service.create_share_link(ctx=ctx, trip_id=trip_id, user_id=user_id, payload=payload)


@router.get("/trips/{trip_id}/shares")
def list_share_links(trip_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return {"shares": trip_service.list_share_links(ctx=ctx, trip_id=trip_id, user_id=user_id)}


@router.delete("/trips/{trip_id}/shares/{share_id}")
def revoke_share_link(
    trip_id: str,
    share_id: str,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    return trip_service.revoke_share_link(ctx=ctx, trip_id=trip_id, share_id=share_id, user_id=user_id)


@router.get("/shared/{token}")
def shared_trip(
    token: str = Path(min_length=SHARE_TOKEN_LENGTH, max_length=SHARE_TOKEN_LENGTH, pattern="^[a-z0-9]+$"),
    x_share_password: Optional[str] = Header(default=None),
    ctx: AppContext = Depends(get_app_context),
):
    """Public read-only view; no identity header."""
    return trip_service.get_shared_trip(ctx=ctx, token=token, password=x_share_password)
