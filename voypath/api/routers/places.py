"""Places and wish levels."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from voypath.api.deps import get_app_context, get_current_user_id
from voypath.application.context import AppContext
from voypath.application.contracts import PlaceCreate, PlaceQuery, PlaceUpdate, WishUpdate
from voypath.services import place_service

router = APIRouter(tags=["places"])


@router.post("/trips/{trip_id}/places", status_code=201)
def create_place(
    trip_id: str,
    payload: PlaceCreate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    return place_service.create_place(ctx=ctx, trip_id=trip_id, user_id=user_id, payload=payload)


@router.get("/trips/{trip_id}/places")
def list_places(
    trip_id: str,
    category: Optional[str] = None,
    min_wish_level: Optional[int] = Query(default=None, ge=1, le=5),
    max_wish_level: Optional[int] = Query(default=None, ge=1, le=5),
    scheduled: Optional[bool] = None,
    added_by: Optional[str] = None,
    sort_by: str = Query(default="created_at", pattern="^(created_at|wish_level|rating|name)$"),
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    query = PlaceQuery(
        category=category,
        min_wish_level=min_wish_level,
        max_wish_level=max_wish_level,
        scheduled=scheduled,
        user_id=added_by,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return place_service.list_places(ctx=ctx, trip_id=trip_id, user_id=user_id, query=query)


@router.get("/places/{place_id}")
def get_place(place_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return place_service.get_place(ctx=ctx, place_id=place_id, user_id=user_id)


@router.patch("/places/{place_id}")
def update_place(
    place_id: str,
    payload: PlaceUpdate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    return place_service.update_place(ctx=ctx, place_id=place_id, user_id=user_id, payload=payload)


@router.delete("/places/{place_id}", status_code=204)
def delete_place(place_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    place_service.delete_place(ctx=ctx, place_id=place_id, user_id=user_id)
    return Response(status_code=204)


@router.put("/places/{place_id}/wishes")
def record_wish(
    place_id: str,
    payload: WishUpdate,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    return place_service.record_wish(ctx=ctx, place_id=place_id, user_id=user_id, payload=payload)
