"""Optimization results and itinerary views."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from voypath.api.deps import get_app_context, get_current_user_id
from voypath.api.schemas import MarkdownExportResponse
from voypath.application.context import AppContext
from voypath.application.contracts import OptimizationIngest, ScheduleEdit
from voypath.config.settings import resolve_default_currency
from voypath.services import itinerary_service
from voypath.services.export_formatter import export_trip_markdown

router = APIRouter(tags=["itinerary"])


@router.post("/trips/{trip_id}/optimization", status_code=201)
def ingest_optimization(
    trip_id: str,
    payload: OptimizationIngest,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    result = itinerary_service.ingest_optimization(ctx=ctx, trip_id=trip_id, user_id=user_id, payload=payload)
    return result.model_dump(mode="json")


@router.get("/trips/{trip_id}/optimization")
def active_optimization(trip_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return itinerary_service.get_active_result(ctx=ctx, trip_id=trip_id, user_id=user_id).model_dump(mode="json")


@router.patch("/trips/{trip_id}/optimization/schedule")
def edit_schedule(
    trip_id: str,
    payload: ScheduleEdit,
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    result = itinerary_service.edit_schedule(ctx=ctx, trip_id=trip_id, user_id=user_id, edit=payload)
    return result.model_dump(mode="json")


@router.get("/trips/{trip_id}/optimization/history")
def optimization_history(
    trip_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    results = itinerary_service.list_results(ctx=ctx, trip_id=trip_id, user_id=user_id, limit=limit)
    return {"results": [r.model_dump(mode="json") for r in results]}


@router.get("/trips/{trip_id}/itinerary/timeline")
def timeline(
    trip_id: str,
    day: Optional[int] = Query(default=None, ge=1),
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    return itinerary_service.get_timeline(ctx=ctx, trip_id=trip_id, user_id=user_id, day=day)


@router.get("/trips/{trip_id}/itinerary/calendar")
def calendar(trip_id: str, user_id: str = Depends(get_current_user_id), ctx: AppContext = Depends(get_app_context)):
    return itinerary_service.get_calendar(ctx=ctx, trip_id=trip_id, user_id=user_id)


@router.get("/trips/{trip_id}/itinerary/export")
def export_itinerary(
    trip_id: str,
    format: str = Query(default="json", pattern="^(json|markdown)$"),
    user_id: str = Depends(get_current_user_id),
    ctx: AppContext = Depends(get_app_context),
):
    content = export_trip_markdown(ctx=ctx, trip_id=trip_id, user_id=user_id, currency=resolve_default_currency())
    if format == "markdown":
        return PlainTextResponse(content, media_type="text/markdown; charset=utf-8")
    return MarkdownExportResponse(trip_id=trip_id, content=content)
