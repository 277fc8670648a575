"""Optimization result ingest and the itinerary views built on it."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Mapping
from typing import Any, Optional

from voypath.application.context import AppContext
from voypath.application.contracts import OptimizationIngest, ScheduleEdit
from voypath.domain.constants import (
    DEFAULT_SCHEDULED_CATEGORY,
    DEFAULT_SCHEDULED_STAY_MINUTES,
    FIRST_SLOT_HOUR,
    LAST_SLOT_MINUTE,
)
from voypath.domain.dates import (
    day_number_for_date,
    format_calendar_date,
    format_duration,
    format_duration_compact,
    group_places_by_date,
    is_date_in_trip,
    month_grid,
    months_spanned,
    parse_date,
    trip_date_for_day,
)
from voypath.domain.enums import ScheduleEditAction
from voypath.domain.exceptions import NotFound, PermissionDenied, ValidationFailed
from voypath.domain.models import DailySchedule, OptimizationResult, Place, ScheduledPlace, Trip, TripMember
from voypath.domain.place_colors import FALLBACK_PLACE_COLOR, SYSTEM_PLACE_COLOR, is_system_place
from voypath.domain.transport import estimate_leg, haversine_km, normalize_mode, transport_style
from voypath.services.access import new_id, now_iso, require_member, require_trip

_logger = logging.getLogger("voypath.itinerary")


def _hhmm(value: Any) -> Optional[str]:
    """HH:MM from "9:30", "09:30:00" or an ISO datetime."""
    raw = str(value or "").strip()
    if not raw:
        return None
    if "T" in raw:
        try:
            return dt.datetime.fromisoformat(raw.replace("Z", "+00:00")).strftime("%H:%M")
        except ValueError:
            return None
    parts = raw.split(":")
    try:
        return f"{int(parts[0]):02d}:{int(parts[1]) if len(parts) > 1 else 0:02d}"
    except ValueError:
        return None


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def _add_minutes(hhmm: str, minutes: int) -> str:
    total = _minutes(hhmm) + minutes
    return f"{(total // 60) % 24:02d}:{total % 60:02d}"


def _number(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None and value != "" else None
    except (TypeError, ValueError):
        return None


def normalize_scheduled_place(raw: Mapping[str, Any], index: int) -> ScheduledPlace:
    start = (
        _hhmm(raw.get("scheduled_time_start"))
        or _hhmm(raw.get("arrival_time"))
        or f"{FIRST_SLOT_HOUR + index:02d}:00"
    )
    stay = int(_number(raw.get("stay_duration_minutes")) or _number(raw.get("visit_duration")) or DEFAULT_SCHEDULED_STAY_MINUTES)
    end = _hhmm(raw.get("scheduled_time_end")) or _hhmm(raw.get("departure_time")) or _add_minutes(start, stay)
    travel_time = _number(raw.get("travel_time_minutes"))
    contribution = raw.get("member_contribution")
    return ScheduledPlace(
        place_id=raw.get("place_id") or raw.get("id"),
        name=str(raw.get("place_name") or raw.get("name") or "Unknown Place"),
        category=str(raw.get("category") or DEFAULT_SCHEDULED_CATEGORY),
        scheduled_time_start=start,
        scheduled_time_end=end,
        stay_duration_minutes=stay,
        latitude=_number(raw.get("latitude", raw.get("lat"))),
        longitude=_number(raw.get("longitude", raw.get("lng"))),
        member_contribution=dict(contribution) if isinstance(contribution, Mapping) else {},
        transport_mode=normalize_mode(raw.get("transport_mode")) or None,
        travel_time_minutes=int(travel_time) if travel_time is not None else None,
        travel_distance_km=_number(raw.get("travel_distance_km")),
    )


def normalize_daily_schedule(raw: Mapping[str, Any], index: int, trip: Trip) -> DailySchedule:
    day = int(_number(raw.get("day")) or index + 1)
    when = parse_date(raw.get("date")) or (trip_date_for_day(trip.start_date, day) if trip.start_date else None)
    entries = raw.get("scheduled_places") or raw.get("places") or []
    places = [normalize_scheduled_place(entry, i) for i, entry in enumerate(entries) if isinstance(entry, Mapping)]
    return DailySchedule(
        day=day,
        date=when,
        scheduled_places=places,
        total_travel_time_minutes=sum(p.travel_time_minutes or 0 for p in places),
        total_visit_time_minutes=sum(p.stay_duration_minutes for p in places),
    )


def _can_optimize(trip: Trip, member: TripMember, user_id: str) -> bool:
    return member.can_optimize or member.is_admin or trip.owner_id == user_id


def ingest_optimization(*, ctx: AppContext, trip_id: str, user_id: str, payload: OptimizationIngest) -> OptimizationResult:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    member = require_member(repo, trip_id, user_id)
    if not _can_optimize(trip, member, user_id):
        raise PermissionDenied("You do not have permission to store optimization results")

    days = [normalize_daily_schedule(day, i, trip) for i, day in enumerate(payload.daily_schedules)]
    result = OptimizationResult(
        id=new_id(),
        trip_id=trip_id,
        created_by=user_id,
        daily_schedules=days,
        optimization_score=payload.optimization_score,
        execution_time_ms=payload.execution_time_ms,
        places_count=sum(len(d.scheduled_places) for d in days),
        total_travel_time_minutes=sum(d.total_travel_time_minutes for d in days),
        total_visit_time_minutes=sum(d.total_visit_time_minutes for d in days),
        is_active=True,
        created_at=now_iso(),
    )
    repo.save_optimization_result(result)
    _logger.info("optimization result %s stored for trip %s (%d places)", result.id, trip_id, result.places_count)
    return result


def get_active_result(*, ctx: AppContext, trip_id: str, user_id: str) -> OptimizationResult:
    require_trip(ctx.repo, trip_id)
    require_member(ctx.repo, trip_id, user_id)
    result = ctx.repo.get_active_optimization(trip_id)
    if result is None:
        raise NotFound("No optimization result for this trip")
    return result


def list_results(*, ctx: AppContext, trip_id: str, user_id: str, limit: int = 20) -> list[OptimizationResult]:
    require_trip(ctx.repo, trip_id)
    require_member(ctx.repo, trip_id, user_id)
    return ctx.repo.list_optimization_results(trip_id, limit)


def _schedule_day(days: list[DailySchedule], day: int) -> DailySchedule:
    for schedule in days:
        if schedule.day == day:
            return schedule
    raise NotFound(f"Day {day} is not in the schedule")


def _stop_index(schedule: DailySchedule, index: int) -> int:
    if index >= len(schedule.scheduled_places):
        raise ValidationFailed(f"Day {schedule.day} has no stop at position {index}")
    return index


def _slot_at(stops: list[ScheduledPlace], position: int) -> str:
    """Provisional start for a stop placed at ``position``; retiming settles it."""
    if position < len(stops):
        return stops[position].scheduled_time_start
    if stops:
        return stops[-1].scheduled_time_end or stops[-1].scheduled_time_start
    return f"{FIRST_SLOT_HOUR:02d}:00"


def _scheduled_from_place(place: Place, start: str, stay: Optional[int]) -> ScheduledPlace:
    return ScheduledPlace(
        place_id=place.id,
        name=place.name,
        category=place.category,
        scheduled_time_start=start,
        stay_duration_minutes=stay or place.stay_duration_minutes,
        latitude=place.latitude,
        longitude=place.longitude,
        member_contribution=dict(place.member_contribution),
    )


def _relink(previous: ScheduledPlace, item: ScheduledPlace) -> ScheduledPlace:
    """Estimate the leg into ``item``; without coordinates the stored leg is kept."""
    if None in (previous.latitude, previous.longitude, item.latitude, item.longitude):
        return item
    leg = estimate_leg(haversine_km(previous.latitude, previous.longitude, item.latitude, item.longitude))
    return item.model_copy(update={
        "transport_mode": leg.mode,
        "travel_time_minutes": leg.minutes,
        "travel_distance_km": leg.distance_km,
    })


def retime_day(schedule: DailySchedule, *, relink: bool = False) -> DailySchedule:
    """Lay the stops back to back from the day's earliest start.

    Each stop starts after the previous one ends plus its travel time. With
    ``relink`` the legs are re-estimated from coordinates and the first stop
    of the day has none.
    """
    places = list(schedule.scheduled_places)
    if not places:
        return schedule.model_copy(update={"total_travel_time_minutes": 0, "total_visit_time_minutes": 0})

    clock = min(_minutes(p.scheduled_time_start) for p in places)
    timed: list[ScheduledPlace] = []
    for index, item in enumerate(places):
        if relink:
            if index == 0:
                item = item.model_copy(update={"transport_mode": None, "travel_time_minutes": None, "travel_distance_km": None})
            else:
                item = _relink(timed[-1], item)
        if index > 0:
            clock += item.travel_time_minutes or 0
        end = clock + item.stay_duration_minutes
        if end > LAST_SLOT_MINUTE:
            raise ValidationFailed(f"Day {schedule.day} would run past midnight; move a stop to another day")
        timed.append(item.model_copy(update={
            "scheduled_time_start": f"{clock // 60:02d}:{clock % 60:02d}",
            "scheduled_time_end": f"{end // 60:02d}:{end % 60:02d}",
        }))
        clock = end
    return schedule.model_copy(update={
        "scheduled_places": timed,
        "total_travel_time_minutes": sum(p.travel_time_minutes or 0 for p in timed),
        "total_visit_time_minutes": sum(p.stay_duration_minutes for p in timed),
    })


def _apply_edit(ctx: AppContext, trip: Trip, days: list[DailySchedule], edit: ScheduleEdit) -> set[int]:
    """Mutate ``days`` in place and return the day numbers whose stop order changed."""
    source = _schedule_day(days, edit.day)
    stops = source.scheduled_places

    if edit.action == ScheduleEditAction.RESIZE:
        index = _stop_index(source, edit.index)
        stops[index] = stops[index].model_copy(update={"stay_duration_minutes": edit.duration_minutes})
        return set()

    if edit.action == ScheduleEditAction.DELETE:
        index = _stop_index(source, edit.index)
        if is_system_place(category=stops[index].category):
            raise ValidationFailed("Departure and return stops cannot be removed from the schedule")
        del stops[index]
        return {source.day}

    if edit.action == ScheduleEditAction.INSERT:
        place = ctx.repo.get_place(edit.place_id or "")
        if place is None or place.trip_id != trip.id:
            raise NotFound("Place not found")
        position = min(edit.index, len(stops))
        stops.insert(position, _scheduled_from_place(place, _slot_at(stops, position), edit.duration_minutes))
        return {source.day}

    index = _stop_index(source, edit.index)
    target = _schedule_day(days, edit.target_day) if edit.target_day else source
    stop = stops.pop(index)
    position = len(target.scheduled_places) if edit.target_index is None else min(edit.target_index, len(target.scheduled_places))
    if target is not source:
        stop = stop.model_copy(update={"scheduled_time_start": _slot_at(target.scheduled_places, position)})
    target.scheduled_places.insert(position, stop)
    return {source.day, target.day}


def edit_schedule(*, ctx: AppContext, trip_id: str, user_id: str, edit: ScheduleEdit) -> OptimizationResult:
    """Apply one edit to the active itinerary and store the outcome as the new active result.

    The previous result stays in the history; the edited copy records what
    it was derived from in ``optimization_score``.
    """
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    member = require_member(repo, trip_id, user_id)
    if not _can_optimize(trip, member, user_id):
        raise PermissionDenied("You do not have permission to edit the schedule")
    current = repo.get_active_optimization(trip_id)
    if current is None:
        raise NotFound("No optimization result for this trip")

    days = [schedule.model_copy(deep=True) for schedule in current.daily_schedules]
    reordered = _apply_edit(ctx, trip, days, edit)
    touched = reordered | {edit.day}
    days = [retime_day(d, relink=d.day in reordered) if d.day in touched else d for d in days]

    edited = OptimizationResult(
        id=new_id(),
        trip_id=trip_id,
        created_by=user_id,
        daily_schedules=days,
        optimization_score={**current.optimization_score, "edited_from": current.id, "edit_action": edit.action.value},
        execution_time_ms=current.execution_time_ms,
        places_count=sum(len(d.scheduled_places) for d in days),
        total_travel_time_minutes=sum(d.total_travel_time_minutes for d in days),
        total_visit_time_minutes=sum(d.total_visit_time_minutes for d in days),
        is_active=True,
        created_at=now_iso(),
    )
    repo.save_optimization_result(edited)
    _logger.info("schedule of trip %s edited (%s on day %d) by %s", trip_id, edit.action.value, edit.day, user_id)
    return edited


def _place_color(item: ScheduledPlace, stored: dict[str, Place]) -> str:
    place = stored.get(item.place_id or "")
    if is_system_place(category=item.category) or (place is not None and is_system_place(
        source=place.source.value, category=place.category, place_type=place.place_type
    )):
        return SYSTEM_PLACE_COLOR
    if place is not None and place.display_color:
        return place.display_color
    contributors = item.member_contribution.get("contributors") or []
    if contributors and isinstance(contributors[0], Mapping) and contributors[0].get("color_hex"):
        return str(contributors[0]["color_hex"])
    return FALLBACK_PLACE_COLOR


def build_day_timeline(day: DailySchedule, stored: dict[str, Place]) -> list[dict[str, Any]]:
    """Place events with the transport leg into each following place."""
    events: list[dict[str, Any]] = []
    for index, item in enumerate(day.scheduled_places):
        if index > 0 and (item.transport_mode or item.travel_time_minutes):
            previous = day.scheduled_places[index - 1]
            style = transport_style(item.transport_mode)
            minutes = item.travel_time_minutes or 0
            events.append({
                "type": "travel",
                "start_time": previous.scheduled_time_end,
                "end_time": item.scheduled_time_start,
                "title": f"Travel to {item.name}",
                "subtitle": f"{format_duration(minutes)} by {style.name}",
                "transport": style.model_dump(),
                "duration_minutes": minutes,
                "duration_label": format_duration_compact(minutes),
                "distance_km": item.travel_distance_km,
                "departure": previous.name,
                "arrival": item.name,
            })
        events.append({
            "type": "place",
            "start_time": item.scheduled_time_start,
            "end_time": item.scheduled_time_end,
            "title": item.name,
            "subtitle": f"{format_duration(item.stay_duration_minutes)} visit",
            "duration_label": format_duration_compact(item.stay_duration_minutes),
            "place_id": item.place_id,
            "category": item.category,
            "color": _place_color(item, stored),
            "latitude": item.latitude,
            "longitude": item.longitude,
        })
    return events


def get_timeline(*, ctx: AppContext, trip_id: str, user_id: str, day: Optional[int] = None) -> dict[str, Any]:
    result = get_active_result(ctx=ctx, trip_id=trip_id, user_id=user_id)
    stored = {p.id: p for p in ctx.repo.list_places(trip_id)}
    days = []
    for schedule in result.daily_schedules:
        if day is not None and schedule.day != day:
            continue
        days.append({
            "day": schedule.day,
            "date": schedule.date.isoformat() if schedule.date else None,
            "date_label": format_calendar_date(schedule.date) if schedule.date else None,
            "events": build_day_timeline(schedule, stored),
            "total_travel_time_minutes": schedule.total_travel_time_minutes,
            "total_visit_time_minutes": schedule.total_visit_time_minutes,
        })
    return {"trip_id": trip_id, "optimization_id": result.id, "days": days}


def _calendar_events(ctx: AppContext, trip: Trip) -> dict[dt.date, list[dict[str, Any]]]:
    """Events per date: the active itinerary, or scheduled places when there is none."""
    events: dict[dt.date, list[dict[str, Any]]] = {}
    stored = {p.id: p for p in ctx.repo.list_places(trip.id)}
    result = ctx.repo.get_active_optimization(trip.id)
    if result is not None:
        for schedule in result.daily_schedules:
            when = schedule.date or trip_date_for_day(trip.start_date, schedule.day)
            for item in schedule.scheduled_places:
                events.setdefault(when, []).append({
                    "name": item.name,
                    "time": item.scheduled_time_start,
                    "duration": item.stay_duration_minutes,
                    "category": item.category,
                    "color": _place_color(item, stored),
                })
        return events

    scheduled = [p for p in stored.values() if p.scheduled_date or p.day]
    for key, places in group_places_by_date(scheduled, trip).items():
        when = parse_date(key)
        if when is None:
            continue
        for place in places:
            events.setdefault(when, []).append({
                "name": place.name,
                "time": place.scheduled_time_start,
                "duration": place.stay_duration_minutes,
                "category": place.category,
                "color": SYSTEM_PLACE_COLOR
                if is_system_place(source=place.source.value, category=place.category, place_type=place.place_type)
                else place.display_color or FALLBACK_PLACE_COLOR,
            })
    return events


def get_calendar(*, ctx: AppContext, trip_id: str, user_id: str) -> dict[str, Any]:
    repo = ctx.repo
    trip = require_trip(repo, trip_id)
    require_member(repo, trip_id, user_id)
    events = _calendar_events(ctx, trip)

    bounds = [d for d in (trip.start_date, trip.end_date) if d] or sorted(events)
    if not bounds:
        return {"trip_id": trip_id, "months": []}

    months = []
    for year, month in months_spanned(min(bounds), max(bounds)):
        cells = []
        for cell in month_grid(year, month):
            if cell is None:
                cells.append(None)
                continue
            in_trip = is_date_in_trip(trip.start_date, trip.end_date, cell)
            cells.append({
                "date": cell.isoformat(),
                "in_trip": in_trip,
                "day_number": day_number_for_date(trip.start_date, cell) if in_trip else None,
                "events": sorted(events.get(cell, []), key=lambda e: e["time"] or ""),
            })
        months.append({"year": year, "month": month, "cells": cells})
    return {"trip_id": trip_id, "months": months}


__all__ = [
    "build_day_timeline",
    "edit_schedule",
    "get_active_result",
    "get_calendar",
    "get_timeline",
    "ingest_optimization",
    "list_results",
    "normalize_daily_schedule",
    "normalize_scheduled_place",
    "retime_day",
]
