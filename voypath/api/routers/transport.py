"""Transport mode display metadata."""

from __future__ import annotations

from fastapi import APIRouter

from voypath.domain.transport import known_modes, transport_style

router = APIRouter(prefix="/transport", tags=["transport"])


@router.get("")
def list_modes():
    return {"modes": [transport_style(mode).model_dump() for mode in known_modes()]}


@router.get("/{mode}")
def describe_mode(mode: str):
    return transport_style(mode).model_dump()
