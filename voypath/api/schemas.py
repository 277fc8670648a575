"""API request/response models."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

_IATA_PATTERN = r"^[A-Za-z]{3}$"
_DATE_PATTERN = r"^\d{4}-\d{2}(-\d{2})?$"
_TIME_PATTERN = r"^\d{1,2}:\d{2}$"


class HealthResponse(BaseModel):
    status: str = "ok"


class JoinRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32, description="邀请码（不区分大小写）")


class FlightQuery(BaseModel):
    origin: str = Field(pattern=_IATA_PATTERN, description="出发机场 IATA 代码")
    destination: str = Field(pattern=_IATA_PATTERN, description="到达机场 IATA 代码")
    depart_date: str = Field(pattern=_DATE_PATTERN)
    return_date: Optional[str] = Field(default=None, pattern=_DATE_PATTERN)
    currency: str = Field(default="JPY", min_length=3, max_length=3)
    departure_time: Optional[str] = Field(default=None, pattern=_TIME_PATTERN)
    arrival_time: Optional[str] = Field(default=None, pattern=_TIME_PATTERN)
    duration: Optional[str] = Field(default=None, max_length=16)


class FlightSearchResponse(BaseModel):
    source: str
    flights: list[dict[str, Any]] = Field(default_factory=list)
    links: dict[str, str] = Field(default_factory=dict)


class MarkdownExportResponse(BaseModel):
    trip_id: str
    format: str = "markdown"
    content: str
