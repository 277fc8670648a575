"""Runtime settings resolved from the environment."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

_TRUTHY = {"1", "true", "yes", "on"}
DEFAULT_DB_PATH = Path("data") / "voypath.sqlite3"
DEFAULT_AFFILIATE_MARKER = "649297"


def _is_enabled(value: str | None) -> bool:
    return bool(value and value.strip().lower() in _TRUTHY)


def _is_configured(value: str | None) -> bool:
    return bool(value and value.strip())


def resolve_db_path() -> Path:
    raw = os.getenv("VOYPATH_DB_PATH", "").strip()
    return Path(raw) if raw else DEFAULT_DB_PATH


def strict_external_data_enabled() -> bool:
    return _is_enabled(os.getenv("STRICT_EXTERNAL_DATA"))


def allow_unauthenticated_api() -> bool:
    return _is_enabled(os.getenv("ALLOW_UNAUTHENTICATED_API"))


def resolve_flight_provider() -> str:
    explicit = str(os.getenv("FLIGHT_PROVIDER") or "").strip().lower()
    if explicit in {"travelpayouts", "mock"}:
        return explicit
    return "travelpayouts" if _is_configured(os.getenv("TRAVELPAYOUTS_TOKEN")) else "mock"


def resolve_default_currency() -> str:
    return (os.getenv("DEFAULT_CURRENCY") or "JPY").strip().upper() or "JPY"


def resolve_affiliate_marker() -> str:
    return (os.getenv("TRAVELPAYOUTS_MARKER") or DEFAULT_AFFILIATE_MARKER).strip()


class RuntimeSettings(BaseModel):
    db_path: str = Field(default=str(DEFAULT_DB_PATH))
    flight_provider: str = Field(default="mock")
    strict_external_data: bool = Field(default=False)
    default_currency: str = Field(default="JPY")
    affiliate_marker: str = Field(default=DEFAULT_AFFILIATE_MARKER)
    allow_unauthenticated_api: bool = Field(default=False)


def resolve_runtime_settings() -> RuntimeSettings:
    return RuntimeSettings(
        db_path=str(resolve_db_path()),
        flight_provider=resolve_flight_provider(),
        strict_external_data=strict_external_data_enabled(),
        default_currency=resolve_default_currency(),
        affiliate_marker=resolve_affiliate_marker(),
        allow_unauthenticated_api=allow_unauthenticated_api(),
    )


__all__ = [
    "RuntimeSettings",
    "allow_unauthenticated_api",
    "resolve_db_path",
    "resolve_default_currency",
    "resolve_flight_provider",
    "resolve_runtime_settings",
    "strict_external_data_enabled",
]
