"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from voypath.infrastructure.cache import flight_cache
from voypath.infrastructure.logging import get_logger
from voypath.persistence.repository import TripRepository, get_trip_repository
from voypath.security.key_manager import get_key_manager


@dataclass
class AppContext:
    repo: TripRepository
    cache: dict[str, Any] = field(default_factory=dict)
    key_manager: Any = None
    logger: Any = None


def make_app_context(db_path: Optional[str | Path] = None) -> AppContext:
    return AppContext(
        repo=get_trip_repository(db_path),
        cache={"flights": flight_cache},
        key_manager=get_key_manager(),
        logger=get_logger(),
    )
