"""Persistence package exports."""

from voypath.persistence.migration_runner import apply_sqlite_migrations
from voypath.persistence.repository import TripRepository, get_trip_repository
from voypath.persistence.sqlite_repository import SQLiteTripRepository

__all__ = [
    "SQLiteTripRepository",
    "TripRepository",
    "apply_sqlite_migrations",
    "get_trip_repository",
]
