"""Trip repository interface and factory."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional, Protocol

from voypath.config.settings import resolve_db_path
from voypath.domain.models import (
    Booking,
    InvitationCode,
    OptimizationResult,
    Place,
    PlaceContribution,
    Trip,
    TripMember,
    TripShare,
    User,
)
from voypath.persistence.sqlite_repository import SQLiteTripRepository


class TripRepository(Protocol):
    backend: str

    def upsert_user(self, user: User) -> None: ...

    def get_user(self, user_id: str) -> Optional[User]: ...

    def get_users(self, user_ids: list[str]) -> dict[str, User]: ...

    def create_trip(self, trip: Trip, owner: TripMember, system_places: list[Place]) -> None: ...

    def get_trip(self, trip_id: str) -> Optional[Trip]: ...

    def list_trips_for_user(self, user_id: str) -> list[Trip]: ...

    def update_trip(self, trip: Trip) -> None: ...

    def delete_trip(self, trip_id: str) -> None: ...

    def add_member(self, member: TripMember) -> None: ...

    def get_member(self, trip_id: str, user_id: str) -> Optional[TripMember]: ...

    def list_members(self, trip_id: str) -> list[TripMember]: ...

    def count_members(self, trip_id: str) -> int: ...

    def update_member(self, member: TripMember) -> None: ...

    def set_member_color(self, trip_id: str, user_id: str, color_index: Optional[int]) -> None: ...

    def remove_member(self, trip_id: str, user_id: str) -> None: ...

    def save_invitation(self, invitation: InvitationCode) -> None: ...

    def code_exists(self, code: str) -> bool: ...

    def get_invitation(self, invitation_id: str) -> Optional[InvitationCode]: ...

    def get_invitation_by_code(self, code: str) -> Optional[InvitationCode]: ...

    def list_invitations(self, trip_id: str) -> list[InvitationCode]: ...

    def redeem_invitation(self, invitation_id: str, member: TripMember) -> TripMember: ...

    def save_share(self, share: TripShare) -> None: ...

    def get_share(self, share_id: str) -> Optional[TripShare]: ...

    def get_share_by_token(self, token: str) -> Optional[TripShare]: ...

    def list_shares(self, trip_id: str) -> list[TripShare]: ...

    def record_share_view(self, share_id: str) -> None: ...

    def save_place(self, place: Place) -> None: ...

    def get_place(self, place_id: str) -> Optional[Place]: ...

    def list_places(self, trip_id: str) -> list[Place]: ...

    def count_places(self, trip_id: str) -> int: ...

    def delete_place(self, place_id: str) -> None: ...

    def list_place_contributions(self, place_id: str) -> list[PlaceContribution]: ...

    def save_place_contribution(self, contribution: PlaceContribution) -> None: ...

    def save_optimization_result(self, result: OptimizationResult) -> None: ...

    def get_active_optimization(self, trip_id: str) -> Optional[OptimizationResult]: ...

    def list_optimization_results(self, trip_id: str, limit: int = 20) -> list[OptimizationResult]: ...

    def save_booking(self, booking: Booking) -> None: ...

    def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    def list_bookings(
        self,
        trip_id: str,
        *,
        booking_type: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[Booking]: ...

    def delete_booking(self, booking_id: str) -> None: ...


_repositories: dict[Path, TripRepository] = {}
_repositories_lock = threading.Lock()


def get_trip_repository(db_path: str | Path | None = None) -> TripRepository:
    """One repository per database file; migrations run on first open."""
    path = Path(db_path) if db_path else resolve_db_path()
    with _repositories_lock:
        repo = _repositories.get(path)
        if repo is None:
            repo = SQLiteTripRepository(path)
            _repositories[path] = repo
        return repo


__all__ = ["TripRepository", "get_trip_repository"]
