"""SQLite implementation of the trip repository."""

from __future__ import annotations

import contextlib
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterator, Optional

from voypath.domain.colors import first_free_index
from voypath.domain.constants import PALETTE_EXHAUSTED
from voypath.domain.exceptions import Conflict, Gone, NotFound
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
from voypath.persistence.migration_runner import apply_sqlite_migrations

_BOOKING_COLUMNS = {"id", "trip_id", "user_id", "booking_type", "created_at", "updated_at"}


def _to_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def _from_json(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None and hasattr(value, "isoformat") else value


def _row_to_trip(row: sqlite3.Row) -> Trip:
    data = dict(row)
    data["optimization_preferences"] = _from_json(data.pop("optimization_preferences_json"), {})
    return Trip.model_validate(data)


def _row_to_place(row: sqlite3.Row) -> Place:
    data = dict(row)
    data["tags"] = _from_json(data.pop("tags_json"), [])
    data["member_contribution"] = _from_json(data.pop("member_contribution_json"), {})
    return Place.model_validate(data)


def _row_to_invitation(row: sqlite3.Row) -> InvitationCode:
    data = dict(row)
    data["used_by"] = _from_json(data.pop("used_by_json"), [])
    return InvitationCode.model_validate(data)


def _row_to_optimization(row: sqlite3.Row) -> OptimizationResult:
    data = dict(row)
    data["daily_schedules"] = _from_json(data.pop("daily_schedules_json"), [])
    data["optimization_score"] = _from_json(data.pop("optimization_score_json"), {})
    return OptimizationResult.model_validate(data)


def _row_to_share(row: sqlite3.Row) -> TripShare:
    data = dict(row)
    data["permissions"] = _from_json(data.pop("permissions_json"), {})
    return TripShare.model_validate(data)


def _row_to_booking(row: sqlite3.Row) -> Booking:
    data = dict(row)
    payload = _from_json(data.pop("payload_json"), {})
    return Booking.model_validate({**payload, **data})


class SQLiteTripRepository:
    backend = "sqlite"

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    @contextlib.contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Serialized connection; commits on success, rolls back on error."""
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    yield conn
            finally:
                conn.close()

    def _init_schema(self) -> None:
        with self._session() as conn:
            apply_sqlite_migrations(conn)

    # ── users ─────────────────────────────────────────

    def upsert_user(self, user: User) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO users (id, name, email, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=CASE WHEN excluded.name != '' THEN excluded.name ELSE users.name END,
                    email=COALESCE(excluded.email, users.email)
                """,
                (user.id, user.name, user.email, user.created_at),
            )

    def get_user(self, user_id: str) -> Optional[User]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.model_validate(dict(row)) if row else None

    def get_users(self, user_ids: list[str]) -> dict[str, User]:
        if not user_ids:
            return {}
        placeholders = ",".join("?" for _ in user_ids)
        with self._session() as conn:
            rows = conn.execute(
                f"SELECT * FROM users WHERE id IN ({placeholders})",
                tuple(user_ids),
            ).fetchall()
        return {row["id"]: User.model_validate(dict(row)) for row in rows}

    # ── trips ─────────────────────────────────────────

    def create_trip(self, trip: Trip, owner: TripMember, system_places: list[Place]) -> None:
        """Insert the trip, its owner membership and its system places atomically."""
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO trips (
                    id, name, description, departure_location, destination,
                    start_date, end_date, owner_id, max_members,
                    optimization_preferences_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._trip_params(trip),
            )
            self._insert_member(conn, owner)
            for place in system_places:
                self._insert_place(conn, place)

    @staticmethod
    def _trip_params(trip: Trip) -> tuple:
        return (
            trip.id,
            trip.name,
            trip.description,
            trip.departure_location,
            trip.destination,
            _iso(trip.start_date),
            _iso(trip.end_date),
            trip.owner_id,
            trip.max_members,
            _to_json(trip.optimization_preferences),
            trip.created_at,
            trip.updated_at,
        )

    def get_trip(self, trip_id: str) -> Optional[Trip]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM trips WHERE id = ?", (trip_id,)).fetchone()
        return _row_to_trip(row) if row else None

    def list_trips_for_user(self, user_id: str) -> list[Trip]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT t.* FROM trips t
                JOIN trip_members m ON m.trip_id = t.id
                WHERE m.user_id = ?
                ORDER BY t.created_at DESC
                """,
                (user_id,),
            ).fetchall()
        return [_row_to_trip(row) for row in rows]

    def update_trip(self, trip: Trip) -> None:
        with self._session() as conn:
            conn.execute(
                """
                UPDATE trips SET
                    name=?, description=?, departure_location=?, destination=?,
                    start_date=?, end_date=?, max_members=?,
                    optimization_preferences_json=?, updated_at=?
                WHERE id=?
                """,
                (
                    trip.name,
                    trip.description,
                    trip.departure_location,
                    trip.destination,
                    _iso(trip.start_date),
                    _iso(trip.end_date),
                    trip.max_members,
                    _to_json(trip.optimization_preferences),
                    trip.updated_at,
                    trip.id,
                ),
            )

    def delete_trip(self, trip_id: str) -> None:
        with self._session() as conn:
            conn.execute("DELETE FROM trips WHERE id = ?", (trip_id,))

    # ── members ───────────────────────────────────────

    @staticmethod
    def _insert_member(conn: sqlite3.Connection, member: TripMember) -> None:
        conn.execute(
            """
            INSERT INTO trip_members (
                trip_id, user_id, role, can_add_places, can_edit_places,
                can_optimize, can_invite_members, nickname,
                assigned_color_index, invitation_code_used, joined_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                member.trip_id,
                member.user_id,
                member.role.value,
                int(member.can_add_places),
                int(member.can_edit_places),
                int(member.can_optimize),
                int(member.can_invite_members),
                member.nickname,
                member.assigned_color_index,
                member.invitation_code_used,
                member.joined_at,
            ),
        )

    def add_member(self, member: TripMember) -> None:
        with self._session() as conn:
            self._insert_member(conn, member)

    def get_member(self, trip_id: str, user_id: str) -> Optional[TripMember]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM trip_members WHERE trip_id = ? AND user_id = ?",
                (trip_id, user_id),
            ).fetchone()
        return TripMember.model_validate(dict(row)) if row else None

    def list_members(self, trip_id: str) -> list[TripMember]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM trip_members WHERE trip_id = ? ORDER BY joined_at ASC",
                (trip_id,),
            ).fetchall()
        return [TripMember.model_validate(dict(row)) for row in rows]

    def count_members(self, trip_id: str) -> int:
        with self._session() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM trip_members WHERE trip_id = ?",
                (trip_id,),
            ).fetchone()
        return int(row[0])

    def update_member(self, member: TripMember) -> None:
        with self._session() as conn:
            conn.execute(
                """
                UPDATE trip_members SET
                    role=?, can_add_places=?, can_edit_places=?, can_optimize=?,
                    can_invite_members=?, nickname=?, assigned_color_index=?
                WHERE trip_id=? AND user_id=?
                """,
                (
                    member.role.value,
                    int(member.can_add_places),
                    int(member.can_edit_places),
                    int(member.can_optimize),
                    int(member.can_invite_members),
                    member.nickname,
                    member.assigned_color_index,
                    member.trip_id,
                    member.user_id,
                ),
            )

    def set_member_color(self, trip_id: str, user_id: str, color_index: Optional[int]) -> None:
        with self._session() as conn:
            conn.execute(
                "UPDATE trip_members SET assigned_color_index=? WHERE trip_id=? AND user_id=?",
                (color_index, trip_id, user_id),
            )

    def remove_member(self, trip_id: str, user_id: str) -> None:
        with self._session() as conn:
            conn.execute(
                "DELETE FROM trip_members WHERE trip_id = ? AND user_id = ?",
                (trip_id, user_id),
            )

    # ── invitations ───────────────────────────────────

    def save_invitation(self, invitation: InvitationCode) -> None:
        with self._session() as conn:
            self._upsert_invitation(conn, invitation)

    @staticmethod
    def _upsert_invitation(conn: sqlite3.Connection, invitation: InvitationCode) -> None:
        conn.execute(
            """
            INSERT INTO invitation_codes (
                id, trip_id, code, created_by, max_uses, current_uses,
                expires_at, is_active, description, used_by_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                current_uses=excluded.current_uses,
                is_active=excluded.is_active,
                used_by_json=excluded.used_by_json
            """,
            (
                invitation.id,
                invitation.trip_id,
                invitation.code,
                invitation.created_by,
                invitation.max_uses,
                invitation.current_uses,
                invitation.expires_at,
                int(invitation.is_active),
                invitation.description,
                _to_json(invitation.used_by),
                invitation.created_at,
            ),
        )

    def code_exists(self, code: str) -> bool:
        with self._session() as conn:
            row = conn.execute("SELECT 1 FROM invitation_codes WHERE code = ?", (code,)).fetchone()
        return row is not None

    def get_invitation(self, invitation_id: str) -> Optional[InvitationCode]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM invitation_codes WHERE id = ?", (invitation_id,)).fetchone()
        return _row_to_invitation(row) if row else None

    def get_invitation_by_code(self, code: str) -> Optional[InvitationCode]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM invitation_codes WHERE code = ?", (code,)).fetchone()
        return _row_to_invitation(row) if row else None

    def list_invitations(self, trip_id: str) -> list[InvitationCode]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM invitation_codes WHERE trip_id = ? ORDER BY created_at DESC",
                (trip_id,),
            ).fetchall()
        return [_row_to_invitation(row) for row in rows]

    def redeem_invitation(self, invitation_id: str, member: TripMember) -> TripMember:
        """Claim one use of an invitation and add the member in a single write transaction.

        The use counter only moves while the code is active and below
        ``max_uses``; membership, trip capacity and the color index are read
        under the same lock, so concurrent joins cannot overshoot either limit.
        """
        with self._session() as conn:
            conn.execute("BEGIN IMMEDIATE")
            claimed = conn.execute(
                """
                UPDATE invitation_codes SET current_uses = current_uses + 1
                WHERE id = ? AND is_active = 1 AND current_uses < max_uses
                """,
                (invitation_id,),
            )
            if claimed.rowcount != 1:
                raise Gone("Invitation code has reached its usage limit")

            trip = conn.execute("SELECT max_members FROM trips WHERE id = ?", (member.trip_id,)).fetchone()
            if trip is None:
                raise NotFound("Trip not found")
            rows = conn.execute(
                "SELECT user_id, assigned_color_index FROM trip_members WHERE trip_id = ?",
                (member.trip_id,),
            ).fetchall()
            if any(row["user_id"] == member.user_id for row in rows):
                raise Conflict("You are already a member of this trip")
            if len(rows) >= int(trip["max_members"]):
                raise Conflict("Trip has reached its member limit")
            color_index = first_free_index(row["assigned_color_index"] for row in rows)
            if color_index is None:
                raise Conflict(PALETTE_EXHAUSTED)

            row = conn.execute("SELECT used_by_json FROM invitation_codes WHERE id = ?", (invitation_id,)).fetchone()
            used_by = _from_json(row["used_by_json"], [])
            used_by.append({"user_id": member.user_id, "used_at": member.joined_at})
            conn.execute(
                "UPDATE invitation_codes SET used_by_json = ? WHERE id = ?",
                (_to_json(used_by), invitation_id),
            )
            joined = member.model_copy(update={"assigned_color_index": color_index})
            self._insert_member(conn, joined)
        return joined

    # ── share links ───────────────────────────────────

    def save_share(self, share: TripShare) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO trip_shares (
                    id, trip_id, share_token, share_type, permissions_json, password_hash,
                    expires_at, is_active, view_count, created_by, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    permissions_json=excluded.permissions_json,
                    expires_at=excluded.expires_at,
                    is_active=excluded.is_active
                """,
                (
                    share.id,
                    share.trip_id,
                    share.share_token,
                    share.share_type.value,
                    _to_json(share.permissions),
                    share.password_hash,
                    share.expires_at,
                    int(share.is_active),
                    share.view_count,
                    share.created_by,
                    share.created_at,
                ),
            )

    def get_share(self, share_id: str) -> Optional[TripShare]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM trip_shares WHERE id = ?", (share_id,)).fetchone()
        return _row_to_share(row) if row else None

    def get_share_by_token(self, token: str) -> Optional[TripShare]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM trip_shares WHERE share_token = ?", (token,)).fetchone()
        return _row_to_share(row) if row else None

    def list_shares(self, trip_id: str) -> list[TripShare]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM trip_shares WHERE trip_id = ? ORDER BY created_at DESC",
                (trip_id,),
            ).fetchall()
        return [_row_to_share(row) for row in rows]

    def record_share_view(self, share_id: str) -> None:
        with self._session() as conn:
            conn.execute("UPDATE trip_shares SET view_count = view_count + 1 WHERE id = ?", (share_id,))

    # ── places ────────────────────────────────────────

    @staticmethod
    def _insert_place(conn: sqlite3.Connection, place: Place) -> None:
        conn.execute(
            """
            INSERT INTO places (
                id, trip_id, user_id, name, category, address, latitude, longitude,
                rating, price_level, estimated_cost, wish_level, stay_duration_minutes,
                scheduled, scheduled_date, scheduled_time_start, scheduled_time_end,
                visit_date, day, notes, tags_json, source, place_type, image_url,
                display_color, member_contribution_json, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                place.id,
                place.trip_id,
                place.user_id,
                place.name,
                place.category,
                place.address,
                place.latitude,
                place.longitude,
                place.rating,
                place.price_level,
                place.estimated_cost,
                place.wish_level,
                place.stay_duration_minutes,
                int(place.scheduled),
                _iso(place.scheduled_date),
                place.scheduled_time_start,
                place.scheduled_time_end,
                _iso(place.visit_date),
                place.day,
                place.notes,
                _to_json(place.tags),
                place.source.value,
                place.place_type,
                place.image_url,
                place.display_color,
                _to_json(place.member_contribution),
                place.created_at,
                place.updated_at,
            ),
        )

    def save_place(self, place: Place) -> None:
        with self._session() as conn:
            # REPLACE would cascade-delete contributions, so existing rows are updated in place.
            exists = conn.execute("SELECT 1 FROM places WHERE id = ?", (place.id,)).fetchone()
            if exists is None:
                self._insert_place(conn, place)
                return
            data = place.model_dump(exclude={"id", "trip_id", "created_at"})
            data["tags_json"] = _to_json(data.pop("tags"))
            data["member_contribution_json"] = _to_json(data.pop("member_contribution"))
            data["source"] = place.source.value
            data["scheduled"] = int(place.scheduled)
            for key in ("scheduled_date", "visit_date"):
                data[key] = _iso(data[key])
            assignments = ", ".join(f"{column}=?" for column in data)
            conn.execute(
                f"UPDATE places SET {assignments} WHERE id=?",
                (*data.values(), place.id),
            )

    def get_place(self, place_id: str) -> Optional[Place]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM places WHERE id = ?", (place_id,)).fetchone()
        return _row_to_place(row) if row else None

    def list_places(self, trip_id: str) -> list[Place]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM places WHERE trip_id = ? ORDER BY created_at ASC",
                (trip_id,),
            ).fetchall()
        return [_row_to_place(row) for row in rows]

    def count_places(self, trip_id: str) -> int:
        with self._session() as conn:
            row = conn.execute("SELECT COUNT(*) FROM places WHERE trip_id = ?", (trip_id,)).fetchone()
        return int(row[0])

    def delete_place(self, place_id: str) -> None:
        with self._session() as conn:
            conn.execute("DELETE FROM places WHERE id = ?", (place_id,))

    def list_place_contributions(self, place_id: str) -> list[PlaceContribution]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM place_contributions WHERE place_id = ? ORDER BY updated_at ASC",
                (place_id,),
            ).fetchall()
        return [PlaceContribution.model_validate(dict(row)) for row in rows]

    def save_place_contribution(self, contribution: PlaceContribution) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO place_contributions (
                    place_id, user_id, wish_level, edit_count, comment_count, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(place_id, user_id) DO UPDATE SET
                    wish_level=excluded.wish_level,
                    edit_count=excluded.edit_count,
                    comment_count=excluded.comment_count,
                    updated_at=excluded.updated_at
                """,
                (
                    contribution.place_id,
                    contribution.user_id,
                    contribution.wish_level,
                    contribution.edit_count,
                    contribution.comment_count,
                    contribution.updated_at,
                ),
            )

    # ── optimization results ──────────────────────────

    def save_optimization_result(self, result: OptimizationResult) -> None:
        """Store a result; an active result deactivates earlier ones for the trip."""
        with self._session() as conn:
            if result.is_active:
                conn.execute(
                    "UPDATE optimization_results SET is_active = 0 WHERE trip_id = ?",
                    (result.trip_id,),
                )
            conn.execute(
                """
                INSERT INTO optimization_results (
                    id, trip_id, created_by, daily_schedules_json, optimization_score_json,
                    execution_time_ms, places_count, total_travel_time_minutes,
                    total_visit_time_minutes, is_active, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.id,
                    result.trip_id,
                    result.created_by,
                    _to_json([day.model_dump(mode="json") for day in result.daily_schedules]),
                    _to_json(result.optimization_score),
                    result.execution_time_ms,
                    result.places_count,
                    result.total_travel_time_minutes,
                    result.total_visit_time_minutes,
                    int(result.is_active),
                    result.created_at,
                ),
            )

    def get_active_optimization(self, trip_id: str) -> Optional[OptimizationResult]:
        with self._session() as conn:
            row = conn.execute(
                """
                SELECT * FROM optimization_results
                WHERE trip_id = ? AND is_active = 1
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (trip_id,),
            ).fetchone()
        return _row_to_optimization(row) if row else None

    def list_optimization_results(self, trip_id: str, limit: int = 20) -> list[OptimizationResult]:
        safe_limit = max(1, min(limit, 100))
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM optimization_results WHERE trip_id = ? ORDER BY created_at DESC LIMIT ?",
                (trip_id, safe_limit),
            ).fetchall()
        return [_row_to_optimization(row) for row in rows]

    # ── bookings ──────────────────────────────────────

    def save_booking(self, booking: Booking) -> None:
        payload = booking.model_dump(mode="json", exclude=_BOOKING_COLUMNS)
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO bookings (
                    id, trip_id, user_id, booking_type, payload_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    payload_json=excluded.payload_json,
                    updated_at=excluded.updated_at
                """,
                (
                    booking.id,
                    booking.trip_id,
                    booking.user_id,
                    booking.booking_type.value,
                    _to_json(payload),
                    booking.created_at,
                    booking.updated_at,
                ),
            )

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
        return _row_to_booking(row) if row else None

    def list_bookings(
        self,
        trip_id: str,
        *,
        booking_type: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[Booking]:
        clauses = ["trip_id = ?"]
        params: list[Any] = [trip_id]
        if booking_type:
            clauses.append("booking_type = ?")
            params.append(booking_type)
        if user_id:
            clauses.append("user_id = ?")
            params.append(user_id)
        with self._session() as conn:
            rows = conn.execute(
                f"SELECT * FROM bookings WHERE {' AND '.join(clauses)} ORDER BY created_at ASC",
                tuple(params),
            ).fetchall()
        return [_row_to_booking(row) for row in rows]

    def delete_booking(self, booking_id: str) -> None:
        with self._session() as conn:
            conn.execute("DELETE FROM bookings WHERE id = ?", (booking_id,))
