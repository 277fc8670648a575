"""Trip lifecycle service tests."""

from __future__ import annotations

import datetime as dt

import pytest

from voypath.application.contracts import InvitationCreate, ShareLinkCreate, TripCreate, TripUpdate
from voypath.domain.enums import TripStatus
from voypath.domain.exceptions import AuthenticationRequired, Gone, NotFound, PermissionDenied, ValidationFailed
from voypath.domain.models import Trip
from voypath.services import member_service, trip_service


def _join(ctx, trip_id: str, user_id: str) -> None:
    invitation = member_service.create_invitation(
        ctx=ctx, trip_id=trip_id, user_id="owner", payload=InvitationCreate(max_uses=10)
    )
    member_service.join_trip(ctx=ctx, user_id=user_id, code=invitation["code"])


def test_create_trip_adds_owner_and_route_endpoints(ctx):
    created = trip_service.create_trip(
        ctx=ctx,
        user_id="owner",
        payload=TripCreate(departure_location=" Tokyo ", destination="Osaka", start_date=dt.date(2025, 5, 1), end_date=dt.date(2025, 5, 4)),
    )
    trip = created["trip"]
    assert trip["name"] == "Tokyoからの旅行"
    assert trip["departure_location"] == "Tokyo"
    assert trip["optimization_preferences"]["fairness_weight"] == 0.6

    names = [p["name"] for p in created["system_places"]]
    assert names == ["Tokyo (Departure)", "Osaka (Final Destination)"]
    departure, destination = created["system_places"]
    assert departure["source"] == "system"
    assert departure["scheduled_date"] == "2025-05-01"
    assert destination["scheduled_date"] == "2025-05-04"
    assert destination["display_color"] == "#374151"
    assert destination["wish_level"] == 5

    owner = ctx.repo.get_member(trip["id"], "owner")
    assert owner.is_admin
    assert owner.can_invite_members and owner.can_edit_places
    assert owner.assigned_color_index == 1


@pytest.mark.parametrize("destination", [None, "", "Same as departure location"])
def test_round_trip_gets_return_point(ctx, destination):
    created = trip_service.create_trip(
        ctx=ctx,
        user_id="owner",
        payload=TripCreate(departure_location="Nagoya", destination=destination),
    )
    assert created["trip"]["destination"] == "Nagoya"
    assert [p["category"] for p in created["system_places"]] == ["departure_point", "return_point"]
    assert created["system_places"][1]["name"] == "Nagoya (Return)"
    assert created["system_places"][1]["scheduled"] is False


def test_trip_create_contract_rejects_reversed_dates():
    with pytest.raises(ValueError):
        TripCreate(departure_location="Tokyo", start_date=dt.date(2025, 5, 4), end_date=dt.date(2025, 5, 1))


def test_trip_status():
    trip = Trip(id="t", name="x", departure_location="Tokyo", owner_id="o", start_date=dt.date(2025, 4, 1), end_date=dt.date(2025, 4, 3))
    assert trip_service.trip_status(trip, dt.date(2025, 3, 31)) == TripStatus.PLANNING
    assert trip_service.trip_status(trip, dt.date(2025, 4, 2)) == TripStatus.ACTIVE
    assert trip_service.trip_status(trip, dt.date(2025, 4, 4)) == TripStatus.COMPLETED
    undated = trip.model_copy(update={"start_date": None, "end_date": None})
    assert trip_service.trip_status(undated, dt.date(2025, 4, 2)) == TripStatus.PLANNING


def test_list_trips_only_shows_memberships(ctx, trip_id):
    summaries = trip_service.list_trips(ctx=ctx, user_id="owner", today=dt.date(2025, 3, 25))
    assert len(summaries) == 1
    summary = summaries[0]
    assert summary["id"] == trip_id
    assert summary["member_count"] == 1
    assert summary["place_count"] == 2
    assert summary["user_role"] == "admin"
    assert summary["is_owner"] is True
    assert summary["days_until_start"] == 7
    assert summary["status"] == "planning"

    assert trip_service.list_trips(ctx=ctx, user_id="alice") == []


def test_trip_detail_requires_membership(ctx, trip_id):
    with pytest.raises(PermissionDenied):
        trip_service.get_trip_detail(ctx=ctx, trip_id=trip_id, user_id="alice")
    with pytest.raises(NotFound):
        trip_service.get_trip_detail(ctx=ctx, trip_id="missing", user_id="owner")

    _join(ctx, trip_id, "alice")
    detail = trip_service.get_trip_detail(ctx=ctx, trip_id=trip_id, user_id="alice", today=dt.date(2025, 4, 2))
    assert detail["status"] == "active"
    assert detail["user_permissions"]["role"] == "member"
    assert detail["user_permissions"]["is_owner"] is False
    assert detail["user_permissions"]["can_edit_places"] is False
    assert detail["statistics"]["total_members"] == 2
    assert detail["statistics"]["places_by_user"] == {"owner": 2}
    assert detail["statistics"]["avg_wish_level"] == 5.0
    assert detail["optimization_result"] is None


def test_update_trip_merges_preferences(ctx, trip_id):
    updated = trip_service.update_trip(
        ctx=ctx,
        trip_id=trip_id,
        user_id="owner",
        payload=TripUpdate(name="Kansai", optimization_preferences={"auto_optimize": True}),
    )
    assert updated.name == "Kansai"
    assert updated.optimization_preferences["auto_optimize"] is True
    assert updated.optimization_preferences["fairness_weight"] == 0.6
    assert ctx.repo.get_trip(trip_id).name == "Kansai"


def test_update_trip_validation(ctx, trip_id):
    _join(ctx, trip_id, "alice")
    with pytest.raises(PermissionDenied):
        trip_service.update_trip(ctx=ctx, trip_id=trip_id, user_id="alice", payload=TripUpdate(name="Mine"))
    with pytest.raises(ValidationFailed, match="max_members"):
        trip_service.update_trip(ctx=ctx, trip_id=trip_id, user_id="owner", payload=TripUpdate(max_members=1))
    with pytest.raises(ValidationFailed, match="end_date"):
        trip_service.update_trip(ctx=ctx, trip_id=trip_id, user_id="owner", payload=TripUpdate(end_date=dt.date(2025, 3, 1)))


def test_update_destination_to_round_trip(ctx, trip_id):
    updated = trip_service.update_trip(
        ctx=ctx, trip_id=trip_id, user_id="owner", payload=TripUpdate(destination="same as departure location")
    )
    assert updated.destination == "Tokyo"


def test_only_owner_deletes(ctx, trip_id):
    _join(ctx, trip_id, "alice")
    with pytest.raises(PermissionDenied):
        trip_service.delete_trip(ctx=ctx, trip_id=trip_id, user_id="alice")
    trip_service.delete_trip(ctx=ctx, trip_id=trip_id, user_id="owner")
    assert ctx.repo.get_trip(trip_id) is None


# ── share links ──


def _other_trip(ctx) -> str:
    created = trip_service.create_trip(
        ctx=ctx,
        user_id="owner",
        payload=TripCreate(departure_location="Osaka", destination="Nara", start_date=dt.date(2025, 6, 1), end_date=dt.date(2025, 6, 2)),
    )
    return created["trip"]["id"]


def test_share_password_hash_roundtrip():
    stored = trip_service.hash_share_password("hunter22")
    assert stored.startswith("pbkdf2_sha256$")
    assert "hunter22" not in stored
    assert trip_service.verify_share_password("hunter22", stored)
    assert not trip_service.verify_share_password("hunter23", stored)


@pytest.mark.parametrize("stored", ["", "plain", "pbkdf2_sha256$x$00$ab", "pbkdf2_sha256$1000$zz$ab"])
def test_share_password_rejects_corrupt_hash(stored):
    assert trip_service.verify_share_password("anything", stored) is False


def test_share_token_shape():
    token = trip_service.generate_share_token()
    assert len(token) == 32
    assert token.isalnum() and token == token.lower()


def test_share_link_reuse_and_listing(ctx, trip_id):
    first = trip_service.create_share_link(ctx=ctx, trip_id=trip_id, user_id="owner", payload=ShareLinkCreate())
    again = trip_service.create_share_link(ctx=ctx, trip_id=trip_id, user_id="owner", payload=ShareLinkCreate())
    protected = trip_service.create_share_link(
        ctx=ctx, trip_id=trip_id, user_id="owner", payload=ShareLinkCreate(password="s3cret")
    )
    assert first["reused"] is False
    assert again["reused"] is True and again["id"] == first["id"]
    assert protected["id"] != first["id"] and protected["password_protected"] is True

    listed = trip_service.list_share_links(ctx=ctx, trip_id=trip_id, user_id="owner")
    assert len(listed) == 2
    assert all("password_hash" not in share for share in listed)


def test_share_link_unknown_permission(ctx, trip_id):
    with pytest.raises(ValidationFailed):
        trip_service.create_share_link(
            ctx=ctx, trip_id=trip_id, user_id="owner", payload=ShareLinkCreate(permissions={"can_edit": True})
        )


def test_share_link_requires_admin(ctx, trip_id):
    _join(ctx, trip_id, "alice")
    with pytest.raises(PermissionDenied):
        trip_service.create_share_link(ctx=ctx, trip_id=trip_id, user_id="alice", payload=ShareLinkCreate())
    with pytest.raises(PermissionDenied):
        trip_service.list_share_links(ctx=ctx, trip_id=trip_id, user_id="alice")


def test_revoke_share_of_another_trip_is_not_found(ctx, trip_id):
    share = trip_service.create_share_link(ctx=ctx, trip_id=trip_id, user_id="owner", payload=ShareLinkCreate())
    with pytest.raises(NotFound):
        trip_service.revoke_share_link(ctx=ctx, trip_id=_other_trip(ctx), share_id=share["id"], user_id="owner")

    revoked = trip_service.revoke_share_link(ctx=ctx, trip_id=trip_id, share_id=share["id"], user_id="owner")
    assert revoked["is_active"] is False
    with pytest.raises(NotFound):
        trip_service.get_shared_trip(ctx=ctx, token=share["share_token"])


def test_expired_share_is_gone(ctx, trip_id):
    created = trip_service.create_share_link(ctx=ctx, trip_id=trip_id, user_id="owner", payload=ShareLinkCreate())
    share = ctx.repo.get_share(created["id"])
    past = (dt.datetime.now(dt.timezone.utc) - dt.timedelta(hours=1)).isoformat()
    ctx.repo.save_share(share.model_copy(update={"expires_at": past}))

    with pytest.raises(Gone):
        trip_service.get_shared_trip(ctx=ctx, token=share.share_token)
    assert trip_service.list_share_links(ctx=ctx, trip_id=trip_id, user_id="owner")[0]["is_expired"] is True


def test_shared_trip_password_and_view_count(ctx, trip_id):
    created = trip_service.create_share_link(
        ctx=ctx,
        trip_id=trip_id,
        user_id="owner",
        payload=ShareLinkCreate(password="s3cret", permissions={"can_view_optimization": False}),
    )
    token = created["share_token"]
    with pytest.raises(AuthenticationRequired):
        trip_service.get_shared_trip(ctx=ctx, token=token)
    with pytest.raises(AuthenticationRequired):
        trip_service.get_shared_trip(ctx=ctx, token=token, password="wrong")

    view = trip_service.get_shared_trip(ctx=ctx, token=token, password="s3cret")
    assert view["trip"]["destination"] == "Kyoto"
    assert "itinerary" not in view
    assert all("user_id" not in place for place in view["places"])
    assert ctx.repo.get_share(created["id"]).view_count == 1
