"""API 集成测试：FastAPI 路由 + SQLite 存储"""

import pytest
from fastapi.testclient import TestClient

from voypath.api.main import app

OWNER = {"X-User-Id": "owner", "X-User-Name": "Aiko"}
ALICE = {"X-User-Id": "alice", "X-User-Name": "Alice"}
BOB = {"X-User-Id": "bob", "X-User-Name": "Bob"}


@pytest.fixture
def client(tmp_path, monkeypatch, ctx):
    """与 ctx fixture 共用同一个 SQLite 文件；每个测试重建中间件栈（新的限流器）"""
    monkeypatch.setenv("VOYPATH_DB_PATH", str(tmp_path / "voypath.sqlite3"))
    app.middleware_stack = None
    return TestClient(app)


def _create_trip(client, **overrides):
    body = {
        "name": "Kyoto spring",
        "departure_location": "Tokyo",
        "destination": "Kyoto",
        "start_date": "2025-04-01",
        "end_date": "2025-04-03",
    }
    body.update(overrides)
    r = client.post("/trips", json=body, headers=OWNER)
    assert r.status_code == 201, r.text
    return r.json()


def _join(client, trip_id, headers):
    invite = client.post(f"/trips/{trip_id}/invitations", json={"max_uses": 5}, headers=OWNER)
    assert invite.status_code == 201, invite.text
    joined = client.post("/invitations/join", json={"code": invite.json()["code"].lower()}, headers=headers)
    assert joined.status_code == 200, joined.text
    return joined.json()


# ── 基础接口 ──────────────────────────────────────────


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_security_headers_and_traceparent(client):
    r = client.get("/health")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Cache-Control"] == "no-store"
    assert r.headers["traceparent"].startswith("00-")


def test_incoming_traceparent_is_continued(client):
    trace_id = "4bf92f3577b34da6a3ce929d0e0e4736"
    r = client.get("/health", headers={"traceparent": f"00-{trace_id}-00f067aa0ba902b7-01"})
    assert r.headers["traceparent"].split("-")[1] == trace_id


def test_diagnostics(client):
    r = client.get("/diagnostics")
    assert r.status_code == 200
    data = r.json()
    assert data["flight_provider"] == "mock"
    assert data["storage"]["backend"] == "sqlite"
    assert "flights" in data["cache"]


# ── 身份与鉴权 ────────────────────────────────────────


def test_missing_user_header_returns_401(client):
    r = client.get("/trips")
    assert r.status_code == 401
    assert "X-User-Id" in r.json()["detail"]


def test_overlong_user_id_returns_400(client):
    r = client.get("/trips", headers={"X-User-Id": "u" * 200})
    assert r.status_code == 400


def test_bearer_token_enforced_when_configured(client, monkeypatch):
    from voypath.security.key_manager import API_BEARER_TOKEN, get_key_manager

    monkeypatch.setenv("API_BEARER_TOKEN", "bearer_secret_value")
    monkeypatch.setenv("ALLOW_UNAUTHENTICATED_API", "false")
    get_key_manager().reload(API_BEARER_TOKEN)
    try:
        assert client.get("/trips", headers=OWNER).status_code == 401
        wrong = client.get("/trips", headers={**OWNER, "Authorization": "Bearer nope"})
        assert wrong.status_code == 401
        ok = client.get("/trips", headers={**OWNER, "Authorization": "Bearer bearer_secret_value"})
        assert ok.status_code == 200
    finally:
        monkeypatch.delenv("API_BEARER_TOKEN")
        get_key_manager().reload(API_BEARER_TOKEN)


def test_non_member_cannot_read_trip(client):
    trip = _create_trip(client)["trip"]
    r = client.get(f"/trips/{trip['id']}", headers=BOB)
    assert r.status_code == 403


def test_unknown_trip_returns_404(client):
    assert client.get("/trips/does-not-exist", headers=OWNER).status_code == 404


# ── 行程 ──────────────────────────────────────────────


def test_create_trip_adds_route_endpoints(client):
    created = _create_trip(client)
    names = [p["name"] for p in created["system_places"]]
    assert created["trip"]["owner_id"] == "owner"
    assert any("Tokyo" in n and "Departure" in n for n in names)
    assert any("Kyoto" in n for n in names)
    assert all(p["source"] == "system" for p in created["system_places"])


def test_trip_validation_rejects_reversed_dates(client):
    r = client.post(
        "/trips",
        json={"departure_location": "Tokyo", "start_date": "2025-04-05", "end_date": "2025-04-01"},
        headers=OWNER,
    )
    assert r.status_code == 422


def test_list_update_and_delete_trip(client):
    trip = _create_trip(client)["trip"]

    listed = client.get("/trips", headers=OWNER).json()["trips"]
    assert [t["id"] for t in listed] == [trip["id"]]
    assert listed[0]["is_owner"] is True

    patched = client.patch(f"/trips/{trip['id']}", json={"name": "Kyoto & Nara"}, headers=OWNER)
    assert patched.status_code == 200
    assert patched.json()["name"] == "Kyoto & Nara"

    detail = client.get(f"/trips/{trip['id']}", headers=OWNER).json()
    assert detail["user_permissions"]["is_owner"] is True

    assert client.delete(f"/trips/{trip['id']}", headers=OWNER).status_code == 204
    assert client.get(f"/trips/{trip['id']}", headers=OWNER).status_code == 404


# ── 成员、邀请与颜色 ──────────────────────────────────


def test_invite_join_and_colors(client):
    trip = _create_trip(client)["trip"]
    joined = _join(client, trip["id"], ALICE)

    assert joined["trip"]["id"] == trip["id"]
    assert joined["member"]["user_id"] == "alice"
    assert joined["color"]["id"] == 2

    members = client.get(f"/trips/{trip['id']}/members", headers=OWNER).json()["members"]
    assert {m["user_id"] for m in members} == {"owner", "alice"}

    colors = client.get(f"/trips/{trip['id']}/colors", headers=ALICE).json()
    assert colors["member_colors"]["owner"]["id"] == 1
    assert colors["member_colors"]["alice"]["id"] == 2
    assert colors["validation"]["is_valid"] is True

    again = client.post(f"/trips/{trip['id']}/colors/assign", headers=ALICE)
    assert again.status_code == 200
    assert again.json()["id"] == 2


def test_join_with_unknown_code_returns_404(client):
    r = client.post("/invitations/join", json={"code": "ZZZZZZZZ"}, headers=ALICE)
    assert r.status_code == 404


def test_member_cannot_remove_owner(client):
    trip = _create_trip(client)["trip"]
    _join(client, trip["id"], ALICE)
    r = client.delete(f"/trips/{trip['id']}/members/owner", headers=ALICE)
    assert r.status_code == 403


# ── 地点 ──────────────────────────────────────────────


def test_place_crud_and_wishes(client):
    trip = _create_trip(client)["trip"]
    _join(client, trip["id"], ALICE)

    created = client.post(
        f"/trips/{trip['id']}/places",
        json={"name": "Fushimi Inari", "category": "attraction", "wish_level": 4, "rating": 4.7},
        headers=ALICE,
    )
    assert created.status_code == 201, created.text
    place = created.json()
    assert place["user_id"] == "alice"
    assert place["display_color"] == "#228B22"

    wished = client.put(f"/places/{place['id']}/wishes", json={"wish_level": 5}, headers=OWNER)
    assert wished.status_code == 200
    assert wished.json()["color"]["color_type"] == "gradient"

    listed = client.get(
        f"/trips/{trip['id']}/places",
        params={"category": "attraction", "min_wish_level": 3},
        headers=OWNER,
    ).json()
    assert [p["name"] for p in listed["places"]] == ["Fushimi Inari"]
    assert listed["stats"]["total_places"] == 1

    patched = client.patch(f"/places/{place['id']}", json={"notes": "go early"}, headers=ALICE)
    assert patched.status_code == 200
    assert patched.json()["notes"] == "go early"

    assert client.delete(f"/places/{place['id']}", headers=ALICE).status_code == 204
    assert client.get(f"/places/{place['id']}", headers=OWNER).status_code == 404


def test_place_validation(client):
    trip = _create_trip(client)["trip"]
    r = client.post(f"/trips/{trip['id']}/places", json={"name": "x", "category": "food", "wish_level": 9}, headers=OWNER)
    assert r.status_code == 422
    bad_sort = client.get(f"/trips/{trip['id']}/places", params={"sort_by": "secret"}, headers=OWNER)
    assert bad_sort.status_code == 422


# ── 行程优化与视图 ────────────────────────────────────


def _ingest(client, trip_id):
    body = {
        "daily_schedules": [
            {
                "day": 1,
                "scheduled_places": [
                    {"name": "Kiyomizu-dera", "arrival_time": "09:00", "visit_duration": 90},
                    {"name": "Gion", "arrival_time": "11:00", "visit_duration": 60, "transport_mode": "walking", "travel_time_minutes": 20},
                ],
            },
            {"day": 2, "scheduled_places": [{"name": "Arashiyama", "arrival_time": "10:00"}]},
        ],
        "optimization_score": {"total_score": 0.82},
        "execution_time_ms": 350,
    }
    r = client.post(f"/trips/{trip_id}/optimization", json=body, headers=OWNER)
    assert r.status_code == 201, r.text
    return r.json()


def test_optimization_views_and_export(client):
    trip = _create_trip(client)["trip"]
    assert client.get(f"/trips/{trip['id']}/optimization", headers=OWNER).status_code == 404

    result = _ingest(client, trip["id"])
    assert result["places_count"] == 3

    active = client.get(f"/trips/{trip['id']}/optimization", headers=OWNER).json()
    assert active["id"] == result["id"]

    history = client.get(f"/trips/{trip['id']}/optimization/history", params={"limit": 5}, headers=OWNER).json()
    assert [r["id"] for r in history["results"]] == [result["id"]]

    timeline = client.get(f"/trips/{trip['id']}/itinerary/timeline", params={"day": 1}, headers=OWNER).json()
    assert [d["day"] for d in timeline["days"]] == [1]
    kinds = [e["type"] for e in timeline["days"][0]["events"]]
    assert kinds == ["place", "travel", "place"]
    assert timeline["days"][0]["date"] == "2025-04-01"

    calendar = client.get(f"/trips/{trip['id']}/itinerary/calendar", headers=OWNER).json()
    assert calendar["months"]

    exported = client.get(f"/trips/{trip['id']}/itinerary/export", headers=OWNER).json()
    assert exported["format"] == "markdown"
    assert exported["content"].startswith("# Kyoto spring")

    markdown = client.get(f"/trips/{trip['id']}/itinerary/export", params={"format": "markdown"}, headers=OWNER)
    assert markdown.headers["content-type"].startswith("text/markdown")
    assert "Kiyomizu-dera" in markdown.text


def test_export_rejects_unknown_format(client):
    trip = _create_trip(client)["trip"]
    r = client.get(f"/trips/{trip['id']}/itinerary/export", params={"format": "pdf"}, headers=OWNER)
    assert r.status_code == 422


def test_schedule_resize_shifts_following_stops(client):
    trip = _create_trip(client)["trip"]
    original = _ingest(client, trip["id"])

    r = client.patch(
        f"/trips/{trip['id']}/optimization/schedule",
        json={"action": "resize", "day": 1, "index": 0, "duration_minutes": 120},
        headers=OWNER,
    )
    assert r.status_code == 200, r.text
    edited = r.json()
    day1 = edited["daily_schedules"][0]["scheduled_places"]
    assert (day1[0]["scheduled_time_start"], day1[0]["scheduled_time_end"]) == ("09:00", "11:00")
    # 20 分钟步行后到达
    assert (day1[1]["scheduled_time_start"], day1[1]["scheduled_time_end"]) == ("11:20", "12:20")
    assert edited["daily_schedules"][0]["total_visit_time_minutes"] == 180
    assert edited["optimization_score"]["edit_action"] == "resize"
    assert edited["optimization_score"]["edited_from"] == original["id"]

    active = client.get(f"/trips/{trip['id']}/optimization", headers=OWNER).json()
    assert active["id"] == edited["id"]
    history = client.get(f"/trips/{trip['id']}/optimization/history", headers=OWNER).json()
    assert len(history["results"]) == 2


def test_schedule_reorder_and_delete(client):
    trip = _create_trip(client)["trip"]
    _ingest(client, trip["id"])
    url = f"/trips/{trip['id']}/optimization/schedule"

    reordered = client.patch(url, json={"action": "reorder", "day": 1, "index": 1, "target_index": 0}, headers=OWNER)
    assert reordered.status_code == 200, reordered.text
    stops = reordered.json()["daily_schedules"][0]["scheduled_places"]
    assert [(s["name"], s["scheduled_time_start"]) for s in stops] == [("Gion", "09:00"), ("Kiyomizu-dera", "10:00")]
    assert stops[0]["travel_time_minutes"] is None

    deleted = client.patch(url, json={"action": "delete", "day": 2, "index": 0}, headers=OWNER)
    assert deleted.status_code == 200
    assert deleted.json()["places_count"] == 2

    timeline = client.get(f"/trips/{trip['id']}/itinerary/timeline", params={"day": 2}, headers=OWNER).json()
    assert timeline["days"][0]["events"] == []


def test_schedule_edit_errors(client):
    trip = _create_trip(client)["trip"]
    url = f"/trips/{trip['id']}/optimization/schedule"
    assert client.patch(url, json={"action": "delete", "day": 1}, headers=OWNER).status_code == 404

    _ingest(client, trip["id"])
    assert client.patch(url, json={"action": "delete", "day": 9}, headers=OWNER).status_code == 404
    assert client.patch(url, json={"action": "delete", "day": 1, "index": 7}, headers=OWNER).status_code == 400
    assert client.patch(url, json={"action": "resize", "day": 1}, headers=OWNER).status_code == 422
    assert client.patch(url, json={"action": "teleport", "day": 1}, headers=OWNER).status_code == 422
    assert client.patch(url, json={"action": "delete", "day": 1}, headers=BOB).status_code == 403


# ── 分享链接 ──────────────────────────────────────────


def test_share_link_public_view(client):
    trip = _create_trip(client)["trip"]
    _ingest(client, trip["id"])

    created = client.post(f"/trips/{trip['id']}/shares", json={}, headers=OWNER)
    assert created.status_code == 201, created.text
    share = created.json()
    assert share["share_url"] == f"/shared/{share['share_token']}"
    assert share["reused"] is False
    assert "password_hash" not in share

    again = client.post(f"/trips/{trip['id']}/shares", json={}, headers=OWNER).json()
    assert again["reused"] is True
    assert again["share_token"] == share["share_token"]

    public = client.get(share["share_url"])
    assert public.status_code == 200, public.text
    view = public.json()
    assert view["trip"]["name"] == "Kyoto spring"
    assert view["trip"]["trip_dates"] == ["2025-04-01", "2025-04-02", "2025-04-03"]
    assert {p["name"] for p in view["places"]} == {"Tokyo (Departure)", "Kyoto (Final Destination)"}
    assert all("user_id" not in p for p in view["places"])
    assert [d["day"] for d in view["itinerary"]] == [1, 2]

    listed = client.get(f"/trips/{trip['id']}/shares", headers=OWNER).json()["shares"]
    assert listed[0]["view_count"] == 1

    revoked = client.delete(f"/trips/{trip['id']}/shares/{share['id']}", headers=OWNER)
    assert revoked.status_code == 200
    assert revoked.json()["is_active"] is False
    assert client.get(share["share_url"]).status_code == 404


def test_share_link_password_and_permissions(client):
    trip = _create_trip(client)["trip"]
    _join(client, trip["id"], ALICE)
    assert client.post(f"/trips/{trip['id']}/shares", json={}, headers=ALICE).status_code == 403

    created = client.post(
        f"/trips/{trip['id']}/shares",
        json={"password": "sesame12", "permissions": {"can_view_places": False}},
        headers=OWNER,
    ).json()
    assert created["password_protected"] is True
    url = created["share_url"]

    assert client.get(url).status_code == 401
    assert client.get(url, headers={"X-Share-Password": "wrong-one"}).status_code == 401
    view = client.get(url, headers={"X-Share-Password": "sesame12"}).json()
    assert "places" not in view
    assert view["itinerary"] is None

    bad = client.post(f"/trips/{trip['id']}/shares", json={"permissions": {"can_delete": True}}, headers=OWNER)
    assert bad.status_code == 400
    assert client.get("/shared/not-a-token").status_code == 422


# ── 预订 ──────────────────────────────────────────────


def test_booking_lifecycle(client):
    trip = _create_trip(client)["trip"]
    created = client.post(
        f"/trips/{trip['id']}/bookings",
        json={
            "booking_type": "hotel",
            "hotel_name": "Ryokan Sakura",
            "check_in_date": "2025-04-01",
            "check_out_date": "2025-04-03",
            "price_per_night": 12000,
        },
        headers=OWNER,
    )
    assert created.status_code == 201, created.text
    booking = created.json()
    assert booking["nights"] == 2
    assert booking["total_price"] == 24000

    client.post(f"/trips/{trip['id']}/bookings", json={"booking_type": "flight", "airline": "ANA"}, headers=OWNER)
    hotels = client.get(f"/trips/{trip['id']}/bookings", params={"booking_type": "hotel"}, headers=OWNER).json()
    assert [b["hotel_name"] for b in hotels["bookings"]] == ["Ryokan Sakura"]
    assert hotels["summary"]["count"] == 1
    assert hotels["summary"]["price_range"] == "¥24,000"

    patched = client.patch(f"/bookings/{booking['id']}", json={"notes": "late check-in"}, headers=OWNER)
    assert patched.status_code == 200
    assert patched.json()["notes"] == "late check-in"

    assert client.delete(f"/bookings/{booking['id']}", headers=OWNER).status_code == 204
    assert client.get(f"/bookings/{booking['id']}", headers=OWNER).status_code == 404


def test_booking_rejects_unknown_type(client):
    trip = _create_trip(client)["trip"]
    r = client.post(f"/trips/{trip['id']}/bookings", json={"booking_type": "cruise"}, headers=OWNER)
    assert r.status_code == 422


# ── 航班与交通方式 ────────────────────────────────────


def test_flight_search_falls_back_to_mock(client):
    r = client.get(
        "/flights/search",
        params={"origin": "nrt", "destination": "KIX", "depart_date": "2025-04-01", "departure_time": "9:00"},
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["source"] == "mock"
    assert isinstance(data["flights"], list)
    assert "NRT" in data["links"]["wayaway"]


def test_flight_search_strict_without_token_is_bad_gateway(client, monkeypatch):
    monkeypatch.setenv("STRICT_EXTERNAL_DATA", "true")
    r = client.get("/flights/search", params={"origin": "NRT", "destination": "KIX", "depart_date": "2025-04-01"})
    assert r.status_code == 502
    assert r.json()["provider"] == "flights"
    assert "TRAVELPAYOUTS_TOKEN" in r.json()["detail"]


def test_flight_search_rejects_bad_iata(client):
    r = client.get("/flights/search", params={"origin": "TOKYO", "destination": "KIX", "depart_date": "2025-04-01"})
    assert r.status_code == 422


def test_transport_modes(client):
    modes = client.get("/transport").json()["modes"]
    assert modes
    walking = client.get("/transport/walking").json()
    assert walking["name"]


# ── 限流 ──────────────────────────────────────────────


def test_rate_limit_applies_to_mutating_requests(client, monkeypatch):
    from voypath.infrastructure.rate_limiter import InMemoryRateLimiter

    monkeypatch.setattr(
        "voypath.api.main.get_rate_limiter",
        lambda max_requests, window_seconds: InMemoryRateLimiter(2, 60),
    )
    app.middleware_stack = None

    statuses = [
        client.post("/trips", json={"departure_location": "Tokyo"}, headers=OWNER).status_code
        for _ in range(3)
    ]
    assert statuses == [201, 201, 429]
    assert client.get("/health").status_code == 200


def test_rate_limit_is_per_caller(client, monkeypatch):
    from voypath.infrastructure.rate_limiter import InMemoryRateLimiter

    monkeypatch.setattr(
        "voypath.api.main.get_rate_limiter",
        lambda max_requests, window_seconds: InMemoryRateLimiter(1, 60),
    )
    app.middleware_stack = None

    assert client.post("/trips", json={"departure_location": "Tokyo"}, headers=OWNER).status_code == 201
    assert client.post("/trips", json={"departure_location": "Tokyo"}, headers=OWNER).status_code == 429
    # 同一 IP 的其他用户不受影响
    assert client.post("/trips", json={"departure_location": "Osaka"}, headers=ALICE).status_code == 201


def test_rate_limit_covers_shared_links(client, monkeypatch):
    from voypath.infrastructure.rate_limiter import InMemoryRateLimiter

    monkeypatch.setattr(
        "voypath.api.main.get_rate_limiter",
        lambda max_requests, window_seconds: InMemoryRateLimiter(2, 60),
    )
    app.middleware_stack = None

    token = "a" * 32
    responses = [client.get(f"/shared/{token}") for _ in range(3)]
    assert [r.status_code for r in responses] == [404, 404, 429]
    assert responses[0].headers["X-RateLimit-Remaining"] == "1"
    assert int(responses[2].headers["Retry-After"]) >= 1
    # 分享链接与写请求分开计数
    assert client.post("/trips", json={"departure_location": "Tokyo"}, headers=OWNER).status_code == 201
    assert client.get("/health").status_code == 200


def test_rate_limit_key_prefers_user_header():
    from starlette.requests import Request

    from voypath.api.main import rate_limit_key

    def _request(headers):
        return Request({
            "type": "http",
            "method": "POST",
            "path": "/trips",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": ("10.0.0.7", 5000),
        })

    assert rate_limit_key(_request({"X-User-Id": " alice "})) == "user:alice"
    assert rate_limit_key(_request({})) == "ip:10.0.0.7"
