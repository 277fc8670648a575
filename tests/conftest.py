"""pytest 全局 fixtures：测试环境隔离"""

import pytest

# 服务层测试使用的固定成员
TEST_USERS = (
    ("owner", "Aiko"),
    ("alice", "Alice"),
    ("bob", "Bob"),
    ("carol", "Carol"),
    ("dave", "Dave"),
    ("erin", "Erin"),
)


@pytest.fixture(autouse=True)
def no_real_apis(monkeypatch):
    """默认禁用真实 API（TravelPayouts），确保测试不依赖外部服务"""
    monkeypatch.delenv("TRAVELPAYOUTS_TOKEN", raising=False)
    monkeypatch.delenv("TRAVELPAYOUTS_MARKER", raising=False)
    monkeypatch.delenv("FLIGHT_PROVIDER", raising=False)
    monkeypatch.delenv("API_BEARER_TOKEN", raising=False)
    monkeypatch.setenv("ALLOW_UNAUTHENTICATED_API", "true")
    monkeypatch.delenv("STRICT_EXTERNAL_DATA", raising=False)
    monkeypatch.delenv("DEFAULT_CURRENCY", raising=False)
    monkeypatch.delenv("RATE_LIMIT_REDIS_URL", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("VOYPATH_DB_PATH", raising=False)
    monkeypatch.delenv("ENABLE_TRACING", raising=False)
    # 重置 Key 缓存与航班缓存，确保每个测试独立
    from voypath.infrastructure.cache import flight_cache
    from voypath.security.key_manager import API_BEARER_TOKEN, TRAVELPAYOUTS_TOKEN, get_key_manager

    km = get_key_manager()
    for key_name in (TRAVELPAYOUTS_TOKEN, API_BEARER_TOKEN):
        km.reload(key_name)

    flight_cache.clear()
    yield
    flight_cache.clear()


@pytest.fixture
def ctx(tmp_path):
    """Service context backed by a throwaway SQLite database, with TEST_USERS registered."""
    from voypath.application.context import make_app_context
    from voypath.domain.models import User

    context = make_app_context(tmp_path / "voypath.sqlite3")
    for user_id, name in TEST_USERS:
        context.repo.upsert_user(User(id=user_id, name=name))
    return context


@pytest.fixture
def trip_id(ctx):
    """A Tokyo to Kyoto trip owned by ``owner``."""
    import datetime as dt

    from voypath.application.contracts import TripCreate
    from voypath.services.trip_service import create_trip

    created = create_trip(
        ctx=ctx,
        user_id="owner",
        payload=TripCreate(
            name="Kyoto spring",
            departure_location="Tokyo",
            destination="Kyoto",
            start_date=dt.date(2025, 4, 1),
            end_date=dt.date(2025, 4, 3),
        ),
    )
    return created["trip"]["id"]
