"""HTTP client timeout/retry cap tests."""

from __future__ import annotations

import httpx
import pytest

from voypath.security import http_client as http_module
from voypath.security.http_client import SecureHttpClient
from voypath.shared.exceptions import ToolError

_URL = "https://api.example.test/v1/prices"


def _response(status: int, payload: dict | None = None) -> httpx.Response:
    return httpx.Response(status, json=payload or {}, request=httpx.Request("GET", _URL))


def test_http_client_applies_timeout_and_retry_caps(monkeypatch):
    monkeypatch.setenv("TOOL_HTTP_TIMEOUT_CAP_SECONDS", "5")
    monkeypatch.setenv("TOOL_HTTP_TIMEOUT_FLOOR_SECONDS", "1")
    monkeypatch.setenv("TOOL_HTTP_RETRY_CAP", "1")

    client = SecureHttpClient(timeout=30, max_retries=5, tool_name="test")
    assert client._timeout == 5.0
    assert client._max_retries == 1


def test_http_client_ignores_malformed_caps(monkeypatch):
    monkeypatch.setenv("TOOL_HTTP_TIMEOUT_CAP_SECONDS", "fast")
    monkeypatch.setenv("TOOL_HTTP_RETRY_CAP", "")

    client = SecureHttpClient(timeout=0.1, max_retries=-2, tool_name="test")
    assert client._timeout == 1.0
    assert client._max_retries == 0


def test_client_error_is_not_retried(monkeypatch):
    calls = []

    def fake_get(url, **kwargs):
        calls.append(url)
        return _response(401, {"error": "unauthorized"})

    monkeypatch.setattr(http_module.httpx, "get", fake_get)
    monkeypatch.setattr(http_module.time, "sleep", lambda _s: None)

    client = SecureHttpClient(max_retries=2, tool_name="travelpayouts")
    with pytest.raises(ToolError) as exc_info:
        client.get(_URL)

    assert len(calls) == 1
    assert exc_info.value.status_code == 401
    assert exc_info.value.tool == "travelpayouts"


def test_server_error_is_retried_then_succeeds(monkeypatch):
    responses = [_response(503), _response(200, {"success": True})]
    sleeps = []

    monkeypatch.setattr(http_module.httpx, "get", lambda url, **kwargs: responses.pop(0))
    monkeypatch.setattr(http_module.time, "sleep", sleeps.append)

    client = SecureHttpClient(max_retries=1, tool_name="test")
    assert client.get(_URL) == {"success": True}
    assert sleeps == [0.5]


def test_timeout_message_is_reported_after_retries(monkeypatch):
    def fake_get(url, **kwargs):
        raise httpx.ReadTimeout("slow", request=httpx.Request("GET", url))

    monkeypatch.setattr(http_module.httpx, "get", fake_get)
    monkeypatch.setattr(http_module.time, "sleep", lambda _s: None)

    client = SecureHttpClient(timeout=2, max_retries=1, tool_name="test")
    with pytest.raises(ToolError, match="timed out"):
        client.get(_URL)


def test_network_error_message_is_scrubbed(monkeypatch):
    monkeypatch.setenv("TRAVELPAYOUTS_TOKEN", "tp_secret_value_0123456789")
    from voypath.security.key_manager import get_key_manager

    get_key_manager().reload("TRAVELPAYOUTS_TOKEN")

    def fake_get(url, **kwargs):
        raise httpx.ConnectError(
            "failed for token tp_secret_value_0123456789",
            request=httpx.Request("GET", url),
        )

    monkeypatch.setattr(http_module.httpx, "get", fake_get)
    monkeypatch.setattr(http_module.time, "sleep", lambda _s: None)

    client = SecureHttpClient(max_retries=0, tool_name="test")
    with pytest.raises(ToolError) as exc_info:
        client.get(_URL)
    assert "tp_secret_value_0123456789" not in str(exc_info.value)


@pytest.mark.parametrize(
    ("status", "retryable"),
    [(None, True), (400, False), (401, False), (429, True), (500, True), (503, True)],
)
def test_tool_error_retryable_follows_status(status, retryable):
    err = ToolError("travelpayouts", "boom", status_code=status)
    assert err.retryable is retryable
    assert str(err) == "[travelpayouts] boom"


def test_upstream_throttling_is_retried(monkeypatch):
    responses = [_response(429), _response(200, {"success": True, "data": {}})]
    monkeypatch.setattr(http_module.httpx, "get", lambda url, **kwargs: responses.pop(0))
    monkeypatch.setattr(http_module.time, "sleep", lambda _s: None)

    client = SecureHttpClient(max_retries=1, tool_name="travelpayouts")
    assert client.get(_URL)["success"] is True


def test_invalid_json_is_not_retried(monkeypatch):
    calls = []

    def fake_get(url, **kwargs):
        calls.append(url)
        return httpx.Response(200, text="<html>maintenance</html>", request=httpx.Request("GET", url))

    monkeypatch.setattr(http_module.httpx, "get", fake_get)
    monkeypatch.setattr(http_module.time, "sleep", lambda _s: None)

    client = SecureHttpClient(max_retries=3, tool_name="travelpayouts")
    with pytest.raises(ToolError, match="invalid JSON") as exc_info:
        client.get(_URL)
    assert len(calls) == 1
    assert exc_info.value.retryable is False
