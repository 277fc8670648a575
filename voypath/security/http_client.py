"""安全 HTTP 客户端：所有外部 API 调用的统一出口

职责：
  1. 自动脱敏异常中的 Token
  2. 统一超时 / 重试策略（受环境变量上限约束）
  3. 隔离 httpx 依赖
"""

from __future__ import annotations

import os
import time
from typing import Any, Optional

import httpx

from voypath.security.key_manager import get_key_manager
from voypath.shared.exceptions import ToolError


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


class SecureHttpClient:
    """封装 httpx，自动脱敏异常"""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        max_retries: int = 1,
        tool_name: str = "http",
    ):
        timeout_cap = _env_float("TOOL_HTTP_TIMEOUT_CAP_SECONDS", 30.0)
        timeout_floor = _env_float("TOOL_HTTP_TIMEOUT_FLOOR_SECONDS", 1.0)
        retry_cap = _env_int("TOOL_HTTP_RETRY_CAP", 3)
        self._timeout = max(timeout_floor, min(float(timeout), timeout_cap))
        self._max_retries = max(0, min(int(max_retries), retry_cap))
        self._tool_name = tool_name
        self._km = get_key_manager()

    def get(
        self,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """
        执行 GET 请求并返回 JSON。
        4xx（429 除外）与非 JSON 响应不重试；超时、网络错误、429 与 5xx 按退避重试。
        """
        last_error: Optional[ToolError] = None

        for attempt in range(1, self._max_retries + 2):
            try:
                resp = httpx.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                safe_msg = self._km.scrub_text(str(e))
                last_error = ToolError(self._tool_name, f"HTTP {status}: {safe_msg}", status_code=status)
            except httpx.TimeoutException:
                last_error = ToolError(self._tool_name, f"request timed out ({self._timeout}s), attempt {attempt}")
            except httpx.HTTPError as e:
                safe_msg = self._km.scrub_text(str(e))
                last_error = ToolError(self._tool_name, f"network request failed: {safe_msg}")
            except ValueError as e:
                safe_msg = self._km.scrub_text(str(e))
                last_error = ToolError(self._tool_name, f"invalid JSON response: {safe_msg}", retryable=False)

            if not last_error.retryable:
                break
            if attempt <= self._max_retries:
                time.sleep(0.5 * attempt)  # 简单退避

        raise last_error  # type: ignore[misc]
