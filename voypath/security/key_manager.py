"""集中式 API Key 管理器

职责：
  1. 统一管理所有外部服务 Token 的读取与缓存
  2. 提供 Token 脱敏方法（用于日志/异常）
  3. 密钥轮换支持（reload）
  4. 密钥审计日志

所有外部 API 调用应通过此模块获取 Token，禁止直接 os.getenv。
"""

from __future__ import annotations

import os
import time
from typing import Optional

from voypath.security.redact import redact_sensitive
from voypath.shared.exceptions import KeyMissingError

TRAVELPAYOUTS_TOKEN = "TRAVELPAYOUTS_TOKEN"
API_BEARER_TOKEN = "API_BEARER_TOKEN"


class _KeyEntry:
    """单个 Key 的元数据"""

    __slots__ = ("value", "loaded_at", "source")

    def __init__(self, value: str, source: str):
        self.value = value
        self.loaded_at = time.time()
        self.source = source  # "env" / "request"


class KeyManager:
    """全局单例 Key 管理器"""

    def __init__(self):
        self._keys: dict[str, _KeyEntry] = {}
        self._access_log: list[dict] = []

    # ── 读取 ──────────────────────────────────────────

    def get(self, name: str, *, required: bool = False) -> Optional[str]:
        """
        获取指定名称的 Key。
        优先从缓存读取，否则从环境变量加载。
        """
        entry = self._keys.get(name)
        if entry is None:
            raw = os.getenv(name, "")
            if raw:
                entry = _KeyEntry(value=raw, source="env")
                self._keys[name] = entry
            elif required:
                raise KeyMissingError(name)
            else:
                return None

        self._access_log.append({
            "key": name,
            "time": time.time(),
            "source": entry.source,
        })
        return entry.value

    def get_travelpayouts_token(self, *, required: bool = False) -> str:
        """获取 TravelPayouts Data API Token"""
        val = self.get(TRAVELPAYOUTS_TOKEN, required=required)
        return val or ""

    def get_api_bearer_token(self) -> Optional[str]:
        """获取 API 鉴权 Bearer Token（可选）"""
        return self.get(API_BEARER_TOKEN)

    def register_transient(self, name: str, value: str) -> None:
        """登记调用方传入的临时 Token，使其在日志/异常中同样被擦除"""
        if value:
            self._keys[f"{name}@request"] = _KeyEntry(value=value, source="request")

    # ── 脱敏 ──────────────────────────────────────────

    @staticmethod
    def redact(value: str) -> str:
        """对 Key 做脱敏：仅保留前 4 和后 4 位"""
        if not value or len(value) <= 8:
            return "****"
        return value[:4] + "****" + value[-4:]

    def redact_name(self, name: str) -> str:
        entry = self._keys.get(name)
        if entry is None:
            return "****"
        return self.redact(entry.value)

    def scrub_text(self, text: str) -> str:
        """
        从任意文本中擦除所有已知 Key 值。
        用于日志/异常消息安全输出。
        """
        result = str(text) if text is not None else ""
        for name, entry in self._keys.items():
            if entry.value and entry.value in result:
                result = result.replace(entry.value, f"[{name}:***REDACTED***]")
        return redact_sensitive(result)

    # ── 审计 ──────────────────────────────────────────

    def get_access_log(self, last_n: int = 100) -> list[dict]:
        """获取最近 N 条 Key 访问记录"""
        return self._access_log[-last_n:]

    def has_key(self, name: str) -> bool:
        """检查指定 Key 是否存在（不触发审计日志）"""
        if name in self._keys:
            return True
        return bool(os.getenv(name, ""))

    # ── 重新加载（用于密钥轮换） ──────────────────────

    def reload(self, name: str) -> None:
        """强制从环境变量重新加载指定 Key"""
        raw = os.getenv(name, "")
        if raw:
            self._keys[name] = _KeyEntry(value=raw, source="env")
        elif name in self._keys:
            del self._keys[name]


# ── 全局单例 ──────────────────────────────────────────

_manager: Optional[KeyManager] = None


def get_key_manager() -> KeyManager:
    global _manager
    if _manager is None:
        _manager = KeyManager()
    return _manager
