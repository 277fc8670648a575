"""结构化日志：JSON line 格式，支持敏感信息脱敏"""

from __future__ import annotations

import json
import sys
import time
import uuid
from typing import Any, Optional

from voypath.security.key_manager import get_key_manager


class StructuredLogger:
    """结构化日志器，输出 JSON line，自动脱敏敏感信息。"""

    def __init__(self, trace_id: Optional[str] = None, output=None):
        self.trace_id = trace_id or str(uuid.uuid4())[:8]
        self._output = output or sys.stderr
        self._timers: dict[str, float] = {}

    def _scrub(self, text: str) -> str:
        return get_key_manager().scrub_text(text)

    def _emit(self, data: dict[str, Any]) -> None:
        data["trace_id"] = self.trace_id
        data["timestamp"] = time.time()
        try:
            # 序列化后做全局脱敏
            line = json.dumps(data, ensure_ascii=False, default=str)
            line = self._scrub(line)
            self._output.write(line + "\n")
            self._output.flush()
        except (OSError, TypeError, ValueError) as exc:
            fallback = {
                "event": "logger_internal_error",
                "trace_id": self.trace_id,
                "timestamp": time.time(),
                "error": type(exc).__name__,
            }
            sys.stderr.write(json.dumps(fallback) + "\n")

    def stage_start(self, stage: str, **extra: Any) -> None:
        self._timers[stage] = time.time()
        self._emit({"event": "stage_start", "stage": stage, **extra})

    def stage_end(self, stage: str, **extra: Any) -> None:
        start = self._timers.pop(stage, time.time())
        duration_ms = round((time.time() - start) * 1000, 1)
        self._emit({"event": "stage_end", "stage": stage, "duration_ms": duration_ms, **extra})

    def request(self, method: str, path: str, status_code: int, duration_ms: float, **extra: Any) -> None:
        self._emit({
            "event": "request",
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": duration_ms,
            **extra,
        })

    def external_call(self, tool_name: str, **extra: Any) -> None:
        self._emit({"event": "external_call", "tool": tool_name, **extra})

    def error(self, area: str, error: str, **extra: Any) -> None:
        safe_error = self._scrub(error)
        self._emit({"event": "error", "area": area, "error": safe_error, **extra})

    def warning(self, area: str, message: str, **extra: Any) -> None:
        safe_msg = self._scrub(message)
        self._emit({"event": "warning", "area": area, "message": safe_msg, **extra})

    def summary(self, **extra: Any) -> None:
        self._emit({"event": "summary", **extra})


# 全局 logger
_logger: Optional[StructuredLogger] = None


def get_logger(trace_id: Optional[str] = None) -> StructuredLogger:
    global _logger
    if _logger is None or (trace_id and _logger.trace_id != trace_id):
        _logger = StructuredLogger(trace_id=trace_id)
    return _logger
