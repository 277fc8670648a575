"""FastAPI 主应用：安全加固版"""

from __future__ import annotations

import logging
import os
import time

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from voypath.api.routers import bookings, flights, itinerary, places, transport, trips
from voypath.api.schemas import HealthResponse
from voypath.domain.exceptions import DomainError
from voypath.infrastructure.logging import get_logger
from voypath.infrastructure.rate_limiter import get_rate_limiter
from voypath.observability.tracing import begin_request_trace, build_traceparent_header, end_request_trace
from voypath.security.key_manager import get_key_manager
from voypath.shared.exceptions import ToolError

_api_logger = logging.getLogger("voypath.api")

load_dotenv()  # 自动加载 .env 文件

_MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

app = FastAPI(
    title="voypath",
    version="1.0.0",
    docs_url="/docs" if os.getenv("ENABLE_DOCS", "false").lower() == "true" else None,
    redoc_url=None,
)


# ── 安全中间件 ────────────────────────────────────────

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """注入安全响应头"""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response


def rate_limit_key(request: Request) -> str:
    """按调用方限流：有 X-User-Id 时按用户，否则按客户端 IP"""
    user_id = (request.headers.get("x-user-id") or "").strip()
    if user_id:
        return f"user:{user_id[:128]}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """写请求与公开分享链接的频率限制（内存或 Redis 后端）"""

    def __init__(self, app, max_requests: int = 60, window_seconds: int = 60):
        super().__init__(app)
        self._limiter = get_rate_limiter(max_requests, window_seconds)

    async def dispatch(self, request: Request, call_next):
        # 分享链接可能带密码，读请求同样限流（与写请求分开计数）
        if request.url.path.startswith("/shared/"):
            scope = "shared"
        elif request.method in _MUTATING_METHODS:
            scope = "write"
        else:
            return await call_next(request)

        decision = self._limiter.check(f"{scope}:{rate_limit_key(request)}")
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests, please retry later"},
                headers={"Retry-After": str(decision.retry_after)},
            )
        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response


class TraceMiddleware(BaseHTTPMiddleware):
    """W3C traceparent 透传 + 请求日志"""

    async def dispatch(self, request: Request, call_next):
        trace_ctx, token = begin_request_trace(request.headers.get("traceparent"))
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["traceparent"] = build_traceparent_header(trace_ctx)
            return response
        finally:
            get_logger(trace_ctx.trace_id).request(
                request.method,
                request.url.path,
                status_code,
                round((time.perf_counter() - started) * 1000, 1),
            )
            end_request_trace(token)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    max_requests=int(os.getenv("RATE_LIMIT_MAX", "60")),
    window_seconds=int(os.getenv("RATE_LIMIT_WINDOW", "60")),
)
app.add_middleware(TraceMiddleware)

# CORS：生产环境应限制 origins
_cors_origins = os.getenv("CORS_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)

app.include_router(trips.router)
app.include_router(places.router)
app.include_router(itinerary.router)
app.include_router(bookings.router)
app.include_router(flights.router)
app.include_router(transport.router)


# ── 异常处理 ──────────────────────────────────────────

def _safe_log_exception(context: str, exc: Exception) -> None:
    """脱敏后记录异常日志"""
    safe_msg = get_key_manager().scrub_text(str(exc))
    _api_logger.error("%s: %s", context, safe_msg)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(ToolError)
async def tool_error_handler(request: Request, exc: ToolError):
    _safe_log_exception(f"tool error on {request.url.path}", exc)
    return JSONResponse(
        status_code=502,
        content={"detail": get_key_manager().scrub_text(str(exc)), "provider": exc.tool},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    _safe_log_exception(f"unhandled error on {request.url.path}", exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ── 基础接口 ──────────────────────────────────────────

@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@app.get("/diagnostics")
def diagnostics():
    """内部诊断接口：航班数据源、缓存命中率、存储后端（生产环境应加鉴权）"""
    from voypath.config.settings import resolve_runtime_settings
    from voypath.infrastructure.cache import flight_cache
    from voypath.persistence.repository import get_trip_repository

    settings = resolve_runtime_settings()
    return {
        "flight_provider": settings.flight_provider,
        "strict_external_data": settings.strict_external_data,
        "default_currency": settings.default_currency,
        "cache": {"flights": flight_cache.stats},
        "storage": {"backend": get_trip_repository().backend},
    }
