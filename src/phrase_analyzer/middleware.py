from __future__ import annotations

import asyncio
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp
from structlog import contextvars as structlog_contextvars

from .logging import logger
from .metrics import MetricsRegistry


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign a request ID to each incoming request and expose it in headers.

    - Reuses a well-formed incoming `X-Request-ID`, otherwise generates one
    - Sets `request.state.request_id` and binds it to the structlog context
    - Adds `X-Request-ID` to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        incoming = (request.headers.get("x-request-id") or "").strip()
        request_id = incoming if 0 < len(incoming) <= 128 else uuid.uuid4().hex
        request.state.request_id = request_id
        # 解析パイプライン内のログにも request_id を載せる
        structlog_contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog_contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogAndMetricsMiddleware(BaseHTTPMiddleware):
    """Emit structured request logs and capture latency/metrics for each call.

    例外だけでなく 5xx 応答もエラー、408 応答もタイムアウトとして計上する。
    解析 API は失敗をレスポンスとして返すため、ステータスで判定する必要がある。
    """

    def __init__(self, app: ASGIApp, *, registry: MetricsRegistry) -> None:
        super().__init__(app)
        self._registry = registry

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:  # type: ignore[override]
        start = time.time()
        path = request.url.path
        method = request.method
        client_ip = request.client.host if request.client else "unknown"
        is_error = False
        is_timeout = False
        status_code: int | None = None
        error_type: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            is_error = status_code >= 500
            is_timeout = status_code == 408
            return response
        except Exception as exc:
            is_error = True
            status_code = 500
            error_type = exc.__class__.__name__
            if isinstance(exc, asyncio.TimeoutError):
                is_timeout = True
            raise
        finally:
            latency_ms = (time.time() - start) * 1000
            self._registry.record(path, latency_ms, status_code or 500, timed_out=is_timeout)
            log_method = logger.error if is_error else logger.info
            log_method(
                "request_complete",
                component="http",
                action="request",
                path=path,
                method=method,
                latency_ms=round(latency_ms, 2),
                status_code=status_code,
                is_error=is_error,
                is_timeout=is_timeout,
                error_type=error_type,
                request_id=getattr(request.state, "request_id", None),
                client_ip=client_ip,
            )
