"""
API Middleware.

Request ID injection, rate limiting, and structured access logging
for every incoming API request.
"""

from __future__ import annotations

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from directory_service.config import get_settings
from directory_service.logging_config import entry_id_var, generate_trace_id, get_logger, trace_id_var

logger = get_logger(__name__)

RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_EXEMPT_PATHS = frozenset({"/health"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Inject a unique request ID into every request and response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_trace_id()
        trace_id_var.set(request_id)
        entry_id_var.set("")

        start = time.monotonic()

        response = await call_next(request)

        elapsed_ms = round((time.monotonic() - start) * 1000, 1)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = str(elapsed_ms)

        logger.info(
            "api_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            elapsed_ms=elapsed_ms,
        )

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiter per client IP (single instance, in memory)."""

    def __init__(self, app) -> None:
        super().__init__(app)
        self._hits: dict[str, list[float]] = {}
        self._last_sweep = 0.0

    def _recent_hits(self, client_ip: str, now: float) -> list[float]:
        # Clients idle for a whole window are dropped so the table only holds active IPs
        if now - self._last_sweep >= RATE_LIMIT_WINDOW:
            self._hits = {
                ip: hits for ip, hits in self._hits.items() if hits and now - hits[-1] < RATE_LIMIT_WINDOW
            }
            self._last_sweep = now
        return [t for t in self._hits.pop(client_ip, []) if now - t < RATE_LIMIT_WINDOW]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in RATE_LIMIT_EXEMPT_PATHS:
            return await call_next(request)

        limit = get_settings().rate_limit_per_minute
        client_ip = request.client.host if request.client else "unknown"
        now = time.time()

        hits = self._recent_hits(client_ip, now)

        if len(hits) >= limit:
            if hits:
                self._hits[client_ip] = hits
            logger.warning("rate_limit_exceeded", client_ip=client_ip)
            return Response(
                content='{"error": {"code": "RATE_LIMITED", "message": "Rate limit exceeded", "details": {}}}',
                status_code=429,
                media_type="application/json",
                headers={"Retry-After": str(RATE_LIMIT_WINDOW)},
            )

        hits.append(now)
        self._hits[client_ip] = hits
        return await call_next(request)
