from __future__ import annotations

import logging
import secrets
import time
from collections import defaultdict, deque
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from dataclasses import dataclass, field

import orjson
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from headsdown.core.config import Settings
from headsdown.core.metrics import observe_http_request

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("headsdown.api")

# Slack callbacks are signature-checked and Slack re-delivers on 429, so they are never limited.
SLACK_INGRESS_PATHS = ("/api/slack/events", "/api/slack/commands")


@dataclass
class SlidingWindowLimiter:
    limit: int
    window_seconds: float = 60.0
    _hits: dict[str, deque[float]] = field(default_factory=lambda: defaultdict(deque))

    def allow(self, client: str, *, at: float) -> bool:
        hits = self._hits[client]
        while hits and at - hits[0] >= self.window_seconds:
            hits.popleft()
        if len(hits) >= self.limit:
            return False
        hits.append(at)
        return True


def client_address(request: Request) -> str:
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",", 1)[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else "unknown"


def request_id_for(request: Request, *, header_name: str) -> str:
    supplied = (request.headers.get(header_name) or "").strip()
    # Slack's own retry headers repeat across deliveries, so only a caller-supplied id is kept.
    return supplied[:128] if supplied else secrets.token_urlsafe(18)


def slack_retry(request: Request) -> str | None:
    attempt = request.headers.get("x-slack-retry-num")
    if not attempt:
        return None
    return f"{attempt}:{request.headers.get('x-slack-retry-reason') or 'unknown'}"


def route_label(request: Request) -> str:
    # Templated path keeps metric cardinality bounded; unmatched paths share one label.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def apply_security_headers(response: Response, *, csp: str) -> None:
    headers = response.headers
    headers.setdefault("X-Content-Type-Options", "nosniff")
    headers.setdefault("X-Frame-Options", "DENY")
    headers.setdefault("Referrer-Policy", "no-referrer")
    headers.setdefault("Content-Security-Policy", csp)


def log_request(**fields: object) -> None:
    logger.info(orjson.dumps(fields, option=orjson.OPT_SORT_KEYS).decode("utf-8"))


def install_request_context(app: FastAPI, *, settings: Settings) -> None:
    """Request ids, security headers, the optional per-client limit, access log and metrics."""
    limiter = (
        SlidingWindowLimiter(limit=settings.RATE_LIMIT_REQUESTS_PER_MINUTE)
        if settings.RATE_LIMIT_REQUESTS_PER_MINUTE > 0
        else None
    )

    @app.middleware("http")
    async def request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request_id_for(request, header_name=settings.REQUEST_ID_HEADER)
        ctx_token = request_id_ctx.set(request_id)
        started = time.perf_counter()
        limited = False
        status_code = 500
        try:
            path = request.url.path
            if (
                limiter is not None
                and not path.startswith(SLACK_INGRESS_PATHS)
                and not limiter.allow(client_address(request), at=time.monotonic())
            ):
                limited = True
                response: Response = JSONResponse(
                    status_code=429, content={"detail": "Rate limit exceeded"}
                )
            else:
                response = await call_next(request)
            status_code = response.status_code
            response.headers[settings.REQUEST_ID_HEADER] = request_id
            apply_security_headers(response, csp=settings.CONTENT_SECURITY_POLICY)
            return response
        finally:
            elapsed = time.perf_counter() - started
            log_request(
                event="http.request.completed",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=int(elapsed * 1000),
                rate_limited=limited,
                slack_retry=slack_retry(request),
            )
            if settings.ENABLE_PROMETHEUS_METRICS:
                observe_http_request(
                    method=request.method,
                    route=route_label(request),
                    status_code=status_code,
                    seconds=elapsed,
                    rate_limited=limited,
                )
            request_id_ctx.reset(ctx_token)
