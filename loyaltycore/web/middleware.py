"""FastAPI middleware: request ID injection and login rate limiting."""

from __future__ import annotations

import time
import uuid
from collections import deque
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = structlog.get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Binds a request ID into the log context and echoes it in the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers["x-request-id"] = request_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limiter per client IP for paths under ``prefix``.

    Guards the wallet challenge endpoints: every nonce request allocates a
    store entry, so an unthrottled client could grow the store faster than
    the sweeper drains it.
    """

    def __init__(
        self,
        app: object,
        max_requests: int = 10,
        window_seconds: int = 600,
        prefix: str = "/api/wallet/",
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._max_requests = max_requests
        self._window = window_seconds
        self._prefix = prefix
        self._hits: dict[str, deque[float]] = {}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(self._prefix):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        hits = self._hits.setdefault(client_ip, deque())
        while hits and now - hits[0] >= self._window:
            hits.popleft()

        if len(hits) >= self._max_requests:
            logger.warning("rate_limit_exceeded", ip=client_ip, path=request.url.path)
            return JSONResponse(
                {"detail": "Too many requests. Try again later."},
                status_code=429,
                headers={"Retry-After": str(self._window)},
            )

        hits.append(now)
        self._prune(now)
        return await call_next(request)

    def _prune(self, now: float) -> None:
        stale = [ip for ip, h in self._hits.items() if not h or now - h[-1] >= self._window]
        for ip in stale:
            del self._hits[ip]
