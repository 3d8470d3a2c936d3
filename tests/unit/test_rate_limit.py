"""Unit tests for RateLimitMiddleware in loyaltycore/web/middleware.py."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from loyaltycore.web.middleware import RateLimitMiddleware, RequestIDMiddleware


def _make_app(max_requests: int = 3, window_seconds: int = 60) -> FastAPI:
    app = FastAPI()
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=max_requests,
        window_seconds=window_seconds,
        prefix="/api/wallet/",
    )
    app.add_middleware(RequestIDMiddleware)

    @app.post("/api/wallet/nonce")
    async def nonce() -> dict[str, str]:
        return {"nonce": "n"}

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    return app


@pytest.mark.unit
class TestRateLimitMiddleware:
    async def test_limit_enforced_with_retry_after(self) -> None:
        app = _make_app(max_requests=2, window_seconds=45)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            assert (await c.post("/api/wallet/nonce")).status_code == 200
            assert (await c.post("/api/wallet/nonce")).status_code == 200
            resp = await c.post("/api/wallet/nonce")
        assert resp.status_code == 429
        assert resp.headers["retry-after"] == "45"
        assert "detail" in resp.json()

    async def test_other_paths_not_limited(self) -> None:
        app = _make_app(max_requests=1)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            for _ in range(5):
                assert (await c.get("/api/health")).status_code == 200

    async def test_window_expiry_resets_limit(self) -> None:
        app = _make_app(max_requests=2, window_seconds=1)
        with patch("loyaltycore.web.middleware.time") as mock_time:
            mock_time.monotonic.side_effect = [0.0, 0.0, 2.0]
            async with AsyncClient(
                transport=ASGITransport(app=app), base_url="http://test"
            ) as c:
                for _ in range(2):
                    await c.post("/api/wallet/nonce")
                resp = await c.post("/api/wallet/nonce")
        assert resp.status_code == 200

    async def test_idle_clients_are_pruned(self) -> None:
        middleware = RateLimitMiddleware(FastAPI(), max_requests=5, window_seconds=10)
        from collections import deque

        middleware._hits["10.0.0.1"] = deque([0.0])
        middleware._hits["10.0.0.2"] = deque([15.0])
        middleware._prune(now=20.0)
        assert list(middleware._hits) == ["10.0.0.2"]


@pytest.mark.unit
class TestRequestIDMiddleware:
    async def test_echoes_supplied_request_id(self) -> None:
        app = _make_app()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.get("/api/health", headers={"X-Request-ID": "req-42"})
        assert resp.headers["x-request-id"] == "req-42"

    async def test_generates_request_id(self) -> None:
        app = _make_app()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.get("/api/health")
        assert len(resp.headers["x-request-id"]) == 36
