"""
Tests for the limiter middleware.
"""

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from superlimit import Limiter, LimiterMiddleware


class QuotaError(Exception):
    pass


def hash_path(request: Request) -> str:
    """Limit per path, except /no-limit."""
    if request.url.path == "/no-limit":
        return ""
    return request.url.path


def create_app(limiter: Limiter, **middleware_options) -> FastAPI:
    app = FastAPI()
    app.add_middleware(LimiterMiddleware, limiter=limiter, **middleware_options)

    @app.get("/user")
    async def user(request: Request):
        return {"count": getattr(request.state, "rate_limit_count", None)}

    @app.get("/users")
    async def users():
        return {}

    @app.get("/no-limit")
    async def no_limit():
        return {}

    return app


@pytest_asyncio.fixture
async def client(redis_client, key_prefix):
    limiter = Limiter(redis_client, key_prefix=key_prefix, ttl=10, max=2, hash_func=hash_path)
    transport = ASGITransport(app=create_app(limiter))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
class TestLimiterMiddleware:
    """Test suite for the limiter middleware."""

    async def test_requests_within_limit(self, client):
        for expected in (1, 2):
            response = await client.get("/user")
            assert response.status_code == 200
            assert response.json() == {"count": expected}
            assert response.headers["X-RateLimit-Count"] == str(expected)

    async def test_request_over_limit_is_rejected(self, client):
        for _ in range(2):
            assert (await client.get("/user")).status_code == 200

        response = await client.get("/user")

        assert response.status_code == 429
        assert response.json()["message"] == "Exceeded the limit frequency"

    async def test_other_paths_have_own_bucket(self, client):
        for _ in range(3):
            await client.get("/user")

        response = await client.get("/users")
        assert response.status_code == 200

    async def test_exempt_requests_are_not_limited(self, client, redis_client, key_prefix):
        for _ in range(5):
            response = await client.get("/no-limit")
            assert response.status_code == 200
            assert "X-RateLimit-Count" not in response.headers

        assert await redis_client.keys(f"{key_prefix}*") == []

    async def test_middleware_hash_override(self, redis_client, key_prefix):
        limiter = Limiter(redis_client, key_prefix=key_prefix, max=1)
        app = create_app(limiter, hash_func=lambda request: "everyone")
        transport = ASGITransport(app=app)

        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            assert (await ac.get("/user")).status_code == 200
            assert (await ac.get("/users")).status_code == 429

    async def test_custom_limit_error_reaches_error_handling(self, redis_client, key_prefix):
        limiter = Limiter(
            redis_client,
            key_prefix=key_prefix,
            max=0,
            hash_func=hash_path,
            limit_error=QuotaError("quota used up"),
        )
        transport = ASGITransport(app=create_app(limiter), raise_app_exceptions=False)

        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/user")
            assert response.status_code == 500

            # Exempt requests still pass
            assert (await ac.get("/no-limit")).status_code == 200
