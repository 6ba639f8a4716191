"""
Pytest configuration and fixtures for SuperLimit tests.

Tests run against an in-process fakeredis server by default. Set REDIS_URL
to run them against a real Redis (7.0 or newer) instead.
"""

import logging
import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta

import fakeredis
import pytest
import pytest_asyncio
import redis.asyncio as redis

from superlimit import Limiter

# Configure logging for tests
logging.basicConfig(level=logging.DEBUG)


@pytest.fixture(scope="session")
def redis_url() -> str:
    """Redis URL from the environment, or None to use fakeredis."""
    return os.getenv("REDIS_URL")


@pytest_asyncio.fixture
async def redis_client(redis_url) -> AsyncGenerator[redis.Redis, None]:
    """
    Create a Redis client for tests.

    Each fakeredis client gets its own server, so tests are isolated.
    """
    if redis_url:
        client = redis.from_url(redis_url, decode_responses=True)
        try:
            await client.ping()
        except Exception as e:
            pytest.skip(f"Redis not available: {e}")
    else:
        client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)

    yield client

    await client.aclose()


@pytest.fixture
def idle_client() -> redis.Redis:
    """A client that is never connected, for tests that only construct limiters."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())


@pytest.fixture
def key_prefix() -> str:
    """A unique key prefix per test, so tests sharing a real Redis don't collide."""
    return f"test:{str(uuid.uuid4())[:8]}:"


@pytest.fixture
def make_limiter(redis_client, key_prefix):
    """
    Factory fixture creating limiters on the test's Redis and prefix.

    Usage:
        limiter = make_limiter(ttl=10, max=2)
    """

    def _make_limiter(**options):
        options.setdefault("key_prefix", key_prefix)
        return Limiter(redis_client, **options)

    return _make_limiter


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def frozen_clock():
    """Clock frozen at 2024-11-01 13:59:59 local time."""
    return FrozenClock(datetime(2024, 11, 1, 13, 59, 59))


@pytest.fixture
def mock_request():
    """
    Create mock request object that mimics a Starlette Request.
    """

    class MockClient:
        def __init__(self, host: str = "192.168.1.100"):
            self.host = host

    class MockRequest:
        def __init__(
            self,
            client_host: str = "192.168.1.100",
            headers: dict = None,
            path: str = "/api/test",
        ):
            self.client = MockClient(client_host)
            self.headers = headers or {}
            self.path = path

    return MockRequest
