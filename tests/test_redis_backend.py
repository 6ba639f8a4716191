"""
Tests for the Redis backend.
"""

import fakeredis
import pytest
from redis.asyncio.client import Pipeline
from redis.exceptions import ResponseError

from superlimit import BackendError
from superlimit.backends.redis import IncrementResult, RedisBackend


@pytest.mark.asyncio
class TestRedisBackend:
    """Store operations used by the limiter."""

    async def test_incr_with_expire(self, redis_client):
        backend = RedisBackend(redis_client)

        assert await backend.incr_with_expire("bucket", 10) == IncrementResult(count=1, expire_ok=True)
        assert await backend.incr_with_expire("bucket", 10) == IncrementResult(count=2, expire_ok=True)
        assert 0 < await backend.ttl("bucket") <= 10

    async def test_incr_keeps_existing_ttl(self, redis_client):
        backend = RedisBackend(redis_client)
        await backend.incr_with_expire("bucket", 10)

        result = await backend.incr_with_expire("bucket", 500)

        assert result.expire_ok is True
        assert await backend.ttl("bucket") <= 10

    async def test_incr_on_wrong_type(self, redis_client):
        await redis_client.rpush("bucket", "x")
        backend = RedisBackend(redis_client)

        with pytest.raises(BackendError):
            await backend.incr_with_expire("bucket", 10)

    async def test_expire(self, redis_client):
        backend = RedisBackend(redis_client)
        await redis_client.set("bucket", 1)

        assert await backend.expire("bucket", 10) is True
        assert await backend.expire("missing", 10) is False

    async def test_get_count(self, redis_client):
        backend = RedisBackend(redis_client)
        await redis_client.set("bucket", 7)

        assert await backend.get_count("bucket") == 7
        assert await backend.get_count("missing") == 0

    async def test_ttl_codes(self, redis_client):
        backend = RedisBackend(redis_client)
        await redis_client.set("persistent", 1)

        assert await backend.ttl("persistent") == -1
        assert await backend.ttl("missing") == -2

    async def test_scan_keys_decodes_bytes(self):
        client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())
        backend = RedisBackend(client)
        await client.set("p-a", 1)
        await client.set("p-b", 1)
        await client.set("other", 1)

        assert sorted(await backend.scan_keys("p-*")) == ["p-a", "p-b"]
        await backend.close()

    async def test_health_check(self, redis_client):
        backend = RedisBackend(redis_client)
        assert await backend.health_check() is True

    async def test_scan_keys_drops_duplicates(self, redis_client, monkeypatch):
        backend = RedisBackend(redis_client)

        async def scan_iter(match=None):
            for key in ("p-a", "p-b", "p-a"):
                yield key

        monkeypatch.setattr(redis_client, "scan_iter", scan_iter)

        assert await backend.scan_keys("p-*") == ["p-a", "p-b"]

    async def test_expire_error_inside_transaction(self, redis_client, monkeypatch):
        backend = RedisBackend(redis_client)

        async def execute(self, raise_on_error=True):
            return [1, ResponseError("ERR expire failed")]

        monkeypatch.setattr(Pipeline, "execute", execute)

        assert await backend.incr_with_expire("bucket", 10) == IncrementResult(count=1, expire_ok=False)

    async def test_incr_error_inside_transaction(self, redis_client, monkeypatch):
        backend = RedisBackend(redis_client)

        async def execute(self, raise_on_error=True):
            return [ResponseError("ERR incr failed"), 1]

        monkeypatch.setattr(Pipeline, "execute", execute)

        with pytest.raises(BackendError):
            await backend.incr_with_expire("bucket", 10)
