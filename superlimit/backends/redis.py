"""
Redis backend implementation for the limiter.
"""

import redis.asyncio as redis
from contextlib import nullcontext
from typing import Optional, NamedTuple, List, Any
import logging

from ..exceptions import BackendError
from ..metrics import LimiterMetrics

logger = logging.getLogger(__name__)

# TTL reply for a key that does not exist
TTL_KEY_MISSING = -2


class IncrementResult(NamedTuple):
    """Result of the increment-and-expire transaction."""

    count: int  # Counter value after the increment
    expire_ok: bool  # False if the EXPIRE command itself failed


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisBackend:
    """
    Store client used by the limiter.

    All counter mutations rely on Redis atomicity: INCR serializes
    concurrent increments, and the conditional EXPIRE runs in the same
    MULTI/EXEC transaction as the increment.
    """

    def __init__(self, client: redis.Redis, metrics: Optional[LimiterMetrics] = None):
        """
        Initialize Redis backend.

        Args:
            client: Connected (or lazily connecting) asyncio Redis client
            metrics: Optional metrics collector
        """
        self._redis = client
        self.metrics = metrics

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        metrics: Optional[LimiterMetrics] = None,
        **kwargs: Any,
    ) -> "RedisBackend":
        """Create a backend with its own connection pool."""
        client = redis.from_url(redis_url, encoding="utf-8", **kwargs)
        return cls(client, metrics=metrics)

    @property
    def client(self) -> redis.Redis:
        return self._redis

    def _track(self, operation: str):
        if self.metrics is None:
            return nullcontext()
        return self.metrics.track_backend_operation(operation)

    async def close(self) -> None:
        """Close the Redis connection gracefully."""
        await self._redis.aclose()
        logger.info("Closed Redis connection")

    async def incr_with_expire(self, key: str, ttl: int) -> IncrementResult:
        """
        Increment a counter and attach a TTL if it has none.

        Executes ``INCR key`` and ``EXPIRE key ttl NX`` as one transaction.
        NX makes Redis evaluate "no TTL set yet" inside the transaction, so
        a fresh key, or one that lost its TTL, always gets one.

        Args:
            key: Full bucket key
            ttl: Seconds until the bucket should expire

        Returns:
            IncrementResult with the new count and whether EXPIRE succeeded

        Raises:
            BackendError: If the transaction or the increment fails
        """
        try:
            with self._track("incr_with_expire"):
                async with self._redis.pipeline(transaction=True) as pipe:
                    pipe.incr(key)
                    pipe.expire(key, ttl, nx=True)
                    results = await pipe.execute(raise_on_error=False)
        except redis.RedisError as e:
            logger.error(f"Redis error during increment of {key}: {e}")
            raise BackendError(f"Increment failed: {e}") from e

        count, expire_result = results
        if isinstance(count, Exception):
            logger.error(f"Increment of {key} failed: {count}")
            raise BackendError(f"Increment failed: {count}") from count

        if isinstance(expire_result, Exception):
            logger.warning(f"Expire of {key} failed inside transaction: {expire_result}")
            return IncrementResult(count=int(count), expire_ok=False)

        return IncrementResult(count=int(count), expire_ok=True)

    async def expire(self, key: str, ttl: int) -> bool:
        """
        Set a key's TTL unconditionally.

        Returns:
            True if the TTL was set, False if the key does not exist

        Raises:
            BackendError: If Redis operation fails
        """
        try:
            with self._track("expire"):
                return bool(await self._redis.expire(key, ttl))
        except redis.RedisError as e:
            logger.error(f"Failed to set expire for {key}: {e}")
            raise BackendError(f"Failed to set expire: {e}") from e

    async def get_count(self, key: str) -> int:
        """
        Get the raw counter value of a key, 0 if absent.

        Raises:
            BackendError: If Redis operation fails
        """
        try:
            with self._track("get"):
                value = await self._redis.get(key)
        except redis.RedisError as e:
            logger.error(f"Failed to get count for {key}: {e}")
            raise BackendError(f"Failed to get count: {e}") from e

        return int(value) if value else 0

    async def ttl(self, key: str) -> int:
        """
        Get the seconds remaining before a key expires.

        Returns:
            Remaining seconds, -1 if the key has no TTL, TTL_KEY_MISSING if it is gone

        Raises:
            BackendError: If Redis operation fails
        """
        try:
            with self._track("ttl"):
                return int(await self._redis.ttl(key))
        except redis.RedisError as e:
            logger.error(f"Failed to get ttl for {key}: {e}")
            raise BackendError(f"Failed to get ttl: {e}") from e

    async def scan_keys(self, pattern: str) -> List[str]:
        """
        List all keys matching a glob pattern.

        Uses SCAN rather than KEYS so large key spaces do not block the
        server. SCAN may return a key more than once; duplicates are
        dropped, keeping the order Redis enumerates.

        Raises:
            BackendError: If Redis operation fails
        """
        try:
            with self._track("scan"):
                keys = [_decode(key) async for key in self._redis.scan_iter(match=pattern)]
        except redis.RedisError as e:
            logger.error(f"Failed to scan keys for {pattern}: {e}")
            raise BackendError(f"Failed to list keys: {e}") from e

        return list(dict.fromkeys(keys))

    async def health_check(self) -> bool:
        """
        Check if Redis connection is healthy.

        Returns:
            True if healthy, False otherwise
        """
        try:
            await self._redis.ping()
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            return False
