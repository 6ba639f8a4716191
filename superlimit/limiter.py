"""
Main Limiter class implementation.
"""

import asyncio
import inspect
from contextlib import nullcontext
from datetime import datetime
from typing import Any, Callable, List, Optional, Set, Union
import logging

import redis.asyncio as redis
from pydantic import ValidationError

from .backends.redis import TTL_KEY_MISSING, RedisBackend
from .exceptions import ExpireError, LimiterConfigError, LimitExceeded, BackendError
from .metrics import LimiterMetrics
from .models import KeyInfo, LimiterConfig
from .utils import bucket_key, derive_key, strip_prefix
from .window import compute_ttl

logger = logging.getLogger(__name__)

# Delay before the single retry of a failed expire-set
EXPIRE_RETRY_DELAY = 0.3

# Maximum TTL lookups in flight while listing keys
KEYS_TTL_CONCURRENCY = 10

ERROR_EVENT = "error"

ErrorListener = Callable[[ExpireError], Any]


class Limiter:
    """
    Fixed-window frequency limiter backed by a shared Redis store.

    Each call is mapped to a bucket by the hash function; the bucket's
    counter is incremented atomically and the call is rejected once the
    counter goes over ``max``. Buckets expire after ``ttl`` seconds, or at
    the next ``expired_at`` time of day.

    The limiter keeps no per-bucket state in process, so any number of
    instances, in any number of processes, can share one Redis.

    Examples:
        Basic usage:
        >>> limiter = Limiter(redis_client, ttl=300, max=10)
        >>> count = await limiter.exec("user:123")

        Hashing a request:
        >>> limiter = Limiter(
        ...     redis_client,
        ...     hash_func=lambda request: request.url.path,
        ... )
        >>> await limiter.exec(request)

        Daily quota, reset at midnight:
        >>> limiter = Limiter(redis_client, max=1000, expired_at="00:00")
    """

    def __init__(
        self,
        client: Union[redis.Redis, RedisBackend, None],
        *,
        clock: Optional[Callable[[], datetime]] = None,
        on_error: Optional[ErrorListener] = None,
        metrics: Optional[LimiterMetrics] = None,
        **options: Any,
    ):
        """
        Initialize the limiter.

        Args:
            client: asyncio Redis client (or a RedisBackend wrapping one)
            clock: Returns the current local time; defaults to datetime.now
            on_error: Listener for non-fatal ExpireError events
            metrics: Optional Prometheus metrics collector
            **options: LimiterConfig fields (ttl, max, expired_at,
                hash_func, key_prefix, limit_error)

        Raises:
            LimiterConfigError: If client is None or an option is invalid
        """
        if client is None:
            raise LimiterConfigError("client can not be null")

        try:
            self._config = LimiterConfig(**options)
        except ValidationError as e:
            raise LimiterConfigError(f"Invalid limiter options: {e}") from e

        if isinstance(client, RedisBackend):
            self.backend = client
            if metrics is not None and client.metrics is None:
                client.metrics = metrics
        else:
            self.backend = RedisBackend(client, metrics=metrics)

        self.metrics = metrics
        self._clock = clock or datetime.now
        self._listeners: List[ErrorListener] = []
        self._background_tasks: Set[asyncio.Task] = set()

        if on_error is not None:
            self._listeners.append(on_error)

        logger.debug(f"Initialized Limiter with config: {self._config}")

    @classmethod
    def from_url(cls, redis_url: str = "redis://localhost:6379", **kwargs: Any) -> "Limiter":
        """
        Create a limiter with its own Redis connection pool.

        Keyword arguments are passed on to the constructor.
        """
        if not redis_url.startswith(("redis://", "rediss://", "unix://")):
            raise LimiterConfigError("Redis URL must start with redis://, rediss://, or unix://")
        return cls(redis.from_url(redis_url, encoding="utf-8"), **kwargs)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Close the Redis connection."""
        await self.backend.close()
        logger.info("Limiter disconnected from Redis")

    async def health_check(self) -> bool:
        """Check whether the store answers PING."""
        return await self.backend.health_check()

    # Configuration

    @property
    def client(self) -> redis.Redis:
        return self.backend.client

    @property
    def config(self) -> LimiterConfig:
        """A copy of the current configuration."""
        return self._config.model_copy()

    @property
    def ttl(self) -> int:
        return self._config.ttl

    @property
    def expired_at(self) -> Optional[str]:
        return self._config.expired_at

    @property
    def key_prefix(self) -> str:
        return self._config.key_prefix

    @property
    def max(self) -> int:
        return self._config.max

    def set_ttl(self, ttl: int) -> None:
        """Change the window length for buckets created from now on."""
        self._update("ttl", ttl)

    def set_expired_at(self, expired_at: Optional[str]) -> None:
        """Change the daily reset time for buckets created from now on."""
        self._update("expired_at", expired_at)

    def set_key_prefix(self, key_prefix: str) -> None:
        """Change the key prefix; existing buckets under the old prefix are left alone."""
        self._update("key_prefix", key_prefix)

    def _update(self, field: str, value: Any) -> None:
        try:
            setattr(self._config, field, value)
        except ValidationError as e:
            raise LimiterConfigError(f"Invalid value for {field}: {e}") from e

    def get_ttl(self) -> int:
        """Seconds a bucket created now would live."""
        return compute_ttl(self._config, self._clock())

    # Error channel

    def on(self, event: str, listener: ErrorListener) -> None:
        """
        Subscribe to limiter events.

        Only "error" is emitted: it carries an ExpireError when a bucket's
        TTL could not be set. Coroutine listeners are awaited.
        """
        self._check_event(event)
        self._listeners.append(listener)

    def off(self, event: str, listener: ErrorListener) -> None:
        """Unsubscribe a listener; unknown listeners are ignored."""
        self._check_event(event)
        if listener in self._listeners:
            self._listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        self._check_event(event)
        return len(self._listeners)

    @staticmethod
    def _check_event(event: str) -> None:
        if event != ERROR_EVENT:
            raise LimiterConfigError(f"Unknown event: {event}")

    async def _emit_error(self, error: ExpireError) -> None:
        if self.metrics is not None:
            self.metrics.record_expire_failure()

        if not self._listeners:
            logger.warning(f"{error} (no error listener registered)")
            return

        for listener in list(self._listeners):
            try:
                result = listener(error)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Error listener failed while handling: {error}")

    # Limiting

    async def exec(self, *args: Any, hash_func: Optional[Callable[..., Any]] = None) -> int:
        """
        Count one call and reject it if its bucket is over the limit.

        Args:
            *args: Call payload passed to the hash function
            hash_func: Hash function for this call only

        Returns:
            The bucket's count including this call, or 0 if the call is
            exempt (the hash function returned a falsy value)

        Raises:
            LimitExceeded: If the count is over max (or the configured
                limit_error instead). The increment is kept.
            BackendError: If the increment could not be performed

        Examples:
            >>> limiter = Limiter(redis_client, ttl=10, max=2)
            >>> await limiter.exec("k1")
            1
            >>> await limiter.exec("k1")
            2
            >>> await limiter.exec("k1")
            Traceback (most recent call last):
            ...
            superlimit.exceptions.LimitExceeded: Exceeded the limit frequency
        """
        config = self._config
        max_count = config.max

        hash_key = derive_key(config.hash_func, args, hash_func)
        if not hash_key:
            logger.debug("Call exempt from limiting")
            self._record_exec("exempt")
            return 0

        key = bucket_key(config.key_prefix, hash_key)
        track = self.metrics.track_exec_duration() if self.metrics else nullcontext()
        with track:
            result = await self.backend.incr_with_expire(key, self.get_ttl())

        if not result.expire_ok:
            self._schedule_expire_retry(key, hash_key)

        if result.count > max_count:
            logger.debug(f"Limit exceeded for key={hash_key}, count={result.count}")
            self._record_exec("denied")
            raise self._limit_error(hash_key, result.count, max_count)

        logger.debug(f"Limit check passed for key={hash_key}, count={result.count}")
        self._record_exec("allowed")
        return result.count

    def _limit_error(self, hash_key: str, count: int, max_count: int) -> BaseException:
        error = self._config.limit_error
        if error is None:
            return LimitExceeded(key=hash_key, count=count, limit=max_count)
        # Same instance every time; drop the traceback of the previous raise
        return error.with_traceback(None)

    def _record_exec(self, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_exec(result)

    def _schedule_expire_retry(self, key: str, hash_key: str) -> None:
        logger.warning(f"Expire for {key} failed, retrying in {EXPIRE_RETRY_DELAY}s")
        if self.metrics is not None:
            self.metrics.record_expire_retry()

        task = asyncio.create_task(self._retry_expire(key, hash_key))
        # Hold a reference until done so the task is not garbage collected
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _retry_expire(self, key: str, hash_key: str) -> None:
        await asyncio.sleep(EXPIRE_RETRY_DELAY)

        try:
            if await self.backend.expire(key, self.get_ttl()):
                logger.info(f"Expire for {key} set on retry")
            else:
                # Nothing left to expire
                logger.debug(f"Key {key} no longer exists, expire retry skipped")
            return
        except BackendError as e:
            reason = str(e)

        await self._emit_error(ExpireError(hash_key, f"Set expire for {key} fail, {reason}"))

    async def get_count(self, *args: Any, hash_func: Optional[Callable[..., Any]] = None) -> int:
        """
        Get the current count of the bucket a call maps to.

        Read-only: neither increments the counter nor touches its TTL.

        Returns:
            The counter value, 0 if the bucket does not exist or the call
            is exempt

        Raises:
            BackendError: If the read fails
        """
        config = self._config
        hash_key = derive_key(config.hash_func, args, hash_func)
        if not hash_key:
            return 0

        return await self.backend.get_count(bucket_key(config.key_prefix, hash_key))

    async def keys(self, include_ttl: bool = False) -> Union[List[str], List[KeyInfo]]:
        """
        List live buckets under the current key prefix.

        Args:
            include_ttl: Also fetch each bucket's remaining TTL

        Returns:
            Hash values with the prefix stripped, or KeyInfo(key, ttl)
            tuples when include_ttl is set. Order is not guaranteed.

        Examples:
            >>> await limiter.keys()
            ['user:1', 'user:2']
            >>> await limiter.keys(include_ttl=True)
            [KeyInfo(key='user:1', ttl=42), KeyInfo(key='user:2', ttl=17)]
        """
        prefix = self._config.key_prefix
        full_keys = await self.backend.scan_keys(f"{prefix}*")

        if not include_ttl:
            return [strip_prefix(prefix, key) for key in full_keys]

        semaphore = asyncio.Semaphore(KEYS_TTL_CONCURRENCY)

        async def fetch(full_key: str) -> KeyInfo:
            async with semaphore:
                ttl = await self.backend.ttl(full_key)
            return KeyInfo(key=strip_prefix(prefix, full_key), ttl=ttl)

        infos = await asyncio.gather(*(fetch(key) for key in full_keys))
        # Expired between SCAN and TTL
        return [info for info in infos if info.ttl != TTL_KEY_MISSING]

    def limit(self, hash_func: Optional[Callable[..., Any]] = None):
        """
        Create a decorator that limits an endpoint.

        Args:
            hash_func: Optional hash function overriding the configured one
                for this endpoint

        Examples:
            >>> @app.get("/api/data")
            >>> @limiter.limit()
            >>> async def get_data(request: Request):
            >>>     return {"data": "..."}
        """
        from .decorators import create_limit_decorator

        return create_limit_decorator(limiter=self, hash_func=hash_func)
