"""
SuperLimit - Redis-backed fixed-window frequency limiter
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Counts calls per bucket in a shared Redis store and rejects callers once a
configured maximum is exceeded within the bucket's window.

Basic usage:
    >>> import redis.asyncio as redis
    >>> from superlimit import Limiter
    >>> limiter = Limiter(redis.from_url("redis://localhost:6379"), ttl=60, max=10)
    >>> await limiter.exec("user:123")
    1

FastAPI integration:
    >>> from fastapi import FastAPI
    >>> from superlimit import Limiter, LimiterMiddleware
    >>>
    >>> app = FastAPI()
    >>> limiter = Limiter.from_url(hash_func=lambda request: request.client.host)
    >>> app.add_middleware(LimiterMiddleware, limiter=limiter)
"""

from .limiter import Limiter
from .exceptions import (
    LimiterError,
    LimitExceeded,
    LimiterConfigError,
    BackendError,
    ExpireError,
)
from .models import LimiterConfig, KeyInfo
from .middleware import LimiterMiddleware
from .window import compute_ttl

__version__ = "0.1.0"

__all__ = [
    "Limiter",
    "LimiterError",
    "LimitExceeded",
    "LimiterConfigError",
    "BackendError",
    "ExpireError",
    "LimiterConfig",
    "KeyInfo",
    "LimiterMiddleware",
    "compute_ttl",
]
