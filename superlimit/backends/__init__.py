"""
Backend storage implementations for the limiter.
"""

from .redis import RedisBackend, IncrementResult

__all__ = ["RedisBackend", "IncrementResult"]
