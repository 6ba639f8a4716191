"""
Exception classes for SuperLimit.
"""

from typing import Optional


DEFAULT_LIMIT_MESSAGE = "Exceeded the limit frequency"


class LimiterError(Exception):
    """Base exception for all limiter errors."""

    pass


class LimitExceeded(LimiterError):
    """
    Raised when a bucket's counter goes over the configured maximum.

    The counter has already been incremented when this is raised; the
    bucket keeps counting over-limit attempts until its window ends.
    """

    def __init__(
        self,
        key: str = "",
        count: int = 0,
        limit: int = 0,
        message: Optional[str] = None,
    ):
        """
        Initialize LimitExceeded exception.

        Args:
            key: Hash value of the bucket (without prefix)
            count: Counter value after the rejected increment
            limit: The configured maximum
            message: Optional custom error message
        """
        self.key = key
        self.count = count
        self.limit = limit

        super().__init__(message or DEFAULT_LIMIT_MESSAGE)


class LimiterConfigError(LimiterError):
    """Raised when the limiter is constructed or configured incorrectly."""

    pass


class BackendError(LimiterError):
    """Raised when a store operation fails (e.g., Redis connection issues)."""

    pass


class ExpireError(LimiterError):
    """
    Non-fatal error delivered to error listeners.

    Emitted when a bucket's TTL could not be set, even after the delayed
    retry. It is never raised into callers of ``Limiter.exec``.
    """

    type = "expire"

    def __init__(self, key: str, message: Optional[str] = None):
        self.key = key
        super().__init__(message or f"Set expire for {key} fail")
