"""
Pydantic models for configuration and data structures.
"""

from typing import Any, Callable, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def identity(*args: Any) -> Any:
    """Default hash: the first call argument is the bucket key."""
    return args[0] if args else None


class LimiterConfig(BaseModel):
    """
    Configuration model for the limiter.

    ``ttl``, ``expired_at`` and ``key_prefix`` may be changed after
    construction; every other field is frozen.
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        arbitrary_types_allowed=True,
    )

    ttl: int = Field(
        default=60,
        description="Window length in seconds, used when expired_at is not set",
    )
    max: int = Field(
        default=10,
        frozen=True,
        description="Maximum number of calls allowed per bucket and window",
    )
    expired_at: Optional[str] = Field(
        default=None,
        description="Daily reset time of day as HH:MM (local time)",
    )
    hash_func: Callable[..., Any] = Field(
        default=identity,
        frozen=True,
        description="Maps call arguments to a bucket key; falsy means exempt",
    )
    key_prefix: str = Field(
        default="super-limiter-",
        description="Prefix for all bucket keys in Redis",
    )
    limit_error: Optional[BaseException] = Field(
        default=None,
        frozen=True,
        description="Error raised on rejection; a LimitExceeded when unset",
    )

    @field_validator("ttl")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """Validate that the window length is positive."""
        if v <= 0:
            raise ValueError("ttl must be positive")
        return v

    @field_validator("max")
    @classmethod
    def validate_max(cls, v: int) -> int:
        """Validate that max is not negative."""
        if v < 0:
            raise ValueError("max must not be negative")
        return v

    @field_validator("key_prefix")
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        """The prefix is used as a SCAN pattern, so it must not contain glob characters."""
        if any(c in v for c in "*?[]\\"):
            raise ValueError("Key prefix must not contain any of * ? [ ] \\")
        return v


class KeyInfo(NamedTuple):
    """A bucket listed by ``Limiter.keys(include_ttl=True)``."""

    key: str  # Hash value, prefix stripped
    ttl: int  # Seconds remaining, -1 if the bucket has no expiry
