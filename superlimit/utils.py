"""
Utility functions for bucket key derivation.
"""

from typing import Any, Callable, Optional, Sequence


def derive_key(
    hash_func: Callable[..., Any],
    args: Sequence[Any],
    override: Optional[Callable[..., Any]] = None,
) -> str:
    """
    Derive the bucket key for one call.

    Args:
        hash_func: Configured hash function
        args: Positional arguments of the call
        override: Hash function for this call only, replacing hash_func

    Returns:
        The hash value as a string, or "" if the call is exempt from
        limiting (the hash function returned a falsy value)

    Examples:
        >>> derive_key(lambda *a: a[0], ["user:1"])
        'user:1'
        >>> derive_key(lambda *a: a[0], ["/health"], override=lambda path: "")
        ''
    """
    func = override or hash_func
    value = func(*args)
    if not value:
        return ""
    return str(value)


def bucket_key(prefix: str, hash_key: str) -> str:
    """
    Build the Redis key for a bucket.

    Examples:
        >>> bucket_key("super-limiter-", "user:1")
        'super-limiter-user:1'
    """
    return f"{prefix}{hash_key}"


def strip_prefix(prefix: str, key: str) -> str:
    """
    Recover the hash value from a Redis key.

    Examples:
        >>> strip_prefix("super-limiter-", "super-limiter-user:1")
        'user:1'
    """
    if prefix and key.startswith(prefix):
        return key[len(prefix):]
    return key
