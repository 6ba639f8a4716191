"""
Decorator implementations for limiting endpoints.
"""

import functools
from typing import Callable, Optional, Any
from inspect import iscoroutinefunction
import logging

logger = logging.getLogger(__name__)


def create_limit_decorator(
    limiter: Any,
    hash_func: Optional[Callable[..., Any]] = None,
):
    """
    Create a limiting decorator for endpoint functions.

    The decorated function must receive a request-like object, either as
    its first positional argument or as the keyword argument ``request``.
    The request is passed to ``limiter.exec``; a rejection propagates the
    configured limit error to the framework, and exempt requests run as if
    no limiter were present.

    Args:
        limiter: Limiter instance
        hash_func: Optional hash function for this endpoint only

    Returns:
        Decorator function

    Examples:
        >>> decorator = create_limit_decorator(
        ...     limiter=limiter,
        ...     hash_func=lambda req: req.client.host
        ... )
        >>> @decorator
        >>> async def my_endpoint(request):
        >>>     return {"status": "ok"}
    """

    def decorator(func: Callable) -> Callable:
        """The actual decorator."""

        if not iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                request = _extract_request(args, kwargs)
                await limiter.exec(request, hash_func=hash_func)

                # Note: This converts sync to async
                return func(*args, **kwargs)

            return async_wrapper
        else:
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                request = _extract_request(args, kwargs)
                await limiter.exec(request, hash_func=hash_func)

                return await func(*args, **kwargs)

            return async_wrapper

    return decorator


def _extract_request(args: tuple, kwargs: dict) -> Any:
    """
    Extract request object from function arguments.

    FastAPI passes the Request object as the first positional argument
    or as a keyword argument named 'request'.

    Raises:
        ValueError: If request cannot be found
    """
    if "request" in kwargs:
        return kwargs["request"]

    if args:
        first_arg = args[0]
        if hasattr(first_arg, "client") or hasattr(first_arg, "headers"):
            return first_arg

    raise ValueError(
        "Could not extract request object from function arguments. "
        "Ensure the decorated function receives a Request object."
    )
