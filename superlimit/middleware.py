"""
Starlette middleware that limits every request passing through it.
"""

from typing import Any, Callable, Optional
import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .exceptions import LimitExceeded

logger = logging.getLogger(__name__)


class LimiterMiddleware(BaseHTTPMiddleware):
    """
    Middleware that runs ``Limiter.exec`` for each request.

    The request object is the hash payload, so the limiter's hash function
    (or the ``hash_func`` given here) receives a Starlette ``Request``.
    Returning a falsy value from it exempts the request.

    On rejection with the default ``LimitExceeded`` a 429 JSON response is
    returned. A custom ``limit_error`` configured on the limiter propagates
    to the server error handling instead.

    Usage:
        from fastapi import FastAPI
        from superlimit import Limiter, LimiterMiddleware

        limiter = Limiter.from_url(
            "redis://localhost:6379",
            ttl=60,
            max=100,
            hash_func=lambda request: request.client.host,
        )

        app = FastAPI()
        app.add_middleware(LimiterMiddleware, limiter=limiter)
    """

    def __init__(
        self,
        app,
        limiter: Any,
        hash_func: Optional[Callable[..., Any]] = None,
    ):
        """
        Initialize the middleware.

        Args:
            app: The ASGI application
            limiter: Limiter instance
            hash_func: Optional hash function overriding the limiter's own
        """
        super().__init__(app)
        self.limiter = limiter
        self.hash_func = hash_func

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            count = await self.limiter.exec(request, hash_func=self.hash_func)
        except LimitExceeded as exc:
            logger.debug(f"Rejected {request.url.path}: {exc}")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "message": str(exc),
                },
            )

        if not count:
            return await call_next(request)

        request.state.rate_limit_count = count
        response = await call_next(request)
        response.headers["X-RateLimit-Count"] = str(count)
        return response
