"""
Example FastAPI application demonstrating SuperLimit.

Run with:
    uvicorn examples.fastapi_app:app --reload --port 8000
"""

import logging
import os
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from superlimit import ExpireError, Limiter, LimiterMiddleware, LimitExceeded
from superlimit.metrics import LimiterMetrics

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
metrics = LimiterMetrics()


def client_ip(request: Request) -> str:
    """Limit per client address; health checks and metrics are exempt."""
    if request.url.path in ("/health", "/metrics"):
        return ""
    return request.client.host if request.client else "unknown"


def log_expire_error(error: ExpireError) -> None:
    logger.error(f"Bucket {error.key} has no TTL: {error}")


# 100 requests per minute per IP for the whole app
limiter = Limiter.from_url(
    redis_url,
    ttl=60,
    max=100,
    hash_func=client_ip,
    key_prefix="demo-ip-",
    metrics=metrics,
    on_error=log_expire_error,
)

# 1000 reports per user per day, reset at midnight
daily_limiter = Limiter.from_url(
    redis_url,
    max=1000,
    expired_at="00:00",
    hash_func=lambda request: request.path_params.get("user_id"),
    key_prefix="demo-daily-",
    on_error=log_expire_error,
)

app = FastAPI(
    title="SuperLimit Demo API",
    description="Demonstration of frequency limiting with SuperLimit",
    version="1.0.0",
)
app.add_middleware(LimiterMiddleware, limiter=limiter)


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up on shutdown."""
    await limiter.close()
    await daily_limiter.close()


@app.exception_handler(LimitExceeded)
async def limit_handler(request: Request, exc: LimitExceeded):
    """Handler for limits raised inside endpoints."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "message": str(exc),
            "limit": exc.limit,
        },
    )


@app.get("/health")
async def health():
    return {"redis": await limiter.health_check()}


@app.get("/metrics")
async def prometheus_metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/data")
async def data(request: Request):
    """Limited by the middleware only."""
    return {
        "count": request.state.rate_limit_count,
        "timestamp": datetime.now().isoformat(),
    }


@app.get("/api/users/{user_id}/report")
@daily_limiter.limit()
async def user_report(request: Request, user_id: str):
    """Limited per user by the daily quota, on top of the per-IP limit."""
    used = await daily_limiter.get_count(request)
    return {"user_id": user_id, "reports_today": used}


@app.get("/api/admin/buckets")
async def buckets():
    """List live per-IP buckets with their remaining TTL."""
    keys = await limiter.keys(include_ttl=True)
    return [{"key": info.key, "ttl": info.ttl} for info in keys]
