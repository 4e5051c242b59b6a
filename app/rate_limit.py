"""
Per-IP request limits (slowapi).

Counters live in Redis when REDIS_URL is set in the environment so that every
API process shares them; otherwise each process counts in memory.
"""
import logging
import os

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.config import settings

logger = logging.getLogger(__name__)

AUTH_RATE_LIMIT = "5/minute"
EMAIL_RATE_LIMIT = "10/minute"


def _storage_uri() -> str:
    if os.environ.get("REDIS_URL"):
        return settings.REDIS_URL
    logger.warning("REDIS_URL not set, rate limit counters are per process")
    return "memory://"


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=_storage_uri(),
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


def _window_seconds(exc: RateLimitExceeded) -> int:
    item = getattr(exc.limit, "limit", None)
    return item.get_expiry() if item is not None else 60


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    window = _window_seconds(exc)
    logger.warning(
        "Rate limit %s hit by %s on %s %s",
        exc.detail, get_remote_address(request), request.method, request.url.path,
    )
    return JSONResponse(
        status_code=429,
        content={
            "error_code": "RATE_LIMIT_EXCEEDED",
            "message": "Too many requests. Please try again later.",
            "details": {"retry_after": f"{window} seconds"},
        },
        headers={"Retry-After": str(window)},
    )
