"""
Rate Limiting Module

Sliding-window rate limiting for API endpoints using Redis as the backend.
Falls back to in-memory storage if Redis is unavailable.

Limited endpoints:
- Invitation token endpoints (prevents token guessing and upload floods)
- Staff endpoints that send e-mail (invitations, guardian credentials)
"""

import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

from fastapi import HTTPException, Request, status
from redis.asyncio import Redis

from admissions.core.redis import get_redis

logger = logging.getLogger(__name__)

# Format: {key: [(timestamp, count), ...]}
_memory_store: dict[str, list[tuple[float, int]]] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(
    client: Redis,
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check rate limit using Redis sorted sets.

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    now = time.time()
    window_start = now - window_seconds

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, window_start)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)

    results = await pipe.execute()
    current_count = results[1]

    return current_count < limit


def _check_rate_limit_memory(
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check rate limit using in-memory storage.

    Does not work across multiple server instances.
    """
    now = time.time()
    window_start = now - window_seconds

    entries = [(ts, count) for ts, count in _memory_store.get(key, []) if ts > window_start]
    current_count = sum(count for _, count in entries)

    if current_count >= limit:
        _memory_store[key] = entries
        return False

    entries.append((now, 1))
    _memory_store[key] = entries
    return True


def reset_memory_store() -> None:
    """Forget every in-memory counter."""
    _memory_store.clear()


async def check_rate_limit(
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check if a request is within rate limits.

    Tries the shared Redis client first, falls back to in-memory storage.

    Args:
        key: Unique key for this rate limit (e.g., "rate_limit:1.2.3.4:/path")
        limit: Maximum requests allowed in the window
        window_seconds: Time window in seconds

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    redis_client = await get_redis()

    if redis_client:
        try:
            return await _check_rate_limit_redis(redis_client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


def rate_limit(
    limit: int = 10,
    window_seconds: int = 60,
    key_func: Callable[[Request], str] | None = None,
):
    """
    Rate limiting decorator for FastAPI endpoints.

    The endpoint must accept a ``request: Request`` parameter.

    Usage:
        @router.post("/{token}/submit")
        @rate_limit(limit=10, window_seconds=60)
        async def submit(request: Request, ...):
            ...

    Args:
        limit: Maximum requests allowed in the window (default: 10)
        window_seconds: Time window in seconds (default: 60)
        key_func: Optional function to generate rate limit key from request.
                  Default uses client IP + endpoint path.

    Raises:
        RateLimitExceeded: When rate limit is exceeded (HTTP 429)
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            request: Request | None = kwargs.get("request")
            if request is None:
                request = next((arg for arg in args if isinstance(arg, Request)), None)

            if request is None:
                logger.warning(
                    f"Rate limit decorator on {func.__name__} couldn't find Request object"
                )
                return await func(*args, **kwargs)

            if key_func:
                key = key_func(request)
            else:
                client_ip = request.client.host if request.client else "unknown"
                key = f"rate_limit:{client_ip}:{request.url.path}"

            allowed = await check_rate_limit(key, limit, window_seconds)

            if not allowed:
                logger.warning(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
                raise RateLimitExceeded(limit, window_seconds)

            return await func(*args, **kwargs)

        return wrapper

    return decorator


def staff_action_rate_limit(request: Request) -> str:
    """
    Generate rate limit key for staff actions.

    Uses the staff user ID (set on request.state by the auth dependency)
    plus the endpoint path, falling back to the client IP.
    """
    staff_id = getattr(request.state, "staff_id", None)

    if staff_id:
        return f"staff_action:{staff_id}:{request.url.path}"

    client_ip = request.client.host if request.client else "unknown"
    return f"staff_action:{client_ip}:{request.url.path}"


__all__ = [
    "rate_limit",
    "check_rate_limit",
    "reset_memory_store",
    "staff_action_rate_limit",
    "RateLimitExceeded",
]
