"""
Rate Limiting Middleware
========================

Redis-based fixed-window rate limiting for /api/ endpoints, keyed by client
address. When Redis is unreachable requests are allowed through.
"""

import time
import logging
from typing import Optional, Callable, Sequence, Tuple

import redis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import get_settings

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


class RateLimiter:
    """
    Redis-based rate limiter using a fixed window (INCR + EXPIRE).
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or get_settings().redis_url
        self._client = None

    @property
    def client(self):
        """Lazy-load Redis client"""
        if self._client is None:
            try:
                self._client = redis.from_url(self.redis_url, decode_responses=True)
                self._client.ping()
            except redis.RedisError as e:
                logger.warning(f"Redis connection failed: {e}")
                self._client = None

        return self._client

    def hit(self, key: str, limit: int, window_seconds: int, now: Optional[float] = None) -> Tuple[bool, int, int]:
        """
        Count one request against `key`.

        Args:
            key: Rate limit key (e.g., "ratelimit:ip:10.0.0.1")
            limit: Maximum requests per window
            window_seconds: Window length
            now: Current epoch seconds (defaults to the clock)

        Returns:
            (is_allowed, remaining, reset_time)
        """
        client = self.client
        if not client:
            return (True, limit, 0)

        now = int(now if now is not None else time.time())
        window = now // window_seconds
        window_key = f"{key}:{window}"
        reset_time = (window + 1) * window_seconds

        try:
            pipe = client.pipeline()
            pipe.incr(window_key)
            pipe.expire(window_key, window_seconds)
            results = pipe.execute()
            current_count = int(results[0])
        except redis.RedisError as e:
            logger.warning(f"Rate limit check failed: {e}")
            return (True, limit, 0)

        if current_count > limit:
            return (False, 0, reset_time)

        return (True, max(0, limit - current_count), reset_time)


# Singleton rate limiter
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get singleton rate limiter instance"""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def client_address(request: Request, trusted_proxies: Sequence[str] = ()) -> str:
    """
    Address to rate-limit on.

    X-Forwarded-For is only honored when the direct peer is a trusted proxy.
    """
    peer = request.client.host if request.client else "unknown"
    if peer in trusted_proxies:
        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return peer


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Limits each client address to `max_requests` per window under /api/.
    """

    def __init__(
        self,
        app,
        limiter: Optional[RateLimiter] = None,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        trusted_proxies: Optional[Sequence[str]] = None,
    ):
        super().__init__(app)
        settings = get_settings()
        self.limiter = limiter or get_rate_limiter()
        self.max_requests = max_requests or settings.rate_limit_max_requests
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self.trusted_proxies = tuple(
            trusted_proxies if trusted_proxies is not None else settings.trusted_proxy_hosts
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        key = f"ratelimit:ip:{client_address(request, self.trusted_proxies)}"
        allowed, remaining, reset = self.limiter.hit(key, self.max_requests, self.window_seconds)

        if not allowed:
            retry_after = max(0, reset - int(time.time()))
            logger.warning(f"Rate limit exceeded for {key}")
            return JSONResponse(
                status_code=429,
                content={"error": {"message": RATE_LIMIT_MESSAGE, "status": 429}},
                headers={
                    "X-RateLimit-Limit": str(self.max_requests),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset),
                    "Retry-After": str(retry_after),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)

        return response
