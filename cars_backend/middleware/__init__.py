"""
Middleware Package
==================

Starlette middleware for rate limiting, security headers and request logging.
"""

from .rate_limit import RateLimitMiddleware, RateLimiter, get_rate_limiter
from .request_log import RequestLoggingMiddleware
from .security import SecurityHeadersMiddleware

__all__ = [
    "RateLimitMiddleware",
    "RateLimiter",
    "get_rate_limiter",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
