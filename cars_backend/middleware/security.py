"""
Security Middleware
====================

Adds security headers to API responses.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

HSTS_MAX_AGE = 15552000  # 180 days

# interactive docs pull their scripts and styles from a CDN
DOCS_PATHS = ("/docs", "/redoc")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Headers added:
    - Strict-Transport-Security (HTTPS or proxied HTTPS only)
    - X-Content-Type-Options
    - X-Frame-Options
    - Referrer-Policy
    - Content-Security-Policy (not on the interactive docs pages)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"

        is_https = request.url.scheme == "https" or request.headers.get("x-forwarded-proto") == "https"
        if is_https:
            response.headers["Strict-Transport-Security"] = f"max-age={HSTS_MAX_AGE}; includeSubDomains"

        if not request.url.path.startswith(DOCS_PATHS):
            # JSON-only API: nothing to load, nothing to frame
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        return response
