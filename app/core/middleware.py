"""
HTTP middleware — security headers and API rate limiting.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.utils.response import error_response

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-DNS-Prefetch-Control": "off",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
}

# Provider callbacks arrive from a handful of provider IPs and must not be throttled
EXEMPT_PREFIXES = ["/api/payments/webhook/"]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle /api/ requests with the limiter held on app.state.rate_limiter."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if request.method == "OPTIONS" or not path.startswith("/api/"):
            return await call_next(request)
        if any(path.startswith(p) for p in EXEMPT_PREFIXES):
            return await call_next(request)

        limiter = getattr(request.app.state, "rate_limiter", None)
        if limiter is None:
            return await call_next(request)

        client = request.client.host if request.client else "127.0.0.1"
        key = f"{client}:{path}"
        if not limiter.hit(key):
            logger.warning("Rate limit exceeded for %s", key)
            return JSONResponse(
                status_code=429,
                content=error_response(message="Rate limit exceeded", code="RATE_LIMITED"),
                headers={"Retry-After": str(limiter.retry_after(key))},
            )
        return await call_next(request)
