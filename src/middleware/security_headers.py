"""
Security Headers Middleware
Adds security-related HTTP headers to all responses
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

CSP_DIRECTIVES = (
    "default-src 'self'",
    "style-src 'self' 'unsafe-inline'",
    "frame-ancestors 'none'",
    "base-uri 'self'",
    "object-src 'none'",
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    def __init__(self, app, enable_hsts: bool = False):
        """
        Args:
            app: FastAPI application
            enable_hsts: Enable HSTS header (only for HTTPS)
        """
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cross-Origin-Resource-Policy"] = "same-site"
        response.headers["Content-Security-Policy"] = "; ".join(CSP_DIRECTIVES)

        # Decrypted content must not land in shared caches
        response.headers["Cache-Control"] = "no-store"

        if self.enable_hsts and (
            request.url.scheme == "https" or request.headers.get("x-forwarded-proto") == "https"
        ):
            response.headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"

        if "server" in response.headers:
            del response.headers["server"]

        return response
