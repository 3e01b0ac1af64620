"""
Global Rate Limiter Middleware
Implements sliding window rate limiting per client IP address
"""

import threading
import time
from collections import defaultdict, deque

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from shared.errors import APIError, ErrorCode


class RateLimitRule:
    """Requests allowed per window"""

    def __init__(self, requests: int, window_seconds: int):
        """
        Args:
            requests: Maximum number of requests allowed
            window_seconds: Time window in seconds
        """
        self.requests = requests
        self.window_seconds = window_seconds


class RateLimiter:
    """
    Sliding window rate limiter keyed by client
    """

    def __init__(self, rule: RateLimitRule, clock=time.monotonic):
        """
        Args:
            rule: Limit applied to every client
            clock: Time source, seconds
        """
        self.requests: dict[str, deque] = defaultdict(deque)
        self.lock = threading.Lock()
        self.rule = rule
        self.clock = clock
        self._last_cleanup = clock()

    def _cleanup_old_requests(self, now: float) -> None:
        """Drop clients with no timestamps inside the window"""
        cutoff = now - self.rule.window_seconds
        for key in list(self.requests.keys()):
            timestamps = self.requests[key]
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()
            if not timestamps:
                del self.requests[key]
        self._last_cleanup = now

    def check_rate_limit(self, identifier: str) -> tuple[bool, dict]:
        """
        Record a request and check it against the rule

        Args:
            identifier: Client identifier (IP address)

        Returns:
            Tuple of (allowed, limit_info)
        """
        rule = self.rule

        with self.lock:
            now = self.clock()
            if now - self._last_cleanup > 60:
                self._cleanup_old_requests(now)

            timestamps = self.requests[identifier]
            cutoff = now - rule.window_seconds
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()

            if len(timestamps) >= rule.requests:
                retry_after = int(timestamps[0] + rule.window_seconds - now) + 1
                return False, {
                    "limit": rule.requests,
                    "window_seconds": rule.window_seconds,
                    "retry_after": retry_after,
                }

            timestamps.append(now)
            return True, {
                "limit": rule.requests,
                "window_seconds": rule.window_seconds,
                "remaining": rule.requests - len(timestamps),
            }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for rate limiting"""

    def __init__(self, app, limiter: RateLimiter, exempt_paths: tuple[str, ...] = ("/health", "/ready")):
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = exempt_paths

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        allowed, limit_info = self.limiter.check_rate_limit(client_ip)

        if not allowed:
            retry_after = limit_info["retry_after"]
            error = APIError(
                error_code=ErrorCode.RATE_LIMIT_EXCEEDED.value,
                message=f"Rate limit exceeded. Try again in {retry_after} seconds.",
                details={"limit": limit_info["limit"], "window_seconds": limit_info["window_seconds"]},
            )
            return JSONResponse(
                status_code=429,
                content=error.model_dump(),
                headers={
                    "X-RateLimit-Limit": str(limit_info["limit"]),
                    "X-RateLimit-Window": str(limit_info["window_seconds"]),
                    "X-RateLimit-Remaining": "0",
                    "Retry-After": str(retry_after),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit_info["limit"])
        response.headers["X-RateLimit-Remaining"] = str(limit_info["remaining"])
        response.headers["X-RateLimit-Window"] = str(limit_info["window_seconds"])
        return response
