"""
Request Logging Middleware
Logs every request and records /api/files accesses in the access_logs table
"""

import asyncio
import logging
import time
from datetime import UTC, datetime

import httpx
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from shared.auth.supabase import AccessBackend

logger = logging.getLogger("file_proxy.access")

AUDITED_PREFIX = "/api/files"


class AccessLogRecorder:
    """Fire-and-forget writer of access log rows"""

    def __init__(self, access: AccessBackend):
        self.access = access
        self._pending: set[asyncio.Task] = set()

    def submit(self, entry: dict) -> None:
        """Schedule a write without waiting for it"""
        task = asyncio.create_task(self._store(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _store(self, entry: dict) -> None:
        try:
            await self.access.record_access(entry)
        except Exception as e:
            logger.error("Failed to store access log: %s", e, exc_info=not isinstance(e, httpx.HTTPError))

    async def drain(self) -> None:
        """Wait for in-flight writes (called on shutdown)"""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request"""

    def __init__(self, app, recorder: AccessLogRecorder | None = None):
        """
        Args:
            app: FastAPI application
            recorder: Receives /api/files access rows, None to disable persistence
        """
        super().__init__(app)
        self.recorder = recorder

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)

        client_ip = request.client.host if request.client else None
        user_agent = request.headers.get("user-agent")
        user_id = getattr(request.state, "user_id", None)

        logger.info(
            "%s %s %d %dms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "client_ip": client_ip,
                "user_agent": user_agent,
                "user_id": user_id,
            },
        )

        if self.recorder is not None and request.url.path.startswith(AUDITED_PREFIX):
            self.recorder.submit(
                {
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "ip_address": client_ip,
                    "user_agent": user_agent,
                    "user_id": user_id,
                    "created_at": datetime.now(UTC).isoformat(),
                }
            )

        return response
