"""
Readiness checks for the file proxy.

Liveness (``/health``) is a constant answer. Readiness (``/ready``) runs
every registered component check and reports the storage root as usable
or not, in the shape Kubernetes readiness probes expect.
"""

import asyncio
import os
import tempfile
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

CheckResult = bool | tuple[bool, str | None]
CheckFn = Callable[[], Awaitable[CheckResult]]


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Outcome of one component check."""

    name: str
    status: HealthStatus
    message: str | None = None
    latency_ms: float | None = None


class HealthResponse(BaseModel):
    """Body of ``/ready``."""

    status: HealthStatus
    service: str
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    components: list[ComponentHealth] = Field(default_factory=list)
    uptime_seconds: float = 0.0


def _overall(components: list[ComponentHealth]) -> HealthStatus:
    statuses = {c.status for c in components}
    if statuses <= {HealthStatus.HEALTHY}:
        return HealthStatus.HEALTHY
    if statuses == {HealthStatus.UNHEALTHY}:
        return HealthStatus.UNHEALTHY
    return HealthStatus.DEGRADED


class HealthChecker:
    """Registry of named async checks, run concurrently on demand.

    A check returns ``True``/``False`` or ``(ok, message)``. A check that
    raises counts as unhealthy with the exception text as message.
    """

    def __init__(self, service_name: str, version: str = "1.0.0"):
        self.service_name = service_name
        self.version = version
        self.started_at = datetime.now(UTC)
        self._checks: dict[str, CheckFn] = {}

    def register_check(self, name: str, check_fn: CheckFn) -> None:
        self._checks[name] = check_fn

    async def _run_check(self, name: str, check_fn: CheckFn) -> ComponentHealth:
        loop = asyncio.get_running_loop()
        start = loop.time()
        message = None
        try:
            result = await check_fn()
            ok, message = result if isinstance(result, tuple) else (result, None)
        except Exception as e:
            ok, message = False, str(e)

        return ComponentHealth(
            name=name,
            status=HealthStatus.HEALTHY if ok else HealthStatus.UNHEALTHY,
            message=message,
            latency_ms=round((loop.time() - start) * 1000, 2),
        )

    async def check_health(self) -> HealthResponse:
        components = list(await asyncio.gather(*(self._run_check(n, fn) for n, fn in self._checks.items())))
        return HealthResponse(
            status=_overall(components),
            service=self.service_name,
            version=self.version,
            components=components,
            uptime_seconds=round((datetime.now(UTC) - self.started_at).total_seconds(), 2),
        )


def storage_check(root: str | Path) -> CheckFn:
    """Build a check that the storage root exists and accepts writes."""
    root = Path(root)

    async def check() -> tuple[bool, str | None]:
        if not root.is_dir():
            return False, f"{root} does not exist"

        def probe() -> None:
            with tempfile.NamedTemporaryFile(dir=root, prefix=".health-", suffix=".tmp"):
                pass

        try:
            await asyncio.to_thread(probe)
        except OSError as e:
            return False, f"{root} is not writable: {e.strerror or e}"
        return True, "writable"

    return check


def free_space_check(root: str | Path, min_free_mb: int = 100) -> CheckFn:
    """Build a check that the storage filesystem has at least ``min_free_mb`` free."""
    root = Path(root)

    async def check() -> tuple[bool, str | None]:
        stats = os.statvfs(root)
        free_mb = stats.f_bavail * stats.f_frsize / (1024 * 1024)
        return free_mb >= min_free_mb, f"{free_mb:.0f} MB free"

    return check
