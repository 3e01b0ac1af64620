"""
Health check router.

Provides /health and /ready endpoints for container orchestration.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from shared.health import HealthStatus

router = APIRouter(tags=["Health"])


@router.get("/health")
def health() -> dict[str, Any]:
    """Liveness check."""
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z")}


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    """Readiness check: storage root usable. 503 when any component is unhealthy."""
    report = await request.app.state.health.check_health()
    status_code = 200 if report.status == HealthStatus.HEALTHY else 503
    return JSONResponse(status_code=status_code, content=report.model_dump(mode="json"))
