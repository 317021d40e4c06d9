"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems, plus the
Prometheus scrape endpoint.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from footfall.config import get_settings
from footfall.database.connection import check_database_health

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Database connectivity
    - Upstream token configured
    - Background scheduler running
    """
    settings = get_settings()
    checks: Dict[str, Any] = {}
    overall_status = "healthy"

    db_health = await check_database_health(getattr(request.app.state, "session_factory", None))
    checks["database"] = db_health
    if db_health.get("status") != "healthy":
        overall_status = "unhealthy"

    client = getattr(request.app.state, "upstream_client", None)
    token_configured = bool(client and client.is_configured)
    checks["upstream"] = {"token_configured": token_configured}
    if not token_configured and overall_status == "healthy":
        overall_status = "degraded"

    scheduler = getattr(request.app.state, "scheduler", None)
    checks["scheduler"] = {
        "running": bool(scheduler and scheduler.is_running),
        "pending": scheduler.pending if scheduler else 0,
    }

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 while the process is running"""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """Returns 200 once the database answers"""
    db_health = await check_database_health(getattr(request.app.state, "session_factory", None))
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}


@router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
