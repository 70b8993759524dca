"""Health and readiness endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from safego_shield.models.health import HealthResponse, ReadyResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    from safego_shield.main import get_uptime

    sweeper = request.app.state.sweeper
    status = "ok" if sweeper.running else "degraded"

    return HealthResponse(
        status=status,
        version=request.app.state.version,
        uptime=get_uptime(),
        sweeperRunning=sweeper.running,
    )


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    settings = request.app.state.settings

    issues = []
    if not request.app.state.sweeper.running:
        issues.append("rate limit sweeper is not running")
    if settings.audit_enabled and getattr(request.app.state, "audit_sink", None) is None:
        issues.append(f"audit store not available: {settings.audit_db_path}")

    if issues:
        body = ReadyResponse(ready=False, reason="; ".join(issues))
        return JSONResponse(status_code=503, content=body.model_dump())

    return JSONResponse(status_code=200, content=ReadyResponse(ready=True).model_dump())
