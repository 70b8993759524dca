"""Read-only operational view of the rate limiter.

Every route here requires an operator bearer token and an allowlisted
source IP. The events feed carries other actors' IPs and user ids.
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from safego_shield.dependencies import get_audit_sink, get_limiter, require_operator
from safego_shield.exceptions import ServiceUnavailableError
from safego_shield.models.ratelimit import AttackLogEntry, AttackLogResponse, RateLimitStatsResponse

router = APIRouter(
    prefix="/api/v1/security/rate-limit",
    tags=["security"],
    dependencies=[Depends(require_operator)],
)


@router.get("/stats", response_model=RateLimitStatsResponse)
async def rate_limit_stats(limiter=Depends(get_limiter)) -> RateLimitStatsResponse:
    stats = limiter.stats()
    return RateLimitStatsResponse(
        activeWindows=stats.active_windows,
        blockedActors=stats.blocked_actors,
        byCategory=stats.by_category,
    )


@router.get("/events", response_model=AttackLogResponse)
async def rate_limit_events(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of records"),
    sink=Depends(get_audit_sink),
) -> AttackLogResponse:
    if sink is None:
        raise ServiceUnavailableError("Audit trail is disabled")

    records = await sink.recent_attacks(limit)
    return AttackLogResponse(events=[AttackLogEntry(**asdict(r)) for r in records])
