"""Rate limiter operational models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class RateLimitStatsResponse(BaseModel):
    activeWindows: int
    blockedActors: int
    byCategory: dict[str, int]


class AttackLogEntry(BaseModel):
    type: str
    sourceIp: str
    userId: str | None = None
    userType: str | None = None
    requestPath: str
    requestMethod: str
    detectionReason: str
    detectionDetails: dict[str, Any]
    blocked: bool


class AttackLogResponse(BaseModel):
    events: list[AttackLogEntry]
