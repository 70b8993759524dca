"""Audit events for limiter violations and their fire-and-forget delivery."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from safego_shield.ratelimit.actor import ActorIdentity

logger = logging.getLogger(__name__)


class AuditSinkError(Exception):
    """An audit sink could not persist a record."""


@dataclass(frozen=True)
class AuditEvent:
    category: str
    actor_key: str
    actor: ActorIdentity
    path: str
    method: str
    reason: str
    timestamp_ms: int

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_ms / 1000, tz=timezone.utc)


@dataclass
class AttackLogRecord:
    sourceIp: str
    requestPath: str
    requestMethod: str
    detectionReason: str
    detectionDetails: dict[str, Any]
    userId: str | None = None
    userType: str | None = None
    type: str = "rate_limit_exceeded"
    blocked: bool = True


@dataclass
class AuditEventRecord:
    actorId: str
    actorRole: str
    ipAddress: str
    description: str
    actorEmail: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    actionType: str = "RATE_LIMIT_EXCEEDED"
    entityType: str = "security"
    success: bool = False


def build_attack_record(event: AuditEvent) -> AttackLogRecord:
    return AttackLogRecord(
        sourceIp=event.actor.ip,
        userId=event.actor.user_id,
        userType=event.actor.role,
        requestPath=event.path,
        requestMethod=event.method,
        detectionReason=f"Rate limit exceeded for {event.category}: {event.reason}",
        detectionDetails={
            "category": event.category,
            "timestamp": event.timestamp.isoformat(),
        },
    )


def build_audit_record(event: AuditEvent) -> AuditEventRecord:
    actor = event.actor
    return AuditEventRecord(
        actorId=actor.user_id or "anonymous",
        actorEmail=actor.email,
        actorRole=actor.role or "anonymous",
        ipAddress=actor.ip,
        description=f"Rate limit exceeded on {event.method} {event.path} ({event.category})",
        metadata={
            "category": event.category,
            "actorKey": event.actor_key,
            "reason": event.reason,
            "timestamp": event.timestamp.isoformat(),
        },
    )


class AuditSink(Protocol):
    """Destination for security audit records. Implementations may raise."""

    async def record_attack(self, record: AttackLogRecord) -> None: ...

    async def record_audit_event(self, record: AuditEventRecord) -> None: ...


class AuditDispatcher:
    """Schedules audit delivery on the event loop without awaiting it.

    ``emit`` is safe to call from the loop thread and from worker threads.
    Sink failures are logged here and never reach the caller.
    """

    def __init__(self, sink: AuditSink | None):
        self._sink = sink
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[asyncio.Task] = set()

    def bind(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Attach to ``loop`` (default: the running loop)."""
        self._loop = loop or asyncio.get_running_loop()

    def emit(self, event: AuditEvent) -> None:
        if self._sink is None:
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        loop = self._loop
        if loop is None and running is not None:
            self._loop = loop = running
        if loop is None or loop.is_closed():
            logger.warning("No event loop for audit delivery, dropping event for %s", event.actor_key)
            return

        if running is loop:
            self._schedule(event)
        else:
            loop.call_soon_threadsafe(self._schedule, event)

    def _schedule(self, event: AuditEvent) -> None:
        task = self._loop.create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every delivery handed to this dispatcher so far."""
        # Let hand-offs queued from worker threads register first
        await asyncio.sleep(0)
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, event: AuditEvent) -> None:
        # Two independent best-effort writes
        try:
            await self._sink.record_attack(build_attack_record(event))
        except Exception:
            logger.warning("Failed to log rate limit attack for %s", event.actor_key, exc_info=True)

        try:
            await self._sink.record_audit_event(build_audit_record(event))
        except Exception:
            logger.warning("Failed to write audit event for %s", event.actor_key, exc_info=True)
