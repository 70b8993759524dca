"""Collaborators the rate limiter reports to."""

from safego_shield.services.audit import (
    AttackLogRecord,
    AuditDispatcher,
    AuditEvent,
    AuditEventRecord,
    AuditSink,
    AuditSinkError,
)
from safego_shield.services.audit_store import SqliteAuditSink

__all__ = [
    "AttackLogRecord",
    "AuditDispatcher",
    "AuditEvent",
    "AuditEventRecord",
    "AuditSink",
    "AuditSinkError",
    "SqliteAuditSink",
]
