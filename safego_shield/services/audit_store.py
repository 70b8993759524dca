"""SQLite-backed security audit trail for rate limit violations."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import aiosqlite

from safego_shield.services.audit import AttackLogRecord, AuditEventRecord, AuditSinkError

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS security_attack_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL,
    source_ip TEXT NOT NULL,
    user_id TEXT,
    user_type TEXT,
    request_path TEXT NOT NULL,
    request_method TEXT NOT NULL,
    detection_reason TEXT NOT NULL,
    detection_details TEXT NOT NULL,
    blocked INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_attack_logs_created ON security_attack_logs(created_at);
CREATE TABLE IF NOT EXISTS audit_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    actor_id TEXT NOT NULL,
    actor_email TEXT,
    actor_role TEXT NOT NULL,
    ip_address TEXT NOT NULL,
    action_type TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    description TEXT NOT NULL,
    metadata TEXT NOT NULL,
    success INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


class SqliteAuditSink:
    """Persists attack logs and generic audit events in SQLite."""

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def start(self) -> None:
        """Open the DB and create tables."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        logger.info("SqliteAuditSink started (%s)", self._db_path)

    async def stop(self) -> None:
        """Close DB connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise AuditSinkError("SqliteAuditSink not started")
        return self._db

    async def record_attack(self, record: AttackLogRecord) -> None:
        db = self._conn()
        try:
            await db.execute(
                "INSERT INTO security_attack_logs (type, source_ip, user_id, user_type, "
                "request_path, request_method, detection_reason, detection_details, blocked) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.type,
                    record.sourceIp,
                    record.userId,
                    record.userType,
                    record.requestPath,
                    record.requestMethod,
                    record.detectionReason,
                    json.dumps(record.detectionDetails),
                    int(record.blocked),
                ),
            )
            await db.commit()
        except aiosqlite.Error as exc:
            raise AuditSinkError(f"Failed to insert attack log: {exc}") from exc

    async def record_audit_event(self, record: AuditEventRecord) -> None:
        db = self._conn()
        try:
            await db.execute(
                "INSERT INTO audit_events (actor_id, actor_email, actor_role, ip_address, "
                "action_type, entity_type, description, metadata, success) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.actorId,
                    record.actorEmail,
                    record.actorRole,
                    record.ipAddress,
                    record.actionType,
                    record.entityType,
                    record.description,
                    json.dumps(record.metadata),
                    int(record.success),
                ),
            )
            await db.commit()
        except aiosqlite.Error as exc:
            raise AuditSinkError(f"Failed to insert audit event: {exc}") from exc

    async def recent_attacks(self, limit: int = 50) -> list[AttackLogRecord]:
        """Newest attack log records first."""
        db = self._conn()
        async with db.execute(
            "SELECT type, source_ip, user_id, user_type, request_path, request_method, "
            "detection_reason, detection_details, blocked "
            "FROM security_attack_logs ORDER BY id DESC LIMIT ?",
            (limit,),
        ) as cur:
            rows = await cur.fetchall()

        return [
            AttackLogRecord(
                type=row[0],
                sourceIp=row[1],
                userId=row[2],
                userType=row[3],
                requestPath=row[4],
                requestMethod=row[5],
                detectionReason=row[6],
                detectionDetails=json.loads(row[7]),
                blocked=bool(row[8]),
            )
            for row in rows
        ]

    async def count_audit_events(self, action_type: str = "RATE_LIMIT_EXCEEDED") -> int:
        db = self._conn()
        async with db.execute(
            "SELECT COUNT(*) FROM audit_events WHERE action_type = ?", (action_type,)
        ) as cur:
            row = await cur.fetchone()
        return row[0] if row else 0
