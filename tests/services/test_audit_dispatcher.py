"""Tests for AuditDispatcher."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from safego_shield.ratelimit.actor import ActorIdentity
from safego_shield.ratelimit.categories import Category
from safego_shield.ratelimit.engine import RateLimited, RateLimiter
from safego_shield.services.audit import (
    AttackLogRecord,
    AuditDispatcher,
    AuditEvent,
    AuditEventRecord,
    AuditSinkError,
    build_attack_record,
    build_audit_record,
)
from tests.conftest import T0


@pytest.fixture
def sink():
    mock = AsyncMock()
    mock.record_attack = AsyncMock()
    mock.record_audit_event = AsyncMock()
    return mock


@pytest.fixture
def event() -> AuditEvent:
    return AuditEvent(
        category="payment",
        actor_key="user:42",
        actor=ActorIdentity(ip="10.0.0.9", user_id="42", role="driver", email="d@example.com"),
        path="/api/payments/charge",
        method="POST",
        reason="exceeded 11/10 in window",
        timestamp_ms=T0,
    )


# -- Record Mapping ------------------------------------------------------------


def test_attack_record(event: AuditEvent):
    record = build_attack_record(event)

    assert record.type == "rate_limit_exceeded"
    assert record.sourceIp == "10.0.0.9"
    assert record.userId == "42"
    assert record.userType == "driver"
    assert record.requestPath == "/api/payments/charge"
    assert record.requestMethod == "POST"
    assert "exceeded 11/10 in window" in record.detectionReason
    assert record.detectionDetails["category"] == "payment"
    assert record.detectionDetails["timestamp"].startswith("2023-11-14T22:13:20")
    assert record.blocked is True


def test_audit_record(event: AuditEvent):
    record = build_audit_record(event)

    assert record.actorId == "42"
    assert record.actorEmail == "d@example.com"
    assert record.actorRole == "driver"
    assert record.ipAddress == "10.0.0.9"
    assert record.actionType == "RATE_LIMIT_EXCEEDED"
    assert record.entityType == "security"
    assert record.success is False
    assert record.metadata["actorKey"] == "user:42"


def test_anonymous_audit_record(event: AuditEvent):
    anon = replace(event, actor=ActorIdentity(ip="10.0.0.9"))
    record = build_audit_record(anon)

    assert record.actorId == "anonymous"
    assert record.actorRole == "anonymous"
    assert record.actorEmail is None


# -- Delivery ------------------------------------------------------------------


async def test_emit_delivers_both_records(sink, event: AuditEvent):
    dispatcher = AuditDispatcher(sink)
    dispatcher.bind()

    dispatcher.emit(event)
    await dispatcher.drain()

    sink.record_attack.assert_awaited_once()
    sink.record_audit_event.assert_awaited_once()
    assert isinstance(sink.record_attack.await_args.args[0], AttackLogRecord)
    assert isinstance(sink.record_audit_event.await_args.args[0], AuditEventRecord)


async def test_emit_does_not_await_sink(sink, event: AuditEvent):
    """emit returns before the sink is called."""
    dispatcher = AuditDispatcher(sink)
    dispatcher.bind()

    dispatcher.emit(event)
    sink.record_attack.assert_not_awaited()

    await dispatcher.drain()
    sink.record_attack.assert_awaited_once()


async def test_emit_binds_to_running_loop_lazily(sink, event: AuditEvent):
    dispatcher = AuditDispatcher(sink)

    dispatcher.emit(event)
    await dispatcher.drain()

    sink.record_attack.assert_awaited_once()


async def test_failing_attack_log_still_writes_audit_event(sink, event: AuditEvent, caplog):
    sink.record_attack.side_effect = AuditSinkError("db locked")
    dispatcher = AuditDispatcher(sink)
    dispatcher.bind()

    with caplog.at_level(logging.WARNING, logger="safego_shield.services.audit"):
        dispatcher.emit(event)
        await dispatcher.drain()

    sink.record_audit_event.assert_awaited_once()
    assert "Failed to log rate limit attack" in caplog.text


async def test_emit_from_worker_thread(sink, event: AuditEvent):
    dispatcher = AuditDispatcher(sink)
    dispatcher.bind()

    await asyncio.get_running_loop().run_in_executor(None, dispatcher.emit, event)

    for _ in range(100):
        if sink.record_audit_event.await_count:
            break
        await asyncio.sleep(0.01)

    sink.record_attack.assert_awaited_once()
    sink.record_audit_event.assert_awaited_once()


async def test_drain_waits_for_worker_thread_deliveries(sink, event: AuditEvent):
    async def slow_write(_record):
        await asyncio.sleep(0.05)

    sink.record_attack.side_effect = slow_write
    dispatcher = AuditDispatcher(sink)
    dispatcher.bind()

    await asyncio.to_thread(dispatcher.emit, event)
    await dispatcher.drain()

    sink.record_attack.assert_awaited_once()
    sink.record_audit_event.assert_awaited_once()


def test_emit_without_loop_drops_event(sink, event: AuditEvent, caplog):
    dispatcher = AuditDispatcher(sink)

    with caplog.at_level(logging.WARNING, logger="safego_shield.services.audit"):
        dispatcher.emit(event)

    sink.record_attack.assert_not_called()
    assert "dropping event" in caplog.text


async def test_no_sink_is_noop(event: AuditEvent):
    dispatcher = AuditDispatcher(None)
    dispatcher.emit(event)
    await dispatcher.drain()


async def test_sink_failure_does_not_change_decision(sink, limiter: RateLimiter):
    sink.record_attack.side_effect = RuntimeError("network down")
    sink.record_audit_event.side_effect = RuntimeError("network down")
    dispatcher = AuditDispatcher(sink)
    dispatcher.bind()
    limiter.set_violation_handler(dispatcher.emit)

    for i in range(3):
        limiter.admit(Category.PAYMENT, "user:1", now=T0 + i)
    decision = limiter.admit(Category.PAYMENT, "user:1", now=T0 + 3)
    await dispatcher.drain()

    assert isinstance(decision, RateLimited)
    sink.record_attack.assert_awaited_once()
