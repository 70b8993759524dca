"""Fixed-window limiter decision engine with escalation to temporary blocks."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, ClassVar

from safego_shield.ratelimit.actor import ActorIdentity
from safego_shield.ratelimit.categories import POLICIES, Category, CategoryPolicy
from safego_shield.ratelimit.stats import RateLimitStats, collect_stats
from safego_shield.ratelimit.store import WindowEntry, WindowStore, make_key
from safego_shield.services.audit import AuditEvent

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def _ceil_seconds(ms: int) -> int:
    return math.ceil(ms / 1000)


def _format_duration(ms: int) -> str:
    seconds = max(1, _ceil_seconds(ms))
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"


@dataclass(frozen=True)
class RateLimitMetadata:
    """What the HTTP layer needs to render headers and rejection bodies."""

    limit: int
    remaining: int
    reset_at_epoch_seconds: int
    category: str
    rejected: bool
    retry_after_seconds: int | None = None
    message: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class Decision:
    category: Category
    limit: int
    remaining: int
    reset_at_ms: int

    rejected: ClassVar[bool] = False
    error_code: ClassVar[str | None] = None

    @property
    def retry_after_seconds(self) -> int | None:
        return None

    @property
    def message(self) -> str | None:
        return None

    def to_metadata(self) -> RateLimitMetadata:
        return RateLimitMetadata(
            limit=self.limit,
            remaining=self.remaining,
            reset_at_epoch_seconds=_ceil_seconds(self.reset_at_ms),
            category=self.category.value,
            rejected=self.rejected,
            retry_after_seconds=self.retry_after_seconds,
            message=self.message,
            error=self.error_code,
        )


@dataclass(frozen=True)
class Allowed(Decision):
    pass


@dataclass(frozen=True)
class _Rejection(Decision):
    retry_after_ms: int = 0
    description: str = ""

    rejected: ClassVar[bool] = True

    @property
    def retry_after_seconds(self) -> int:
        return max(1, _ceil_seconds(self.retry_after_ms))


@dataclass(frozen=True)
class Blocked(_Rejection):
    """Actor is inside a penalty block from an earlier violation."""

    error_code: ClassVar[str] = "BLOCKED"

    @property
    def message(self) -> str:
        return f"{self.description}. Blocked, try again in {_format_duration(self.retry_after_ms)}."


@dataclass(frozen=True)
class RateLimited(_Rejection):
    """Actor exceeded the quota in the current window and is now blocked."""

    error_code: ClassVar[str] = "RATE_LIMITED"

    @property
    def message(self) -> str:
        return f"{self.description}. Blocked for {_format_duration(self.retry_after_ms)}."


class RateLimiter:
    """Per-category, per-actor fixed-window rate limiter.

    ``admit`` never performs I/O. Violations are handed to ``on_violation``
    (normally an ``AuditDispatcher.emit``), which must not block.
    """

    def __init__(
        self,
        store: WindowStore | None = None,
        clock: Clock | None = None,
        on_violation: Callable[[AuditEvent], None] | None = None,
        policies: dict[Category, CategoryPolicy] | None = None,
    ):
        self._store = store if store is not None else WindowStore()
        self._clock = clock or system_clock
        self._on_violation = on_violation
        self._policies = policies or POLICIES

    @property
    def store(self) -> WindowStore:
        return self._store

    @property
    def clock(self) -> Clock:
        return self._clock

    def policy(self, category: Category) -> CategoryPolicy:
        return self._policies.get(category, self._policies[Category.DEFAULT])

    def set_violation_handler(self, handler: Callable[[AuditEvent], None] | None) -> None:
        self._on_violation = handler

    def admit(
        self,
        category: Category,
        actor_key: str,
        now: int | None = None,
        *,
        actor: ActorIdentity | None = None,
        path: str = "",
        method: str = "",
    ) -> Decision:
        """Count one request for ``actor_key`` in ``category`` and decide."""
        if now is None:
            now = self._clock()
        policy = self.policy(category)
        key = make_key(category.value, actor_key)

        with self._store.lock_for(key):
            entry = self._store.get(key)

            if entry is not None and entry.is_blocked(now):
                return Blocked(
                    category=category,
                    limit=policy.max_requests,
                    remaining=0,
                    reset_at_ms=entry.blocked_until,
                    retry_after_ms=entry.blocked_until - now,
                    description=policy.description,
                )

            # A stale window, or a block that has run out, starts fresh
            if (
                entry is None
                or now - entry.window_start > policy.window_ms
                or entry.blocked_until is not None
            ):
                entry = WindowEntry(count=0, window_start=now)

            entry.count += 1
            count = entry.count

            if count <= policy.max_requests:
                self._store.set(key, entry)
                return Allowed(
                    category=category,
                    limit=policy.max_requests,
                    remaining=policy.max_requests - count,
                    reset_at_ms=entry.window_start + policy.window_ms,
                )

            entry.blocked_until = now + policy.block_ms
            self._store.set(key, entry)
            blocked_until = entry.blocked_until

        reason = f"exceeded {count}/{policy.max_requests} in window"
        logger.warning(
            "Rate limit exceeded: category=%s actor=%s %s %s (%s)",
            category.value,
            actor_key,
            method,
            path,
            reason,
        )
        self._report(
            AuditEvent(
                category=category.value,
                actor_key=actor_key,
                actor=actor or ActorIdentity(),
                path=path,
                method=method,
                reason=reason,
                timestamp_ms=now,
            )
        )
        return RateLimited(
            category=category,
            limit=policy.max_requests,
            remaining=0,
            reset_at_ms=blocked_until,
            retry_after_ms=policy.block_ms,
            description=policy.description,
        )

    def stats(self, now: int | None = None) -> RateLimitStats:
        if now is None:
            now = self._clock()
        return collect_stats(self._store, now)

    def _report(self, event: AuditEvent) -> None:
        if self._on_violation is None:
            return
        try:
            self._on_violation(event)
        except Exception:
            logger.warning("Audit dispatch failed for %s", event.actor_key, exc_info=True)
