"""Periodic eviction of expired blocks and stale windows."""

from __future__ import annotations

import asyncio
import logging

from safego_shield.ratelimit.categories import Category
from safego_shield.ratelimit.engine import RateLimiter
from safego_shield.ratelimit.store import WindowEntry, split_key

logger = logging.getLogger(__name__)

_STALE_WINDOW_FACTOR = 2


class SweeperService:
    """Delete window entries that can no longer influence a decision."""

    def __init__(self, limiter: RateLimiter, interval_seconds: float = 60.0):
        self._limiter = limiter
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_expired(self, key: str, entry: WindowEntry, now: int) -> bool:
        if entry.blocked_until is not None:
            return entry.blocked_until < now
        policy = self._limiter.policy(Category.parse(split_key(key)[0]))
        return now - entry.window_start > _STALE_WINDOW_FACTOR * policy.window_ms

    def sweep(self, now: int | None = None) -> int:
        """Run one eviction pass and return the number of deleted entries."""
        if now is None:
            now = self._limiter.clock()
        store = self._limiter.store
        removed = 0

        for key, snapshot in store.items():
            if not self.is_expired(key, snapshot, now):
                continue
            # Re-check under the key's lock; a request may have touched it
            with store.lock_for(key):
                current = store.get(key)
                if current is not None and self.is_expired(key, current, now):
                    store.delete(key)
                    removed += 1

        if removed:
            logger.debug("Swept %d rate limit entries (%d remain)", removed, len(store))
        return removed

    async def start(self) -> None:
        """Start sweeping in background."""
        self._task = asyncio.create_task(self._sweep_loop(), name="rate-limit-sweeper")
        logger.info("SweeperService started (interval=%ss)", self._interval)

    async def stop(self) -> None:
        """Stop sweeping."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("SweeperService stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Rate limit sweep failed")
