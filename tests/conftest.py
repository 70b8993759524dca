"""Shared test fixtures for SafeGo API Shield."""

from __future__ import annotations

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from safego_shield.config import Settings
from safego_shield.ratelimit.categories import POLICIES, Category, CategoryPolicy
from safego_shield.ratelimit.engine import RateLimiter
from safego_shield.ratelimit.store import WindowStore

T0 = 1_700_000_000_000
OPERATOR_TOKEN = "test-operator-token"
OPERATOR_HEADERS = {"Authorization": f"Bearer {OPERATOR_TOKEN}"}


class FakeClock:
    """Deterministic millisecond clock."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def small_policies(**overrides: CategoryPolicy) -> dict[Category, CategoryPolicy]:
    """POLICIES with selected categories replaced, keyed by category value."""
    policies = dict(POLICIES)
    for name, policy in overrides.items():
        policies[Category(name)] = policy
    return policies


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> WindowStore:
    return WindowStore(shards=8)


@pytest.fixture
def limiter(store: WindowStore, clock: FakeClock) -> RateLimiter:
    """Limiter with a tiny payment quota: 3 per minute, 15 minute block."""
    return RateLimiter(
        store=store,
        clock=clock,
        policies=small_policies(
            payment=CategoryPolicy(3, 60_000, 900_000, "Too many payment requests"),
        ),
    )


@pytest.fixture
def tmp_settings(tmp_path: Path) -> Settings:
    """Settings pointing to tmp_path for all data files."""
    return Settings(
        audit_enabled=True,
        audit_db_path=tmp_path / "audit.db",
        trust_proxy_headers=True,
        sweep_interval_seconds=60,
        lock_shards=16,
        operator_tokens=OPERATOR_TOKEN,
        log_level="WARNING",
    )


@pytest.fixture
async def shield_app(tmp_settings: Settings, clock: FakeClock):
    """The real FastAPI app with test settings, inside its lifespan."""
    from safego_shield.main import create_app

    app = create_app(settings=tmp_settings, clock=clock)

    async with app.router.lifespan_context(app):
        yield app


@pytest.fixture
async def app_client(shield_app):
    transport = ASGITransport(app=shield_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
