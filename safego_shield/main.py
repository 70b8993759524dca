"""FastAPI application factory with lifespan context manager."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from safego_shield.config import Settings
from safego_shield.exceptions import register_exception_handlers
from safego_shield.ratelimit.engine import Clock, RateLimiter
from safego_shield.ratelimit.store import WindowStore
from safego_shield.ratelimit.sweeper import SweeperService

logger = logging.getLogger(__name__)

_start_time: float = 0.0


def get_uptime() -> int:
    """Return process uptime in seconds."""
    return int(time.monotonic() - _start_time)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: start/stop audit store, dispatcher, sweeper."""
    global _start_time
    _start_time = time.monotonic()

    settings: Settings = app.state.settings

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    from safego_shield.services.audit import AuditDispatcher
    from safego_shield.services.audit_store import SqliteAuditSink

    # --- Audit trail (optional; limiter works without it) ---
    audit_sink = None
    if settings.audit_enabled:
        audit_sink = SqliteAuditSink(settings.audit_db_path)
        try:
            await audit_sink.start()
        except Exception:
            logger.warning("Audit store could not start (non-fatal)", exc_info=True)
            audit_sink = None
    app.state.audit_sink = audit_sink

    dispatcher = AuditDispatcher(audit_sink)
    dispatcher.bind()
    app.state.audit_dispatcher = dispatcher

    limiter: RateLimiter = app.state.limiter
    limiter.set_violation_handler(dispatcher.emit)

    if not app.state.operator_tokens:
        logger.warning("No operator tokens configured, security endpoints will reject all requests")

    sweeper: SweeperService = app.state.sweeper
    await sweeper.start()

    logger.info(
        "SafeGo API Shield started (audit=%s, %d lock shards)",
        "on" if audit_sink else "off",
        settings.lock_shards,
    )

    yield

    # --- Shutdown ---
    await sweeper.stop()
    limiter.set_violation_handler(None)
    await dispatcher.drain()
    if audit_sink:
        await audit_sink.stop()
    logger.info("SafeGo API Shield stopped")


def create_app(settings: Settings | None = None, clock: Clock | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    version = "1.0.0"
    try:
        version_file = Path(__file__).parent.parent / "VERSION"
        if version_file.exists():
            version = version_file.read_text().strip()
    except OSError:
        pass

    from safego_shield.models.error import ErrorResponse

    app = FastAPI(
        title="SafeGo API Shield",
        version=version,
        summary="Per-category rate limiting and abuse blocking for the SafeGo marketplace API",
        lifespan=lifespan,
        responses={
            400: {"model": ErrorResponse},
            401: {"model": ErrorResponse},
            403: {"model": ErrorResponse},
            429: {"model": ErrorResponse},
            503: {"model": ErrorResponse},
        },
    )

    limiter = RateLimiter(store=WindowStore(shards=settings.lock_shards), clock=clock)

    app.state.settings = settings
    app.state.version = version
    app.state.limiter = limiter
    app.state.operator_tokens = settings.resolve_operator_tokens()
    app.state.operator_networks = settings.parse_operator_allowlist()
    app.state.sweeper = SweeperService(limiter, interval_seconds=settings.sweep_interval_seconds)

    # Register exception handlers
    register_exception_handlers(app)

    from safego_shield.middleware.identity import IdentityMiddleware
    from safego_shield.middleware.rate_limit import RateLimitMiddleware

    # Middleware is applied in reverse order (last added = first executed)
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(
        IdentityMiddleware,
        user_id_header=settings.user_id_header,
        user_role_header=settings.user_role_header,
        user_email_header=settings.user_email_header,
        trust_proxy=settings.trust_proxy_headers,
    )

    # Register routers
    from safego_shield.routers import health, security

    app.include_router(health.router)
    app.include_router(security.router)

    return app


# Default app instance for uvicorn
app = create_app()
