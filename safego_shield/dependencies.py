"""FastAPI dependency injection via Depends()."""

from __future__ import annotations

import ipaddress
from typing import TYPE_CHECKING, Callable

from fastapi import Request, Response

from safego_shield.exceptions import BlockedError, ForbiddenError, RateLimitedError, UnauthorizedError
from safego_shield.middleware.rate_limit import rate_limit_headers
from safego_shield.ratelimit.actor import ActorIdentity, resolve_client_ip
from safego_shield.ratelimit.categories import Category

if TYPE_CHECKING:
    from safego_shield.ratelimit.engine import RateLimiter
    from safego_shield.services.audit_store import SqliteAuditSink


def get_limiter(request: Request) -> RateLimiter:
    return request.app.state.limiter


def get_audit_sink(request: Request) -> SqliteAuditSink | None:
    return getattr(request.app.state, "audit_sink", None)


def get_actor(request: Request) -> ActorIdentity:
    actor = getattr(request.state, "actor", None)
    if actor is not None:
        return actor
    client_host = request.client.host if request.client else None
    return ActorIdentity(ip=resolve_client_ip(request.headers, client_host, trust_proxy=False))


def require_operator(request: Request) -> None:
    """Bearer token + IP allowlist gate for the security endpoints.

    An empty allowlist allows all sources; an empty token set rejects
    every request.
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer ") or auth[7:] not in request.app.state.operator_tokens:
        raise UnauthorizedError()

    networks = request.app.state.operator_networks
    if not networks:
        return
    client_ip = get_actor(request).ip
    try:
        addr = ipaddress.ip_address(client_ip)
    except ValueError:
        raise ForbiddenError(f"Source IP {client_ip} is not in the allowlist") from None
    if not any(addr in net for net in networks):
        raise ForbiddenError(f"Source IP {client_ip} is not in the allowlist")


def enforce_rate_limit(category: Category) -> Callable:
    """Route dependency that limits a route under a fixed category.

    Use on routers that are not already covered by ``RateLimitMiddleware``;
    stacking both would count each request twice.
    """

    def _dependency(request: Request, response: Response) -> None:
        actor = get_actor(request)
        decision = get_limiter(request).admit(
            category,
            actor.key,
            actor=actor,
            path=request.url.path,
            method=request.method,
        )
        meta = decision.to_metadata()
        if meta.rejected:
            error_cls = BlockedError if meta.error == BlockedError.code else RateLimitedError
            raise error_cls(
                meta.message,
                meta.category,
                meta.retry_after_seconds,
                headers=rate_limit_headers(meta),
            )
        response.headers.update(rate_limit_headers(meta))

    return _dependency
