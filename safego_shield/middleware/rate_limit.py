"""Per-category, per-actor rate limiter middleware."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from safego_shield.ratelimit.actor import ActorIdentity, resolve_client_ip
from safego_shield.ratelimit.categories import Category, classify
from safego_shield.ratelimit.engine import RateLimiter, RateLimitMetadata

_SKIP_PATHS = {"/health", "/ready"}


def rate_limit_headers(meta: RateLimitMetadata) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(meta.limit),
        "X-RateLimit-Remaining": str(meta.remaining),
        "X-RateLimit-Reset": str(meta.reset_at_epoch_seconds),
        "X-RateLimit-Category": meta.category,
    }
    if meta.retry_after_seconds is not None:
        headers["Retry-After"] = str(meta.retry_after_seconds)
    return headers


def rejection_response(meta: RateLimitMetadata) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": meta.error,
            "message": meta.message,
            "details": {
                "category": meta.category,
                "retryAfter": meta.retry_after_seconds,
            },
        },
        headers=rate_limit_headers(meta),
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Classify each request, consult the limiter, and reject with 429.

    Pass ``category`` to pin every request through this middleware to one
    category instead of classifying by path.

    NOTE: In-memory state - only correct with 1 Uvicorn worker.
    """

    def __init__(self, app, limiter: RateLimiter, category: Category | None = None):
        super().__init__(app)
        self._limiter = limiter
        self._category = category

    async def dispatch(self, request: Request, call_next) -> Response:
        # Skip rate limit for health endpoints
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        actor = getattr(request.state, "actor", None)
        if actor is None:
            client_host = request.client.host if request.client else None
            actor = ActorIdentity(ip=resolve_client_ip(request.headers, client_host, trust_proxy=False))
        category = classify(request.url.path, request.method, self._category)
        decision = self._limiter.admit(
            category,
            actor.key,
            actor=actor,
            path=request.url.path,
            method=request.method,
        )
        meta = decision.to_metadata()
        request.state.rate_limit = meta

        if meta.rejected:
            return rejection_response(meta)

        response = await call_next(request)
        response.headers.update(rate_limit_headers(meta))
        return response
