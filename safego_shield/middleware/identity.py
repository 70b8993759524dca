"""Resolve the rate-limited actor for each request."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from safego_shield.ratelimit.actor import ActorIdentity, resolve_client_ip


class IdentityMiddleware(BaseHTTPMiddleware):
    """Attach an ``ActorIdentity`` to ``request.state.actor``.

    Authentication happens upstream; the gateway forwards the verified user
    in headers. Missing identity never fails the request.
    """

    def __init__(
        self,
        app,
        user_id_header: str = "X-User-Id",
        user_role_header: str = "X-User-Role",
        user_email_header: str = "X-User-Email",
        trust_proxy: bool = True,
    ):
        super().__init__(app)
        self._user_id_header = user_id_header
        self._user_role_header = user_role_header
        self._user_email_header = user_email_header
        self._trust_proxy = trust_proxy

    async def dispatch(self, request: Request, call_next):
        request.state.actor = self.resolve(request)
        return await call_next(request)

    def resolve(self, request: Request) -> ActorIdentity:
        headers = request.headers
        client_host = request.client.host if request.client else None
        return ActorIdentity(
            ip=resolve_client_ip(headers, client_host, self._trust_proxy),
            user_id=headers.get(self._user_id_header, "").strip() or None,
            role=headers.get(self._user_role_header, "").strip() or None,
            email=headers.get(self._user_email_header, "").strip() or None,
        )
