"""Actor identity and client IP resolution."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Mapping

UNKNOWN_IP = "unknown"


@dataclass(frozen=True)
class ActorIdentity:
    """The subject being rate limited: an authenticated user or a client IP."""

    ip: str = UNKNOWN_IP
    user_id: str | None = None
    role: str | None = None
    email: str | None = None

    @property
    def key(self) -> str:
        if self.user_id:
            return f"user:{self.user_id}"
        return f"ip:{self.ip}"


def _valid_ip(raw: str | None) -> str | None:
    """Return the normalised IP string if ``raw`` parses, else None."""
    if not raw:
        return None
    try:
        return str(ipaddress.ip_address(raw.strip()))
    except ValueError:
        return None


def resolve_client_ip(
    headers: Mapping[str, str],
    client_host: str | None,
    trust_proxy: bool = True,
) -> str:
    """Best-effort client IP: X-Forwarded-For, then X-Real-IP, then socket.

    Proxy headers are only consulted when ``trust_proxy`` is set. Falls back
    to ``UNKNOWN_IP`` instead of failing the request.
    """
    if trust_proxy:
        forwarded = headers.get("x-forwarded-for", "")
        if forwarded:
            # First entry is the original client
            ip = _valid_ip(forwarded.split(",")[0])
            if ip:
                return ip
        ip = _valid_ip(headers.get("x-real-ip"))
        if ip:
            return ip
    return _valid_ip(client_host) or UNKNOWN_IP
