"""Application configuration via pydantic-settings."""

from __future__ import annotations

import ipaddress
import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """SafeGo API Shield configuration.

    Loaded from environment variables with the ``SAFEGO_`` prefix. Category
    quotas are compiled in (see ``safego_shield.ratelimit.categories``) and
    are deliberately not configurable here.
    """

    model_config = {"env_prefix": "SAFEGO_"}

    # -- Identity ------------------------------------------------------------
    trust_proxy_headers: bool = True
    user_id_header: str = "X-User-Id"
    user_role_header: str = "X-User-Role"
    user_email_header: str = "X-User-Email"

    # -- Rate limit ----------------------------------------------------------
    sweep_interval_seconds: float = Field(default=60.0, gt=0)
    lock_shards: int = Field(default=64, ge=1)

    # -- Audit trail ---------------------------------------------------------
    audit_enabled: bool = True
    audit_db_path: Path = Path("/var/lib/safego-shield/audit.db")

    # -- Operator access (security endpoints) --------------------------------
    operator_tokens: str = ""  # comma-separated bearer tokens
    operator_ip_allowlist: str = "10.0.0.0/8,127.0.0.0/8,::1/128"

    # -- Misc ----------------------------------------------------------------
    log_level: str = "INFO"

    def resolve_operator_tokens(self) -> set[str]:
        """Bearer tokens accepted on the security endpoints. Empty locks them."""
        return {t.strip() for t in self.operator_tokens.split(",") if t.strip()}

    def parse_operator_allowlist(self) -> list[ipaddress.IPv4Network | ipaddress.IPv6Network]:
        """Parse the comma-separated IP allowlist into network objects."""
        networks = []
        for entry in self.operator_ip_allowlist.split(","):
            entry = entry.strip()
            if not entry:
                continue
            try:
                networks.append(ipaddress.ip_network(entry, strict=False))
            except ValueError:
                logger.warning("Invalid network in allowlist: %s", entry)
        return networks

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, v: str) -> str:
        return v.upper()
