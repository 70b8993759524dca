"""Tests for Settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from safego_shield.config import Settings


def test_defaults():
    settings = Settings()
    assert settings.sweep_interval_seconds == 60
    assert settings.lock_shards == 64
    assert settings.trust_proxy_headers is True
    assert settings.user_id_header == "X-User-Id"


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("SAFEGO_LOCK_SHARDS", "8")
    monkeypatch.setenv("SAFEGO_TRUST_PROXY_HEADERS", "false")
    monkeypatch.setenv("SAFEGO_LOG_LEVEL", "debug")

    settings = Settings()
    assert settings.lock_shards == 8
    assert settings.trust_proxy_headers is False
    assert settings.log_level == "DEBUG"


def test_rejects_invalid_values():
    with pytest.raises(ValidationError):
        Settings(lock_shards=0)
    with pytest.raises(ValidationError):
        Settings(sweep_interval_seconds=0)


def test_operator_tokens_are_trimmed_and_deduplicated():
    settings = Settings(operator_tokens=" alpha, beta ,,alpha")
    assert settings.resolve_operator_tokens() == {"alpha", "beta"}
    assert Settings().resolve_operator_tokens() == set()


def test_operator_allowlist_skips_invalid_networks(caplog):
    settings = Settings(operator_ip_allowlist="10.0.0.0/8, not-a-net, ::1/128")
    networks = settings.parse_operator_allowlist()
    assert [str(n) for n in networks] == ["10.0.0.0/8", "::1/128"]
    assert "not-a-net" in caplog.text
