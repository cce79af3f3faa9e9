"""
Settings tests.
"""

import pytest

from warden.core.cache import NullPermissionCache
from warden.core.config import Settings
from warden.main import build_default_services


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.cache_backend == "none"
    assert settings.invitation_ttl_hours == 168.0
    assert settings.invitation_require_email_match is False
    assert settings.storage_timeout_seconds == 5.0


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("WARDEN_CACHE_BACKEND", "redis")
    monkeypatch.setenv("WARDEN_INVITATION_TTL_HOURS", "24")
    monkeypatch.setenv("WARDEN_INVITATION_REQUIRE_EMAIL_MATCH", "true")
    settings = Settings(_env_file=None)
    assert settings.cache_backend == "redis"
    assert settings.invitation_ttl_hours == 24.0
    assert settings.invitation_require_email_match is True


@pytest.mark.asyncio
async def test_default_services_do_not_cache_in_process(tmp_path):
    settings = Settings(
        _env_file=None, database_url=f"sqlite+aiosqlite:///{tmp_path / 'cfg.db'}"
    )
    services = build_default_services(settings)
    try:
        assert isinstance(services.cache, NullPermissionCache)
    finally:
        await services.close()
