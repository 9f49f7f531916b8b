from __future__ import annotations

import pytest

from servicedesk.core.config import Settings


@pytest.mark.asyncio
async def test_startup_fails_fast_on_config_errors_in_production(monkeypatch):
    from servicedesk import main as app_main

    monkeypatch.setattr(type(app_main.settings), "is_production", property(lambda _self: True))
    monkeypatch.setattr(type(app_main.settings), "validate_required_config", lambda _self: ["missing secret"])

    with pytest.raises(RuntimeError, match="Configuration validation failed in production environment"):
        await app_main._startup_jobs()


@pytest.mark.asyncio
async def test_startup_logs_warning_only_outside_production(monkeypatch, caplog):
    from servicedesk import main as app_main

    monkeypatch.setattr(type(app_main.settings), "is_production", property(lambda _self: False))
    monkeypatch.setattr(type(app_main.settings), "validate_required_config", lambda _self: ["missing secret"])

    await app_main._startup_jobs()
    assert "Configuration problem: missing secret" in caplog.text


def test_validate_required_config_lists_missing_values(monkeypatch):
    for name in ("DATABASE_URL", "JWT_SECRET", "SMTP_HOST", "EMAIL_FROM"):
        monkeypatch.delenv(name, raising=False)
    problems = Settings().validate_required_config()
    assert "DATABASE_URL is not set" in problems
    assert "JWT_SECRET is not set" in problems
    assert any("SMTP_HOST" in problem for problem in problems)


def test_list_settings_parse_env_values(monkeypatch):
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "[\"https://a.example\", \"https://b.example\"]")
    monkeypatch.setenv("ADMIN_IP_ALLOWLIST", "10.0.0.0/8,192.168.1.5")
    settings = Settings()
    assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]
    assert settings.admin_ip_allowlist == ["10.0.0.0/8", "192.168.1.5"]
