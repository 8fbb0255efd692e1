"""Tests for environment-driven application settings."""

from riskguard.config import Settings


def test_defaults(monkeypatch):
    for name in ("LOG_LEVEL", "REMOTE_RISK_URL", "RULE_RELOAD_INTERVAL_SECONDS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.app_name == "riskguard"
    assert settings.log_level == "INFO"
    assert settings.remote_risk_url is None
    assert settings.remote_risk_timeout_seconds == 0.3
    assert settings.rule_reload_interval_seconds == 30.0


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./risk.db")
    monkeypatch.setenv("REMOTE_RISK_URL", "http://risk.internal:8080")
    monkeypatch.setenv("REMOTE_RISK_TIMEOUT_SECONDS", "0.5")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    settings = Settings(_env_file=None)

    assert settings.database_url == "sqlite+aiosqlite:///./risk.db"
    assert settings.remote_risk_url == "http://risk.internal:8080"
    assert settings.remote_risk_timeout_seconds == 0.5
    assert settings.log_level == "DEBUG"
