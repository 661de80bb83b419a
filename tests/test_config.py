"""Tests for settings loading and the rate limiter"""

from pathlib import Path

import pytest

from flowforge.core.config import DEV_SECRET_KEY, Settings, load_settings
from flowforge.core.ratelimit import RateLimiter
from flowforge.utils.exceptions import ConfigError, RateLimited
from flowforge.utils.logger import get_logger, setup_logger

ENV_VARS = [
    "ENVIRONMENT",
    "AUTH_SECRET_KEY",
    "AUTH_DATA_DIR",
    "SESSION_TTL_SECONDS",
    "REFRESH_INTERVAL_SECONDS",
    "RATE_LIMIT_ENABLED",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path: Path):
    settings = load_settings(config_file=tmp_path / "missing.yaml")
    assert settings.session_ttl_seconds == 7 * 24 * 60 * 60
    assert settings.refresh_interval_seconds == 1800
    assert settings.cookie_name == "auth-token"
    assert settings.secret_key == DEV_SECRET_KEY
    assert settings.secure_cookies is False
    assert settings.rate_limits["signin_email"].max_requests == 5


def test_yaml_then_env(tmp_path: Path, monkeypatch):
    config = tmp_path / "auth.yaml"
    config.write_text(
        "session_ttl_seconds: 7200\nrefresh_interval_seconds: 600\nlogging:\n  level: DEBUG\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("REFRESH_INTERVAL_SECONDS", "900")
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")

    settings = load_settings(config_file=config)
    assert settings.session_ttl_seconds == 7200
    assert settings.refresh_interval_seconds == 900
    assert settings.rate_limit_enabled is False
    assert settings.logging.level == "DEBUG"


def test_refresh_interval_must_be_below_ttl(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_settings(config_file=tmp_path / "missing.yaml", session_ttl_seconds=600, refresh_interval_seconds=600)


def test_production_needs_a_secret(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    with pytest.raises(ConfigError):
        load_settings(config_file=tmp_path / "missing.yaml")

    monkeypatch.setenv("AUTH_SECRET_KEY", "a-real-production-secret")
    settings = load_settings(config_file=tmp_path / "missing.yaml")
    assert settings.is_production
    assert settings.secure_cookies is True


def test_invalid_yaml(tmp_path: Path):
    config = tmp_path / "auth.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(config_file=config)


def test_rate_limiter_window():
    now = [1000.0]
    limiter = RateLimiter(clock=lambda: now[0])

    for _ in range(3):
        limiter.check("signin:1.2.3.4", 3, 60, "Too many")
    with pytest.raises(RateLimited) as exc_info:
        limiter.check("signin:1.2.3.4", 3, 60, "Too many")
    assert exc_info.value.retry_after > 0

    # Other keys are independent; the window slides
    limiter.check("signin:5.6.7.8", 3, 60, "Too many")
    now[0] += 61
    limiter.check("signin:1.2.3.4", 3, 60, "Too many")


def test_rate_limiter_disabled():
    limiter = RateLimiter(enabled=False)
    for _ in range(100):
        limiter.check("k", 1, 60, "Too many")


def test_settings_direct_construction(tmp_path: Path):
    settings = Settings(data_dir=tmp_path, cookie_secure=True)
    assert settings.secure_cookies is True


def test_log_file(tmp_path: Path):
    log_file = tmp_path / "logs" / "auth.log"
    setup_logger(log_level="INFO", log_format="json", file_path=str(log_file))
    try:
        get_logger("flowforge.tests").info("Session created", session_id="abc")
    finally:
        setup_logger()

    line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert '"event": "Session created"' in line
    assert '"session_id": "abc"' in line
