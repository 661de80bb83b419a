"""
Configuration for the FlowForge auth server and client.

Values are resolved in this order (later wins):
    1. model defaults
    2. optional YAML file (AUTH_CONFIG_FILE, default config/auth.yaml)
    3. environment variables (typically via .env)

Env vars:
- ENVIRONMENT               development | production
- AUTH_SECRET_KEY           HMAC secret for session tokens (required in production)
- AUTH_DATA_DIR             directory for users/sessions JSON files
- SESSION_TTL_SECONDS       session token lifetime (default 7 days)
- REFRESH_INTERVAL_SECONDS  client refresh cadence (default 30 minutes)
- AUTH_COOKIE_NAME          session cookie name
- RATE_LIMIT_ENABLED        "false" disables throttling (tests, local dev)
- LOG_LEVEL / LOG_FORMAT    logging settings
- LOG_FILE                  optional rotating log file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from ..utils.exceptions import ConfigError

DEV_SECRET_KEY = "fallback-secret-change-in-production"
DEFAULT_CONFIG_FILE = Path("config") / "auth.yaml"


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file_path: Optional[str] = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5


class RateLimitRule(BaseModel):
    max_requests: int
    window_seconds: int


def _default_rate_limits() -> Dict[str, RateLimitRule]:
    return {
        "signin_ip": RateLimitRule(max_requests=10, window_seconds=15 * 60),
        "signin_email": RateLimitRule(max_requests=5, window_seconds=15 * 60),
        "signup_ip": RateLimitRule(max_requests=5, window_seconds=15 * 60),
        "reset_ip": RateLimitRule(max_requests=3, window_seconds=15 * 60),
        "reset_email": RateLimitRule(max_requests=2, window_seconds=60 * 60),
        "verify_reset_ip": RateLimitRule(max_requests=5, window_seconds=15 * 60),
    }


class Settings(BaseModel):
    """Single source of truth for auth configuration."""

    environment: str = "development"
    secret_key: str = DEV_SECRET_KEY
    token_salt: str = "flowforge-session"
    data_dir: Path = Path("data")

    session_ttl_seconds: int = Field(default=7 * 24 * 60 * 60, gt=0)
    refresh_interval_seconds: int = Field(default=30 * 60, gt=0)
    reset_token_ttl_seconds: int = Field(default=60 * 60, gt=0)
    cleanup_interval_seconds: int = Field(default=60 * 60, gt=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    cookie_name: str = "auth-token"
    cookie_secure: Optional[bool] = None
    cookie_samesite: str = "strict"

    rate_limit_enabled: bool = True
    rate_limits: Dict[str, RateLimitRule] = Field(default_factory=_default_rate_limits)

    sync_poll_interval_seconds: float = Field(default=1.0, gt=0)
    sign_in_path: str = "/auth/signin"
    landing_path: str = "/dashboard"

    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def secure_cookies(self) -> bool:
        if self.cookie_secure is not None:
            return self.cookie_secure
        return self.is_production

    @model_validator(mode="after")
    def _check(self) -> "Settings":
        if self.refresh_interval_seconds >= self.session_ttl_seconds:
            raise ValueError("refresh_interval_seconds must be less than session_ttl_seconds")
        if self.is_production and (not self.secret_key or self.secret_key == DEV_SECRET_KEY):
            raise ValueError("AUTH_SECRET_KEY must be set in production")
        return self


# env var -> settings key
_ENV_KEYS = {
    "ENVIRONMENT": "environment",
    "AUTH_SECRET_KEY": "secret_key",
    "AUTH_TOKEN_SALT": "token_salt",
    "AUTH_DATA_DIR": "data_dir",
    "SESSION_TTL_SECONDS": "session_ttl_seconds",
    "REFRESH_INTERVAL_SECONDS": "refresh_interval_seconds",
    "RESET_TOKEN_TTL_SECONDS": "reset_token_ttl_seconds",
    "SESSION_CLEANUP_INTERVAL_SECONDS": "cleanup_interval_seconds",
    "BCRYPT_ROUNDS": "bcrypt_rounds",
    "AUTH_COOKIE_NAME": "cookie_name",
    "AUTH_COOKIE_SECURE": "cookie_secure",
    "RATE_LIMIT_ENABLED": "rate_limit_enabled",
    "SYNC_POLL_INTERVAL_SECONDS": "sync_poll_interval_seconds",
}


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Failed to load config from {path}: {str(e)}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_settings(config_file: Optional[Path] = None, **overrides: Any) -> Settings:
    """
    Build Settings from YAML + environment.

    Keyword overrides win over everything (used by tests and embedding apps).
    """
    load_dotenv()
    path = config_file or Path(os.getenv("AUTH_CONFIG_FILE") or DEFAULT_CONFIG_FILE)
    raw: Dict[str, Any] = _load_yaml(path)

    for env_name, key in _ENV_KEYS.items():
        value = os.getenv(env_name)
        if value is not None and value.strip() != "":
            raw[key] = value.strip()

    log_level = os.getenv("LOG_LEVEL")
    log_format = os.getenv("LOG_FORMAT")
    log_file = os.getenv("LOG_FILE")
    if log_level or log_format or log_file:
        logging_cfg = dict(raw.get("logging") or {})
        if log_level:
            logging_cfg["level"] = log_level
        if log_format:
            logging_cfg["format"] = log_format
        if log_file:
            logging_cfg["file_path"] = log_file
        raw["logging"] = logging_cfg

    raw.update(overrides)
    try:
        return Settings(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid auth configuration: {e}")
