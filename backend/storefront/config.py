# backend/storefront/config.py
from __future__ import annotations

import logging
import os
import secrets


class ConfigError(RuntimeError):
    """Raised at startup when required configuration is missing or unsafe."""


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    APP_ENV = os.environ.get("APP_ENV", "development")

    # Empty means "generate per process" outside production, like the JWT secrets
    SECRET_KEY = os.environ.get("SECRET_KEY", "")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Token signing. Empty means "generate per process" outside production.
    JWT_SECRET = os.environ.get("JWT_SECRET", "")
    JWT_REFRESH_SECRET = os.environ.get("JWT_REFRESH_SECRET", "")
    JWT_ALGORITHM = "HS256"
    JWT_ACCESS_EXPIRES_MINUTES = int(os.environ.get("JWT_ACCESS_EXPIRES_MINUTES", "15"))
    JWT_REFRESH_EXPIRES_DAYS = int(os.environ.get("JWT_REFRESH_EXPIRES_DAYS", "7"))

    # Shared secret for /api/public routes (x-api-key header)
    PRIVATE_API_KEY = os.environ.get("PRIVATE_API_KEY", "")

    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
    CURRENCY = os.environ.get("CURRENCY", "ETB")
    CORS_ALLOWED_ORIGINS = _env_list(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    )

    # Outbound email
    SMTP_HOST = os.environ.get("SMTP_HOST", "")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USER = os.environ.get("SMTP_USER", "")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD", "")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
    MAIL_FROM = os.environ.get("MAIL_FROM", "Atlantic Leather <no-reply@atlanticleather.local>")
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "")

    # Outbound SMS (Twilio REST API)
    TWILIO_ACCOUNT_SID = os.environ.get("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN", "")
    TWILIO_FROM_NUMBER = os.environ.get("TWILIO_FROM_NUMBER", "")

    # Notification dispatch: "thread" runs a background worker, "inline" sends immediately
    NOTIFICATION_DISPATCH_MODE = os.environ.get("NOTIFICATION_DISPATCH_MODE", "thread")
    NOTIFICATION_MAX_ATTEMPTS = int(os.environ.get("NOTIFICATION_MAX_ATTEMPTS", "3"))
    NOTIFICATION_BACKOFF_SECONDS = float(os.environ.get("NOTIFICATION_BACKOFF_SECONDS", "1.0"))
    WEBHOOK_TIMEOUT_SECONDS = float(os.environ.get("WEBHOOK_TIMEOUT_SECONDS", "10"))

    # Low-stock monitor
    LOW_STOCK_CHECK_INTERVAL_SECONDS = int(os.environ.get("LOW_STOCK_CHECK_INTERVAL_SECONDS", "3600"))
    LOW_STOCK_INITIAL_DELAY_SECONDS = int(os.environ.get("LOW_STOCK_INITIAL_DELAY_SECONDS", "5"))
    LOW_STOCK_MONITOR_ENABLED = _env_bool("LOW_STOCK_MONITOR_ENABLED", True)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestingConfig(Config):
    APP_ENV = "testing"
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-flask-secret-0123456789abcdef0123456789"
    JWT_SECRET = "test-access-secret-0123456789abcdef0123456789"
    JWT_REFRESH_SECRET = "test-refresh-secret-0123456789abcdef01234567"
    PRIVATE_API_KEY = "test-private-api-key"
    ADMIN_EMAIL = "owner@atlanticleather.com"
    NOTIFICATION_DISPATCH_MODE = "inline"
    NOTIFICATION_BACKOFF_SECONDS = 0.0
    LOW_STOCK_MONITOR_ENABLED = False


MIN_SECRET_LENGTH = 32
SIGNING_SECRETS = ("SECRET_KEY", "JWT_SECRET", "JWT_REFRESH_SECRET")


def finalize_secrets(app) -> None:
    """
    Resolve signing secrets and the public API key once the config is loaded.

    Production refuses to start without explicit values; other environments
    get a random per-process secret so tokens never verify across restarts.
    """
    is_production = app.config.get("APP_ENV") == "production"

    for key in SIGNING_SECRETS:
        value = app.config.get(key) or ""
        if value and len(value) >= MIN_SECRET_LENGTH:
            continue
        if is_production:
            raise ConfigError(f"{key} must be set to at least {MIN_SECRET_LENGTH} characters in production")
        app.config[key] = secrets.token_urlsafe(48)
        app.logger.warning("%s not configured; using a random per-process secret", key)

    if app.config["JWT_SECRET"] == app.config["JWT_REFRESH_SECRET"]:
        raise ConfigError("JWT_SECRET and JWT_REFRESH_SECRET must differ")

    if not app.config.get("PRIVATE_API_KEY"):
        if is_production:
            raise ConfigError("PRIVATE_API_KEY must be set in production")
        app.config["PRIVATE_API_KEY"] = secrets.token_urlsafe(24)
        app.logger.warning("PRIVATE_API_KEY not configured; public routes use a random per-process key")


def configure_logging(app) -> None:
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if isinstance(level, int):
        app.logger.setLevel(level)
