"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml.
Secrets never live in the YAML file: each section names the environment
variable that holds its secret.

Usage:
    from noteearly.config.app_config import load_app_config

    config = load_app_config()
    secret = config.auth.get_jwt_secret()
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")

# Development fallbacks used when the secret env vars are unset
_DEV_JWT_SECRET = "noteearly-dev-access-secret"
_DEV_JWT_REFRESH_SECRET = "noteearly-dev-refresh-secret"


@dataclass
class DatabaseConfig:
    """Relational store settings."""

    url: str = "sqlite:///db/noteearly.db"
    url_env: str | None = "DATABASE_URL"
    echo: bool = False

    def get_url(self) -> str:
        """Database URL, environment variable first."""
        if self.url_env:
            env_url = os.environ.get(self.url_env)
            if env_url:
                return env_url
        return self.url


@dataclass
class AuthConfig:
    """Token and cookie settings."""

    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_seconds: int = 604800  # 7 days
    jwt_secret_env: str = "NOTEEARLY_JWT_SECRET"
    jwt_refresh_secret_env: str = "NOTEEARLY_JWT_REFRESH_SECRET"
    cookie_secure: bool = False
    cookie_samesite: str = "lax"

    def get_jwt_secret(self) -> str:
        """Secret used to sign access tokens."""
        secret = os.environ.get(self.jwt_secret_env)
        if not secret:
            logger.warning("jwt_secret_not_set", env=self.jwt_secret_env)
            return _DEV_JWT_SECRET
        return secret

    def get_jwt_refresh_secret(self) -> str:
        """Secret used to sign refresh tokens."""
        secret = os.environ.get(self.jwt_refresh_secret_env)
        if not secret:
            logger.warning("jwt_refresh_secret_not_set", env=self.jwt_refresh_secret_env)
            return _DEV_JWT_REFRESH_SECRET
        return secret


@dataclass
class BillingConfig:
    """Billing provider (Stripe) settings."""

    secret_key_env: str = "STRIPE_SECRET_KEY"
    webhook_secret_env: str = "STRIPE_WEBHOOK_SECRET"
    client_url: str = "http://localhost:3000"

    def get_secret_key(self) -> str | None:
        """Get API key from environment variable."""
        return os.environ.get(self.secret_key_env)

    def get_webhook_secret(self) -> str | None:
        """Get webhook signing secret from environment variable."""
        return os.environ.get(self.webhook_secret_env)


@dataclass
class AppConfig:
    """Application-wide configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    log_format: str = "console"  # console | json
    paths: dict[str, str] = field(default_factory=dict)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "database": {
            "url": "sqlite:///db/noteearly.db",
            "url_env": "DATABASE_URL",
            "echo": False,
        },
        "auth": {
            "algorithm": "HS256",
            "access_token_expire_minutes": 15,
            "refresh_token_expire_seconds": 604800,
            "jwt_secret_env": "NOTEEARLY_JWT_SECRET",
            "jwt_refresh_secret_env": "NOTEEARLY_JWT_REFRESH_SECRET",
            "cookie_secure": False,
            "cookie_samesite": "lax",
        },
        "billing": {
            "secret_key_env": "STRIPE_SECRET_KEY",
            "webhook_secret_env": "STRIPE_WEBHOOK_SECRET",
            "client_url": "http://localhost:3000",
        },
        "api_prefix": "/api/v1",
        "cors_origins": ["http://localhost:3000"],
        "log_format": "console",
        "paths": {
            "config_dir": "data/config",
            "db_dir": "db",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()

    db_data = {**defaults["database"], **(data.get("database") or {})}
    database = DatabaseConfig(
        url=db_data["url"],
        url_env=db_data.get("url_env"),
        echo=bool(db_data.get("echo", False)),
    )

    auth_data = {**defaults["auth"], **(data.get("auth") or {})}
    auth = AuthConfig(
        algorithm=auth_data["algorithm"],
        access_token_expire_minutes=int(auth_data["access_token_expire_minutes"]),
        refresh_token_expire_seconds=int(auth_data["refresh_token_expire_seconds"]),
        jwt_secret_env=auth_data["jwt_secret_env"],
        jwt_refresh_secret_env=auth_data["jwt_refresh_secret_env"],
        cookie_secure=bool(auth_data["cookie_secure"]),
        cookie_samesite=auth_data["cookie_samesite"],
    )

    billing_data = {**defaults["billing"], **(data.get("billing") or {})}
    billing = BillingConfig(
        secret_key_env=billing_data["secret_key_env"],
        webhook_secret_env=billing_data["webhook_secret_env"],
        client_url=billing_data["client_url"],
    )

    return AppConfig(
        database=database,
        auth=auth,
        billing=billing,
        api_prefix=data.get("api_prefix", defaults["api_prefix"]),
        cors_origins=list(data.get("cors_origins", defaults["cors_origins"])),
        log_format=data.get("log_format", defaults["log_format"]),
        paths=data.get("paths", defaults["paths"]),
    )


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
