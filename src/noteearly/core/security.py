"""Password hashing and JWT helpers.

Access and refresh tokens are signed with separate secrets. Refresh tokens
carry a `type` claim so an admin refresh token can't be replayed on the
student refresh endpoint and vice versa.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from jose import JWTError, jwt
from passlib.context import CryptContext

from noteearly.config.app_config import AuthConfig, load_app_config
from noteearly.core.errors import AuthenticationError

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ADMIN_REFRESH_TYPE = "refresh"
STUDENT_REFRESH_TYPE = "student_refresh"


def hash_secret(secret: str) -> str:
    """Hash a password or PIN with bcrypt."""
    return pwd_context.hash(secret)


def verify_secret(secret: str, hashed: str | None) -> bool:
    """Check a password or PIN against its stored hash."""
    if not hashed:
        return False
    return pwd_context.verify(secret, hashed)


def _auth_config(config: AuthConfig | None) -> AuthConfig:
    return config or load_app_config().auth


def create_access_token(claims: dict[str, Any], config: AuthConfig | None = None) -> str:
    """Sign a short-lived access token.

    Args:
        claims: Payload; must include "id" and "role"
        config: Auth settings (defaults to the loaded app config)

    Returns:
        Encoded JWT
    """
    cfg = _auth_config(config)
    expire = datetime.now(timezone.utc) + timedelta(minutes=cfg.access_token_expire_minutes)
    payload = {**claims, "exp": expire}
    return jwt.encode(payload, cfg.get_jwt_secret(), algorithm=cfg.algorithm)


def create_refresh_token(
    profile_id: str,
    token_type: str = ADMIN_REFRESH_TYPE,
    config: AuthConfig | None = None,
) -> str:
    """Sign a long-lived refresh token for a profile."""
    cfg = _auth_config(config)
    expire = datetime.now(timezone.utc) + timedelta(seconds=cfg.refresh_token_expire_seconds)
    payload = {"id": profile_id, "type": token_type, "exp": expire}
    return jwt.encode(payload, cfg.get_jwt_refresh_secret(), algorithm=cfg.algorithm)


def decode_access_token(token: str, config: AuthConfig | None = None) -> dict[str, Any]:
    """Decode and verify an access token.

    Raises:
        AuthenticationError: If the token is invalid or expired
    """
    cfg = _auth_config(config)
    try:
        payload = jwt.decode(token, cfg.get_jwt_secret(), algorithms=[cfg.algorithm])
    except JWTError as e:
        logger.debug("auth.access_token_invalid", error=str(e))
        raise AuthenticationError("Invalid or expired token.") from e

    if not payload.get("id") or not payload.get("role"):
        raise AuthenticationError("Invalid token payload.")
    return payload


def decode_refresh_token(
    token: str,
    expected_type: str = ADMIN_REFRESH_TYPE,
    config: AuthConfig | None = None,
) -> dict[str, Any]:
    """Decode and verify a refresh token of the expected type.

    Raises:
        AuthenticationError: If the token is invalid, expired or of the wrong type
    """
    cfg = _auth_config(config)
    try:
        payload = jwt.decode(token, cfg.get_jwt_refresh_secret(), algorithms=[cfg.algorithm])
    except JWTError as e:
        logger.debug("auth.refresh_token_invalid", error=str(e))
        raise AuthenticationError("Invalid or expired refresh token.") from e

    if payload.get("type") != expected_type or not payload.get("id"):
        raise AuthenticationError("Invalid refresh token.")
    return payload
