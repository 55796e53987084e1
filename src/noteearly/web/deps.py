"""Request dependencies shared by the API routes."""

from __future__ import annotations

from typing import Generator

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from noteearly.core.billing_gateway import BillingGateway, get_billing_gateway
from noteearly.core.errors import AuthenticationError, PermissionDeniedError
from noteearly.core.permissions import Actor, require_admin, require_super_admin
from noteearly.core.security import decode_access_token
from noteearly.db.database import get_session

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """One session per request, committed when the handler succeeds."""
    with get_session() as session:
        yield session


def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    """Resolve the caller from the bearer access token.

    Raises:
        AuthenticationError: If the token is missing, invalid or expired
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication token is missing.")

    payload = decode_access_token(credentials.credentials)
    return Actor(id=payload["id"], role=payload["role"], admin_id=payload.get("admin_id"))


def get_admin_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    require_admin(actor)
    return actor


def get_super_admin_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    require_super_admin(actor)
    return actor


def get_student_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_student:
        raise PermissionDeniedError("This action is only available to students.")
    return actor


def get_gateway() -> BillingGateway:
    """Billing gateway dependency (overridden in tests)."""
    return get_billing_gateway()
