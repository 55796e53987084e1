"""Authentication for admins (email + password) and students (id + PIN).

Each login returns a short-lived access token plus a refresh token that the
web layer stores in an httpOnly cookie. Admin and student refresh tokens are
distinguished by their `type` claim.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from noteearly.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from noteearly.core.permissions import Actor, get_managed_student, require_admin
from noteearly.core.security import (
    ADMIN_REFRESH_TYPE,
    STUDENT_REFRESH_TYPE,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_secret,
    verify_secret,
)
from noteearly.core.subscription_service import ensure_student_capacity
from noteearly.db.models import Profile, Role
from noteearly.utils.validators import normalize_email, validate_pin

logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 8


@dataclass
class AuthResult:
    """A profile with freshly issued tokens."""

    profile: Profile
    access_token: str
    refresh_token: str


def access_claims(profile: Profile) -> dict[str, str | None]:
    """Claims embedded in an access token for this profile."""
    claims: dict[str, str | None] = {"id": profile.id, "role": profile.role}
    if profile.role == Role.STUDENT.value:
        claims["admin_id"] = profile.admin_id
    return claims


def _issue_tokens(profile: Profile, refresh_type: str) -> AuthResult:
    return AuthResult(
        profile=profile,
        access_token=create_access_token(access_claims(profile)),
        refresh_token=create_refresh_token(profile.id, refresh_type),
    )


def _validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")


def _create_admin_profile(
    session: Session, email: str, password: str, full_name: str, role: Role
) -> Profile:
    normalized = normalize_email(email)
    _validate_password(password)

    existing = session.scalars(select(Profile.id).where(Profile.email == normalized)).first()
    if existing is not None:
        raise ConflictError("Email address is already registered.")

    profile = Profile(
        role=role.value,
        email=normalized,
        full_name=full_name.strip(),
        password_hash=hash_secret(password),
    )
    session.add(profile)
    session.flush()
    return profile


def signup_admin(session: Session, email: str, password: str, full_name: str) -> AuthResult:
    """Register a new admin and log them in.

    Raises:
        ValidationError: On a malformed email or short password
        ConflictError: If the email is already registered
    """
    profile = _create_admin_profile(session, email, password, full_name, Role.ADMIN)
    logger.info("auth.admin_signed_up", profile_id=profile.id)
    return _issue_tokens(profile, ADMIN_REFRESH_TYPE)


def create_super_admin(session: Session, email: str, password: str, full_name: str) -> Profile:
    """Create a super-admin account (CLI only)."""
    profile = _create_admin_profile(session, email, password, full_name, Role.SUPER_ADMIN)
    logger.info("auth.super_admin_created", profile_id=profile.id)
    return profile


def login_admin(session: Session, email: str, password: str) -> AuthResult:
    """Log an admin or super-admin in with email and password.

    Raises:
        AuthenticationError: If the credentials don't match
    """
    normalized = email.strip().lower()
    profile = session.scalars(select(Profile).where(Profile.email == normalized)).first()

    if profile is None or profile.role == Role.STUDENT.value or not verify_secret(password, profile.password_hash):
        logger.info("auth.admin_login_failed", email=normalized)
        raise AuthenticationError("Invalid email or password.")

    logger.info("auth.admin_logged_in", profile_id=profile.id)
    return _issue_tokens(profile, ADMIN_REFRESH_TYPE)


def refresh_admin_session(session: Session, refresh_token: str | None) -> AuthResult:
    """Exchange an admin refresh token for new tokens (rotation).

    Raises:
        AuthenticationError: If the token is missing, invalid, or its profile is gone
    """
    if not refresh_token:
        raise AuthenticationError("Refresh token not found.")

    payload = decode_refresh_token(refresh_token, ADMIN_REFRESH_TYPE)
    profile = session.get(Profile, payload["id"])
    if profile is None or profile.role == Role.STUDENT.value:
        raise AuthenticationError("Invalid refresh token: user not found.")

    logger.debug("auth.admin_refreshed", profile_id=profile.id)
    return _issue_tokens(profile, ADMIN_REFRESH_TYPE)


def create_student(
    session: Session,
    actor: Actor,
    full_name: str,
    pin: str,
    age: int | None = None,
    reading_level: int | None = None,
) -> Profile:
    """Create a student managed by the calling admin.

    Raises:
        PermissionDeniedError: If the caller isn't an admin or the plan's
            student limit has been reached
        ValidationError: On a malformed PIN
    """
    require_admin(actor)
    validate_pin(pin)
    ensure_student_capacity(session, actor.id)

    student = Profile(
        role=Role.STUDENT.value,
        full_name=full_name.strip(),
        pin_hash=hash_secret(pin),
        admin_id=actor.id,
        age=age,
        reading_level=reading_level,
    )
    session.add(student)
    session.flush()

    logger.info("auth.student_created", student_id=student.id, admin_id=actor.id)
    return student


def login_student(session: Session, student_id: str, pin: str) -> AuthResult:
    """Log a student in with their id and PIN.

    Raises:
        AuthenticationError: If the student doesn't exist or the PIN is wrong
    """
    student = session.get(Profile, student_id)
    if student is None or student.role != Role.STUDENT.value:
        raise AuthenticationError("Student profile not found.")

    if not student.pin_hash or not student.admin_id:
        logger.error("auth.student_profile_invalid", student_id=student_id)
        raise ValidationError("Student profile data is invalid.")

    if not verify_secret(pin, student.pin_hash):
        logger.info("auth.student_login_failed", student_id=student_id)
        raise AuthenticationError("Invalid PIN.")

    logger.info("auth.student_logged_in", student_id=student_id)
    return _issue_tokens(student, STUDENT_REFRESH_TYPE)


def refresh_student_session(session: Session, refresh_token: str | None) -> str:
    """Exchange a student refresh token for a new access token.

    Returns:
        New access token (the refresh token keeps its original expiry)
    """
    if not refresh_token:
        raise AuthenticationError("Refresh token not found.")

    payload = decode_refresh_token(refresh_token, STUDENT_REFRESH_TYPE)
    student = session.get(Profile, payload["id"])
    if student is None or student.role != Role.STUDENT.value:
        logger.warning("auth.student_refresh_unknown", student_id=payload["id"])
        raise AuthenticationError("Invalid refresh token: user not found.")

    return create_access_token(access_claims(student))


def reset_admin_password(session: Session, actor: Actor, current_password: str, new_password: str) -> Profile:
    """Change the caller's password.

    Raises:
        PermissionDeniedError: If the current password is wrong
    """
    require_admin(actor)
    profile = session.get(Profile, actor.id)
    if profile is None:
        raise NotFoundError("Profile not found.")

    if not verify_secret(current_password, profile.password_hash):
        raise PermissionDeniedError("Current password is incorrect.")

    _validate_password(new_password)
    profile.password_hash = hash_secret(new_password)
    session.flush()

    logger.info("auth.password_reset", profile_id=profile.id)
    return profile


def reset_student_pin(session: Session, actor: Actor, student_id: str, new_pin: str) -> Profile:
    """Set a new PIN for a student the caller manages."""
    validate_pin(new_pin)
    student = get_managed_student(session, actor, student_id)
    student.pin_hash = hash_secret(new_pin)
    session.flush()

    logger.info("auth.student_pin_reset", student_id=student_id, admin_id=actor.id)
    return student
