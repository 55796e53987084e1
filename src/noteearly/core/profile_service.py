"""Profile read model and profile management.

Profiles are flattened into a display dict joined with subscription data at
request time:

    {profile_id, email, full_name, avatar_url, role, created_at, updated_at,
     stripe_customer_id, subscription_status, subscription_plan,
     subscription_renewal_date}

Students add admin_id, age and reading_level; the admin's student list adds
completed_modules_count.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from noteearly.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from noteearly.core.permissions import Actor, get_managed_student, require_admin, require_super_admin
from noteearly.db.models import (
    CustomerSubscription,
    Profile,
    Role,
    StudentProgress,
    SubscriptionPlan,
)

logger = structlog.get_logger(__name__)

SELF_UPDATABLE_FIELDS = ("full_name", "avatar_url")
ADMIN_UPDATABLE_FIELDS = ("full_name", "avatar_url", "age", "reading_level")


def _plan_tier(session: Session, profile: Profile) -> str:
    """Tier of the profile's subscription plan, else the cached tier."""
    tier = session.scalar(
        select(SubscriptionPlan.tier)
        .join(CustomerSubscription, CustomerSubscription.plan_id == SubscriptionPlan.id)
        .where(CustomerSubscription.user_id == profile.id)
        .order_by(CustomerSubscription.created_at.desc())
        .limit(1)
    )
    return tier or profile.subscription_plan


def to_profile_dto(
    profile: Profile,
    plan_tier: str | None = None,
    completed_modules_count: int | None = None,
) -> dict[str, Any]:
    """Flatten a profile into its display form."""
    dto: dict[str, Any] = {
        "profile_id": profile.id,
        "email": profile.email,
        "full_name": profile.full_name,
        "avatar_url": profile.avatar_url,
        "role": profile.role,
        "created_at": profile.created_at,
        "updated_at": profile.updated_at,
        "stripe_customer_id": profile.stripe_customer_id,
        "subscription_status": profile.subscription_status,
        "subscription_plan": plan_tier or profile.subscription_plan,
        "subscription_renewal_date": profile.subscription_renewal_date,
    }
    if profile.role == Role.STUDENT.value:
        dto["admin_id"] = profile.admin_id
        dto["age"] = profile.age
        dto["reading_level"] = profile.reading_level
    if completed_modules_count is not None:
        dto["completed_modules_count"] = completed_modules_count
    return dto


def get_profile(session: Session, profile_id: str) -> dict[str, Any]:
    """Get one profile joined with its plan tier.

    Raises:
        NotFoundError: If the profile doesn't exist
    """
    profile = session.get(Profile, profile_id)
    if profile is None:
        raise NotFoundError("Profile not found.")
    return to_profile_dto(profile, plan_tier=_plan_tier(session, profile))


def _completed_counts(session: Session, student_ids: list[str]) -> dict[str, int]:
    if not student_ids:
        return {}
    rows = session.execute(
        select(StudentProgress.student_id, func.count(StudentProgress.id))
        .where(
            StudentProgress.student_id.in_(student_ids),
            StudentProgress.completed.is_(True),
        )
        .group_by(StudentProgress.student_id)
    )
    return {student_id: count for student_id, count in rows}


def list_admin_students(session: Session, actor: Actor) -> list[dict[str, Any]]:
    """Students managed by the caller, with completed module counts."""
    require_admin(actor)
    students = list(
        session.scalars(
            select(Profile)
            .where(Profile.admin_id == actor.id, Profile.role == Role.STUDENT.value)
            .order_by(Profile.created_at)
        )
    )
    counts = _completed_counts(session, [s.id for s in students])
    return [to_profile_dto(s, completed_modules_count=counts.get(s.id, 0)) for s in students]


def list_all_students(session: Session, actor: Actor) -> list[dict[str, Any]]:
    """Every student on the platform (super-admin only)."""
    require_super_admin(actor)
    students = list(
        session.scalars(
            select(Profile).where(Profile.role == Role.STUDENT.value).order_by(Profile.created_at)
        )
    )
    counts = _completed_counts(session, [s.id for s in students])
    return [to_profile_dto(s, completed_modules_count=counts.get(s.id, 0)) for s in students]


def get_student_for_admin(session: Session, actor: Actor, student_id: str) -> dict[str, Any]:
    """A managed student's profile."""
    student = get_managed_student(session, actor, student_id)
    counts = _completed_counts(session, [student.id])
    return to_profile_dto(student, completed_modules_count=counts.get(student.id, 0))


def _apply_changes(profile: Profile, changes: dict[str, Any], allowed: tuple[str, ...]) -> list[str]:
    updates = {k: v for k, v in changes.items() if k in allowed}
    if not updates:
        raise ValidationError("No valid fields provided for update.")
    for field_name, value in updates.items():
        setattr(profile, field_name, value)
    return sorted(updates)


def update_my_profile(session: Session, actor: Actor, changes: dict[str, Any]) -> dict[str, Any]:
    """Update the caller's own name or avatar.

    Raises:
        PermissionDeniedError: If the caller is a student
        ValidationError: If no updatable field is given
    """
    if actor.is_student:
        raise PermissionDeniedError("Students cannot update their own profiles.")

    profile = session.get(Profile, actor.id)
    if profile is None:
        raise NotFoundError("Profile not found.")

    fields = _apply_changes(profile, changes, SELF_UPDATABLE_FIELDS)
    session.flush()
    logger.info("profiles.self_updated", profile_id=profile.id, fields=fields)
    return to_profile_dto(profile, plan_tier=_plan_tier(session, profile))


def update_student_by_admin(
    session: Session, actor: Actor, student_id: str, changes: dict[str, Any]
) -> dict[str, Any]:
    """Update a managed student's profile fields."""
    student = get_managed_student(session, actor, student_id)
    fields = _apply_changes(student, changes, ADMIN_UPDATABLE_FIELDS)
    session.flush()
    logger.info("profiles.student_updated", student_id=student_id, admin_id=actor.id, fields=fields)
    return to_profile_dto(student)


def delete_student(session: Session, actor: Actor, student_id: str) -> dict[str, Any]:
    """Delete a managed student and, by cascade, their progress.

    Returns:
        The deleted profile's display form
    """
    student = get_managed_student(session, actor, student_id)
    dto = to_profile_dto(student)
    session.delete(student)
    session.flush()
    logger.info("profiles.student_deleted", student_id=student_id, admin_id=actor.id)
    return dto
