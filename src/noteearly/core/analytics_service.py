"""Activity and dashboard statistics derived from progress and billing rows."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from noteearly.core.errors import NotFoundError, ValidationError
from noteearly.core.permissions import Actor, get_managed_student, require_admin, require_super_admin
from noteearly.db.database import utcnow
from noteearly.db.models import (
    ModuleType,
    PaymentHistory,
    Profile,
    ReadingModule,
    Role,
    StudentProgress,
)

logger = structlog.get_logger(__name__)

MAX_ACTIVITY_DAYS = 365
DEFAULT_ACTIVITY_DAYS = 30
REVENUE_WINDOW_DAYS = 30


def _rate(part: int, whole: int) -> float:
    """Percentage rounded to one decimal, 0.0 when whole is 0."""
    if not whole:
        return 0.0
    return round(part * 100.0 / whole, 1)


def _average(values: list[int]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 1)


def get_activity_calendar(session: Session, student_id: str, days: int = DEFAULT_ACTIVITY_DAYS) -> dict[str, Any]:
    """Per-day activity of a student over the last `days` days.

    A progress row counts towards the day it was last updated. Days without
    activity are omitted.

    Args:
        session: Database session
        student_id: Student whose activity to summarize
        days: Window size, 1 to 365

    Returns:
        {"days": days, "progress_by_day": [{date, modules_active,
        modules_completed, time_spent, average_score, last_activity}, ...]}

    Raises:
        ValidationError: If days is out of range
    """
    if days < 1 or days > MAX_ACTIVITY_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_ACTIVITY_DAYS}.")

    now = utcnow()
    window_start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)

    rows = session.scalars(
        select(StudentProgress).where(
            StudentProgress.student_id == student_id,
            StudentProgress.updated_at >= window_start,
        )
    )

    buckets: dict[date, list[StudentProgress]] = defaultdict(list)
    for progress in rows:
        buckets[progress.updated_at.date()].append(progress)

    progress_by_day = []
    for day in sorted(buckets):
        entries = buckets[day]
        progress_by_day.append(
            {
                "date": day.isoformat(),
                "modules_active": len(entries),
                "modules_completed": sum(
                    1 for p in entries if p.completed and p.completed_at is not None and p.completed_at.date() == day
                ),
                "time_spent": sum(p.time_spent_minutes or 0 for p in entries),
                "average_score": _average([p.score for p in entries if p.score is not None]),
                "last_activity": max(p.updated_at for p in entries),
            }
        )

    return {"days": days, "progress_by_day": progress_by_day}


def get_teacher_stats(session: Session, actor: Actor) -> dict[str, Any]:
    """Dashboard numbers for an admin's class (the whole platform for super-admins)."""
    require_admin(actor)
    profile = session.get(Profile, actor.id)
    if profile is None:
        raise NotFoundError("Profile not found.")

    student_filter = [Profile.role == Role.STUDENT.value]
    if not actor.is_super_admin:
        student_filter.append(Profile.admin_id == actor.id)

    student_ids = list(session.scalars(select(Profile.id).where(*student_filter)))

    started = completed = 0
    scores: list[int] = []
    time_spent = 0
    if student_ids:
        for progress in session.scalars(select(StudentProgress).where(StudentProgress.student_id.in_(student_ids))):
            started += 1
            if progress.completed:
                completed += 1
            if progress.score is not None:
                scores.append(progress.score)
            time_spent += progress.time_spent_minutes or 0

    custom_modules = session.scalar(
        select(func.count(ReadingModule.id)).where(
            ReadingModule.admin_id == actor.id,
            ReadingModule.type == ModuleType.CUSTOM.value,
            ReadingModule.is_active.is_(True),
        )
    ) or 0

    return {
        "student_count": len(student_ids),
        "subscription_plan": profile.subscription_plan,
        "subscription_status": profile.subscription_status,
        "custom_module_count": custom_modules,
        "modules_started": started,
        "modules_completed": completed,
        "completion_rate": _rate(completed, started),
        "average_score": _average(scores),
        "total_time_spent": time_spent,
    }


def get_student_stats(session: Session, actor: Actor, student_id: str) -> dict[str, Any]:
    """Progress summary for one managed student."""
    student = get_managed_student(session, actor, student_id)
    rows = list(session.scalars(select(StudentProgress).where(StudentProgress.student_id == student_id)))
    completed = sum(1 for p in rows if p.completed)

    return {
        "student_id": student.id,
        "student_name": student.full_name,
        "modules_started": len(rows),
        "completed_modules": completed,
        "completion_rate": _rate(completed, len(rows)),
        "average_score": _average([p.score for p in rows if p.score is not None]),
        "time_spent": sum(p.time_spent_minutes or 0 for p in rows),
    }


def get_popular_modules(session: Session, actor: Actor, limit: int = 10) -> list[dict[str, Any]]:
    """Modules ranked by how many students started them (super-admin only)."""
    require_super_admin(actor)

    rows = session.execute(
        select(
            ReadingModule.id,
            ReadingModule.title,
            ReadingModule.type,
            func.count(StudentProgress.id).label("start_count"),
        )
        .join(StudentProgress, StudentProgress.module_id == ReadingModule.id)
        .group_by(ReadingModule.id, ReadingModule.title, ReadingModule.type)
        .order_by(func.count(StudentProgress.id).desc(), ReadingModule.title)
        .limit(limit)
    ).all()

    completions = dict(
        session.execute(
            select(StudentProgress.module_id, func.count(StudentProgress.id))
            .where(StudentProgress.completed.is_(True))
            .group_by(StudentProgress.module_id)
        ).all()
    )

    return [
        {
            "module_id": module_id,
            "title": title,
            "type": module_type,
            "start_count": start_count,
            "completion_count": completions.get(module_id, 0),
            "completion_rate": _rate(completions.get(module_id, 0), start_count),
        }
        for module_id, title, module_type, start_count in rows
    ]


def get_subscription_stats(session: Session, actor: Actor) -> dict[str, Any]:
    """Plan and status distribution plus recent revenue (super-admin only)."""
    require_super_admin(actor)
    non_students = Profile.role != Role.STUDENT.value

    by_plan = dict(
        session.execute(
            select(Profile.subscription_plan, func.count(Profile.id)).where(non_students).group_by(Profile.subscription_plan)
        ).all()
    )
    by_status = dict(
        session.execute(
            select(Profile.subscription_status, func.count(Profile.id))
            .where(non_students)
            .group_by(Profile.subscription_status)
        ).all()
    )

    since = utcnow() - timedelta(days=REVENUE_WINDOW_DAYS)
    revenue: dict[str, Decimal] = defaultdict(Decimal)
    payments = session.scalars(
        select(PaymentHistory).where(
            PaymentHistory.status == "succeeded",
            PaymentHistory.created_at >= since,
        )
    )
    for payment in payments:
        revenue[payment.created_at.date().isoformat()] += Decimal(payment.amount)

    revenue_by_day = [{"date": day, "amount": float(revenue[day])} for day in sorted(revenue)]
    return {
        "plans": by_plan,
        "statuses": by_status,
        "total_active": by_status.get("active", 0),
        "revenue_by_day": revenue_by_day,
        "revenue_total": float(sum(revenue.values(), Decimal(0))),
    }
