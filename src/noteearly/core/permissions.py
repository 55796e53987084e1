"""Caller identity and ownership checks shared by the services."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from noteearly.core.errors import NotFoundError, PermissionDeniedError
from noteearly.db.models import Profile, Role


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as decoded from the access token."""

    id: str
    role: str
    admin_id: str | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN.value

    @property
    def is_admin(self) -> bool:
        """True for admins and super-admins."""
        return self.role in (Role.ADMIN.value, Role.SUPER_ADMIN.value)

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT.value


def require_admin(actor: Actor) -> None:
    """Raise unless the caller is an admin or super-admin."""
    if not actor.is_admin:
        raise PermissionDeniedError("Admin access required.")


def require_super_admin(actor: Actor) -> None:
    """Raise unless the caller is a super-admin."""
    if not actor.is_super_admin:
        raise PermissionDeniedError("Super-admin access required.")


def get_managed_student(session: Session, actor: Actor, student_id: str) -> Profile:
    """Load a student the caller is allowed to manage.

    Super-admins manage every student; admins only the students whose
    admin_id points at them.

    Raises:
        NotFoundError: If no student has this id
        PermissionDeniedError: If the caller doesn't manage the student
    """
    require_admin(actor)
    student = session.get(Profile, student_id)
    if student is None or student.role != Role.STUDENT.value:
        raise NotFoundError("Student not found.")
    if not actor.is_super_admin and student.admin_id != actor.id:
        raise PermissionDeniedError("You do not manage this student.")
    return student
