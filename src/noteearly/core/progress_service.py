"""Student progress tracking and the completion state machine.

A progress row moves through three states:

    not started  ->  in progress  ->  completed

`start_progress` creates the row (idempotently), each paragraph submission
may advance `highest_paragraph_index_reached`, and submitting the last
paragraph completes the module. Admins can later score, comment on, or
override the completion of progress rows for the students they manage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from noteearly.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from noteearly.core.permissions import Actor, get_managed_student, require_admin
from noteearly.db.database import utcnow
from noteearly.db.models import (
    ParagraphSubmission,
    Profile,
    ReadingModule,
    Role,
    StudentProgress,
)

logger = structlog.get_logger(__name__)

# Fields an admin may change through update_progress
ADMIN_UPDATABLE_FIELDS = ("score", "teacher_feedback", "completed", "time_spent_minutes")

# Reading modules hold at most 40 paragraphs
MAX_PARAGRAPH_INDEX = 40


@dataclass
class SubmissionResult:
    """Outcome of a paragraph summary submission."""

    submission: ParagraphSubmission
    progress: StudentProgress
    module_completed: bool


@dataclass
class ProgressDetails:
    """A progress row with its submissions, or None if not started."""

    progress: StudentProgress | None
    submissions: list[ParagraphSubmission]


def get_progress(session: Session, student_id: str, module_id: str) -> StudentProgress | None:
    """Find the progress row for a (student, module) pair."""
    return session.scalars(
        select(StudentProgress).where(
            StudentProgress.student_id == student_id,
            StudentProgress.module_id == module_id,
        )
    ).first()


def start_progress(session: Session, student_id: str, module_id: str) -> tuple[StudentProgress, bool]:
    """Start tracking a student's attempt at a module.

    Idempotent: an existing row is returned untouched.

    Args:
        session: Database session
        student_id: Student profile id
        module_id: Reading module id

    Returns:
        Tuple of (progress row, created flag)

    Raises:
        NotFoundError: If the student or module does not exist
    """
    existing = get_progress(session, student_id, module_id)
    if existing is not None:
        logger.info("progress.already_started", student_id=student_id, module_id=module_id, progress_id=existing.id)
        return existing, False

    student = session.get(Profile, student_id)
    if student is None or student.role != Role.STUDENT.value:
        raise NotFoundError("Student not found.")

    module = session.get(ReadingModule, module_id)
    if module is None or not module.is_active:
        raise NotFoundError("Reading module not found.")

    progress = StudentProgress(
        student_id=student_id,
        module_id=module_id,
        highest_paragraph_index_reached=0,
        completed=False,
        started_at=utcnow(),
    )
    try:
        with session.begin_nested():
            session.add(progress)
    except IntegrityError as e:
        # Lost a race with a concurrent start; hand back the winner's row
        existing = get_progress(session, student_id, module_id)
        if existing is None:
            raise ConflictError("Progress already exists for this module.") from e
        logger.info("progress.start_race", student_id=student_id, module_id=module_id, progress_id=existing.id)
        return existing, False

    logger.info("progress.started", student_id=student_id, module_id=module_id, progress_id=progress.id)
    return progress, True


def submit_paragraph_summary(
    session: Session,
    student_id: str,
    module_id: str,
    paragraph_index: int,
    paragraph_summary: str,
    cumulative_summary: str,
) -> SubmissionResult:
    """Record a student's summary of one paragraph.

    Appends a submission row, advances the highest paragraph reached if this
    index is beyond it, and completes the module when the index reaches the
    module's paragraph count.

    Raises:
        ValidationError: On a bad index, empty text, or an already completed module
        NotFoundError: If progress hasn't been started or the module is gone
        ConflictError: If this paragraph was already submitted
    """
    if paragraph_index is None or paragraph_index < 1:
        raise ValidationError("Paragraph index must be 1 or greater.")
    if paragraph_index > MAX_PARAGRAPH_INDEX:
        raise ValidationError(f"Paragraph index must be {MAX_PARAGRAPH_INDEX} or less.")
    if not paragraph_summary or not paragraph_summary.strip():
        raise ValidationError("Paragraph summary is required.")
    if not cumulative_summary or not cumulative_summary.strip():
        raise ValidationError("Cumulative summary is required.")

    progress = get_progress(session, student_id, module_id)
    if progress is None:
        logger.warning("progress.submit_without_start", student_id=student_id, module_id=module_id)
        raise NotFoundError("Progress not started for this module. Cannot submit summary.")

    if progress.completed:
        raise ValidationError("Module already completed. Cannot submit further summaries.")

    module = session.get(ReadingModule, module_id)
    if module is None or module.paragraph_count <= 0:
        logger.error("progress.module_invalid", module_id=module_id)
        raise NotFoundError("Module data not found or invalid paragraph count.")

    duplicate = session.scalars(
        select(ParagraphSubmission.id).where(
            ParagraphSubmission.progress_id == progress.id,
            ParagraphSubmission.paragraph_index == paragraph_index,
        )
    ).first()
    if duplicate is not None:
        raise ConflictError(f"Summary for paragraph {paragraph_index} already submitted.")

    now = utcnow()
    submission = ParagraphSubmission(
        progress_id=progress.id,
        paragraph_index=paragraph_index,
        paragraph_summary=paragraph_summary,
        cumulative_summary=cumulative_summary,
        submitted_at=now,
    )
    session.add(submission)

    # Never past the last paragraph, so a completed row has highest == paragraph_count
    reached = min(paragraph_index, module.paragraph_count)
    if reached > (progress.highest_paragraph_index_reached or 0):
        progress.highest_paragraph_index_reached = reached

    completed = paragraph_index >= module.paragraph_count
    if completed:
        progress.completed = True
        progress.completed_at = now
        progress.final_summary = cumulative_summary
    progress.updated_at = now

    try:
        session.flush()
    except IntegrityError as e:
        raise ConflictError(f"Summary for paragraph {paragraph_index} already submitted.") from e

    logger.info(
        "progress.summary_submitted",
        student_id=student_id,
        module_id=module_id,
        paragraph_index=paragraph_index,
        submission_id=submission.id,
        completed=completed,
    )
    return SubmissionResult(submission=submission, progress=progress, module_completed=completed)


def update_progress(
    session: Session,
    actor: Actor,
    progress_id: str,
    changes: dict[str, Any],
) -> StudentProgress:
    """Apply an admin's partial update to a progress row.

    Args:
        session: Database session
        actor: Calling admin or super-admin
        progress_id: Progress row to update
        changes: Subset of score, teacher_feedback, completed, time_spent_minutes

    Returns:
        The updated progress row

    Raises:
        ValidationError: If no updatable field is given or completed is null
        NotFoundError: If the progress row doesn't exist
        PermissionDeniedError: If the caller doesn't manage the student
    """
    require_admin(actor)

    updates = {k: v for k, v in changes.items() if k in ADMIN_UPDATABLE_FIELDS}
    if not updates:
        raise ValidationError("At least one field must be provided for update.")
    if "completed" in updates and updates["completed"] is None:
        raise ValidationError("completed cannot be null.")

    progress = session.get(StudentProgress, progress_id)
    if progress is None:
        raise NotFoundError("Progress record not found.")

    if not actor.is_super_admin:
        student = session.get(Profile, progress.student_id)
        if student is None or student.admin_id != actor.id:
            raise PermissionDeniedError("You do not manage the student for this progress record.")

    now = utcnow()
    was_completed = progress.completed

    for field_name, value in updates.items():
        if field_name == "time_spent_minutes" and value is None:
            value = 0
        setattr(progress, field_name, value)

    if updates.get("teacher_feedback"):
        progress.teacher_feedback_at = now
    if updates.get("completed") and not was_completed:
        progress.completed_at = now
    progress.updated_at = now
    session.flush()

    logger.info("progress.updated_by_admin", progress_id=progress_id, admin_id=actor.id, fields=sorted(updates))
    return progress


def get_progress_details(session: Session, student_id: str, module_id: str) -> ProgressDetails:
    """Get a student's progress on a module with submissions ordered by paragraph."""
    progress = get_progress(session, student_id, module_id)
    if progress is None:
        return ProgressDetails(progress=None, submissions=[])

    submissions = list(
        session.scalars(
            select(ParagraphSubmission)
            .where(ParagraphSubmission.progress_id == progress.id)
            .order_by(ParagraphSubmission.paragraph_index)
        )
    )
    return ProgressDetails(progress=progress, submissions=submissions)


def list_student_progress(session: Session, student_id: str) -> list[StudentProgress]:
    """All progress rows for a student, most recently updated first."""
    if session.get(Profile, student_id) is None:
        raise NotFoundError("Student not found.")

    return list(
        session.scalars(
            select(StudentProgress)
            .where(StudentProgress.student_id == student_id)
            .order_by(StudentProgress.updated_at.desc())
        )
    )


def list_module_progress(session: Session, actor: Actor, module_id: str) -> list[StudentProgress]:
    """All progress rows for a module visible to the calling admin.

    Super-admins see every student's row; admins only their own students'.
    """
    require_admin(actor)
    if session.get(ReadingModule, module_id) is None:
        raise NotFoundError("Reading module not found.")

    stmt = select(StudentProgress).where(StudentProgress.module_id == module_id)
    if not actor.is_super_admin:
        stmt = stmt.join(Profile, Profile.id == StudentProgress.student_id).where(Profile.admin_id == actor.id)
    return list(session.scalars(stmt.order_by(StudentProgress.updated_at.desc())))


def list_progress_for_admin(session: Session, actor: Actor, student_id: str) -> list[StudentProgress]:
    """Progress rows of a student the caller manages."""
    get_managed_student(session, actor, student_id)
    return list_student_progress(session, student_id)


def get_progress_details_for_admin(
    session: Session, actor: Actor, student_id: str, module_id: str
) -> ProgressDetails:
    """Detailed progress of a managed student on one module."""
    get_managed_student(session, actor, student_id)
    if session.get(ReadingModule, module_id) is None:
        raise NotFoundError("Reading module not found.")
    return get_progress_details(session, student_id, module_id)
