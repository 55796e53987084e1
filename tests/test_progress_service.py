"""Tests for the progress state machine."""

import pytest

from noteearly.core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from noteearly.core.permissions import Actor
from noteearly.core import progress_service
from noteearly.core.progress_service import (
    MAX_PARAGRAPH_INDEX,
    get_progress_details,
    list_module_progress,
    list_student_progress,
    start_progress,
    submit_paragraph_summary,
    update_progress,
)


def _actor(profile):
    return Actor(id=profile.id, role=profile.role, admin_id=profile.admin_id)


@pytest.fixture
def setup(factory):
    admin = factory.admin()
    student = factory.student(admin)
    module = factory.module(paragraphs=3)
    return admin, student, module


class TestStartProgress:
    """Tests for start_progress."""

    def test_creates_row(self, session, setup):
        """First call creates a not-yet-advanced row."""
        _, student, module = setup
        progress, created = start_progress(session, student.id, module.id)

        assert created is True
        assert progress.highest_paragraph_index_reached == 0
        assert progress.completed is False
        assert progress.started_at is not None

    def test_is_idempotent(self, session, setup):
        """Second call returns the same row without touching it."""
        _, student, module = setup
        first, _ = start_progress(session, student.id, module.id)
        submit_paragraph_summary(session, student.id, module.id, 1, "One.", "One.")

        second, created = start_progress(session, student.id, module.id)

        assert created is False
        assert second.id == first.id
        assert second.highest_paragraph_index_reached == 1

    def test_concurrent_start_returns_existing(self, session, setup, monkeypatch):
        """Losing the insert race to another start hands back the stored row."""
        _, student, module = setup
        winner, _ = start_progress(session, student.id, module.id)

        lookup = progress_service.get_progress
        calls = []

        def stale_then_fresh(*args):
            calls.append(args)
            return None if len(calls) == 1 else lookup(*args)

        monkeypatch.setattr(progress_service, "get_progress", stale_then_fresh)
        progress, created = start_progress(session, student.id, module.id)

        assert created is False
        assert progress.id == winner.id
        assert len(calls) == 2

    def test_unknown_module(self, session, setup):
        """Missing module is a 404."""
        _, student, _ = setup
        with pytest.raises(NotFoundError):
            start_progress(session, student.id, "no-such-module")

    def test_unknown_student(self, session, setup):
        """Missing student is a 404."""
        _, _, module = setup
        with pytest.raises(NotFoundError):
            start_progress(session, "no-such-student", module.id)

    def test_inactive_module(self, session, factory, setup):
        """Deactivated modules can't be started."""
        _, student, _ = setup
        module = factory.module(is_active=False)
        with pytest.raises(NotFoundError):
            start_progress(session, student.id, module.id)


class TestSubmitParagraphSummary:
    """Tests for submit_paragraph_summary."""

    def test_first_paragraph_advances(self, session, setup):
        """Submitting paragraph 1 of 3 advances but does not complete."""
        _, student, module = setup
        start_progress(session, student.id, module.id)

        result = submit_paragraph_summary(session, student.id, module.id, 1, "Intro.", "Intro.")

        assert result.progress.highest_paragraph_index_reached == 1
        assert result.progress.completed is False
        assert result.module_completed is False

    def test_last_paragraph_completes(self, session, setup):
        """Submitting the final index completes with the cumulative summary."""
        _, student, module = setup
        start_progress(session, student.id, module.id)
        submit_paragraph_summary(session, student.id, module.id, 1, "A.", "A.")

        result = submit_paragraph_summary(session, student.id, module.id, 3, "C.", "A then C.")

        assert result.module_completed is True
        assert result.progress.highest_paragraph_index_reached == 3
        assert result.progress.completed is True
        assert result.progress.completed_at is not None
        assert result.progress.final_summary == "A then C."

    def test_index_past_end_completes_at_paragraph_count(self, session, setup):
        """An index beyond the module completes it without overshooting."""
        _, student, module = setup
        start_progress(session, student.id, module.id)

        result = submit_paragraph_summary(session, student.id, module.id, 7, "Skip.", "Skipped ahead.")

        assert result.module_completed is True
        assert result.progress.highest_paragraph_index_reached == 3

    def test_index_above_paragraph_cap_rejected(self, session, setup):
        """Indexes past the 40-paragraph cap are a 400 and leave progress alone."""
        _, student, module = setup
        start_progress(session, student.id, module.id)

        with pytest.raises(ValidationError) as exc_info:
            submit_paragraph_summary(session, student.id, module.id, 10**20, "Far.", "Too far.")
        assert exc_info.value.status_code == 400

        result = submit_paragraph_summary(session, student.id, module.id, MAX_PARAGRAPH_INDEX, "Last.", "All.")
        assert result.module_completed is True

    def test_highest_never_decreases(self, session, factory, setup):
        """An earlier paragraph after a later one keeps the highest index."""
        _, student, _ = setup
        module = factory.module(paragraphs=5, title="Long Story")
        start_progress(session, student.id, module.id)
        submit_paragraph_summary(session, student.id, module.id, 3, "Three.", "Three.")

        result = submit_paragraph_summary(session, student.id, module.id, 2, "Two.", "Two, three.")

        assert result.progress.highest_paragraph_index_reached == 3
        assert result.progress.completed is False

    def test_completed_rejects_more(self, session, setup):
        """A completed module rejects further submissions with 400."""
        _, student, module = setup
        start_progress(session, student.id, module.id)
        submit_paragraph_summary(session, student.id, module.id, 3, "End.", "All.")

        with pytest.raises(ValidationError) as exc_info:
            submit_paragraph_summary(session, student.id, module.id, 2, "Two.", "Two.")
        assert exc_info.value.status_code == 400
        assert "already completed" in exc_info.value.message

    def test_duplicate_index_conflicts(self, session, setup):
        """The same paragraph can't be submitted twice."""
        _, student, module = setup
        start_progress(session, student.id, module.id)
        submit_paragraph_summary(session, student.id, module.id, 1, "One.", "One.")

        with pytest.raises(ConflictError) as exc_info:
            submit_paragraph_summary(session, student.id, module.id, 1, "Again.", "Again.")
        assert exc_info.value.status_code == 409

    def test_requires_started_progress(self, session, setup):
        """Submitting before starting is a 404."""
        _, student, module = setup
        with pytest.raises(NotFoundError):
            submit_paragraph_summary(session, student.id, module.id, 1, "One.", "One.")

    @pytest.mark.parametrize(
        "index,summary,cumulative",
        [(0, "x", "x"), (-2, "x", "x"), (1, "", "x"), (1, "x", "   ")],
    )
    def test_rejects_bad_input(self, session, setup, index, summary, cumulative):
        """Index below 1 or empty text is a 400."""
        _, student, module = setup
        start_progress(session, student.id, module.id)
        with pytest.raises(ValidationError):
            submit_paragraph_summary(session, student.id, module.id, index, summary, cumulative)


class TestUpdateProgress:
    """Tests for admin updates of progress rows."""

    def test_scores_and_comments(self, session, setup):
        """Feedback stamps teacher_feedback_at."""
        admin, student, module = setup
        progress, _ = start_progress(session, student.id, module.id)

        updated = update_progress(session, _actor(admin), progress.id, {"score": 85, "teacher_feedback": "Great work"})

        assert updated.score == 85
        assert updated.teacher_feedback == "Great work"
        assert updated.teacher_feedback_at is not None

    def test_mark_completed_stamps_time(self, session, setup):
        """Flipping completed to true stamps completed_at."""
        admin, student, module = setup
        progress, _ = start_progress(session, student.id, module.id)

        updated = update_progress(session, _actor(admin), progress.id, {"completed": True})

        assert updated.completed is True
        assert updated.completed_at is not None

    def test_other_admins_student_forbidden(self, session, factory, setup):
        """An admin can't update progress of another admin's student."""
        _, student, module = setup
        other_admin = factory.admin(email="other@example.com")
        progress, _ = start_progress(session, student.id, module.id)

        with pytest.raises(PermissionDeniedError) as exc_info:
            update_progress(session, _actor(other_admin), progress.id, {"score": 10})
        assert exc_info.value.status_code == 403

    def test_super_admin_may_update_any(self, session, factory, setup):
        """Super-admins bypass the ownership check."""
        _, student, module = setup
        root = factory.super_admin()
        progress, _ = start_progress(session, student.id, module.id)

        updated = update_progress(session, _actor(root), progress.id, {"time_spent_minutes": 12})
        assert updated.time_spent_minutes == 12

    def test_null_completed_rejected(self, session, setup):
        """completed can't be cleared to null."""
        admin, student, module = setup
        progress, _ = start_progress(session, student.id, module.id)

        with pytest.raises(ValidationError):
            update_progress(session, _actor(admin), progress.id, {"completed": None})
        assert progress.completed is False

    def test_requires_a_field(self, session, setup):
        """An empty update is a 400."""
        admin, student, module = setup
        progress, _ = start_progress(session, student.id, module.id)
        with pytest.raises(ValidationError):
            update_progress(session, _actor(admin), progress.id, {"final_summary": "nope"})

    def test_missing_row(self, session, setup):
        admin, _, _ = setup
        with pytest.raises(NotFoundError):
            update_progress(session, _actor(admin), "missing", {"score": 1})

    def test_students_cannot_update(self, session, setup):
        admin, student, module = setup
        progress, _ = start_progress(session, student.id, module.id)
        with pytest.raises(PermissionDeniedError):
            update_progress(session, _actor(student), progress.id, {"score": 100})


class TestProgressQueries:
    """Tests for progress read operations."""

    def test_details_not_started(self, session, setup):
        """Details of an unstarted module are empty."""
        _, student, module = setup
        details = get_progress_details(session, student.id, module.id)
        assert details.progress is None
        assert details.submissions == []

    def test_details_ordered_by_paragraph(self, session, setup):
        """Submissions come back ordered by paragraph index."""
        _, student, module = setup
        start_progress(session, student.id, module.id)
        submit_paragraph_summary(session, student.id, module.id, 2, "Two.", "Two.")
        submit_paragraph_summary(session, student.id, module.id, 1, "One.", "One, two.")

        details = get_progress_details(session, student.id, module.id)
        assert [s.paragraph_index for s in details.submissions] == [1, 2]

    def test_list_student_progress(self, session, factory, setup):
        _, student, module = setup
        other = factory.module(title="Second Book")
        start_progress(session, student.id, module.id)
        start_progress(session, student.id, other.id)

        rows = list_student_progress(session, student.id)
        assert {r.module_id for r in rows} == {module.id, other.id}

    def test_module_progress_scoped_to_admin(self, session, factory, setup):
        """Admins only see their own students' rows for a module."""
        admin, student, module = setup
        other_admin = factory.admin(email="other@example.com")
        other_student = factory.student(other_admin, full_name="Olive Other")
        start_progress(session, student.id, module.id)
        start_progress(session, other_student.id, module.id)

        rows = list_module_progress(session, _actor(admin), module.id)
        assert [r.student_id for r in rows] == [student.id]

        root_rows = list_module_progress(session, _actor(factory.super_admin()), module.id)
        assert len(root_rows) == 2
