"""Tests for progress endpoints."""

import pytest

from conftest import API, auth_headers


@pytest.fixture
def classroom(seed):
    admin = seed.admin()
    student = seed.student(admin)
    module = seed.module(paragraphs=3)
    return admin, student, module


def _submit(client, student, module, index, summary="Summary.", cumulative="So far."):
    return client.post(
        f"{API}/progress/submit-summary",
        json={
            "module_id": module.id,
            "paragraph_index": index,
            "paragraph_summary": summary,
            "cumulative_summary": cumulative,
        },
        headers=auth_headers(student),
    )


class TestStartProgress:
    """Tests for POST /progress/start."""

    def test_start_then_already_exists(self, client, classroom):
        """First start is 201, repeat is 200 with the same row."""
        _, student, module = classroom
        headers = auth_headers(student)

        first = client.post(f"{API}/progress/start", json={"module_id": module.id}, headers=headers)
        assert first.status_code == 201
        body = first.json()
        assert body["status"] == "success"
        assert body["message"] == "Progress tracking started."
        assert body["data"]["highest_paragraph_index_reached"] == 0

        second = client.post(f"{API}/progress/start", json={"module_id": module.id}, headers=headers)
        assert second.status_code == 200
        assert second.json()["message"] == "Progress already exists."
        assert second.json()["data"]["id"] == body["data"]["id"]

    def test_requires_token(self, client, classroom):
        """Missing bearer token is a 401 envelope."""
        _, _, module = classroom
        response = client.post(f"{API}/progress/start", json={"module_id": module.id})
        assert response.status_code == 401
        assert response.json()["status"] == "error"

    def test_unknown_module(self, client, classroom):
        _, student, _ = classroom
        response = client.post(f"{API}/progress/start", json={"module_id": "nope"}, headers=auth_headers(student))
        assert response.status_code == 404


class TestSubmitSummary:
    """Tests for POST /progress/submit-summary."""

    def test_walkthrough_to_completion(self, client, classroom):
        """Paragraph 1 advances, paragraph 3 completes the module."""
        _, student, module = classroom
        client.post(f"{API}/progress/start", json={"module_id": module.id}, headers=auth_headers(student))

        first = _submit(client, student, module, 1)
        assert first.status_code == 201
        assert first.json()["message"] == "Summary for paragraph 1 submitted successfully."
        status = first.json()["data"]["progress_status"]
        assert status == {"completed": False, "highest_paragraph_index_reached": 1, "final_summary": None}

        last = _submit(client, student, module, 3, cumulative="The whole story.")
        assert last.status_code == 201
        assert last.json()["message"] == "Summary for paragraph 3 submitted successfully. Module completed!"
        status = last.json()["data"]["progress_status"]
        assert status["completed"] is True
        assert status["highest_paragraph_index_reached"] == 3
        assert status["final_summary"] == "The whole story."

    def test_after_completion_is_rejected(self, client, classroom):
        """Submitting to a completed module is a 400."""
        _, student, module = classroom
        client.post(f"{API}/progress/start", json={"module_id": module.id}, headers=auth_headers(student))
        _submit(client, student, module, 3)

        response = _submit(client, student, module, 2)
        assert response.status_code == 400
        assert response.json()["message"] == "Module already completed. Cannot submit further summaries."

    def test_duplicate_paragraph(self, client, classroom):
        _, student, module = classroom
        client.post(f"{API}/progress/start", json={"module_id": module.id}, headers=auth_headers(student))
        _submit(client, student, module, 1)

        response = _submit(client, student, module, 1)
        assert response.status_code == 409

    def test_schema_validation_is_400(self, client, classroom):
        """Paragraph index 0 fails validation with 400."""
        _, student, module = classroom
        response = _submit(client, student, module, 0)
        assert response.status_code == 400
        assert "paragraph_index" in response.json()["message"]

    def test_huge_index_is_400(self, client, classroom):
        """An index far beyond any module fails validation instead of reaching the database."""
        _, student, module = classroom
        client.post(f"{API}/progress/start", json={"module_id": module.id}, headers=auth_headers(student))

        response = _submit(client, student, module, 10**20)
        assert response.status_code == 400
        assert "paragraph_index" in response.json()["message"]

    def test_details_and_my_progress(self, client, classroom):
        """Details list submissions; my-progress lists the row."""
        _, student, module = classroom
        headers = auth_headers(student)
        client.post(f"{API}/progress/start", json={"module_id": module.id}, headers=headers)
        _submit(client, student, module, 2)
        _submit(client, student, module, 1)

        details = client.get(f"{API}/progress/details/{module.id}", headers=headers).json()["data"]
        assert details["progress"]["module_id"] == module.id
        assert [s["paragraph_index"] for s in details["submissions"]] == [1, 2]

        mine = client.get(f"{API}/progress/my-progress", headers=headers).json()["data"]
        assert len(mine) == 1


class TestAdminProgress:
    """Tests for the admin progress endpoints."""

    def _started(self, client, student, module):
        response = client.post(f"{API}/progress/start", json={"module_id": module.id}, headers=auth_headers(student))
        return response.json()["data"]["id"]

    def test_admin_scores_own_student(self, client, classroom):
        admin, student, module = classroom
        progress_id = self._started(client, student, module)

        response = client.patch(
            f"{API}/progress/admin/update/{progress_id}",
            json={"score": 90, "teacher_feedback": "Lovely summaries."},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["score"] == 90
        assert data["teacher_feedback_at"] is not None

    def test_other_admin_forbidden(self, client, seed, classroom):
        """Another admin's student is off limits."""
        _, student, module = classroom
        stranger = seed.admin(email="stranger@example.com")
        progress_id = self._started(client, student, module)

        response = client.patch(
            f"{API}/progress/admin/update/{progress_id}",
            json={"score": 10},
            headers=auth_headers(stranger),
        )
        assert response.status_code == 403

    def test_empty_update(self, client, classroom):
        admin, student, module = classroom
        progress_id = self._started(client, student, module)

        response = client.patch(f"{API}/progress/admin/update/{progress_id}", json={}, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_score_out_of_range(self, client, classroom):
        admin, student, module = classroom
        progress_id = self._started(client, student, module)

        response = client.patch(
            f"{API}/progress/admin/update/{progress_id}", json={"score": 101}, headers=auth_headers(admin)
        )
        assert response.status_code == 400

    def test_null_completed_rejected(self, client, classroom):
        """completed may be omitted but never set to null."""
        admin, student, module = classroom
        progress_id = self._started(client, student, module)

        response = client.patch(
            f"{API}/progress/admin/update/{progress_id}", json={"completed": None}, headers=auth_headers(admin)
        )
        assert response.status_code == 400
        assert response.json()["status"] == "error"

    def test_student_cannot_use_admin_routes(self, client, classroom):
        _, student, module = classroom
        response = client.get(f"{API}/progress/admin/module/{module.id}", headers=auth_headers(student))
        assert response.status_code == 403

    def test_admin_views(self, client, classroom):
        """Module, student and per-module views for a managed student."""
        admin, student, module = classroom
        self._started(client, student, module)
        _submit(client, student, module, 1)
        headers = auth_headers(admin)

        by_module = client.get(f"{API}/progress/admin/module/{module.id}", headers=headers)
        assert [p["student_id"] for p in by_module.json()["data"]] == [student.id]

        by_student = client.get(f"{API}/progress/admin/student/{student.id}", headers=headers)
        assert len(by_student.json()["data"]) == 1

        detail = client.get(f"{API}/progress/admin/student/{student.id}/module/{module.id}", headers=headers)
        assert len(detail.json()["data"]["submissions"]) == 1
