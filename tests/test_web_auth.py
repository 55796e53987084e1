"""Tests for authentication endpoints."""

from conftest import API, PASSWORD, PIN, auth_headers

from noteearly.core.security import STUDENT_REFRESH_TYPE, create_refresh_token


def _signup(client, email="new.teacher@example.com", password="long-enough-pw"):
    return client.post(
        f"{API}/auth/signup",
        json={"email": email, "password": password, "full_name": "New Teacher"},
    )


class TestAdminAuth:
    """Tests for admin signup, login and refresh."""

    def test_signup_sets_refresh_cookie(self, client):
        """Signup returns an access token and the refresh cookie."""
        response = _signup(client)
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["access_token"]
        assert data["profile"]["role"] == "ADMIN"
        assert data["profile"]["subscription_plan"] == "free"
        assert "refresh-token" in response.cookies

    def test_signup_duplicate_email(self, client):
        _signup(client)
        response = _signup(client)
        assert response.status_code == 409

    def test_signup_short_password(self, client):
        response = _signup(client, password="short")
        assert response.status_code == 400

    def test_signup_bad_email(self, client):
        response = _signup(client, email="not-an-email")
        assert response.status_code == 400

    def test_login(self, client, seed):
        """Valid credentials log in; email match is case-insensitive."""
        seed.admin(email="teacher@example.com")
        response = client.post(f"{API}/auth/login", json={"email": "Teacher@Example.com", "password": PASSWORD})
        assert response.status_code == 200
        assert response.json()["data"]["profile"]["email"] == "teacher@example.com"

    def test_login_wrong_password(self, client, seed):
        seed.admin()
        response = client.post(f"{API}/auth/login", json={"email": "teacher@example.com", "password": "wrong-one"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password."

    def test_refresh_uses_cookie(self, client):
        """The refresh cookie set at signup renews the access token."""
        _signup(client)
        response = client.post(f"{API}/auth/refresh")
        assert response.status_code == 200
        assert response.json()["data"]["access_token"]

    def test_refresh_without_cookie(self, client):
        response = client.post(f"{API}/auth/refresh")
        assert response.status_code == 401

    def test_student_token_rejected_by_admin_refresh(self, client, seed):
        """A student refresh token can't renew an admin session."""
        student = seed.student(seed.admin())
        token = create_refresh_token(student.id, STUDENT_REFRESH_TYPE)
        response = client.post(f"{API}/auth/refresh", headers={"Cookie": f"refresh-token={token}"})
        assert response.status_code == 401

    def test_logout_clears_cookies(self, client):
        _signup(client)
        response = client.post(f"{API}/auth/logout")
        assert response.status_code == 200
        assert "refresh-token" not in client.cookies

    def test_reset_password(self, client, seed):
        """Current password must match; the new one works afterwards."""
        admin = seed.admin()
        wrong = client.post(
            f"{API}/auth/reset-password",
            json={"current_password": "not-it", "new_password": "brand-new-password"},
            headers=auth_headers(admin),
        )
        assert wrong.status_code == 403

        ok = client.post(
            f"{API}/auth/reset-password",
            json={"current_password": PASSWORD, "new_password": "brand-new-password"},
            headers=auth_headers(admin),
        )
        assert ok.status_code == 200

        login = client.post(
            f"{API}/auth/login", json={"email": "teacher@example.com", "password": "brand-new-password"}
        )
        assert login.status_code == 200


class TestStudentAuth:
    """Tests for student creation and PIN login."""

    def test_create_student_and_login(self, client, seed):
        """An admin creates a student who then logs in with the PIN."""
        admin = seed.admin()
        created = client.post(
            f"{API}/auth/admin/student",
            json={"full_name": "Pat Pupil", "pin": "4321", "age": 8, "reading_level": 3},
            headers=auth_headers(admin),
        )
        assert created.status_code == 201
        student = created.json()["data"]
        assert student["role"] == "STUDENT"
        assert student["admin_id"] == admin.id

        login = client.post(f"{API}/auth/student-login", json={"student_id": student["profile_id"], "pin": "4321"})
        assert login.status_code == 200
        assert "student_refresh_token" in login.cookies

        refreshed = client.post(f"{API}/auth/student-refresh")
        assert refreshed.status_code == 200
        assert refreshed.json()["data"]["access_token"]

    def test_wrong_pin(self, client, seed):
        student = seed.student(seed.admin())
        response = client.post(f"{API}/auth/student-login", json={"student_id": student.id, "pin": "0000"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid PIN."

    def test_unknown_student(self, client):
        response = client.post(f"{API}/auth/student-login", json={"student_id": "ghost", "pin": PIN})
        assert response.status_code == 401

    def test_pin_must_be_four_digits(self, client, seed):
        admin = seed.admin()
        response = client.post(
            f"{API}/auth/admin/student",
            json={"full_name": "Pat Pupil", "pin": "12a4"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 400

    def test_free_plan_student_limit(self, client, seed):
        """The free plan allows 3 students; the 4th is a 403."""
        admin = seed.admin()
        for i in range(3):
            seed.student(admin, full_name=f"Student {i}")

        response = client.post(
            f"{API}/auth/admin/student",
            json={"full_name": "One Too Many", "pin": "1111"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 403
        assert "Student limit (3)" in response.json()["message"]

    def test_reset_student_pin(self, client, seed):
        admin = seed.admin()
        student = seed.student(admin)
        response = client.post(
            f"{API}/auth/admin/student/reset-pin",
            json={"student_id": student.id, "new_pin": "9876"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200

        login = client.post(f"{API}/auth/student-login", json={"student_id": student.id, "pin": "9876"})
        assert login.status_code == 200

    def test_reset_pin_of_other_admins_student(self, client, seed):
        student = seed.student(seed.admin())
        stranger = seed.admin(email="stranger@example.com")
        response = client.post(
            f"{API}/auth/admin/student/reset-pin",
            json={"student_id": student.id, "new_pin": "9876"},
            headers=auth_headers(stranger),
        )
        assert response.status_code == 403
