"""Tests for the async API client and its token refresh interceptor."""

import asyncio
import json

import httpx
import pytest

from noteearly.client import ApiError, AuthRefreshError, NoteEarlyClient


class FakeApi:
    """In-process stand-in for the API, served through httpx.MockTransport."""

    def __init__(self, refresh_ok: bool = True, accept_refreshed: bool = True):
        self.refresh_ok = refresh_ok
        self.accept_refreshed = accept_refreshed
        self.refresh_calls = 0
        self.requests: list[tuple[str, str | None]] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        auth = request.headers.get("Authorization")
        self.requests.append((path, auth))

        if path == "/auth/login":
            return self._ok({"access_token": "stale", "profile": {"role": "ADMIN"}})
        if path == "/auth/student-login":
            return self._ok({"access_token": "stale", "profile": {"role": "STUDENT"}})
        if path in ("/auth/refresh", "/auth/student-refresh"):
            self.refresh_calls += 1
            # hold the refresh open so concurrent 401s pile up behind it
            await asyncio.sleep(0.05)
            if not self.refresh_ok:
                return self._error(401, "Refresh token is invalid or expired.")
            return self._ok({"access_token": "fresh"})

        if auth == "Bearer fresh" and self.accept_refreshed:
            return self._ok({"path": path})
        return self._error(401, "Access token is invalid or expired.")

    @staticmethod
    def _ok(data):
        return httpx.Response(200, content=json.dumps({"status": "success", "message": None, "data": data}))

    @staticmethod
    def _error(status_code, message):
        return httpx.Response(
            status_code, content=json.dumps({"status": "error", "message": message, "data": None})
        )


def _client(api: FakeApi) -> NoteEarlyClient:
    return NoteEarlyClient("http://testserver/api/v1", transport=httpx.MockTransport(api.handler))


class TestLogin:
    """Tests for login and logout."""

    @pytest.mark.asyncio
    async def test_login_admin_stores_token(self):
        api = FakeApi()
        async with _client(api) as client:
            await client.login_admin("teacher@example.com", "secret-password")
            assert client.auth.access_token == "stale"
            assert client.auth.role == "ADMIN"
            assert client.auth.refresh_path == "/auth/refresh"

    @pytest.mark.asyncio
    async def test_login_student_uses_student_refresh(self):
        api = FakeApi()
        async with _client(api) as client:
            await client.login_student("student-1", "1234")
            await client.call("GET", "/progress/my-progress")
        assert ("/auth/student-refresh", None) in api.requests

    @pytest.mark.asyncio
    async def test_logout_clears_state(self):
        api = FakeApi()
        async with _client(api) as client:
            await client.login_admin("teacher@example.com", "secret-password")
            await client.logout()
            assert client.auth.is_authenticated is False


class TestRefreshInterceptor:
    """Tests for the single-flight refresh on 401."""

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_and_retried(self):
        api = FakeApi()
        async with _client(api) as client:
            await client.login_admin("teacher@example.com", "secret-password")
            data = await client.call("GET", "/profiles/me")

        assert data == {"path": "/profiles/me"}
        assert api.refresh_calls == 1
        assert client.auth.access_token == "fresh"

    @pytest.mark.asyncio
    async def test_concurrent_401s_share_one_refresh(self):
        """Three requests failing together trigger exactly one refresh."""
        api = FakeApi()
        async with _client(api) as client:
            await client.login_admin("teacher@example.com", "secret-password")
            results = await asyncio.gather(
                client.call("GET", "/profiles/me"),
                client.call("GET", "/reading-modules"),
                client.call("GET", "/progress/my-progress"),
            )

        assert api.refresh_calls == 1
        assert [r["path"] for r in results] == ["/profiles/me", "/reading-modules", "/progress/my-progress"]

    @pytest.mark.asyncio
    async def test_failed_refresh_fails_every_waiter(self):
        """A rejected refresh fails all queued requests and clears auth."""
        api = FakeApi(refresh_ok=False)
        async with _client(api) as client:
            await client.login_admin("teacher@example.com", "secret-password")
            results = await asyncio.gather(
                client.call("GET", "/profiles/me"),
                client.call("GET", "/reading-modules"),
                client.call("GET", "/progress/my-progress"),
                return_exceptions=True,
            )

            assert all(isinstance(r, AuthRefreshError) for r in results)
            assert client.auth.is_authenticated is False
        assert api.refresh_calls == 1

    @pytest.mark.asyncio
    async def test_retry_happens_once(self):
        """A 401 after the refresh is returned, not retried again."""
        api = FakeApi(accept_refreshed=False)
        async with _client(api) as client:
            await client.login_admin("teacher@example.com", "secret-password")
            with pytest.raises(ApiError) as exc_info:
                await client.call("GET", "/profiles/me")

        assert exc_info.value.status_code == 401
        assert api.refresh_calls == 1
        assert [p for p, _ in api.requests].count("/profiles/me") == 2

    @pytest.mark.asyncio
    async def test_auth_paths_not_intercepted(self):
        api = FakeApi()
        async with _client(api) as client:
            response = await client.request("POST", "/auth/refresh-denied")
        assert response.status_code == 401
        assert api.refresh_calls == 0

    @pytest.mark.asyncio
    async def test_anonymous_401_not_refreshed(self):
        api = FakeApi()
        async with _client(api) as client:
            with pytest.raises(ApiError):
                await client.call("GET", "/profiles/me")
        assert api.refresh_calls == 0
