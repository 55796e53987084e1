"""Async HTTP client for the NoteEarly API.

Wraps httpx.AsyncClient with bearer-token handling and a refresh-token
interceptor: a 401 on an authenticated call triggers one token refresh
(shared by every request that fails while it is in flight) and the failed
request is retried once with the new token. If the refresh fails, every
waiting request fails with AuthRefreshError and the local auth state is
cleared.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

ADMIN_REFRESH_PATH = "/auth/refresh"
STUDENT_REFRESH_PATH = "/auth/student-refresh"


class ApiError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class AuthRefreshError(Exception):
    """The session could not be refreshed; the user must log in again."""


@dataclass
class AuthStore:
    """Local auth state shared by all requests of a client."""

    access_token: str | None = None
    role: str | None = None
    refresh_path: str | None = None

    def set(self, access_token: str, role: str | None, refresh_path: str) -> None:
        self.access_token = access_token
        self.role = role
        self.refresh_path = refresh_path

    def clear(self) -> None:
        self.access_token = None
        self.role = None
        self.refresh_path = None

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None


def _unwrap(response: httpx.Response) -> Any:
    """Return the envelope's data or raise ApiError."""
    try:
        body = response.json()
    except ValueError:
        body = {}

    if response.is_success:
        return body.get("data") if isinstance(body, dict) else body

    message = body.get("message") if isinstance(body, dict) else None
    raise ApiError(response.status_code, message or response.reason_phrase)


class NoteEarlyClient:
    """API client with transparent access-token refresh.

    Example:
        async with NoteEarlyClient("http://localhost:8000/api/v1") as client:
            await client.login_admin("teacher@example.com", "secret-pass")
            modules = await client.call("GET", "/reading-modules")
    """

    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
        store: AuthStore | None = None,
    ):
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.auth = store or AuthStore()
        self._refresh_task: asyncio.Task[str] | None = None

    async def __aenter__(self) -> NoteEarlyClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # =========================================================================
    # SESSION
    # =========================================================================

    async def login_admin(self, email: str, password: str) -> dict[str, Any]:
        """Log in as an admin and keep the access token."""
        response = await self._http.post("/auth/login", json={"email": email, "password": password})
        data = _unwrap(response)
        profile = data.get("profile") or {}
        self.auth.set(data["access_token"], profile.get("role"), ADMIN_REFRESH_PATH)
        logger.info("client.logged_in", role=self.auth.role)
        return data

    async def login_student(self, student_id: str, pin: str) -> dict[str, Any]:
        """Log in as a student and keep the access token."""
        response = await self._http.post("/auth/student-login", json={"student_id": student_id, "pin": pin})
        data = _unwrap(response)
        self.auth.set(data["access_token"], "STUDENT", STUDENT_REFRESH_PATH)
        logger.info("client.logged_in", role=self.auth.role)
        return data

    async def logout(self) -> None:
        try:
            await self._http.post("/auth/logout")
        finally:
            self.auth.clear()
            self._http.cookies.clear()

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, refreshing the access token once on a 401."""
        token = self.auth.access_token
        response = await self._send(method, path, token, **kwargs)

        if response.status_code != 401 or path.startswith("/auth/"):
            return response
        if token is None or self.auth.refresh_path is None:
            return response

        new_token = await self._refresh(token)
        logger.debug("client.retrying", method=method, path=path)
        return await self._send(method, path, new_token, **kwargs)

    async def call(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and return the envelope's data.

        Raises:
            ApiError: On a non-2xx response
            AuthRefreshError: If the session expired and could not be renewed
        """
        return _unwrap(await self.request(method, path, **kwargs))

    async def _send(self, method: str, path: str, token: str | None, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self._http.request(method, path, headers=headers, **kwargs)

    async def _refresh(self, failed_token: str) -> str:
        """Get a fresh access token, joining a refresh already in flight."""
        current = self.auth.access_token
        if current is not None and current != failed_token:
            # Another request already refreshed since this one was sent
            return current

        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._run_refresh())

        task = self._refresh_task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._refresh_task is task:
                self._refresh_task = None

    async def _run_refresh(self) -> str:
        refresh_path = self.auth.refresh_path
        if refresh_path is None:
            raise AuthRefreshError("Not logged in.")

        logger.info("client.refreshing", path=refresh_path)
        try:
            response = await self._http.post(refresh_path)
            data = _unwrap(response)
        except (httpx.HTTPError, ApiError) as e:
            logger.warning("client.refresh_failed", error=str(e))
            self.auth.clear()
            raise AuthRefreshError("Session expired. Please log in again.") from e

        token = (data or {}).get("access_token")
        if not token:
            self.auth.clear()
            raise AuthRefreshError("Refresh response did not include an access token.")

        self.auth.access_token = token
        return token
