"""Async API client."""

from noteearly.client.api_client import ApiError, AuthRefreshError, AuthStore, NoteEarlyClient

__all__ = ["ApiError", "AuthRefreshError", "AuthStore", "NoteEarlyClient"]
