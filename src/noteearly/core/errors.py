"""Domain errors.

Every error carries the HTTP status the web layer should answer with, so
services can raise them without knowing about FastAPI.
"""


class AppError(Exception):
    """Base class for expected, client-facing errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(AppError):
    """Raised when input fails a business rule (400)."""

    status_code = 400


class AuthenticationError(AppError):
    """Raised when credentials or tokens are missing or invalid (401)."""

    status_code = 401


class PermissionDeniedError(AppError):
    """Raised when the caller may not perform the action (403)."""

    status_code = 403


class NotFoundError(AppError):
    """Raised when a referenced entity does not exist (404)."""

    status_code = 404


class ConflictError(AppError):
    """Raised on uniqueness violations (409)."""

    status_code = 409
