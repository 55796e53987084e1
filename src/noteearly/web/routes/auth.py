"""Authentication endpoints.

Access tokens are returned in the body; refresh tokens live in httpOnly
cookies (`refresh-token` for admins, `student_refresh_token` for students).
"""

from fastapi import APIRouter, Cookie, Depends, Response, status
from sqlalchemy.orm import Session

from noteearly.config.app_config import load_app_config
from noteearly.core import auth_service
from noteearly.core.permissions import Actor
from noteearly.core.profile_service import get_profile, to_profile_dto
from noteearly.web.deps import get_admin_actor, get_db
from noteearly.web.schemas import (
    AdminLoginRequest,
    AdminSignupRequest,
    ApiResponse,
    PasswordResetRequest,
    PinResetRequest,
    ProfileResponse,
    StudentCreateRequest,
    StudentLoginRequest,
    TokenResponse,
    envelope,
)

router = APIRouter(prefix="/auth", tags=["auth"])

ADMIN_REFRESH_COOKIE = "refresh-token"
STUDENT_REFRESH_COOKIE = "student_refresh_token"


def _set_refresh_cookie(response: Response, name: str, token: str) -> None:
    auth = load_app_config().auth
    response.set_cookie(
        key=name,
        value=token,
        max_age=auth.refresh_token_expire_seconds,
        httponly=True,
        secure=auth.cookie_secure,
        samesite=auth.cookie_samesite,
        path="/",
    )


def _clear_refresh_cookie(response: Response, name: str) -> None:
    auth = load_app_config().auth
    response.delete_cookie(
        key=name,
        path="/",
        httponly=True,
        secure=auth.cookie_secure,
        samesite=auth.cookie_samesite,
    )


@router.post("/signup", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def signup(
    body: AdminSignupRequest,
    response: Response,
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Register a new admin account."""
    result = auth_service.signup_admin(session, body.email, body.password, body.full_name)
    _set_refresh_cookie(response, ADMIN_REFRESH_COOKIE, result.refresh_token)
    return envelope(
        TokenResponse(
            access_token=result.access_token,
            profile=ProfileResponse(**get_profile(session, result.profile.id)),
        ),
        "Admin account created successfully.",
    )


@router.post("/login", response_model=ApiResponse)
def login(
    body: AdminLoginRequest,
    response: Response,
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Log an admin in with email and password."""
    result = auth_service.login_admin(session, body.email, body.password)
    _set_refresh_cookie(response, ADMIN_REFRESH_COOKIE, result.refresh_token)
    return envelope(
        TokenResponse(
            access_token=result.access_token,
            profile=ProfileResponse(**get_profile(session, result.profile.id)),
        ),
        "Login successful.",
    )


@router.post("/refresh", response_model=ApiResponse)
def refresh(
    response: Response,
    refresh_token: str | None = Cookie(default=None, alias=ADMIN_REFRESH_COOKIE),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Rotate the admin refresh cookie and issue a new access token."""
    result = auth_service.refresh_admin_session(session, refresh_token)
    _set_refresh_cookie(response, ADMIN_REFRESH_COOKIE, result.refresh_token)
    return envelope(TokenResponse(access_token=result.access_token), "Token refreshed.")


@router.post("/student-login", response_model=ApiResponse)
def student_login(
    body: StudentLoginRequest,
    response: Response,
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Log a student in with their id and PIN."""
    result = auth_service.login_student(session, body.student_id, body.pin)
    _set_refresh_cookie(response, STUDENT_REFRESH_COOKIE, result.refresh_token)
    return envelope(
        TokenResponse(access_token=result.access_token, profile=ProfileResponse(**to_profile_dto(result.profile))),
        "Student login successful.",
    )


@router.post("/student-refresh", response_model=ApiResponse)
def student_refresh(
    refresh_token: str | None = Cookie(default=None, alias=STUDENT_REFRESH_COOKIE),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Issue a new student access token from the refresh cookie."""
    access_token = auth_service.refresh_student_session(session, refresh_token)
    return envelope(TokenResponse(access_token=access_token), "Token refreshed.")


@router.post("/logout", response_model=ApiResponse)
def logout(response: Response) -> ApiResponse:
    """Clear both refresh cookies."""
    _clear_refresh_cookie(response, ADMIN_REFRESH_COOKIE)
    _clear_refresh_cookie(response, STUDENT_REFRESH_COOKIE)
    return envelope(message="Logged out successfully.")


@router.post("/reset-password", response_model=ApiResponse)
def reset_password(
    body: PasswordResetRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Change the calling admin's password."""
    auth_service.reset_admin_password(session, actor, body.current_password, body.new_password)
    return envelope(message="Password updated successfully.")


@router.post("/admin/student", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_student(
    body: StudentCreateRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Create a student managed by the calling admin."""
    student = auth_service.create_student(
        session,
        actor,
        full_name=body.full_name,
        pin=body.pin,
        age=body.age,
        reading_level=body.reading_level,
    )
    return envelope(ProfileResponse(**to_profile_dto(student)), "Student created successfully.")


@router.post("/admin/student/reset-pin", response_model=ApiResponse)
def reset_student_pin(
    body: PinResetRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Set a new PIN for a managed student."""
    auth_service.reset_student_pin(session, actor, body.student_id, body.new_pin)
    return envelope(message="Student PIN reset successfully.")
