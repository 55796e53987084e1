"""Profile endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from noteearly.core import profile_service
from noteearly.core.permissions import Actor
from noteearly.web.deps import get_admin_actor, get_current_actor, get_db, get_super_admin_actor
from noteearly.web.schemas import (
    AdminStudentUpdateRequest,
    ApiResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    envelope,
)

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/me", response_model=ApiResponse)
def get_my_profile(
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Get the caller's profile."""
    return envelope(ProfileResponse(**profile_service.get_profile(session, actor.id)))


@router.patch("/me", response_model=ApiResponse)
def update_my_profile(
    body: ProfileUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Update the caller's name or avatar (admins only)."""
    dto = profile_service.update_my_profile(session, actor, body.model_dump(exclude_unset=True))
    return envelope(ProfileResponse(**dto), "Profile updated successfully.")


@router.get("/admin/students", response_model=ApiResponse)
def list_my_students(
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """List the students managed by the caller."""
    students = profile_service.list_admin_students(session, actor)
    return envelope([ProfileResponse(**s) for s in students])


@router.get("/admin/all-students", response_model=ApiResponse)
def list_all_students(
    actor: Actor = Depends(get_super_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """List every student on the platform."""
    students = profile_service.list_all_students(session, actor)
    return envelope([ProfileResponse(**s) for s in students])


@router.get("/admin/students/{student_id}", response_model=ApiResponse)
def get_student(
    student_id: str,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Get a managed student's profile."""
    return envelope(ProfileResponse(**profile_service.get_student_for_admin(session, actor, student_id)))


@router.patch("/admin/students/{student_id}", response_model=ApiResponse)
def update_student(
    student_id: str,
    body: AdminStudentUpdateRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Update a managed student's profile."""
    dto = profile_service.update_student_by_admin(session, actor, student_id, body.model_dump(exclude_unset=True))
    return envelope(ProfileResponse(**dto), "Student profile updated successfully.")


@router.delete("/admin/students/{student_id}", response_model=ApiResponse)
def delete_student(
    student_id: str,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Delete a managed student and their progress."""
    dto = profile_service.delete_student(session, actor, student_id)
    return envelope(ProfileResponse(**dto), "Student deleted successfully.")
