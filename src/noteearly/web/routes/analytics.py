"""Analytics endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from noteearly.core import analytics_service
from noteearly.core.permissions import Actor
from noteearly.web.deps import get_admin_actor, get_current_actor, get_db, get_super_admin_actor
from noteearly.web.schemas import ApiResponse, envelope

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/my-activity", response_model=ApiResponse)
def get_my_activity(
    days: int = Query(default=analytics_service.DEFAULT_ACTIVITY_DAYS),
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Per-day activity calendar for the caller."""
    return envelope(analytics_service.get_activity_calendar(session, actor.id, days))


@router.get("/dashboard", response_model=ApiResponse)
def get_dashboard(
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Class overview for the calling admin."""
    return envelope(analytics_service.get_teacher_stats(session, actor))


@router.get("/students/{student_id}", response_model=ApiResponse)
def get_student_stats(
    student_id: str,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    return envelope(analytics_service.get_student_stats(session, actor, student_id))


@router.get("/modules/popular", response_model=ApiResponse)
def get_popular_modules(
    limit: int = Query(default=10, ge=1, le=100),
    actor: Actor = Depends(get_super_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    return envelope(analytics_service.get_popular_modules(session, actor, limit))


@router.get("/subscriptions", response_model=ApiResponse)
def get_subscription_stats(
    actor: Actor = Depends(get_super_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Plan distribution and recent revenue."""
    return envelope(analytics_service.get_subscription_stats(session, actor))
