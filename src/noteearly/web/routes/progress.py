"""Student progress endpoints."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from noteearly.core import progress_service
from noteearly.core.permissions import Actor
from noteearly.web.deps import get_admin_actor, get_current_actor, get_db
from noteearly.web.schemas import (
    AdminUpdateProgressRequest,
    ApiResponse,
    ProgressDetailsResponse,
    ProgressResponse,
    ProgressStatus,
    StartProgressRequest,
    SubmitSummaryRequest,
    SubmitSummaryResult,
    envelope,
)

router = APIRouter(prefix="/progress", tags=["progress"])


@router.post("/start", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def start_progress(
    body: StartProgressRequest,
    response: Response,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Start (or resume) the caller's progress on a module."""
    progress, created = progress_service.start_progress(session, actor.id, body.module_id)
    if not created:
        response.status_code = status.HTTP_200_OK
        return envelope(ProgressResponse.model_validate(progress), "Progress already exists.")
    return envelope(ProgressResponse.model_validate(progress), "Progress tracking started.")


@router.post("/submit-summary", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def submit_summary(
    body: SubmitSummaryRequest,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Submit the caller's summary of one paragraph."""
    result = progress_service.submit_paragraph_summary(
        session,
        actor.id,
        body.module_id,
        body.paragraph_index,
        body.paragraph_summary,
        body.cumulative_summary,
    )

    message = f"Summary for paragraph {body.paragraph_index} submitted successfully."
    if result.module_completed:
        message += " Module completed!"

    return envelope(
        SubmitSummaryResult(
            submission_id=result.submission.id,
            progress_status=ProgressStatus(
                completed=result.progress.completed,
                highest_paragraph_index_reached=result.progress.highest_paragraph_index_reached,
                final_summary=result.progress.final_summary,
            ),
        ),
        message,
    )


@router.get("/details/{module_id}", response_model=ApiResponse)
def get_progress_details(
    module_id: str,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """The caller's progress on a module with its submissions."""
    details = progress_service.get_progress_details(session, actor.id, module_id)
    return envelope(ProgressDetailsResponse.model_validate(details))


@router.get("/my-progress", response_model=ApiResponse)
def get_my_progress(
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """All of the caller's progress rows."""
    rows = progress_service.list_student_progress(session, actor.id)
    return envelope([ProgressResponse.model_validate(p) for p in rows])


@router.patch("/admin/update/{progress_id}", response_model=ApiResponse)
def update_progress(
    progress_id: str,
    body: AdminUpdateProgressRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Score, comment on, or override a managed student's progress."""
    progress = progress_service.update_progress(session, actor, progress_id, body.model_dump(exclude_unset=True))
    return envelope(ProgressResponse.model_validate(progress), "Progress updated successfully.")


@router.get("/admin/module/{module_id}", response_model=ApiResponse)
def get_module_progress(
    module_id: str,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Progress of the caller's students on one module."""
    rows = progress_service.list_module_progress(session, actor, module_id)
    return envelope([ProgressResponse.model_validate(p) for p in rows])


@router.get("/admin/student/{student_id}", response_model=ApiResponse)
def get_student_progress(
    student_id: str,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """All progress of a managed student."""
    rows = progress_service.list_progress_for_admin(session, actor, student_id)
    return envelope([ProgressResponse.model_validate(p) for p in rows])


@router.get("/admin/student/{student_id}/module/{module_id}", response_model=ApiResponse)
def get_student_module_progress(
    student_id: str,
    module_id: str,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """A managed student's progress on one module with submissions."""
    details = progress_service.get_progress_details_for_admin(session, actor, student_id, module_id)
    return envelope(ProgressDetailsResponse.model_validate(details))
