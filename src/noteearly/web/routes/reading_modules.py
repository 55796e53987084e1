"""Reading module, paragraph and vocabulary endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from noteearly.core import reading_service
from noteearly.core.permissions import Actor
from noteearly.web.deps import get_admin_actor, get_current_actor, get_db, get_super_admin_actor
from noteearly.web.schemas import (
    ApiResponse,
    ModuleCreateRequest,
    ModuleResponse,
    ModuleUpdateRequest,
    Paragraph,
    VocabularyCreateRequest,
    VocabularyResponse,
    VocabularyUpdateRequest,
    envelope,
)

router = APIRouter(prefix="/reading-modules", tags=["reading-modules"])


# =============================================================================
# MODULES
# =============================================================================


@router.get("", response_model=ApiResponse)
def list_modules(
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Active modules visible to the caller."""
    modules = reading_service.list_visible_modules(session, actor)
    return envelope([ModuleResponse.model_validate(m) for m in modules])


@router.get("/admin/my-modules", response_model=ApiResponse)
def list_my_modules(
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """The caller's own custom modules, including deactivated ones."""
    modules = reading_service.list_admin_modules(session, actor)
    return envelope([ModuleResponse.model_validate(m) for m in modules])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_module(
    body: ModuleCreateRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Create a custom module (plan limits apply)."""
    module = reading_service.create_custom_module(session, actor, body.model_dump(exclude_none=True))
    return envelope(ModuleResponse.model_validate(module), "Module created successfully.")


@router.post("/curated", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_curated_module(
    body: ModuleCreateRequest,
    actor: Actor = Depends(get_super_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Publish a curated module."""
    module = reading_service.create_curated_module(session, actor, body.model_dump(exclude_none=True))
    return envelope(ModuleResponse.model_validate(module), "Curated module created successfully.")


@router.get("/{module_id}", response_model=ApiResponse)
def get_module(
    module_id: str,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    module = reading_service.get_module(session, actor, module_id)
    return envelope(ModuleResponse.model_validate(module))


@router.get("/{module_id}/paragraphs/{paragraph_index}", response_model=ApiResponse)
def get_paragraph(
    module_id: str,
    paragraph_index: int,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """One paragraph by its 1-based index."""
    paragraph = reading_service.get_paragraph(session, actor, module_id, paragraph_index)
    return envelope(Paragraph(**paragraph))


@router.patch("/{module_id}", response_model=ApiResponse)
def update_module(
    module_id: str,
    body: ModuleUpdateRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    module = reading_service.update_module(session, actor, module_id, body.model_dump(exclude_unset=True))
    return envelope(ModuleResponse.model_validate(module), "Module updated successfully.")


@router.delete("/{module_id}", response_model=ApiResponse)
def delete_module(
    module_id: str,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Deactivate a module."""
    module = reading_service.delete_module(session, actor, module_id)
    return envelope(ModuleResponse.model_validate(module), "Module deleted successfully.")


# =============================================================================
# VOCABULARY
# =============================================================================


@router.get("/{module_id}/vocabulary", response_model=ApiResponse)
def list_module_vocabulary(
    module_id: str,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    entries = reading_service.list_module_vocabulary(session, actor, module_id)
    return envelope([VocabularyResponse.model_validate(v) for v in entries])


@router.get("/{module_id}/paragraphs/{paragraph_index}/vocabulary", response_model=ApiResponse)
def list_paragraph_vocabulary(
    module_id: str,
    paragraph_index: int,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    entries = reading_service.list_paragraph_vocabulary(session, actor, module_id, paragraph_index)
    return envelope([VocabularyResponse.model_validate(v) for v in entries])


@router.post("/{module_id}/vocabulary", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_vocabulary(
    module_id: str,
    body: VocabularyCreateRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    """Define a word for one paragraph of a module."""
    entry = reading_service.create_vocabulary(session, actor, module_id, body.model_dump())
    return envelope(VocabularyResponse.model_validate(entry), "Vocabulary entry created successfully.")


@router.patch("/vocabulary/{vocabulary_id}", response_model=ApiResponse)
def update_vocabulary(
    vocabulary_id: str,
    body: VocabularyUpdateRequest,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    entry = reading_service.update_vocabulary(session, actor, vocabulary_id, body.model_dump(exclude_unset=True))
    return envelope(VocabularyResponse.model_validate(entry), "Vocabulary entry updated successfully.")


@router.delete("/vocabulary/{vocabulary_id}", response_model=ApiResponse)
def delete_vocabulary(
    vocabulary_id: str,
    actor: Actor = Depends(get_admin_actor),
    session: Session = Depends(get_db),
) -> ApiResponse:
    reading_service.delete_vocabulary(session, actor, vocabulary_id)
    return envelope(message="Vocabulary entry deleted successfully.")
