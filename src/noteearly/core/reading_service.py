"""Reading modules, paragraph lookup and per-paragraph vocabulary.

Curated modules are published by super-admins and visible to everyone.
Custom modules belong to one admin and are visible to that admin and their
students. Deleting a module only deactivates it so existing progress keeps
its reference.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from noteearly.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from noteearly.core.permissions import Actor, require_admin, require_super_admin
from noteearly.core.subscription_service import (
    ensure_custom_module_capacity,
    record_custom_module_created,
)
from noteearly.db.models import ModuleType, ReadingModule, StudentProgress, Vocabulary
from noteearly.utils.validators import validate_structured_content

logger = structlog.get_logger(__name__)

MODULE_FIELDS = (
    "title",
    "structured_content",
    "level",
    "genre",
    "language",
    "description",
    "image_url",
    "estimated_reading_time",
    "author_first_name",
    "author_last_name",
    "is_active",
)


def _build_module(data: dict[str, Any], module_type: ModuleType, admin_id: str | None) -> ReadingModule:
    content = validate_structured_content(data.get("structured_content") or [])
    module = ReadingModule(
        type=module_type.value,
        admin_id=admin_id,
        structured_content=content,
        paragraph_count=len(content),
    )
    for field_name in MODULE_FIELDS:
        if field_name != "structured_content" and field_name in data and data[field_name] is not None:
            setattr(module, field_name, data[field_name])
    return module


def create_custom_module(session: Session, actor: Actor, data: dict[str, Any]) -> ReadingModule:
    """Create a custom module owned by the calling admin.

    Raises:
        PermissionDeniedError: If the caller isn't an admin or the plan's
            custom module limit has been reached
        ValidationError: If the content is empty or has blank paragraphs
    """
    require_admin(actor)
    current = ensure_custom_module_capacity(session, actor.id)

    module = _build_module(data, ModuleType.CUSTOM, actor.id)
    session.add(module)
    session.flush()
    record_custom_module_created(session, current)

    logger.info("modules.custom_created", module_id=module.id, admin_id=actor.id, paragraphs=module.paragraph_count)
    return module


def create_curated_module(session: Session, actor: Actor, data: dict[str, Any]) -> ReadingModule:
    """Publish a curated module (super-admin only)."""
    require_super_admin(actor)

    module = _build_module(data, ModuleType.CURATED, None)
    session.add(module)
    session.flush()

    logger.info("modules.curated_created", module_id=module.id, paragraphs=module.paragraph_count)
    return module


def _is_visible(actor: Actor, module: ReadingModule) -> bool:
    if module.type == ModuleType.CURATED.value or actor.is_super_admin:
        return True
    if actor.is_student:
        return module.admin_id is not None and module.admin_id == actor.admin_id
    return module.admin_id == actor.id


def list_visible_modules(session: Session, actor: Actor) -> list[ReadingModule]:
    """Active modules the caller can read.

    Students see curated modules plus their admin's custom modules; admins
    see curated modules plus their own; super-admins see everything.
    """
    stmt = select(ReadingModule).where(ReadingModule.is_active.is_(True))
    if not actor.is_super_admin:
        owner_id = actor.admin_id if actor.is_student else actor.id
        stmt = stmt.where(
            or_(
                ReadingModule.type == ModuleType.CURATED.value,
                ReadingModule.admin_id == owner_id,
            )
        )
    return list(session.scalars(stmt.order_by(ReadingModule.level, ReadingModule.title)))


def list_admin_modules(session: Session, actor: Actor) -> list[ReadingModule]:
    """The caller's own custom modules, including deactivated ones."""
    require_admin(actor)
    return list(
        session.scalars(
            select(ReadingModule)
            .where(
                ReadingModule.admin_id == actor.id,
                ReadingModule.type == ModuleType.CUSTOM.value,
            )
            .order_by(ReadingModule.created_at.desc())
        )
    )


def get_module(session: Session, actor: Actor, module_id: str) -> ReadingModule:
    """Get a module the caller can read.

    Raises:
        NotFoundError: If it doesn't exist, is deactivated, or isn't visible
    """
    module = session.get(ReadingModule, module_id)
    if module is None or not _is_visible(actor, module):
        raise NotFoundError("Module not found.")
    if not module.is_active and not _can_manage(actor, module):
        raise NotFoundError("Module not found.")
    return module


def get_paragraph(session: Session, actor: Actor, module_id: str, paragraph_index: int) -> dict[str, Any]:
    """Get one paragraph by its 1-based index.

    Raises:
        NotFoundError: If the module is missing or the index is out of range
    """
    module = get_module(session, actor, module_id)
    if paragraph_index < 1 or paragraph_index > module.paragraph_count:
        raise NotFoundError("Paragraph not found within the specified module.")

    for paragraph in module.structured_content:
        if paragraph.get("index") == paragraph_index:
            return paragraph
    # Stored content is always normalized, so index == position
    return module.structured_content[paragraph_index - 1]


def _can_manage(actor: Actor, module: ReadingModule) -> bool:
    if actor.is_super_admin:
        return True
    return actor.is_admin and module.type == ModuleType.CUSTOM.value and module.admin_id == actor.id


def _get_managed_module(session: Session, actor: Actor, module_id: str) -> ReadingModule:
    module = session.get(ReadingModule, module_id)
    if module is None:
        raise NotFoundError("Module not found.")
    if not _can_manage(actor, module):
        raise PermissionDeniedError("You do not have permission to modify this module.")
    return module


def update_module(session: Session, actor: Actor, module_id: str, changes: dict[str, Any]) -> ReadingModule:
    """Partially update a module the caller owns (or any, for super-admins).

    Raises:
        ValidationError: If no field is given or the content is invalid
        ConflictError: If the content changes while students have progress on it
    """
    updates = {k: v for k, v in changes.items() if k in MODULE_FIELDS}
    if not updates:
        raise ValidationError("At least one field must be provided for update.")

    module = _get_managed_module(session, actor, module_id)

    if "structured_content" in updates:
        if updates["structured_content"] is None:
            raise ValidationError("Module must contain at least one paragraph.")
        in_progress = session.scalars(
            select(StudentProgress.id).where(StudentProgress.module_id == module_id)
        ).first()
        if in_progress is not None:
            raise ConflictError("Module content cannot change once students have started it.")
        content = validate_structured_content(updates.pop("structured_content"))
        module.structured_content = content
        module.paragraph_count = len(content)

    for field_name, value in updates.items():
        if value is None and field_name in ("title", "level", "genre", "language", "is_active"):
            raise ValidationError(f"{field_name} cannot be null.")
        setattr(module, field_name, value)
    session.flush()

    logger.info("modules.updated", module_id=module_id, by=actor.id, fields=sorted(changes))
    return module


def delete_module(session: Session, actor: Actor, module_id: str) -> ReadingModule:
    """Soft-delete a module by deactivating it."""
    module = _get_managed_module(session, actor, module_id)
    module.is_active = False
    session.flush()
    logger.info("modules.deactivated", module_id=module_id, by=actor.id)
    return module


# =============================================================================
# VOCABULARY
# =============================================================================


def _check_paragraph_index(module: ReadingModule, paragraph_index: int) -> None:
    if paragraph_index < 1 or paragraph_index > module.paragraph_count:
        raise ValidationError(
            f"Paragraph index {paragraph_index} is out of range (module has {module.paragraph_count} paragraphs)."
        )


def list_module_vocabulary(session: Session, actor: Actor, module_id: str) -> list[Vocabulary]:
    """All vocabulary entries of a module, ordered by paragraph then word."""
    get_module(session, actor, module_id)
    return list(
        session.scalars(
            select(Vocabulary)
            .where(Vocabulary.module_id == module_id)
            .order_by(Vocabulary.paragraph_index, Vocabulary.word)
        )
    )


def list_paragraph_vocabulary(
    session: Session, actor: Actor, module_id: str, paragraph_index: int
) -> list[Vocabulary]:
    """Vocabulary entries for one paragraph."""
    get_module(session, actor, module_id)
    return list(
        session.scalars(
            select(Vocabulary)
            .where(
                Vocabulary.module_id == module_id,
                Vocabulary.paragraph_index == paragraph_index,
            )
            .order_by(Vocabulary.word)
        )
    )


def _flush_vocabulary(session: Session, entry: Vocabulary) -> None:
    try:
        session.flush()
    except IntegrityError as e:
        raise ConflictError(
            f"'{entry.word}' is already defined for paragraph {entry.paragraph_index}."
        ) from e


def create_vocabulary(session: Session, actor: Actor, module_id: str, data: dict[str, Any]) -> Vocabulary:
    """Add a word definition to a paragraph of a module the caller manages.

    Raises:
        ValidationError: If the paragraph index is out of range
        ConflictError: If the word is already defined for that paragraph
    """
    module = _get_managed_module(session, actor, module_id)
    _check_paragraph_index(module, data["paragraph_index"])

    word = data["word"].strip()
    duplicate = session.scalars(
        select(Vocabulary.id).where(
            Vocabulary.module_id == module_id,
            Vocabulary.paragraph_index == data["paragraph_index"],
            Vocabulary.word == word,
        )
    ).first()
    if duplicate is not None:
        raise ConflictError(f"'{word}' is already defined for paragraph {data['paragraph_index']}.")

    entry = Vocabulary(
        module_id=module_id,
        paragraph_index=data["paragraph_index"],
        word=word,
        description=data["description"].strip(),
    )
    session.add(entry)
    _flush_vocabulary(session, entry)

    logger.info("vocabulary.created", vocabulary_id=entry.id, module_id=module_id, word=word)
    return entry


def _get_managed_vocabulary(session: Session, actor: Actor, vocabulary_id: str) -> Vocabulary:
    entry = session.get(Vocabulary, vocabulary_id)
    if entry is None:
        raise NotFoundError("Vocabulary entry not found.")
    _get_managed_module(session, actor, entry.module_id)
    return entry


def update_vocabulary(session: Session, actor: Actor, vocabulary_id: str, changes: dict[str, Any]) -> Vocabulary:
    """Partially update a vocabulary entry."""
    updates = {k: v for k, v in changes.items() if k in ("paragraph_index", "word", "description") and v is not None}
    if not updates:
        raise ValidationError("At least one field (paragraph_index, word, description) must be provided for update.")

    entry = _get_managed_vocabulary(session, actor, vocabulary_id)
    if "paragraph_index" in updates:
        _check_paragraph_index(entry.module, updates["paragraph_index"])

    for field_name, value in updates.items():
        setattr(entry, field_name, value.strip() if isinstance(value, str) else value)
    _flush_vocabulary(session, entry)

    logger.info("vocabulary.updated", vocabulary_id=vocabulary_id, fields=sorted(updates))
    return entry


def delete_vocabulary(session: Session, actor: Actor, vocabulary_id: str) -> None:
    """Remove a vocabulary entry."""
    entry = _get_managed_vocabulary(session, actor, vocabulary_id)
    session.delete(entry)
    session.flush()
    logger.info("vocabulary.deleted", vocabulary_id=vocabulary_id)
