"""
Question management.

``order_index`` is a dense 0-based sequence per survey. The unique
constraint on (survey_id, order_index) is deferred to commit, so reorder and
delete may shuffle indices row by row inside one transaction.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain import (
    EXTENDED_QUESTION_TYPES,
    is_valid_language_code,
    is_valid_question_type,
    map_extended_type_to_base,
    validate_question_options,
)
from app.core.errors import NotFound, ValidationError
from app.core.permissions import AuthContext
from app.models.survey import Question, QuestionTranslation, Survey
from app.services.logic_engine import has_logic_rules, validate_logic_rules
from app.services.permission_service import PermissionService

logger = logging.getLogger(__name__)


def question_to_dict(q: Question) -> dict:
    return {
        "id": str(q.id),
        "surveyId": str(q.survey_id),
        "type": q.type,
        "extendedType": q.extended_type,
        "displayType": q.display_type,
        "content": q.content,
        "options": q.options or {},
        "isRequired": q.is_required,
        "orderIndex": q.order_index,
        "createdAt": q.created_at.isoformat() if q.created_at else None,
        "updatedAt": q.updated_at.isoformat() if q.updated_at else None,
    }


def _translation_to_dict(t: QuestionTranslation) -> dict:
    return {
        "id": str(t.id),
        "questionId": str(t.question_id),
        "languageCode": t.language_code,
        "content": t.content,
        "options": t.options or {},
    }


def _check_type(question_type: Any) -> None:
    if not is_valid_question_type(question_type):
        raise ValidationError(
            f"Invalid question type. Must be one of: {', '.join(EXTENDED_QUESTION_TYPES)}"
        )


def _split_type(question_type: str) -> tuple[str, str | None]:
    """(base type, UI alias or None) for a validated question type."""
    base = map_extended_type_to_base(question_type)
    return base, (question_type if base != question_type else None)


def _check_options(question_type: str, options: Any) -> None:
    error = validate_question_options(question_type, options)
    if error:
        raise ValidationError(error)


def _check_rules(candidate: dict, questions: list[Question]) -> None:
    if not has_logic_rules(candidate):
        return
    siblings: list[Any] = [
        candidate if str(q.id) == candidate["id"] else q for q in questions
    ]
    if not any(str(q.id) == candidate["id"] for q in questions):
        siblings.append(candidate)
    errors = validate_logic_rules(candidate, siblings)
    if errors:
        raise ValidationError("Invalid logic rules", details=errors)


async def _survey_questions(db: AsyncSession, survey_id: uuid.UUID) -> list[Question]:
    result = await db.execute(
        select(Question).where(Question.survey_id == survey_id).order_by(Question.order_index)
    )
    return list(result.scalars().all())


async def _load_question(
    db: AsyncSession, ctx: AuthContext, question_id: uuid.UUID, *, write: bool = False
) -> tuple[Question, Survey]:
    question = await db.get(Question, question_id)
    if question is None:
        raise NotFound("Question not found")
    survey = await PermissionService.load_survey(db, ctx, question.survey_id, write=write)
    return question, survey


# ── CRUD ──────────────────────────────────────────────────────────────


async def list_questions(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> list[dict]:
    survey = await PermissionService.load_survey(db, ctx, survey_id)
    return [question_to_dict(q) for q in await _survey_questions(db, survey.id)]


async def create_question(
    db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID, data: dict
) -> dict:
    """Append a question at the end of a survey."""
    PermissionService.require_permission(ctx, "surveys.manage")

    content = (data.get("content") or "").strip()
    if not content:
        raise ValidationError("Question content is required")
    question_type = data.get("type")
    _check_type(question_type)
    is_required = data.get("is_required", False)
    if not isinstance(is_required, bool):
        raise ValidationError("isRequired must be a boolean")
    options = data.get("options") or {}
    _check_options(question_type, options)

    survey = await PermissionService.load_survey(db, ctx, survey_id, write=True)
    existing = await _survey_questions(db, survey.id)

    new_id = uuid.uuid4()
    _check_rules({"id": str(new_id), "options": options}, existing)

    max_index = (
        await db.execute(
            select(func.max(Question.order_index)).where(Question.survey_id == survey.id)
        )
    ).scalar()
    base, alias = _split_type(question_type)
    question = Question(
        id=new_id,
        survey_id=survey.id,
        type=base,
        extended_type=alias,
        content=content,
        options=options,
        is_required=is_required,
        order_index=0 if max_index is None else max_index + 1,
    )
    db.add(question)
    await db.commit()
    await db.refresh(question)
    return question_to_dict(question)


async def update_question(
    db: AsyncSession, ctx: AuthContext, question_id: uuid.UUID, changes: dict
) -> dict:
    PermissionService.require_permission(ctx, "surveys.manage")
    question, survey = await _load_question(db, ctx, question_id, write=True)

    question_type = question.display_type
    if "type" in changes:
        _check_type(changes["type"])
        question_type = changes["type"]
    if "content" in changes:
        changes["content"] = (changes["content"] or "").strip()
        if not changes["content"]:
            raise ValidationError("Question content cannot be empty")
    if "is_required" in changes and not isinstance(changes["is_required"], bool):
        raise ValidationError("isRequired must be a boolean")

    options = changes.get("options", question.options)
    if "options" in changes or "type" in changes:
        _check_options(question_type, options)
    if "options" in changes:
        _check_rules(
            {"id": str(question.id), "options": options or {}},
            await _survey_questions(db, survey.id),
        )

    if "type" in changes:
        question.type, question.extended_type = _split_type(question_type)
    if "content" in changes:
        question.content = changes["content"]
    if "options" in changes:
        question.options = options or {}
    if "is_required" in changes:
        question.is_required = changes["is_required"]

    await db.commit()
    await db.refresh(question)
    return question_to_dict(question)


async def delete_question(db: AsyncSession, ctx: AuthContext, question_id: uuid.UUID) -> None:
    """Delete a question and close the gap it leaves in ``order_index``."""
    PermissionService.require_permission(ctx, "surveys.manage")
    question, survey = await _load_question(db, ctx, question_id, write=True)
    removed_index = question.order_index

    await db.delete(question)
    await db.flush()
    await db.execute(
        update(Question)
        .where(Question.survey_id == survey.id, Question.order_index > removed_index)
        .values(order_index=Question.order_index - 1)
    )
    await db.commit()


async def reorder_questions(
    db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID, question_ids: list[uuid.UUID]
) -> list[dict]:
    """Rewrite ``order_index`` to match ``question_ids``, which must be a permutation."""
    PermissionService.require_permission(ctx, "surveys.manage")
    if len(set(question_ids)) != len(question_ids):
        raise ValidationError("questionIds contains duplicates")

    survey = await PermissionService.load_survey(db, ctx, survey_id, write=True)
    existing = {q.id: q for q in await _survey_questions(db, survey.id)}

    for qid in question_ids:
        if qid not in existing:
            raise ValidationError(f"Question {qid} does not belong to this survey")
    if len(question_ids) != len(existing):
        raise ValidationError(
            f"questionIds count ({len(question_ids)}) does not match "
            f"survey questions count ({len(existing)})"
        )

    for index, qid in enumerate(question_ids):
        existing[qid].order_index = index
    await db.commit()

    return [question_to_dict(q) for q in await _survey_questions(db, survey.id)]


# ── Translations ──────────────────────────────────────────────────────


async def list_translations(db: AsyncSession, ctx: AuthContext, question_id: uuid.UUID) -> list[dict]:
    question, _ = await _load_question(db, ctx, question_id)
    result = await db.execute(
        select(QuestionTranslation)
        .where(QuestionTranslation.question_id == question.id)
        .order_by(QuestionTranslation.language_code)
    )
    return [_translation_to_dict(t) for t in result.scalars().all()]


async def upsert_translation(
    db: AsyncSession,
    ctx: AuthContext,
    question_id: uuid.UUID,
    language_code: str,
    content: str,
    options: dict | None = None,
) -> dict:
    PermissionService.require_permission(ctx, "surveys.manage")
    if not language_code:
        raise ValidationError("Language code is required")
    if not is_valid_language_code(language_code):
        raise ValidationError(
            "Invalid language code format. Use ISO 639-1 format (e.g., en, es, fr)"
        )
    if not (content or "").strip():
        raise ValidationError("Translation content is required")
    question, _ = await _load_question(db, ctx, question_id, write=True)

    values = {"content": content.strip(), "options": options or {}}
    stmt = pg_insert(QuestionTranslation).values(
        id=uuid.uuid4(), question_id=question.id, language_code=language_code, **values
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_question_translation",
        set_={**values, "updated_at": func.now()},
    )
    await db.execute(stmt)
    await db.commit()

    tr = (
        await db.execute(
            select(QuestionTranslation).where(
                QuestionTranslation.question_id == question.id,
                QuestionTranslation.language_code == language_code,
            ).execution_options(populate_existing=True)
        )
    ).scalar_one()
    return _translation_to_dict(tr)
