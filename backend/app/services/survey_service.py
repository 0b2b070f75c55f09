"""Survey management: scoped listing, CRUD, duplication and translations."""

from __future__ import annotations

import copy
import logging
import math
import uuid
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain import (
    VALID_SURVEY_STATUSES,
    VALID_SURVEY_TYPES,
    is_valid_date_range,
    is_valid_language_code,
    is_valid_survey_status,
    is_valid_survey_type,
)
from app.core.errors import ValidationError
from app.core.permissions import AuthContext, Role
from app.models.distribution import Distribution
from app.models.response import Answer, Response
from app.models.survey import Question, QuestionTranslation, Survey, SurveyTranslation
from app.services.permission_service import PermissionService
from app.services.question_service import question_to_dict

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
GENERAL_COMPANY = "general"


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def survey_to_dict(s: Survey, **extra: Any) -> dict:
    d = {
        "id": str(s.id),
        "companyId": str(s.company_id) if s.company_id else None,
        "companyName": s.company.name if s.company else None,
        "title": s.title,
        "description": s.description,
        "type": s.type,
        "status": s.status,
        "isPublic": s.is_public,
        "isAnonymous": s.is_anonymous,
        "defaultLanguage": s.default_language,
        "settings": s.settings or {},
        "startsAt": _iso(s.starts_at),
        "endsAt": _iso(s.ends_at),
        "createdBy": str(s.created_by) if s.created_by else None,
        "creatorName": s.creator.display_name if s.creator else None,
        "createdAt": _iso(s.created_at),
        "updatedAt": _iso(s.updated_at),
    }
    d.update(extra)
    return d


def _translation_to_dict(t: SurveyTranslation) -> dict:
    return {
        "id": str(t.id),
        "surveyId": str(t.survey_id),
        "languageCode": t.language_code,
        "title": t.title,
        "description": t.description,
    }


# ── Listing ───────────────────────────────────────────────────────────


def _scope_filters(ctx: AuthContext, company_id: str | None) -> list:
    if ctx.is_super_admin:
        if company_id == GENERAL_COMPANY:
            return [Survey.company_id.is_(None)]
        if company_id:
            try:
                return [Survey.company_id == uuid.UUID(company_id)]
            except ValueError:
                raise ValidationError("Invalid companyId") from None
        return []

    visible = or_(Survey.company_id == ctx.company_id, Survey.company_id.is_(None))
    if ctx.role is Role.USER:
        # Plain users only ever see what they can answer
        return [visible, Survey.status == "active"]
    return [visible]


async def list_surveys(
    db: AsyncSession,
    ctx: AuthContext,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    search: str = "",
    survey_type: str | None = None,
    status: str | None = None,
    company_id: str | None = None,
) -> dict:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    filters = _scope_filters(ctx, company_id)
    if search:
        pattern = f"%{search}%"
        filters.append(or_(Survey.title.ilike(pattern), Survey.description.ilike(pattern)))
    if survey_type:
        filters.append(Survey.type == survey_type)
    if status:
        filters.append(Survey.status == status)

    total = (await db.execute(select(func.count()).select_from(Survey).where(*filters))).scalar() or 0
    rows = (
        await db.execute(
            select(Survey)
            .where(*filters)
            .order_by(Survey.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
    ).scalars().all()

    return {
        "data": [survey_to_dict(s) for s in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


async def _response_count(db: AsyncSession, survey_id: uuid.UUID) -> int:
    return (
        await db.execute(
            select(func.count()).select_from(Response).where(Response.survey_id == survey_id)
        )
    ).scalar() or 0


async def get_survey(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> dict:
    survey = await PermissionService.load_survey(db, ctx, survey_id)
    questions = (
        await db.execute(
            select(Question).where(Question.survey_id == survey.id).order_by(Question.order_index)
        )
    ).scalars().all()
    return survey_to_dict(
        survey,
        questions=[question_to_dict(q) for q in questions],
        stats={"responses": await _response_count(db, survey.id)},
    )


# ── Create / update ───────────────────────────────────────────────────


def _check_type(value: Any) -> None:
    if not is_valid_survey_type(value):
        raise ValidationError(
            f"Invalid survey type. Must be one of: {', '.join(VALID_SURVEY_TYPES)}"
        )


def _check_status(value: Any) -> None:
    if not is_valid_survey_status(value):
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(VALID_SURVEY_STATUSES)}"
        )


def _check_dates(starts_at, ends_at) -> None:
    if not is_valid_date_range(starts_at, ends_at):
        raise ValidationError("startsAt must be before or equal to endsAt")


async def create_survey(db: AsyncSession, ctx: AuthContext, data: dict) -> dict:
    """Create a survey from snake_case ``data``.

    super_admin may target any company or none (a global survey); everyone
    else creates in their own company.
    """
    PermissionService.require_permission(ctx, "surveys.manage")

    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required")
    _check_type(data.get("type"))
    status = data.get("status") or "draft"
    _check_status(status)
    _check_dates(data.get("starts_at"), data.get("ends_at"))

    if ctx.is_super_admin:
        company_id = data.get("company_id")
    else:
        company_id = ctx.company_id
        if company_id is None:
            raise ValidationError("Company ID is required")

    is_anonymous = data.get("is_anonymous")
    if is_anonymous is None:
        is_anonymous = data.get("allow_anonymous", False)

    survey = Survey(
        company_id=company_id,
        created_by=ctx.user_id,
        title=title,
        description=data.get("description"),
        type=data["type"],
        status=status,
        is_public=bool(data.get("is_public", False)),
        is_anonymous=bool(is_anonymous),
        default_language=data.get("default_language") or "en",
        settings=data.get("settings") or {},
        starts_at=data.get("starts_at"),
        ends_at=data.get("ends_at"),
    )
    db.add(survey)
    await db.commit()
    await db.refresh(survey)
    logger.info("Survey %s created by %s", survey.id, ctx.user_id)
    return survey_to_dict(survey)


_UPDATABLE = (
    "title", "description", "type", "status", "is_public", "is_anonymous",
    "default_language", "settings", "starts_at", "ends_at",
)


async def update_survey(
    db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID, changes: dict
) -> dict:
    PermissionService.require_permission(ctx, "surveys.manage")
    survey = await PermissionService.load_survey(db, ctx, survey_id, write=True)

    if "title" in changes:
        changes["title"] = (changes["title"] or "").strip()
        if not changes["title"]:
            raise ValidationError("Title cannot be empty")
    if "type" in changes:
        _check_type(changes["type"])
    if "status" in changes:
        _check_status(changes["status"])
        if (
            survey.status == "closed"
            and changes["status"] == "active"
            and await _response_count(db, survey.id) > 0
        ):
            raise ValidationError("Cannot reactivate a closed survey with existing responses")

    # Either bound may be omitted; compare against what is stored
    _check_dates(
        changes.get("starts_at", survey.starts_at),
        changes.get("ends_at", survey.ends_at),
    )

    for field in _UPDATABLE:
        if field in changes:
            value = changes[field]
            if field == "settings" and value is None:
                value = {}
            setattr(survey, field, value)

    await db.commit()
    await db.refresh(survey)
    return survey_to_dict(survey)


# ── Delete / duplicate ────────────────────────────────────────────────


async def delete_survey(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> None:
    """Remove a survey and everything hanging off it in one transaction."""
    PermissionService.require_permission(ctx, "surveys.manage")
    survey = await PermissionService.load_survey(db, ctx, survey_id, write=True)

    question_ids = select(Question.id).where(Question.survey_id == survey.id)
    response_ids = select(Response.id).where(Response.survey_id == survey.id)

    await db.execute(delete(QuestionTranslation).where(QuestionTranslation.question_id.in_(question_ids)))
    await db.execute(delete(Answer).where(Answer.response_id.in_(response_ids)))
    await db.execute(delete(Question).where(Question.survey_id == survey.id))
    await db.execute(delete(Response).where(Response.survey_id == survey.id))
    await db.execute(delete(SurveyTranslation).where(SurveyTranslation.survey_id == survey.id))
    await db.execute(delete(Distribution).where(Distribution.survey_id == survey.id))
    await db.delete(survey)
    await db.commit()
    logger.info("Survey %s deleted by %s", survey_id, ctx.user_id)


def remap_logic_targets(options: dict | None, id_map: dict[str, str]) -> dict:
    """Copy of ``options`` with logic rule targets pointed at copied questions."""
    options = copy.deepcopy(options or {})
    for rule in options.get("logicRules") or []:
        action = rule.get("action") if isinstance(rule, dict) else None
        if isinstance(action, dict) and action.get("targetQuestionId") in id_map:
            action["targetQuestionId"] = id_map[action["targetQuestionId"]]
    return options


async def duplicate_survey(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> dict:
    PermissionService.require_permission(ctx, "surveys.manage")
    source = await PermissionService.load_survey(db, ctx, survey_id)

    # A copy of a global survey lands in the caller's company unless they are super_admin
    company_id = source.company_id if ctx.is_super_admin else ctx.company_id
    if company_id is None and not ctx.is_super_admin:
        raise ValidationError("Company ID is required")

    clone = Survey(
        id=uuid.uuid4(),
        company_id=company_id,
        created_by=ctx.user_id,
        title=f"{source.title} (Copy)",
        description=source.description,
        type=source.type,
        status="draft",
        is_public=source.is_public,
        is_anonymous=source.is_anonymous,
        default_language=source.default_language,
        settings=copy.deepcopy(source.settings or {}),
        starts_at=source.starts_at,
        ends_at=source.ends_at,
    )
    db.add(clone)

    for tr in (
        await db.execute(select(SurveyTranslation).where(SurveyTranslation.survey_id == source.id))
    ).scalars().all():
        db.add(SurveyTranslation(
            survey_id=clone.id,
            language_code=tr.language_code,
            title=tr.title,
            description=tr.description,
        ))

    questions = (
        await db.execute(
            select(Question).where(Question.survey_id == source.id).order_by(Question.order_index)
        )
    ).scalars().all()
    id_map = {str(q.id): str(uuid.uuid4()) for q in questions}

    translations: dict[uuid.UUID, list[QuestionTranslation]] = {}
    if questions:
        result = await db.execute(
            select(QuestionTranslation).where(
                QuestionTranslation.question_id.in_([q.id for q in questions])
            )
        )
        for tr in result.scalars().all():
            translations.setdefault(tr.question_id, []).append(tr)

    for q in questions:
        new_id = uuid.UUID(id_map[str(q.id)])
        db.add(Question(
            id=new_id,
            survey_id=clone.id,
            type=q.type,
            extended_type=q.extended_type,
            content=q.content,
            options=remap_logic_targets(q.options, id_map),
            is_required=q.is_required,
            order_index=q.order_index,
        ))
        for tr in translations.get(q.id, []):
            db.add(QuestionTranslation(
                question_id=new_id,
                language_code=tr.language_code,
                content=tr.content,
                options=copy.deepcopy(tr.options or {}),
            ))

    await db.commit()
    await db.refresh(clone)
    logger.info("Survey %s duplicated as %s", source.id, clone.id)
    return survey_to_dict(clone)


# ── Translations ──────────────────────────────────────────────────────


async def list_translations(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> list[dict]:
    survey = await PermissionService.load_survey(db, ctx, survey_id)
    result = await db.execute(
        select(SurveyTranslation)
        .where(SurveyTranslation.survey_id == survey.id)
        .order_by(SurveyTranslation.language_code)
    )
    return [_translation_to_dict(t) for t in result.scalars().all()]


async def upsert_translation(
    db: AsyncSession,
    ctx: AuthContext,
    survey_id: uuid.UUID,
    language_code: str,
    title: str,
    description: str | None = None,
) -> dict:
    PermissionService.require_permission(ctx, "surveys.manage")
    survey = await PermissionService.load_survey(db, ctx, survey_id, write=True)
    if not language_code:
        raise ValidationError("Language code is required")
    if not is_valid_language_code(language_code):
        raise ValidationError(
            "Invalid language code format. Use ISO 639-1 format (e.g., en, es, fr)"
        )
    if not (title or "").strip():
        raise ValidationError("Translation title is required")

    stmt = pg_insert(SurveyTranslation).values(
        id=uuid.uuid4(),
        survey_id=survey.id,
        language_code=language_code,
        title=title.strip(),
        description=description,
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_survey_translation",
        set_={"title": title.strip(), "description": description, "updated_at": func.now()},
    )
    await db.execute(stmt)
    await db.commit()

    tr = (
        await db.execute(
            select(SurveyTranslation).where(
                SurveyTranslation.survey_id == survey.id,
                SurveyTranslation.language_code == language_code,
            ).execution_options(populate_existing=True)
        )
    ).scalar_one()
    return _translation_to_dict(tr)
