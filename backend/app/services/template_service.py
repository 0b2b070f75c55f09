"""Survey templates: global and per-company blueprints that instantiate into draft surveys."""

from __future__ import annotations

import copy
import logging
import uuid

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain import is_valid_question_type, is_valid_survey_type, map_extended_type_to_base
from app.core.errors import Forbidden, ValidationError
from app.core.permissions import AuthContext
from app.models.survey import Question, Survey
from app.models.template import SurveyTemplate, TemplateQuestion
from app.services.permission_service import PermissionService
from app.services.question_service import question_to_dict
from app.services.survey_service import remap_logic_targets, survey_to_dict

logger = logging.getLogger(__name__)


def _template_question_to_dict(q: TemplateQuestion) -> dict:
    return {
        "id": str(q.id),
        "type": q.type,
        "content": q.content,
        "options": q.options or {},
        "isRequired": q.is_required,
        "orderIndex": q.order_index,
    }


def template_to_dict(t: SurveyTemplate, *, with_questions: bool = True) -> dict:
    d = {
        "id": str(t.id),
        "companyId": str(t.company_id) if t.company_id else None,
        "createdBy": str(t.created_by) if t.created_by else None,
        "name": t.name,
        "description": t.description,
        "category": t.category,
        "type": t.type,
        "isGlobal": t.is_global,
        "isAnonymous": t.is_anonymous,
        "defaultSettings": t.default_settings or {},
        "useCount": t.use_count,
        "questionCount": len(t.questions),
        "createdAt": t.created_at.isoformat() if t.created_at else None,
        "updatedAt": t.updated_at.isoformat() if t.updated_at else None,
    }
    if with_questions:
        d["questions"] = [_template_question_to_dict(q) for q in t.questions]
    return d


async def _reload(db: AsyncSession, template_id: uuid.UUID) -> SurveyTemplate:
    return (
        await db.execute(
            select(SurveyTemplate)
            .where(SurveyTemplate.id == template_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()


def _require_create(ctx: AuthContext, is_global: bool) -> None:
    if is_global and not ctx.allows("templates.global"):
        raise Forbidden("Only super admins can create global templates")
    if not ctx.allows("templates.manage"):
        raise Forbidden("Insufficient permissions to create templates")


# ── Queries ───────────────────────────────────────────────────────────


async def list_templates(
    db: AsyncSession,
    ctx: AuthContext,
    *,
    category: str | None = None,
    include_global: bool = True,
) -> list[dict]:
    stmt = select(SurveyTemplate)
    if not ctx.is_super_admin:
        visible = [SurveyTemplate.is_global.is_(True)]
        if ctx.company_id:
            visible.append(SurveyTemplate.company_id == ctx.company_id)
        stmt = stmt.where(or_(*visible))
    if category:
        stmt = stmt.where(SurveyTemplate.category == category)
    if not include_global:
        stmt = stmt.where(SurveyTemplate.is_global.is_(False))

    result = await db.execute(
        stmt.order_by(
            SurveyTemplate.is_global.desc(),
            SurveyTemplate.use_count.desc(),
            SurveyTemplate.created_at.desc(),
        )
    )
    return [template_to_dict(t, with_questions=False) for t in result.scalars().all()]


async def get_template(db: AsyncSession, ctx: AuthContext, template_id: uuid.UUID) -> dict:
    template = await PermissionService.load_template(db, ctx, template_id)
    return template_to_dict(template)


async def list_categories(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(SurveyTemplate.category)
        .where(SurveyTemplate.category.is_not(None))
        .group_by(SurveyTemplate.category)
        .order_by(SurveyTemplate.category)
    )
    return list(result.scalars().all())


# ── Mutations ─────────────────────────────────────────────────────────


async def create_template(db: AsyncSession, ctx: AuthContext, data: dict) -> dict:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Template name is required")
    template_type = data.get("type") or "custom"
    if not is_valid_survey_type(template_type):
        raise ValidationError("Invalid template type")
    is_global = bool(data.get("is_global", False))
    _require_create(ctx, is_global)

    questions = data.get("questions") or []
    for q in questions:
        if not is_valid_question_type(q.get("type")):
            raise ValidationError(f"Invalid question type: {q.get('type')}")
        if not (q.get("content") or "").strip():
            raise ValidationError("Question content is required")

    template = SurveyTemplate(
        id=uuid.uuid4(),
        company_id=None if is_global else ctx.company_id,
        created_by=ctx.user_id,
        name=name,
        description=(data.get("description") or "").strip() or None,
        category=(data.get("category") or "").strip() or "general",
        type=template_type,
        is_global=is_global,
        is_anonymous=bool(data.get("is_anonymous", False)),
        default_settings=data.get("default_settings") or {},
    )
    template.questions = [
        TemplateQuestion(
            type=q["type"],
            content=q["content"].strip(),
            options=q.get("options") or {},
            is_required=bool(q.get("is_required", False)),
            order_index=index,
        )
        for index, q in enumerate(questions)
    ]
    db.add(template)
    await db.commit()
    return template_to_dict(await _reload(db, template.id))


async def update_template(
    db: AsyncSession, ctx: AuthContext, template_id: uuid.UUID, changes: dict
) -> dict:
    PermissionService.require_permission(ctx, "templates.manage")
    template = await PermissionService.load_template(db, ctx, template_id, write=True)

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Template name cannot be empty")
        template.name = name
    if "description" in changes:
        template.description = (changes["description"] or "").strip() or None
    if "category" in changes:
        template.category = (changes["category"] or "").strip() or "general"
    if "is_anonymous" in changes:
        template.is_anonymous = bool(changes["is_anonymous"])

    await db.commit()
    return template_to_dict(await _reload(db, template.id))


async def delete_template(db: AsyncSession, ctx: AuthContext, template_id: uuid.UUID) -> None:
    PermissionService.require_permission(ctx, "templates.manage")
    template = await PermissionService.load_template(db, ctx, template_id, write=True)
    await db.delete(template)
    await db.commit()


async def create_survey_from_template(
    db: AsyncSession,
    ctx: AuthContext,
    template_id: uuid.UUID,
    *,
    title: str | None = None,
    description: str | None = None,
    company_id: uuid.UUID | None = None,
) -> dict:
    """Instantiate a template as a draft survey and bump its use count."""
    PermissionService.require_permission(ctx, "templates.use")
    template = await PermissionService.load_template(db, ctx, template_id)

    target_company = company_id if ctx.is_super_admin else ctx.company_id
    if target_company is None and not ctx.is_super_admin:
        raise ValidationError("Company ID is required")

    survey = Survey(
        id=uuid.uuid4(),
        company_id=target_company,
        created_by=ctx.user_id,
        title=(title or "").strip() or template.name,
        description=description if description is not None else template.description,
        type=template.type,
        status="draft",
        is_public=True,
        is_anonymous=template.is_anonymous,
        default_language="en",
        settings=copy.deepcopy(template.default_settings or {}),
    )
    db.add(survey)

    id_map = {str(tq.id): str(uuid.uuid4()) for tq in template.questions}
    questions = []
    for tq in template.questions:
        base = map_extended_type_to_base(tq.type)
        question = Question(
            id=uuid.UUID(id_map[str(tq.id)]),
            survey_id=survey.id,
            type=base,
            extended_type=tq.type if base != tq.type else None,
            content=tq.content,
            options=remap_logic_targets(tq.options, id_map),
            is_required=tq.is_required,
            order_index=tq.order_index,
        )
        db.add(question)
        questions.append(question)

    await db.execute(
        update(SurveyTemplate)
        .where(SurveyTemplate.id == template.id)
        .values(use_count=SurveyTemplate.use_count + 1)
    )
    await db.commit()
    await db.refresh(survey)
    for q in questions:
        await db.refresh(q)

    logger.info("Survey %s created from template %s", survey.id, template.id)
    return survey_to_dict(survey, questions=[question_to_dict(q) for q in questions])


async def save_survey_as_template(
    db: AsyncSession,
    ctx: AuthContext,
    survey_id: uuid.UUID,
    *,
    name: str | None = None,
    description: str | None = None,
    category: str | None = None,
    is_global: bool = False,
) -> dict:
    survey = await PermissionService.load_survey(db, ctx, survey_id)
    _require_create(ctx, is_global)

    questions = (
        await db.execute(
            select(Question).where(Question.survey_id == survey.id).order_by(Question.order_index)
        )
    ).scalars().all()

    template = SurveyTemplate(
        id=uuid.uuid4(),
        company_id=None if is_global else ctx.company_id,
        created_by=ctx.user_id,
        name=(name or "").strip() or f"{survey.title} Template",
        description=description or survey.description,
        category=(category or "").strip() or "general",
        type=survey.type,
        is_global=is_global,
        is_anonymous=survey.is_anonymous,
        default_settings=copy.deepcopy(survey.settings or {}),
    )
    # Logic rules keep pointing at the right question once copied
    id_map = {str(q.id): str(uuid.uuid4()) for q in questions}
    template.questions = [
        TemplateQuestion(
            id=uuid.UUID(id_map[str(q.id)]),
            type=q.display_type,
            content=q.content,
            options=remap_logic_targets(q.options, id_map),
            is_required=q.is_required,
            order_index=index,
        )
        for index, q in enumerate(questions)
    ]
    db.add(template)
    await db.commit()
    return template_to_dict(await _reload(db, template.id))
