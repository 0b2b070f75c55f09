from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_auth_context
from app.core.permissions import AuthContext
from app.database import get_db
from app.schemas.survey import SaveAsTemplate, SurveyCreate, SurveyTranslationBody, SurveyUpdate
from app.services import survey_service, template_service

router = APIRouter(prefix="/surveys", tags=["surveys"])


@router.get("")
async def list_surveys(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str = "",
    type: str | None = None,
    status: str | None = None,
    company_id: str | None = Query(None, alias="companyId"),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    """``companyId=general`` lists global surveys (super_admin only)."""
    return await survey_service.list_surveys(
        db,
        ctx,
        page=page,
        limit=limit,
        search=search,
        survey_type=type,
        status=status,
        company_id=company_id,
    )


@router.post("", status_code=201)
async def create_survey(
    body: SurveyCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await survey_service.create_survey(db, ctx, body.model_dump())


@router.get("/{survey_id}")
async def get_survey(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await survey_service.get_survey(db, ctx, survey_id)


@router.put("/{survey_id}")
async def update_survey(
    survey_id: uuid.UUID,
    body: SurveyUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await survey_service.update_survey(
        db, ctx, survey_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/{survey_id}", status_code=204)
async def delete_survey(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    await survey_service.delete_survey(db, ctx, survey_id)


@router.post("/{survey_id}/duplicate", status_code=201)
async def duplicate_survey(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await survey_service.duplicate_survey(db, ctx, survey_id)


@router.post("/{survey_id}/save-as-template", status_code=201)
async def save_as_template(
    survey_id: uuid.UUID,
    body: SaveAsTemplate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await template_service.save_survey_as_template(db, ctx, survey_id, **body.model_dump())


# ── Translations ─────────────────────────────────────────────────────────────


@router.get("/{survey_id}/translations")
async def list_translations(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await survey_service.list_translations(db, ctx, survey_id)


@router.post("/{survey_id}/translations")
async def upsert_translation(
    survey_id: uuid.UUID,
    body: SurveyTranslationBody,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await survey_service.upsert_translation(
        db, ctx, survey_id, body.language_code, body.title, body.description
    )
