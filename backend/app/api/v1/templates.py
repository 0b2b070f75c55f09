from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_auth_context
from app.core.permissions import AuthContext
from app.database import get_db
from app.schemas.survey import TemplateCreate, TemplateUpdate, TemplateUse
from app.services import template_service

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("")
async def list_templates(
    category: str | None = None,
    include_global: bool = Query(True, alias="includeGlobal"),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await template_service.list_templates(
        db, ctx, category=category, include_global=include_global
    )


@router.get("/categories")
async def list_categories(
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await template_service.list_categories(db)


@router.post("", status_code=201)
async def create_template(
    body: TemplateCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await template_service.create_template(db, ctx, body.model_dump())


@router.get("/{template_id}")
async def get_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await template_service.get_template(db, ctx, template_id)


@router.put("/{template_id}")
async def update_template(
    template_id: uuid.UUID,
    body: TemplateUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await template_service.update_template(
        db, ctx, template_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/{template_id}", status_code=204)
async def delete_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    await template_service.delete_template(db, ctx, template_id)


@router.post("/{template_id}/use", status_code=201)
async def use_template(
    template_id: uuid.UUID,
    body: TemplateUse | None = None,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    body = body or TemplateUse()
    return await template_service.create_survey_from_template(
        db, ctx, template_id, **body.model_dump()
    )
