from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_permission
from app.core.permissions import AuthContext
from app.database import get_db
from app.schemas.common import CamelModel
from app.services import distribution_service

router = APIRouter(tags=["distributions"])

_manage = require_permission("distributions.manage")


class EmbedBody(CamelModel):
    width: str = "100%"
    height: str = "600px"


class EmailBody(CamelModel):
    emails: list[str]
    subject: str | None = None
    message: str | None = None


class GroupBody(CamelModel):
    department_id: uuid.UUID | None = None
    site_id: uuid.UUID | None = None
    company_id: uuid.UUID | None = None
    subject: str | None = None
    message: str | None = None


@router.get("/surveys/{survey_id}/distributions")
async def list_distributions(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(_manage),
):
    return await distribution_service.list_distributions(db, ctx, survey_id)


@router.post("/surveys/{survey_id}/distributions/link", status_code=201)
async def create_link(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(_manage),
):
    return await distribution_service.create_link(db, ctx, survey_id)


@router.post("/surveys/{survey_id}/distributions/qr", status_code=201)
async def create_qr(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(_manage),
):
    return await distribution_service.create_qr(db, ctx, survey_id)


@router.post("/surveys/{survey_id}/distributions/embed", status_code=201)
async def create_embed(
    survey_id: uuid.UUID,
    body: EmbedBody | None = None,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(_manage),
):
    body = body or EmbedBody()
    return await distribution_service.create_embed(db, ctx, survey_id, body.width, body.height)


@router.post("/surveys/{survey_id}/distributions/email", status_code=201)
async def create_email(
    survey_id: uuid.UUID,
    body: EmailBody,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(_manage),
):
    return await distribution_service.create_email(
        db, ctx, survey_id, body.emails, body.subject, body.message
    )


@router.post("/surveys/{survey_id}/distributions/group", status_code=201)
async def send_to_group(
    survey_id: uuid.UUID,
    body: GroupBody,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(_manage),
):
    return await distribution_service.send_to_group(db, ctx, survey_id, **body.model_dump())


@router.get("/distributions/{distribution_id}/stats")
async def get_stats(
    distribution_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(_manage),
):
    return await distribution_service.get_stats(db, ctx, distribution_id)


@router.post("/distributions/{distribution_id}/reminders")
async def send_reminders(
    distribution_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(_manage),
):
    return await distribution_service.send_reminders(db, ctx, distribution_id)


@router.delete("/distributions/{distribution_id}", status_code=204)
async def delete_distribution(
    distribution_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(_manage),
):
    await distribution_service.delete_distribution(db, ctx, distribution_id)
