"""Respondent-facing endpoints. Everything under ``/public`` works without a token."""

from __future__ import annotations

import ipaddress
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_auth_context, get_optional_context, require_permission
from app.core.permissions import AuthContext
from app.core.rate_limit import limiter
from app.database import get_db
from app.schemas.common import CamelModel
from app.services import response_service
from app.services.response_service import ClientInfo

router = APIRouter(tags=["responses"])


class StartBody(CamelModel):
    distribution_id: str | None = None
    language: str | None = None


class AnswerBody(CamelModel):
    question_id: uuid.UUID
    value: Any = None


class SubmitBody(CamelModel):
    answers: list[AnswerBody]


def _valid_ip(value: str | None) -> str | None:
    try:
        return str(ipaddress.ip_address(value)) if value else None
    except ValueError:
        return None


def _client_info(request: Request) -> ClientInfo:
    # X-Forwarded-For is client controlled; anything but a literal address is dropped
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip = _valid_ip(forwarded.split(",")[0].strip()) if forwarded else None
    if not ip and request.client:
        ip = _valid_ip(request.client.host)
    return ClientInfo(ip=ip, user_agent=request.headers.get("User-Agent"))


# ── Public survey ────────────────────────────────────────────────────────────


@router.get("/public/surveys/{survey_id}")
async def get_public_survey(
    survey_id: uuid.UUID,
    lang: str | None = None,
    dist: str | None = None,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext | None = Depends(get_optional_context),
):
    return await response_service.get_public_survey(
        db, survey_id, language=lang, distribution_id=dist, ctx=ctx
    )


@router.get("/public/surveys/{survey_id}/languages")
async def get_survey_languages(survey_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await response_service.get_survey_languages(db, survey_id)


@router.get("/public/surveys/{survey_id}/settings")
async def get_survey_settings(survey_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await response_service.get_survey_settings(db, survey_id)


@router.post("/public/surveys/{survey_id}/responses", status_code=201)
@limiter.limit("30/minute")
async def start_response(
    request: Request,
    survey_id: uuid.UUID,
    body: StartBody | None = None,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext | None = Depends(get_optional_context),
):
    body = body or StartBody()
    return await response_service.start(
        db,
        survey_id,
        ctx=ctx,
        distribution_id=body.distribution_id,
        language=body.language,
        client=_client_info(request),
    )


# ── Response lifecycle ───────────────────────────────────────────────────────


@router.post("/public/responses/{response_id}/answers")
async def save_answer(
    response_id: uuid.UUID,
    body: AnswerBody,
    db: AsyncSession = Depends(get_db),
):
    return await response_service.save_answer(db, response_id, body.question_id, body.value)


@router.post("/public/responses/{response_id}/submit")
async def submit_answers(
    response_id: uuid.UUID,
    body: SubmitBody,
    db: AsyncSession = Depends(get_db),
):
    answers = [{"questionId": str(a.question_id), "value": a.value} for a in body.answers]
    return await response_service.submit_answers(db, response_id, answers)


@router.post("/public/responses/{response_id}/complete")
async def complete_response(response_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await response_service.complete(db, response_id)


@router.get("/public/responses/{response_id}")
async def get_progress(response_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await response_service.get_progress(db, response_id)


# ── Authenticated respondent views ───────────────────────────────────────────


@router.get("/responses/me/status")
async def my_survey_status(
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await response_service.get_user_survey_status(db, ctx)


@router.get("/responses/me/completed")
async def my_completed_surveys(
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await response_service.get_user_completed_surveys(db, ctx)


@router.post("/responses/{response_id}/abandon")
async def abandon_response(
    response_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission("analytics.view")),
):
    return await response_service.abandon(db, ctx, response_id)
