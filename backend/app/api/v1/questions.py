from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_auth_context
from app.core.permissions import AuthContext
from app.database import get_db
from app.schemas.survey import QuestionCreate, QuestionTranslationBody, QuestionUpdate, ReorderBody
from app.services import question_service

router = APIRouter(tags=["questions"])


@router.get("/surveys/{survey_id}/questions")
async def list_questions(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await question_service.list_questions(db, ctx, survey_id)


@router.post("/surveys/{survey_id}/questions", status_code=201)
async def create_question(
    survey_id: uuid.UUID,
    body: QuestionCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await question_service.create_question(db, ctx, survey_id, body.model_dump())


@router.post("/surveys/{survey_id}/questions/reorder")
async def reorder_questions(
    survey_id: uuid.UUID,
    body: ReorderBody,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return {"data": await question_service.reorder_questions(db, ctx, survey_id, body.question_ids)}


@router.put("/questions/{question_id}")
async def update_question(
    question_id: uuid.UUID,
    body: QuestionUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await question_service.update_question(
        db, ctx, question_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/questions/{question_id}", status_code=204)
async def delete_question(
    question_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    await question_service.delete_question(db, ctx, question_id)


@router.get("/questions/{question_id}/translations")
async def list_translations(
    question_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await question_service.list_translations(db, ctx, question_id)


@router.post("/questions/{question_id}/translations")
async def upsert_translation(
    question_id: uuid.UUID,
    body: QuestionTranslationBody,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await question_service.upsert_translation(
        db, ctx, question_id, body.language_code, body.content, body.options
    )
