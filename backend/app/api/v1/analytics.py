from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_auth_context, require_permission
from app.core.permissions import AuthContext
from app.database import get_db
from app.services import analytics_service, dashboard_service, export_service

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dashboard")
async def dashboard(
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    """Role-shaped dashboard: platform, company, site, department or personal."""
    return await dashboard_service.get_dashboard(db, ctx)


@router.get("/company")
async def company_analytics(
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission("analytics.company")),
):
    return await analytics_service.company_analytics(
        db, ctx, start_date=start_date, end_date=end_date
    )


@router.get("/surveys/{survey_id}")
async def survey_overview(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission("analytics.view")),
):
    return await analytics_service.survey_overview(db, ctx, survey_id)


@router.get("/surveys/{survey_id}/questions")
async def question_breakdown(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission("analytics.view")),
):
    return await analytics_service.question_breakdown(db, ctx, survey_id)


@router.get("/surveys/{survey_id}/responses")
async def list_responses(
    survey_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: str | None = None,
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission("analytics.view")),
):
    return await analytics_service.list_responses(
        db,
        ctx,
        survey_id,
        page=page,
        limit=limit,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/responses/{response_id}")
async def response_detail(
    response_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission("analytics.view")),
):
    return await analytics_service.response_detail(db, ctx, response_id)


@router.get("/surveys/{survey_id}/export")
async def export_survey(
    survey_id: uuid.UUID,
    format: str = "csv",
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission("analytics.export")),
):
    fmt, body, filename = await export_service.export_survey(db, ctx, survey_id, format)
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    if fmt == "csv":
        return StreamingResponse(iter([body]), media_type="text/csv", headers=headers)
    if fmt == "pdf":
        return Response(content=body, media_type="application/pdf", headers=headers)
    return body
