"""Role dashboards.

Each role maps to one dashboard builder through ``RolePolicy.dashboard``; the
builders only differ in which rows they count, never in how.
"""
from __future__ import annotations

from typing import Awaitable, Callable

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain import ResponseStatus
from app.core.permissions import AuthContext
from app.models.organization import Company, Department, Site
from app.models.response import Answer, Response
from app.models.survey import Question, Survey
from app.models.user import User
from app.services.analytics_service import completion_rate, nps_score

_COMPLETED = ResponseStatus.COMPLETED.value


async def _count(db: AsyncSession, model, *filters) -> int:
    return (await db.execute(select(func.count()).select_from(model).where(*filters))).scalar() or 0


async def _response_totals(db: AsyncSession, *survey_filters) -> dict:
    total, completed = (
        await db.execute(
            select(func.count(), func.count().filter(Response.status == _COMPLETED))
            .select_from(Response)
            .join(Survey, Survey.id == Response.survey_id)
            .where(*survey_filters)
        )
    ).one()
    return {"total": total, "completed": completed, "completionRate": completion_rate(completed, total)}


async def _nps(db: AsyncSession, *survey_filters) -> int | None:
    values = (
        await db.execute(
            select(Answer.value)
            .join(Question, Question.id == Answer.question_id)
            .join(Response, Response.id == Answer.response_id)
            .join(Survey, Survey.id == Response.survey_id)
            .where(Question.type == "nps", Response.status == _COMPLETED, *survey_filters)
        )
    ).scalars().all()
    return nps_score(values)


async def _survey_counts(db: AsyncSession, *filters) -> dict:
    total, active, draft, closed = (
        await db.execute(
            select(
                func.count(),
                func.count().filter(Survey.status == "active"),
                func.count().filter(Survey.status == "draft"),
                func.count().filter(Survey.status == "closed"),
            )
            .select_from(Survey)
            .where(*filters)
        )
    ).one()
    return {"total": total, "active": active, "draft": draft, "closed": closed}


async def _platform(db: AsyncSession, ctx: AuthContext) -> dict:
    return {
        "companies": await _count(db, Company),
        "users": await _count(db, User, User.is_active.is_(True)),
        "surveys": await _survey_counts(db),
        "responses": await _response_totals(db),
        "nps": await _nps(db),
    }


async def _company(db: AsyncSession, ctx: AuthContext) -> dict:
    in_company = Survey.company_id == ctx.company_id
    sites = (
        await db.execute(
            select(Site.id, Site.name, func.count(User.id))
            .outerjoin(User, (User.site_id == Site.id) & User.is_active.is_(True))
            .where(Site.company_id == ctx.company_id)
            .group_by(Site.id)
            .order_by(Site.name)
        )
    ).all()
    return {
        "users": await _count(db, User, User.company_id == ctx.company_id, User.is_active.is_(True)),
        "sites": len(sites),
        "surveys": await _survey_counts(db, in_company),
        "responses": await _response_totals(db, in_company),
        "nps": await _nps(db, in_company),
        "siteBreakdown": [
            {"id": str(sid), "name": name, "users": users} for sid, name, users in sites
        ],
    }


async def _site(db: AsyncSession, ctx: AuthContext) -> dict:
    in_company = Survey.company_id == ctx.company_id
    return {
        "users": await _count(db, User, User.site_id == ctx.site_id, User.is_active.is_(True)),
        "departments": await _count(db, Department, Department.site_id == ctx.site_id),
        "surveys": await _survey_counts(db, in_company),
        "responses": await _response_totals(db, in_company),
    }


async def _department(db: AsyncSession, ctx: AuthContext) -> dict:
    return {
        "users": await _count(
            db, User, User.department_id == ctx.department_id, User.is_active.is_(True)
        ),
        "surveys": await _survey_counts(
            db, Survey.company_id == ctx.company_id, Survey.status == "active"
        ),
    }


async def _personal(db: AsyncSession, ctx: AuthContext) -> dict:
    visible = or_(Survey.company_id == ctx.company_id, Survey.company_id.is_(None))
    available = (
        await db.execute(
            select(Survey.id, Survey.title, Survey.type)
            .where(Survey.status == "active", visible)
            .order_by(Survey.created_at.desc())
        )
    ).all()
    completed_ids = set(
        (
            await db.execute(
                select(Response.survey_id).where(
                    Response.respondent_id == ctx.user_id, Response.status == _COMPLETED
                )
            )
        ).scalars().all()
    )
    surveys = [
        {"id": str(sid), "title": title, "type": stype, "completed": sid in completed_ids}
        for sid, title, stype in available
    ]
    done = sum(1 for s in surveys if s["completed"])
    return {
        "available": len(surveys),
        "completed": done,
        "pending": len(surveys) - done,
        "surveys": surveys,
    }


_BUILDERS: dict[str, Callable[[AsyncSession, AuthContext], Awaitable[dict]]] = {
    "platform": _platform,
    "company": _company,
    "site": _site,
    "department": _department,
    "personal": _personal,
}


async def get_dashboard(db: AsyncSession, ctx: AuthContext) -> dict:
    kind = ctx.policy.dashboard
    data = await _BUILDERS[kind](db, ctx)
    return {"role": ctx.role.value, "dashboard": kind, **data}
