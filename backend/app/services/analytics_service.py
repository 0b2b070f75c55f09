"""
Read-only survey analytics: completion rates, NPS, per-question
distributions, trends, response listings and company rollups.

The arithmetic lives in pure functions at the top of the module so it can be
tested without a database; the async functions below only gather rows and
feed them through.
"""
from __future__ import annotations

import math
import uuid
from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import Date, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain import (
    CHOICE_QUESTION_TYPES,
    NUMERIC_QUESTION_TYPES,
    TEXT_QUESTION_TYPES,
    QuestionType,
    ResponseStatus,
)
from app.core.errors import Forbidden, NotFound
from app.core.permissions import AuthContext
from app.models.response import Answer, Response
from app.models.survey import Question, Survey
from app.services.answer_values import (
    answer_key,
    choice_values,
    decode_answer,
    numeric_value,
    text_value,
)
from app.services.permission_service import PermissionService

TREND_DAYS = 30
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
_COMPLETED = ResponseStatus.COMPLETED.value


# ── Pure arithmetic ───────────────────────────────────────────────────


def js_round(value: float) -> int:
    """Round half up (2.5 -> 3, -2.5 -> -2), as the dashboards expect."""
    return math.floor(value + 0.5)


def completion_rate(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return js_round(completed / total * 100)


def compute_nps(scores: Iterable[int]) -> dict | None:
    """NPS summary over 0-10 scores, or None when there is nothing to score."""
    scores = list(scores)
    total = len(scores)
    if total == 0:
        return None
    promoters = sum(1 for s in scores if s >= 9)
    passives = sum(1 for s in scores if 7 <= s <= 8)
    detractors = sum(1 for s in scores if s <= 6)
    return {
        "score": js_round((promoters - detractors) / total * 100),
        "promoters": {"count": promoters, "percentage": js_round(promoters / total * 100)},
        "passives": {"count": passives, "percentage": js_round(passives / total * 100)},
        "detractors": {"count": detractors, "percentage": js_round(detractors / total * 100)},
        "totalResponses": total,
    }


def nps_score(raw_values: Iterable[Any]) -> int | None:
    scores = [s for s in (numeric_value(v) for v in raw_values) if s is not None]
    summary = compute_nps(scores)
    return summary["score"] if summary else None


def _numeric_stats(raw_values: list[Any]) -> tuple[dict, dict]:
    values = [v for v in (numeric_value(r) for r in raw_values) if v is not None]
    if not values:
        return {}, {}
    distribution: dict[str, int] = {}
    for v in sorted(values):
        distribution[str(v)] = distribution.get(str(v), 0) + 1
    stats = {
        "average": js_round(sum(values) / len(values) * 100) / 100,
        "min": min(values),
        "max": max(values),
        "count": len(values),
    }
    return distribution, stats


def _choice_distribution(raw_values: list[Any]) -> dict:
    distribution: dict[str, int] = {}
    for raw in raw_values:
        for choice in choice_values(raw):
            key = answer_key(choice)
            distribution[key] = distribution.get(key, 0) + 1
    return distribution


def _text_stats(raw_values: list[Any]) -> dict:
    total = len(raw_values)
    length = sum(len(text_value(r) or "") for r in raw_values)
    return {"count": total, "avgLength": js_round(length / (total or 1))}


def _matrix_distribution(raw_values: list[Any]) -> dict:
    distribution: dict[str, dict[str, int]] = {}
    for raw in raw_values:
        value = decode_answer(raw)
        if not isinstance(value, dict):
            continue
        for row, cell in value.items():
            bucket = distribution.setdefault(str(row), {})
            key = answer_key(cell)
            bucket[key] = bucket.get(key, 0) + 1
    return distribution


def question_stats(question_type: str, raw_values: list[Any]) -> dict:
    """Distribution and summary stats for one question's answers.

    Returns ``{"totalAnswers", "distribution", "stats"}``; ``stats`` is empty
    for choice and matrix questions, ``distribution`` is empty for text.
    """
    distribution: dict = {}
    stats: dict = {}
    if question_type in NUMERIC_QUESTION_TYPES:
        distribution, stats = _numeric_stats(raw_values)
    elif question_type in CHOICE_QUESTION_TYPES:
        distribution = _choice_distribution(raw_values)
    elif question_type in TEXT_QUESTION_TYPES:
        stats = _text_stats(raw_values)
    elif question_type == QuestionType.MATRIX.value:
        distribution = _matrix_distribution(raw_values)
    return {"totalAnswers": len(raw_values), "distribution": distribution, "stats": stats}


def bucket_trend(
    rows: Iterable[tuple[date, int, int]], days: int = TREND_DAYS, today: date | None = None
) -> list[dict]:
    """Fill a daily window ending today, oldest first, from (day, count, completed) rows."""
    today = today or datetime.now(timezone.utc).date()
    window: OrderedDict[date, dict] = OrderedDict()
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        window[day] = {"date": day.isoformat(), "count": 0, "completed": 0}
    for day, count, completed in rows:
        if isinstance(day, datetime):
            day = day.date()
        if day in window:
            window[day]["count"] += int(count or 0)
            window[day]["completed"] += int(completed or 0)
    return list(window.values())


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ── Queries ───────────────────────────────────────────────────────────


async def _completed_answer_values(
    db: AsyncSession, question_ids: list[uuid.UUID]
) -> dict[uuid.UUID, list[Any]]:
    if not question_ids:
        return {}
    result = await db.execute(
        select(Answer.question_id, Answer.value)
        .join(Response, Response.id == Answer.response_id)
        .where(Answer.question_id.in_(question_ids), Response.status == _COMPLETED)
    )
    grouped: dict[uuid.UUID, list[Any]] = {qid: [] for qid in question_ids}
    for qid, value in result.all():
        grouped[qid].append(value)
    return grouped


async def _trend_rows(db: AsyncSession, *filters) -> list[tuple[date, int, int]]:
    since = datetime.now(timezone.utc) - timedelta(days=TREND_DAYS)
    day = cast(Response.started_at, Date)
    result = await db.execute(
        select(
            day,
            func.count(),
            func.count().filter(Response.status == _COMPLETED),
        )
        .where(Response.started_at >= since, *filters)
        .group_by(day)
        .order_by(day)
    )
    return [tuple(r) for r in result.all()]


async def survey_overview(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> dict:
    survey = await PermissionService.load_survey_for_analytics(db, ctx, survey_id)

    counts = (
        await db.execute(
            select(
                func.count(),
                func.count().filter(Response.status == _COMPLETED),
                func.count().filter(Response.status == ResponseStatus.STARTED.value),
                func.count().filter(Response.status == ResponseStatus.ABANDONED.value),
                func.min(Response.started_at),
                func.max(Response.completed_at),
            ).where(Response.survey_id == survey.id)
        )
    ).one()
    total, completed, in_progress, abandoned, first_at, last_at = counts

    avg_seconds = (
        await db.execute(
            select(
                func.avg(func.extract("epoch", Response.completed_at - Response.started_at))
            ).where(
                Response.survey_id == survey.id,
                Response.status == _COMPLETED,
                Response.completed_at.is_not(None),
            )
        )
    ).scalar()

    questions = (
        await db.execute(
            select(Question).where(Question.survey_id == survey.id).order_by(Question.order_index)
        )
    ).scalars().all()

    nps_ids = [q.id for q in questions if q.type == "nps"]
    nps = None
    if nps_ids:
        values = await _completed_answer_values(db, nps_ids)
        scores = [
            s for raw in (v for vs in values.values() for v in vs)
            if (s := numeric_value(raw)) is not None
        ]
        nps = compute_nps(scores)

    trend = bucket_trend(await _trend_rows(db, Response.survey_id == survey.id))

    return {
        "survey": {
            "id": str(survey.id),
            "title": survey.title,
            "type": survey.type,
            "status": survey.status,
            "startsAt": _iso(survey.starts_at),
            "endsAt": _iso(survey.ends_at),
        },
        "overview": {
            "totalResponses": total,
            "completedResponses": completed,
            "inProgressResponses": in_progress,
            "abandonedResponses": abandoned,
            "completionRate": completion_rate(completed, total),
            "avgCompletionTimeSeconds": js_round(float(avg_seconds or 0)),
            "firstResponseAt": _iso(first_at),
            "lastResponseAt": _iso(last_at),
        },
        "nps": nps,
        "trend": trend,
        "questionCount": len(questions),
    }


async def question_breakdown(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> dict:
    survey = await PermissionService.load_survey_for_analytics(db, ctx, survey_id)
    questions = (
        await db.execute(
            select(Question).where(Question.survey_id == survey.id).order_by(Question.order_index)
        )
    ).scalars().all()
    values = await _completed_answer_values(db, [q.id for q in questions])

    breakdown = []
    for q in questions:
        entry = {
            "questionId": str(q.id),
            "questionText": q.content,
            "type": q.type,
            "extendedType": q.extended_type,
            "required": q.is_required,
            "options": q.options or {},
        }
        entry.update(question_stats(q.type, values.get(q.id, [])))
        breakdown.append(entry)
    return {"surveyId": str(survey.id), "questions": breakdown}


async def list_responses(
    db: AsyncSession,
    ctx: AuthContext,
    survey_id: uuid.UUID,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    status: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    survey = await PermissionService.load_survey_for_analytics(db, ctx, survey_id)
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    filters = [Response.survey_id == survey.id]
    if status:
        filters.append(Response.status == status)
    if start_date:
        filters.append(Response.started_at >= start_date)
    if end_date:
        filters.append(Response.started_at <= end_date)

    total = (await db.execute(select(func.count()).select_from(Response).where(*filters))).scalar()
    rows = (
        await db.execute(
            select(Response)
            .where(*filters)
            .order_by(Response.started_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
    ).scalars().all()

    answer_counts: dict[uuid.UUID, int] = {}
    if rows:
        result = await db.execute(
            select(Answer.response_id, func.count())
            .where(Answer.response_id.in_([r.id for r in rows]))
            .group_by(Answer.response_id)
        )
        answer_counts = {rid: n for rid, n in result.all()}

    total_questions = (
        await db.execute(
            select(func.count()).select_from(Question).where(Question.survey_id == survey.id)
        )
    ).scalar() or 0

    items = []
    for r in rows:
        answered = answer_counts.get(r.id, 0)
        items.append({
            "id": str(r.id),
            "status": r.status,
            "respondent": _respondent_label(survey, r),
            "startedAt": _iso(r.started_at),
            "completedAt": _iso(r.completed_at),
            "answeredQuestions": answered,
            "totalQuestions": total_questions,
            "completionPercentage": completion_rate(answered, total_questions),
            "metadata": r.meta or {},
        })

    return {
        "responses": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


def _respondent_label(survey: Survey, response: Response) -> str:
    if survey.is_anonymous:
        return "Anonymous"
    if response.respondent is not None:
        return response.respondent.email
    return response.anonymous_token or "Unknown"


async def response_detail(db: AsyncSession, ctx: AuthContext, response_id: uuid.UUID) -> dict:
    response = await db.get(Response, response_id)
    if response is None:
        raise NotFound("Response not found")
    survey = await db.get(Survey, response.survey_id)
    if not ctx.can_access_company(survey.company_id):
        raise Forbidden("Access denied")

    result = await db.execute(
        select(Answer, Question)
        .join(Question, Question.id == Answer.question_id)
        .where(Answer.response_id == response.id)
        .order_by(Question.order_index)
    )

    duration = None
    if response.completed_at and response.started_at:
        duration = js_round((response.completed_at - response.started_at).total_seconds())

    respondent: dict[str, Any]
    if survey.is_anonymous:
        respondent = {"anonymous": True}
    else:
        respondent = {"token": response.anonymous_token}
        if response.respondent is not None:
            respondent["email"] = response.respondent.email

    return {
        "id": str(response.id),
        "surveyId": str(survey.id),
        "surveyTitle": survey.title,
        "status": response.status,
        "startedAt": _iso(response.started_at),
        "completedAt": _iso(response.completed_at),
        "durationSeconds": duration,
        "respondent": respondent,
        "metadata": response.meta or {},
        "answers": [
            {
                "answerId": str(answer.id),
                "questionId": str(question.id),
                "questionText": question.content,
                "questionType": question.type,
                "questionOptions": question.options or {},
                "answer": decode_answer(answer.value),
                "answeredAt": _iso(answer.updated_at),
            }
            for answer, question in result.all()
        ],
    }


async def company_analytics(
    db: AsyncSession,
    ctx: AuthContext,
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    survey_filters = [] if ctx.is_super_admin else [Survey.company_id == ctx.company_id]

    s_total, s_draft, s_active, s_closed = (
        await db.execute(
            select(
                func.count(),
                func.count().filter(Survey.status == "draft"),
                func.count().filter(Survey.status == "active"),
                func.count().filter(Survey.status == "closed"),
            ).select_from(Survey).where(*survey_filters)
        )
    ).one()

    response_filters = list(survey_filters)
    if start_date:
        response_filters.append(Response.started_at >= start_date)
    if end_date:
        response_filters.append(Response.started_at <= end_date)
    r_total, r_completed = (
        await db.execute(
            select(func.count(), func.count().filter(Response.status == _COMPLETED))
            .select_from(Response)
            .join(Survey, Survey.id == Response.survey_id)
            .where(*response_filters)
        )
    ).one()

    response_count = func.count(Response.id)
    top = await db.execute(
        select(
            Survey.id,
            Survey.title,
            Survey.type,
            response_count.label("response_count"),
            func.count(Response.id).filter(Response.status == _COMPLETED),
        )
        .outerjoin(Response, Response.survey_id == Survey.id)
        .where(Survey.status == "active", *survey_filters)
        .group_by(Survey.id)
        .order_by(response_count.desc())
        .limit(5)
    )

    nps_values = (
        await db.execute(
            select(Answer.value)
            .join(Question, Question.id == Answer.question_id)
            .join(Response, Response.id == Answer.response_id)
            .join(Survey, Survey.id == Response.survey_id)
            .where(Question.type == "nps", Response.status == _COMPLETED, *survey_filters)
        )
    ).scalars().all()

    trend_filters = []
    if not ctx.is_super_admin:
        trend_filters.append(
            Response.survey_id.in_(select(Survey.id).where(Survey.company_id == ctx.company_id))
        )

    return {
        "surveys": {"total": s_total, "draft": s_draft, "active": s_active, "closed": s_closed},
        "responses": {
            "total": r_total,
            "completed": r_completed,
            "completionRate": completion_rate(r_completed, r_total),
        },
        "overallNps": nps_score(nps_values),
        "topSurveys": [
            {
                "id": str(sid),
                "title": title,
                "type": stype,
                "responseCount": rc,
                "completedCount": cc,
            }
            for sid, title, stype, rc, cc in top.all()
        ],
        "trend": bucket_trend(await _trend_rows(db, *trend_filters)),
    }
