"""
Response lifecycle: the state machine for one respondent's pass through a
survey (``started`` -> ``completed``).

Answers are written with ``INSERT ... ON CONFLICT DO UPDATE`` on
(response_id, question_id), so saving the same question twice keeps one row
holding the last write. Every write first re-reads the response filtered on
``status = 'started'``; a completed response can never gain answers.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from user_agents import parse as parse_user_agent

from app.core.domain import ResponseStatus, is_valid_language_code
from app.core.errors import Forbidden, NotFound, ValidationError
from app.core.metrics import survey_responses_completed_total, survey_responses_started_total
from app.core.permissions import AuthContext
from app.models.distribution import Distribution
from app.models.response import Answer, Response
from app.models.survey import Question, QuestionTranslation, Survey, SurveyTranslation
from app.services.answer_values import decode_answer, encode_answer

logger = logging.getLogger(__name__)

_STARTED = ResponseStatus.STARTED.value
_COMPLETED = ResponseStatus.COMPLETED.value


@dataclass(frozen=True)
class ClientInfo:
    ip: str | None = None
    user_agent: str | None = None


def _engine(ua: str) -> str | None:
    if "Trident" in ua:
        return "Trident"
    if "Edge/" in ua:
        return "EdgeHTML"
    if "Gecko/" in ua and "like Gecko" not in ua:
        return "Gecko"
    if "Chrome/" in ua or "Chromium/" in ua:
        return "Blink"
    if "AppleWebKit" in ua:
        return "WebKit"
    return None


def client_metadata(client: ClientInfo | None) -> dict:
    """IP plus a parsed user agent, stored on the response's metadata column."""
    if client is None:
        return {}
    meta: dict[str, Any] = {"ip": client.ip}
    if client.user_agent:
        ua = parse_user_agent(client.user_agent)
        if ua.is_mobile:
            device_type = "mobile"
        elif ua.is_tablet:
            device_type = "tablet"
        elif ua.is_bot:
            device_type = "bot"
        else:
            device_type = "desktop"
        meta.update({
            "userAgent": client.user_agent,
            "browser": {"name": ua.browser.family, "version": ua.browser.version_string},
            "os": {"name": ua.os.family, "version": ua.os.version_string},
            "device": {
                "type": device_type,
                "vendor": ua.device.brand,
                "model": ua.device.model,
            },
            "engine": _engine(client.user_agent),
        })
    return meta


def _now() -> datetime:
    return datetime.now(timezone.utc)


def check_window(survey: Survey, now: datetime | None = None) -> None:
    """Raise when ``now`` falls outside the survey's [starts_at, ends_at] window."""
    now = now or _now()
    if survey.starts_at and survey.starts_at > now:
        raise ValidationError("Survey has not started yet")
    if survey.ends_at and survey.ends_at < now:
        raise ValidationError("Survey has ended")


async def _active_survey(db: AsyncSession, survey_id: uuid.UUID, ctx: AuthContext | None) -> Survey:
    survey = (
        await db.execute(select(Survey).where(Survey.id == survey_id, Survey.status == "active"))
    ).scalar_one_or_none()
    if survey is None or (not survey.is_public and ctx is None):
        raise NotFound("Survey not found or not active")
    return survey


async def _started_response(db: AsyncSession, response_id: uuid.UUID) -> Response:
    response = (
        await db.execute(
            select(Response).where(Response.id == response_id, Response.status == _STARTED)
        )
    ).scalar_one_or_none()
    if response is None:
        raise NotFound("Response not found or already completed")
    return response


async def _question_ids(db: AsyncSession, survey_id: uuid.UUID) -> list[tuple[uuid.UUID, bool]]:
    """(id, is_required) for every question of a survey, in order."""
    result = await db.execute(
        select(Question.id, Question.is_required)
        .where(Question.survey_id == survey_id)
        .order_by(Question.order_index)
    )
    return [(qid, required) for qid, required in result.all()]


def missing_required(
    questions: list[tuple[uuid.UUID, bool]], answered: set[uuid.UUID]
) -> list[uuid.UUID]:
    """Required question ids without an answer, in question order."""
    return [qid for qid, required in questions if required and qid not in answered]


async def _upsert_answer(
    db: AsyncSession, response_id: uuid.UUID, question_id: uuid.UUID, value: Any
) -> None:
    stored = encode_answer(value)
    stmt = pg_insert(Answer).values(
        id=uuid.uuid4(),
        response_id=response_id,
        question_id=question_id,
        value=stored,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["response_id", "question_id"],
        set_={"value": stored, "updated_at": func.now(), "answered_at": func.now()},
    )
    await db.execute(stmt)


# ── Public survey projection ──────────────────────────────────────────


async def get_public_survey(
    db: AsyncSession,
    survey_id: uuid.UUID,
    *,
    language: str | None = None,
    distribution_id: str | None = None,
    ctx: AuthContext | None = None,
) -> dict:
    survey = await _active_survey(db, survey_id, ctx)
    check_window(survey)

    lang = language or survey.default_language or "en"
    questions = (
        await db.execute(
            select(Question).where(Question.survey_id == survey.id).order_by(Question.order_index)
        )
    ).scalars().all()

    survey_tr = (
        await db.execute(
            select(SurveyTranslation).where(
                SurveyTranslation.survey_id == survey.id,
                SurveyTranslation.language_code == lang,
            )
        )
    ).scalar_one_or_none()

    translations: dict[uuid.UUID, QuestionTranslation] = {}
    if questions:
        result = await db.execute(
            select(QuestionTranslation).where(
                QuestionTranslation.question_id.in_([q.id for q in questions]),
                QuestionTranslation.language_code == lang,
            )
        )
        translations = {t.question_id: t for t in result.scalars().all()}

    items = []
    for q in questions:
        tr = translations.get(q.id)
        items.append({
            "id": str(q.id),
            "type": q.type,
            "extendedType": q.extended_type,
            "content": (tr.content if tr and tr.content else q.content),
            "options": (tr.options if tr and tr.options else q.options) or {},
            "isRequired": q.is_required,
            "orderIndex": q.order_index,
        })

    return {
        "survey": {
            "id": str(survey.id),
            "title": survey_tr.title if survey_tr and survey_tr.title else survey.title,
            "description": (
                survey_tr.description if survey_tr and survey_tr.description
                else survey.description
            ),
            "type": survey.type,
            "isAnonymous": survey.is_anonymous,
            "defaultLanguage": survey.default_language,
            "settings": survey.settings or {},
        },
        "language": lang,
        "questions": items,
        "distributionId": distribution_id,
    }


async def get_survey_languages(db: AsyncSession, survey_id: uuid.UUID) -> dict:
    survey = await db.get(Survey, survey_id)
    if survey is None:
        raise NotFound("Survey not found")
    codes = (
        await db.execute(
            select(SurveyTranslation.language_code)
            .where(SurveyTranslation.survey_id == survey.id)
            .order_by(SurveyTranslation.language_code)
        )
    ).scalars().all()
    languages = [survey.default_language]
    languages += [c for c in codes if c not in languages]
    return {"languages": languages}


async def get_survey_settings(db: AsyncSession, survey_id: uuid.UUID) -> dict:
    survey = await db.get(Survey, survey_id)
    if survey is None:
        raise NotFound("Survey not found")
    return {"surveyId": str(survey.id), "title": survey.title, "settings": survey.settings or {}}


# ── Lifecycle ─────────────────────────────────────────────────────────


async def start(
    db: AsyncSession,
    survey_id: uuid.UUID,
    *,
    ctx: AuthContext | None = None,
    distribution_id: str | None = None,
    language: str | None = None,
    client: ClientInfo | None = None,
) -> dict:
    if language and not is_valid_language_code(language):
        raise ValidationError("Invalid language code", language=language[:20])
    survey = await _active_survey(db, survey_id, ctx)
    check_window(survey)

    # Unknown or foreign distributions are not linked, and the token falls back to "direct"
    distribution = None
    if distribution_id:
        try:
            dist_uuid = uuid.UUID(str(distribution_id))
        except ValueError:
            dist_uuid = None
        if dist_uuid is not None:
            distribution = (
                await db.execute(
                    select(Distribution).where(
                        Distribution.id == dist_uuid, Distribution.survey_id == survey.id
                    )
                )
            ).scalar_one_or_none()

    prefix = str(distribution.id) if distribution else "direct"
    response = Response(
        survey_id=survey.id,
        respondent_id=ctx.user_id if ctx else None,
        distribution_id=distribution.id if distribution else None,
        anonymous_token=f"{prefix}_{uuid.uuid4()}",
        ip_address=client.ip if client else None,
        language_used=language or survey.default_language or "en",
        status=_STARTED,
        started_at=_now(),
        meta=client_metadata(client),
    )
    db.add(response)
    await db.commit()

    channel = distribution.channel if distribution else "direct"
    survey_responses_started_total.labels(channel=channel).inc()
    logger.info("Response %s started for survey %s", response.id, survey.id)
    return {"responseId": str(response.id), "anonymousToken": response.anonymous_token}


async def save_answer(
    db: AsyncSession, response_id: uuid.UUID, question_id: uuid.UUID, value: Any
) -> dict:
    response = await _started_response(db, response_id)
    owner = (
        await db.execute(select(Question.survey_id).where(Question.id == question_id))
    ).scalar_one_or_none()
    if owner is None:
        raise NotFound("Question not found")
    if owner != response.survey_id:
        raise ValidationError("Question does not belong to this survey")

    await _upsert_answer(db, response.id, question_id, value)
    await db.commit()
    return {"message": "Answer saved"}


async def submit_answers(
    db: AsyncSession, response_id: uuid.UUID, answers: list[dict]
) -> dict:
    """Persist a batch of ``{"questionId", "value"}`` and complete in one commit.

    Required questions are checked against the union of the batch and the
    answers already saved for this response.
    """
    response = await _started_response(db, response_id)
    questions = await _question_ids(db, response.survey_id)
    known = {qid for qid, _ in questions}

    batch: dict[uuid.UUID, Any] = {}
    for item in answers:
        try:
            qid = uuid.UUID(str(item.get("questionId")))
        except ValueError:
            raise ValidationError(
                "Invalid question id", questionId=item.get("questionId")
            ) from None
        if qid not in known:
            raise ValidationError("Question does not belong to this survey", questionId=str(qid))
        batch[qid] = item.get("value")

    stored = set(
        (
            await db.execute(select(Answer.question_id).where(Answer.response_id == response.id))
        ).scalars().all()
    )
    missing = missing_required(questions, stored | set(batch))
    if missing:
        raise ValidationError(
            "Missing required questions", missingQuestionIds=[str(m) for m in missing]
        )

    for qid, value in batch.items():
        await _upsert_answer(db, response.id, qid, value)
    await _mark_completed(db, response)
    await db.commit()

    survey_responses_completed_total.labels(path="submit").inc()
    logger.info("Response %s submitted with %d answers", response.id, len(batch))
    return {"message": "Survey submitted successfully"}


async def complete(db: AsyncSession, response_id: uuid.UUID) -> dict:
    response = await _started_response(db, response_id)
    questions = await _question_ids(db, response.survey_id)
    answered = set(
        (
            await db.execute(select(Answer.question_id).where(Answer.response_id == response.id))
        ).scalars().all()
    )
    missing = missing_required(questions, answered)
    if missing:
        raise ValidationError(
            "Please answer all required questions",
            missingQuestionIds=[str(m) for m in missing],
        )

    await _mark_completed(db, response)
    await db.commit()

    survey_responses_completed_total.labels(path="complete").inc()
    logger.info("Response %s completed", response.id)
    return {"message": "Survey completed successfully"}


async def _mark_completed(db: AsyncSession, response: Response) -> None:
    # Guarded on status so a concurrent completion cannot double-flip
    result = await db.execute(
        update(Response)
        .where(Response.id == response.id, Response.status == _STARTED)
        .values(status=_COMPLETED, completed_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("Response not found or already completed")
    await db.refresh(response)


async def abandon(db: AsyncSession, ctx: AuthContext, response_id: uuid.UUID) -> dict:
    """Administratively close a started response without completing it."""
    response = await _started_response(db, response_id)
    survey = await db.get(Survey, response.survey_id)
    if not ctx.can_access_company(survey.company_id):
        raise Forbidden("Access denied")
    response.status = ResponseStatus.ABANDONED.value
    await db.commit()
    return {"message": "Response marked as abandoned"}


async def get_progress(db: AsyncSession, response_id: uuid.UUID) -> dict:
    response = await db.get(Response, response_id)
    if response is None:
        raise NotFound("Response not found")
    rows = (
        await db.execute(
            select(Answer.question_id, Answer.value).where(Answer.response_id == response.id)
        )
    ).all()
    return {
        "responseId": str(response.id),
        "surveyId": str(response.survey_id),
        "status": response.status,
        "anonymousToken": response.anonymous_token,
        "answers": {str(qid): decode_answer(value) for qid, value in rows},
        "startedAt": response.started_at.isoformat() if response.started_at else None,
    }


# ── Respondent views ──────────────────────────────────────────────────


async def get_user_survey_status(db: AsyncSession, ctx: AuthContext) -> dict:
    rows = (
        await db.execute(
            select(Response.survey_id, Response.completed_at).where(
                Response.respondent_id == ctx.user_id, Response.status == _COMPLETED
            )
        )
    ).all()
    return {
        "completedSurveyIds": [str(sid) for sid, _ in rows],
        "completions": [
            {"surveyId": str(sid), "completedAt": at.isoformat() if at else None}
            for sid, at in rows
        ],
    }


async def get_user_completed_surveys(db: AsyncSession, ctx: AuthContext) -> dict:
    stmt = (
        select(Survey.id, Survey.title, Survey.description, Survey.type, Response.completed_at)
        .join(Response, Response.survey_id == Survey.id)
        .where(Response.respondent_id == ctx.user_id, Response.status == _COMPLETED)
        .order_by(Response.completed_at.desc())
    )
    if not ctx.is_super_admin:
        stmt = stmt.where(
            (Survey.company_id == ctx.company_id) | Survey.company_id.is_(None)
        )
    rows = (await db.execute(stmt)).all()
    data = [
        {
            "id": str(sid),
            "title": title,
            "description": description,
            "type": stype,
            "completedAt": at.isoformat() if at else None,
        }
        for sid, title, description, stype, at in rows
    ]
    return {"data": data, "total": len(data)}
