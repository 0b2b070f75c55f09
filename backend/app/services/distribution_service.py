"""Survey distributions: shareable link, QR code, embed snippet and email invitations."""

from __future__ import annotations

import base64
import html
import io
import logging
import re
import uuid
from datetime import datetime, timezone
from urllib.parse import quote

import qrcode
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.domain import DistributionChannel, ResponseStatus
from app.core.errors import NotFound, ValidationError
from app.core.metrics import invitation_emails_total
from app.core.permissions import AuthContext
from app.models.distribution import Distribution
from app.models.response import Response
from app.models.survey import Survey
from app.models.user import User
from app.services import email_service
from app.services.permission_service import PermissionService

logger = logging.getLogger(__name__)

QR_SIZE_PX = 300
QR_BORDER = 2
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def survey_url(survey_id: uuid.UUID, distribution_id: uuid.UUID, *, embed: bool = False) -> str:
    page = "embed" if embed else "respond"
    return f"{settings.FRONTEND_URL}/survey/{survey_id}/{page}?dist={distribution_id}"


def qr_data_url(url: str) -> str:
    """PNG QR code for ``url`` as a data URL, roughly QR_SIZE_PX wide."""
    qr = qrcode.QRCode(border=QR_BORDER, error_correction=qrcode.constants.ERROR_CORRECT_M)
    qr.add_data(url)
    qr.make(fit=True)
    qr.box_size = max(1, QR_SIZE_PX // (qr.modules_count + 2 * QR_BORDER))
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf)
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def embed_code(url: str, width: str = "100%", height: str = "600px") -> str:
    src = html.escape(url, quote=True)
    return (
        f'<iframe src="{src}" width="{html.escape(width, quote=True)}" '
        f'height="{html.escape(height, quote=True)}" frameborder="0" '
        'style="border: none;"></iframe>'
    )


def distribution_to_dict(d: Distribution) -> dict:
    payload = d.payload or {}
    data = {
        "id": str(d.id),
        "surveyId": str(d.survey_id),
        "companyId": str(d.company_id) if d.company_id else None,
        "channel": d.channel,
        "targetUrl": d.target_url,
        "qrCodeUrl": d.qr_code_url,
        "payload": payload,
        "sentAt": d.sent_at.isoformat() if d.sent_at else None,
        "createdAt": d.created_at.isoformat() if d.created_at else None,
    }
    if "embedCode" in payload:
        data["embedCode"] = payload["embedCode"]
    return data


async def list_distributions(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> list[dict]:
    survey = await PermissionService.load_survey(db, ctx, survey_id)
    stmt = select(Distribution).where(Distribution.survey_id == survey.id)
    if not ctx.is_super_admin:
        # Global surveys are shared; their distributions stay with the creating company
        stmt = stmt.where(Distribution.company_id == ctx.company_id)
    result = await db.execute(stmt.order_by(Distribution.created_at.desc()))
    return [distribution_to_dict(d) for d in result.scalars().all()]


def _new(
    db: AsyncSession,
    ctx: AuthContext,
    survey: Survey,
    channel: DistributionChannel,
    *,
    embed: bool = False,
) -> Distribution:
    dist_id = uuid.uuid4()
    dist = Distribution(
        id=dist_id,
        survey_id=survey.id,
        company_id=survey.company_id or ctx.company_id,
        channel=channel.value,
        target_url=survey_url(survey.id, dist_id, embed=embed),
        created_by=ctx.user_id,
        payload={},
    )
    db.add(dist)
    return dist


async def create_link(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> dict:
    survey = await PermissionService.load_survey(db, ctx, survey_id)
    dist = _new(db, ctx, survey, DistributionChannel.LINK)
    await db.commit()
    await db.refresh(dist)
    return distribution_to_dict(dist)


async def create_qr(db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID) -> dict:
    survey = await PermissionService.load_survey(db, ctx, survey_id)
    dist = _new(db, ctx, survey, DistributionChannel.QR_CODE)
    dist.qr_code_url = qr_data_url(dist.target_url)
    await db.commit()
    await db.refresh(dist)
    return distribution_to_dict(dist)


async def create_embed(
    db: AsyncSession,
    ctx: AuthContext,
    survey_id: uuid.UUID,
    width: str = "100%",
    height: str = "600px",
) -> dict:
    survey = await PermissionService.load_survey(db, ctx, survey_id)
    dist = _new(db, ctx, survey, DistributionChannel.EMBED, embed=True)
    dist.payload = {
        "embedCode": embed_code(dist.target_url, width, height),
        "width": width,
        "height": height,
    }
    await db.commit()
    await db.refresh(dist)
    return distribution_to_dict(dist)


def _clean_emails(emails: list[str]) -> list[str]:
    cleaned: list[str] = []
    for raw in emails:
        email = (raw or "").strip()
        if not _EMAIL_RE.match(email):
            raise ValidationError("Invalid email address", email=raw)
        if email.lower() not in (e.lower() for e in cleaned):
            cleaned.append(email)
    if not cleaned:
        raise ValidationError("Email list is required")
    return cleaned


async def _send_invitations(
    survey: Survey,
    base_url: str,
    emails: list[str],
    subject: str,
    message: str | None,
    *,
    reminder: bool = False,
) -> list[dict]:
    """Send one invitation per recipient; a failure never stops the batch. No retries."""
    send = email_service.send_survey_reminder if reminder else email_service.send_survey_invitation
    results = []
    for email in emails:
        url = f"{base_url}&email={quote(email, safe='')}"
        try:
            sent = await send(
                email,
                subject,
                survey.title,
                url,
                survey_description=survey.description,
                message=message,
            )
            status = "sent" if sent else "skipped"
        except Exception:
            logger.warning("Failed to send survey invitation to %s", email, exc_info=True)
            status = "failed"
        invitation_emails_total.labels(status=status).inc()
        results.append({"email": email, "status": status})
    return results


async def create_email(
    db: AsyncSession,
    ctx: AuthContext,
    survey_id: uuid.UUID,
    emails: list[str],
    subject: str | None = None,
    message: str | None = None,
) -> dict:
    survey = await PermissionService.load_survey(db, ctx, survey_id)
    recipients = _clean_emails(emails)
    dist = _new(db, ctx, survey, DistributionChannel.EMAIL)
    subject = subject or f"You're invited to take a survey: {survey.title}"

    results = await _send_invitations(survey, dist.target_url, recipients, subject, message)
    dist.payload = {"subject": subject, "recipients": recipients, "results": results}
    dist.sent_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(dist)

    sent = sum(1 for r in results if r["status"] == "sent")
    logger.info("Survey %s invitations: %d/%d sent", survey.id, sent, len(results))
    return {"data": distribution_to_dict(dist), "results": results}


async def send_to_group(
    db: AsyncSession,
    ctx: AuthContext,
    survey_id: uuid.UUID,
    *,
    department_id: uuid.UUID | None = None,
    site_id: uuid.UUID | None = None,
    company_id: uuid.UUID | None = None,
    subject: str | None = None,
    message: str | None = None,
) -> dict:
    await PermissionService.load_survey(db, ctx, survey_id)

    stmt = select(User.email).where(User.is_active.is_(True))
    if department_id:
        owner, _ = await PermissionService.department_chain(db, department_id)
        stmt = stmt.where(User.department_id == department_id)
    elif site_id:
        owner = await PermissionService.site_company(db, site_id)
        stmt = stmt.where(User.site_id == site_id)
    elif company_id:
        owner = company_id
        stmt = stmt.where(User.company_id == company_id)
    else:
        raise ValidationError("Must specify departmentId, siteId, or companyId")
    PermissionService.require_company(ctx, owner)

    emails = (await db.execute(stmt.order_by(User.email))).scalars().all()
    if not emails:
        raise ValidationError("No users found in the specified group")
    return await create_email(db, ctx, survey_id, list(emails), subject, message)


async def _load(db: AsyncSession, ctx: AuthContext, distribution_id: uuid.UUID) -> Distribution:
    dist = await db.get(Distribution, distribution_id)
    if dist is None:
        raise NotFound("Distribution not found")
    await PermissionService.load_survey(db, ctx, dist.survey_id)
    PermissionService.require_company(ctx, dist.company_id)
    return dist


async def send_reminders(db: AsyncSession, ctx: AuthContext, distribution_id: uuid.UUID) -> dict:
    """Re-send an email distribution to recipients who have not completed it."""
    dist = await _load(db, ctx, distribution_id)
    if dist.channel != DistributionChannel.EMAIL.value:
        raise ValidationError("Reminders are only available for email distributions")
    survey = await db.get(Survey, dist.survey_id)
    payload = dict(dist.payload or {})
    recipients = payload.get("recipients") or [r["email"] for r in payload.get("results", [])]

    completed = set(
        (
            await db.execute(
                select(func.lower(User.email))
                .join(Response, Response.respondent_id == User.id)
                .where(
                    Response.distribution_id == dist.id,
                    Response.status == ResponseStatus.COMPLETED.value,
                )
            )
        ).scalars().all()
    )
    pending = [e for e in recipients if e.lower() not in completed]
    if not pending:
        return {"results": []}

    subject = payload.get("subject") or f"You're invited to take a survey: {survey.title}"
    results = await _send_invitations(survey, dist.target_url, pending, subject, None, reminder=True)
    payload["reminders"] = payload.get("reminders", []) + [
        {"sentAt": datetime.now(timezone.utc).isoformat(), "results": results}
    ]
    dist.payload = payload
    await db.commit()
    return {"results": results}


async def get_stats(db: AsyncSession, ctx: AuthContext, distribution_id: uuid.UUID) -> dict:
    dist = await _load(db, ctx, distribution_id)
    total, completed, started = (
        await db.execute(
            select(
                func.count(),
                func.count().filter(Response.status == ResponseStatus.COMPLETED.value),
                func.count().filter(Response.status == ResponseStatus.STARTED.value),
            )
            .select_from(Response)
            .where(
                Response.survey_id == dist.survey_id,
                Response.anonymous_token.like(f"{dist.id}%"),
            )
        )
    ).one()
    return {
        "distribution": distribution_to_dict(dist),
        "stats": {
            "totalResponses": total,
            "completedResponses": completed,
            "startedResponses": started,
        },
    }


async def delete_distribution(db: AsyncSession, ctx: AuthContext, distribution_id: uuid.UUID) -> None:
    dist = await _load(db, ctx, distribution_id)
    await db.delete(dist)
    await db.commit()
