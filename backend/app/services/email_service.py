"""Simple SMTP email service for survey invitations.

If SMTP_HOST is not configured, emails are skipped and ``send_email``
returns False. Transport failures propagate so that callers sending to a
list of recipients can record each outcome independently.
"""
from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.config import settings

logger = logging.getLogger(__name__)


def _is_configured() -> bool:
    return bool(settings.SMTP_HOST)


def _send_sync(to: str, subject: str, body_html: str, body_text: str) -> None:
    """Send an email synchronously (called from a thread)."""
    msg = MIMEMultipart("alternative")
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to
    msg["Subject"] = subject

    msg.attach(MIMEText(body_text, "plain"))
    msg.attach(MIMEText(body_html, "html"))

    server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)
    try:
        if settings.SMTP_TLS:
            server.starttls()
        if settings.SMTP_USER:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.sendmail(settings.SMTP_FROM, [to], msg.as_string())
    finally:
        server.quit()
    logger.info("Email sent to %s: %s", to, subject)


async def send_email(to: str, subject: str, body_html: str, body_text: str = "") -> bool:
    """Send an email asynchronously. Returns False (no-op) if SMTP is not configured."""
    if not _is_configured():
        logger.debug("SMTP not configured, skipping email to %s", to)
        return False

    if not body_text:
        body_text = body_html  # Fallback plain text

    await asyncio.to_thread(_send_sync, to, subject, body_html, body_text)
    return True


def render_invitation(
    survey_title: str,
    survey_url: str,
    survey_description: str | None = None,
    message: str | None = None,
) -> tuple[str, str]:
    """Return (html, text) bodies for a survey invitation."""
    title = html.escape(survey_title)
    url = html.escape(survey_url, quote=True)

    wrapper = "font-family: sans-serif; max-width: 600px; margin: 0 auto; color: #333"
    header_s = "background: #0284c7; color: white; padding: 24px; text-align: center"
    body_s = "background: #f9fafb; padding: 24px; border: 1px solid #e5e7eb"
    button_s = (
        "display: inline-block; margin: 16px 0; padding: 12px 24px; background: #0284c7; "
        "color: white; text-decoration: none; border-radius: 6px; font-weight: 600"
    )

    description_html = ""
    if survey_description:
        description_html = f'<p style="color:#6b7280">{html.escape(survey_description)}</p>'
    message_html = ""
    if message:
        message_html = (
            '<div style="background:white;padding:12px;border-left:4px solid #0284c7">'
            f"{html.escape(message)}</div>"
        )

    body_html = (
        f'<div style="{wrapper}">'
        f'<div style="{header_s}"><h1 style="margin:0;font-size:20px">Qualitivate</h1>'
        '<p style="margin:4px 0 0">Survey Platform</p></div>'
        f'<div style="{body_s}">'
        f'<h2 style="margin:0">{title}</h2>'
        f"{description_html}{message_html}"
        "<p>You have been invited to participate in this survey. "
        "Your feedback is valuable to us!</p>"
        f'<div style="text-align:center"><a href="{url}" style="{button_s}">Take Survey</a></div>'
        f'<p style="color:#6b7280;font-size:12px;word-break:break-all">'
        f"Or copy this link: {url}</p></div>"
        '<p style="color:#999;font-size:12px;text-align:center">'
        "This email was sent by Qualitivate. "
        "If you did not expect this email, you can safely ignore it.</p></div>"
    )

    parts = [survey_title]
    if survey_description:
        parts.append(survey_description)
    if message:
        parts.append(f"Message: {message}")
    parts.append("You have been invited to participate in this survey. Your feedback is valuable to us!")
    parts.append(f"Take the survey: {survey_url}")
    parts.append("---\nThis email was sent by Qualitivate")
    return body_html, "\n\n".join(parts)


async def send_survey_invitation(
    to: str,
    subject: str,
    survey_title: str,
    survey_url: str,
    survey_description: str | None = None,
    message: str | None = None,
) -> bool:
    body_html, body_text = render_invitation(survey_title, survey_url, survey_description, message)
    return await send_email(to, subject, body_html, body_text)


async def send_survey_reminder(
    to: str,
    subject: str,
    survey_title: str,
    survey_url: str,
    survey_description: str | None = None,
    message: str | None = None,
) -> bool:
    return await send_survey_invitation(
        to, f"Reminder: {subject}", survey_title, survey_url, survey_description, message
    )
