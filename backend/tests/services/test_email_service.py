"""Unit tests for the SMTP email service.

These tests do NOT require a database; they mock smtplib and settings.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

from app.services.email_service import render_invitation, send_email, send_survey_reminder


class TestSendEmail:
    async def test_returns_false_when_not_configured(self):
        with patch("app.services.email_service.settings") as mock_settings:
            mock_settings.SMTP_HOST = ""
            result = await send_email("user@example.com", "Subject", "<p>Body</p>")
        assert result is False

    async def test_calls_smtp_when_configured(self):
        mock_smtp_instance = MagicMock()
        with (
            patch("app.services.email_service.settings") as mock_settings,
            patch(
                "app.services.email_service.smtplib.SMTP",
                return_value=mock_smtp_instance,
            ) as mock_smtp_cls,
        ):
            mock_settings.SMTP_HOST = "smtp.example.com"
            mock_settings.SMTP_PORT = 587
            mock_settings.SMTP_TLS = True
            mock_settings.SMTP_USER = "user"
            mock_settings.SMTP_PASSWORD = "pass"
            mock_settings.SMTP_FROM = "noreply@example.com"

            result = await send_email("user@example.com", "Subject", "<p>Body</p>", "Body")

        assert result is True
        mock_smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=30)
        mock_smtp_instance.starttls.assert_called_once()
        mock_smtp_instance.login.assert_called_once_with("user", "pass")
        mock_smtp_instance.sendmail.assert_called_once()
        mock_smtp_instance.quit.assert_called_once()

    async def test_no_tls_or_login_when_disabled(self):
        mock_smtp_instance = MagicMock()
        with (
            patch("app.services.email_service.settings") as mock_settings,
            patch(
                "app.services.email_service.smtplib.SMTP",
                return_value=mock_smtp_instance,
            ),
        ):
            mock_settings.SMTP_HOST = "smtp.example.com"
            mock_settings.SMTP_PORT = 25
            mock_settings.SMTP_TLS = False
            mock_settings.SMTP_USER = ""
            mock_settings.SMTP_PASSWORD = ""
            mock_settings.SMTP_FROM = "noreply@example.com"

            await send_email("user@example.com", "Subject", "<p>Body</p>")

        mock_smtp_instance.starttls.assert_not_called()
        mock_smtp_instance.login.assert_not_called()
        mock_smtp_instance.quit.assert_called_once()


class TestInvitation:
    def test_render_escapes_user_content(self):
        body_html, body_text = render_invitation(
            "<b>Pulse</b>", "https://app.test/survey?a=1&b=2", message="Hi <team>"
        )
        assert "&lt;b&gt;Pulse&lt;/b&gt;" in body_html
        assert "a=1&amp;b=2" in body_html
        assert "Hi &lt;team&gt;" in body_html
        assert "Take the survey: https://app.test/survey?a=1&b=2" in body_text
        assert "Message: Hi <team>" in body_text

    async def test_reminder_prefixes_subject(self):
        with patch("app.services.email_service.send_email", new=AsyncMock(return_value=True)) as sent:
            result = await send_survey_reminder("a@b.test", "Pulse", "Pulse", "https://x")
        assert result is True
        assert sent.await_args.args[1] == "Reminder: Pulse"
