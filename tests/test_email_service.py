"""
Unit tests for certificate email delivery.
"""
from unittest.mock import AsyncMock, patch

from app.core.config import settings
from app.services.email_service import DEFAULT_BODY, DEFAULT_SUBJECT, build_message, send_certificate_email

DATA = {"name": "Ana", "certificate_url": "https://cdn.test/certificate_1.html"}


def test_message_renders_placeholders():
    message = build_message("ana@example.com", "Hi {{name}}", DEFAULT_BODY, DATA)

    assert message["To"] == "ana@example.com"
    assert message["Subject"] == "Hi Ana"
    body = message.get_payload()[0].get_payload(decode=True).decode()
    assert "https://cdn.test/certificate_1.html" in body
    assert body.startswith("Hello Ana,")


async def test_send_uses_smtp_settings(monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.test")
    monkeypatch.setattr(settings, "SMTP_PORT", 2525)
    monkeypatch.setattr(settings, "SMTP_USERNAME", "")

    with patch("app.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
        await send_certificate_email("ana@example.com", DEFAULT_SUBJECT, DEFAULT_BODY, DATA)

    message = send.await_args.args[0]
    assert message["Subject"] == DEFAULT_SUBJECT
    assert send.await_args.kwargs["hostname"] == "smtp.test"
    assert send.await_args.kwargs["port"] == 2525
    assert send.await_args.kwargs["username"] is None
