"""
services/email_service.py
Async email delivery of certificate links via SMTP.
"""
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Mapping

import aiosmtplib

from app.core.config import settings
from app.services.template_renderer import Scalar, render_template
from app.utils.helpers import get_logger

logger = get_logger(__name__)

DEFAULT_SUBJECT = "Your certificate is ready"
DEFAULT_BODY = "Hello {{name}},\n\nYour certificate is available at {{certificate_url}}\n"


def build_message(
    recipient_email: str,
    subject_template: str,
    body_template: str,
    data: Mapping[str, Scalar],
) -> MIMEMultipart:
    """Render subject and body with the recipient's values and build the MIME message."""
    message = MIMEMultipart()
    message["From"] = settings.EMAIL_FROM
    message["To"] = recipient_email
    message["Subject"] = render_template(subject_template, data)
    message.attach(MIMEText(render_template(body_template, data), "plain"))
    return message


async def send_certificate_email(
    recipient_email: str,
    subject_template: str,
    body_template: str,
    data: Mapping[str, Scalar],
) -> None:
    """
    Send a single certificate email asynchronously.

    Args:
        recipient_email: Recipient's email address
        subject_template: Email subject (may contain {{placeholders}})
        body_template: Email body (may contain {{placeholders}})
        data: Values for the placeholders, including name and certificate_url

    Raises:
        aiosmtplib.SMTPException: If sending fails
    """
    message = build_message(recipient_email, subject_template, body_template, data)
    await aiosmtplib.send(
        message,
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME or None,
        password=settings.SMTP_PASSWORD or None,
        start_tls=True,
    )
    logger.info(f"Email sent successfully to {recipient_email}")
