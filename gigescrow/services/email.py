"""Email sending backends.

- Log-only (development / testing): logs the email instead of sending
- SMTP via aiosmtplib
- Resend HTTP API via httpx

Select with EMAIL_BACKEND=log|smtp|resend.
"""

import logging
from typing import Protocol

import httpx

from gigescrow.config import settings

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html_body: str) -> None: ...


class LogEmailSender:
    """Development sender: logs email content instead of sending."""

    async def send(self, to: str, subject: str, html_body: str) -> None:
        logger.info("EMAIL to=%s subject=%s\n%s", to, subject, html_body)


class SmtpEmailSender:
    async def send(self, to: str, subject: str, html_body: str) -> None:
        import aiosmtplib
        from email.message import EmailMessage

        msg = EmailMessage()
        msg["From"] = settings.email_from_address
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html_body, subtype="html")

        await aiosmtplib.send(
            msg,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username or None,
            password=settings.smtp_password or None,
            use_tls=settings.smtp_use_tls,
        )


class ResendEmailSender:
    async def send(self, to: str, subject: str, html_body: str) -> None:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.post(
                settings.resend_api_url,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "from": settings.email_from_address,
                    "to": [to],
                    "subject": subject,
                    "html": html_body,
                },
            )
        resp.raise_for_status()


def get_email_sender() -> EmailSender:
    if settings.email_backend == "smtp":
        return SmtpEmailSender()
    if settings.email_backend == "resend":
        return ResendEmailSender()
    return LogEmailSender()
