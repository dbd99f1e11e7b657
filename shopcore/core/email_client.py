# shopcore/core/email_client.py
"""
Outgoing mail for admin exports.

SMTP settings come from the SMTP_* fields of Settings (.env):

    SMTP_HOST=smtp.gmail.com
    SMTP_PORT=465
    SMTP_USERNAME=reports@example.com
    SMTP_PASSWORD=<app password>
    SMTP_FROM_EMAIL=reports@example.com
    SMTP_USE_TLS=false
    SMTP_USE_SSL=true

Use either SSL (usually port 465) or STARTTLS (usually port 587), not both.
"""

import logging
import smtplib
from email.message import EmailMessage

from shopcore.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# (filename, content, mime type) e.g. ("products.csv", b"...", "text/csv")
Attachment = tuple[str, bytes, str]


def _connect(settings: Settings) -> smtplib.SMTP:
    if settings.SMTP_USE_SSL:
        return smtplib.SMTP_SSL(
            settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS
        )

    server = smtplib.SMTP(
        settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS
    )
    if settings.SMTP_USE_TLS:
        server.starttls()
    return server


def build_message(
    settings: Settings,
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
    attachments: list[Attachment] | None = None,
) -> EmailMessage:
    msg = EmailMessage()
    sender = settings.SMTP_FROM_EMAIL or settings.SMTP_USERNAME
    msg["From"] = f"{settings.SMTP_FROM_NAME} <{sender}>"
    msg["To"] = to_email
    msg["Subject"] = subject

    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")

    for filename, content, mime_type in attachments or []:
        maintype, _, subtype = mime_type.partition("/")
        msg.add_attachment(
            content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=filename,
        )
    return msg


def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
    attachments: list[Attachment] | None = None,
) -> None:
    """
    Send an email to a single recipient.

    Raises:
        RuntimeError: SMTP host or credentials are not configured.
        smtplib.SMTPException / OSError: the connection or send failed.
    """
    settings = get_settings()
    if not (settings.SMTP_HOST and settings.SMTP_USERNAME and settings.SMTP_PASSWORD):
        raise RuntimeError(
            "SMTP is not configured. Set SMTP_HOST, SMTP_USERNAME and SMTP_PASSWORD in .env."
        )

    msg = build_message(settings, to_email, subject, text_body, html_body, attachments)

    server = _connect(settings)
    try:
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            logger.debug("SMTP quit failed after send", exc_info=True)
    logger.info("sent %r to %s", subject, to_email)
