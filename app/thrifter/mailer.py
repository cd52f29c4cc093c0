from __future__ import annotations

import logging

from flask import current_app
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import From, Mail, ReplyTo

logger = logging.getLogger(__name__)


class MailError(RuntimeError):
    pass


def send_html_email(to: str | list[str], subject: str, html: str, text: str | None = None) -> bool:
    """
    Send through the SendGrid Web API.
    Returns False (and only logs) when SENDGRID_API_KEY is not configured.
    """
    cfg = current_app.config
    api_key = cfg.get("SENDGRID_API_KEY") or ""
    recipients = [to] if isinstance(to, str) else list(to)

    if not api_key:
        logger.warning("SendGrid API key not configured; email not sent to=%s subject=%r", ", ".join(recipients), subject)
        return False

    message = Mail(
        from_email=From(cfg["SENDGRID_FROM_EMAIL"], cfg.get("SENDGRID_FROM_NAME") or None),
        to_emails=recipients,
        subject=subject,
        html_content=html,
        plain_text_content=text,
    )
    if cfg.get("SENDGRID_REPLY_TO"):
        message.reply_to = ReplyTo(cfg["SENDGRID_REPLY_TO"])

    try:
        response = SendGridAPIClient(api_key).send(message)
    except Exception as e:
        body = getattr(e, "body", None)
        logger.error("SendGrid send failed to=%s subject=%r: %s %s", ", ".join(recipients), subject, e, body or "")
        raise MailError(f"Failed to send email: {e}") from e

    logger.info("Email sent to=%s subject=%r status=%s", ", ".join(recipients), subject, response.status_code)
    return True
