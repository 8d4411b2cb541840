"""Submission receipt e-mails.

Receipts are a best-effort side effect of an accepted submission. The
mailer reports whether it sent anything and why not; callers log the
result and never let it change the submission outcome.
"""

import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from app.config import Settings, get_settings
from app.schemas.form import EmailNotificationSettings
from app.services.respondent_key import RespondentKey
from app.services.template_renderer import TemplateRenderer, get_template_renderer
from app.logging_config import get_logger

logger = get_logger(__name__)

SUBJECT_MAX_LENGTH = 200
SMTP_TIMEOUT_SECONDS = 15


@dataclass
class ReceiptResult:
    """Outcome of a receipt attempt.

    Attributes:
        sent: Whether the message was handed to the SMTP server
        provider: Transport used ("smtp") when sent
        reason: Why nothing was sent (missing_sender_email, missing_mailer_config)
    """
    sent: bool
    provider: Optional[str] = None
    reason: Optional[str] = None


def format_submitted_at(value: datetime) -> str:
    """Human readable submission time, e.g. 'Mar 4, 2026, 2:05 PM UTC'."""
    if value.tzinfo is None:
        suffix = " UTC"
    else:
        suffix = f" {value.tzname()}" if value.tzname() else ""
    hour = value.strftime("%I").lstrip("0") or "12"
    return f"{value:%b} {value.day}, {value:%Y}, {hour}:{value:%M %p}{suffix}"


class ReceiptMailer:
    """Renders and sends submission receipts over SMTP."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self.settings = settings or get_settings()
        self.renderer = renderer or get_template_renderer()

    @property
    def sender_email(self) -> Optional[str]:
        return self.settings.smtp_from or self.settings.smtp_user

    def mail_status(self) -> dict:
        """Report whether receipts can be sent and what is missing.

        Returns:
            dict with configured, provider, sender_email and missing flags
        """
        has_smtp = self.settings.smtp_configured
        sender = self.sender_email
        return {
            "configured": bool(has_smtp and sender),
            "provider": "smtp" if has_smtp else None,
            "sender_email": sender,
            "missing": {
                "sender_email": not sender,
                "smtp_config": not has_smtp,
            },
        }

    def render_receipt(
        self,
        to: str,
        name: str,
        form_title: str,
        submitted_at: datetime,
        templates: EmailNotificationSettings,
    ) -> tuple[str, str]:
        """Render subject and body for a receipt.

        Raises:
            TemplateRenderError: If a template is invalid
        """
        context = {
            "name": RespondentKey.display_name(to, name),
            "email": to,
            "formTitle": form_title or "Form",
            "submittedAt": format_submitted_at(submitted_at),
        }
        subject = self.renderer.render(templates.subject, context)
        # Header values must stay on one line
        subject = " ".join(subject.split())[:SUBJECT_MAX_LENGTH]
        body = self.renderer.render(templates.message, context)
        return subject, body

    def send_receipt(
        self,
        to: str,
        name: str,
        form_title: str,
        submitted_at: datetime,
        templates: EmailNotificationSettings,
    ) -> ReceiptResult:
        """Send a submission receipt.

        Args:
            to: Respondent email address
            name: Respondent display name ("" falls back to the local part)
            form_title: Title of the submitted form
            submitted_at: When the response was accepted
            templates: Subject and message templates from the form

        Returns:
            ReceiptResult describing what happened

        Raises:
            TemplateRenderError: If a template is invalid
            smtplib.SMTPException, OSError: If the SMTP exchange fails
        """
        sender = self.sender_email
        if not sender:
            return ReceiptResult(sent=False, reason="missing_sender_email")
        if not self.settings.smtp_configured:
            return ReceiptResult(sent=False, reason="missing_mailer_config")

        subject, body = self.render_receipt(to, name, form_title, submitted_at, templates)

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.settings.mail_from_name, sender))
        msg["To"] = to
        msg.set_content(body)

        self._deliver(msg)
        logger.info(f"Receipt sent to {RespondentKey.mask_for_logging(to)}")
        return ReceiptResult(sent=True, provider="smtp")

    def _deliver(self, msg: EmailMessage) -> None:
        host = self.settings.smtp_host
        port = self.settings.smtp_port
        context = ssl.create_default_context()

        if self.settings.smtp_use_ssl or port == 465:
            with smtplib.SMTP_SSL(host, port, context=context, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.login(self.settings.smtp_user, self.settings.smtp_password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.ehlo()
                server.starttls(context=context)
                server.ehlo()
                server.login(self.settings.smtp_user, self.settings.smtp_password)
                server.send_message(msg)


def get_receipt_mailer() -> ReceiptMailer:
    """FastAPI dependency returning a mailer bound to current settings."""
    return ReceiptMailer()
