"""
SMTP delivery of generated reports.

Delivery is separate from generation: a failed send never invalidates the
PDF that was produced, it only surfaces as a DeliveryError.
"""
import re
import smtplib
from email.message import EmailMessage
from typing import Callable, List, Sequence

import structlog

from ..config import settings
from ..errors import DeliveryError, ValidationError


logger = structlog.get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_recipients(recipients: Sequence[str]) -> List[str]:
    """Trimmed recipients; one bad address rejects the whole batch."""
    cleaned = [(r or "").strip() for r in recipients or []]
    if not cleaned:
        raise ValidationError("At least one recipient is required")
    invalid = [r for r in cleaned if not EMAIL_RE.match(r)]
    if invalid:
        raise ValidationError(f"Invalid email addresses: {', '.join(invalid)}")
    return cleaned


def build_message(recipients: Sequence[str], subject: str, body: str, filename: str, content: bytes) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject or filename
    msg["From"] = settings.mail_from
    msg["To"] = ", ".join(recipients)
    msg.set_content(body or "Please find the attached report.")
    msg.add_attachment(content, maintype="application", subtype="pdf", filename=filename)
    return msg


class ReportMailer:
    def __init__(self, smtp_factory: Callable = smtplib.SMTP):
        self.smtp_factory = smtp_factory

    def send_report(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
        filename: str,
        content: bytes,
    ) -> int:
        """Send one message to every recipient; returns how many were addressed."""
        recipients = validate_recipients(recipients)
        if not settings.enable_email or not settings.smtp_host or not settings.mail_from:
            raise DeliveryError("Email delivery is not configured")
        msg = build_message(recipients, subject, body, filename, content)
        try:
            with self.smtp_factory(settings.smtp_host, settings.smtp_port) as s:
                if settings.smtp_tls:
                    s.starttls()
                if settings.smtp_username and settings.smtp_password:
                    s.login(settings.smtp_username, settings.smtp_password)
                s.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("report_email_failed", filename=filename, recipients=len(recipients), error=str(e))
            raise DeliveryError("Failed to send email")
        logger.info("report_emailed", filename=filename, recipients=len(recipients), size_bytes=len(content))
        return len(recipients)
