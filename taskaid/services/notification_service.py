import logging
import math
from email.message import EmailMessage

import aiosmtplib
from fastapi import BackgroundTasks

from taskaid.config import Settings
from taskaid.models.submission import Submission

logger = logging.getLogger(__name__)

_NOT_PROVIDED = "(not provided)"


def _size_kb(size_bytes: int) -> int:
    # half-up, matching how sizes were always shown in these emails
    return math.floor(size_bytes / 1024 + 0.5)


def render_body(submission: Submission) -> str:
    s = submission
    if s.files:
        file_list = "\n".join(f"• {f.original_name} ({_size_kb(f.size_bytes)} KB)" for f in s.files)
    else:
        file_list = "None"

    return (
        f"New TaskAid task received ({s.id})\n"
        "\n"
        f"Category: {s.category}\n"
        f"Title: {s.title}\n"
        f"Description: {s.description}\n"
        "\n"
        f"Location: {s.suburb} {s.postcode}\n"
        f"Address: {s.address or _NOT_PROVIDED}\n"
        f"Timing: {s.timing}\n"
        f"Budget: {s.budget or _NOT_PROVIDED}\n"
        "\n"
        "Customer:\n"
        f"Name: {s.name}\n"
        f"Mobile: {s.mobile}\n"
        f"Email: {s.email}\n"
        f"Preferred contact: {s.contact_pref}\n"
        "\n"
        "Photos:\n"
        f"{file_list}\n"
        "\n"
        f"Submitted at: {s.created_at}\n"
    )


class NotificationService:
    """Emails staff about new submissions. Delivery is best-effort and never retried."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def is_configured(self) -> bool:
        return self._settings.smtp_configured and bool(self._settings.NOTIFY_EMAIL_TO)

    def compose(self, submission: Submission) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._settings.NOTIFY_EMAIL_FROM
        msg["To"] = self._settings.NOTIFY_EMAIL_TO
        # header values must not carry CR/LF from free-text fields
        subject = f"New TaskAid Task: {submission.title} ({submission.suburb})"
        msg["Subject"] = " ".join(subject.split())
        msg.set_content(render_body(submission))
        return msg

    def try_send(self, submission: Submission, background_tasks: BackgroundTasks) -> bool:
        """
        Schedule a notification for the submission, to run after the response is sent.
        Returns False without doing anything when mail is not configured.
        """
        if not self.is_configured:
            logger.debug("[notify] mail not configured | id=%s", submission.id)
            return False
        background_tasks.add_task(self.deliver, submission)
        return True

    async def deliver(self, submission: Submission) -> None:
        """Compose and send the notification. Failures are logged and dropped."""
        s = self._settings
        submission_id = submission.id
        try:
            message = self.compose(submission)
            await aiosmtplib.send(
                message,
                hostname=s.SMTP_HOST,
                port=s.SMTP_PORT,
                username=s.SMTP_USER,
                password=s.SMTP_PASS,
                use_tls=s.SMTP_SECURE,
                timeout=s.SMTP_TIMEOUT,
            )
            logger.info("[notify] sent | id=%s", submission_id)
        except Exception as exc:
            logger.error("[notify] email sending failed | id=%s | error=%s", submission_id, exc)
