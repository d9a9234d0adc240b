import asyncio
import logging
from collections.abc import Mapping, Sequence

from fastapi import BackgroundTasks

from taskaid.ids import MonotonicMillis, iso_millis
from taskaid.models.submission import FIELD_KEYS, REQUIRED_FIELDS, StoredFile, Submission
from taskaid.repositories.base import AbstractSubmissionLog
from taskaid.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

HONEYPOT_FIELD = "company"


class SubmissionSkipped(Exception):
    pass


class MissingFieldError(Exception):
    def __init__(self, field: str) -> None:
        super().__init__(f"Missing {field}")
        self.field = field


class IntakeService:
    def __init__(
        self,
        log: AbstractSubmissionLog,
        notifier: NotificationService,
        clock: MonotonicMillis | None = None,
    ) -> None:
        self._log = log
        self._notifier = notifier
        self._clock = clock or MonotonicMillis()

    def check_honeypot(self, form: Mapping) -> None:
        """Raises SubmissionSkipped if the hidden honeypot field was filled in."""
        value = form.get(HONEYPOT_FIELD)
        if value is not None and str(value).strip():
            raise SubmissionSkipped("honeypot field filled")

    def build_submission(
        self,
        form: Mapping,
        files: Sequence[StoredFile] = (),
        user_agent: str = "",
        client_ip: str = "",
    ) -> Submission:
        millis = self._clock.next()
        fields = {}
        for attr, key in FIELD_KEYS.items():
            value = form.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            fields[attr] = value if isinstance(value, str) else ""
        return Submission(
            id=f"TA-{millis}",
            created_at=iso_millis(millis),
            files=tuple(files),
            user_agent=user_agent or "",
            client_ip=client_ip or "",
            **fields,
        )

    def validate(self, submission: Submission) -> None:
        """Fail fast on the first required field that is blank."""
        for attr in REQUIRED_FIELDS:
            if not getattr(submission, attr).strip():
                raise MissingFieldError(FIELD_KEYS[attr])

    async def accept(self, submission: Submission, background_tasks: BackgroundTasks) -> str:
        """
        Validate and persist a submission, then schedule its notification.
        The log append completes before any notification is scheduled.
        """
        self.validate(submission)
        await asyncio.to_thread(self._log.append, submission.to_record())
        logger.info("[tasks] accepted | id=%s | files=%d", submission.id, len(submission.files))
        self._notifier.try_send(submission, background_tasks)
        return submission.id
