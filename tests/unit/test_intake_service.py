from unittest.mock import MagicMock

import pytest
from fastapi import BackgroundTasks

from taskaid.ids import MonotonicMillis, iso_millis
from taskaid.models.submission import StoredFile
from taskaid.repositories.base import AbstractSubmissionLog
from taskaid.services.intake_service import IntakeService, MissingFieldError, SubmissionSkipped

VALID_FORM = {
    "category": "Plumbing",
    "title": "Leak fix",
    "description": "Kitchen tap leaking",
    "suburb": "Bondi",
    "postcode": "2026",
    "name": "J. Smith",
    "mobile": "0400000000",
    "email": "j@example.com",
    "contactPref": "phone",
    "timing": "ASAP",
}


class InMemoryLog(AbstractSubmissionLog):
    def __init__(self) -> None:
        self.records = []

    def append(self, record: dict) -> None:
        self.records.append(record)


@pytest.fixture
def log():
    return InMemoryLog()


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def svc(log, notifier):
    return IntakeService(log, notifier, clock=MonotonicMillis(clock=lambda: 1_700_000_000.0))


def test_honeypot_filled(svc):
    with pytest.raises(SubmissionSkipped):
        svc.check_honeypot({**VALID_FORM, "company": "ACME"})


@pytest.mark.parametrize("value", [None, "", "   "])
def test_honeypot_blank(svc, value):
    form = dict(VALID_FORM)
    if value is not None:
        form["company"] = value
    svc.check_honeypot(form)


def test_build_submission_defaults(svc):
    submission = svc.build_submission({"title": "Leak fix"})
    assert submission.id == "TA-1700000000000"
    assert submission.created_at == "2023-11-14T22:13:20.000Z"
    assert submission.title == "Leak fix"
    assert submission.address == ""
    assert submission.contact_pref == ""
    assert submission.files == ()
    assert submission.user_agent == ""
    assert submission.client_ip == ""


def test_build_submission_maps_fields_and_files(svc):
    files = [StoredFile("1_a.jpg", "a.jpg", 10)]
    submission = svc.build_submission(
        {**VALID_FORM, "budget": "$200"}, files, user_agent="UA", client_ip="203.0.113.5"
    )
    record = submission.to_record()
    assert record["contactPref"] == "phone"
    assert record["budget"] == "$200"
    assert record["files"] == [{"storedName": "1_a.jpg", "originalName": "a.jpg", "sizeBytes": 10}]
    assert record["userAgent"] == "UA"
    assert record["clientIp"] == "203.0.113.5"


def test_build_submission_stringifies_numbers(svc):
    submission = svc.build_submission({**VALID_FORM, "postcode": 2026, "budget": 150.5, "address": True})
    assert submission.postcode == "2026"
    assert submission.budget == "150.5"
    assert submission.address == ""


def test_build_submission_ids_unique(svc):
    first = svc.build_submission(VALID_FORM)
    second = svc.build_submission(VALID_FORM)
    assert first.id != second.id


def test_validate_reports_first_missing(svc):
    form = {k: v for k, v in VALID_FORM.items() if k not in ("suburb", "email")}
    with pytest.raises(MissingFieldError) as exc_info:
        svc.validate(svc.build_submission(form))
    assert exc_info.value.field == "suburb"
    assert str(exc_info.value) == "Missing suburb"


def test_validate_uses_wire_name(svc):
    form = {**VALID_FORM, "contactPref": " "}
    with pytest.raises(MissingFieldError, match="Missing contactPref"):
        svc.validate(svc.build_submission(form))


def test_optional_fields_not_required(svc):
    svc.validate(svc.build_submission(VALID_FORM))


@pytest.mark.asyncio
async def test_accept_appends_then_notifies(svc, log, notifier):
    tasks = BackgroundTasks()
    submission = svc.build_submission(VALID_FORM)

    submission_id = await svc.accept(submission, tasks)

    assert submission_id == submission.id
    assert log.records == [submission.to_record()]
    notifier.try_send.assert_called_once_with(submission, tasks)


@pytest.mark.asyncio
async def test_accept_invalid_writes_nothing(svc, log, notifier):
    submission = svc.build_submission({**VALID_FORM, "postcode": ""})
    with pytest.raises(MissingFieldError):
        await svc.accept(submission, BackgroundTasks())
    assert log.records == []
    notifier.try_send.assert_not_called()


@pytest.mark.asyncio
async def test_accept_log_failure_skips_notification(svc, log, notifier):
    log.append = MagicMock(side_effect=OSError("disk full"))
    with pytest.raises(OSError):
        await svc.accept(svc.build_submission(VALID_FORM), BackgroundTasks())
    notifier.try_send.assert_not_called()


def test_monotonic_millis_bumps_on_repeat():
    clock = MonotonicMillis(clock=lambda: 5.0)
    assert [clock.next() for _ in range(3)] == [5000, 5001, 5002]


def test_monotonic_millis_survives_clock_step_back():
    readings = iter([10.0, 9.0, 11.0])
    clock = MonotonicMillis(clock=lambda: next(readings))
    assert [clock.next() for _ in range(3)] == [10000, 10001, 11000]


def test_iso_millis():
    assert iso_millis(0) == "1970-01-01T00:00:00.000Z"
    assert iso_millis(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"
