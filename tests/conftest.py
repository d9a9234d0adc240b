import json
from contextlib import ExitStack

import pytest
from fastapi.testclient import TestClient

from taskaid.config import Settings
from taskaid.main import create_app

SITE_ORIGIN = "https://taskaid.example"

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

MAIL_SETTINGS = {
    "SMTP_HOST": "smtp.example.com",
    "SMTP_PORT": 587,
    "SMTP_USER": "mailer",
    "SMTP_PASS": "secret",
    "NOTIFY_EMAIL_TO": "jobs@taskaid.example",
}

NO_MAIL_SETTINGS = {
    "SMTP_HOST": None,
    "SMTP_USER": None,
    "SMTP_PASS": None,
    "NOTIFY_EMAIL_TO": None,
}


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides) -> Settings:
        values = {
            "UPLOAD_DIR": tmp_path / "uploads",
            "DATA_DIR": tmp_path / "data",
            "SITE_ORIGIN": SITE_ORIGIN,
            "RATE_LIMIT_MAX": 60,
            "RATE_LIMIT_WINDOW_SECONDS": 600,
            "MAX_FILES": 6,
            "MAX_FILE_SIZE": 8 * 1024 * 1024,
            "JSON_BODY_LIMIT": 1024 * 1024,
            **NO_MAIL_SETTINGS,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def make_client(make_settings):
    with ExitStack() as stack:

        def _make(**overrides) -> TestClient:
            app = create_app(make_settings(**overrides))
            return stack.enter_context(TestClient(app))

        yield _make


@pytest.fixture
def client(make_client):
    return make_client()


def read_log(client: TestClient) -> list[dict]:
    path = client.app.state.settings.submissions_file
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
