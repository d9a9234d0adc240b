from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    HOST: str = "0.0.0.0"
    PORT: int = 8080
    LOG_LEVEL: str = "info"
    SITE_ORIGIN: str = ""
    TRUST_PROXY: bool = True

    UPLOAD_DIR: Path = _BASE_DIR / "uploads"
    DATA_DIR: Path = _BASE_DIR / "data"

    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False
    SMTP_USER: str | None = None
    SMTP_PASS: str | None = None
    SMTP_TIMEOUT: float = 30.0
    NOTIFY_EMAIL_TO: str | None = None
    NOTIFY_EMAIL_FROM: str = "TaskAid <no-reply@taskaid.com.au>"

    RATE_LIMIT_MAX: int = 60
    RATE_LIMIT_WINDOW_SECONDS: int = 600
    MAX_FILES: int = 6
    MAX_FILE_SIZE: int = 8 * 1024 * 1024
    JSON_BODY_LIMIT: int = 1024 * 1024

    @property
    def allowed_origin(self) -> str:
        return self.SITE_ORIGIN or f"http://localhost:{self.PORT}"

    @property
    def submissions_file(self) -> Path:
        return self.DATA_DIR / "submissions.jsonl"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASS)


def load_settings() -> Settings:
    """Read settings from the environment once, at process startup."""
    return Settings()
