import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskaid.api.middleware import (
    BodySizeLimitMiddleware,
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from taskaid.api.routes import router
from taskaid.config import Settings, load_settings
from taskaid.repositories.submission_log import JsonlSubmissionLog
from taskaid.schemas.task import SERVER_ERROR
from taskaid.services.intake_service import IntakeService
from taskaid.services.notification_service import NotificationService
from taskaid.services.upload_store import UploadStore


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    _configure_logging(settings)
    logger = logging.getLogger(__name__)

    settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)

    app.state.upload_store = UploadStore(
        settings.UPLOAD_DIR,
        max_files=settings.MAX_FILES,
        max_file_size=settings.MAX_FILE_SIZE,
    )
    app.state.submission_log = JsonlSubmissionLog(settings.submissions_file)
    app.state.notifier = NotificationService(settings)
    app.state.intake_service = IntakeService(app.state.submission_log, app.state.notifier)

    logger.info(
        "TaskAid API running on http://localhost:%s | origin=%s | mail=%s",
        settings.PORT,
        settings.allowed_origin,
        "on" if app.state.notifier.is_configured else "off",
    )
    yield
    logger.info("TaskAid API shutting down")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="TaskAid API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    # Starlette wraps in reverse order: the last one added runs first.
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.JSON_BODY_LIMIT)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        limiter=FixedWindowRateLimiter(settings.RATE_LIMIT_MAX, settings.RATE_LIMIT_WINDOW_SECONDS),
        trust_proxy=settings.TRUST_PROXY,
    )
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logging.getLogger(__name__).exception("Unhandled exception")
        return JSONResponse(status_code=500, content=SERVER_ERROR.model_dump())

    return app


def run() -> None:
    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL,
    )


if __name__ == "__main__":
    run()
