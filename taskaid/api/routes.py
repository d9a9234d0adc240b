import logging
from collections.abc import Mapping

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from taskaid.api.middleware import is_json_request, originating_ip
from taskaid.models.submission import StoredFile
from taskaid.schemas.task import SERVER_ERROR, ErrorResponse, TaskResponse
from taskaid.services.intake_service import MissingFieldError, SubmissionSkipped
from taskaid.services.upload_store import IncomingFile, UploadRejected, UploadStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


async def stored_photos(request: Request) -> tuple[Mapping, list[StoredFile]]:
    """
    Parse the request body and store its photos before the handler runs.
    Oversized, excess or misplaced file parts are rejected here, so no
    submission is ever built from them. A JSON object body carries the
    fields only, with no photos.
    """
    if is_json_request(request):
        try:
            body = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="JSON body must be an object")
        return body, []

    store: UploadStore = request.app.state.upload_store
    form = await request.form(max_files=store.max_files)

    incoming = []
    for key, value in form.multi_items():
        if not isinstance(value, UploadFile):
            continue
        if key != store.field_name:
            raise HTTPException(status_code=400, detail="Unexpected file field")
        if value.size is not None and value.size > store.max_file_size:
            raise HTTPException(status_code=413, detail=f"File too large: {value.filename}")
        incoming.append(IncomingFile(filename=value.filename or "", content=await value.read()))

    try:
        files = await store.save(incoming)
    except UploadRejected as exc:
        logger.info("[uploads] rejected | status=%d | reason=%s", exc.status_code, exc.detail)
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    return form, files


@router.get("/health")
async def health() -> dict:
    return {"ok": True}


@router.post("/tasks")
async def create_task(
    request: Request,
    background_tasks: BackgroundTasks,
    upload: tuple[Mapping, list[StoredFile]] = Depends(stored_photos),
):
    intake_service = request.app.state.intake_service
    form, files = upload

    try:
        intake_service.check_honeypot(form)
    except SubmissionSkipped as exc:
        # Same shape as a real success so bots learn nothing.
        logger.info("[tasks] skipped | reason=%s", exc)
        return TaskResponse().model_dump(exclude_none=True)

    try:
        submission = intake_service.build_submission(
            form,
            files,
            user_agent=request.headers.get("user-agent", ""),
            client_ip=originating_ip(request),
        )
        submission_id = await intake_service.accept(submission, background_tasks)
    except MissingFieldError as exc:
        logger.info("[tasks] rejected | missing=%s", exc.field)
        return JSONResponse(status_code=400, content=ErrorResponse(error=str(exc)).model_dump())
    except Exception:
        logger.exception("[tasks] submission failed")
        return JSONResponse(status_code=500, content=SERVER_ERROR.model_dump())

    return TaskResponse(id=submission_id).model_dump()
