from pydantic import BaseModel


class TaskResponse(BaseModel):
    ok: bool = True
    id: str | None = None


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str


SERVER_ERROR = ErrorResponse(error="Server error")
