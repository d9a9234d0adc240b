import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from taskaid.ids import MonotonicMillis
from taskaid.models.submission import StoredFile

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


class UploadRejected(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


@dataclass(frozen=True)
class IncomingFile:
    """One file part read off the request: the client's filename and its bytes."""

    filename: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class UploadStore:
    def __init__(
        self,
        upload_dir: str | Path,
        *,
        field_name: str = "photos",
        max_files: int = 6,
        max_file_size: int = 8 * 1024 * 1024,
        clock: MonotonicMillis | None = None,
    ) -> None:
        self._upload_dir = Path(upload_dir)
        self.field_name = field_name
        self.max_files = max_files
        self.max_file_size = max_file_size
        self._clock = clock or MonotonicMillis()

    @property
    def upload_dir(self) -> Path:
        return self._upload_dir

    def check_limits(self, files: list[IncomingFile]) -> None:
        """Raises UploadRejected if the batch exceeds the file-count or per-file size ceiling."""
        if len(files) > self.max_files:
            raise UploadRejected(400, f"Too many files. Maximum number of files is {self.max_files}.")
        for f in files:
            if f.size > self.max_file_size:
                raise UploadRejected(413, f"File too large: {f.filename}")

    def _write(self, files: list[IncomingFile]) -> list[StoredFile]:
        self._upload_dir.mkdir(parents=True, exist_ok=True)
        stored = []
        for f in files:
            stored_name = f"{self._clock.next()}_{sanitize_filename(f.filename)}"
            (self._upload_dir / stored_name).write_bytes(f.content)
            stored.append(
                StoredFile(stored_name=stored_name, original_name=f.filename, size_bytes=f.size)
            )
        return stored

    async def save(self, files: list[IncomingFile]) -> list[StoredFile]:
        """Check limits, then write every file to the upload directory in order."""
        self.check_limits(files)
        if not files:
            return []
        stored = await asyncio.to_thread(self._write, files)
        logger.info(
            "[uploads] stored | count=%d | bytes=%d",
            len(stored),
            sum(f.size_bytes for f in stored),
        )
        return stored
