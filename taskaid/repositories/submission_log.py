import json
import logging
import os
from pathlib import Path

from taskaid.repositories.base import AbstractSubmissionLog

logger = logging.getLogger(__name__)


class JsonlSubmissionLog(AbstractSubmissionLog):
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, record: dict) -> None:
        """
        Write the record as one JSON line.
        The whole line goes out in a single write on an O_APPEND descriptor,
        so concurrent appends land as complete lines.
        """
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n"
        data = line.encode("utf-8")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            written = os.write(fd, data)
        finally:
            os.close(fd)
        if written != len(data):
            raise OSError(f"short write to {self._path}: {written} of {len(data)} bytes")
        logger.debug("[log] appended | id=%s | bytes=%d", record.get("id"), written)
