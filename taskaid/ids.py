import threading
import time
from datetime import datetime, timezone
from typing import Callable


class MonotonicMillis:
    """
    Millisecond timestamps that never repeat within one process.
    If the wall clock stalls or steps back, the last value is bumped by one.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            now = int(self._clock() * 1000)
            if now <= self._last:
                now = self._last + 1
            self._last = now
            return now


def iso_millis(millis: int) -> str:
    """Format epoch milliseconds as e.g. 2026-10-19T04:05:06.789Z."""
    seconds, ms = divmod(millis, 1000)
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=ms * 1000)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
