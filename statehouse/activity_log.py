"""Fixed-size log of recent activity records, newest first on read."""

from __future__ import annotations

import copy
import threading
from collections import deque
from typing import Callable

from .model import ActivityRecord

ACTIVITY_LOG_SIZE = 50


class ActivityLog:
    """Bounded, thread-safe log; the oldest entry is evicted when full."""

    def __init__(self, size: int = ACTIVITY_LOG_SIZE) -> None:
        self._lock = threading.Lock()
        self._records: deque[ActivityRecord] = deque(maxlen=size)

    def append(self, record: ActivityRecord) -> None:
        with self._lock:
            self._records.append(copy.copy(record))

    def update(self, record_id: str, fn: Callable[[ActivityRecord], None]) -> None:
        """Call ``fn`` on the most recent record with ``record_id``, if any."""
        with self._lock:
            for record in reversed(self._records):
                if record.id == record_id:
                    fn(record)
                    return

    def recent(self, limit: int) -> list[ActivityRecord]:
        """Up to ``limit`` records, newest first; all when limit is not positive."""
        with self._lock:
            count = len(self._records)
            if limit <= 0 or limit > count:
                limit = count
            newest_first = reversed(self._records)
            return [copy.copy(r) for _, r in zip(range(limit), newest_first)]