"""Clock abstractions so state machines can run deterministically in tests."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable


def _as_utc(t: datetime) -> datetime:
    if t.tzinfo is None:
        return t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc)


@runtime_checkable
class Clock(Protocol):
    """Anything that can report the current time."""

    def now(self) -> datetime:
        ...


class RealClock:
    """Production clock backed by the system time, in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FakeClock:
    """A settable clock for tests."""

    def __init__(self, start: datetime) -> None:
        self._lock = threading.Lock()
        self._t = _as_utc(start)

    def now(self) -> datetime:
        with self._lock:
            return self._t

    def set(self, t: datetime) -> None:
        """Move the clock to ``t`` (forwards or backwards)."""
        with self._lock:
            self._t = _as_utc(t)

    def advance(self, d: timedelta) -> None:
        """Move the clock forward by ``d``."""
        with self._lock:
            self._t = self._t + d