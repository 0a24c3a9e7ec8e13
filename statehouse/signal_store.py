"""Thread-safe store of active activity signals."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional

from .model import ActivitySignal


def _later(current: Optional[datetime], candidate: Optional[datetime]) -> Optional[datetime]:
    if candidate is None:
        return current
    if current is None or candidate > current:
        return candidate
    return current


class SignalStore:
    """Signals keyed by ID, plus a high-water mark of signal activity.

    The mark advances on upsert (from ``since``), on clear (from the clear
    time) and on expiry (from ``expires_at``), and never moves back.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._signals: dict[str, ActivitySignal] = {}
        self._last_at: Optional[datetime] = None

    def upsert(self, signal: ActivitySignal) -> None:
        with self._lock:
            self._signals[signal.id] = signal
            self._last_at = _later(self._last_at, signal.since)

    def clear_at(self, signal_id: str, ts: datetime) -> None:
        """Remove a signal; the high-water mark advances even if it is absent."""
        with self._lock:
            self._signals.pop(signal_id, None)
            self._last_at = _later(self._last_at, ts)

    def prune(self, now: datetime) -> None:
        """Drop expired signals, advancing the mark from their expiry times."""
        with self._lock:
            expired = [s for s in self._signals.values() if s.is_expired(now)]
            for s in expired:
                del self._signals[s.id]
                self._last_at = _later(self._last_at, s.expires_at)

    def active(self, now: datetime) -> list[ActivitySignal]:
        with self._lock:
            return [s for s in self._signals.values() if not s.is_expired(now)]

    def last_at(self) -> Optional[datetime]:
        with self._lock:
            return self._last_at