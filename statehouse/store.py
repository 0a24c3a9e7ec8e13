"""In-memory state of all known devices plus the whole-house state."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .activity_log import ActivityLog
from .model import (
    ActivityRecord,
    ActivitySignal,
    Device,
    DeviceIdentity,
    House,
    Snapshot,
)
from .signal_store import SignalStore


@dataclass
class _DeviceEntry:
    device: Device
    runtime: Any = None
    # Set once the adapter signalled offline; the device stays
    # offline_pending until the debounce elapses.
    availability_offline_at: Optional[datetime] = None


def _key(scheme: str, value: str) -> str:
    return f"{scheme}:{value}"


class Store:
    """Device records indexed by ``scheme:primary`` and ``scheme:display``.

    The primary index is the stable canonical one. The display index covers
    devices whose payload arrives before their protocol-stable id is known:
    the adapter falls back to primary == display, and the records merge
    once the real primary is learned.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._devices: dict[str, _DeviceEntry] = {}
        self._by_primary: dict[str, str] = {}
        self._by_display: dict[str, str] = {}
        self._house = House()
        self._signals = SignalStore()
        self._activity_log = ActivityLog()

    def upsert(self, device_id: str, device: Device, runtime: Any) -> None:
        """Install or update a device record without resetting runtime state.

        Empty identity fields never overwrite known non-empty ones.
        """
        with self._lock:
            entry = self._devices.get(device_id)
            prev = DeviceIdentity()
            if entry is None:
                entry = _DeviceEntry(device=copy.deepcopy(device), runtime=runtime)
                self._devices[device_id] = entry
            else:
                prev = copy.copy(entry.device.identity)
                current = entry.device
                if device.display_name:
                    current.display_name = device.display_name
                if device.device_class:
                    current.device_class = device.device_class
                if device.location:
                    current.location = device.location
                if device.identity.scheme:
                    current.identity.scheme = device.identity.scheme
                if device.identity.primary:
                    current.identity.primary = device.identity.primary
                if device.identity.display:
                    current.identity.display = device.identity.display
                current.unclassified = device.unclassified

            merged = entry.device.identity
            # Evict index entries orphaned by a scheme or key change.
            if prev.scheme and prev.primary and (
                prev.scheme != merged.scheme or prev.primary != merged.primary
            ):
                self._by_primary.pop(_key(prev.scheme, prev.primary), None)
            if prev.scheme and prev.display and (
                prev.scheme != merged.scheme or prev.display != merged.display
            ):
                self._by_display.pop(_key(prev.scheme, prev.display), None)

            if merged.scheme and merged.primary:
                self._by_primary[_key(merged.scheme, merged.primary)] = device_id
            if merged.scheme and merged.display:
                display_key = _key(merged.scheme, merged.display)
                old_id = self._by_display.get(display_key)
                if old_id is not None and old_id != device_id:
                    orphan = self._devices.get(old_id)
                    if orphan is not None:
                        oid = orphan.device.identity
                        # Only phantoms (primary == display) are tombstoned;
                        # real devices stay reachable by their primary key.
                        if oid.primary and oid.primary == oid.display:
                            self._by_primary.pop(_key(oid.scheme, oid.primary), None)
                            del self._devices[old_id]
                self._by_display[display_key] = device_id

    def lookup_id(self, identity: DeviceIdentity) -> str:
        """Resolve an identity by primary key, then display; "" if unknown."""
        with self._lock:
            if identity.scheme and identity.primary:
                found = self._by_primary.get(_key(identity.scheme, identity.primary))
                if found is not None:
                    return found
            if identity.scheme and identity.display:
                found = self._by_display.get(_key(identity.scheme, identity.display))
                if found is not None:
                    return found
            return ""

    def rename(self, device_id: str, old_display: str, new_display: str) -> None:
        """Move a device's display-name index entry; no-op if unknown."""
        with self._lock:
            entry = self._devices.get(device_id)
            if entry is None:
                return
            scheme = entry.device.identity.scheme
            if old_display and scheme:
                self._by_display.pop(_key(scheme, old_display), None)
            if new_display and scheme:
                self._by_display[_key(scheme, new_display)] = device_id
                entry.device.identity.display = new_display

    def get(self, device_id: str) -> Optional[Device]:
        """A copy of the device record, or None if unknown."""
        with self._lock:
            entry = self._devices.get(device_id)
            return None if entry is None else copy.deepcopy(entry.device)

    def devices(self) -> dict[str, Device]:
        """Copies of all device records keyed by id."""
        with self._lock:
            return {i: copy.deepcopy(e.device) for i, e in self._devices.items()}

    def house(self) -> House:
        with self._lock:
            return copy.deepcopy(self._house)

    def snapshot(self) -> Snapshot:
        """The full point-in-time state."""
        with self._lock:
            return Snapshot(
                generated_at=datetime.now(timezone.utc),
                house=copy.deepcopy(self._house),
                devices={i: copy.deepcopy(e.device) for i, e in self._devices.items()},
            )

    def active_signals(self, now: datetime) -> list[ActivitySignal]:
        return self._signals.active(now)

    def last_signal_at(self) -> Optional[datetime]:
        """Latest time a signal was asserted, cleared or expired; None if never."""
        return self._signals.last_at()

    def upsert_signal(self, signal: ActivitySignal) -> None:
        self._signals.upsert(signal)

    def clear_signal(self, signal_id: str, ts: datetime) -> None:
        self._signals.clear_at(signal_id, ts)

    def prune_signals(self, now: datetime) -> None:
        self._signals.prune(now)

    def append_activity(self, record: ActivityRecord) -> None:
        self._activity_log.append(record)

    def update_activity(self, record_id: str, fn: Callable[[ActivityRecord], None]) -> None:
        self._activity_log.update(record_id, fn)

    def recent_activity(self, limit: int) -> list[ActivityRecord]:
        return self._activity_log.recent(limit)

    def _with_entry(self, device_id: str, fn: Callable[[_DeviceEntry], None]) -> bool:
        with self._lock:
            entry = self._devices.get(device_id)
            if entry is None:
                return False
            fn(entry)
            return True

    def set_house(self, house: House) -> bool:
        """Replace the whole-house state; True if any dimension's state changed."""
        with self._lock:
            now = datetime.now(timezone.utc)
            new = copy.deepcopy(house)
            old = self._house
            changed = False
            for name in ("occupancy", "activity", "mode"):
                old_dim = getattr(old, name)
                new_dim = getattr(new, name)
                if old_dim.state != new_dim.state:
                    new_dim.last_changed = now
                    changed = True
                else:
                    new_dim.last_changed = old_dim.last_changed
            self._house = new
            return changed