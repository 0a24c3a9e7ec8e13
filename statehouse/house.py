"""Derivation of whole-house occupancy, activity and mode from device state."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from .model import (
    ActivitySignal,
    ActivityState,
    Device,
    DeviceClass,
    House,
    HouseActivityDimension,
    HouseActivityState,
    HouseConfig,
    ModeDimension,
    ModeState,
    OccupancyDimension,
    OccupancyState,
)


def _value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


_OCCUPANCY_CLASSES = frozenset(
    c.value
    for c in (
        DeviceClass.SHORT_BURST,
        DeviceClass.CYCLE_POWER,
        DeviceClass.MEDIA,
        DeviceClass.BINARY_STATE,
    )
)

_ACTIVE_STATES = frozenset(
    s.value
    for s in (
        ActivityState.ACTIVE,
        ActivityState.RUNNING,
        ActivityState.STARTING,
        ActivityState.FINISHING,
        ActivityState.FINISHED_RECENTLY,
        ActivityState.ACTIVE_CYCLE,
    )
)

# Standby counts as idle: the device no longer drives occupancy, only the
# moment it entered standby does.
_IDLE_STATES = frozenset(
    s.value
    for s in (
        ActivityState.IDLE,
        ActivityState.NORMAL_IDLE,
        ActivityState.UNKNOWN,
        ActivityState.REPORTING,
        ActivityState.STANDBY,
    )
)


def is_occupancy_relevant(device_class: Any) -> bool:
    """Whether a device class contributes to occupancy; passive sensors do not."""
    return _value(device_class) in _OCCUPANCY_CLASSES


def is_active_device_state(state: Any) -> bool:
    """Whether an activity state counts as currently active."""
    return _value(state) in _ACTIVE_STATES


def is_idle_device_state(state: Any) -> bool:
    """Whether an activity state is a resting or measurement-only state."""
    return _value(state) in _IDLE_STATES


def _latest(current: Optional[datetime], candidate: Optional[datetime]) -> Optional[datetime]:
    if candidate is None:
        return current
    if current is None or candidate > current:
        return candidate
    return current


def _as_aware(t: datetime) -> datetime:
    return t.replace(tzinfo=timezone.utc) if t.tzinfo is None else t


def derive_house_state(
    now: datetime,
    cfg: HouseConfig,
    devices: Mapping[str, Device],
    signals: Optional[Iterable[ActivitySignal]],
    last_signal_at: Optional[datetime],
) -> House:
    """Compute occupancy, activity and mode from devices and active signals."""
    signal_list = list(signals or [])

    most_recent: Optional[datetime] = None
    any_currently_active = False
    active_count = 0
    active_devices: list[str] = []

    for d in devices.values():
        state = d.activity.state
        # Continuous-device compressor cycles are background operation.
        if _value(d.device_class) != DeviceClass.CONTINUOUS.value and is_active_device_state(state):
            active_count += 1
            active_devices.append(d.id)
        if not is_occupancy_relevant(d.device_class):
            continue
        if is_active_device_state(state):
            any_currently_active = True
        # For idle states the transition-to-idle time is still the last
        # moment activity is known to have occurred.
        most_recent = _latest(most_recent, d.activity.last_changed)

    for s in signal_list:
        any_currently_active = True
        active_count += 1
        most_recent = _latest(most_recent, s.since)

    # High-water mark of signal activity, including cleared or expired ones.
    most_recent = _latest(most_recent, last_signal_at)

    no_sources = not devices and not signal_list and last_signal_at is None

    if no_sources:
        occ = OccupancyDimension(state=OccupancyState.UNKNOWN, confidence=0.0)
    elif any_currently_active:
        occ = OccupancyDimension(state=OccupancyState.OCCUPIED, confidence=0.9)
    elif most_recent is None:
        occ = OccupancyDimension(state=OccupancyState.UNKNOWN, confidence=0.0)
    else:
        since = now - most_recent
        if cfg.quiet_after > timedelta(0) and since < cfg.quiet_after:
            occ = OccupancyDimension(state=OccupancyState.OCCUPIED, confidence=0.7)
        elif cfg.empty_after > timedelta(0) and since < cfg.empty_after:
            occ = OccupancyDimension(state=OccupancyState.UNKNOWN, confidence=0.5)
        else:
            occ = OccupancyDimension(state=OccupancyState.EMPTY, confidence=0.85)

    if no_sources:
        act = HouseActivityDimension(state=HouseActivityState.UNKNOWN, confidence=0.0)
    elif active_count == 0:
        act = HouseActivityDimension(state=HouseActivityState.IDLE, confidence=0.8)
    elif active_count == 1:
        act = HouseActivityDimension(state=HouseActivityState.QUIET, confidence=0.75)
    elif active_count <= 3:
        act = HouseActivityDimension(state=HouseActivityState.ACTIVE, confidence=0.8)
    else:
        act = HouseActivityDimension(state=HouseActivityState.BUSY, confidence=0.85)

    quiet = now - most_recent if most_recent is not None else timedelta(0)
    local_hour = _as_aware(now).astimezone(cfg.location()).hour
    night_hour = local_hour >= 22 or local_hour < 7
    day_hour = 7 <= local_hour < 22

    occupied_or_unknown = occ.state in (OccupancyState.OCCUPIED, OccupancyState.UNKNOWN)
    zero = timedelta(0)

    if occ.state == OccupancyState.EMPTY and cfg.empty_after > zero and quiet > cfg.empty_after:
        mode = ModeDimension(state=ModeState.AWAY, confidence=occ.confidence)
    elif (
        occupied_or_unknown
        and act.state in (HouseActivityState.IDLE, HouseActivityState.QUIET)
        and cfg.sleeping_after > zero
        and quiet > cfg.sleeping_after
    ):
        conf = 0.7
        if night_hour:
            conf += 0.15
        mode = ModeDimension(state=ModeState.SLEEPING, confidence=min(conf, 0.92))
    elif occ.state == OccupancyState.OCCUPIED and act.state in (
        HouseActivityState.QUIET,
        HouseActivityState.ACTIVE,
        HouseActivityState.BUSY,
    ):
        ratio = min(float(active_count), 3.0)
        conf = 0.7 + 0.1 * (ratio / 3)
        if day_hour:
            conf += 0.1
        mode = ModeDimension(state=ModeState.DAY, confidence=min(conf, 1.0))
    elif (
        occupied_or_unknown
        and act.state == HouseActivityState.IDLE
        and (cfg.sleeping_after == zero or quiet < cfg.sleeping_after)
    ):
        if night_hour:
            mode = ModeDimension(state=ModeState.NIGHT, confidence=0.65)
        else:
            mode = ModeDimension(state=ModeState.DAY, confidence=0.6)
    else:
        mode = ModeDimension(state=ModeState.UNKNOWN, confidence=0.0)

    # Sorted so identical state yields identical payloads on every recompute.
    return House(
        occupancy=occ,
        activity=act,
        mode=mode,
        active_devices=sorted(active_devices),
    )