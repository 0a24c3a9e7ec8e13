"""Domain types shared by the state engine, store and publisher."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Availability(str, Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE_PENDING = "offline_pending"
    OFFLINE = "offline"


class ActivityState(str, Enum):
    UNKNOWN = "unknown"
    IDLE = "idle"
    ACTIVE = "active"
    STARTING = "starting"
    RUNNING = "running"
    FINISHING = "finishing"
    FINISHED_RECENTLY = "finished_recently"
    STANDBY = "standby"
    NORMAL_IDLE = "normal_idle"
    ACTIVE_CYCLE = "active_cycle"
    REPORTING = "reporting"


class OccupancyState(str, Enum):
    UNKNOWN = "unknown"
    OCCUPIED = "occupied"
    EMPTY = "empty"


class HouseActivityState(str, Enum):
    UNKNOWN = "unknown"
    IDLE = "idle"
    QUIET = "quiet"
    ACTIVE = "active"
    BUSY = "busy"


class ModeState(str, Enum):
    UNKNOWN = "unknown"
    AWAY = "away"
    SLEEPING = "sleeping"
    DAY = "day"
    NIGHT = "night"


class DerivedEventType(str, Enum):
    DEVICE_DISCOVERED = "device_discovered"
    DEVICE_ACTIVITY_CHANGED = "device_activity_changed"
    DEVICE_ACTIVITY_STARTED = "device_activity_started"
    DEVICE_ACTIVITY_FINISHED = "device_activity_finished"
    DEVICE_AVAILABILITY_CHANGED = "device_availability_changed"
    CYCLE_STARTED = "cycle_started"
    CYCLE_FINISHED = "cycle_finished"
    CYCLE_ENERGY_RECORDED = "cycle_energy_recorded"
    CONTINUOUS_CYCLE_STARTED = "continuous_cycle_started"
    CONTINUOUS_CYCLE_FINISHED = "continuous_cycle_finished"
    SHORT_BURST_DETECTED = "short_burst_detected"
    MEDIA_ACTIVE = "media_active"
    MEDIA_INACTIVE = "media_inactive"
    HOUSE_STATE_CHANGED = "house_state_changed"
    ENERGY_DIVERGENCE_WARNING = "energy_divergence_warning"
    ENERGY_STALE_COUNTER_WARNING = "energy_stale_counter_warning"
    SIGNAL_ASSERTED = "signal_asserted"
    SIGNAL_CLEARED = "signal_cleared"


class DeviceClass(str, Enum):
    CYCLE_POWER = "cycle_power_device"
    SHORT_BURST = "short_burst_power_device"
    CONTINUOUS = "continuous_power_device"
    MEDIA = "media_device"
    BINARY_STATE = "binary_state_device"
    ENVIRONMENTAL_SENSOR = "environmental_sensor"
    UPS_SENSOR = "ups_sensor"
    ENERGY_METER = "energy_meter"


@dataclass
class DeviceIdentity:
    """Scheme-aware identity: a stable primary key plus a display name."""

    scheme: str = ""
    primary: str = ""
    display: str = ""


@dataclass
class Activity:
    state: ActivityState = ActivityState.UNKNOWN
    since: Optional[datetime] = None
    last_changed: Optional[datetime] = None
    confidence: float = 0.0


@dataclass
class Latest:
    """Most recent measurements reported by a device."""

    last_seen: Optional[datetime] = None
    power_w: Optional[float] = None
    voltage_v: Optional[float] = None
    energy_kwh: Optional[float] = None
    temperature_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    pressure_hpa: Optional[float] = None
    wind_speed_ms: Optional[float] = None
    wind_dir_deg: Optional[float] = None
    rainfall_mm: Optional[float] = None
    illuminance_lux: Optional[float] = None
    uv_index: Optional[float] = None
    battery_runtime_mins: Optional[float] = None
    on_battery: Optional[bool] = None
    low_battery: Optional[bool] = None
    battery_pct: Optional[float] = None
    link_quality: Optional[int] = None
    rssi: Optional[int] = None


@dataclass
class Device:
    id: str = ""
    display_name: str = ""
    device_class: str = field(default="", metadata={"json": "class"})
    location: str = ""
    identity: DeviceIdentity = field(default_factory=DeviceIdentity)
    availability: Availability = Availability.UNKNOWN
    activity: Activity = field(default_factory=Activity)
    latest: Latest = field(default_factory=Latest)
    cycle: Optional[Any] = None
    unclassified: bool = False


@dataclass
class ActivitySignal:
    """An asserted piece of evidence that someone is active in the house."""

    id: str = ""
    source: str = ""
    type: str = ""
    confidence: float = 0.0
    since: Optional[datetime] = None
    timestamp: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    location: str = ""
    meta: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        """True once ``now`` is past ``expires_at``; never without a TTL."""
        return self.expires_at is not None and now > self.expires_at


@dataclass
class ActivityRecord:
    id: str = ""
    source: str = ""
    type: str = ""
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    location: str = ""
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class OccupancyDimension:
    state: OccupancyState = OccupancyState.UNKNOWN
    confidence: float = 0.0
    last_changed: Optional[datetime] = None


@dataclass
class HouseActivityDimension:
    state: HouseActivityState = HouseActivityState.UNKNOWN
    confidence: float = 0.0
    last_changed: Optional[datetime] = None


@dataclass
class ModeDimension:
    state: ModeState = ModeState.UNKNOWN
    confidence: float = 0.0
    last_changed: Optional[datetime] = None


@dataclass
class House:
    occupancy: OccupancyDimension = field(default_factory=OccupancyDimension)
    activity: HouseActivityDimension = field(default_factory=HouseActivityDimension)
    mode: ModeDimension = field(default_factory=ModeDimension)
    active_devices: list[str] = field(default_factory=list)


@dataclass
class Snapshot:
    generated_at: Optional[datetime] = None
    house: House = field(default_factory=House)
    devices: dict[str, Device] = field(default_factory=dict)


@dataclass
class DerivedEvent:
    id: str = ""
    timestamp: Optional[datetime] = None
    type: str = ""
    device_id: str = ""
    device_class: str = ""
    summary: str = ""
    severity: str = ""
    evidence: dict[str, Any] = field(default_factory=dict)


@dataclass
class HouseConfig:
    """Timing windows and timezone used to derive whole-house state."""

    quiet_after: timedelta = timedelta(0)
    empty_after: timedelta = timedelta(0)
    sleeping_after: timedelta = timedelta(0)
    timezone: str = ""

    def location(self) -> tzinfo:
        """The configured timezone, falling back to UTC if unset or invalid."""
        if not self.timezone:
            return timezone.utc
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError, OSError):
            return timezone.utc


def _format_time(t: datetime) -> str:
    if t.tzinfo is not None and t.utcoffset() == timedelta(0):
        return t.astimezone(timezone.utc).replace(tzinfo=None).isoformat() + "Z"
    return t.isoformat()


def _plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.metadata.get("json", f.name): _plain(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _format_time(value)
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, dict):
        return {str(_plain(k)): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return value


def to_json(value: Any) -> bytes:
    """Encode a model value (dataclasses, enums, datetimes, containers) as JSON."""
    return json.dumps(_plain(value), separators=(",", ":"), allow_nan=False).encode("utf-8")