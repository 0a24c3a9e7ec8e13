import json
from datetime import datetime, timedelta, timezone

import pytest

from statehouse.model import (
    ActivitySignal,
    ActivityState,
    DerivedEvent,
    DerivedEventType,
    Device,
    DeviceClass,
    DeviceIdentity,
    House,
    HouseConfig,
    to_json,
)

T0 = datetime(2026, 5, 15, 10, 0, 0, tzinfo=timezone.utc)


def test_signal_without_ttl_never_expires():
    s = ActivitySignal(id="s1", since=T0)
    assert s.is_expired(T0 + timedelta(days=365)) is False


def test_signal_expiry_boundary():
    s = ActivitySignal(id="s1", since=T0, expires_at=T0 + timedelta(minutes=5))
    assert s.is_expired(T0 + timedelta(minutes=4)) is False
    assert s.is_expired(T0 + timedelta(minutes=6)) is True


def test_location_fallback_for_invalid_timezone():
    cfg = HouseConfig(timezone="Not/A/Real/Zone")
    assert cfg.location() is timezone.utc


def test_location_default_is_utc():
    assert HouseConfig().location() is timezone.utc


def test_location_honours_configured_zone():
    cfg = HouseConfig(timezone="America/Los_Angeles")
    local = datetime(2026, 5, 14, 23, 0, tzinfo=cfg.location())
    assert local.astimezone(timezone.utc).hour == 6


def test_device_class_lookup_by_config_value():
    assert DeviceClass("cycle_power_device") is DeviceClass.CYCLE_POWER
    assert DeviceClass("continuous_power_device") is DeviceClass.CONTINUOUS


def test_to_json_derived_event_round_trip():
    ev = DerivedEvent(
        id="evt_1",
        timestamp=T0,
        type=DerivedEventType.CYCLE_STARTED,
        device_id="kitchen_dishwasher",
        evidence={"from": ActivityState.IDLE, "to": ActivityState.RUNNING},
    )
    decoded = json.loads(to_json(ev))
    assert decoded["type"] == DerivedEventType.CYCLE_STARTED.value
    assert decoded["device_id"] == "kitchen_dishwasher"
    assert decoded["evidence"] == {"from": ActivityState.IDLE.value, "to": ActivityState.RUNNING.value}
    assert datetime.fromisoformat(decoded["timestamp"].replace("Z", "+00:00")) == T0


def test_to_json_device_uses_class_key():
    dev = Device(
        id="k",
        device_class=DeviceClass.CYCLE_POWER,
        identity=DeviceIdentity(scheme="zigbee", primary="0x1", display="k"),
    )
    decoded = json.loads(to_json(dev))
    assert decoded["class"] == DeviceClass.CYCLE_POWER.value
    assert decoded["identity"] == {"scheme": "zigbee", "primary": "0x1", "display": "k"}
    assert decoded["latest"]["power_w"] is None


def test_to_json_house_active_devices():
    decoded = json.loads(to_json(House(active_devices=["alpha", "zebra"])))
    assert decoded["active_devices"] == ["alpha", "zebra"]


def test_to_json_rejects_unserialisable():
    with pytest.raises(TypeError):
        to_json({"x": object()})