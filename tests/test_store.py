from datetime import datetime, timedelta, timezone

from statehouse.model import (
    ActivityRecord,
    ActivitySignal,
    Device,
    DeviceIdentity,
    House,
    HouseActivityDimension,
    HouseActivityState,
    ModeDimension,
    ModeState,
    OccupancyDimension,
    OccupancyState,
)
from statehouse.store import Store

T0 = datetime(2026, 5, 15, 10, 0, 0, tzinfo=timezone.utc)


def _dev(device_id, scheme="", primary="", display=""):
    return Device(
        id=device_id,
        identity=DeviceIdentity(scheme=scheme, primary=primary, display=display),
    )


def test_lookup_by_primary():
    s = Store()
    ident = DeviceIdentity("zigbee", "0xabc", "kettle")
    s.upsert("kettle", Device(id="kettle", identity=ident), None)
    assert s.lookup_id(ident) == "kettle"
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", primary="0xabc")) == "kettle"
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", display="kettle")) == "kettle"


def test_lookup_is_scheme_scoped():
    s = Store()
    s.upsert("z_kettle", _dev("z_kettle", "zigbee", "0xabc", "kettle"), None)
    s.upsert("t_kettle", _dev("t_kettle", "tasmota", "DVES_001", "kettle"), None)
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", display="kettle")) == "z_kettle"
    assert s.lookup_id(DeviceIdentity(scheme="tasmota", display="kettle")) == "t_kettle"


def test_primary_learned_later_does_not_create_duplicate():
    s = Store()
    s.upsert("kitchen_kettle", _dev("kitchen_kettle", "zigbee", "kitchen_kettle", "kitchen_kettle"), None)
    canonical = DeviceIdentity("zigbee", "0xabc", "kitchen_kettle")
    assert s.lookup_id(canonical) == "kitchen_kettle"
    s.upsert("kitchen_kettle", Device(id="kitchen_kettle", identity=canonical), None)
    d = s.get("kitchen_kettle")
    assert d.identity.primary == "0xabc"
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", primary="0xabc")) == "kitchen_kettle"
    assert len(s.devices()) == 1


def test_upsert_does_not_erase_known_primary_with_empty_one():
    s = Store()
    s.upsert("k", _dev("k", "zigbee", "0xabc", "k"), None)
    s.upsert("k", _dev("k", "zigbee", "", "k"), None)
    assert s.get("k").identity.primary == "0xabc"


def test_phantom_upgrade_evicts_old_primary_index():
    s = Store()
    s.upsert("kitchen_kettle", _dev("kitchen_kettle", "zigbee", "kitchen_kettle", "kitchen_kettle"), None)
    canonical = DeviceIdentity("zigbee", "0x00158d0000000abc", "kitchen_kettle")
    s.upsert("kitchen_kettle", Device(id="kitchen_kettle", identity=canonical), None)
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", primary="kitchen_kettle")) == ""
    assert s.lookup_id(canonical) == "kitchen_kettle"


def test_upsert_rename_evicts_old_display_index():
    s = Store()
    s.upsert("k", _dev("k", "zigbee", "0xabc", "old_name"), None)
    s.upsert("k", _dev("k", "zigbee", "0xabc", "new_name"), None)
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", display="old_name")) == ""
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", display="new_name")) == "k"


def test_rename_updates_display_index():
    s = Store()
    s.upsert("k", _dev("k", "zigbee", "0xabc", "old"), None)
    s.rename("k", "old", "new")
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", display="new")) == "k"
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", display="old")) == ""
    assert s.get("k").identity.display == "new"


def test_rename_unknown_device_is_noop():
    s = Store()
    s.rename("ghost", "old", "new")
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", display="new")) == ""


def test_upsert_tombstones_orphaned_phantom_on_display_collision():
    s = Store()
    ieee = "0x00000000000000aa"
    s.upsert(ieee, _dev(ieee, "zigbee", ieee, ieee), None)
    fn = "islaav"
    s.upsert(fn, _dev(fn, "zigbee", fn, fn), None)
    assert len(s.devices()) == 2

    s.upsert(ieee, _dev(ieee, "zigbee", ieee, fn), None)

    devs = s.devices()
    assert list(devs) == [ieee]
    d = s.get(ieee)
    assert d is not None
    assert d.identity.display == fn
    assert s.get(fn) is None
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", display=fn)) == ieee
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", primary=fn)) == ""


def test_upsert_does_not_tombstone_real_device_on_display_collision():
    s = Store()
    s.upsert("device_a", _dev("device_a", "zigbee", "0xaaa", "shared_name"), None)
    s.upsert("device_b", _dev("device_b", "zigbee", "0xbbb", "shared_name"), None)
    assert s.get("device_a") is not None
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", primary="0xaaa")) == "device_a"
    assert s.lookup_id(DeviceIdentity(scheme="zigbee", display="shared_name")) == "device_b"


def test_upsert_keeps_metadata_when_update_fields_empty():
    s = Store()
    s.upsert("k", Device(id="k", display_name="Kettle", device_class="short_burst_power_device",
                         location="kitchen", identity=DeviceIdentity("zigbee", "0x1", "k")), None)
    s.upsert("k", Device(id="k", identity=DeviceIdentity("zigbee", "0x1", "k"), unclassified=True), None)
    d = s.get("k")
    assert (d.display_name, d.device_class, d.location) == ("Kettle", "short_burst_power_device", "kitchen")
    assert d.unclassified is True


def test_get_returns_copy():
    s = Store()
    s.upsert("k", _dev("k", "zigbee", "0x1", "k"), None)
    d = s.get("k")
    d.identity.display = "mutated"
    assert s.get("k").identity.display == "k"
    assert s.get("missing") is None


def test_lookup_unknown_returns_empty():
    s = Store()
    assert s.lookup_id(DeviceIdentity("zigbee", "0x9", "nothing")) == ""


def test_new_store_house_is_unknown():
    h = Store().house()
    assert h.occupancy.state == OccupancyState.UNKNOWN
    assert h.activity.state == HouseActivityState.UNKNOWN
    assert h.mode.state == ModeState.UNKNOWN


def test_set_house_reports_change_and_keeps_last_changed():
    s = Store()
    house = House(
        occupancy=OccupancyDimension(state=OccupancyState.OCCUPIED, confidence=0.9),
        activity=HouseActivityDimension(state=HouseActivityState.UNKNOWN),
        mode=ModeDimension(state=ModeState.UNKNOWN),
    )
    assert s.set_house(house) is True
    first = s.house()
    assert first.occupancy.state == OccupancyState.OCCUPIED
    assert first.occupancy.last_changed is not None
    assert first.activity.last_changed is None
    assert s.set_house(house) is False
    assert s.house().occupancy.last_changed == first.occupancy.last_changed


def test_snapshot_contains_devices_and_house():
    s = Store()
    s.upsert("a", _dev("a", "zigbee", "0x1", "a"), None)
    s.upsert("b", _dev("b", "zigbee", "0x2", "b"), None)
    snap = s.snapshot()
    assert sorted(snap.devices) == ["a", "b"]
    assert snap.house.occupancy.state == OccupancyState.UNKNOWN
    assert snap.generated_at.tzinfo is not None


def test_signals_round_trip():
    s = Store()
    assert s.last_signal_at() is None
    s.upsert_signal(ActivitySignal(id="s1", source="pir", type="motion", since=T0,
                                   expires_at=T0 + timedelta(minutes=2)))
    s.upsert_signal(ActivitySignal(id="s2", source="intercom", type="call_active", since=T0))
    assert sorted(x.id for x in s.active_signals(T0)) == ["s1", "s2"]
    s.prune_signals(T0 + timedelta(minutes=5))
    assert [x.id for x in s.active_signals(T0 + timedelta(minutes=5))] == ["s2"]
    assert s.last_signal_at() == T0 + timedelta(minutes=2)
    s.clear_signal("s2", T0 + timedelta(minutes=10))
    assert s.active_signals(T0 + timedelta(minutes=10)) == []
    assert s.last_signal_at() == T0 + timedelta(minutes=10)


def test_activity_records_round_trip():
    s = Store()
    s.append_activity(ActivityRecord(id="r1", source="test", type="call", started_at=T0))
    s.append_activity(ActivityRecord(id="r2", source="test", type="call", started_at=T0))
    end = T0 + timedelta(minutes=5)

    def finish(r):
        r.ended_at = end

    s.update_activity("r1", finish)
    got = s.recent_activity(10)
    assert [r.id for r in got] == ["r2", "r1"]
    assert got[1].ended_at == end
    assert got[0].ended_at is None