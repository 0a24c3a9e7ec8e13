# statehouse

`statehouse` keeps an in-memory picture of the devices in a home and works out
house-level state from it. Each device has an identity, an availability and an
activity. Activity signals, such as an intercom call or a motion trigger, are
counted too. From these the package derives three dimensions:

- **occupancy**: `occupied`, `empty` or `unknown`
- **activity**: `idle`, `quiet`, `active`, `busy` or `unknown`
- **mode**: `day`, `night`, `sleeping`, `away` or `unknown`

Derived events and state snapshots can be published to an MQTT broker as JSON.
State topics are retained.

## Installation

```
pip install statehouse
```

It needs `paho-mqtt` 2.0 or later. To run the test suite:

```
pip install "statehouse[test]"
pytest
```

## Modules

| Module | Purpose |
| --- | --- |
| `statehouse.model` | Dataclasses and enums (`Device`, `DeviceIdentity`, `Activity`, `Latest`, `House`, `Snapshot`, `DerivedEvent`, `ActivitySignal`, `ActivityRecord`, `HouseConfig`, `DeviceClass`, `DerivedEventType`, ...) and `to_json` |
| `statehouse.clock` | `RealClock` (UTC system time) and `FakeClock` with `set()` and `advance()` |
| `statehouse.fixtures` | `load_fixture` reads JSONL files of recorded MQTT traffic into `FixtureEvent`s |
| `statehouse.activity_log` | `ActivityLog`, a bounded log (50 entries) of recent activity records, newest first |
| `statehouse.signal_store` | `SignalStore`, active signals with TTL expiry and a high-water mark of signal activity |
| `statehouse.store` | `Store`, the device store with scheme-aware lookup by primary key and display name |
| `statehouse.house` | `derive_house_state` and the state classification helpers |
| `statehouse.client` | The `Client` protocol, `ClientConfig`, `PahoClient` and `MqttError` |
| `statehouse.fake` | `FakeClient`, `FaultClient` and `topic_matches`, in-memory clients for tests |
| `statehouse.publisher` | `Publisher`, which sends derived events and state to MQTT topics |

## The device store

`Store.upsert(device_id, device, runtime)` installs or updates a device record.
Empty identity fields never overwrite known ones. Devices are indexed by
`scheme:primary` and by `scheme:display`, and `Store.lookup_id(identity)` tries
the primary key first and then the display name. If a device was first recorded
under a display name only (primary equal to display), its stale index entries
are dropped once its real primary key arrives. `Store.rename()` moves the
display-name index entry.

`Store.get()`, `devices()`, `house()` and `snapshot()` return copies. The store
also holds a `SignalStore` (`upsert_signal`, `clear_signal`, `prune_signals`,
`active_signals`, `last_signal_at`) and an `ActivityLog` (`append_activity`,
`update_activity`, `recent_activity`). `Store.set_house(house)` replaces the
house state, stamps `last_changed` on every dimension whose state changed, and
returns whether any changed.

## Deriving house state

```python
from datetime import datetime, timedelta, timezone

from statehouse.house import derive_house_state
from statehouse.model import (
    Activity, ActivityState, Device, DeviceClass, HouseConfig,
)

now = datetime(2026, 5, 14, 10, 0, tzinfo=timezone.utc)
cfg = HouseConfig(
    quiet_after=timedelta(minutes=30),
    empty_after=timedelta(hours=2),
    sleeping_after=timedelta(hours=2),
)
devices = {
    "kettle": Device(
        id="kettle",
        device_class=DeviceClass.SHORT_BURST,
        activity=Activity(state=ActivityState.ACTIVE, last_changed=now),
    ),
}
house = derive_house_state(now, cfg, devices, [], None)
print(house.occupancy.state, house.activity.state, house.mode.state)
```

Only short-burst, cycle-power, media and binary-state devices count towards
occupancy. Continuous-power devices are left out of the active count.
`house.active_devices` is sorted. `HouseConfig.location()` gives the configured
timezone, and time-of-day decisions use local time in it (night runs from 22:00
to 07:00). An unset or unknown zone name falls back to UTC.

## Publishing to MQTT

```python
from statehouse.client import ClientConfig, PahoClient
from statehouse.publisher import Publisher
from statehouse.store import Store

store = Store()
client = PahoClient(ClientConfig(broker="tcp://localhost:1883", client_id="statehouse"))
client.connect()  # raises MqttError after 2 s; keeps retrying in the background

publisher = Publisher(client=client, prefix="house", store=store)
publisher.start()              # non-blocking, bounded publish queue
publisher.publish_snapshot()   # retained snapshot, house and per-device topics
publisher.close()              # drains the queue before returning
```

`ClientConfig.broker` accepts the schemes `tcp`, `mqtt`, `ssl`, `tls`,
`mqtts`, `ws` and `wss`. A bare `host:port` means `tcp`. `PahoClient`
re-subscribes to every topic after a reconnect, and `reconnects()` counts
reconnections after the first connect.

`Publisher.on_derived_event(event)` publishes to these topics under the prefix:

- `<prefix>/events/derived`: every derived event (not retained)
- `<prefix>/state/devices/<id>`: state of the event's device (retained)
- `<prefix>/state/house`: house state, on `house_state_changed` (retained)
- `<prefix>/state/snapshot`: full snapshot, for activity, cycle, media,
  availability and house events (retained)

The `build_snapshot`, `build_house` and `build_device` arguments can replace
the raw model payloads with your own. Once the queue (default 256 jobs,
`queue_size`) is full, publishes are dropped and counted instead of blocking,
and `Publisher.dropped()` returns the count. If `start()` is never called,
publishing is synchronous. Publish failures are logged, not raised.

`to_json` encodes model values. Enums become their values, datetimes become
ISO 8601 (UTC with a `Z` suffix), timedeltas become seconds, and
`Device.device_class` is written under the key `class`.

## Testing without a broker

`FakeClient` records every publish and subscription, and `published_on(topic)`
filters them. `deliver()` passes inbound messages to subscribed handlers using
MQTT `+`/`#` wildcard matching. Setting `publish_err`, `subscribe_err` or
`connect_err` makes the matching call raise. `FaultClient` wraps another client
and fails publish calls numbered `fault_start` up to, but not including,
`fault_end`.

## What it does not do

The package does not turn raw device readings into activity states. It has no
per-device state machines, no energy accounting and no device classification,
and it does not load configuration files. Callers set `Device.activity` and
`Device.device_class` themselves, and the `runtime` passed to `Store.upsert`
is stored as given. There is no command-line program or long-running service.
State is held in memory only.