"""Fans derived events and state snapshots out to MQTT topics."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from .client import Client
from .model import DerivedEvent, DerivedEventType, Device, House, Snapshot, to_json
from .store import Store

PUBLISH_QUEUE_SIZE = 256

_SNAPSHOT_EVENTS = frozenset(
    t.value
    for t in (
        DerivedEventType.DEVICE_ACTIVITY_CHANGED,
        DerivedEventType.CYCLE_STARTED,
        DerivedEventType.CYCLE_FINISHED,
        DerivedEventType.CONTINUOUS_CYCLE_STARTED,
        DerivedEventType.CONTINUOUS_CYCLE_FINISHED,
        DerivedEventType.MEDIA_ACTIVE,
        DerivedEventType.MEDIA_INACTIVE,
        DerivedEventType.HOUSE_STATE_CHANGED,
        DerivedEventType.DEVICE_AVAILABILITY_CHANGED,
    )
)

_STOP = object()


def relevant_for_snapshot(event_type: Any) -> bool:
    """Whether an event of this type should trigger a fresh snapshot publish."""
    value = event_type.value if isinstance(event_type, Enum) else event_type
    return value in _SNAPSHOT_EVENTS


@dataclass(frozen=True)
class _PublishJob:
    topic: str
    retained: bool
    payload: bytes


class Publisher:
    """Event sink publishing derived events, device state and house snapshots.

    Without ``start()`` every publish happens synchronously on the caller's
    thread. After ``start()`` publishes go through a bounded queue served by
    one worker thread; when the queue is full, jobs are dropped and counted.
    ``close()`` drains the queue and stops the worker.
    """

    def __init__(
        self,
        client: Optional[Client],
        prefix: str,
        store: Optional[Store],
        logger: Optional[logging.Logger] = None,
        build_snapshot: Optional[Callable[[Snapshot, datetime], Any]] = None,
        build_house: Optional[Callable[[House, datetime], Any]] = None,
        build_device: Optional[Callable[[Device, datetime], Any]] = None,
        queue_size: int = PUBLISH_QUEUE_SIZE,
    ) -> None:
        self.client = client
        self.prefix = prefix
        self.store = store
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.build_snapshot = build_snapshot
        self.build_house = build_house
        self.build_device = build_device
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._queue: Optional[queue.Queue] = None
        self._worker: Optional[threading.Thread] = None
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    def start(self) -> None:
        """Start the worker thread; calling it again is a no-op."""
        with self._lock:
            if self._queue is not None:
                return
            q: queue.Queue = queue.Queue(maxsize=max(self.queue_size, 1))
            self._queue = q
            worker = threading.Thread(target=self._run, args=(q,), daemon=True)
            self._worker = worker
        worker.start()

    def _run(self, q: queue.Queue) -> None:
        while True:
            job = q.get()
            if job is _STOP:
                return
            try:
                self.client.publish(job.topic, 0, job.retained, job.payload)
            except Exception as exc:  # noqa: BLE001 - a failed publish must not kill the worker
                self.logger.warning("mqtt publish failed topic=%s error=%s", job.topic, exc)

    def close(self) -> None:
        """Drain queued jobs and wait for the worker; safe to call repeatedly."""
        with self._lock:
            q = self._queue
            worker = self._worker
            self._queue = None
            self._worker = None
        if q is not None:
            # No producer can reach q any more, so this blocks only until the
            # worker frees a slot.
            q.put(_STOP)
        if worker is not None:
            worker.join()

    def dropped(self) -> int:
        """Cumulative number of publish jobs dropped because the queue was full."""
        with self._dropped_lock:
            return self._dropped

    def on_derived_event(self, event: DerivedEvent) -> None:
        """Publish the event, the affected device state and, if relevant, house state."""
        if self.client is None:
            return
        now = datetime.now(timezone.utc)
        self._publish_json(f"{self.prefix}/events/derived", False, event)
        if event.device_id and self.store is not None:
            d = self.store.get(event.device_id)
            if d is not None:
                self._publish_json(
                    f"{self.prefix}/state/devices/{event.device_id}",
                    True,
                    self._device_payload(d, now),
                )
        if self.store is None:
            return
        event_type = event.type.value if isinstance(event.type, Enum) else event.type
        if event_type == DerivedEventType.HOUSE_STATE_CHANGED.value:
            self._publish_json(
                f"{self.prefix}/state/house", True, self._house_payload(self.store.house(), now)
            )
        if relevant_for_snapshot(event_type):
            self._publish_json(
                f"{self.prefix}/state/snapshot",
                True,
                self._snapshot_payload(self.store.snapshot(), now),
            )

    def publish_snapshot(self) -> None:
        """Publish the snapshot, the house state and every device's retained state."""
        if self.client is None or self.store is None:
            return
        now = datetime.now(timezone.utc)
        self._publish_json(
            f"{self.prefix}/state/snapshot", True, self._snapshot_payload(self.store.snapshot(), now)
        )
        self._publish_json(
            f"{self.prefix}/state/house", True, self._house_payload(self.store.house(), now)
        )
        for device_id, d in self.store.devices().items():
            self._publish_json(
                f"{self.prefix}/state/devices/{device_id}", True, self._device_payload(d, now)
            )

    def _snapshot_payload(self, snap: Snapshot, now: datetime) -> Any:
        return self.build_snapshot(snap, now) if self.build_snapshot else snap

    def _house_payload(self, house: House, now: datetime) -> Any:
        return self.build_house(house, now) if self.build_house else house

    def _device_payload(self, d: Device, now: datetime) -> Any:
        return self.build_device(d, now) if self.build_device else d

    def _publish_json(self, topic: str, retained: bool, value: Any) -> None:
        try:
            payload = to_json(value)
        except (TypeError, ValueError) as exc:
            self.logger.warning("mqtt marshal failed topic=%s error=%s", topic, exc)
            return
        with self._lock:
            q = self._queue
            if q is None:
                # Synchronous path when the worker was never started.
                try:
                    self.client.publish(topic, 0, retained, payload)
                except Exception as exc:  # noqa: BLE001 - publish failures are logged, not raised
                    self.logger.warning("mqtt publish failed topic=%s error=%s", topic, exc)
                return
            try:
                q.put_nowait(_PublishJob(topic, retained, payload))
                return
            except queue.Full:
                pass
        # Retained topics self-heal on the next event or periodic snapshot.
        with self._dropped_lock:
            self._dropped += 1
        self.logger.warning("mqtt publish queue full; dropping topic=%s", topic)