"""In-memory MQTT clients for tests: a recorder and a fault injector."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from .client import Client, Handler, MqttError


@dataclass(frozen=True)
class Published:
    """One message recorded by ``FakeClient.publish``."""

    topic: str
    qos: int
    retained: bool
    payload: bytes


@dataclass(frozen=True)
class Subscription:
    """One subscription recorded by ``FakeClient.subscribe``."""

    topic: str
    qos: int
    handler: Handler


def _segments(s: str) -> list[str]:
    return s.split("/") if s else []


def topic_matches(topic_filter: str, topic: str) -> bool:
    """Standard MQTT filter matching with "+" and trailing "#" wildcards."""
    f_segs = _segments(topic_filter)
    t_segs = _segments(topic)
    for f, t in zip(f_segs, t_segs):
        if f == "#":
            return True
        if f != "+" and f != t:
            return False
    rest = f_segs[min(len(f_segs), len(t_segs)):]
    # A trailing "#" also matches when no topic segments remain.
    if rest and rest[0] == "#":
        return True
    return len(f_segs) == len(t_segs)


class FakeClient:
    """Records subscriptions and publishes; errors can be injected per method."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.published: list[Published] = []
        self.subscriptions: list[Subscription] = []
        self.connected = True
        self.connect_err: Optional[Exception] = None
        self.subscribe_err: Optional[Exception] = None
        self.publish_err: Optional[Exception] = None
        self.disconnected = False

    def connect(self) -> None:
        with self._lock:
            if self.connect_err is not None:
                raise self.connect_err
            self.connected = True

    def disconnect(self) -> None:
        with self._lock:
            self.disconnected = True
            self.connected = False

    def subscribe(self, topic: str, qos: int, handler: Handler) -> None:
        with self._lock:
            if self.subscribe_err is not None:
                raise self.subscribe_err
            self.subscriptions.append(Subscription(topic, qos, handler))

    def publish(self, topic: str, qos: int, retained: bool, payload: bytes) -> None:
        with self._lock:
            if self.publish_err is not None:
                raise self.publish_err
            self.published.append(Published(topic, qos, retained, bytes(payload)))

    def is_connected(self) -> bool:
        with self._lock:
            return self.connected

    def reconnects(self) -> int:
        return 0

    def deliver(self, topic: str, payload: bytes, retained: bool) -> int:
        """Invoke every handler whose filter matches; return how many ran."""
        with self._lock:
            subs = list(self.subscriptions)
        matched = 0
        for s in subs:
            if topic_matches(s.topic, topic):
                s.handler(topic, payload, retained)
                matched += 1
        return matched

    def published_on(self, topic: str) -> list[Published]:
        """Recorded publishes whose topic equals ``topic`` exactly."""
        with self._lock:
            return [p for p in self.published if p.topic == topic]

    def reset(self) -> None:
        """Clear recorded state and injected errors."""
        with self._lock:
            self.published = []
            self.subscriptions = []
            self.connected = True
            self.connect_err = None
            self.subscribe_err = None
            self.publish_err = None
            self.disconnected = False


class FaultClient:
    """Wraps a client and fails publish calls numbered [fault_start, fault_end)."""

    def __init__(
        self,
        inner: Client,
        fault_start: int = 0,
        fault_end: int = 0,
        fault_err: Optional[Exception] = None,
    ) -> None:
        self.inner = inner
        self.fault_start = fault_start
        self.fault_end = fault_end
        self.fault_err = fault_err
        self._lock = threading.Lock()
        self._calls = 0

    def connect(self) -> None:
        self.inner.connect()

    def disconnect(self) -> None:
        self.inner.disconnect()

    def subscribe(self, topic: str, qos: int, handler: Handler) -> None:
        self.inner.subscribe(topic, qos, handler)

    def publish(self, topic: str, qos: int, retained: bool, payload: bytes) -> None:
        with self._lock:
            index = self._calls
            self._calls += 1
        if self.fault_start <= index < self.fault_end:
            if self.fault_err is not None:
                raise self.fault_err
            raise MqttError("injected mqtt publish fault")
        self.inner.publish(topic, qos, retained, payload)

    def is_connected(self) -> bool:
        return self.inner.is_connected()

    def reconnects(self) -> int:
        return self.inner.reconnects()