"""MQTT client interface and its paho-mqtt backed implementation."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Optional, Protocol, runtime_checkable
from urllib.parse import urlsplit

import paho.mqtt.client as paho

Handler = Callable[[str, bytes, bool], None]
"""Called with (topic, payload, retained) for each matching message."""

CONNECT_TIMEOUT = 2.0
SUBSCRIBE_TIMEOUT = 2.0
# Caps each publish so a stuck broker cannot stall the caller indefinitely.
PUBLISH_TIMEOUT = 5.0

# scheme -> (transport, tls, default port)
_SCHEMES: dict[str, tuple[str, bool, int]] = {
    "tcp": ("tcp", False, 1883),
    "mqtt": ("tcp", False, 1883),
    "ssl": ("tcp", True, 8883),
    "tls": ("tcp", True, 8883),
    "mqtts": ("tcp", True, 8883),
    "ws": ("websockets", False, 80),
    "wss": ("websockets", True, 443),
}


class MqttError(Exception):
    """An MQTT operation failed or timed out."""


@runtime_checkable
class Client(Protocol):
    """The subset of an MQTT client the engine needs."""

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def subscribe(self, topic: str, qos: int, handler: Handler) -> None: ...

    def publish(self, topic: str, qos: int, retained: bool, payload: bytes) -> None: ...

    def is_connected(self) -> bool: ...

    def reconnects(self) -> int: ...


@dataclass
class ClientConfig:
    """How to reach the MQTT broker."""

    broker: str = ""
    client_id: str = ""
    username: str = ""
    password: str = field(default="", repr=False)


@dataclass(frozen=True)
class _ClientOptions:
    broker: str
    host: str
    port: int
    transport: str
    tls: bool
    ws_path: str
    client_id: str
    auto_reconnect: bool = True
    connect_retry: bool = True
    connect_retry_interval: timedelta = timedelta(seconds=5)
    max_reconnect_interval: timedelta = timedelta(minutes=10)
    clean_session: bool = True
    keep_alive: timedelta = timedelta(seconds=30)
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)


def build_client_options(config: ClientConfig) -> _ClientOptions:
    """Resolve the connection settings used by ``PahoClient.connect``."""
    text = config.broker if "://" in config.broker else "tcp://" + config.broker
    parts = urlsplit(text)
    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES:
        raise MqttError(f"unsupported broker scheme {scheme!r}")
    transport, tls, default_port = _SCHEMES[scheme]
    host = parts.hostname
    if not host:
        raise MqttError(f"invalid broker address {config.broker!r}")
    try:
        port = parts.port or default_port
    except ValueError as exc:
        raise MqttError(f"invalid broker port in {config.broker!r}") from exc
    username = config.username or None
    return _ClientOptions(
        broker=config.broker,
        host=host,
        port=port,
        transport=transport,
        tls=tls,
        ws_path=parts.path if transport == "websockets" else "",
        client_id=config.client_id,
        username=username,
        password=config.password if username else None,
    )


class _AckTracker:
    """Collects SUBACK results by message id so callers can wait for them."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._results: dict[int, Optional[str]] = {}

    def done(self, mid: int, error: Optional[str]) -> None:
        with self._cond:
            self._results[mid] = error
            self._cond.notify_all()

    def wait(self, mid: int, timeout: float) -> tuple[bool, Optional[str]]:
        with self._cond:
            if not self._cond.wait_for(lambda: mid in self._results, timeout):
                return False, None
            return True, self._results.pop(mid)


@dataclass(frozen=True)
class _Subscription:
    topic: str
    qos: int


class PahoClient:
    """Client backed by paho-mqtt, re-subscribing after every reconnect."""

    def __init__(self, config: ClientConfig) -> None:
        self._config = config
        self._lock = threading.Lock()
        self._client: Optional[paho.Client] = None
        self._subs_lock = threading.Lock()
        self._subs: list[_Subscription] = []
        self._ever_connected = False
        self._reconnects = 0
        self._connected_event = threading.Event()
        self._acks = _AckTracker()
        self.publish_timeout = PUBLISH_TIMEOUT

    def _current(self) -> Optional[paho.Client]:
        with self._lock:
            return self._client

    def connect(self) -> None:
        """Start connecting; raises if not connected within a short bound.

        The connection keeps retrying in the background after a timeout.
        """
        opts = build_client_options(self._config)
        c = paho.Client(
            callback_api_version=paho.CallbackAPIVersion.VERSION2,
            client_id=opts.client_id,
            clean_session=opts.clean_session,
            transport=opts.transport,
        )
        if opts.username is not None:
            c.username_pw_set(opts.username, opts.password)
        if opts.tls:
            c.tls_set()
        if opts.ws_path:
            c.ws_set_options(path=opts.ws_path)
        c.reconnect_delay_set(
            min_delay=int(opts.connect_retry_interval.total_seconds()),
            max_delay=int(opts.max_reconnect_interval.total_seconds()),
        )
        c.on_connect = self._on_connect
        c.on_subscribe = self._on_subscribe
        with self._lock:
            self._client = c
        c.connect_async(opts.host, opts.port, keepalive=int(opts.keep_alive.total_seconds()))
        c.loop_start()
        if not self._connected_event.wait(CONNECT_TIMEOUT):
            raise MqttError("mqtt connect timeout; retrying in background")

    def _on_connect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        if getattr(reason_code, "is_failure", False):
            return
        with self._lock:
            if self._ever_connected:
                self._reconnects += 1
            else:
                self._ever_connected = True
        self._connected_event.set()
        self._resubscribe(client)

    def _on_subscribe(self, client: Any, userdata: Any, mid: int, reason_codes: Any, properties: Any = None) -> None:
        failures = [str(rc) for rc in reason_codes if getattr(rc, "is_failure", False)]
        self._acks.done(mid, "; ".join(failures) or None)

    def _resubscribe(self, client: Any) -> None:
        with self._subs_lock:
            subs = list(self._subs)
        for s in subs:
            client.subscribe(s.topic, s.qos)

    def disconnect(self) -> None:
        c = self._current()
        if c is not None:
            c.disconnect()
            c.loop_stop()

    def subscribe(self, topic: str, qos: int, handler: Handler) -> None:
        c = self._current()
        if c is None:
            raise MqttError("mqtt not connected")

        def on_message(_client: Any, _userdata: Any, message: Any) -> None:
            handler(message.topic, message.payload, bool(message.retain))

        c.message_callback_add(topic, on_message)
        # Recorded before subscribing so a concurrent reconnect cannot miss it.
        with self._subs_lock:
            self._subs.append(_Subscription(topic, qos))
        rc, mid = c.subscribe(topic, qos)
        if rc != paho.MQTT_ERR_SUCCESS:
            raise MqttError(f"mqtt subscribe failed ({paho.error_string(rc)}); will retry on reconnect")
        acked, error = self._acks.wait(mid, SUBSCRIBE_TIMEOUT)
        if not acked:
            raise MqttError("mqtt subscribe timed out; will retry on reconnect")
        if error:
            raise MqttError(f"mqtt subscribe rejected: {error}")

    def publish(self, topic: str, qos: int, retained: bool, payload: bytes) -> None:
        c = self._current()
        if c is None:
            raise MqttError("mqtt not connected")
        try:
            info = c.publish(topic, payload, qos=qos, retain=retained)
            if info.rc != paho.MQTT_ERR_SUCCESS:
                raise MqttError(f"mqtt publish failed: {paho.error_string(info.rc)}")
            info.wait_for_publish(timeout=self.publish_timeout)
        except (ValueError, RuntimeError) as exc:
            raise MqttError(f"mqtt publish failed: {exc}") from exc
        if not info.is_published():
            raise MqttError("mqtt publish timeout")

    def is_connected(self) -> bool:
        c = self._current()
        return c is not None and bool(c.is_connected())

    def reconnects(self) -> int:
        """How many times the client reconnected after the first connect."""
        with self._lock:
            return self._reconnects