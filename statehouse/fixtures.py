"""Loading of JSONL fixtures: timestamped MQTT topic/payload pairs."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>[Zz]|[+-]\d{2}:\d{2})?$"
)


class FixtureError(ValueError):
    """A fixture line could not be parsed."""


def _parse_timestamp(value: object) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise FixtureError(f"timestamp must be a string, got {value!r}")
    m = _RFC3339.match(value)
    if not m:
        raise FixtureError(f"invalid timestamp {value!r}")
    text = m.group("base").replace("t", "T").replace(" ", "T")
    frac = m.group("frac")
    if frac:
        text += "." + frac[:6].ljust(6, "0")
    tz = m.group("tz")
    if tz is None or tz in ("Z", "z"):
        tz = "+00:00"
    return datetime.fromisoformat(text + tz)


@dataclass(frozen=True)
class FixtureEvent:
    """One line of a fixture: a topic and its payload kept as raw JSON."""

    timestamp: Optional[datetime]
    topic: str
    payload: bytes = b""

    def payload_bytes(self) -> bytes:
        """Return the payload as wire bytes; JSON strings are unquoted."""
        if self.payload[:1] == b'"':
            try:
                decoded = json.loads(self.payload)
            except ValueError:
                return self.payload
            if isinstance(decoded, str):
                return decoded.encode("utf-8")
        return self.payload


def _parse_line(line: str) -> FixtureEvent:
    try:
        obj = json.loads(line)
    except ValueError as exc:
        raise FixtureError(f"parse fixture line: {exc}") from exc
    if not isinstance(obj, dict):
        raise FixtureError("parse fixture line: expected a JSON object")
    topic = obj.get("topic", "")
    if not isinstance(topic, str):
        raise FixtureError("parse fixture line: topic must be a string")
    payload = b""
    if "payload" in obj:
        payload = json.dumps(obj["payload"], separators=(",", ":")).encode("utf-8")
    return FixtureEvent(
        timestamp=_parse_timestamp(obj.get("ts")),
        topic=topic,
        payload=payload,
    )


def load_fixture(path: Union[str, Path]) -> list[FixtureEvent]:
    """Read a JSONL fixture file, skipping blank lines."""
    events: list[FixtureEvent] = []
    with open(path, encoding="utf-8") as fh:
        for line in fh:
            line = line.rstrip("\r\n")
            if not line:
                continue
            events.append(_parse_line(line))
    return events