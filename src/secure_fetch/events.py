"""
Structured pipeline events.

A fetch records one event per stage, so the event log still says which
stage failed and why after fetch_and_decrypt has collapsed the failure
to None.

Stages, in order: CONNECT, AUTH, SFTP, READ, DISCONNECT, DECRYPT.
ERROR is recorded for any failure, carrying SecureFetchError.to_dict().

Sinks:
- EventCollector: in memory, for tests and the CLI's --events flag
- JSONLEventLog: one JSON object per line, appended to a file
"""
from __future__ import annotations

import json
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any, Iterator


class EventType(str, Enum):
    CONNECT = "CONNECT"
    AUTH = "AUTH"
    SFTP = "SFTP"
    READ = "READ"
    DECRYPT = "DECRYPT"
    DISCONNECT = "DISCONNECT"
    ERROR = "ERROR"


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class Event:
    """One pipeline event; timestamp is Unix time in milliseconds."""
    event_type: str
    timestamp: float = field(default_factory=_now_ms)
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.event_type, EventType):
            self.event_type = self.event_type.value
        assert self.event_type in EventType.__members__, \
            f"Invalid event_type {self.event_type!r}"
        assert self.timestamp > 0, f"Timestamp must be positive, got {self.timestamp}"

    def to_json(self) -> str:
        record = {
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "data": self.data,
        }
        # Error contexts may carry Paths or exceptions
        return json.dumps(record, default=str)

    @classmethod
    def from_json(cls, line: str) -> "Event":
        record = json.loads(line)
        return cls(record["event_type"], record["timestamp"], record.get("data", {}))


class EventCollector:
    """Keeps events in memory, in emission order."""

    def __init__(self) -> None:
        self._events: list[Event] = []

    def emit(self, event: Event) -> None:
        self._events.append(event)

    @property
    def events(self) -> list[Event]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()

    def get_by_type(self, event_type: str | EventType) -> list[Event]:
        wanted = EventType(event_type).value
        return [e for e in self._events if e.event_type == wanted]


class JSONLEventLog:
    """
    Append-only JSONL file sink.

    The file is opened on construction, so an unusable path fails before
    any network activity starts.

    Raises:
        OSError: If the file or its parent directory cannot be created
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file: IO[str] | None = open(self.path, "a", encoding="utf-8")

    def emit(self, event: Event) -> None:
        assert self._file is not None, f"Event log {self.path} is closed"
        self._file.write(event.to_json() + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


class EventEmitter:
    """
    Builds events and fans them out to the configured sinks.

    With neither a collector nor a path, events are built and dropped.
    """

    def __init__(
        self,
        collector: EventCollector | None = None,
        jsonl_path: Path | str | None = None,
    ) -> None:
        self._sinks: list[EventCollector | JSONLEventLog] = []
        if collector is not None:
            self._sinks.append(collector)
        if jsonl_path:
            self._sinks.append(JSONLEventLog(jsonl_path))

    def emit(self, event_type: str | EventType, **data: Any) -> Event:
        event = Event(event_type=event_type, data=data)
        for sink in self._sinks:
            sink.emit(event)
        return event

    def close(self) -> None:
        for sink in self._sinks:
            if isinstance(sink, JSONLEventLog):
                sink.close()
        self._sinks = [s for s in self._sinks if not isinstance(s, JSONLEventLog)]

    @contextmanager
    def timed_event(
        self,
        event_type: str | EventType,
        **initial_data: Any,
    ) -> Iterator[dict[str, Any]]:
        """
        Emit one event when the block exits, with duration_ms added.

        The yielded dict becomes the event data, so the block can record
        its outcome:

            with emitter.timed_event(EventType.READ, path=path) as data:
                payload = await remote_file.read()
                data["bytes"] = len(payload)

        The event is emitted even when the block raises.
        """
        data = dict(initial_data)
        started = _now_ms()
        try:
            yield data
        finally:
            data["duration_ms"] = _now_ms() - started
            self.emit(event_type, **data)


def read_jsonl_events(path: Path | str) -> list[Event]:
    """Load every event from a JSONL log, skipping blank lines."""
    with open(path, encoding="utf-8") as f:
        return [Event.from_json(line) for line in f if line.strip()]
