"""RegistryAuditLogger: JSONL audit trail for soul registry events.

Each successful state change (registration, metadata update, status change,
challenge issue or completion) is appended as a single JSON line to the
configured file. Without a file path, events go to an in-memory buffer that
can be drained via :meth:`RegistryAuditLogger.drain_buffer`.
"""
from __future__ import annotations

import datetime
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path

from soul_registry.timeutil import format_timestamp, utcnow


@dataclass
class AuditEvent:
    """A single auditable registry event.

    Parameters
    ----------
    event_type:
        Short snake_case name, e.g. ``"soul_registered"``.
    did:
        The soul the event concerns.
    details:
        Arbitrary JSON-serializable context.
    timestamp:
        UTC time of the event. Defaults to now.
    """

    event_type: str
    did: str
    details: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "event_type": self.event_type,
            "did": self.did,
            "details": self.details,
        }


class RegistryAuditLogger:
    """Append-only JSONL audit logger. Thread-safe.

    Parameters
    ----------
    log_path:
        JSONL file to append to; parent directories are created. If None,
        events are buffered in memory only.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._buffer: list[str] = []
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), separators=(",", ":"), default=str)
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            else:
                self._buffer.append(line)

    def log_event(self, event_type: str, did: str, **details: object) -> None:
        """Log an event without constructing :class:`AuditEvent` by hand."""
        self.log(AuditEvent(event_type=event_type, did=did, details=details))

    def drain_buffer(self) -> list[str]:
        """Return and clear the in-memory buffer (oldest first)."""
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    def read_log(self, tail: int | None = None) -> list[dict[str, object]]:
        """Read back events from the file, or from the buffer when there is none.

        Parameters
        ----------
        tail:
            If given, only the last *tail* events are returned.
        """
        with self._lock:
            if self._log_path is None or not self._log_path.exists():
                lines = list(self._buffer)
            else:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()

        parsed: list[dict[str, object]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                parsed.append(json.loads(stripped))
            except json.JSONDecodeError:
                continue

        if tail is not None:
            return parsed[-tail:]
        return parsed


__all__ = ["AuditEvent", "RegistryAuditLogger"]
