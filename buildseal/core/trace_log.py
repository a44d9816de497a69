from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from buildseal.core.json_canon import canonical_json_bytes
from buildseal.core.time import parse_iso8601, utc_timestamp_iso

logger = logging.getLogger(__name__)

TRACE_LOG_FILENAME = "trace.jsonl"


@dataclass(frozen=True)
class TraceEntry:
    """One traceability event recorded during a build session."""

    event: str
    subject: str
    detail: str
    timestamp: str  # ISO-8601 with offset


def trace_entry_to_dict(entry: TraceEntry) -> dict[str, Any]:
    return {
        "event": entry.event,
        "subject": entry.subject,
        "detail": entry.detail,
        "timestamp": entry.timestamp,
    }


class TraceLog:
    """Session-owned traceability log.

    Entries accumulate in memory and are written exactly once with flush();
    nothing outside the owning session appends to the file.
    """

    def __init__(self, *, deterministic: bool = False) -> None:
        self._deterministic = deterministic
        self._entries: list[TraceEntry] = []
        self._flushed_to: Path | None = None

    @property
    def entries(self) -> tuple[TraceEntry, ...]:
        return tuple(self._entries)

    @property
    def flushed(self) -> bool:
        return self._flushed_to is not None

    def record(self, event: str, subject: str, detail: str = "", *, timestamp: str | None = None) -> TraceEntry:
        if self._flushed_to is not None:
            raise RuntimeError(f"trace log already flushed to {self._flushed_to}")
        if not event:
            raise ValueError("trace event missing/empty")
        ts = timestamp if timestamp is not None else utc_timestamp_iso(deterministic=self._deterministic)
        parse_iso8601(ts)
        entry = TraceEntry(event=event, subject=subject, detail=detail, timestamp=ts)
        self._entries.append(entry)
        logger.debug("trace %s %s %s", event, subject, detail)
        return entry

    def to_bytes(self) -> bytes:
        # One canonical JSON object per line.
        return b"".join(canonical_json_bytes(trace_entry_to_dict(e)) for e in self._entries)

    def flush(self, path: Path) -> Path:
        if self._flushed_to is not None:
            raise RuntimeError(f"trace log already flushed to {self._flushed_to}")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.to_bytes())
        self._flushed_to = path
        logger.info("trace log written: %s (%d entries)", path, len(self._entries))
        return path
