from __future__ import annotations

import re
from datetime import datetime, timezone


FIXED_TIMESTAMP = "1970-01-01T00:00:00+00:00"

_ISO8601_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T"
    r"\d{2}:\d{2}:\d{2}"
    r"(?:\.\d{1,9})?"
    r"(?:Z|[+\-]\d{2}:\d{2})$"
)


def utc_timestamp_iso(*, deterministic: bool) -> str:
    if deterministic:
        return FIXED_TIMESTAMP
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def parse_iso8601(dt: str) -> datetime:
    """Parse an ISO-8601 timestamp that carries an explicit timezone offset."""

    if not isinstance(dt, str) or not dt:
        raise ValueError("timestamp missing/empty")
    if _ISO8601_RE.match(dt) is None:
        raise ValueError(f"invalid ISO-8601 timestamp: {dt!r}")
    if dt.endswith("Z"):
        dt = dt[:-1] + "+00:00"
    # fromisoformat() only accepts up to 6 fractional digits before 3.11.
    head, sep, tail = dt.partition(".")
    if sep:
        digits = tail[: len(tail) - 6]
        dt = f"{head}.{digits[:6].ljust(6, '0')}{tail[-6:]}"
    parsed = datetime.fromisoformat(dt)
    if parsed.tzinfo is None:
        raise ValueError("missing timezone offset")
    return parsed
