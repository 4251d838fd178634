"""UTC timestamps in the formats stored on disk."""

from __future__ import annotations

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def iso_now() -> str:
    """Current time as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_ms() -> int:
    return time.time_ns() // 1_000_000
