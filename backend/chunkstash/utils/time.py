"""Time helpers."""

from __future__ import annotations

import time
from datetime import datetime


def now_ms() -> int:
    """Return current timestamp in milliseconds."""
    return int(time.time() * 1000)


def rfc3339(timestamp: float) -> str:
    """Format a POSIX timestamp as an RFC 3339 string in local time."""
    return datetime.fromtimestamp(timestamp).astimezone().isoformat(timespec="seconds")
