"""Millisecond clock helpers shared by the cache, rate limiter and lookups."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def iso_from_ms(epoch_ms: float) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC timestamp with a ``Z`` suffix.

    Examples:
        >>> iso_from_ms(0)
        '1970-01-01T00:00:00.000Z'
    """
    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = ["iso_from_ms", "now_ms"]
