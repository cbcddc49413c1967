"""Per-caller rate limiting for lookup requests.

Lookups fan out to third-party routing-data providers, so each caller (keyed by
client address) gets a fixed budget of requests per window. Denied requests fail
fast with a retry hint; nothing is queued.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..utils.timestamps import iso_from_ms, now_ms as current_ms

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 10_000
DEFAULT_MAX_REQUESTS = 40
DEFAULT_MAX_KEYS = 2_000
ANONYMOUS_KEY = "anon"


def clamp_positive_int(value: Any, fallback: int) -> int:
    """Return ``value`` floored to an int, or ``fallback`` when it is not a finite positive number.

    Examples:
        >>> clamp_positive_int("2500.7", 10)
        2500
        >>> clamp_positive_int("NaN", 10)
        10
        >>> clamp_positive_int(0, 10)
        10
    """
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number) or number <= 0:
        return fallback
    return math.floor(number)


def _coerce_now(value: Any) -> int:
    """Return an injected clock reading as an int, or the wall clock when it is unusable.

    Zero is a valid reading (a test clock starting at the epoch); only missing,
    non-numeric, non-finite or negative values fall back.
    """
    if value is None or isinstance(value, bool):
        return current_ms()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return current_ms()
    if not math.isfinite(number) or number < 0:
        return current_ms()
    return math.floor(number)


@dataclass(slots=True)
class RateLimitEntry:
    """Counter state for one caller.

    Attributes:
        window_start_ms: Epoch milliseconds when the current window opened
        count: Requests consumed in the current window
        last_seen_ms: Epoch milliseconds of the latest request (drives eviction)
    """

    window_start_ms: int
    count: int
    last_seen_ms: int


@dataclass(slots=True, frozen=True)
class RateLimitDecision:
    """Outcome of a single :meth:`SlidingWindowRateLimiter.consume` call."""

    allowed: bool
    limit: int
    remaining: int
    window_ms: int
    reset_at: str
    retry_after_sec: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            'allowed': self.allowed,
            'limit': self.limit,
            'remaining': self.remaining,
            'window_ms': self.window_ms,
            'reset_at': self.reset_at,
        }
        if self.retry_after_sec is not None:
            payload['retry_after_sec'] = self.retry_after_sec
        return payload


class SlidingWindowRateLimiter:
    """Fixed-budget, per-key request window with a bounded key set.

    Each key's window restarts once ``window_ms`` has elapsed since it opened.
    Keys idle for more than two windows are dropped, and when the table is still
    over ``max_keys`` the least recently seen keys go first.

    All configuration is passed per call and clamped by :func:`clamp_positive_int`
    so a bad value degrades to the defaults instead of disabling protection.

    Usage:
        limiter = SlidingWindowRateLimiter()
        decision = limiter.consume("ip:198.51.100.10", window_ms=10_000, max_requests=40)
        if not decision.allowed:
            print(f"retry in {decision.retry_after_sec}s")
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self.stats: dict[str, int] = {
            'allowed': 0,
            'denied': 0,
            'pruned': 0,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def consume(
        self,
        key: str,
        *,
        window_ms: Any = DEFAULT_WINDOW_MS,
        max_requests: Any = DEFAULT_MAX_REQUESTS,
        max_keys: Any = DEFAULT_MAX_KEYS,
        now_ms: Any = None,
    ) -> RateLimitDecision:
        """Count one request against ``key`` and decide whether it may proceed.

        Args:
            key: Caller identity; blank keys share the anonymous bucket
            window_ms: Window length in milliseconds
            max_requests: Requests allowed per window
            max_keys: Maximum number of tracked callers
            now_ms: Current epoch milliseconds (defaults to the wall clock)

        Returns:
            RateLimitDecision with remaining budget and retry guidance
        """
        window = clamp_positive_int(window_ms, DEFAULT_WINDOW_MS)
        limit = clamp_positive_int(max_requests, DEFAULT_MAX_REQUESTS)
        capacity = clamp_positive_int(max_keys, DEFAULT_MAX_KEYS)
        now = _coerce_now(now_ms)
        bucket = (key or "").strip() or ANONYMOUS_KEY

        with self._lock:
            self._prune_locked(now, window, capacity, bucket)

            entry = self._entries.get(bucket)
            if entry is None or now - entry.window_start_ms >= window:
                entry = RateLimitEntry(window_start_ms=now, count=1, last_seen_ms=now)
                self._entries[bucket] = entry
            else:
                entry.count += 1
                entry.last_seen_ms = now

            count = entry.count
            reset_at_ms = entry.window_start_ms + window

            if count > limit:
                self.stats['denied'] += 1
                retry_after = max(1, math.ceil((reset_at_ms - now) / 1000))
                logger.warning(f"Rate limit exceeded for {bucket} ({count}/{limit}), retry in {retry_after}s")
                return RateLimitDecision(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    window_ms=window,
                    reset_at=iso_from_ms(reset_at_ms),
                    retry_after_sec=retry_after,
                )

            self.stats['allowed'] += 1
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - count),
                window_ms=window,
                reset_at=iso_from_ms(reset_at_ms),
            )

    def reset(self) -> None:
        """Forget every tracked key."""
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return dict(self.stats)

    def _prune_locked(self, now: int, window: int, capacity: int, incoming: str) -> None:
        stale = [key for key, entry in self._entries.items() if now - entry.last_seen_ms > window * 2]
        for key in stale:
            del self._entries[key]

        # Leave room for a newcomer so the table never exceeds capacity.
        room = capacity if incoming in self._entries else capacity - 1
        overflow = len(self._entries) - room
        if overflow > 0:
            by_last_seen = sorted(self._entries.items(), key=lambda item: item[1].last_seen_ms)
            for key, _ in by_last_seen[:overflow]:
                del self._entries[key]
        else:
            overflow = 0

        pruned = len(stale) + overflow
        if pruned:
            self.stats['pruned'] += pruned
            logger.debug(f"Pruned {pruned} rate limit keys ({len(stale)} stale)")


__all__ = [
    "ANONYMOUS_KEY",
    "DEFAULT_MAX_KEYS",
    "DEFAULT_MAX_REQUESTS",
    "DEFAULT_WINDOW_MS",
    "RateLimitDecision",
    "RateLimitEntry",
    "SlidingWindowRateLimiter",
    "clamp_positive_int",
]
