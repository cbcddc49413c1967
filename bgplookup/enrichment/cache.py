"""In-process response cache for upstream lookups.

Entries are keyed by the exact upstream URL (query string included) and hold the
decoded JSON payload together with the HTTP status it arrived with. Expiry and
capacity are supplied per call rather than at construction, so several call
sites can share one cache under different policies.

Pruning is opportunistic: :meth:`ResponseCache.lookup` prunes before reading and
:meth:`ResponseCache.store` prunes after writing. There is no background sweep.

Thread Safety:
    A single lock guards the entry map. ``lookup`` and ``store`` run their
    prune-and-read / write-and-prune sequences under one acquisition so
    concurrent requests never observe the map above capacity.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    """Cached upstream response.

    Attributes:
        stored_at_ms: Epoch milliseconds when the entry was inserted
        last_accessed_ms: Epoch milliseconds of the latest hit (drives LRU eviction)
        status: HTTP status the payload arrived with
        payload: Decoded JSON value
        fetched_at: ISO timestamp of the original upstream call
    """

    stored_at_ms: float
    last_accessed_ms: float
    status: int
    payload: Any
    fetched_at: str

    def age_ms(self, now_ms: float) -> float:
        return now_ms - self.stored_at_ms


class ResponseCache:
    """Bounded TTL + LRU cache shared by every lookup in the process.

    Usage:
        cache = ResponseCache()
        cache.store(url, CacheEntry(...), now_ms=now, ttl_ms=30_000, max_entries=256)
        entry = cache.lookup(url, now_ms=now, ttl_ms=30_000, max_entries=256)
        if entry is not None:
            print(entry.payload)
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.stats: dict[str, int] = {
            'hits': 0,
            'misses': 0,
            'stores': 0,
            'expired': 0,
            'evicted': 0,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str, *, now_ms: float, ttl_ms: float) -> Optional[CacheEntry]:
        """Return a snapshot of the entry for ``key`` if it is younger than ``ttl_ms``.

        A hit refreshes the entry's ``last_accessed_ms``. Expired entries are
        reported as absent but left in place for the next prune.
        """
        with self._lock:
            return self._get_locked(key, now_ms, ttl_ms)

    def put(self, key: str, entry: CacheEntry) -> None:
        """Insert or overwrite ``key`` unconditionally."""
        with self._lock:
            self._put_locked(key, entry)

    def prune(self, *, now_ms: float, ttl_ms: float, max_entries: int) -> int:
        """Drop expired entries, then least-recently-used ones beyond ``max_entries``.

        Args:
            now_ms: Current epoch milliseconds
            ttl_ms: Entry lifetime; values <= 0 skip the expiry pass
            max_entries: Capacity to enforce after expiry

        Returns:
            Number of entries removed
        """
        with self._lock:
            return self._prune_locked(now_ms, ttl_ms, max_entries)

    def lookup(self, key: str, *, now_ms: float, ttl_ms: float, max_entries: int) -> Optional[CacheEntry]:
        """Prune then read ``key`` under a single lock acquisition."""
        with self._lock:
            self._prune_locked(now_ms, ttl_ms, max_entries)
            return self._get_locked(key, now_ms, ttl_ms)

    def store(self, key: str, entry: CacheEntry, *, now_ms: float, ttl_ms: float, max_entries: int) -> None:
        """Insert ``key`` then prune to capacity under a single lock acquisition."""
        with self._lock:
            self._put_locked(key, entry)
            self._prune_locked(now_ms, ttl_ms, max_entries)

    def clear(self) -> None:
        """Remove every entry (statistics are kept)."""
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return dict(self.stats)

    def reset_stats(self) -> None:
        with self._lock:
            for key in self.stats:
                self.stats[key] = 0

    def _get_locked(self, key: str, now_ms: float, ttl_ms: float) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None or entry.age_ms(now_ms) >= ttl_ms:
            self.stats['misses'] += 1
            return None
        entry.last_accessed_ms = now_ms
        self.stats['hits'] += 1
        # Payloads are copied on the way in and out; the cached value is never shared.
        return replace(entry, payload=copy.deepcopy(entry.payload))

    def _put_locked(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = replace(entry, payload=copy.deepcopy(entry.payload))
        self.stats['stores'] += 1

    def _prune_locked(self, now_ms: float, ttl_ms: float, max_entries: int) -> int:
        removed = 0
        if ttl_ms > 0:
            expired = [key for key, entry in self._entries.items() if entry.age_ms(now_ms) >= ttl_ms]
            for key in expired:
                del self._entries[key]
            removed += len(expired)
            self.stats['expired'] += len(expired)

        overflow = len(self._entries) - max(0, max_entries)
        if overflow > 0:
            by_access = sorted(self._entries.items(), key=lambda item: item[1].last_accessed_ms)
            for key, _ in by_access[:overflow]:
                del self._entries[key]
            removed += overflow
            self.stats['evicted'] += overflow
            logger.debug(f"Evicted {overflow} least-recently-used cache entries")

        return removed


__all__ = ["CacheEntry", "ResponseCache"]
