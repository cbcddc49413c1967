"""Timeout-bounded JSON fetches with a shared response cache.

Every upstream call in a lookup goes through :class:`ResilientFetchClient`. The
client never raises for upstream problems: HTTP errors, transport failures,
timeouts and undecodable bodies all come back as a failed :class:`FetchResult`
so the caller can record evidence and decide whether the failure is fatal.

Request hygiene:
    - No credentials: the session ignores ``~/.netrc`` and refuses cookies
    - No HTTP caching: ``Cache-Control: no-store`` on every request
    - Hard deadline: the connect/read timeouts shrink to the time left, the
      body is read in chunks against the same deadline and a watchdog thread
      shuts the socket down when it passes; the response is always
      closed so the pooled connection is released
"""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from dataclasses import dataclass
from http.cookiejar import DefaultCookiePolicy
from typing import Any, Callable, Optional

import requests

from .. import get_version
from ..utils.timestamps import iso_from_ms, now_ms
from .cache import CacheEntry, ResponseCache

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 8_000
DEFAULT_CACHE_MAX_ENTRIES = 256
CHUNK_SIZE = 64 * 1024


@dataclass(slots=True, frozen=True)
class FetchResult:
    """Uniform outcome of one upstream call.

    Attributes:
        ok: True for a 2xx response with a decodable JSON body (or a cache hit)
        url: The exact URL requested
        fetched_at: ISO timestamp of the call start (of the original call for cache hits)
        status: HTTP status, absent for transport errors and timeouts
        value: Decoded JSON payload on success
        error: Failure description (``"HTTP 503"``, transport or parse message)
        cached: True when served from the response cache
        cache_age_ms: Age of the cache entry when ``cached`` is True
    """

    ok: bool
    url: str
    fetched_at: str
    status: Optional[int] = None
    value: Any = None
    error: Optional[str] = None
    cached: bool = False
    cache_age_ms: Optional[int] = None


def create_session() -> requests.Session:
    """Return a session that sends no ambient credentials or cookies."""
    session = requests.Session()
    session.trust_env = False
    session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    session.headers.update(
        {
            'Accept': 'application/json',
            'Cache-Control': 'no-store',
            'User-Agent': f"bgplookup/{get_version()}",
        }
    )
    return session


class ResilientFetchClient:
    """Cache-aware JSON GET client with hard timeouts.

    Usage:
        client = ResilientFetchClient(cache=ResponseCache())
        result = client.fetch(url, timeout_ms=8_000, cache_ttl_ms=30_000, cache_max_entries=256)
        if result.ok:
            print(result.value)
        else:
            print(result.error)
    """

    def __init__(
        self,
        cache: ResponseCache,
        session: requests.Session | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize fetch client.

        Args:
            cache: Process-wide response cache
            session: Optional requests session (defaults to :func:`create_session`)
            clock: Millisecond clock, injectable for tests
        """
        self.cache = cache
        self.session = session or create_session()
        self.clock = clock

        # Statistics (shared by request threads)
        self._stats_lock = threading.Lock()
        self.stats: dict[str, int] = {
            'requests': 0,
            'cache_hits': 0,
            'cache_misses': 0,
            'api_success': 0,
            'api_failures': 0,
            'timeouts': 0,
        }

    def fetch(
        self,
        url: str,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        cache_ttl_ms: int = 0,
        cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
    ) -> FetchResult:
        """Fetch and decode JSON from ``url``.

        Args:
            url: Fully encoded upstream URL (also the cache key)
            timeout_ms: Hard deadline for the whole call
            cache_ttl_ms: Cache lifetime; 0 or less bypasses the cache entirely
            cache_max_entries: Cache capacity enforced on read and write

        Returns:
            FetchResult describing success or failure; never raises for upstream errors
        """
        self._count('requests')
        started_ms = self.clock()
        fetched_at = iso_from_ms(started_ms)
        use_cache = cache_ttl_ms > 0

        if use_cache:
            entry = self.cache.lookup(url, now_ms=started_ms, ttl_ms=cache_ttl_ms, max_entries=cache_max_entries)
            if entry is not None:
                self._count('cache_hits')
                age = int(entry.age_ms(started_ms))
                logger.debug(f"Cache hit for {url} (age {age}ms)")
                return FetchResult(
                    ok=True,
                    url=url,
                    fetched_at=entry.fetched_at,
                    status=entry.status,
                    value=entry.payload,
                    cached=True,
                    cache_age_ms=age,
                )
            self._count('cache_misses')

        try:
            status, body = self._get(url, timeout_ms)
        except requests.exceptions.Timeout as e:
            self._count('timeouts')
            self._count('api_failures')
            logger.warning(f"Upstream timeout after {timeout_ms}ms for {url}: {e}")
            return FetchResult(ok=False, url=url, fetched_at=fetched_at, error=_describe(e))
        except requests.exceptions.RequestException as e:
            self._count('api_failures')
            logger.warning(f"Upstream request failed for {url}: {e}")
            return FetchResult(ok=False, url=url, fetched_at=fetched_at, error=_describe(e))

        if not 200 <= status < 300:
            self._count('api_failures')
            logger.warning(f"Upstream returned HTTP {status} for {url}")
            return FetchResult(ok=False, url=url, fetched_at=fetched_at, status=status, error=f"HTTP {status}")

        try:
            value = json.loads(body)
        except ValueError as e:
            self._count('api_failures')
            logger.warning(f"Invalid JSON from {url}: {e}")
            return FetchResult(ok=False, url=url, fetched_at=fetched_at, status=status, error=_describe(e))

        if use_cache:
            stored_ms = self.clock()
            self.cache.store(
                url,
                CacheEntry(
                    stored_at_ms=stored_ms,
                    last_accessed_ms=stored_ms,
                    status=status,
                    payload=value,
                    fetched_at=fetched_at,
                ),
                now_ms=stored_ms,
                ttl_ms=cache_ttl_ms,
                max_entries=cache_max_entries,
            )

        self._count('api_success')
        logger.debug(f"Fetched {url} (HTTP {status})")
        return FetchResult(ok=True, url=url, fetched_at=fetched_at, status=status, value=value)

    def close(self) -> None:
        """Close the underlying session."""
        self.session.close()

    def get_stats(self) -> dict[str, int]:
        with self._stats_lock:
            return dict(self.stats)

    def reset_stats(self) -> None:
        with self._stats_lock:
            for key in self.stats:
                self.stats[key] = 0

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self.stats[key] += 1

    def _get(self, url: str, timeout_ms: int) -> tuple[int, bytes]:
        """Issue the GET and read the body before ``timeout_ms`` elapses.

        Raises:
            requests.exceptions.Timeout: When the deadline passes at any stage
            requests.exceptions.RequestException: For other transport failures
        """
        deadline = time.monotonic() + timeout_ms / 1000

        response = self.session.get(url, timeout=_remaining(deadline, timeout_ms), stream=True)
        aborted = threading.Event()
        watchdog: Optional[threading.Timer] = None
        try:
            status = response.status_code
            if not 200 <= status < 300:
                return status, b""

            # Socket timeouts bound each read, not the body; the watchdog cuts a trickling upstream off.
            watchdog = threading.Timer(_remaining(deadline, timeout_ms), _abort, args=(response, aborted))
            watchdog.daemon = True
            watchdog.start()

            chunks: list[bytes] = []
            try:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    chunks.append(chunk)
                    _remaining(deadline, timeout_ms)
            except Exception as e:
                if aborted.is_set():
                    raise requests.exceptions.Timeout(f"Request timed out after {timeout_ms}ms") from e
                raise
            if aborted.is_set():
                raise requests.exceptions.Timeout(f"Request timed out after {timeout_ms}ms")
            return status, b"".join(chunks)
        finally:
            if watchdog is not None:
                watchdog.cancel()
            response.close()


def _abort(response: requests.Response, aborted: threading.Event) -> None:
    """Tear down a streaming response from the watchdog thread.

    Closing alone does not wake a thread blocked in ``recv``; shutting the
    socket down does, so the pending read fails immediately.
    """
    aborted.set()
    connection = getattr(response.raw, "_connection", None)
    sock = getattr(connection, "sock", None)
    if sock is not None:
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"Socket shutdown after deadline failed: {e}")
    response.close()


def _remaining(deadline: float, timeout_ms: int) -> float:
    left = deadline - time.monotonic()
    if left <= 0:
        raise requests.exceptions.Timeout(f"Request timed out after {timeout_ms}ms")
    return left


def _describe(error: Exception) -> str:
    return str(error) or error.__class__.__name__


__all__ = [
    "DEFAULT_CACHE_MAX_ENTRIES",
    "DEFAULT_TIMEOUT_MS",
    "FetchResult",
    "ResilientFetchClient",
    "create_session",
]
