"""Shared pytest fixtures for bgplookup tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bgplookup.enrichment.cache import ResponseCache  # noqa: E402
from bgplookup.enrichment.fetch import ResilientFetchClient  # noqa: E402
from bgplookup.enrichment.rate_limiting import SlidingWindowRateLimiter  # noqa: E402
from bgplookup.lookup import LookupService  # noqa: E402
from bgplookup.settings import LookupSettings  # noqa: E402
from tests.fixtures.bgp_fixtures import FakeClock, FakeSession, google_routes  # noqa: E402


@pytest.fixture(autouse=True)
def clean_bgp_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host BGP_* variables from leaking into settings under test."""
    for name in (
        "BGP_CACHE_TTL_MS",
        "BGP_CACHE_MAX_ENTRIES",
        "BGP_RATE_LIMIT_WINDOW_MS",
        "BGP_RATE_LIMIT_MAX_REQUESTS",
        "BGP_RATE_LIMIT_MAX_KEYS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_clock() -> FakeClock:
    """Millisecond clock starting at 2026-02-11T00:00:00Z."""
    return FakeClock()


@pytest.fixture
def response_cache() -> ResponseCache:
    return ResponseCache()


@pytest.fixture
def rate_limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter()


@pytest.fixture
def lookup_settings() -> LookupSettings:
    """Caching enabled, generous rate limit."""
    return LookupSettings(
        cache_ttl_ms=30_000,
        cache_max_entries=256,
        rate_limit_window_ms=10_000,
        rate_limit_max_requests=40,
        rate_limit_max_keys=2_000,
    )


@pytest.fixture
def fake_session() -> FakeSession:
    """Session answering every provider endpoint with the Google fixtures."""
    return FakeSession(google_routes())


@pytest.fixture
def fetch_client(response_cache: ResponseCache, fake_session: FakeSession, fake_clock: FakeClock) -> ResilientFetchClient:
    return ResilientFetchClient(cache=response_cache, session=fake_session, clock=fake_clock)


@pytest.fixture
def lookup_service(
    lookup_settings: LookupSettings,
    fetch_client: ResilientFetchClient,
    rate_limiter: SlidingWindowRateLimiter,
    fake_clock: FakeClock,
) -> LookupService:
    """Lookup service wired to the fake session, real stores and the fake clock."""
    return LookupService(
        settings=lookup_settings,
        fetch_client=fetch_client,
        rate_limiter=rate_limiter,
        clock=fake_clock,
    )
