"""Integration tests for the factory-built lookup service.

The service is built exactly as request handlers build it, with only the HTTP
session replaced, and exercised across several query kinds.
"""

from __future__ import annotations

import pytest

from bgplookup.enrichment.cache import ResponseCache
from bgplookup.enrichment.rate_limiting import SlidingWindowRateLimiter
from bgplookup.factory import build_lookup_service
from bgplookup.lookup import LookupKind, client_key_from_headers
from bgplookup.settings import load_lookup_settings
from tests.fixtures.bgp_fixtures import FakeSession, google_routes


@pytest.mark.integration
class TestLookupFlow:
    """End-to-end lookups through build_lookup_service."""

    def test_environment_configured_service(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test settings flow from the environment into lookups.

        Given: BGP_RATE_LIMIT_MAX_REQUESTS=3 and caching enabled
        When: One caller issues four lookups of different kinds
        Then: Three succeed with the right kinds and the fourth is rate limited
        """
        monkeypatch.setenv("BGP_RATE_LIMIT_MAX_REQUESTS", "3")
        session = FakeSession(google_routes())
        service = build_lookup_service(load_lookup_settings(), session=session)
        key = client_key_from_headers(forwarded_for="198.51.100.10, 10.0.0.1")

        results = [service.lookup(query, client_key=key) for query in ("8.8.8.8", "8.8.8.0/24", "google", "AS15169")]

        assert [r.kind for r in results] == [LookupKind.IP, LookupKind.PREFIX, LookupKind.SEARCH, LookupKind.ERROR]
        assert [r.status_code for r in results] == [200, 200, 200, 429]
        # The prefix lookup reuses the covering-prefix response cached by the IP lookup.
        assert results[1].sources[0].cached is True
        assert len(session.calls) == 3

    def test_shared_stores_across_services(self) -> None:
        cache = ResponseCache()
        limiter = SlidingWindowRateLimiter()
        settings = load_lookup_settings({"rate_limit_max_requests": 1})
        first_session = FakeSession(google_routes())
        second_session = FakeSession(google_routes())

        first = build_lookup_service(settings, session=first_session, cache=cache, rate_limiter=limiter)
        second = build_lookup_service(settings, session=second_session, cache=cache, rate_limiter=limiter)

        assert first.lookup("AS15169", client_key="ip:a").status_code == 200
        assert second.lookup("AS15169", client_key="ip:a").status_code == 429
        result = second.lookup("AS15169", client_key="ip:b")

        assert result.sources[0].cached is True
        assert second_session.calls == []

    def test_cache_disabled_by_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BGP_CACHE_TTL_MS", "0")
        session = FakeSession(google_routes())
        service = build_lookup_service(session=session)

        service.lookup("8.8.8.0/24")
        service.lookup("8.8.8.0/24")

        assert service.settings.cache_enabled is False
        assert len(session.calls) == 2
        assert len(service.fetch_client.cache) == 0
