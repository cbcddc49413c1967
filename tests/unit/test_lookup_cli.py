"""Tests for the bgp-lookup command line entry point."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from bgplookup.cli.lookup import main
from bgplookup.enrichment.cache import ResponseCache
from bgplookup.enrichment.fetch import ResilientFetchClient
from bgplookup.enrichment.rate_limiting import SlidingWindowRateLimiter
from bgplookup.lookup import LookupService
from bgplookup.settings import LookupSettings
from tests.fixtures.bgp_fixtures import FakeClock, FakeSession, google_routes, make_response


@pytest.fixture
def cli_session() -> FakeSession:
    return FakeSession(google_routes())


@pytest.fixture
def built_settings() -> list[LookupSettings]:
    return []


@pytest.fixture
def patched_factory(cli_session: FakeSession, built_settings: list[LookupSettings]):  # type: ignore[no-untyped-def]
    """Replace the service factory with one wired to the fake session."""

    def _build(settings: LookupSettings) -> LookupService:
        built_settings.append(settings)
        clock = FakeClock()
        return LookupService(
            settings=settings,
            fetch_client=ResilientFetchClient(cache=ResponseCache(), session=cli_session, clock=clock),
            rate_limiter=SlidingWindowRateLimiter(),
            clock=clock,
        )

    with patch("bgplookup.cli.lookup.build_lookup_service", side_effect=_build) as mock_factory:
        yield mock_factory


class TestLookupCli:
    """Test argument handling, output formats and exit codes."""

    def test_json_output_single_query(
        self, patched_factory, cli_session: FakeSession, capsys: pytest.CaptureFixture[str]
    ) -> None:
        exit_code = main(["8.8.8.8", "--output", "json"])

        payload = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert payload["kind"] == "ip"
        assert payload["data"]["covering_prefix"] == "8.8.8.0/24"
        assert len(payload["sources"]) == 2
        assert cli_session.closed is True

    def test_json_output_multiple_queries(self, patched_factory, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code = main(["8.8.8.0/24", "AS15169", "--output", "json"])

        payload = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert [item["kind"] for item in payload] == ["prefix", "asn"]

    def test_text_output(self, patched_factory, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code = main(["AS15169"])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "Query: AS15169 (asn, HTTP 200)" in out
        assert "Prefixes: 30" in out
        assert "[routeviews] https://api.routeviews.org/asn/15169 -> ok" in out

    def test_failure_sets_exit_code(
        self, patched_factory, cli_session: FakeSession, capsys: pytest.CaptureFixture[str]
    ) -> None:
        cli_session.routes["/prefix/"] = make_response(status=503)

        exit_code = main(["8.8.8.8", "8.8.8.0/24"])

        out = capsys.readouterr().out
        assert exit_code == 1
        assert "Partial: enrichment incomplete" in out
        assert "Error: upstream: HTTP 503" in out

    def test_unrecognized_query_shows_hint(
        self, patched_factory, cli_session: FakeSession, capsys: pytest.CaptureFixture[str]
    ) -> None:
        cli_session.routes["/searchcomplete/"] = make_response(status=500)

        exit_code = main(["nothing useful"])

        out = capsys.readouterr().out
        assert exit_code == 1
        assert "Error: unrecognized_query: unrecognized query" in out
        assert "Hint: Try an IP" in out

    def test_cache_ttl_override(self, patched_factory, built_settings: list[LookupSettings]) -> None:
        main(["8.8.8.8", "--cache-ttl-ms", "0", "--output", "json"])

        assert built_settings[0].cache_ttl_ms == 0

    def test_requires_a_query(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 2
