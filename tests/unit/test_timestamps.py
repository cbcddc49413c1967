"""Tests for millisecond clock helpers."""

from __future__ import annotations

from unittest.mock import patch

from bgplookup.utils.timestamps import iso_from_ms, now_ms
from tests.fixtures.bgp_fixtures import BASE_TIME_ISO, BASE_TIME_MS


def test_iso_from_ms_epoch() -> None:
    assert iso_from_ms(0) == "1970-01-01T00:00:00.000Z"


def test_iso_from_ms_keeps_milliseconds() -> None:
    assert iso_from_ms(BASE_TIME_MS) == BASE_TIME_ISO
    assert iso_from_ms(BASE_TIME_MS + 1_234) == "2026-02-11T00:00:01.234Z"


def test_now_ms_uses_wall_clock() -> None:
    with patch("bgplookup.utils.timestamps.time.time", return_value=1_770_768_000.5):
        assert now_ms() == 1_770_768_000_500
