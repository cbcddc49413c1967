"""Runtime configuration for the lookup service."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Any, Mapping

from bgplookup.enrichment.fetch import DEFAULT_CACHE_MAX_ENTRIES, DEFAULT_TIMEOUT_MS
from bgplookup.enrichment.rate_limiting import (
    DEFAULT_MAX_KEYS,
    DEFAULT_MAX_REQUESTS,
    DEFAULT_WINDOW_MS,
    clamp_positive_int,
)

DEFAULT_CACHE_TTL_MS = 30_000


def _coerce_cache_ttl(value: Any) -> int:
    """Return the cache TTL in milliseconds; 0 disables caching.

    Missing values use the default. Anything present but not a finite positive
    number disables the cache rather than silently re-enabling it.
    """
    if value is None:
        return DEFAULT_CACHE_TTL_MS
    if isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number <= 0:
        return 0
    return math.floor(number)


@dataclass(slots=True)
class LookupSettings:
    """Normalized cache, rate limit and upstream settings used by lookups."""

    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES
    rate_limit_window_ms: int = DEFAULT_WINDOW_MS
    rate_limit_max_requests: int = DEFAULT_MAX_REQUESTS
    rate_limit_max_keys: int = DEFAULT_MAX_KEYS
    upstream_timeout_ms: int = DEFAULT_TIMEOUT_MS

    @property
    def cache_enabled(self) -> bool:
        return self.cache_ttl_ms > 0

    @classmethod
    def from_sources(
        cls,
        config: Mapping[str, Any] | None = None,
        env_prefix: str = "BGP_",
    ) -> "LookupSettings":
        """Build settings from defaults, optional config mapping, and environment variables.

        Precedence order (highest to lowest):
        1. Explicit config mapping values
        2. Environment variables
        3. Default values

        Every numeric value is validated independently, so one bad variable only
        resets that setting. The upstream timeout is fixed and not configurable.
        """
        raw: dict[str, Any] = {}
        env = os.environ
        prefix = env_prefix.upper()

        env_keys = {
            "cache_ttl_ms": f"{prefix}CACHE_TTL_MS",
            "cache_max_entries": f"{prefix}CACHE_MAX_ENTRIES",
            "rate_limit_window_ms": f"{prefix}RATE_LIMIT_WINDOW_MS",
            "rate_limit_max_requests": f"{prefix}RATE_LIMIT_MAX_REQUESTS",
            "rate_limit_max_keys": f"{prefix}RATE_LIMIT_MAX_KEYS",
        }
        for name, env_name in env_keys.items():
            if env_name in env:
                raw[name] = env[env_name]

        if config:
            raw.update({k: v for k, v in config.items() if k in env_keys and v is not None})

        return cls(
            cache_ttl_ms=_coerce_cache_ttl(raw.get("cache_ttl_ms")),
            cache_max_entries=clamp_positive_int(raw.get("cache_max_entries"), DEFAULT_CACHE_MAX_ENTRIES),
            rate_limit_window_ms=clamp_positive_int(raw.get("rate_limit_window_ms"), DEFAULT_WINDOW_MS),
            rate_limit_max_requests=clamp_positive_int(raw.get("rate_limit_max_requests"), DEFAULT_MAX_REQUESTS),
            rate_limit_max_keys=clamp_positive_int(raw.get("rate_limit_max_keys"), DEFAULT_MAX_KEYS),
        )


def load_lookup_settings(
    config: Mapping[str, Any] | None = None,
    env_prefix: str = "BGP_",
) -> LookupSettings:
    """Convenience wrapper used by CLI entry points."""
    return LookupSettings.from_sources(config=config, env_prefix=env_prefix)


__all__ = ["DEFAULT_CACHE_TTL_MS", "LookupSettings", "load_lookup_settings"]
