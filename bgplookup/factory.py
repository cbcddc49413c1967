"""Factory for a fully wired :class:`~bgplookup.lookup.LookupService`.

The response cache and rate limiter are process-wide state. Build them once at
start-up (or let this factory do it) and hand the same service, or at least the
same stores, to every request handler.

Example:
    >>> from bgplookup.factory import build_lookup_service
    >>> from bgplookup.lookup import client_key_from_headers
    >>>
    >>> service = build_lookup_service()
    >>> key = client_key_from_headers(forwarded_for="198.51.100.10, 10.0.0.1")
    >>> result = service.lookup("AS15169", client_key=key)
    >>> result.data.prefix_count
    1024
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .enrichment.cache import ResponseCache
from .enrichment.fetch import ResilientFetchClient, create_session
from .enrichment.rate_limiting import SlidingWindowRateLimiter
from .lookup import LookupService
from .settings import LookupSettings, load_lookup_settings

logger = logging.getLogger(__name__)


def build_lookup_service(
    settings: Optional[LookupSettings] = None,
    *,
    session: Optional[requests.Session] = None,
    cache: Optional[ResponseCache] = None,
    rate_limiter: Optional[SlidingWindowRateLimiter] = None,
) -> LookupService:
    """Create a lookup service with its shared stores.

    Args:
        settings: Lookup settings (defaults to environment-derived settings)
        session: Optional requests session for upstream calls
        cache: Existing response cache to share (a new one is created otherwise)
        rate_limiter: Existing rate limiter to share (a new one is created otherwise)

    Returns:
        LookupService ready to answer queries
    """
    settings = settings or load_lookup_settings()
    fetch_client = ResilientFetchClient(
        cache=cache if cache is not None else ResponseCache(),
        session=session or create_session(),
    )
    service = LookupService(
        settings=settings,
        fetch_client=fetch_client,
        rate_limiter=rate_limiter if rate_limiter is not None else SlidingWindowRateLimiter(),
    )

    if settings.cache_enabled:
        logger.info(
            f"Lookup service ready: cache ttl={settings.cache_ttl_ms}ms max={settings.cache_max_entries}, "
            f"rate limit {settings.rate_limit_max_requests}/{settings.rate_limit_window_ms}ms"
        )
    else:
        logger.info(
            f"Lookup service ready: cache disabled, "
            f"rate limit {settings.rate_limit_max_requests}/{settings.rate_limit_window_ms}ms"
        )
    return service


__all__ = ["build_lookup_service"]
