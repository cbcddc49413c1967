"""Upstream access for lookups: response cache, rate limiting and fetch client."""

from __future__ import annotations

from .cache import CacheEntry, ResponseCache
from .fetch import FetchResult, ResilientFetchClient
from .rate_limiting import RateLimitDecision, SlidingWindowRateLimiter

__all__ = [
    "CacheEntry",
    "FetchResult",
    "RateLimitDecision",
    "ResilientFetchClient",
    "ResponseCache",
    "SlidingWindowRateLimiter",
]
