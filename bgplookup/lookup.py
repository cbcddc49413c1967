"""Lookup orchestration across RIPEstat and RouteViews.

A raw query is rate limited, classified and dispatched to a fixed provider
sequence:

- ip:      RIPEstat network-info, then RouteViews /prefix for the covering prefix
           (best effort; failure only marks the result ``partial``)
- prefix:  RouteViews /prefix
- asn:     RouteViews /asn
- unknown: RIPEstat searchcomplete, offering suggestions to pivot on

Every upstream call is recorded as :class:`SourceEvidence` before its outcome is
acted on, so failed lookups still show what was attempted. Errors are reported
as data on the :class:`LookupResult` envelope; nothing here raises for upstream
or input problems and nothing is retried.

Example:
    >>> from bgplookup.factory import build_lookup_service
    >>> service = build_lookup_service()
    >>> result = service.lookup("8.8.8.8", client_key="ip:198.51.100.10")
    >>> print(result.status_code, result.data.covering_prefix)
    200 8.8.8.0/24
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Union

from .enrichment.fetch import FetchResult, ResilientFetchClient
from .enrichment.providers import (
    RIPESTAT,
    ROUTEVIEWS,
    NetworkInfo,
    RouteViewsPrefixInfo,
    ripestat_network_info_url,
    ripestat_search_complete_url,
    ripestat_time,
    routeviews_asn_url,
    routeviews_latest_peer_timestamp,
    routeviews_prefix_list,
    routeviews_prefix_url,
)
from .enrichment.rate_limiting import ANONYMOUS_KEY, RateLimitDecision, SlidingWindowRateLimiter
from .errors import LookupErrorKind, LookupFailed
from .query import ClassifiedQuery, QueryKind, classify_query, normalize_ip
from .settings import LookupSettings
from .utils.timestamps import iso_from_ms, now_ms

logger = logging.getLogger(__name__)

PREFIX_SAMPLE_SIZE = 25

TRUSTED = "trusted"
UNTRUSTED = "untrusted"

RATE_LIMIT_HINT = "Please retry shortly; lookup requests are rate-limited to protect upstream data providers."
UNRECOGNIZED_HINT = "Try an IP (8.8.8.8), prefix (8.8.8.0/24), ASN (15169), or an org name (google)."

LOOKUP_NOTES = [
    "External enrichment is best-effort and should be treated as approximate.",
    "Evidence includes upstream URLs and timestamps when available.",
]
SEARCH_NOTES = [
    "Search results are suggestions; run an exact lookup on one of them.",
    "External enrichment is best-effort and should be treated as approximate.",
]


class LookupKind(str, Enum):
    """Result variants returned by :meth:`LookupService.lookup`."""

    IP = "ip"
    PREFIX = "prefix"
    ASN = "asn"
    SEARCH = "search"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class SourceEvidence:
    """Audit record for one upstream call.

    Attributes:
        name: Provider name (``ripestat`` or ``routeviews``)
        url: Exact URL requested
        fetched_at: ISO timestamp of the call
        ok: Whether the call produced usable data
        status: HTTP status, absent for transport failures
        upstream_time: Freshness stamp reported by the provider, when available
        cached: True when served from the response cache
        cache_age_ms: Cache entry age for cached responses
        error: Failure description for failed calls
    """

    name: str
    url: str
    fetched_at: str
    ok: bool
    status: Optional[int] = None
    upstream_time: Optional[str] = None
    cached: bool = False
    cache_age_ms: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_fetch(
        cls,
        name: str,
        result: FetchResult,
        upstream_time: Callable[[Any], Optional[str]] | None = None,
    ) -> "SourceEvidence":
        return cls(
            name=name,
            url=result.url,
            fetched_at=result.fetched_at,
            ok=result.ok,
            status=result.status,
            upstream_time=upstream_time(result.value) if result.ok and upstream_time else None,
            cached=result.cached,
            cache_age_ms=result.cache_age_ms,
            error=None if result.ok else result.error,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            'name': self.name,
            'url': self.url,
            'fetched_at': self.fetched_at,
            'ok': self.ok,
            'cached': self.cached,
        }
        for key in ('status', 'upstream_time', 'cache_age_ms', 'error'):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass(slots=True)
class IpLookupData:
    ip: str
    covering_prefix: Optional[str]
    asns: list[str]
    network_info: Any
    covering_prefix_info: Any = None
    covering_prefix_summary: Optional[RouteViewsPrefixInfo] = None


@dataclass(slots=True)
class PrefixLookupData:
    prefix: str
    origin_asn: Optional[str]
    rpki_state: Optional[str]
    reporting_peers_count: Optional[int]
    latest_peer_timestamp: Optional[str]
    prefix_info: Any


@dataclass(slots=True)
class AsnLookupData:
    asn: str
    prefixes: list[str]
    prefix_count: int
    prefix_sample: list[str]


@dataclass(slots=True)
class SearchLookupData:
    search: Any


LookupData = Union[IpLookupData, PrefixLookupData, AsnLookupData, SearchLookupData]


@dataclass(slots=True)
class LookupMeta:
    """Per-request observability counters.

    Attributes:
        request_id: Random identifier for correlating logs with a response
        duration_ms: Wall-clock time spent in the lookup
        upstream_errors: Evidence records with ``ok=False``
        cache_hits: Evidence records served from the cache
    """

    request_id: str
    duration_ms: int
    upstream_errors: int
    cache_hits: int


@dataclass(slots=True)
class LookupResult:
    """Envelope returned for every lookup, successful or not.

    ``status_code`` is the HTTP-equivalent outcome a front end should surface:
    200 for results, 400 for bad or unrecognized input, 429 when rate limited
    and 502 when a required upstream call failed.
    """

    kind: LookupKind
    query: str
    fetched_at: str
    trust: str
    rate_limit: RateLimitDecision
    sources: list[SourceEvidence] = field(default_factory=list)
    status_code: int = 200
    partial: bool = False
    data: Optional[LookupData] = None
    error: Optional[str] = None
    error_kind: Optional[LookupErrorKind] = None
    hint: Optional[str] = None
    notes: list[str] = field(default_factory=list)
    meta: Optional[LookupMeta] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @property
    def retry_after_sec(self) -> Optional[int]:
        return self.rate_limit.retry_after_sec

    def raise_for_status(self) -> None:
        """Raise :class:`LookupFailed` if the lookup did not succeed."""
        if self.error_kind is not None:
            raise LookupFailed(self.error_kind, self.error, self.retry_after_sec)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready representation of the envelope."""
        payload: dict[str, Any] = {
            'kind': self.kind.value,
            'query': self.query,
            'fetched_at': self.fetched_at,
            'trust': self.trust,
            'rate_limit': self.rate_limit.to_dict(),
            'sources': [source.to_dict() for source in self.sources],
            'partial': self.partial,
        }
        if self.data is not None:
            payload['data'] = asdict(self.data)
        if self.error is not None:
            payload['error'] = self.error
        if self.error_kind is not None:
            payload['error_kind'] = self.error_kind.value
        if self.hint is not None:
            payload['hint'] = self.hint
        if self.notes:
            payload['notes'] = list(self.notes)
        if self.meta is not None:
            payload['meta'] = asdict(self.meta)
        return payload


def client_key_from_headers(forwarded_for: str | None = None, real_ip: str | None = None) -> str:
    """Derive the rate-limit key for a caller from its proxy headers.

    The first address in ``X-Forwarded-For`` wins, then ``X-Real-IP``; callers
    without a parseable address share the anonymous bucket.
    """
    address = normalize_ip(forwarded_for) or normalize_ip(real_ip) or ANONYMOUS_KEY
    return f"ip:{address}"


class LookupService:
    """Rate-limited, evidence-recording lookup orchestrator.

    The fetch client (and through it the response cache) and the rate limiter
    are process-wide and shared by every request; construct them once and
    inject them, see :func:`bgplookup.factory.build_lookup_service`.
    """

    def __init__(
        self,
        settings: LookupSettings,
        fetch_client: ResilientFetchClient,
        rate_limiter: SlidingWindowRateLimiter,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize lookup service.

        Args:
            settings: Cache, rate limit and timeout configuration
            fetch_client: Shared upstream client
            rate_limiter: Shared per-caller rate limiter
            clock: Millisecond clock, injectable for tests
        """
        self.settings = settings
        self.fetch_client = fetch_client
        self.rate_limiter = rate_limiter
        self.clock = clock

        # Statistics (shared by request threads)
        self._stats_lock = threading.Lock()
        self.stats: dict[str, int] = {
            'lookups': 0,
            'rate_limited': 0,
            'client_errors': 0,
            'upstream_errors': 0,
            'unrecognized': 0,
            'partial': 0,
        }

    def lookup(self, raw_query: str | None, client_key: str = ANONYMOUS_KEY) -> LookupResult:
        """Answer a free-form query.

        Args:
            raw_query: IP, prefix, ASN or free text as typed by the user
            client_key: Caller identity for rate limiting (see :func:`client_key_from_headers`)

        Returns:
            LookupResult envelope; check ``status_code``/``error_kind`` for failures
        """
        self._count('lookups')
        started_ms = self.clock()
        fetched_at = iso_from_ms(started_ms)
        query = (raw_query or "").strip()

        decision = self.rate_limiter.consume(
            client_key,
            window_ms=self.settings.rate_limit_window_ms,
            max_requests=self.settings.rate_limit_max_requests,
            max_keys=self.settings.rate_limit_max_keys,
            now_ms=started_ms,
        )

        if not decision.allowed:
            self._count('rate_limited')
            result = LookupResult(
                kind=LookupKind.ERROR,
                query=query,
                fetched_at=fetched_at,
                trust=TRUSTED,
                rate_limit=decision,
                status_code=LookupErrorKind.RATE_LIMITED.status_code,
                error="rate limit exceeded",
                error_kind=LookupErrorKind.RATE_LIMITED,
                hint=RATE_LIMIT_HINT,
            )
        elif not query:
            self._count('client_errors')
            result = LookupResult(
                kind=LookupKind.ERROR,
                query=query,
                fetched_at=fetched_at,
                trust=UNTRUSTED,
                rate_limit=decision,
                status_code=LookupErrorKind.CLIENT_INPUT.status_code,
                error="missing query",
                error_kind=LookupErrorKind.CLIENT_INPUT,
            )
        else:
            result = self._dispatch(classify_query(query), query, fetched_at, decision)

        result.meta = LookupMeta(
            request_id=uuid.uuid4().hex,
            duration_ms=max(0, self.clock() - started_ms),
            upstream_errors=sum(1 for source in result.sources if not source.ok),
            cache_hits=sum(1 for source in result.sources if source.cached),
        )
        logger.info(
            f"Lookup {result.meta.request_id} query={query!r} kind={result.kind.value} "
            f"status={result.status_code} sources={len(result.sources)} partial={result.partial}"
        )
        return result

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

    def _dispatch(
        self,
        classified: ClassifiedQuery,
        query: str,
        fetched_at: str,
        decision: RateLimitDecision,
    ) -> LookupResult:
        envelope = LookupResult(
            kind=LookupKind.SEARCH,
            query=query,
            fetched_at=fetched_at,
            trust=UNTRUSTED,
            rate_limit=decision,
        )

        if classified.kind is QueryKind.IP and classified.value:
            envelope.kind = LookupKind.IP
            return self._lookup_ip(classified.value, envelope)
        if classified.kind is QueryKind.PREFIX and classified.value:
            envelope.kind = LookupKind.PREFIX
            return self._lookup_prefix(classified.value, envelope)
        if classified.kind is QueryKind.ASN and classified.value:
            envelope.kind = LookupKind.ASN
            return self._lookup_asn(classified.value, envelope)
        return self._search(query, envelope)

    def _fetch(
        self,
        provider: str,
        url: str,
        sources: list[SourceEvidence],
        upstream_time: Callable[[Any], Optional[str]] | None = None,
    ) -> FetchResult:
        result = self.fetch_client.fetch(
            url,
            timeout_ms=self.settings.upstream_timeout_ms,
            cache_ttl_ms=self.settings.cache_ttl_ms,
            cache_max_entries=self.settings.cache_max_entries,
        )
        sources.append(SourceEvidence.from_fetch(provider, result, upstream_time))
        return result

    def _upstream_failure(self, envelope: LookupResult, result: FetchResult) -> LookupResult:
        self._count('upstream_errors')
        envelope.status_code = LookupErrorKind.UPSTREAM.status_code
        envelope.error = result.error
        envelope.error_kind = LookupErrorKind.UPSTREAM
        return envelope

    def _lookup_ip(self, ip: str, envelope: LookupResult) -> LookupResult:
        net_result = self._fetch(RIPESTAT, ripestat_network_info_url(ip), envelope.sources, ripestat_time)
        if not net_result.ok:
            return self._upstream_failure(envelope, net_result)

        network = NetworkInfo.from_payload(net_result.value)
        data = IpLookupData(
            ip=ip,
            covering_prefix=network.prefix,
            asns=list(network.asns),
            network_info=net_result.value,
        )

        if network.prefix:
            prefix_result = self._fetch(
                ROUTEVIEWS,
                routeviews_prefix_url(network.prefix),
                envelope.sources,
                routeviews_latest_peer_timestamp,
            )
            if prefix_result.ok:
                data.covering_prefix_info = prefix_result.value
                data.covering_prefix_summary = RouteViewsPrefixInfo.from_payload(prefix_result.value)
            else:
                envelope.partial = True
        else:
            envelope.partial = True

        if envelope.partial:
            self._count('partial')
        envelope.data = data
        envelope.notes = list(LOOKUP_NOTES)
        return envelope

    def _lookup_prefix(self, prefix: str, envelope: LookupResult) -> LookupResult:
        result = self._fetch(ROUTEVIEWS, routeviews_prefix_url(prefix), envelope.sources, routeviews_latest_peer_timestamp)
        if not result.ok:
            return self._upstream_failure(envelope, result)

        summary = RouteViewsPrefixInfo.from_payload(result.value)
        envelope.data = PrefixLookupData(
            prefix=prefix,
            origin_asn=summary.origin_asn,
            rpki_state=summary.rpki_state,
            reporting_peers_count=summary.reporting_peers_count,
            latest_peer_timestamp=summary.latest_peer_timestamp,
            prefix_info=result.value,
        )
        envelope.notes = list(LOOKUP_NOTES)
        return envelope

    def _lookup_asn(self, asn: str, envelope: LookupResult) -> LookupResult:
        result = self._fetch(ROUTEVIEWS, routeviews_asn_url(asn), envelope.sources)
        if not result.ok:
            return self._upstream_failure(envelope, result)

        prefixes = routeviews_prefix_list(result.value)
        envelope.data = AsnLookupData(
            asn=asn,
            prefixes=prefixes,
            prefix_count=len(prefixes),
            prefix_sample=prefixes[:PREFIX_SAMPLE_SIZE],
        )
        envelope.notes = list(LOOKUP_NOTES)
        return envelope

    def _search(self, query: str, envelope: LookupResult) -> LookupResult:
        result = self._fetch(RIPESTAT, ripestat_search_complete_url(query), envelope.sources, ripestat_time)
        if not result.ok:
            self._count('unrecognized')
            envelope.kind = LookupKind.ERROR
            envelope.status_code = LookupErrorKind.UNRECOGNIZED_QUERY.status_code
            envelope.error = "unrecognized query"
            envelope.error_kind = LookupErrorKind.UNRECOGNIZED_QUERY
            envelope.hint = UNRECOGNIZED_HINT
            return envelope

        envelope.kind = LookupKind.SEARCH
        envelope.data = SearchLookupData(search=result.value)
        envelope.notes = list(SEARCH_NOTES)
        return envelope


__all__ = [
    "AsnLookupData",
    "IpLookupData",
    "LookupKind",
    "LookupMeta",
    "LookupResult",
    "LookupService",
    "PrefixLookupData",
    "SearchLookupData",
    "SourceEvidence",
    "client_key_from_headers",
]
