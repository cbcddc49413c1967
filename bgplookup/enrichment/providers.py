"""Upstream routing-data providers: endpoint URLs and payload readers.

Two public services back every lookup:

RIPEstat (https://stat.ripe.net/docs/data_api):
    network-info   {"time": "...", "data": {"prefix": "8.8.8.0/24", "asns": ["15169"]}}
    searchcomplete {"time": "...", "data": {"categories": [{"category": "ASNs", "suggestions": [...]}]}}

RouteViews (https://api.routeviews.org):
    /prefix/<cidr> [{"origin_asn": 15169, "rpki_state": "valid",
                     "reporting_peers": [{"peer_asn": 3356, "timestamp": "2026-02-11T01:02:03Z"}]}]
    /asn/<asn>     ["8.8.4.0/24", "8.8.8.0/24", ...]

Payload shapes are not guaranteed, so every reader treats each field as
optional and returns ``None``/empty values instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import quote

RIPESTAT = "ripestat"
ROUTEVIEWS = "routeviews"

RIPESTAT_BASE_URL = "https://stat.ripe.net/data"
ROUTEVIEWS_BASE_URL = "https://api.routeviews.org"


def _encode(value: str) -> str:
    return quote(value, safe="")


def ripestat_network_info_url(resource: str) -> str:
    return f"{RIPESTAT_BASE_URL}/network-info/data.json?resource={_encode(resource)}"


def ripestat_search_complete_url(resource: str) -> str:
    return f"{RIPESTAT_BASE_URL}/searchcomplete/data.json?resource={_encode(resource)}"


def routeviews_prefix_url(prefix: str) -> str:
    return f"{ROUTEVIEWS_BASE_URL}/prefix/{_encode(prefix)}"


def routeviews_asn_url(asn: str) -> str:
    return f"{ROUTEVIEWS_BASE_URL}/asn/{_encode(asn)}"


def _as_dict(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


def _scalar_text(value: Any) -> Optional[str]:
    """Return ints and non-empty strings as text; anything else is absent."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, str)) and str(value):
        return str(value)
    return None


def ripestat_time(payload: Any) -> Optional[str]:
    """Return the top-level ``time`` stamp RIPEstat attaches to every data call."""
    record = _as_dict(payload)
    if record is None:
        return None
    return _scalar_text(record.get("time"))


@dataclass(slots=True, frozen=True)
class NetworkInfo:
    """Covering prefix and origin ASNs from RIPEstat network-info.

    Attributes:
        prefix: Most specific announced prefix covering the address, if any
        asns: Origin ASNs announcing ``prefix`` as decimal strings
        time: RIPEstat query time
    """

    prefix: Optional[str] = None
    asns: list[str] = field(default_factory=list)
    time: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "NetworkInfo":
        record = _as_dict(payload) or {}
        data = _as_dict(record.get("data")) or {}
        prefix = data.get("prefix")
        raw_asns = data.get("asns")
        asns = [text for text in (_scalar_text(a) for a in raw_asns) if text] if isinstance(raw_asns, list) else []
        return cls(
            prefix=prefix if isinstance(prefix, str) and prefix else None,
            asns=asns,
            time=ripestat_time(payload),
        )


@dataclass(slots=True, frozen=True)
class RouteViewsPrefixInfo:
    """Summary of a RouteViews ``/prefix`` response.

    Only the first element of the response array is considered.

    Attributes:
        origin_asn: Origin ASN as a decimal string
        rpki_state: RPKI validation state (valid, invalid, unknown, ...)
        reporting_peers_count: Number of collector peers that saw the route
        latest_peer_timestamp: Most recent peer report (ISO-8601, compared as text)
    """

    origin_asn: Optional[str] = None
    rpki_state: Optional[str] = None
    reporting_peers_count: Optional[int] = None
    latest_peer_timestamp: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "RouteViewsPrefixInfo":
        if not isinstance(payload, list) or not payload:
            return cls()
        first = _as_dict(payload[0])
        if first is None:
            return cls()

        rpki_state = first.get("rpki_state")
        peers = first.get("reporting_peers")
        return cls(
            origin_asn=_scalar_text(first.get("origin_asn")),
            rpki_state=rpki_state if isinstance(rpki_state, str) and rpki_state else None,
            reporting_peers_count=len(peers) if isinstance(peers, list) else None,
            latest_peer_timestamp=_latest_timestamp(peers),
        )


def _latest_timestamp(peers: Any) -> Optional[str]:
    if not isinstance(peers, list):
        return None
    best = ""
    for peer in peers:
        record = _as_dict(peer)
        stamp = _scalar_text(record.get("timestamp")) if record else None
        # ISO-8601 UTC stamps order correctly as plain strings.
        if stamp and stamp > best:
            best = stamp
    return best or None


def routeviews_latest_peer_timestamp(payload: Any) -> Optional[str]:
    return RouteViewsPrefixInfo.from_payload(payload).latest_peer_timestamp


def routeviews_prefix_list(payload: Any) -> list[str]:
    """Return the announced prefixes from a RouteViews ``/asn`` response."""
    if not isinstance(payload, list):
        return []
    return [text for text in (_scalar_text(item) for item in payload) if text]


__all__ = [
    "NetworkInfo",
    "RIPESTAT",
    "RIPESTAT_BASE_URL",
    "ROUTEVIEWS",
    "ROUTEVIEWS_BASE_URL",
    "RouteViewsPrefixInfo",
    "ripestat_network_info_url",
    "ripestat_search_complete_url",
    "ripestat_time",
    "routeviews_asn_url",
    "routeviews_latest_peer_timestamp",
    "routeviews_prefix_list",
    "routeviews_prefix_url",
]
