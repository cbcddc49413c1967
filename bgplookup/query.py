"""Classification of free-form lookup queries.

A query is one of an IP address, a CIDR prefix, an autonomous system number or
something the exact lookups cannot handle (an organisation name, a typo, ...).
The helpers in this module never raise; anything unparseable yields ``None`` or
``QueryKind.UNKNOWN``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from ipaddress import IPv4Address, ip_address
from typing import Optional

MAX_ASN = 4_294_967_295

_ASN_PREFIX = re.compile(r"^AS\s*", re.IGNORECASE)
_ASN_DIGITS = re.compile(r"^[0-9]{1,10}$")
_MASK_DIGITS = re.compile(r"^[0-9]{1,3}$")
_PORT_DIGITS = re.compile(r"^[0-9]{1,5}$")
_PORT_SUFFIX = re.compile(r"^:[0-9]{1,5}$")


class QueryKind(str, Enum):
    """Kinds of query the lookup service can dispatch on."""

    IP = "ip"
    PREFIX = "prefix"
    ASN = "asn"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class ClassifiedQuery:
    """Immutable classification of a raw query.

    Attributes:
        kind: Which variant the query resolved to
        value: Canonical form of the query (address, ``addr/mask`` or decimal ASN),
            ``None`` for ``QueryKind.UNKNOWN``
    """

    kind: QueryKind
    value: Optional[str] = None

    @classmethod
    def unknown(cls) -> "ClassifiedQuery":
        return cls(kind=QueryKind.UNKNOWN)


def normalize_ip(raw: str | None) -> str | None:
    """Return the canonical text form of an IP address, or None.

    Accepts the shapes that show up in client-address headers: an IPv4 address
    with a ``:port`` suffix, bracketed IPv6 (optionally followed by a port) and
    comma separated forwarding chains, where only the first hop is considered.
    A port must be numeric and nothing else may follow the address.

    Examples:
        >>> normalize_ip("1.2.3.4:1234")
        '1.2.3.4'
        >>> normalize_ip("[2001:db8::1]")
        '2001:db8::1'
        >>> normalize_ip("8.8.8.8, 1.1.1.1")
        '8.8.8.8'
        >>> normalize_ip("999.1.1.1") is None
        True
    """
    if not raw:
        return None
    candidate = raw.split(",", 1)[0].strip()
    if not candidate:
        return None

    if candidate.startswith("["):
        closing = candidate.find("]")
        if closing == -1:
            return None
        suffix = candidate[closing + 1 :]
        if suffix and not _PORT_SUFFIX.match(suffix):
            return None
        candidate = candidate[1:closing]
    elif candidate.count(":") == 1 and "." in candidate:
        candidate, port = candidate.split(":", 1)
        if not _PORT_DIGITS.match(port):
            return None

    try:
        return str(ip_address(candidate))
    except ValueError:
        return None


def normalize_prefix(raw: str | None) -> str | None:
    """Return ``addr/mask`` for a valid CIDR prefix, or None.

    The address is canonicalised by :func:`normalize_ip`; host bits are kept as
    given. The mask must be within 0-32 for IPv4 and 0-128 for IPv6.
    """
    if not raw:
        return None
    text = raw.strip()
    if "/" not in text:
        return None
    addr_raw, mask_raw = text.split("/", 1)
    if not addr_raw or not _MASK_DIGITS.match(mask_raw.strip()):
        return None

    addr = normalize_ip(addr_raw)
    if addr is None:
        return None

    mask = int(mask_raw)
    max_mask = 32 if isinstance(ip_address(addr), IPv4Address) else 128
    if mask > max_mask:
        return None
    return f"{addr}/{mask}"


def normalize_asn(raw: str | None) -> str | None:
    """Return the decimal form of an ASN, or None.

    An optional ``AS`` prefix (any case, optional whitespace) is stripped and the
    remainder must be 1-10 digits within the 32-bit ASN range.
    """
    if not raw:
        return None
    digits = _ASN_PREFIX.sub("", raw.strip(), count=1)
    if not _ASN_DIGITS.match(digits):
        return None
    number = int(digits)
    if number > MAX_ASN:
        return None
    return str(number)


def classify_query(raw: str | None) -> ClassifiedQuery:
    """Classify a free-form query; the first matching rule wins.

    Order: IP address, CIDR prefix, ASN, otherwise unknown.
    """
    text = (raw or "").strip()
    if not text:
        return ClassifiedQuery.unknown()

    ip = normalize_ip(text)
    if ip is not None:
        return ClassifiedQuery(kind=QueryKind.IP, value=ip)

    prefix = normalize_prefix(text)
    if prefix is not None:
        return ClassifiedQuery(kind=QueryKind.PREFIX, value=prefix)

    asn = normalize_asn(text)
    if asn is not None:
        return ClassifiedQuery(kind=QueryKind.ASN, value=asn)

    return ClassifiedQuery.unknown()


__all__ = [
    "ClassifiedQuery",
    "MAX_ASN",
    "QueryKind",
    "classify_query",
    "normalize_asn",
    "normalize_ip",
    "normalize_prefix",
]
