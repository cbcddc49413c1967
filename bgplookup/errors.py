"""Error taxonomy for lookups.

Lookups report failures as data on the result envelope. ``LookupErrorKind``
names the category and :class:`LookupFailed` lets callers that prefer
exceptions opt in via ``LookupResult.raise_for_status()``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class LookupErrorKind(str, Enum):
    """Failure categories with their HTTP-equivalent status codes.

    Attributes:
        CLIENT_INPUT: Empty or missing query; no upstream calls made
        RATE_LIMITED: Caller exceeded its window; no upstream calls made
        UPSTREAM: A required upstream call failed (HTTP error, transport, timeout)
        UNRECOGNIZED_QUERY: Nothing exact matched and the search fallback failed
    """

    CLIENT_INPUT = "client_input"
    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"
    UNRECOGNIZED_QUERY = "unrecognized_query"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    LookupErrorKind.CLIENT_INPUT: 400,
    LookupErrorKind.RATE_LIMITED: 429,
    LookupErrorKind.UPSTREAM: 502,
    LookupErrorKind.UNRECOGNIZED_QUERY: 400,
}


class BgpLookupError(Exception):
    """Base class for bgplookup exceptions."""


class LookupFailed(BgpLookupError):
    """Raised by ``LookupResult.raise_for_status()`` for failed lookups."""

    def __init__(self, kind: LookupErrorKind, message: Optional[str], retry_after_sec: Optional[int] = None) -> None:
        self.kind = kind
        self.retry_after_sec = retry_after_sec
        super().__init__(f"{kind.value}: {message or 'lookup failed'}")


__all__ = ["BgpLookupError", "LookupErrorKind", "LookupFailed"]
