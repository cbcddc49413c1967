"""Command-line lookups against RIPEstat and RouteViews."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Iterable

from ..errors import LookupFailed
from ..factory import build_lookup_service
from ..lookup import LookupKind, LookupResult
from ..settings import load_lookup_settings

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s [%(levelname)s] %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")


def _print_text(result: LookupResult) -> None:
    print(f"Query: {result.query} ({result.kind.value}, HTTP {result.status_code})")

    try:
        result.raise_for_status()
    except LookupFailed as e:
        print(f"Error: {e}")
        if result.hint:
            print(f"Hint: {result.hint}")
    else:
        data: dict[str, Any] = result.to_dict().get('data', {})
        if result.kind is LookupKind.IP:
            print(f"Covering prefix: {data.get('covering_prefix') or '-'}")
            print(f"Origin ASNs: {', '.join(data.get('asns') or []) or '-'}")
        elif result.kind is LookupKind.PREFIX:
            print(f"Origin ASN: {data.get('origin_asn') or '-'}")
            print(f"RPKI state: {data.get('rpki_state') or '-'}")
            print(f"Reporting peers: {data.get('reporting_peers_count')}")
            print(f"Latest peer report: {data.get('latest_peer_timestamp') or '-'}")
        elif result.kind is LookupKind.ASN:
            print(f"Prefixes: {data.get('prefix_count', 0)}")
            for prefix in data.get('prefix_sample') or []:
                print(f"  - {prefix}")
        if result.partial:
            print("Partial: enrichment incomplete")

    for source in result.sources:
        outcome = "ok" if source.ok else source.error
        cached = f" cached {source.cache_age_ms}ms" if source.cached else ""
        print(f"  [{source.name}] {source.url} -> {outcome}{cached}")


def main(argv: Iterable[str] | None = None) -> int:
    """Run lookups for each query and return an exit status."""
    parser = argparse.ArgumentParser(
        description="Look up an IP, prefix, ASN or organisation name in public BGP data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bgp-lookup 8.8.8.8
  bgp-lookup 8.8.8.0/24 AS15169 --output json
  BGP_CACHE_TTL_MS=0 bgp-lookup google
        """,
    )
    parser.add_argument("queries", nargs="+", help="IP, CIDR prefix, ASN (AS15169) or free text")
    parser.add_argument("--client-key", default="ip:cli", help="Rate limit identity (default: ip:cli)")
    parser.add_argument("--cache-ttl-ms", help="Override BGP_CACHE_TTL_MS (0 disables caching)")
    parser.add_argument("--output", choices=("json", "text"), default="text")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args(list(argv) if argv is not None else None)

    _configure_logging(args.verbose)

    settings = load_lookup_settings({"cache_ttl_ms": args.cache_ttl_ms})
    service = build_lookup_service(settings)

    results = []
    try:
        for query in args.queries:
            results.append(service.lookup(query, client_key=args.client_key))
    finally:
        service.fetch_client.close()

    if args.output == "json":
        payload: Any = [result.to_dict() for result in results]
        print(json.dumps(payload[0] if len(payload) == 1 else payload, indent=2, ensure_ascii=False))
    else:
        for result in results:
            _print_text(result)

    return 0 if all(result.ok for result in results) else 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
