# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""MapLink harness CLI: expect, probe commands.

Usage:
    python -m maplink_harness.cli expect --catalog FILE [--preferred APP] [--redirects on|off] [--region CODE] [--inactive] [--format text|json]
    python -m maplink_harness.cli probe URL [--catalog FILE] [--extension DIR] [--headed] [--timeout MS] [--format text|json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from . import HandshakeStatus, RouterSettings
from .catalog import FixtureCatalog, load_catalog_file
from .config import HarnessConfig
from .errors import HarnessError
from .expectations import expected_text, resolve_variant
from .logging_config import configure as configure_logging

logger = logging.getLogger(__name__)


def _require_table_deps() -> None:
    """Check that the optional table renderer is installed."""
    try:
        from tabulate import tabulate  # noqa: F401
    except ImportError as e:
        print(
            f"Missing CLI dependency: {e.name}\nInstall with: pip install maplink-harness[cli]",
            file=sys.stderr,
        )
        sys.exit(1)


def _load_catalog_or_exit(path: str) -> FixtureCatalog:
    catalog = load_catalog_file(path)
    if catalog.is_empty:
        print(f"Error: no fixtures loaded from {path}", file=sys.stderr)
        sys.exit(1)
    return catalog


def expectation_rows(
    catalog: FixtureCatalog,
    settings: RouterSettings | None,
    status: HandshakeStatus,
    region: str | None,
) -> list[dict]:
    """One row per fixture: id, intent, resolved URL, expectation."""
    rows = []
    for fixture in catalog:
        variant = resolve_variant(fixture, region)
        rows.append(
            {
                "id": fixture.id,
                "intent": fixture.intent_type or "-",
                "url": variant.url if variant else "",
                "expected": expected_text(fixture, settings, status, region),
            }
        )
    return rows


def cmd_expect(args: argparse.Namespace) -> None:
    """Print expected router behaviour for every fixture in a catalog."""
    catalog = _load_catalog_or_exit(args.catalog)
    settings = None
    if args.preferred:
        settings = RouterSettings(
            preferred_maps_app=args.preferred,
            redirects_enabled=args.redirects == "on",
            prefer_app_schemes=args.app_schemes,
        )
    status = HandshakeStatus.UNKNOWN if args.inactive else HandshakeStatus.ACTIVE
    region = args.region.lower() if args.region else (catalog.regions[0] if catalog.regions else None)
    rows = expectation_rows(catalog, settings, status, region)

    if args.format == "json":
        print(json.dumps({"region": region, "fixtures": rows}, ensure_ascii=False, indent=2))
        return

    _require_table_deps()
    from tabulate import tabulate

    print(tabulate([[r["id"], r["intent"], r["expected"]] for r in rows], headers=["fixture", "intent", "expected"]))


def cmd_probe(args: argparse.Namespace) -> None:
    """Run the live handshake against a page in Chromium."""
    from .browser_channel import probe_page

    catalog = _load_catalog_or_exit(args.catalog) if args.catalog else None
    try:
        config = HarnessConfig.from_env()
        report = asyncio.run(
            probe_page(
                args.url,
                catalog=catalog,
                extension_dir=args.extension,
                headless=not args.headed,
                timeout_ms=args.timeout,
                config=config,
            )
        )
    except KeyboardInterrupt:
        raise
    except (HarnessError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.format == "json":
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    else:
        view = report.status_view
        print(f"{view['headline']} ({report.status})")
        print(f"  {view['detail']}")
        print(f"  Preferred app: {view['preferred_app']}")
        print(f"  Redirects: {view['redirects_enabled']}  App schemes: {view['prefer_app_schemes']}")
        print(f"  Pings sent: {report.pings_sent}  Region: {report.region or '-'}")
        for fixture_id, text in report.expectations.items():
            print(f"  {fixture_id}: {text}")

    if report.status != HandshakeStatus.ACTIVE:
        sys.exit(2)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="MapLink Router test harness",
        prog="python -m maplink_harness.cli",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_expect = subparsers.add_parser(
        "expect",
        help="Print expected routing for each fixture",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s --catalog test-fixtures.json                       Generic expectations (no settings)
  %(prog)s --catalog test-fixtures.json --preferred waze      Router active, Waze preferred
  %(prog)s --catalog test-fixtures.json --preferred apple --region us --format json""",
    )
    p_expect.add_argument("--catalog", type=str, required=True, metavar="FILE", help="Fixture catalog JSON")
    p_expect.add_argument("--preferred", type=str, metavar="APP", help="Preferred maps app (google, waze, apple)")
    p_expect.add_argument("--redirects", choices=["on", "off"], default="on", help="Redirects enabled (default: on)")
    p_expect.add_argument("--app-schemes", action="store_true", help="Prefer app URL schemes")
    p_expect.add_argument("--region", type=str, metavar="CODE", help="Region code (default: first catalog region)")
    p_expect.add_argument("--inactive", action="store_true", help="Frame text as if the router is not active yet")
    p_expect.add_argument("--format", choices=["text", "json"], default="text")

    p_probe = subparsers.add_parser("probe", help="Run the live handshake against a page")
    p_probe.add_argument("url", type=str, metavar="URL", help="Page URL hosting the harness")
    p_probe.add_argument("--catalog", type=str, metavar="FILE", help="Local catalog (default: fetch from the page)")
    p_probe.add_argument("--extension", type=str, metavar="DIR", help="Unpacked router extension to load")
    p_probe.add_argument("--headed", action="store_true", help="Show the browser window")
    p_probe.add_argument("--timeout", type=int, default=10_000, metavar="MS", help="Navigation/settle timeout (ms)")
    p_probe.add_argument("--format", choices=["text", "json"], default="text")

    commands = {"expect": cmd_expect, "probe": cmd_probe}

    args = parser.parse_args(argv)
    configure_logging(json_output=args.format == "json", level="DEBUG" if args.verbose else "WARNING")
    commands[args.command](args)


if __name__ == "__main__":
    main()
