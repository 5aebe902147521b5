# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Fixture catalog: parsing and loading.

Document shape::

    {
      "regions": ["eu", "us"],
      "fixtures": [
        {"id": "...", "title": "...", "intentType": "...", "group": "...",
         "navigate": true, "url": "...", "destinationLabel": "...",
         "regions": {"eu": {"url": "...", "destinationLabel": "..."}}}
      ]
    }

Entries without a string ``id`` are skipped. Mistyped optional fields are
dropped one by one rather than discarding the fixture. Any fetch or parse
failure yields an empty catalog; the expectation engine then falls back to
its generic text.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from . import Fixture, RegionVariant
from .errors import CatalogError

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_S = 10.0


@dataclass(frozen=True)
class FixtureCatalog:
    """Fixtures keyed by id, in document order."""

    fixtures: dict[str, Fixture] = field(default_factory=dict)
    regions: tuple[str, ...] = ()

    def get(self, fixture_id: str) -> Fixture | None:
        return self.fixtures.get(fixture_id)

    def __contains__(self, fixture_id: object) -> bool:
        return fixture_id in self.fixtures

    def __iter__(self) -> Iterator[Fixture]:
        return iter(self.fixtures.values())

    def __len__(self) -> int:
        return len(self.fixtures)

    @property
    def is_empty(self) -> bool:
        return not self.fixtures


EMPTY_CATALOG = FixtureCatalog()


def _opt_str(raw: Mapping, key: str) -> str | None:
    value = raw.get(key)
    return value if isinstance(value, str) else None


def _parse_variants(raw: object) -> dict[str, RegionVariant]:
    if not isinstance(raw, dict):
        return {}
    variants: dict[str, RegionVariant] = {}
    for code, entry in raw.items():
        if not isinstance(code, str) or not isinstance(entry, dict):
            continue
        url = _opt_str(entry, "url")
        if url is None:
            continue
        variants[code.lower()] = RegionVariant(url=url, destination_label=_opt_str(entry, "destinationLabel") or "")
    return variants


def parse_fixture(raw: object) -> Fixture | None:
    """Build a ``Fixture`` from one catalog entry, or None if it has no string id."""
    if not isinstance(raw, dict) or not isinstance(raw.get("id"), str):
        return None
    navigate = raw.get("navigate")
    return Fixture(
        id=raw["id"],
        title=_opt_str(raw, "title") or "",
        intent_type=_opt_str(raw, "intentType") or "",
        group=_opt_str(raw, "group") or "",
        navigable=navigate if isinstance(navigate, bool) else False,
        url=_opt_str(raw, "url"),
        destination_label=_opt_str(raw, "destinationLabel"),
        regions=_parse_variants(raw.get("regions")),
    )


def parse_catalog(document: object) -> FixtureCatalog:
    """Parse a decoded catalog document. Never raises."""
    if not isinstance(document, dict) or not isinstance(document.get("fixtures"), list):
        return EMPTY_CATALOG

    fixtures: dict[str, Fixture] = {}
    skipped = 0
    for raw in document["fixtures"]:
        fixture = parse_fixture(raw)
        if fixture is None:
            skipped += 1
            continue
        fixtures[fixture.id] = fixture
    if skipped:
        logger.info("Skipped %d malformed catalog entr%s", skipped, "y" if skipped == 1 else "ies")

    raw_regions = document.get("regions")
    regions: tuple[str, ...] = ()
    if isinstance(raw_regions, list):
        regions = tuple(dict.fromkeys(r.lower() for r in raw_regions if isinstance(r, str) and r))
    return FixtureCatalog(fixtures=fixtures, regions=regions)


def decode_catalog(text: str, *, source: str = "") -> FixtureCatalog:
    """Decode JSON *text* into a catalog. Raises ``CatalogError`` on invalid JSON."""
    try:
        document = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise CatalogError(f"Catalog is not valid JSON: {exc}", source=source) from exc
    return parse_catalog(document)


def load_catalog_file(path: str | Path) -> FixtureCatalog:
    """Load a catalog from a local JSON file; empty on any failure."""
    p = Path(path)
    try:
        return decode_catalog(p.read_text(encoding="utf-8"), source=str(p))
    except (OSError, UnicodeDecodeError, CatalogError) as exc:
        logger.warning("Fixture catalog unavailable (%s): %s", p, exc)
        return EMPTY_CATALOG


async def load_catalog(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_FETCH_TIMEOUT_S,
) -> FixtureCatalog:
    """Fetch and parse the catalog at *url*; empty on any failure.

    The catalog is fetched once per harness; ``no-store`` keeps intermediaries
    from serving a stale copy after fixtures change.
    """
    headers = {"Cache-Control": "no-store"}
    try:
        if client is not None:
            response = await client.get(url, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                response = await own_client.get(url, headers=headers)
        response.raise_for_status()
        return decode_catalog(response.text, source=url)
    except (httpx.HTTPError, CatalogError) as exc:
        logger.warning("Fixture catalog unavailable (%s): %s", url, exc)
        return EMPTY_CATALOG
