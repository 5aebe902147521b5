# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Expected router behaviour per fixture.

Pure functions only: the output depends on (fixture, settings, status,
region) and nothing else, so callers may recompute freely whenever any of
them changes.

Decision order (first match wins):

1. no settings yet          -> generic text
2. redirects disabled       -> unchanged
3. intent / preferred app / detected provider table
4. prefix by handshake status
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import StrEnum
from urllib.parse import parse_qs, unquote, urlparse

from . import EnvironmentHint, Fixture, HandshakeStatus, RegionVariant, RouterSettings


class IntentType(StrEnum):
    """Closed set of fixture intents. Anything else takes the default branch."""

    SHORTLINK_NOOP = "shortlink-noop"
    WRAPPER_UNROLL = "wrapper-unroll"
    WRAPPER_AMBIGUOUS = "wrapper-ambiguous"
    INVALID_COORDS = "invalid-coords"
    UNSUPPORTED = "unsupported"
    CID_CANONICALIZATION = "cid-canonicalization"
    DIRECTIONS = "directions"
    COORDINATE_ONLY = "coordinate-only"
    PLACE = "place"
    LEGACY_SEARCH = "legacy-search"
    SAME_PROVIDER = "same-provider"


class Provider(StrEnum):
    GOOGLE = "google"
    WAZE = "waze"
    APPLE = "apple"


PREFIX_ACTIVE = "Expected: "
PREFIX_NOT_ACTIVE = "Expected when active: "

TEXT_FALLBACK = "routes to preferred app."
TEXT_NO_REDIRECT = "no redirect, unchanged."
TEXT_SHORTLINK = "no redirect, short-link expansion intentionally skipped."
TEXT_WRAPPER_UNROLL = "unwraps to a canonical maps URL first, then routes."
TEXT_WRAPPER_AMBIGUOUS = "no redirect, wrapper unsafe or ambiguous."
TEXT_INVALID_COORDS = "no redirect, coordinates out of bounds."
TEXT_UNSUPPORTED = "no redirect, unsupported link."
TEXT_CID_FALLBACK = (
    "bounded canonicalization fallback (hard cap 3.0 seconds); "
    "may transiently show the fallback provider while resolving; "
    "on timeout stays on the fallback provider."
)
TEXT_SAME_PROVIDER = "outcome may be unchanged link; native app may still intercept."
TEXT_WAZE_DIRECTIONS = "routes directions to Waze."
TEXT_WAZE_ORIGIN_CURRENT = " Waze uses your current location as the start."
TEXT_WAZE_ORIGIN_IGNORED = " The supplied origin is ignored; Waze always starts from your current location."
TEXT_WAZE_TEXT_DESTINATION = " Text-only destination is best-effort."
TEXT_WAZE_PLACE_TEXT = "best-effort text search, may fail to resolve."
TEXT_DIRECTIONS = "routes directions to preferred app."
TEXT_COORDINATES = "routes by coordinates in preferred app."
TEXT_DEFAULT = "routes to preferred app."

_CID_REROUTE_APPS = frozenset({Provider.APPLE.value, Provider.WAZE.value})

# Signed decimal "lat,lon", optional whitespace around the comma
_LATLON_RE = re.compile(r"^\s*[+-]?\d+(?:\.\d+)?\s*,\s*[+-]?\d+(?:\.\d+)?\s*$")
# "@lat,lon" path segment (Google ".../@48.85,2.35,15z")
_AT_LATLON_RE = re.compile(r"@[+-]?\d+(?:\.\d+)?,[+-]?\d+(?:\.\d+)?")

_COORD_PARAMS = ("ll", "sll")
_COORD_TEXT_PARAMS = ("q", "query", "destination", "daddr")
_ORIGIN_PARAMS = ("saddr", "origin", "origin_place_id")


# ---------------------------------------------------------------------------
# Region resolution
# ---------------------------------------------------------------------------


def resolve_variant(fixture: Fixture | None, region: str | None) -> RegionVariant | None:
    """URL + label for *fixture* in *region*, falling back to the flat pair."""
    if fixture is None:
        return None
    if region and region in fixture.regions:
        return fixture.regions[region]
    if fixture.url:
        return RegionVariant(url=fixture.url, destination_label=fixture.destination_label or "")
    return None


def resolve_url(fixture: Fixture | None, region: str | None) -> str | None:
    variant = resolve_variant(fixture, region)
    return variant.url if variant else None


# ---------------------------------------------------------------------------
# URL inspection
# ---------------------------------------------------------------------------


def _split(url: str | None):
    if not url:
        return None
    try:
        parsed = urlparse(url)
        # .hostname validates bracketed IPv6 and the port lazily
        _ = parsed.hostname, parsed.port
    except ValueError:
        return None
    return parsed


def detect_provider(url: str | None) -> Provider | None:
    """Maps provider a URL already belongs to, from its hostname."""
    parsed = _split(url)
    if parsed is None or not parsed.hostname:
        return None
    host = parsed.hostname.lower().rstrip(".")
    if host == "maps.apple.com" or host.endswith(".maps.apple.com"):
        return Provider.APPLE
    if host in ("waze.com", "www.waze.com"):
        return Provider.WAZE
    if host == "google.com" or host.startswith("google.") or ".google." in host:
        return Provider.GOOGLE
    return None


def _query(parsed) -> dict[str, list[str]]:
    return parse_qs(parsed.query, keep_blank_values=True)


def has_coordinates(url: str | None) -> bool:
    """True if the URL carries a parseable lat/lon anywhere we know to look."""
    parsed = _split(url)
    if parsed is None:
        return False
    params = _query(parsed)
    if any(name in params for name in _COORD_PARAMS):
        return True
    for name in _COORD_TEXT_PARAMS:
        if any(_LATLON_RE.match(value) for value in params.get(name, ())):
            return True
    return bool(_AT_LATLON_RE.search(unquote(parsed.path)))


def has_origin(url: str | None) -> bool:
    """True if the URL explicitly supplies a directions origin."""
    parsed = _split(url)
    if parsed is None:
        return False
    params = _query(parsed)
    if any(name in params for name in _ORIGIN_PARAMS):
        return True
    # /maps/dir/<origin>/<destination>
    segments = parsed.path.split("/")
    for i, segment in enumerate(segments[:-1]):
        if segment == "dir" and segments[i + 1]:
            return True
    return False


# ---------------------------------------------------------------------------
# Expectation text
# ---------------------------------------------------------------------------


def _waze_directions(url: str | None) -> str:
    text = TEXT_WAZE_DIRECTIONS
    text += TEXT_WAZE_ORIGIN_IGNORED if has_origin(url) else TEXT_WAZE_ORIGIN_CURRENT
    if not has_coordinates(url):
        text += TEXT_WAZE_TEXT_DESTINATION
    return text


def expected_outcome(fixture: Fixture | None, settings: RouterSettings | None, region: str | None = None) -> str:
    """Expected routing outcome sentence, without the status prefix."""
    if settings is None or fixture is None:
        return TEXT_FALLBACK
    if not settings.redirects_enabled:
        return TEXT_NO_REDIRECT

    preferred = settings.preferred_maps_app
    intent = fixture.intent_type
    url = resolve_url(fixture, region)
    provider = detect_provider(url)

    if intent == IntentType.SHORTLINK_NOOP:
        return TEXT_SHORTLINK
    if intent == IntentType.WRAPPER_UNROLL:
        return TEXT_WRAPPER_UNROLL
    if intent == IntentType.WRAPPER_AMBIGUOUS:
        return TEXT_WRAPPER_AMBIGUOUS
    if intent == IntentType.INVALID_COORDS:
        return TEXT_INVALID_COORDS
    if intent == IntentType.UNSUPPORTED:
        return TEXT_UNSUPPORTED
    if intent == IntentType.CID_CANONICALIZATION and preferred in _CID_REROUTE_APPS:
        return TEXT_CID_FALLBACK
    if intent == IntentType.SAME_PROVIDER or (provider is not None and provider == preferred):
        return TEXT_SAME_PROVIDER
    if preferred == Provider.WAZE and intent == IntentType.DIRECTIONS:
        return _waze_directions(url)
    if preferred == Provider.WAZE and intent == IntentType.PLACE and not has_coordinates(url):
        return TEXT_WAZE_PLACE_TEXT
    if intent == IntentType.DIRECTIONS:
        return TEXT_DIRECTIONS
    if intent == IntentType.COORDINATE_ONLY:
        return TEXT_COORDINATES
    return TEXT_DEFAULT


def expected_text(
    fixture: Fixture | None,
    settings: RouterSettings | None,
    status: HandshakeStatus,
    region: str | None = None,
    environment: EnvironmentHint | None = None,
) -> str:
    """Full expectation line shown for a fixture.

    *environment* is accepted for callers that pass the whole harness state;
    it is advisory and does not change the outcome.
    """
    prefix = PREFIX_ACTIVE if status == HandshakeStatus.ACTIVE else PREFIX_NOT_ACTIVE
    return prefix + expected_outcome(fixture, settings, region)


def fixture_expectations(
    fixtures: Iterable[Fixture],
    settings: RouterSettings | None,
    status: HandshakeStatus,
    region: str | None = None,
) -> dict[str, str]:
    """Expectation line for every fixture, keyed by id."""
    return {f.id: expected_text(f, settings, status, region) for f in fixtures}
