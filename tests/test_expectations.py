# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for maplink_harness.expectations: decision table, URL inspection, regions."""

from __future__ import annotations

import pytest

from maplink_harness import EnvironmentHint, Fixture, HandshakeStatus, RegionVariant
from maplink_harness.expectations import (
    PREFIX_ACTIVE,
    PREFIX_NOT_ACTIVE,
    TEXT_CID_FALLBACK,
    TEXT_COORDINATES,
    TEXT_DEFAULT,
    TEXT_DIRECTIONS,
    TEXT_FALLBACK,
    TEXT_INVALID_COORDS,
    TEXT_NO_REDIRECT,
    TEXT_SAME_PROVIDER,
    TEXT_SHORTLINK,
    TEXT_UNSUPPORTED,
    TEXT_WAZE_ORIGIN_CURRENT,
    TEXT_WAZE_ORIGIN_IGNORED,
    TEXT_WAZE_PLACE_TEXT,
    TEXT_WAZE_TEXT_DESTINATION,
    TEXT_WRAPPER_AMBIGUOUS,
    TEXT_WRAPPER_UNROLL,
    Provider,
    detect_provider,
    expected_outcome,
    expected_text,
    fixture_expectations,
    has_coordinates,
    has_origin,
    resolve_url,
    resolve_variant,
)
from tests._helpers import make_fixture, make_settings, regional_fixture

APPLE_URL = "https://maps.apple.com/?q=Eiffel+Tower"
WAZE_URL = "https://www.waze.com/ul?q=Eiffel+Tower"


# ── Provider detection ──────────────────────────────────────────


class TestDetectProvider:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://maps.apple.com/?q=x", Provider.APPLE),
            ("https://beta.maps.apple.com/?q=x", Provider.APPLE),
            ("https://waze.com/ul?q=x", Provider.WAZE),
            ("https://www.waze.com/ul?q=x", Provider.WAZE),
            ("https://www.google.com/maps/search/?api=1&query=x", Provider.GOOGLE),
            ("https://maps.google.co.uk/?q=x", Provider.GOOGLE),
            ("https://google.com/maps", Provider.GOOGLE),
            ("https://google.de/maps", Provider.GOOGLE),
            ("https://MAPS.GOOGLE.COM/?q=x", Provider.GOOGLE),
        ],
    )
    def test_known_hosts(self, url, expected):
        assert detect_provider(url) == expected

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "not a url",
            "https://example.com/?q=x",
            "https://apple.com/maps",
            "https://fakewaze.com/ul",
            "https://notgoogle.com/maps",
            "https://[::1/broken",
            "geo:48.85,2.35",
        ],
    )
    def test_unknown_or_unparseable(self, url):
        assert detect_provider(url) is None


# ── Coordinate / origin detection ───────────────────────────────


class TestHasCoordinates:
    @pytest.mark.parametrize(
        "url",
        [
            "https://maps.apple.com/?ll=48.85,2.35",
            "https://maps.google.com/?sll=48.85,2.35&q=cafe",
            "https://maps.google.com/?q=48.8584,2.2945",
            "https://maps.google.com/?q=-33.86+,+151.21",
            "https://www.google.com/maps/search/?api=1&query=%2B48.85%2C2.35",
            "https://www.google.com/maps/dir/?api=1&destination=48.85,2.35",
            "https://maps.google.com/?daddr=48.85, 2.35",
            "https://www.google.com/maps/place/Eiffel/@48.8584,2.2945,17z",
        ],
    )
    def test_coordinate_bearing(self, url):
        assert has_coordinates(url) is True

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "https://maps.google.com/?q=Eiffel+Tower",
            "https://maps.google.com/?q=48.85",
            "https://maps.google.com/?q=48.85,2.35,cafe",
            "https://www.google.com/maps/place/Eiffel",
            "https://[::1/broken",
        ],
    )
    def test_not_coordinate_bearing(self, url):
        assert has_coordinates(url) is False


class TestHasOrigin:
    @pytest.mark.parametrize(
        "url",
        [
            "https://maps.google.com/?saddr=Home&daddr=Work",
            "https://www.google.com/maps/dir/?api=1&origin=A&destination=B",
            "https://www.google.com/maps/dir/?api=1&origin_place_id=abc&destination=B",
            "https://www.google.com/maps/dir/Louvre/Eiffel+Tower",
        ],
    )
    def test_explicit_origin(self, url):
        assert has_origin(url) is True

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "https://www.google.com/maps/dir/?api=1&destination=B",
            "https://maps.google.com/?daddr=Work",
            "https://www.google.com/maps/dir/",
        ],
    )
    def test_no_origin(self, url):
        assert has_origin(url) is False


# ── Region resolution ───────────────────────────────────────────


class TestResolveVariant:
    def test_region_entry_wins(self):
        variant = resolve_variant(regional_fixture(), "eu")
        assert "Brandenburg" in variant.url
        assert variant.destination_label == "Brandenburg Gate"

    def test_region_switch_changes_url(self):
        fx = regional_fixture()
        assert resolve_url(fx, "eu") != resolve_url(fx, "us")

    def test_flat_fallback_for_missing_region(self):
        fx = make_fixture(destination_label="Eiffel Tower")
        for region in ("eu", "us", None):
            variant = resolve_variant(fx, region)
            assert variant.url == fx.url
            assert variant.destination_label == "Eiffel Tower"

    def test_regional_fixture_unknown_region_has_no_url(self):
        assert resolve_url(regional_fixture(), "apac") is None

    def test_nothing_resolvable(self):
        assert resolve_variant(make_fixture(url=None), "eu") is None
        assert resolve_variant(None, "eu") is None


# ── Decision table ──────────────────────────────────────────────


class TestExpectedOutcome:
    def test_no_settings(self):
        assert expected_outcome(make_fixture(), None) == TEXT_FALLBACK

    def test_no_fixture(self):
        assert expected_outcome(None, make_settings()) == TEXT_FALLBACK

    @pytest.mark.parametrize(
        "intent",
        ["shortlink-noop", "cid-canonicalization", "directions", "place", "same-provider", "whatever"],
    )
    def test_redirects_disabled_overrides_intent(self, intent):
        assert expected_outcome(make_fixture(intent=intent), make_settings(redirects=False)) == TEXT_NO_REDIRECT

    @pytest.mark.parametrize(
        "intent, text",
        [
            ("shortlink-noop", TEXT_SHORTLINK),
            ("wrapper-unroll", TEXT_WRAPPER_UNROLL),
            ("wrapper-ambiguous", TEXT_WRAPPER_AMBIGUOUS),
            ("invalid-coords", TEXT_INVALID_COORDS),
            ("unsupported", TEXT_UNSUPPORTED),
        ],
    )
    @pytest.mark.parametrize("preferred", ["google", "waze", "apple", "here"])
    def test_fixed_intents(self, intent, text, preferred):
        assert expected_outcome(make_fixture(intent=intent), make_settings(preferred)) == text

    @pytest.mark.parametrize("preferred", ["apple", "waze"])
    def test_cid_reroute(self, preferred):
        text = expected_outcome(make_fixture(intent="cid-canonicalization"), make_settings(preferred))
        assert text == TEXT_CID_FALLBACK
        assert "3.0 seconds" in text
        assert "on timeout stays on the fallback provider" in text

    def test_cid_to_same_provider(self):
        fx = make_fixture(intent="cid-canonicalization")
        assert expected_outcome(fx, make_settings("google")) == TEXT_SAME_PROVIDER

    def test_same_provider_intent(self):
        fx = make_fixture(intent="same-provider", url=WAZE_URL)
        assert expected_outcome(fx, make_settings("google")) == TEXT_SAME_PROVIDER

    @pytest.mark.parametrize("preferred, url", [("google", None), ("apple", APPLE_URL), ("waze", WAZE_URL)])
    def test_detected_provider_equals_preferred(self, preferred, url):
        fx = make_fixture(intent="place") if url is None else make_fixture(intent="place", url=url)
        assert expected_outcome(fx, make_settings(preferred)) == TEXT_SAME_PROVIDER

    def test_waze_directions_text_only_no_origin(self):
        fx = make_fixture(intent="directions", url="https://www.google.com/maps/dir/?api=1&destination=Eiffel+Tower")
        text = expected_outcome(fx, make_settings("waze"))
        assert text.startswith("routes directions to Waze.")
        assert TEXT_WAZE_ORIGIN_CURRENT in text
        assert TEXT_WAZE_TEXT_DESTINATION in text
        assert TEXT_WAZE_ORIGIN_IGNORED not in text

    def test_waze_directions_with_origin_and_coords(self):
        fx = make_fixture(intent="directions", url="https://maps.google.com/?saddr=Home&daddr=48.85,2.35")
        text = expected_outcome(fx, make_settings("waze"))
        assert TEXT_WAZE_ORIGIN_IGNORED in text
        assert TEXT_WAZE_ORIGIN_CURRENT not in text
        assert TEXT_WAZE_TEXT_DESTINATION not in text

    def test_waze_place_text_only(self):
        assert expected_outcome(make_fixture(intent="place"), make_settings("waze")) == TEXT_WAZE_PLACE_TEXT

    def test_waze_place_with_coordinates(self):
        fx = make_fixture(intent="place", url="https://maps.google.com/?q=48.85,2.35")
        assert expected_outcome(fx, make_settings("waze")) == TEXT_DEFAULT

    @pytest.mark.parametrize("preferred", ["apple", "here"])
    def test_directions_other_app(self, preferred):
        fx = make_fixture(intent="directions", url="https://maps.google.com/?daddr=Work")
        assert expected_outcome(fx, make_settings(preferred)) == TEXT_DIRECTIONS

    def test_coordinate_only(self):
        fx = make_fixture(intent="coordinate-only", url="https://maps.google.com/?ll=48.85,2.35")
        assert expected_outcome(fx, make_settings("apple")) == TEXT_COORDINATES

    @pytest.mark.parametrize("intent", ["legacy-search", "place", "", "made-up"])
    def test_default(self, intent):
        assert expected_outcome(make_fixture(intent=intent), make_settings("apple")) == TEXT_DEFAULT

    def test_fixture_without_url(self):
        fx = make_fixture(intent="place", url=None)
        assert expected_outcome(fx, make_settings("waze")) == TEXT_WAZE_PLACE_TEXT
        assert expected_outcome(fx, make_settings("google")) == TEXT_DEFAULT

    def test_region_changes_provider(self):
        eu = regional_fixture().regions["eu"]
        fx = Fixture(id="fx-mixed", intent_type="place", regions={"eu": eu, "us": RegionVariant(url=APPLE_URL)})
        settings = make_settings("apple")
        assert expected_outcome(fx, settings, "eu") == TEXT_DEFAULT
        assert expected_outcome(fx, settings, "us") == TEXT_SAME_PROVIDER


# ── Full text ───────────────────────────────────────────────────


class TestExpectedText:
    def test_active_prefix(self):
        text = expected_text(make_fixture(intent="unsupported"), make_settings(), HandshakeStatus.ACTIVE)
        assert text == PREFIX_ACTIVE + TEXT_UNSUPPORTED

    @pytest.mark.parametrize("status", [HandshakeStatus.UNKNOWN, HandshakeStatus.INACTIVE])
    def test_not_active_prefix(self, status):
        assert expected_text(make_fixture(), None, status) == PREFIX_NOT_ACTIVE + TEXT_FALLBACK

    def test_redirects_disabled_exact(self):
        text = expected_text(make_fixture(intent="directions"), make_settings(redirects=False), HandshakeStatus.ACTIVE)
        assert text == "Expected: no redirect, unchanged."

    def test_environment_is_advisory(self):
        fx, settings = make_fixture(), make_settings("apple")
        env = EnvironmentHint(is_private_context_hint=True, website_access_hint="selected")
        assert expected_text(fx, settings, HandshakeStatus.ACTIVE, environment=env) == expected_text(
            fx, settings, HandshakeStatus.ACTIVE
        )

    def test_deterministic(self):
        fx, settings = regional_fixture(), make_settings("waze")
        first = expected_text(fx, settings, HandshakeStatus.ACTIVE, "eu")
        assert expected_text(fx, settings, HandshakeStatus.ACTIVE, "eu") == first


class TestFixtureExpectations:
    def test_keyed_by_id(self):
        fixtures = [make_fixture("a", intent="unsupported"), make_fixture("b", intent="shortlink-noop")]
        result = fixture_expectations(fixtures, make_settings(), HandshakeStatus.ACTIVE)
        assert result == {"a": PREFIX_ACTIVE + TEXT_UNSUPPORTED, "b": PREFIX_ACTIVE + TEXT_SHORTLINK}

    def test_empty(self):
        assert fixture_expectations([], None, HandshakeStatus.UNKNOWN) == {}
