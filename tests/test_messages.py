# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for maplink_harness.messages: strict inbound validation and wire models."""

from __future__ import annotations

from collections import OrderedDict

import pytest

from maplink_harness.messages import (
    Decision,
    Ping,
    Pong,
    RouteRequest,
    RouteResponse,
    is_plain_object,
    parse_inbound,
    validate_decision,
    validate_pong,
    validate_route_response,
)
from tests._helpers import decision_payload, pong_payload, route_response_payload, settings_payload


class _DictSubclass(dict):
    pass


# ── Plain object ────────────────────────────────────────────────


class TestIsPlainObject:
    def test_dict(self):
        assert is_plain_object({}) is True

    @pytest.mark.parametrize("value", [None, [], (), "x", 1, _DictSubclass(), OrderedDict()])
    def test_rejects_everything_else(self, value):
        assert is_plain_object(value) is False


# ── Pong ────────────────────────────────────────────────────────


class TestValidatePong:
    def test_minimal(self):
        pong = validate_pong(pong_payload("n1"))
        assert isinstance(pong, Pong)
        assert pong.nonce == "n1"
        settings = pong.router_settings()
        assert settings.preferred_maps_app == "google"
        assert settings.redirects_enabled is True
        assert settings.prefer_app_schemes is False
        assert pong.environment_hint() is None

    def test_unknown_preferred_app_is_kept(self):
        pong = validate_pong(pong_payload("n1", settings=settings_payload(preferred="here")))
        assert pong.router_settings().preferred_maps_app == "here"

    def test_with_environment(self):
        env = {"isPrivateContextHint": True, "websiteAccessHint": "selected"}
        pong = validate_pong(pong_payload("n1", environment=env))
        hint = pong.environment_hint()
        assert hint.is_private_context_hint is True
        assert hint.website_access_hint == "selected"

    def test_null_environment_allowed(self):
        assert validate_pong(pong_payload("n1", environment=None)) is not None

    def test_empty_environment_allowed(self):
        pong = validate_pong(pong_payload("n1", environment={}))
        assert pong.environment_hint().is_private_context_hint is None

    def test_extra_keys_ignored(self):
        assert validate_pong(pong_payload("n1", extra="x")) is not None

    def test_missing_nonce(self):
        payload = pong_payload("n1")
        del payload["nonce"]
        assert validate_pong(payload) is None

    @pytest.mark.parametrize("nonce", [1, None, ["n1"], True])
    def test_non_string_nonce(self, nonce):
        assert validate_pong(pong_payload(nonce)) is None

    @pytest.mark.parametrize("key", ["preferredMapsApp", "redirectsEnabled", "preferAppSchemes"])
    def test_missing_settings_field(self, key):
        settings = settings_payload()
        del settings[key]
        assert validate_pong(pong_payload("n1", settings=settings)) is None

    @pytest.mark.parametrize(
        "settings",
        [
            {"preferredMapsApp": 1, "redirectsEnabled": True, "preferAppSchemes": False},
            {"preferredMapsApp": "waze", "redirectsEnabled": 1, "preferAppSchemes": False},
            {"preferredMapsApp": "waze", "redirectsEnabled": "true", "preferAppSchemes": False},
            {"preferredMapsApp": "waze", "redirectsEnabled": True, "preferAppSchemes": None},
        ],
    )
    def test_mistyped_settings(self, settings):
        assert validate_pong(pong_payload("n1", settings=settings)) is None

    @pytest.mark.parametrize("settings", [None, [], "google", _DictSubclass(settings_payload())])
    def test_settings_not_plain_object(self, settings):
        assert validate_pong(pong_payload("n1", settings=settings)) is None

    @pytest.mark.parametrize(
        "env",
        [
            [],
            "private",
            _DictSubclass(),
            {"isPrivateContextHint": "yes"},
            {"isPrivateContextHint": None},
            {"websiteAccessHint": "some"},
            {"websiteAccessHint": 1},
            {"websiteAccessHint": None},
        ],
    )
    def test_bad_environment(self, env):
        assert validate_pong(pong_payload("n1", environment=env)) is None

    def test_wrong_type_tag(self):
        assert validate_pong(pong_payload("n1", type="DECISION")) is None

    @pytest.mark.parametrize("payload", [None, [], "PONG", _DictSubclass(pong_payload("n1"))])
    def test_payload_not_plain_object(self, payload):
        assert validate_pong(payload) is None


# ── RouteResponse ───────────────────────────────────────────────


class TestValidateRouteResponse:
    def test_valid(self):
        resp = validate_route_response(route_response_payload("n1", notes=["a", "b"]))
        assert isinstance(resp, RouteResponse)
        assert resp.fixture_id == "fx-1"
        assert resp.chosen_redirect_url == "maps://?q=Eiffel+Tower"
        assert resp.notes == ["a", "b"]

    def test_explicit_null_redirect(self):
        resp = validate_route_response(route_response_payload("n1", chosenRedirectUrl=None))
        assert resp is not None
        assert resp.chosen_redirect_url is None

    def test_absent_redirect_key_rejected(self):
        payload = route_response_payload("n1")
        del payload["chosenRedirectUrl"]
        assert validate_route_response(payload) is None

    @pytest.mark.parametrize("key", ["nonce", "fixtureId", "inputUrl", "reason"])
    def test_missing_required(self, key):
        payload = route_response_payload("n1")
        del payload[key]
        assert validate_route_response(payload) is None

    @pytest.mark.parametrize("value", [1, False, {"url": "x"}])
    def test_mistyped_redirect(self, value):
        assert validate_route_response(route_response_payload("n1", chosenRedirectUrl=value)) is None

    @pytest.mark.parametrize("notes", ["note", ["ok", 1], None, ("a",), {"a": 1}])
    def test_bad_notes(self, notes):
        assert validate_route_response(route_response_payload("n1", notes=notes)) is None

    def test_empty_notes(self):
        assert validate_route_response(route_response_payload("n1", notes=[])).notes == []


# ── Decision ────────────────────────────────────────────────────


class TestValidateDecision:
    def test_valid(self):
        decision = validate_decision(decision_payload(chosenRedirectUrl="comgooglemaps://?q=x"))
        assert isinstance(decision, Decision)
        entry = decision.to_entry()
        assert entry.fixture_id == "fx-1"
        assert entry.chosen_redirect_url == "comgooglemaps://?q=x"
        assert entry.ts == "2026-01-01T00:00:00Z"

    def test_absent_redirect_key_rejected(self):
        payload = decision_payload()
        del payload["chosenRedirectUrl"]
        assert validate_decision(payload) is None

    @pytest.mark.parametrize("key", ["ts", "fixtureId", "inputUrl", "reason"])
    def test_missing_required(self, key):
        payload = decision_payload()
        del payload[key]
        assert validate_decision(payload) is None

    def test_numeric_timestamp_rejected(self):
        assert validate_decision(decision_payload(ts=1700000000)) is None


# ── Dispatch ────────────────────────────────────────────────────


class TestParseInbound:
    def test_dispatches_by_type(self):
        assert isinstance(parse_inbound(pong_payload("n1")), Pong)
        assert isinstance(parse_inbound(route_response_payload("n1")), RouteResponse)
        assert isinstance(parse_inbound(decision_payload()), Decision)

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            "PONG",
            [],
            {},
            {"type": 1},
            {"type": "UNKNOWN"},
            {"type": "PING", "nonce": "n1", "page": "/"},
            {"type": "ROUTE_REQUEST", "nonce": "n1", "fixtureId": "a", "inputUrl": "b"},
        ],
    )
    def test_ignored_payloads(self, payload):
        assert parse_inbound(payload) is None

    def test_invalid_known_type_rejected(self):
        assert parse_inbound({"type": "PONG", "nonce": "n1"}) is None


# ── Outbound ────────────────────────────────────────────────────


class TestOutbound:
    def test_ping_wire(self):
        assert Ping(nonce="abc", page="/").to_wire() == {"type": "PING", "nonce": "abc", "page": "/"}

    def test_route_request_wire(self):
        wire = RouteRequest(nonce="abc", fixture_id="fx-1", input_url="https://maps.apple.com/?q=x").to_wire()
        assert wire == {
            "type": "ROUTE_REQUEST",
            "nonce": "abc",
            "fixtureId": "fx-1",
            "inputUrl": "https://maps.apple.com/?q=x",
        }
