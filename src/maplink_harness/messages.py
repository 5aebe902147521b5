# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Channel message models and strict inbound validation.

The page channel is shared with arbitrary page scripts, so every inbound
payload is untrusted. Validators return a typed model or None and never
raise: a payload with any missing, mistyped or wrongly shaped field is
rejected whole.

"Plain object" means an instance of exactly ``dict``. Subclasses and other
mappings are rejected, as are non-dict containers where an object is
expected. Scalars are checked strictly (``1`` is not a bool, ``True`` is not
a str). Unknown extra keys are ignored.

Wire format (camelCase keys)::

    out  {"type": "PING", "nonce", "page"}
    in   {"type": "PONG", "nonce", "settings": {...}, "environment"?}
    out  {"type": "ROUTE_REQUEST", "nonce", "fixtureId", "inputUrl"}
    in   {"type": "ROUTE_RESPONSE", "nonce", "fixtureId", "inputUrl", "chosenRedirectUrl", "reason", "notes"?}
    in   {"type": "DECISION", "ts", "fixtureId", "inputUrl", "reason", "chosenRedirectUrl"}
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError, field_validator

from . import DecisionEntry, EnvironmentHint, RouterSettings

logger = logging.getLogger(__name__)

PING = "PING"
PONG = "PONG"
ROUTE_REQUEST = "ROUTE_REQUEST"
ROUTE_RESPONSE = "ROUTE_RESPONSE"
DECISION = "DECISION"

WEBSITE_ACCESS_HINTS = ("all", "selected", "unknown")


def is_plain_object(value: object) -> bool:
    """True only for instances of exactly ``dict``."""
    return type(value) is dict


def _require_plain_object(value: object) -> object:
    if not is_plain_object(value):
        raise ValueError("expected a plain object")
    return value


# ---------------------------------------------------------------------------
# Inbound models
# ---------------------------------------------------------------------------


class _Inbound(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class SettingsPayload(_Inbound):
    preferred_maps_app: StrictStr = Field(alias="preferredMapsApp")
    redirects_enabled: StrictBool = Field(alias="redirectsEnabled")
    prefer_app_schemes: StrictBool = Field(alias="preferAppSchemes")


class EnvironmentPayload(_Inbound):
    is_private_context_hint: StrictBool | None = Field(None, alias="isPrivateContextHint")
    website_access_hint: Literal["all", "selected", "unknown"] | None = Field(None, alias="websiteAccessHint")

    @field_validator("is_private_context_hint", "website_access_hint", mode="before")
    @classmethod
    def _present_means_set(cls, value: object) -> object:
        # An explicit null is a mistyped value, not an absent key.
        if value is None:
            raise ValueError("must not be null when present")
        return value


class Pong(_Inbound):
    """Handshake reply carrying the router's current settings."""

    type: Literal["PONG"] = PONG
    nonce: StrictStr
    settings: SettingsPayload
    environment: EnvironmentPayload | None = None

    @field_validator("settings", mode="before")
    @classmethod
    def _settings_plain(cls, value: object) -> object:
        return _require_plain_object(value)

    @field_validator("environment", mode="before")
    @classmethod
    def _environment_plain(cls, value: object) -> object:
        if value is None:
            return None
        return _require_plain_object(value)

    def router_settings(self) -> RouterSettings:
        return RouterSettings(
            preferred_maps_app=self.settings.preferred_maps_app,
            redirects_enabled=self.settings.redirects_enabled,
            prefer_app_schemes=self.settings.prefer_app_schemes,
        )

    def environment_hint(self) -> EnvironmentHint | None:
        if self.environment is None:
            return None
        return EnvironmentHint(
            is_private_context_hint=self.environment.is_private_context_hint,
            website_access_hint=self.environment.website_access_hint,
        )


class RouteResponse(_Inbound):
    """Router's answer to a route-diagnosis request."""

    type: Literal["ROUTE_RESPONSE"] = ROUTE_RESPONSE
    nonce: StrictStr
    fixture_id: StrictStr = Field(alias="fixtureId")
    input_url: StrictStr = Field(alias="inputUrl")
    chosen_redirect_url: StrictStr | None = Field(alias="chosenRedirectUrl")  # key required, null allowed
    reason: StrictStr
    notes: list[StrictStr] | None = None

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_is_array(cls, value: object) -> object:
        if type(value) is not list:
            raise ValueError("notes must be an array")
        return value


class Decision(_Inbound):
    """Unsolicited report of a routing decision the router made."""

    type: Literal["DECISION"] = DECISION
    ts: StrictStr
    fixture_id: StrictStr = Field(alias="fixtureId")
    input_url: StrictStr = Field(alias="inputUrl")
    reason: StrictStr
    chosen_redirect_url: StrictStr | None = Field(alias="chosenRedirectUrl")  # key required, null allowed

    def to_entry(self) -> DecisionEntry:
        return DecisionEntry(
            ts=self.ts,
            fixture_id=self.fixture_id,
            reason=self.reason,
            input_url=self.input_url,
            chosen_redirect_url=self.chosen_redirect_url,
        )


InboundMessage = Pong | RouteResponse | Decision


# ---------------------------------------------------------------------------
# Outbound models
# ---------------------------------------------------------------------------


class _Outbound(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class Ping(_Outbound):
    type: Literal["PING"] = PING
    nonce: str
    page: str


class RouteRequest(_Outbound):
    type: Literal["ROUTE_REQUEST"] = ROUTE_REQUEST
    nonce: str
    fixture_id: str = Field(alias="fixtureId")
    input_url: str = Field(alias="inputUrl")


OutboundMessage = Ping | RouteRequest


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def _validate(model: type[_Inbound], payload: object) -> _Inbound | None:
    if not is_plain_object(payload):
        return None
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.debug("Rejected %s payload: %d error(s)", model.__name__, exc.error_count())
        return None


def validate_pong(payload: object) -> Pong | None:
    """Return a ``Pong`` if *payload* is structurally valid, else None."""
    return _validate(Pong, payload)


def validate_route_response(payload: object) -> RouteResponse | None:
    """Return a ``RouteResponse`` if *payload* is structurally valid, else None."""
    return _validate(RouteResponse, payload)


def validate_decision(payload: object) -> Decision | None:
    """Return a ``Decision`` if *payload* is structurally valid, else None."""
    return _validate(Decision, payload)


_VALIDATORS: dict[str, Callable[[object], InboundMessage | None]] = {
    PONG: validate_pong,
    ROUTE_RESPONSE: validate_route_response,
    DECISION: validate_decision,
}


def parse_inbound(payload: object) -> InboundMessage | None:
    """Dispatch on the ``type`` tag and validate. None for anything untrusted.

    Outbound kinds (our own PING / ROUTE_REQUEST echoed back by the page
    channel) and unknown tags are ignored.
    """
    if not is_plain_object(payload):
        return None
    tag = payload.get("type")
    if not isinstance(tag, str):
        return None
    validator = _VALIDATORS.get(tag)
    if validator is None:
        return None
    return validator(payload)
