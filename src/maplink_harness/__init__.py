# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""MapLink harness: out-of-process checks for the MapLink Router extension.

Talks to the router through the page's message channel only:
- handshake: liveness probe deciding whether the router is active on the page
- expectations: what a correctly working router should do with each fixture
- decisions: bounded log of routing decisions the router reports
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class HandshakeStatus(StrEnum):
    """Router liveness as seen from the page."""

    UNKNOWN = "unknown"
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True, slots=True)
class RouterSettings:
    """Router settings reported in a pong. Replaced wholesale, never patched."""

    preferred_maps_app: str  # google, waze, apple (anything else is "unknown")
    redirects_enabled: bool
    prefer_app_schemes: bool


@dataclass(frozen=True, slots=True)
class EnvironmentHint:
    """Advisory browsing-context hints. Never used for correctness."""

    is_private_context_hint: bool | None = None
    website_access_hint: str | None = None  # all, selected, unknown


@dataclass(frozen=True, slots=True)
class RegionVariant:
    """Region-specific URL and destination label for a fixture."""

    url: str
    destination_label: str = ""


@dataclass(frozen=True)
class Fixture:
    """A canned input URL plus the routing behaviour expected for it."""

    id: str
    title: str = ""
    intent_type: str = ""  # shortlink-noop, wrapper-unroll, directions, place, ...
    group: str = ""
    navigable: bool = False
    url: str | None = None
    destination_label: str | None = None
    regions: dict[str, RegionVariant] = field(default_factory=dict)

    @property
    def has_region_variants(self) -> bool:
        return bool(self.regions)


@dataclass(frozen=True, slots=True)
class DecisionEntry:
    """One routing decision observed from the router."""

    ts: str
    fixture_id: str
    reason: str
    input_url: str
    chosen_redirect_url: str | None = None

    def to_dict(self) -> dict:
        return {
            "ts": self.ts,
            "fixtureId": self.fixture_id,
            "reason": self.reason,
            "inputUrl": self.input_url,
            "chosenRedirectUrl": self.chosen_redirect_url,
        }
