# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Mutable harness state, owned by one ``Harness`` and passed to each handler.

Only ``HandshakeController`` writes status/settings/environment; only
``RouteDiagnoser`` writes diagnoses and cool-downs.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from . import EnvironmentHint, HandshakeStatus, RouterSettings
from .catalog import EMPTY_CATALOG, FixtureCatalog


@dataclass(frozen=True, slots=True)
class Diagnosis:
    """Result of a route-diagnosis request, or a local diagnostic when none could be sent."""

    fixture_id: str
    reason: str
    chosen_redirect_url: str | None = None
    notes: tuple[str, ...] = ()
    local: bool = False  # produced by the harness, not by the router


@dataclass
class HarnessState:
    status: HandshakeStatus = HandshakeStatus.UNKNOWN
    settings: RouterSettings | None = None
    environment: EnvironmentHint | None = None
    catalog: FixtureCatalog = EMPTY_CATALOG
    region: str | None = None
    diagnoses: dict[str, Diagnosis] = field(default_factory=dict)
    cooling_down: set[str] = field(default_factory=set)  # fixture ids with a disabled diagnose action

    @property
    def is_active(self) -> bool:
        return self.status == HandshakeStatus.ACTIVE
