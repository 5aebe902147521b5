# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Route diagnosis: ask the router what it would do with one fixture.

Uses its own ``NonceRegistry`` (not the ping one), so a handshake reset
leaves in-flight diagnoses to resolve or expire on their own. The nonce's
correlation id is the fixture id; a response naming another fixture is
dropped rather than attributed to the wrong card.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum

from .channel import Channel
from .config import HarnessConfig
from .expectations import resolve_url
from .messages import RouteRequest, RouteResponse
from .nonce_registry import NonceRegistry
from .scheduler import Scheduler
from .state import Diagnosis, HarnessState

logger = logging.getLogger(__name__)

MISSING_URL_NOTE = "Missing fixture URL for diagnostic request."


class DiagnoseOutcome(StrEnum):
    SENT = "sent"
    COOLING_DOWN = "cooling_down"
    MISSING_URL = "missing_url"


class RouteDiagnoser:
    """Sends ``ROUTE_REQUEST`` messages and folds correlated responses into state."""

    def __init__(
        self,
        state: HarnessState,
        channel: Channel,
        scheduler: Scheduler,
        config: HarnessConfig | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._state = state
        self._channel = channel
        self._scheduler = scheduler
        self._config = config or HarnessConfig()
        self._on_change = on_change
        self.registry = NonceRegistry(scheduler, default_ttl_ms=self._config.route_nonce_ttl_ms, name="route")

    def request(self, fixture_id: str) -> DiagnoseOutcome:
        """Request a diagnosis for *fixture_id* in the current region."""
        if fixture_id in self._state.cooling_down:
            return DiagnoseOutcome.COOLING_DOWN

        input_url = resolve_url(self._state.catalog.get(fixture_id), self._state.region)
        if not input_url:
            self._state.diagnoses[fixture_id] = Diagnosis(
                fixture_id=fixture_id,
                reason="no_match",
                chosen_redirect_url=None,
                notes=(MISSING_URL_NOTE,),
                local=True,
            )
            self._changed()
            return DiagnoseOutcome.MISSING_URL

        nonce = self.registry.issue()
        self.registry.track(nonce, correlation_id=fixture_id)
        self._state.cooling_down.add(fixture_id)
        self._scheduler.call_later(self._config.diagnose_cooldown_ms, lambda: self._end_cooldown(fixture_id))
        self._channel.post(RouteRequest(nonce=nonce, fixture_id=fixture_id, input_url=input_url).to_wire())
        logger.debug("Route diagnosis requested for %s", fixture_id)
        self._changed()
        return DiagnoseOutcome.SENT

    def handle_response(self, response: RouteResponse) -> bool:
        """Fold a validated response into state. Returns True if it was accepted."""
        entry = self.registry.consume(response.nonce)
        if entry is None:
            logger.debug("Dropped route response with unknown or expired nonce")
            return False
        if entry.correlation_id != response.fixture_id:
            logger.debug("Dropped route response for %s (requested %s)", response.fixture_id, entry.correlation_id)
            return False

        self._state.diagnoses[response.fixture_id] = Diagnosis(
            fixture_id=response.fixture_id,
            reason=response.reason,
            chosen_redirect_url=response.chosen_redirect_url,
            notes=tuple(response.notes or ()),
        )
        self._changed()
        return True

    def _end_cooldown(self, fixture_id: str) -> None:
        self._state.cooling_down.discard(fixture_id)
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
