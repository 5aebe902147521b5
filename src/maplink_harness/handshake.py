# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Liveness handshake with the router.

State machine::

    unknown --valid pong--> active
    unknown --activity timer--> inactive
    any --reset()--> unknown

``inactive`` is terminal until an explicit reset: a pong arriving after the
activity timer fired is dropped, so the user has to retry deliberately.

On ``start()``:

1. arm the activity timer (600 ms)
2. send one ping right away
3. re-send every 200 ms
4. stop re-sending after 2000 ms, whatever the outcome

Any one correlated pong activates; pings and pongs need not pair up in order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from . import HandshakeStatus
from .channel import Channel
from .config import HarnessConfig
from .messages import Ping, Pong
from .nonce_registry import NonceRegistry
from .scheduler import Scheduler, TimerHandle, cancel_timer
from .state import HarnessState

logger = logging.getLogger(__name__)


class HandshakeController:
    """Drives pings and owns status/settings/environment in ``HarnessState``."""

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
        self.registry = NonceRegistry(scheduler, default_ttl_ms=self._config.nonce_ttl_ms, name="ping")
        self._active_timer: TimerHandle | None = None
        self._retry_timer: TimerHandle | None = None
        self._retry_window_timer: TimerHandle | None = None
        self.pings_sent = 0

    @property
    def status(self) -> HandshakeStatus:
        return self._state.status

    @property
    def retrying(self) -> bool:
        return self._retry_timer is not None

    # -- Lifecycle --

    def start(self) -> None:
        """Arm the activity timer and start pinging."""
        self._cancel_timers()
        self._active_timer = self._scheduler.call_later(self._config.active_threshold_ms, self._on_activity_timeout)
        self.send_ping()
        self._retry_timer = self._scheduler.call_every(self._config.ping_retry_interval_ms, self.send_ping)
        self._retry_window_timer = self._scheduler.call_later(self._config.ping_retry_window_ms, self._stop_retrying)
        logger.debug("Handshake started (origin=%s)", self._config.normalized_origin)

    def reset(self) -> None:
        """Cancel all timers, forget ping nonces, back to ``unknown``."""
        self._cancel_timers()
        self.registry.clear()
        self._state.status = HandshakeStatus.UNKNOWN
        self._state.settings = None
        self._state.environment = None
        self._changed()

    def stop(self) -> None:
        """Cancel timers and pending pings, keeping the current status."""
        self._cancel_timers()
        self.registry.clear()

    def retry(self) -> None:
        """User-triggered retry: reset then start over."""
        logger.info("Handshake retry requested")
        self.reset()
        self.start()

    # -- Outbound --

    def send_ping(self) -> str:
        nonce = self.registry.issue()
        self.registry.track(nonce)
        self._channel.post(Ping(nonce=nonce, page=self._config.page_path).to_wire())
        self.pings_sent += 1
        return nonce

    # -- Inbound --

    def handle_pong(self, pong: Pong) -> bool:
        """Fold a validated pong into state. Returns True if it was accepted."""
        if self._state.status == HandshakeStatus.INACTIVE:
            logger.debug("Dropped pong: handshake already timed out")
            return False
        if self.registry.consume(pong.nonce) is None:
            logger.debug("Dropped pong with unknown or expired nonce")
            return False

        previous = self._state.status
        self._state.settings = pong.router_settings()
        self._state.environment = pong.environment_hint()
        self._state.status = HandshakeStatus.ACTIVE
        if previous != HandshakeStatus.ACTIVE:
            logger.info(
                "Router active (preferred=%s, redirects=%s)",
                self._state.settings.preferred_maps_app,
                self._state.settings.redirects_enabled,
            )
        self._changed()
        return True

    # -- Timers --

    def _on_activity_timeout(self) -> None:
        self._active_timer = None
        if self._state.status != HandshakeStatus.UNKNOWN:
            return
        self._state.status = HandshakeStatus.INACTIVE
        logger.info("No router response within %d ms; marking inactive", self._config.active_threshold_ms)
        self._changed()

    def _stop_retrying(self) -> None:
        self._retry_window_timer = None
        cancel_timer(self._retry_timer)
        self._retry_timer = None
        logger.debug("Ping retry window closed after %d ping(s)", self.pings_sent)

    def _cancel_timers(self) -> None:
        cancel_timer(self._active_timer)
        cancel_timer(self._retry_window_timer)
        cancel_timer(self._retry_timer)
        self._active_timer = None
        self._retry_window_timer = None
        self._retry_timer = None

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
