# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Harness: one owned state struct plus inbound dispatch.

Inbound path for every envelope::

    origin / same-window check -> parse_inbound (validation) -> match on kind
        Pong          -> HandshakeController.handle_pong
        RouteResponse -> RouteDiagnoser.handle_response
        Decision      -> DecisionRecorder.append

Nothing on this path raises for bad input; everything untrusted is dropped.

Dependencies: handshake.py, diagnosis.py, decisions.py, region.py.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from urllib.parse import urljoin

import structlog

from . import DecisionEntry, Fixture
from .catalog import FixtureCatalog, load_catalog
from .channel import Channel, Envelope
from .config import HarnessConfig
from .decisions import DecisionRecorder
from .diagnosis import DiagnoseOutcome, RouteDiagnoser
from .expectations import expected_text, resolve_variant
from .handshake import HandshakeController
from .messages import Decision, Pong, RouteResponse, parse_inbound
from .region import RegionSelector
from .scheduler import Scheduler
from .state import HarnessState
from .storage import KeyValueStore, MemoryStore
from .views import StatusView, decision_line, diagnosis_text, status_view

logger = logging.getLogger(__name__)


class Harness:
    """Wires the protocol components around a single ``HarnessState``.

    Usage::

        harness = Harness(HarnessConfig(origin="https://example.test"), channel, scheduler)
        harness.start()
        ...
        harness.expectations()   # {fixture_id: "Expected: ..."}
    """

    def __init__(
        self,
        config: HarnessConfig,
        channel: Channel,
        scheduler: Scheduler,
        *,
        session_store: KeyValueStore | None = None,
        durable_store: KeyValueStore | None = None,
        on_change: Callable[[HarnessState], None] | None = None,
    ) -> None:
        self.config = config
        self.state = HarnessState()
        self._channel = channel
        self._on_change = on_change
        self._started = False
        self._region_hints: dict[str, str | None] = {}
        self.decision_log: list[DecisionEntry] = []

        self.handshake = HandshakeController(self.state, channel, scheduler, config, on_change=self._changed)
        self.diagnoser = RouteDiagnoser(self.state, channel, scheduler, config, on_change=self._changed)
        self.recorder = DecisionRecorder(
            session_store if session_store is not None else MemoryStore(),
            key=config.decisions_key,
            capacity=config.max_decisions,
        )
        self.regions = RegionSelector(
            durable_store if durable_store is not None else MemoryStore(),
            key=config.region_key,
            available=config.default_regions,
        )
        channel.subscribe(self.receive)

    # -- Lifecycle --

    def start(self, *, locale: str | None = None, timezone: str | None = None) -> None:
        """Restore persisted state, pick a region, start the handshake."""
        structlog.contextvars.bind_contextvars(origin=self.config.normalized_origin)
        self.decision_log = self.recorder.load_all()
        self._region_hints = {"locale": locale, "timezone": timezone}
        self.state.region = self.regions.initial(**self._region_hints)
        self._started = True
        self.handshake.start()

    def stop(self) -> None:
        """Cancel every timer and pending nonce (page teardown)."""
        self.handshake.stop()
        self.diagnoser.registry.clear()

    def retry_handshake(self) -> None:
        self.handshake.retry()

    # -- Catalog & region --

    def set_catalog(self, catalog: FixtureCatalog) -> None:
        self.state.catalog = catalog
        if catalog.regions:
            self.regions.set_available(catalog.regions)
            if self.state.region not in self.regions.available:
                self.state.region = self.regions.initial(**self._region_hints)
        logger.info("Loaded %d fixture(s)", len(catalog))
        self._changed()

    async def fetch_catalog(self, **kwargs) -> FixtureCatalog:
        """Fetch ``config.catalog_url`` (relative to the origin) and install it."""
        url = urljoin(self.config.normalized_origin + self.config.page_path, self.config.catalog_url)
        catalog = await load_catalog(url, **kwargs)
        self.set_catalog(catalog)
        return catalog

    def select_region(self, code: str) -> str:
        self.state.region = self.regions.select(code)
        self._changed()
        return self.state.region

    # -- Actions --

    def diagnose(self, fixture_id: str) -> DiagnoseOutcome:
        return self.diagnoser.request(fixture_id)

    # -- Inbound --

    def receive(self, envelope: Envelope) -> None:
        """Channel listener. Drops foreign or invalid messages silently."""
        if not envelope.from_self or envelope.origin != self.config.normalized_origin:
            return
        message = parse_inbound(envelope.data)
        if message is None:
            return
        match message:
            case Pong():
                self.handshake.handle_pong(message)
            case RouteResponse():
                self.diagnoser.handle_response(message)
            case Decision():
                self.decision_log = self.recorder.append(message.to_entry())
                self._changed()

    # -- Views --

    def fixture(self, fixture_id: str) -> Fixture | None:
        return self.state.catalog.get(fixture_id)

    def expectation(self, fixture_id: str) -> str:
        s = self.state
        return expected_text(s.catalog.get(fixture_id), s.settings, s.status, s.region, s.environment)

    def expectations(self) -> dict[str, str]:
        s = self.state
        return {f.id: expected_text(f, s.settings, s.status, s.region, s.environment) for f in s.catalog}

    def destination_label(self, fixture_id: str) -> str | None:
        variant = resolve_variant(self.state.catalog.get(fixture_id), self.state.region)
        return variant.destination_label if variant else None

    def status_view(self) -> StatusView:
        return status_view(self.state.status, self.state.settings, self.state.environment)

    def diagnosis_text(self, fixture_id: str) -> str | None:
        diagnosis = self.state.diagnoses.get(fixture_id)
        return diagnosis_text(diagnosis) if diagnosis else None

    def decision_lines(self) -> list[str]:
        return [decision_line(e) for e in self.decision_log]

    def _changed(self) -> None:
        if self._on_change is not None and self._started:
            self._on_change(self.state)
