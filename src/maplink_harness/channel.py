# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page message channel abstraction.

The router is reachable only through the page's ``postMessage`` channel:
asynchronous, unordered, lossy, and shared with any other script on the page.
``Envelope`` carries what the page knows about each inbound message (its
origin and whether it was posted by the page's own window) so the harness
can drop foreign traffic before looking at the payload.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Envelope:
    """One inbound channel message."""

    origin: str
    data: object
    from_self: bool = True  # event.source === window


Listener = Callable[[Envelope], None]


@runtime_checkable
class Channel(Protocol):
    """Bidirectional page channel."""

    def post(self, message: dict) -> None: ...

    def subscribe(self, listener: Listener) -> None: ...


class LoopbackChannel:
    """In-memory channel: records outbound messages, delivers injected ones.

    Stands in for the page in tests and offline runs. An optional *responder*
    plays the router: it sees each outbound message and may return
    envelopes to deliver back (synchronously, in order).
    """

    def __init__(self, responder: Callable[[dict], list[Envelope]] | None = None) -> None:
        self.sent: list[dict] = []
        self._listeners: list[Listener] = []
        self._responder = responder

    def post(self, message: dict) -> None:
        self.sent.append(message)
        if self._responder is not None:
            for envelope in self._responder(message):
                self.deliver(envelope)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def deliver(self, envelope: Envelope) -> None:
        for listener in list(self._listeners):
            listener(envelope)

    def sent_of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.sent if m.get("type") == message_type]
