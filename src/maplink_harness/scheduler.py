# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Timer abstraction for the handshake and nonce expiry.

All protocol waiting goes through a ``Scheduler``: no handler ever blocks.
Two implementations:

- ``AsyncioScheduler``: real timers on the running event loop
  (``loop.call_later``, ``time.monotonic()`` clock).
- ``VirtualScheduler``: deterministic virtual clock for tests. ``advance()``
  fires due callbacks ordered by (due time, scheduling order).

Delays are milliseconds throughout.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class TimerHandle(Protocol):
    """Cancellable handle for a one-shot or recurring timer."""

    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


@runtime_checkable
class Scheduler(Protocol):
    """Injected clock + timer source."""

    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle: ...


def cancel_timer(handle: TimerHandle | None) -> None:
    """Cancel *handle* if set. Safe on already-fired or cancelled handles."""
    if handle is not None:
        handle.cancel()


# ---------------------------------------------------------------------------
# asyncio
# ---------------------------------------------------------------------------


class _AsyncioOneShot:
    __slots__ = ("_handle", "_cancelled")

    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class _AsyncioRepeating:
    """Re-arms itself after each tick until cancelled."""

    __slots__ = ("_loop", "_interval_s", "_callback", "_handle", "_cancelled")

    def __init__(self, loop: asyncio.AbstractEventLoop, interval_ms: float, callback: Callable[[], None]) -> None:
        self._loop = loop
        self._interval_s = interval_ms / 1000.0
        self._callback = callback
        self._cancelled = False
        self._handle = loop.call_later(self._interval_s, self._tick)

    def _tick(self) -> None:
        if self._cancelled:
            return
        # Re-arm first so a raising callback does not stop the loop
        self._handle = self._loop.call_later(self._interval_s, self._tick)
        try:
            self._callback()
        except Exception:
            logger.exception("Recurring timer callback failed")

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        return _AsyncioOneShot(self.loop.call_later(max(delay_ms, 0) / 1000.0, callback))

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be > 0, got {interval_ms}")
        return _AsyncioRepeating(self.loop, interval_ms, callback)


# ---------------------------------------------------------------------------
# Virtual clock
# ---------------------------------------------------------------------------


class _VirtualTimer:
    __slots__ = ("due_ms", "interval_ms", "callback", "_cancelled")

    def __init__(self, due_ms: float, interval_ms: float | None, callback: Callable[[], None]) -> None:
        self.due_ms = due_ms
        self.interval_ms = interval_ms
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class VirtualScheduler:
    """Deterministic scheduler; time only moves when ``advance()`` is called.

    Usage::

        clock = VirtualScheduler()
        clock.call_later(600, on_timeout)
        clock.advance(599)   # nothing fires
        clock.advance(1)     # on_timeout fires
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)
        self._heap: list[tuple[float, int, _VirtualTimer]] = []
        self._seq = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _VirtualTimer(self._now + max(delay_ms, 0), None, callback)
        self._push(timer)
        return timer

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be > 0, got {interval_ms}")
        timer = _VirtualTimer(self._now + interval_ms, interval_ms, callback)
        self._push(timer)
        return timer

    def advance(self, ms: float) -> int:
        """Move the clock forward by *ms*, firing everything due. Returns fired count."""
        if ms < 0:
            raise ValueError(f"cannot move the clock backwards ({ms})")
        target = self._now + ms
        fired = 0
        while self._heap and self._heap[0][0] <= target:
            due, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            self._now = due
            if timer.interval_ms is not None:
                timer.due_ms = due + timer.interval_ms
                self._push(timer)
            timer.callback()
            fired += 1
        self._now = target
        return fired

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) timers."""
        return sum(1 for _, _, t in self._heap if not t.cancelled)

    def _push(self, timer: _VirtualTimer) -> None:
        heapq.heappush(self._heap, (timer.due_ms, next(self._seq), timer))
