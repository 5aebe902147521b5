# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Nonce-keyed request/response correlation with per-entry TTL.

Each outbound request carries a fresh nonce; the matching response must
present it while it is still pending. Expiry and consumption go through the
same ``_remove`` primitive, which checks presence first, so an entry leaves
the registry exactly once and ``consume`` can never return it twice.

Absent or expired nonces are not errors: callers drop the message.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from .scheduler import Scheduler, TimerHandle, cancel_timer

logger = logging.getLogger(__name__)

NONCE_BYTES = 8


@dataclass(slots=True)
class PendingNonce:
    """A tracked nonce awaiting its response."""

    nonce: str
    created_at: float  # scheduler.now_ms()
    correlation_id: str | None = None  # e.g. fixture id for route diagnosis
    expiry: TimerHandle | None = None


class NonceRegistry:
    """Pending-nonce map with automatic expiry.

    Usage::

        registry = NonceRegistry(scheduler, default_ttl_ms=8000, name="ping")
        nonce = registry.issue()
        registry.track(nonce)
        ...
        entry = registry.consume(nonce)   # None if unknown, expired or already used
    """

    def __init__(self, scheduler: Scheduler, *, default_ttl_ms: float, name: str = "nonce") -> None:
        if default_ttl_ms <= 0:
            raise ValueError(f"default_ttl_ms must be > 0, got {default_ttl_ms}")
        self._scheduler = scheduler
        self._default_ttl_ms = default_ttl_ms
        self._name = name
        self._pending: dict[str, PendingNonce] = {}
        self.expired_count = 0

    @staticmethod
    def issue() -> str:
        """Return a fresh opaque token (hex-encoded random bytes)."""
        return secrets.token_hex(NONCE_BYTES)

    def track(self, nonce: str, correlation_id: str | None = None, ttl_ms: float | None = None) -> PendingNonce:
        """Register *nonce* as pending and schedule its expiry."""
        ttl = self._default_ttl_ms if ttl_ms is None else ttl_ms
        if ttl <= 0:
            raise ValueError(f"ttl_ms must be > 0, got {ttl}")

        previous = self._pending.pop(nonce, None)
        if previous is not None:
            cancel_timer(previous.expiry)

        entry = PendingNonce(
            nonce=nonce,
            created_at=self._scheduler.now_ms(),
            correlation_id=correlation_id,
        )
        self._pending[nonce] = entry
        entry.expiry = self._scheduler.call_later(ttl, lambda: self._expire(entry))
        return entry

    def consume(self, nonce: object) -> PendingNonce | None:
        """Remove and return the pending entry for *nonce*, or None."""
        if not isinstance(nonce, str):
            return None
        entry = self._remove(nonce)
        if entry is not None:
            cancel_timer(entry.expiry)
        return entry

    def clear(self) -> None:
        """Cancel every pending expiry and forget all nonces."""
        for entry in self._pending.values():
            cancel_timer(entry.expiry)
        if self._pending:
            logger.debug("Cleared %d pending %s nonce(s)", len(self._pending), self._name)
        self._pending.clear()

    def __contains__(self, nonce: object) -> bool:
        return isinstance(nonce, str) and nonce in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    # -- Internal --

    def _remove(self, nonce: str) -> PendingNonce | None:
        return self._pending.pop(nonce, None)

    def _expire(self, entry: PendingNonce) -> None:
        # A re-tracked nonce owns a different entry; leave it alone.
        current = self._pending.get(entry.nonce)
        if current is not entry:
            return
        if self._remove(entry.nonce) is not None:
            self.expired_count += 1
            logger.debug("Expired %s nonce (correlation=%s)", self._name, entry.correlation_id)
