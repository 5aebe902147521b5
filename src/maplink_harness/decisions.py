# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Bounded, newest-first log of routing decisions reported by the router.

The whole list is serialised under one session-scoped key, so concurrent
writers resolve as last-write-wins on the full list and never interleave.
Corrupt or foreign content reads as empty (or is filtered entry by entry).
"""

from __future__ import annotations

import json
import logging

from . import DecisionEntry
from .errors import StorageError
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


def _entry_from_dict(raw: dict) -> DecisionEntry:
    """Lenient decode: stored entries were validated when first recorded."""

    def _str(key: str) -> str:
        value = raw.get(key)
        return value if isinstance(value, str) else ""

    chosen = raw.get("chosenRedirectUrl")
    return DecisionEntry(
        ts=_str("ts"),
        fixture_id=_str("fixtureId"),
        reason=_str("reason"),
        input_url=_str("inputUrl"),
        chosen_redirect_url=chosen if isinstance(chosen, str) else None,
    )


class DecisionRecorder:
    """Capped decision log persisted in a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore, *, key: str = "mlr_decisions", capacity: int = 10) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self._store = store
        self._key = key
        self._capacity = capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, entry: DecisionEntry) -> list[DecisionEntry]:
        """Insert *entry* at the head, truncate, persist. Returns the new list."""
        entries = self.load_all()
        entries.insert(0, entry)
        del entries[self._capacity :]
        self._persist(entries)
        return entries

    def load_all(self) -> list[DecisionEntry]:
        """Return stored entries, newest first. Never raises."""
        try:
            raw = self._store.get(self._key)
        except StorageError as exc:
            logger.warning("Decision log unreadable: %s", exc)
            return []
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError, RecursionError):
            logger.warning("Decision log is not valid JSON; starting empty")
            return []
        if not isinstance(parsed, list):
            return []
        entries = [_entry_from_dict(item) for item in parsed if type(item) is dict]
        # A foreign writer may have stored more than we allow.
        return entries[: self._capacity]

    def clear(self) -> None:
        try:
            self._store.remove(self._key)
        except StorageError as exc:
            logger.warning("Could not clear decision log: %s", exc)

    def _persist(self, entries: list[DecisionEntry]) -> None:
        payload = json.dumps([e.to_dict() for e in entries], ensure_ascii=False)
        try:
            self._store.set(self._key, payload)
        except StorageError as exc:
            logger.warning("Could not persist decision log: %s", exc)
