# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Region selection: persisted user choice, else inferred from locale/timezone."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .errors import StorageError
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

# Country subtags treated as "eu" when inferring from a locale
_EU_COUNTRIES = frozenset(
    {
        "AT", "BE", "BG", "CH", "CY", "CZ", "DE", "DK", "EE", "ES", "FI", "FR", "GB", "GR", "HR",
        "HU", "IE", "IS", "IT", "LI", "LT", "LU", "LV", "MT", "NL", "NO", "PL", "PT", "RO", "SE",
        "SI", "SK",
    }
)  # fmt: skip
_US_COUNTRIES = frozenset({"US", "PR", "GU", "VI", "AS", "UM", "MP"})


def _locale_country(locale: str | None) -> str:
    """``de-DE`` / ``en_US.UTF-8`` -> ``DE`` / ``US``; empty if there is no country subtag."""
    if not locale:
        return ""
    tag = locale.split(".", 1)[0].replace("_", "-")
    parts = [p for p in tag.split("-") if p]
    for part in parts[1:]:
        if len(part) == 2 and part.isalpha():
            return part.upper()
    return ""


def infer_region(
    locale: str | None = None,
    timezone: str | None = None,
    available: Sequence[str] = ("eu", "us"),
) -> str:
    """Best guess among *available*; timezone wins over locale.

    Falls back to the first available region.
    """
    if not available:
        raise ValueError("available regions must not be empty")

    candidates: list[str] = []
    if timezone:
        if timezone.startswith("America/") or timezone.startswith("US/"):
            candidates.append("us")
        elif timezone.startswith("Europe/"):
            candidates.append("eu")
    country = _locale_country(locale)
    if country in _US_COUNTRIES:
        candidates.append("us")
    elif country in _EU_COUNTRIES:
        candidates.append("eu")

    for code in candidates:
        if code in available:
            return code
    return available[0]


class RegionSelector:
    """Owns the region preference in the durable store."""

    def __init__(self, store: KeyValueStore, *, key: str = "mlr_region", available: Sequence[str] = ("eu", "us")) -> None:
        self._store = store
        self._key = key
        self._available: tuple[str, ...] = tuple(available)
        if not self._available:
            raise ValueError("available regions must not be empty")

    @property
    def available(self) -> tuple[str, ...]:
        return self._available

    def set_available(self, regions: Sequence[str]) -> None:
        """Replace the region set (e.g. once the catalog declares its own). Empty is ignored."""
        if regions:
            self._available = tuple(regions)

    def stored(self) -> str | None:
        """Persisted preference if it is still one of the available regions."""
        try:
            value = self._store.get(self._key)
        except StorageError as exc:
            logger.warning("Region preference unreadable: %s", exc)
            return None
        if value and value.lower() in self._available:
            return value.lower()
        return None

    def initial(self, *, locale: str | None = None, timezone: str | None = None) -> str:
        return self.stored() or infer_region(locale, timezone, self._available)

    def select(self, code: str) -> str:
        """Validate, persist and return *code*."""
        normalized = code.strip().lower()
        if normalized not in self._available:
            raise ValueError(f"unknown region {code!r}; expected one of {', '.join(self._available)}")
        try:
            self._store.set(self._key, normalized)
        except StorageError as exc:
            # The selection still applies for this session.
            logger.warning("Could not persist region preference: %s", exc)
        return normalized
