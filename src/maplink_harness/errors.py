# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Harness exception hierarchy.

Nothing on the message path raises: malformed or unmatched messages are
dropped. These exceptions cover the edges (catalog files, storage files,
browser launch) and are caught and degraded by their callers.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base exception for all harness errors."""


class CatalogError(HarnessError):
    """Fixture catalog could not be fetched or parsed."""

    def __init__(self, message: str, *, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class StorageError(HarnessError):
    """Persisted state could not be read or written."""

    def __init__(self, message: str, *, key: str = "") -> None:
        super().__init__(message)
        self.key = key


class BrowserError(HarnessError):
    """Browser launch, navigation, or page bridge failure."""
