# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Harness configuration: protocol timings, capacities, storage keys.

Immutable; validated on construction. ``from_env()`` overlays ``MLR_*``
environment variables on the defaults.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from urllib.parse import urlparse

# Handshake timings (ms)
DEFAULT_ACTIVE_THRESHOLD_MS = 600
DEFAULT_PING_RETRY_INTERVAL_MS = 200
DEFAULT_PING_RETRY_WINDOW_MS = 2000
DEFAULT_NONCE_TTL_MS = 8000

# Route diagnosis
DEFAULT_DIAGNOSE_COOLDOWN_MS = 800

DEFAULT_MAX_DECISIONS = 10


@dataclass(frozen=True, slots=True)
class HarnessConfig:
    """Immutable configuration for a harness instance."""

    origin: str = "http://localhost"  # page origin; inbound messages from elsewhere are dropped
    page_path: str = "/"  # sent in every ping
    active_threshold_ms: int = DEFAULT_ACTIVE_THRESHOLD_MS
    ping_retry_interval_ms: int = DEFAULT_PING_RETRY_INTERVAL_MS
    ping_retry_window_ms: int = DEFAULT_PING_RETRY_WINDOW_MS
    nonce_ttl_ms: int = DEFAULT_NONCE_TTL_MS
    route_nonce_ttl_ms: int = DEFAULT_NONCE_TTL_MS
    diagnose_cooldown_ms: int = DEFAULT_DIAGNOSE_COOLDOWN_MS
    max_decisions: int = DEFAULT_MAX_DECISIONS
    decisions_key: str = "mlr_decisions"  # session-scoped store
    region_key: str = "mlr_region"  # durable store
    default_regions: tuple[str, ...] = ("eu", "us")
    catalog_url: str = "test-fixtures.json"

    def __post_init__(self) -> None:
        parsed = urlparse(self.origin)
        if not parsed.scheme or not parsed.netloc or parsed.path not in ("", "/"):
            raise ValueError(f"origin must be scheme://host[:port], got {self.origin!r}")
        if not self.page_path.startswith("/"):
            raise ValueError(f"page_path must start with '/', got {self.page_path!r}")
        if self.active_threshold_ms <= 0:
            raise ValueError(f"active_threshold_ms must be > 0, got {self.active_threshold_ms}")
        if self.ping_retry_interval_ms <= 0:
            raise ValueError(f"ping_retry_interval_ms must be > 0, got {self.ping_retry_interval_ms}")
        if self.ping_retry_window_ms < 0:
            raise ValueError(f"ping_retry_window_ms must be >= 0, got {self.ping_retry_window_ms}")
        if self.nonce_ttl_ms <= 0:
            raise ValueError(f"nonce_ttl_ms must be > 0, got {self.nonce_ttl_ms}")
        if self.route_nonce_ttl_ms <= 0:
            raise ValueError(f"route_nonce_ttl_ms must be > 0, got {self.route_nonce_ttl_ms}")
        if self.diagnose_cooldown_ms < 0:
            raise ValueError(f"diagnose_cooldown_ms must be >= 0, got {self.diagnose_cooldown_ms}")
        if self.max_decisions <= 0:
            raise ValueError(f"max_decisions must be > 0, got {self.max_decisions}")
        if not self.default_regions:
            raise ValueError("default_regions must not be empty")

    @property
    def normalized_origin(self) -> str:
        """Origin as browsers report it: lowercase scheme/host, no trailing slash."""
        parsed = urlparse(self.origin)
        return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"

    @classmethod
    def from_env(cls, **overrides: object) -> HarnessConfig:
        """Build a config from ``MLR_*`` environment variables.

        Explicit keyword overrides win over the environment.
        """
        values: dict[str, object] = {}

        env_origin = os.environ.get("MLR_ORIGIN", "").strip()
        if env_origin:
            values["origin"] = env_origin

        env_page = os.environ.get("MLR_PAGE_PATH", "").strip()
        if env_page:
            values["page_path"] = env_page

        for field_name, env_name in _INT_ENV_VARS.items():
            raw = os.environ.get(env_name, "").strip()
            if not raw:
                continue
            try:
                values[field_name] = int(raw)
            except ValueError:
                raise ValueError(f"{env_name} must be an integer, got {raw!r}") from None

        env_regions = os.environ.get("MLR_REGIONS", "").strip()
        if env_regions:
            values["default_regions"] = tuple(r.strip().lower() for r in env_regions.split(",") if r.strip())

        env_catalog = os.environ.get("MLR_CATALOG_URL", "").strip()
        if env_catalog:
            values["catalog_url"] = env_catalog

        values.update(overrides)
        return cls(**values)

    def replace(self, **changes: object) -> HarnessConfig:
        return dataclasses.replace(self, **changes)


_INT_ENV_VARS: dict[str, str] = {
    "active_threshold_ms": "MLR_ACTIVE_THRESHOLD_MS",
    "ping_retry_interval_ms": "MLR_PING_RETRY_INTERVAL_MS",
    "ping_retry_window_ms": "MLR_PING_RETRY_WINDOW_MS",
    "nonce_ttl_ms": "MLR_NONCE_TTL_MS",
    "route_nonce_ttl_ms": "MLR_ROUTE_NONCE_TTL_MS",
    "diagnose_cooldown_ms": "MLR_DIAGNOSE_COOLDOWN_MS",
    "max_decisions": "MLR_MAX_DECISIONS",
}
