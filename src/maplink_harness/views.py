# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Plain-text framing for status, diagnoses and the decision log.

Rendering targets (terminal, JSON report, page) consume these values; this
module never touches a DOM.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from . import DecisionEntry, EnvironmentHint, HandshakeStatus, RouterSettings
from .state import Diagnosis

SETTINGS_STEPS_TEXT = (
    "Safari → Extensions → MapLink Router → Settings/Options. "
    "If you do not see it there, open Settings → Apps → Safari → Extensions → MapLink Router."
)

_STATUS_TEXT: dict[HandshakeStatus, tuple[str, str]] = {
    HandshakeStatus.ACTIVE: (
        "Active on this site",
        "MapLink Router responded. Use Diagnose for deterministic routing checks.",
    ),
    HandshakeStatus.INACTIVE: (
        "Not active on this site",
        "Enable the extension and grant Website Access to this domain.",
    ),
    HandshakeStatus.UNKNOWN: (
        "Checking for MapLink Router...",
        "Waiting for a response from the Safari extension.",
    ),
}

_APP_LABELS = {"google": "Google Maps", "waze": "Waze", "apple": "Apple Maps"}

PILL_PRIVATE = "Private Browsing detected"
PILL_DEFAULT = "Test normal mode first"
UNKNOWN = "Unknown"


@dataclass(frozen=True, slots=True)
class StatusView:
    status: str
    headline: str
    detail: str
    preferred_app: str
    redirects_enabled: str
    prefer_app_schemes: str
    private_pill: str
    private_detected: bool
    show_settings_steps: bool
    show_inactive_guidance: bool

    def to_dict(self) -> dict:
        return asdict(self)


def format_preferred_app(value: str | None) -> str:
    return _APP_LABELS.get(value or "", UNKNOWN)


def format_reason(reason: str) -> str:
    """``no_match`` -> ``no match``."""
    return reason.replace("_", " ")


def _on_off(value: bool) -> str:
    return "On" if value else "Off"


def status_view(
    status: HandshakeStatus,
    settings: RouterSettings | None,
    environment: EnvironmentHint | None = None,
) -> StatusView:
    headline, detail = _STATUS_TEXT[status]
    active = status == HandshakeStatus.ACTIVE and settings is not None
    private = bool(active and environment is not None and environment.is_private_context_hint)
    return StatusView(
        status=status.value,
        headline=headline,
        detail=detail,
        preferred_app=format_preferred_app(settings.preferred_maps_app) if active else UNKNOWN,
        redirects_enabled=_on_off(settings.redirects_enabled) if active else UNKNOWN,
        prefer_app_schemes=_on_off(settings.prefer_app_schemes) if active else UNKNOWN,
        private_pill=PILL_PRIVATE if private else PILL_DEFAULT,
        private_detected=private,
        show_settings_steps=status != HandshakeStatus.ACTIVE,
        show_inactive_guidance=status != HandshakeStatus.ACTIVE,
    )


def diagnosis_text(diagnosis: Diagnosis) -> str:
    parts = [f"Diagnose: {format_reason(diagnosis.reason)}."]
    parts.append(f"Redirect URL: {diagnosis.chosen_redirect_url or 'none'}")
    if diagnosis.notes:
        parts.append(" ".join(diagnosis.notes))
    return " ".join(parts)


def decision_line(entry: DecisionEntry) -> str:
    parts: list[str] = []
    if entry.ts:
        parts.append(entry.ts)
    if entry.fixture_id:
        parts.append(f"fixture: {entry.fixture_id}")
    if entry.reason:
        parts.append(f"reason: {format_reason(entry.reason)}")
    return " • ".join(parts)
