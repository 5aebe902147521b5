# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import maplink_harness  # noqa: F401
except ImportError:
    raise ImportError("maplink_harness is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from maplink_harness.channel import LoopbackChannel
from maplink_harness.config import HarnessConfig
from maplink_harness.scheduler import VirtualScheduler
from maplink_harness.state import HarnessState
from maplink_harness.storage import MemoryStore
from tests._helpers import ORIGIN


@pytest.fixture
def clock() -> VirtualScheduler:
    """Virtual clock starting at t=0; tests move it with ``clock.advance(ms)``."""
    return VirtualScheduler()


@pytest.fixture
def channel() -> LoopbackChannel:
    return LoopbackChannel()


@pytest.fixture
def config() -> HarnessConfig:
    return HarnessConfig(origin=ORIGIN)


@pytest.fixture
def state() -> HarnessState:
    return HarnessState()


@pytest.fixture
def session_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def durable_store() -> MemoryStore:
    return MemoryStore()
