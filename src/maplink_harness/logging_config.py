# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Log output for the harness and the ``maplink-harness`` CLI.

Harness modules log through ``logging.getLogger(__name__)``; this module routes
those records through structlog so that the ``origin`` bound by
``Harness.start()`` appears on every line. Text mode renders for a terminal,
``--format json`` emits one JSON object per line. Either way logs go to stderr
and stdout carries only the expectations table or probe report.

Imports nothing from maplink_harness, so the CLI can call it before anything
else is loaded.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Libraries that log each catalog fetch or loop event at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "asyncio")


def _harness_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _level_of(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Install a single stderr handler for harness logs.

    Args:
        json_output: JSON lines (``--format json``) instead of console output.
        level: Root level name; unknown names fall back to INFO.
    """
    processors = _harness_processors()

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
            ],
            foreign_pre_chain=processors,
        )
    )

    root_level = _level_of(level)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(root_level)

    chatty_level = logging.DEBUG if root_level <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)
