# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright bridge: run the harness against a live page.

``PageChannel`` forwards the page's ``message`` events to Python through an
exposed binding and posts outbound messages with ``window.postMessage``, so
the router extension sees exactly what the in-page harness would send.

``probe_page()`` launches Chromium (optionally with an unpacked extension in
a persistent context), attaches a ``Harness`` driven by the asyncio
scheduler, and reports the settled handshake.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import tempfile
from dataclasses import dataclass, field
from urllib.parse import urlparse

from playwright.async_api import BrowserContext, Page, Playwright, async_playwright

from .catalog import FixtureCatalog
from .channel import Envelope, Listener
from .config import HarnessConfig
from .errors import BrowserError
from .harness import Harness
from .scheduler import AsyncioScheduler

logger = logging.getLogger(__name__)

BINDING_NAME = "__mlrHarnessDeliver"

# Serialising through JSON strips prototypes and non-data values before the
# payload leaves the page; validation still happens on the Python side.
_BRIDGE_SCRIPT = """
(() => {
  if (window.__mlrHarnessBridge) { return; }
  window.__mlrHarnessBridge = true;
  window.addEventListener("message", (event) => {
    let data;
    try {
      data = JSON.parse(JSON.stringify(event.data));
    } catch (e) {
      return;
    }
    window.%s({ origin: event.origin, fromSelf: event.source === window, data });
  });
})();
""" % BINDING_NAME

_POST_JS = "([message, origin]) => window.postMessage(message, origin)"

DEFAULT_SETTLE_MS = 250  # extra wait after status leaves "unknown" for late settings refreshes


class PageChannel:
    """``Channel`` implementation on top of a Playwright ``Page``."""

    def __init__(self, page: Page, origin: str) -> None:
        self._page = page
        self._origin = origin
        self._listeners: list[Listener] = []
        self._pending: set[asyncio.Task] = set()
        self.post_failures = 0

    async def attach(self) -> None:
        """Install the bridge. Call before navigating so it runs on every document."""
        await self._page.expose_binding(BINDING_NAME, self._on_binding)
        await self._page.add_init_script(_BRIDGE_SCRIPT)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def post(self, message: dict) -> None:
        task = asyncio.get_running_loop().create_task(self._page.evaluate(_POST_JS, [message, self._origin]))
        self._pending.add(task)
        task.add_done_callback(self._post_done)

    async def drain(self) -> None:
        """Wait for in-flight posts (used before closing the page)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _post_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # Lossy channel: a failed post is just a lost message.
            self.post_failures += 1
            logger.debug("postMessage failed: %s", exc)

    def _on_binding(self, source: object, payload: object) -> None:
        if not isinstance(payload, dict):
            return
        origin = payload.get("origin")
        from_self = payload.get("fromSelf")
        if not isinstance(origin, str) or not isinstance(from_self, bool):
            return
        envelope = Envelope(origin=origin, data=payload.get("data"), from_self=from_self)
        for listener in list(self._listeners):
            listener(envelope)


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------


@dataclass
class ProbeReport:
    """Settled handshake result for one page."""

    url: str
    status: str
    pings_sent: int
    status_view: dict = field(default_factory=dict)
    region: str | None = None
    expectations: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "status": self.status,
            "pings_sent": self.pings_sent,
            "status_view": self.status_view,
            "region": self.region,
            "expectations": self.expectations,
        }


def origin_of(url: str) -> tuple[str, str]:
    """Split *url* into (origin, path). Raises ValueError for non-http(s) URLs."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"probe needs an http(s) URL, got {url!r}")
    return f"{parsed.scheme}://{parsed.netloc.lower()}", parsed.path or "/"


async def _open_context(pw: Playwright, *, headless: bool, extension_dir: str | None, user_data_dir: str) -> BrowserContext:
    try:
        if extension_dir:
            # Extensions load only in a persistent context.
            return await pw.chromium.launch_persistent_context(
                user_data_dir,
                headless=headless,
                args=[
                    f"--disable-extensions-except={extension_dir}",
                    f"--load-extension={extension_dir}",
                    "--no-first-run",
                ],
            )
        browser = await pw.chromium.launch(headless=headless, args=["--no-first-run"])
        return await browser.new_context()
    except Exception as exc:
        if "executable doesn't exist" in str(exc).lower():
            raise BrowserError("Chromium is not installed. Please run: playwright install chromium") from exc
        raise BrowserError(f"Browser launch failed: {exc}") from exc


async def probe_page(
    url: str,
    *,
    catalog: FixtureCatalog | None = None,
    extension_dir: str | None = None,
    headless: bool = True,
    timeout_ms: int = 10_000,
    config: HarnessConfig | None = None,
) -> ProbeReport:
    """Open *url*, run the handshake, and report once the status has settled."""
    origin, path = origin_of(url)
    config = (config or HarnessConfig.from_env()).replace(origin=origin, page_path=path)
    settled = asyncio.Event()

    def _on_change(state) -> None:
        if state.status != "unknown":
            settled.set()

    async with async_playwright() as pw:
        with tempfile.TemporaryDirectory(prefix="mlr-profile-") as profile:
            context = await _open_context(pw, headless=headless, extension_dir=extension_dir, user_data_dir=profile)
            try:
                page = await context.new_page()
                channel = PageChannel(page, origin)
                await channel.attach()
                try:
                    await page.goto(url, wait_until="load", timeout=timeout_ms)
                except Exception as exc:
                    raise BrowserError(f"Navigation to {url} failed: {exc}") from exc

                harness = Harness(config, channel, AsyncioScheduler(), on_change=_on_change)
                if catalog is not None:
                    harness.set_catalog(catalog)
                else:
                    await harness.fetch_catalog()
                harness.start()

                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(settled.wait(), timeout=timeout_ms / 1000)
                await asyncio.sleep(DEFAULT_SETTLE_MS / 1000)
                harness.stop()
                await channel.drain()

                return ProbeReport(
                    url=url,
                    status=harness.state.status.value,
                    pings_sent=harness.handshake.pings_sent,
                    status_view=harness.status_view().to_dict(),
                    region=harness.state.region,
                    expectations=harness.expectations(),
                )
            finally:
                # None for a persistent context, which owns its browser.
                browser = context.browser
                await context.close()
                if browser is not None:
                    await browser.close()
