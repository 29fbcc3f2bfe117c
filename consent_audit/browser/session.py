"""
Playwright-backed browsing slots for the live scan.

One Chromium instance is shared by the run; every slot gets its own
browser context, so cookies and storage never leak between slots.
The page collector is installed with ``add_init_script`` and reports
completion through a binding exposed on the context.
"""

from __future__ import annotations

import asyncio
from typing import Any

from playwright import async_api

from consent_audit.browser import collector
from consent_audit.pipeline.orchestrator import Deliver
from consent_audit.utils import errors, logger

log = logger.create_logger("BrowserSession")

VIEWPORT = {"width": 1366, "height": 900}


class PlaywrightSlot:
    """A single isolated browser context with one page."""

    def __init__(self, index: int, context: async_api.BrowserContext, page: async_api.Page) -> None:
        self.index = index
        self._context = context
        self._page = page

    async def navigate(self, url: str) -> None:
        await self._page.goto(url, wait_until="load")

    async def close(self) -> None:
        try:
            await self._context.close()
        except async_api.Error as exc:
            log.debug("Context close failed", {"slot": self.index, "error": errors.get_error_message(exc)})


class PlaywrightSlotFactory:
    """Launches the browser lazily and hands out one context per slot."""

    def __init__(self, evidence_url: str, *, headless: bool = True, user_agent: str | None = None) -> None:
        self._script = collector.build_collector_script(evidence_url)
        self._headless = headless
        self._user_agent = user_agent
        self._playwright: async_api.Playwright | None = None
        self._browser: async_api.Browser | None = None
        self._launch_lock = asyncio.Lock()

    async def _ensure_browser(self) -> async_api.Browser:
        # Slots open concurrently; only the first one launches.
        async with self._launch_lock:
            if self._browser is None:
                self._playwright = await async_api.async_playwright().start()
                log.info("Launching browser", {"headless": self._headless})
                self._browser = await self._playwright.chromium.launch(
                    headless=self._headless,
                    args=["--no-first-run", "--no-default-browser-check", "--disable-extensions"],
                )
            return self._browser

    async def open_slot(self, index: int, deliver: Deliver) -> PlaywrightSlot:
        browser = await self._ensure_browser()
        context_options: dict[str, Any] = {"viewport": VIEWPORT, "ignore_https_errors": True}
        if self._user_agent:
            context_options["user_agent"] = self._user_agent
        context = await browser.new_context(**context_options)

        def on_signal(_source: Any, message: Any = None) -> None:
            deliver(message)

        await context.expose_binding(collector.SIGNAL_BINDING, on_signal)
        await context.add_init_script(self._script)
        page = await context.new_page()
        log.debug("Slot opened", {"slot": index})
        return PlaywrightSlot(index, context, page)

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except async_api.Error as exc:
                log.debug("Browser close failed", {"error": errors.get_error_message(exc)})
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
