"""Reusable headless browser owned by one fetcher.

The session launches Chromium lazily and hands the same browser out for a
bounded number of page loads, building up some history the way a real user
would. After ``max_uses`` loads, or when ``recycle()`` is called, the browser
is torn down and the next ``acquire()`` launches a fresh one.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from playwright.async_api import Browser, Playwright, async_playwright

from tools.scraping.fingerprint import random_viewport

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-infobars",
    "--lang=he-IL,he",
]


class BrowserSession:
    def __init__(
        self,
        max_uses: int = 8,
        headless: bool = True,
        playwright_factory: Callable = async_playwright,
    ) -> None:
        self.max_uses = max_uses
        self.headless = headless
        self._playwright_factory = playwright_factory
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self.use_count = 0

    @property
    def is_open(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def acquire(self) -> Browser:
        if self.is_open and self.use_count < self.max_uses:
            return self._browser

        if self._browser is not None:
            logger.info("[Fetcher] Recycling browser after %s uses...", self.use_count)
        if self._browser is not None or self._playwright is not None:
            await self.close()

        viewport = random_viewport()
        logger.info("[Fetcher] Launching browser...")
        self._playwright = await self._playwright_factory().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=self._launch_args(viewport),
            )
        except Exception:
            # stop the driver so a failed launch does not leave it running
            await self.close()
            raise
        self.use_count = 0
        return self._browser

    def mark_used(self) -> None:
        self.use_count += 1

    async def recycle(self) -> None:
        """Force the next ``acquire()`` to start a brand new browser."""
        await self.close()

    async def close(self) -> None:
        if self._browser is not None:
            logger.info("[Fetcher] Closing browser...")
            try:
                await self._browser.close()
            except Exception as exc:
                logger.debug("[Fetcher] Ignoring browser close error: %s", exc)
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                logger.debug("[Fetcher] Ignoring playwright stop error: %s", exc)
        self._browser = None
        self._playwright = None
        self.use_count = 0

    @staticmethod
    def _launch_args(viewport) -> List[str]:
        return LAUNCH_ARGS + [f"--window-size={viewport['width']},{viewport['height']}"]
