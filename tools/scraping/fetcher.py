"""Fetch strategies for listing pages.

``BrowserFetcher`` renders the page in a rotating headless Chromium session
with a randomised fingerprint and simulated user activity. ``PlainFetcher``
is the degraded mode: a single HTTP GET with a rotated User-Agent and no
rendering.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional

import httpx

from core.config import Settings
from core.errors import BotChallengeError, ExhaustedRetriesError
from tools.parsing.listings import is_challenge_page
from tools.scraping.base import BaseFetcher
from tools.scraping.behavior import human_pause, simulate_human_behavior
from tools.scraping.fingerprint import (
    ACCEPT,
    client_hint_headers,
    random_identity,
    random_scale_factor,
    random_viewport,
    stealth_script,
)
from tools.scraping.session import BrowserSession

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class BrowserFetcher(BaseFetcher):
    def __init__(
        self,
        session: BrowserSession,
        max_retries: int = 3,
        base_delay: float = 2.0,
        navigation_timeout: float = 30.0,
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.session = session
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.navigation_timeout = navigation_timeout
        self._rng = rng or random.Random()
        self._sleep = sleep

    async def fetch(self, url: str) -> str:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            if attempt > 1:
                backoff = self.base_delay * 2 ** (attempt - 1)
                logger.info("[Fetcher] Retry %s/%s, waiting %.1fs...", attempt, self.max_retries, backoff)
                await self._sleep(backoff)
                # a fresh fingerprint is often what gets the retry through
                await self.session.recycle()

            try:
                return await self._load(url, attempt)
            except BotChallengeError:
                raise
            except Exception as exc:
                last_error = exc
                logger.error("[Fetcher] Attempt %s failed: %s", attempt, exc)

        raise ExhaustedRetriesError(self.max_retries, last_error) from last_error

    async def _load(self, url: str, attempt: int) -> str:
        browser = await self.session.acquire()

        viewport = random_viewport(self._rng)
        identity = random_identity(self._rng)
        context = await browser.new_context(
            viewport=viewport,
            device_scale_factor=random_scale_factor(self._rng),
            user_agent=identity.user_agent,
            extra_http_headers=client_hint_headers(identity),
            locale="he-IL",
        )
        try:
            await context.add_init_script(stealth_script(identity))
            page = await context.new_page()
            logger.info("[Fetcher] Navigating to page (attempt %s)...", attempt)
            await page.goto(url, wait_until="networkidle", timeout=self.navigation_timeout * 1000)

            delay = await human_pause(3.0, 7.0, self._rng, self._sleep)
            logger.debug("[Fetcher] Waited %.1fs after load", delay)

            await simulate_human_behavior(page, viewport, self._rng, self._sleep)
            await human_pause(0.5, 1.5, self._rng, self._sleep)

            html = await page.content()
        finally:
            try:
                await context.close()
            except Exception as exc:
                logger.debug("[Fetcher] Ignoring context close error: %s", exc)

        self.session.mark_used()

        if is_challenge_page(html):
            raise BotChallengeError("Bot detection triggered - challenge page served")
        logger.info("[Fetcher] Page fetched successfully")
        return html

    async def recycle(self) -> None:
        await self.session.recycle()

    async def close(self) -> None:
        await self.session.close()


class PlainFetcher(BaseFetcher):
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._own_client = client is None
        self.client = client or httpx.AsyncClient(timeout=30.0, follow_redirects=True)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._rng = rng or random.Random()
        self._sleep = sleep

    async def fetch(self, url: str) -> str:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            if attempt > 1:
                backoff = self.base_delay * 2 ** (attempt - 1)
                logger.info("[Fetcher] Retry %s/%s, waiting %.1fs...", attempt, self.max_retries, backoff)
                await self._sleep(backoff)

            headers = {
                "User-Agent": random_identity(self._rng).user_agent,
                "Accept": ACCEPT,
                "Accept-Language": "en-US,en;q=0.5",
            }
            try:
                response = await self.client.get(url, headers=headers)
                response.raise_for_status()
                html = response.text
            except httpx.HTTPError as exc:
                last_error = exc
                logger.error("[Fetcher] Attempt %s failed: %s", attempt, exc)
                continue

            if is_challenge_page(html):
                raise BotChallengeError("Bot detection triggered - challenge page served")
            return html

        raise ExhaustedRetriesError(self.max_retries, last_error) from last_error

    async def close(self) -> None:
        if self._own_client:
            await self.client.aclose()


def create_fetcher(settings: Settings) -> BaseFetcher:
    if settings.USE_BROWSER:
        session = BrowserSession(max_uses=settings.BROWSER_MAX_USES, headless=settings.HEADLESS)
        return BrowserFetcher(
            session,
            max_retries=settings.MAX_RETRIES,
            base_delay=settings.RETRY_BASE_DELAY_SECONDS,
            navigation_timeout=settings.NAVIGATION_TIMEOUT_SECONDS,
        )
    logger.info("[Fetcher] Browser disabled, using plain HTTP fetch")
    return PlainFetcher(max_retries=settings.MAX_RETRIES, base_delay=settings.RETRY_BASE_DELAY_SECONDS)
