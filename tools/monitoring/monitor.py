"""Per-topic worker loop: throttle, fetch, parse, reconcile and notify on a jittered schedule.

One ``TopicMonitor`` runs inside each worker process. Cycles never overlap;
a stop request is only honoured between cycles, so a cycle that already
started runs to completion.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from core.errors import BotChallengeError, NotifierDispatchError
from core.topics import Topic
from tools.notifications.telegram import TelegramNotifier
from tools.parsing.listings import ListingParser, format_listing
from tools.scraping.base import BaseFetcher
from tools.storage.history import HistoryStore
from tools.throttle.coordinator import RequestCoordinator
from tools.utils.time_helpers import TimeUtils

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    SCRAPING = "scraping"
    RECONCILING = "reconciling"
    NOTIFYING = "notifying"
    QUIET_CHECK = "quiet_check"
    SCHEDULED = "scheduled"
    SHUTDOWN = "shutdown"


@dataclass
class CycleResult:
    new_identifiers: List[str] = field(default_factory=list)
    total: int = 0


class TopicMonitor:
    """Periodically scrapes one topic and reports listings it has not seen before."""

    def __init__(
        self,
        topic: Topic,
        fetcher: BaseFetcher,
        parser: ListingParser,
        store: HistoryStore,
        coordinator: RequestCoordinator,
        notifier: Optional[TelegramNotifier],
        interval_seconds: float,
        jitter_ratio: float = 0.15,
        startup_delay_max: float = 60.0,
        quiet_period_seconds: float = 24 * 60 * 60,
        silent: bool = False,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.topic = topic
        self.fetcher = fetcher
        self.parser = parser
        self.store = store
        self.coordinator = coordinator
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self.jitter_ratio = jitter_ratio
        self.startup_delay_max = startup_delay_max
        self.quiet_period_seconds = quiet_period_seconds
        self.silent = silent or notifier is None
        self._clock = clock
        self._rng = rng or random.Random()
        self._stop = asyncio.Event()
        self._last_new_at = clock()
        self.state = MonitorState.IDLE

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        logger.info("Stop requested for %s", self.topic.name)
        self._stop.set()

    async def run_once(self) -> CycleResult:
        """Run one full cycle. Errors propagate to the caller."""
        self.state = MonitorState.SCRAPING
        await self.coordinator.wait_for_throttle()
        self.coordinator.record_request()

        logger.info("[Scraper] Fetching %s...", self.topic.name)
        try:
            html = await self.fetcher.fetch(self.topic.url)
            listings = self.parser.parse(html)
        except BotChallengeError:
            logger.warning("[Scraper] Bot challenge on %s, escalating shared cooldown", self.topic.name)
            self.coordinator.signal_captcha(self.interval_seconds)
            await self.fetcher.recycle()
            raise
        self.coordinator.clear_cooldown()
        logger.info("[Scraper] Found %s items on page", len(listings))

        self.state = MonitorState.RECONCILING
        result = self.store.check_and_update(self.topic.name, [l.identifier for l in listings])

        if result.new_identifiers:
            self._last_new_at = self._clock()
            logger.info("[Scraper] %s new items found!", len(result.new_identifiers))
            self.state = MonitorState.NOTIFYING
            if not self.silent:
                new_ids = set(result.new_identifiers)
                formatted = [format_listing(l) for l in listings if l.identifier in new_ids]
                await self._notify(self.notifier.notify_new_items(self.topic.name, formatted))
        else:
            logger.info("[Scraper] No new items")
            self.state = MonitorState.QUIET_CHECK
            await self._quiet_check()

        return CycleResult(new_identifiers=result.new_identifiers, total=len(listings))

    async def run_forever(self) -> None:
        """Loop until ``request_stop()``; transient errors never end the loop."""
        try:
            startup_delay = self._rng.uniform(0, self.startup_delay_max)
            logger.info("Initial delay %.0fs before first scrape", startup_delay)
            if await self._wait_or_stop(startup_delay):
                return

            while not self.stop_requested:
                logger.info("Scraping: %s", self.topic.name)
                try:
                    result = await self.run_once()
                    logger.info(
                        "Completed: %s new items (%s total)", len(result.new_identifiers), result.total
                    )
                except BotChallengeError:
                    logger.info("Continuing after bot challenge; cooldown applies to next cycle")
                except Exception as exc:
                    logger.error("Error in cycle for %s: %s", self.topic.name, exc, exc_info=True)

                if self.stop_requested:
                    break
                delay = TimeUtils.jittered(self.interval_seconds, self.jitter_ratio, self._rng)
                self.state = MonitorState.SCHEDULED
                logger.info("Next scrape in %.1f minutes", delay / 60)
                if await self._wait_or_stop(delay):
                    break
        finally:
            self.state = MonitorState.SHUTDOWN
            logger.info("Closing fetcher resources")
            await self.fetcher.close()

    async def _quiet_check(self) -> None:
        if self._clock() - self._last_new_at < self.quiet_period_seconds:
            return
        self._last_new_at = self._clock()
        if not self.silent:
            hours = self.quiet_period_seconds / 3600
            await self._notify(self.notifier.notify_quiet(self.topic.name, hours))

    async def _notify(self, sending) -> None:
        try:
            await sending
        except NotifierDispatchError as exc:
            logger.error("[Notifier] %s", exc)

    async def _wait_or_stop(self, delay: float) -> bool:
        """Sleep *delay* seconds; return True early if a stop was requested."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False
