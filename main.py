import argparse
import asyncio
import logging
import signal
import sys

from clients import close_client, get_client
from core.config import settings
from core.errors import ConfigError
from core.topics import TopicRegistry
from tools.monitoring.monitor import TopicMonitor
from tools.notifications.telegram import TelegramNotifier
from tools.parsing.listings import ListingParser
from tools.scraping.fetcher import create_fetcher
from tools.storage.history import HistoryStore
from tools.throttle.coordinator import RequestCoordinator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ],
)

logger = logging.getLogger(__name__)


def build_monitor(topic_name: str, interval_minutes: float, silent: bool = False) -> TopicMonitor:
    """Wire a monitor for *topic_name*; raises ConfigError if it cannot run."""
    registry = TopicRegistry.load()
    topic = registry.require_enabled(topic_name)

    notifier = None
    if not silent:
        if not settings.TELEGRAM_API_TOKEN or not settings.chat_ids:
            raise ConfigError("Telegram is not configured; set TELEGRAM_API_TOKEN and TELEGRAM_CHAT_IDS")
        notifier = TelegramNotifier(settings.TELEGRAM_API_TOKEN, settings.chat_ids, get_client())

    return TopicMonitor(
        topic=topic,
        fetcher=create_fetcher(settings),
        parser=ListingParser(),
        store=HistoryStore(settings.DATA_DIR, registry.max_saved_items),
        coordinator=RequestCoordinator(
            settings.DATA_DIR,
            min_gap_seconds=settings.MIN_REQUEST_GAP_SECONDS,
            max_cooldown_seconds=settings.MAX_CAPTCHA_COOLDOWN_SECONDS,
        ),
        notifier=notifier,
        interval_seconds=interval_minutes * 60,
        jitter_ratio=settings.INTERVAL_JITTER_RATIO,
        startup_delay_max=settings.STARTUP_DELAY_MAX_SECONDS,
        quiet_period_seconds=settings.QUIET_HEARTBEAT_HOURS * 3600,
        silent=silent,
    )


async def worker_main(topic_name: str, interval_minutes: float):
    monitor = build_monitor(topic_name, interval_minutes)
    logger.info("Starting worker for topic: %s", topic_name)
    logger.info("Interval: %s minutes", interval_minutes)
    logger.info("URL: %s", monitor.topic.url)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, monitor.request_stop)
        except NotImplementedError:  # pragma: no cover
            signal.signal(sig, lambda *_: monitor.request_stop())

    await monitor.run_forever()


async def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the listing watcher for one topic")
    parser.add_argument("--topic", required=True, help="Topic to scrape")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.DEFAULT_INTERVAL_MINUTES,
        help="Interval between scrapes in minutes",
    )
    args = parser.parse_args(argv)

    try:
        await worker_main(args.topic, args.interval)
    except ConfigError as exc:
        logger.error("Error: %s", exc)
        return 1
    finally:
        logger.info("Shutdown complete")
        await close_client()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
