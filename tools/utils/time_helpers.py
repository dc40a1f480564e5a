"""Utility helpers related to time handling.

Scheduling jitter for worker cycles plus parsing and formatting of the
timestamps that end up in worker log files.
"""

from __future__ import annotations

import logging
import random
import re
from datetime import datetime
from typing import Optional

import pytz

logger = logging.getLogger(__name__)

LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S,%f"
_LOG_TIMESTAMP_RE = re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2},\d{3})")


class TimeUtils:
    """Collection of static helpers for schedule and log time handling."""

    @staticmethod
    def jittered(base_seconds: float, ratio: float, rng: Optional[random.Random] = None) -> float:
        """Return *base_seconds* shifted by a uniform offset within ±ratio·base.

        Used to spread the cycles of independent workers so they do not hit
        the origin in lock-step.
        """
        rng = rng or random
        spread = base_seconds * ratio
        return max(0.0, base_seconds + rng.uniform(-spread, spread))

    @staticmethod
    def parse_log_timestamp(line: str) -> Optional[datetime]:
        """Extract the leading ``asctime`` of a log line, or None."""
        match = _LOG_TIMESTAMP_RE.match(line)
        if not match:
            return None
        try:
            return datetime.strptime(match.group(1), LOG_TIMESTAMP_FORMAT)
        except ValueError:
            logger.debug("Unparseable log timestamp: %s", match.group(1))
            return None

    @staticmethod
    def utc_now_iso() -> str:
        return datetime.now(pytz.UTC).isoformat()

    @staticmethod
    def time_ago(moment: Optional[datetime], now: Optional[datetime] = None) -> str:
        if moment is None:
            return "-"
        now = now or datetime.now()
        seconds = int((now - moment).total_seconds())
        minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
        if days > 0:
            return f"{days}d ago"
        if hours > 0:
            return f"{hours}h ago"
        if minutes > 0:
            return f"{minutes}m ago"
        return "just now"

    @staticmethod
    def uptime(started_at: Optional[datetime], now: Optional[datetime] = None) -> str:
        if started_at is None:
            return "-"
        now = now or datetime.now()
        minutes = int((now - started_at).total_seconds()) // 60
        hours, days = minutes // 60, minutes // 1440
        if days > 0:
            return f"{days}d {hours % 24}h"
        if hours > 0:
            return f"{hours}h {minutes % 60}m"
        return f"{minutes}m"
