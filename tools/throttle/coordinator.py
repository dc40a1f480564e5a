"""Cross-process request throttle and shared captcha cooldown.

All worker processes coordinate through two files in the data directory:

* ``.last-request-ts``  - epoch seconds of the most recent request to the origin
* ``.captcha-cooldown`` - JSON ``{"until", "count", "triggeredAt"}`` written when
  a bot challenge was detected

This keeps independent workers from hammering the origin at the same time and
makes *every* worker back off when any one of them trips the bot defense,
since the defense keys on the shared network identity rather than on a topic.

Coordination is advisory. Two workers that check the timestamp at nearly the
same moment may both proceed; a missing or unreadable file means "no
constraint".
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable

from core.errors import ThrottleIOError
from models import CooldownState
from tools.throttle.shared_state import JsonRecord, TimestampRecord
from tools.utils.time_helpers import TimeUtils

logger = logging.getLogger(__name__)

TIMESTAMP_FILE = ".last-request-ts"
COOLDOWN_FILE = ".captcha-cooldown"


class RequestCoordinator:
    def __init__(
        self,
        data_dir: str,
        min_gap_seconds: float,
        max_cooldown_seconds: float,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_gap_seconds = min_gap_seconds
        self.max_cooldown_seconds = max_cooldown_seconds
        self._timestamp = TimestampRecord(Path(data_dir) / TIMESTAMP_FILE)
        self._cooldown = JsonRecord(Path(data_dir) / COOLDOWN_FILE)
        self._clock = clock
        self._sleep = sleep

    def read_last_request(self) -> float:
        if not self._timestamp.exists():
            return 0.0
        try:
            return self._timestamp.read()
        except ThrottleIOError as exc:
            logger.warning("[Throttle] %s, ignoring request gap", exc)
            return 0.0

    def read_cooldown(self) -> CooldownState:
        if not self._cooldown.exists():
            return CooldownState()
        try:
            data = self._cooldown.read()
            return CooldownState(
                until=float(data.get("until") or 0),
                count=int(data.get("count") or 0),
                triggered_at=data.get("triggeredAt"),
            )
        except (ThrottleIOError, TypeError, ValueError) as exc:
            logger.warning("[Throttle] %s, ignoring cooldown", exc)
            return CooldownState()

    async def wait_for_throttle(self) -> float:
        """Sleep until the shared cooldown and the global request gap allow a request.

        Returns the total number of seconds slept.
        """
        waited = 0.0

        cooldown = self.read_cooldown()
        now = self._clock()
        if cooldown.is_active(now):
            wait = cooldown.until - now
            logger.info(
                "[Throttle] Captcha cooldown active (attempt #%s), waiting %.1f min...",
                cooldown.count,
                wait / 60,
            )
            await self._sleep(wait)
            waited += wait

        last_ts = self.read_last_request()
        if last_ts > 0:
            elapsed = self._clock() - last_ts
            if elapsed < self.min_gap_seconds:
                wait = min(self.min_gap_seconds, self.min_gap_seconds - elapsed)
                logger.info(
                    "[Throttle] Another worker requested %ss ago, waiting %ss for gap...",
                    round(max(elapsed, 0)),
                    round(wait),
                )
                await self._sleep(wait)
                waited += wait

        return waited

    def record_request(self) -> None:
        """Stamp the shared timestamp; call right before hitting the network."""
        try:
            self._timestamp.write(self._clock())
        except ThrottleIOError as exc:
            logger.error("[Throttle] Failed to write request timestamp: %s", exc)

    def signal_captcha(self, interval_hint: float) -> CooldownState:
        """Escalate the shared cooldown after a bot challenge.

        The new duration is ``interval_hint * 2**count`` (count being the
        escalation number after this call), capped at ``max_cooldown_seconds``.
        """
        previous = self.read_cooldown()
        count = previous.count + 1
        duration = min(interval_hint * (2**count), self.max_cooldown_seconds)
        state = CooldownState(
            until=self._clock() + duration,
            count=count,
            triggered_at=TimeUtils.utc_now_iso(),
        )
        try:
            self._cooldown.write(
                {"until": state.until, "count": state.count, "triggeredAt": state.triggered_at}
            )
            logger.warning(
                "[Throttle] Captcha signaled (attempt #%s), all workers cooling down for %.1f min",
                count,
                duration / 60,
            )
        except ThrottleIOError as exc:
            logger.error("[Throttle] Failed to write captcha cooldown: %s", exc)
        return state

    def clear_cooldown(self) -> bool:
        """Remove the cooldown record once it has expired. Never shortens an active one."""
        state = self.read_cooldown()
        if state.count == 0 or state.is_active(self._clock()):
            return False
        try:
            self._cooldown.delete()
        except ThrottleIOError as exc:
            logger.error("[Throttle] Failed to clear captcha cooldown: %s", exc)
            return False
        logger.info("[Throttle] Captcha cooldown cleared after %s escalation(s)", state.count)
        return True
