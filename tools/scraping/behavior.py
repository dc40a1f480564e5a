"""Human-like interaction on a loaded page.

None of this is needed to read the markup; it only exists so behavioural
scoring on the origin sees pointer and scroll activity resembling a person
skimming the results.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def human_pause(
    low: float, high: float, rng: Optional[random.Random] = None, sleep: Sleep = asyncio.sleep
) -> float:
    rng = rng or random
    delay = rng.uniform(low, high)
    await sleep(delay)
    return delay


async def simulate_human_behavior(
    page,
    viewport: Dict[str, int],
    rng: Optional[random.Random] = None,
    sleep: Sleep = asyncio.sleep,
) -> None:
    """Glance around, then scroll down the results in a few uneven steps."""
    rng = rng or random
    width, height = viewport["width"], viewport["height"]

    await page.mouse.move(
        rng.uniform(100, width - 100),
        rng.uniform(100, height - 100),
        steps=rng.randint(5, 15),
    )
    await human_pause(0.2, 0.6, rng, sleep)

    for _ in range(rng.randint(2, 4)):
        await page.mouse.wheel(0, rng.randint(200, 600))
        await human_pause(0.4, 1.2, rng, sleep)

        if rng.random() > 0.5:
            await page.mouse.move(
                rng.uniform(200, width - 200),
                rng.uniform(100, height - 100),
                steps=rng.randint(3, 10),
            )
