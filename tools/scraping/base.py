"""Abstract base class for all fetchers.

A fetcher turns a listing URL into raw markup. The browser implementation is
the default; the plain HTTP one is a degraded fallback selectable through
settings.
"""

from __future__ import annotations

import abc


class BaseFetcher(abc.ABC):
    """Interface that every fetch strategy must implement."""

    @abc.abstractmethod
    async def fetch(self, url: str) -> str:
        """Return the markup served at *url*.

        Raises:
            BotChallengeError: the origin served a bot-challenge page.
            ExhaustedRetriesError: every attempt failed.
        """

    async def recycle(self) -> None:  # pragma: no cover
        """Drop any reusable session so the next fetch gets a fresh identity."""
        return None

    async def close(self) -> None:  # pragma: no cover
        """Override if the fetcher keeps any open connections / sessions."""
        return None
