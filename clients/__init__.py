"""
Shared async HTTP client for the Telegram Bot API.
"""

from typing import Optional

import httpx

TELEGRAM_API_BASE_URL = "https://api.telegram.org"

_client: Optional[httpx.AsyncClient] = None


def get_client() -> httpx.AsyncClient:
    """Get the global async client instance."""
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            base_url=TELEGRAM_API_BASE_URL,
            timeout=30.0,
            headers={"Content-Type": "application/json"},
        )
    return _client


async def close_client():
    """Close the global async client."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
