from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock

from tools.scraping.session import BrowserSession


def fake_playwright_factory():
    """Factory mimicking ``async_playwright`` that hands out a new browser per launch."""
    launched = []

    def launch(**kwargs):
        browser = MagicMock()
        browser.is_connected.return_value = True
        browser.close = AsyncMock()
        launched.append((browser, kwargs))
        return browser

    pw = MagicMock()
    pw.chromium.launch = AsyncMock(side_effect=launch)
    pw.stop = AsyncMock()

    def factory():
        starter = MagicMock()
        starter.start = AsyncMock(return_value=pw)
        return starter

    return factory, pw, launched


class TestBrowserSession(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.factory, self.pw, self.launched = fake_playwright_factory()
        self.session = BrowserSession(max_uses=2, headless=True, playwright_factory=self.factory)

    async def asyncTearDown(self):
        await self.session.close()

    async def test_lazy_launch_and_reuse(self):
        self.assertFalse(self.session.is_open)
        first = await self.session.acquire()
        self.session.mark_used()
        second = await self.session.acquire()
        self.assertIs(first, second)
        self.assertEqual(len(self.launched), 1)
        kwargs = self.launched[0][1]
        self.assertTrue(kwargs["headless"])
        self.assertIn("--disable-blink-features=AutomationControlled", kwargs["args"])
        self.assertTrue(any(a.startswith("--window-size=") for a in kwargs["args"]))

    async def test_recycled_after_max_uses(self):
        first = await self.session.acquire()
        self.session.mark_used()
        self.session.mark_used()
        second = await self.session.acquire()
        self.assertIsNot(first, second)
        first.close.assert_awaited_once()
        self.assertEqual(self.session.use_count, 0)

    async def test_forced_recycle(self):
        first = await self.session.acquire()
        await self.session.recycle()
        self.assertFalse(self.session.is_open)
        first.close.assert_awaited_once()
        self.pw.stop.assert_awaited()
        second = await self.session.acquire()
        self.assertIsNot(first, second)

    async def test_disconnected_browser_is_replaced(self):
        first = await self.session.acquire()
        first.is_connected.return_value = False
        second = await self.session.acquire()
        self.assertIsNot(first, second)

    async def test_failed_launch_stops_playwright(self):
        started = []

        def factory():
            pw = MagicMock()
            pw.chromium.launch = AsyncMock(side_effect=RuntimeError("no chromium"))
            pw.stop = AsyncMock()
            started.append(pw)
            starter = MagicMock()
            starter.start = AsyncMock(return_value=pw)
            return starter

        session = BrowserSession(max_uses=2, playwright_factory=factory)
        for _ in range(2):
            with self.assertRaises(RuntimeError):
                await session.acquire()
        await session.close()

        self.assertEqual(len(started), 2)
        for pw in started:
            pw.stop.assert_awaited_once()
        self.assertFalse(session.is_open)

    async def test_close_errors_are_ignored(self):
        browser = await self.session.acquire()
        browser.close = AsyncMock(side_effect=RuntimeError("already gone"))
        await self.session.close()
        self.assertFalse(self.session.is_open)
