import random
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock, call

import httpx

from core.config import Settings
from core.errors import BotChallengeError, ExhaustedRetriesError
from tools.scraping.fetcher import BrowserFetcher, PlainFetcher, create_fetcher
from tools.scraping.fingerprint import NAVIGATOR_PLATFORMS, USER_AGENTS, VIEWPORTS, stealth_script

LISTING_HTML = "<html><head><title>Results</title></head><body>ok</body></html>"
CHALLENGE_HTML = "<html><head><title>ShieldSquare Captcha</title></head></body></html>"


def make_page(html=LISTING_HTML, goto_side_effect=None):
    page = MagicMock()
    page.goto = AsyncMock(side_effect=goto_side_effect)
    page.content = AsyncMock(return_value=html)
    page.mouse.move = AsyncMock()
    page.mouse.wheel = AsyncMock()
    return page


def make_session(page):
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    context.add_init_script = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    session = MagicMock()
    session.acquire = AsyncMock(return_value=browser)
    session.recycle = AsyncMock()
    session.close = AsyncMock()
    return session, browser, context


class TestBrowserFetcher(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.sleep = AsyncMock()

    async def asyncTearDown(self):
        pass

    def _fetcher(self, session, max_retries=3):
        return BrowserFetcher(
            session, max_retries=max_retries, base_delay=2.0, rng=random.Random(7), sleep=self.sleep
        )

    async def test_fetch_success_uses_consistent_fingerprint(self):
        page = make_page()
        session, browser, context = make_session(page)

        html = await self._fetcher(session).fetch("https://www.yad2.co.il/realestate/rent")

        self.assertEqual(html, LISTING_HTML)
        page.goto.assert_awaited_once_with(
            "https://www.yad2.co.il/realestate/rent", wait_until="networkidle", timeout=30000.0
        )
        kwargs = browser.new_context.await_args.kwargs
        self.assertIn(kwargs["viewport"], VIEWPORTS)
        self.assertIn(kwargs["device_scale_factor"], (1, 2))
        identity = next(i for i in USER_AGENTS if i.user_agent == kwargs["user_agent"])
        headers = kwargs["extra_http_headers"]
        self.assertEqual(headers["sec-ch-ua-platform"], f'"{identity.platform}"')
        self.assertIn(f'v="{identity.chrome_major}"', headers["sec-ch-ua"])
        script = context.add_init_script.await_args.args[0]
        self.assertIn("'webdriver', { get: () => undefined }", script)
        self.assertIn("'plugins'", script)
        self.assertIn(f"'{NAVIGATOR_PLATFORMS[identity.platform]}'", script)
        self.assertTrue(page.mouse.move.await_count >= 1)
        self.assertTrue(page.mouse.wheel.await_count >= 2)
        context.close.assert_awaited_once()
        session.mark_used.assert_called_once()
        session.recycle.assert_not_awaited()

    async def test_retry_backs_off_and_recycles_session(self):
        page = make_page(goto_side_effect=[RuntimeError("timeout"), RuntimeError("reset"), None])
        session, _, context = make_session(page)

        html = await self._fetcher(session).fetch("https://x.test/list")

        self.assertEqual(html, LISTING_HTML)
        self.assertEqual(session.recycle.await_count, 2)
        self.assertIn(call(4.0), self.sleep.await_args_list)
        self.assertIn(call(8.0), self.sleep.await_args_list)
        self.assertEqual(context.close.await_count, 3)

    async def test_exhausted_retries_wraps_last_error(self):
        last = RuntimeError("third")
        page = make_page(goto_side_effect=[RuntimeError("first"), RuntimeError("second"), last])
        session, _, _ = make_session(page)

        with self.assertRaises(ExhaustedRetriesError) as ctx:
            await self._fetcher(session).fetch("https://x.test/list")

        self.assertEqual(ctx.exception.attempts, 3)
        self.assertIs(ctx.exception.last_error, last)
        self.assertIs(ctx.exception.__cause__, last)
        session.mark_used.assert_not_called()

    async def test_challenge_page_is_not_retried(self):
        page = make_page(html=CHALLENGE_HTML)
        session, _, _ = make_session(page)

        with self.assertRaises(BotChallengeError):
            await self._fetcher(session).fetch("https://x.test/list")

        page.goto.assert_awaited_once()
        session.recycle.assert_not_awaited()

    async def test_recycle_and_close_delegate_to_session(self):
        session, _, _ = make_session(make_page())
        fetcher = self._fetcher(session)
        await fetcher.recycle()
        await fetcher.close()
        session.recycle.assert_awaited_once()
        session.close.assert_awaited_once()

    async def test_masking_script_matches_every_identity(self):
        for identity in USER_AGENTS:
            script = stealth_script(identity)
            self.assertIn("navigator, 'webdriver'", script)
            self.assertIn(f"get: () => '{NAVIGATOR_PLATFORMS[identity.platform]}'", script)
            self.assertIn("'he-IL', 'he', 'en-US', 'en'", script)


class TestPlainFetcher(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.sleep = AsyncMock()
        self.client = MagicMock()

    async def asyncTearDown(self):
        pass

    def _response(self, text):
        resp = MagicMock(text=text)
        resp.raise_for_status.return_value = None
        return resp

    async def test_fetch_retries_http_errors(self):
        self.client.get = AsyncMock(
            side_effect=[httpx.ConnectError("down"), self._response(LISTING_HTML)]
        )
        fetcher = PlainFetcher(client=self.client, max_retries=3, base_delay=1.0, sleep=self.sleep)

        html = await fetcher.fetch("https://x.test")

        self.assertEqual(html, LISTING_HTML)
        self.sleep.assert_awaited_once_with(2.0)
        ua = self.client.get.await_args.kwargs["headers"]["User-Agent"]
        self.assertIn(ua, [i.user_agent for i in USER_AGENTS])

    async def test_fetch_exhausted(self):
        self.client.get = AsyncMock(side_effect=httpx.ConnectError("down"))
        fetcher = PlainFetcher(client=self.client, max_retries=2, base_delay=1.0, sleep=self.sleep)
        with self.assertRaises(ExhaustedRetriesError):
            await fetcher.fetch("https://x.test")
        self.assertEqual(self.client.get.await_count, 2)

    async def test_challenge_detected(self):
        self.client.get = AsyncMock(return_value=self._response(CHALLENGE_HTML))
        fetcher = PlainFetcher(client=self.client, sleep=self.sleep)
        with self.assertRaises(BotChallengeError):
            await fetcher.fetch("https://x.test")

    async def test_close_leaves_external_client_open(self):
        self.client.aclose = AsyncMock()
        await PlainFetcher(client=self.client).close()
        self.client.aclose.assert_not_awaited()


class TestCreateFetcher(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        pass

    async def asyncTearDown(self):
        pass

    async def test_selects_strategy_from_settings(self):
        browser = create_fetcher(Settings(USE_BROWSER=True, BROWSER_MAX_USES=4))
        self.assertIsInstance(browser, BrowserFetcher)
        self.assertEqual(browser.session.max_uses, 4)

        plain = create_fetcher(Settings(USE_BROWSER=False))
        self.assertIsInstance(plain, PlainFetcher)
        await plain.close()
