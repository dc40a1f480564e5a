import importlib
import json
import os
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock, patch

from core.errors import ConfigError


class TestMain(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.mod = importlib.import_module("main")
        importlib.reload(self.mod)
        projects = {
            "projects": [
                {"topic": "flats", "url": "https://www.yad2.co.il/realestate/rent"},
                {"topic": "cars", "url": "https://www.yad2.co.il/vehicles", "disabled": True},
            ]
        }
        with open(os.environ["PROJECTS_FILE"], "w", encoding="utf-8") as fh:
            json.dump(projects, fh)

    async def asyncTearDown(self):
        os.remove(os.environ["PROJECTS_FILE"])

    async def test_build_monitor_in_silent_mode(self):
        monitor = self.mod.build_monitor("flats", 15, silent=True)
        self.assertTrue(monitor.silent)
        self.assertIsNone(monitor.notifier)
        self.assertEqual(monitor.interval_seconds, 15 * 60)
        self.assertEqual(monitor.topic.url, "https://www.yad2.co.il/realestate/rent")
        await monitor.fetcher.close()

    async def test_build_monitor_rejects_unknown_or_disabled_topic(self):
        with self.assertRaises(ConfigError):
            self.mod.build_monitor("boats", 15, silent=True)
        with self.assertRaises(ConfigError):
            self.mod.build_monitor("cars", 15, silent=True)

    async def test_build_monitor_requires_telegram_unless_silent(self):
        with patch.object(self.mod.settings, "TELEGRAM_API_TOKEN", None):
            with self.assertRaises(ConfigError):
                self.mod.build_monitor("flats", 15)

    async def test_worker_main_logs_marker_and_runs_loop(self):
        monitor = MagicMock()
        monitor.topic.url = "https://www.yad2.co.il/realestate/rent"
        monitor.run_forever = AsyncMock()
        with patch("main.build_monitor", return_value=monitor):
            with self.assertLogs("main", level="INFO") as logs:
                await self.mod.worker_main("flats", 20)
        monitor.run_forever.assert_awaited_once()
        self.assertIn("Starting worker for topic: flats", logs.output[0])

    async def test_main_calls_worker_and_closes_client(self):
        with patch("main.worker_main", new=AsyncMock()) as wm:
            with patch("main.close_client", new=AsyncMock()) as cc:
                code = await self.mod.main(["--topic", "flats", "--interval", "5"])
                wm.assert_awaited_once_with("flats", 5.0)
                cc.assert_awaited()
        self.assertEqual(code, 0)

    async def test_main_returns_error_code_on_config_error(self):
        with patch("main.worker_main", new=AsyncMock(side_effect=ConfigError("bad"))):
            with patch("main.close_client", new=AsyncMock()) as cc:
                code = await self.mod.main(["--topic", "boats"])
        self.assertEqual(code, 1)
        cc.assert_awaited()
