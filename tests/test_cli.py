from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock, patch

import cli
from core.errors import NotifierDispatchError, NotRunningError
from tools.monitoring.monitor import CycleResult


def make_monitor(result=None, error=None, notifier=None):
    monitor = MagicMock()
    monitor.run_once = AsyncMock(return_value=result, side_effect=error)
    monitor.fetcher.close = AsyncMock()
    monitor.notifier = notifier
    return monitor


class TestRunTopics(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.close_patch = patch("cli.close_client", new=AsyncMock())
        self.close_client = self.close_patch.start()

    async def asyncTearDown(self):
        self.close_patch.stop()

    async def test_all_topics_succeed(self):
        ok = make_monitor(CycleResult(new_identifiers=["a"], total=3))
        with patch("cli.build_monitor", return_value=ok) as build:
            code = await cli.run_topics(["flats"], silent=True)
        self.assertEqual(code, 0)
        build.assert_called_once_with("flats", cli.settings.DEFAULT_INTERVAL_MINUTES, silent=True)
        ok.fetcher.close.assert_awaited_once()
        self.close_client.assert_awaited_once()

    async def test_failure_is_reported_and_other_topics_still_run(self):
        notifier = MagicMock()
        notifier.notify_scan_failed = AsyncMock(side_effect=NotifierDispatchError("down", {}))
        failing = make_monitor(error=RuntimeError("boom"), notifier=notifier)
        ok = make_monitor(CycleResult(total=0))
        with patch("cli.build_monitor", side_effect=[failing, ok]):
            code = await cli.run_topics(["flats", "rooms"], silent=False)
        self.assertEqual(code, 1)
        notifier.notify_scan_failed.assert_awaited_once_with("flats", "boom")
        ok.run_once.assert_awaited_once()
        failing.fetcher.close.assert_awaited_once()


class TestCommands(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.supervisor = MagicMock()
        self.patch = patch("cli.get_supervisor", return_value=self.supervisor)
        self.patch.start()

    async def asyncTearDown(self):
        self.patch.stop()

    async def test_stop_not_running_is_not_an_error(self):
        self.supervisor.stop.side_effect = NotRunningError("flats")
        self.assertEqual(cli.main(["stop", "flats"]), 0)

    async def test_logs_prints_tail(self):
        self.supervisor.tail_log.return_value = ["one", "two"]
        with patch("builtins.print") as printed:
            self.assertEqual(cli.main(["logs", "flats", "-n", "2"]), 0)
        self.supervisor.tail_log.assert_called_once_with("flats", 2)
        self.assertEqual(printed.call_count, 2)

    async def test_foreground_start_returns_worker_exit_status(self):
        self.supervisor.start.return_value = MagicMock(topic="flats", pid=9, exit_code=3)
        with patch("cli.TopicRegistry") as registry, patch("builtins.print"):
            self.assertEqual(cli.main(["start", "flats", "-f"]), 3)
        registry.load.return_value.require_enabled.assert_called_once_with("flats")
        self.supervisor.start.assert_called_once_with("flats", cli.settings.DEFAULT_INTERVAL_MINUTES, foreground=True)
