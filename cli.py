"""Operator commands: manage background workers or run one-shot scrapes."""

import argparse
import asyncio
import logging
import sys
from typing import List

from clients import close_client
from core.config import settings
from core.errors import AlreadyRunningError, ConfigError, NotifierDispatchError, NotRunningError
from core.topics import TopicRegistry
from main import build_monitor
from models import StopOutcome
from tools.storage.history import HistoryStore
from tools.supervisor.manager import ProcessSupervisor
from tools.utils.time_helpers import TimeUtils

logger = logging.getLogger(__name__)


def get_supervisor() -> ProcessSupervisor:
    return ProcessSupervisor(settings.PIDS_DIR, settings.LOGS_DIR)


def cmd_start(args) -> int:
    registry = TopicRegistry.load()
    supervisor = get_supervisor()

    if args.all or not args.topic:
        started = supervisor.start_all(registry, args.interval)
        for worker in started:
            print(f'  [ok]   "{worker.topic}" started (PID: {worker.pid})')
        print(f"Started {len(started)} worker(s).")
        return 0

    try:
        registry.require_enabled(args.topic)
        worker = supervisor.start(args.topic, args.interval, foreground=args.foreground)
    except (ConfigError, AlreadyRunningError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if args.foreground:
        print(f'Worker "{worker.topic}" exited with status {worker.exit_code}')
        return worker.exit_code or 0
    print(f'Started "{worker.topic}" (PID: {worker.pid}, interval: {args.interval} min)')
    return 0


def cmd_stop(args) -> int:
    registry = TopicRegistry.load()
    supervisor = get_supervisor()

    if args.all or not args.topic:
        outcomes = supervisor.stop_all(registry, timeout=settings.STOP_TIMEOUT_SECONDS)
        if not outcomes:
            print("No workers are currently running.")
        for topic, outcome in outcomes.items():
            print(f'  [ok]   "{topic}" {outcome.value}')
        return 0

    try:
        outcome = supervisor.stop(args.topic, timeout=settings.STOP_TIMEOUT_SECONDS)
    except NotRunningError:
        print(f'Worker "{args.topic}" is not running.')
        return 0
    if outcome is StopOutcome.NOT_RUNNING:
        print(f'Worker "{args.topic}" was not running; removed stale registration.')
    elif outcome is StopOutcome.GRACEFUL:
        print(f'Stopped "{args.topic}" gracefully.')
    else:
        print(f'Force killed "{args.topic}".')
    return 0


def cmd_status(args) -> int:
    registry = TopicRegistry.load()
    try:
        topic = registry.get(args.topic)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    status = get_supervisor().status(topic.name)
    store = HistoryStore(settings.DATA_DIR, registry.max_saved_items)
    print(f'Status for "{topic.name}"')
    print(f"  URL: {topic.url}")
    print(f"  Disabled: {'Yes' if topic.disabled else 'No'}")
    print(f"  Status: {'Running' if status.running else 'Stopped'}")
    print(f"  PID: {status.pid or '-'}")
    print(f"  Started: {status.started_at or '-'}")
    print(f"  Items tracked: {store.count(topic.name)}")
    print(f"  Last activity: {TimeUtils.time_ago(status.last_activity)}")
    return 0


def cmd_list(args) -> int:
    registry = TopicRegistry.load()
    statuses = get_supervisor().status_all(registry)
    if not statuses:
        print("No topics configured.")
    for status in statuses:
        state = "running" if status.running else "stopped"
        print(
            f"{status.topic:<30} {state:<8} pid={status.pid or '-':<8} "
            f"uptime={TimeUtils.uptime(status.started_at if status.running else None):<8} "
            f"last={TimeUtils.time_ago(status.last_activity)}"
        )
    return 0


def cmd_logs(args) -> int:
    lines = get_supervisor().tail_log(args.topic, args.lines)
    if not lines:
        print(f'No logs found for "{args.topic}"')
    for line in lines:
        print(line)
    return 0


async def run_topics(names: List[str], silent: bool) -> int:
    failed = 0
    try:
        for name in names:
            monitor = build_monitor(name, settings.DEFAULT_INTERVAL_MINUTES, silent=silent)
            try:
                result = await monitor.run_once()
                print(f'  [ok]   "{name}": {len(result.new_identifiers)} new items ({result.total} on page)')
            except Exception as exc:
                failed += 1
                print(f'  [fail] "{name}": {exc}', file=sys.stderr)
                if monitor.notifier is not None:
                    try:
                        await monitor.notifier.notify_scan_failed(name, str(exc))
                    except NotifierDispatchError as notify_exc:
                        logger.error("[Notifier] %s", notify_exc)
            finally:
                await monitor.fetcher.close()
    finally:
        await close_client()
    return 1 if failed else 0


def cmd_run(args) -> int:
    try:
        registry = TopicRegistry.load()
        if args.all or not args.topic:
            names = [t.name for t in registry.enabled()]
        else:
            names = [registry.require_enabled(args.topic).name]
        return asyncio.run(run_topics(names, args.silent))
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="listing-watch", description="Listing watcher with worker management")
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Start worker(s) as background processes")
    start.add_argument("topic", nargs="?")
    start.add_argument("-i", "--interval", type=int, default=settings.DEFAULT_INTERVAL_MINUTES)
    start.add_argument("-f", "--foreground", action="store_true")
    start.add_argument("-a", "--all", action="store_true")
    start.set_defaults(func=cmd_start)

    stop = sub.add_parser("stop", help="Stop running worker(s)")
    stop.add_argument("topic", nargs="?")
    stop.add_argument("-a", "--all", action="store_true")
    stop.set_defaults(func=cmd_stop)

    status = sub.add_parser("status", help="Detailed status for one topic")
    status.add_argument("topic")
    status.set_defaults(func=cmd_status)

    lst = sub.add_parser("list", aliases=["ls"], help="List all topics and their worker state")
    lst.set_defaults(func=cmd_list)

    logs = sub.add_parser("logs", help="Show the tail of a worker log")
    logs.add_argument("topic")
    logs.add_argument("-n", "--lines", type=int, default=50)
    logs.set_defaults(func=cmd_logs)

    run = sub.add_parser("run", help="Run a single scrape (one-shot mode)")
    run.add_argument("topic", nargs="?")
    run.add_argument("-s", "--silent", action="store_true")
    run.add_argument("-a", "--all", action="store_true")
    run.set_defaults(func=cmd_run)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
