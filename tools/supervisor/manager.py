"""Background worker processes, one per topic.

A running worker is registered by a ``<slug>.pid`` file in the PID directory
and writes to ``<slug>.log`` in the log directory. The PID file alone proves
nothing: every read goes through a liveness probe, and registrations that
point at dead processes are removed on sight.
"""

from __future__ import annotations

import logging
import subprocess
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from core.errors import AlreadyRunningError, NotRunningError
from core.topics import TopicRegistry
from models import StopOutcome, WorkerProcess, WorkerStatus
from tools.storage.history import slugify
from tools.supervisor.process_control import ProcessControl, PsutilProcessControl
from tools.utils.time_helpers import TimeUtils

logger = logging.getLogger(__name__)

START_MARKER = "Starting worker for topic:"
WORKER_SCRIPT = Path(__file__).resolve().parents[2] / "main.py"
POLL_INTERVAL_SECONDS = 0.1
KILL_CONFIRM_TIMEOUT_SECONDS = 2.0
FOREGROUND_STOP_TIMEOUT_SECONDS = 10.0


class ProcessSupervisor:
    def __init__(
        self,
        pids_dir: str,
        logs_dir: str,
        control: Optional[ProcessControl] = None,
        worker_command: Optional[List[str]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.pids_dir = Path(pids_dir)
        self.logs_dir = Path(logs_dir)
        self.control = control or PsutilProcessControl()
        self.worker_command = worker_command or [sys.executable, str(WORKER_SCRIPT)]
        self._sleep = sleep
        self._clock = clock

    def pid_path(self, topic: str) -> Path:
        return self.pids_dir / f"{slugify(topic)}.pid"

    def log_path(self, topic: str) -> Path:
        return self.logs_dir / f"{slugify(topic)}.log"

    def read_pid(self, topic: str) -> Optional[int]:
        try:
            return int(self.pid_path(topic).read_text().strip())
        except FileNotFoundError:
            return None
        except ValueError:
            logger.warning("Corrupt PID file %s", self.pid_path(topic))
            return None

    def is_running(self, topic: str) -> bool:
        """Probe the registered PID; drop the registration if it is stale."""
        pid_file = self.pid_path(topic)
        if not pid_file.exists():
            return False

        pid = self.read_pid(topic)
        if pid is not None and self.control.is_alive(pid):
            return True

        logger.info("Removing stale PID file for %s (PID: %s)", topic, pid)
        pid_file.unlink(missing_ok=True)
        return False

    def start(self, topic: str, interval_minutes: int, foreground: bool = False) -> WorkerProcess:
        self.pids_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        if self.is_running(topic):
            raise AlreadyRunningError(topic, self.read_pid(topic))

        command = self.worker_command + ["--topic", topic, "--interval", str(interval_minutes)]
        log_path = self.log_path(topic)

        if foreground:
            # attached to the caller's terminal, no registration
            proc = subprocess.Popen(command)
            started_at = datetime.now()
            logger.info("Running %s in foreground (PID: %s)", topic, proc.pid)
            exit_code = self._wait_foreground(topic, proc)
            return WorkerProcess(
                topic=topic, pid=proc.pid, started_at=started_at, log_path="", exit_code=exit_code
            )

        with open(log_path, "a", encoding="utf-8") as log_file:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        self.pid_path(topic).write_text(str(proc.pid))
        logger.info("Started %s (PID: %s, interval: %s min)", topic, proc.pid, interval_minutes)
        return WorkerProcess(topic=topic, pid=proc.pid, started_at=datetime.now(), log_path=str(log_path))

    def stop(self, topic: str, timeout: float = 5.0) -> StopOutcome:
        pid_file = self.pid_path(topic)
        if not pid_file.exists():
            raise NotRunningError(topic)

        pid = self.read_pid(topic)
        if pid is None or not self.control.is_alive(pid):
            pid_file.unlink(missing_ok=True)
            return StopOutcome.NOT_RUNNING

        self.control.request_termination(pid)

        deadline = self._clock() + timeout
        while self._clock() < deadline:
            if not self.control.is_alive(pid):
                pid_file.unlink(missing_ok=True)
                logger.info("Stopped %s gracefully", topic)
                return StopOutcome.GRACEFUL
            self._sleep(POLL_INTERVAL_SECONDS)

        logger.warning("%s did not exit within %ss, force killing PID %s", topic, timeout, pid)
        self.control.force_terminate(pid)

        deadline = self._clock() + KILL_CONFIRM_TIMEOUT_SECONDS
        while self.control.is_alive(pid):
            if self._clock() >= deadline:
                # keep the registration, is_running() drops it once the process is gone
                logger.error("PID %s for %s still alive after kill", pid, topic)
                return StopOutcome.FORCED
            self._sleep(POLL_INTERVAL_SECONDS)
        pid_file.unlink(missing_ok=True)
        return StopOutcome.FORCED

    def _wait_foreground(self, topic: str, proc: subprocess.Popen) -> int:
        """Block until the attached worker exits and return its exit status."""
        try:
            return proc.wait()
        except KeyboardInterrupt:
            # Ctrl+C also reached the worker through the terminal; give it time to finish
            logger.info("Interrupted, waiting for %s to shut down...", topic)
            proc.terminate()
            try:
                return proc.wait(timeout=FOREGROUND_STOP_TIMEOUT_SECONDS)
            except subprocess.TimeoutExpired:
                logger.warning("%s did not exit, force killing PID %s", topic, proc.pid)
                proc.kill()
                return proc.wait()

    def status(self, topic: str) -> WorkerStatus:
        running = self.is_running(topic)
        log_path = self.log_path(topic)

        last_activity = None
        started_at = None
        if log_path.exists():
            last_activity = datetime.fromtimestamp(log_path.stat().st_mtime)
            started_at = self._find_start_time(log_path)

        return WorkerStatus(
            topic=topic,
            running=running,
            pid=self.read_pid(topic) if running else None,
            started_at=started_at,
            last_activity=last_activity,
            log_path=str(log_path) if log_path.exists() else None,
        )

    def tail_log(self, topic: str, lines: int = 50) -> List[str]:
        log_path = self.log_path(topic)
        if not log_path.exists():
            return []
        with open(log_path, encoding="utf-8", errors="replace") as fh:
            return fh.read().splitlines()[-lines:]

    def start_all(self, registry: TopicRegistry, interval_minutes: int) -> List[WorkerProcess]:
        started = []
        for topic in registry.enabled():
            try:
                started.append(self.start(topic.name, interval_minutes))
            except AlreadyRunningError as exc:
                logger.info("[skip] %s", exc)
        return started

    def stop_all(self, registry: TopicRegistry, timeout: float = 5.0) -> dict:
        outcomes = {}
        for topic in registry.all():
            if self.is_running(topic.name):
                outcomes[topic.name] = self.stop(topic.name, timeout=timeout)
        return outcomes

    def status_all(self, registry: TopicRegistry) -> List[WorkerStatus]:
        return [self.status(topic.name) for topic in registry.all()]

    @staticmethod
    def _find_start_time(log_path: Path) -> Optional[datetime]:
        # the log is append-only, so the last marker belongs to the current run
        started_at = None
        try:
            with open(log_path, encoding="utf-8", errors="replace") as fh:
                for line in fh:
                    if START_MARKER in line:
                        started_at = TimeUtils.parse_log_timestamp(line) or started_at
        except OSError as exc:
            logger.debug("Cannot read %s: %s", log_path, exc)
        return started_at
