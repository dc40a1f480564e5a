"""Liveness probing and termination of worker processes by PID."""

from __future__ import annotations

import abc
import logging

import psutil

logger = logging.getLogger(__name__)


class ProcessControl(abc.ABC):
    @abc.abstractmethod
    def is_alive(self, pid: int) -> bool:
        """Return True if *pid* names a process that has not exited."""

    @abc.abstractmethod
    def request_termination(self, pid: int) -> None:
        """Ask the process to shut down gracefully."""

    @abc.abstractmethod
    def force_terminate(self, pid: int) -> None:
        """Kill the process without giving it a chance to clean up."""


class PsutilProcessControl(ProcessControl):
    """psutil-backed control: SIGTERM/SIGKILL on POSIX, TerminateProcess on Windows."""

    def is_alive(self, pid: int) -> bool:
        try:
            proc = psutil.Process(pid)
            # an exited child we have not reaped yet still shows up as a zombie
            return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True

    def request_termination(self, pid: int) -> None:
        try:
            psutil.Process(pid).terminate()
        except psutil.NoSuchProcess:
            logger.debug("Process %s exited before terminate", pid)

    def force_terminate(self, pid: int) -> None:
        try:
            psutil.Process(pid).kill()
        except psutil.NoSuchProcess:
            logger.debug("Process %s exited before kill", pid)
