"""Exception types shared by the worker, supervisor and fetch pipeline."""

from __future__ import annotations

from typing import Dict, Optional


class WatchError(Exception):
    """Base class for every error raised by this project."""


class ConfigError(WatchError):
    """Topic missing, disabled or otherwise unusable. Never retried."""


class AlreadyRunningError(WatchError):
    def __init__(self, topic: str, pid: int):
        super().__init__(f'Worker "{topic}" is already running (PID: {pid})')
        self.topic = topic
        self.pid = pid


class NotRunningError(WatchError):
    def __init__(self, topic: str):
        super().__init__(f'Worker "{topic}" is not running (no PID file)')
        self.topic = topic


class ThrottleIOError(WatchError):
    """A shared coordination file could not be read or written."""


class BotChallengeError(WatchError):
    """The origin answered with a bot-challenge page instead of listings."""


class ExhaustedRetriesError(WatchError):
    def __init__(self, attempts: int, last_error: Optional[BaseException]):
        super().__init__(f"Failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class NotifierDispatchError(WatchError):
    def __init__(self, message: str, results: Optional[Dict[str, bool]] = None):
        super().__init__(message)
        self.results = results or {}
