from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Listing:
    def __init__(
        self,
        identifier,
        title=None,
        price=None,
        address=None,
        link=None,
    ):
        self.identifier = identifier
        self.title = title
        self.price = price
        self.address = address
        self.link = link


@dataclass
class DedupResult:
    new_identifiers: List[str] = field(default_factory=list)
    changed: bool = False


@dataclass
class CooldownState:
    until: float = 0.0
    count: int = 0
    triggered_at: Optional[str] = None

    def is_active(self, now: float) -> bool:
        return self.until > now


class StopOutcome(str, Enum):
    GRACEFUL = "graceful"
    FORCED = "forced"
    NOT_RUNNING = "not_running"


@dataclass
class WorkerProcess:
    topic: str
    pid: int
    started_at: datetime
    log_path: str
    exit_code: Optional[int] = None


@dataclass
class WorkerStatus:
    topic: str
    running: bool
    pid: Optional[int] = None
    started_at: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    log_path: Optional[str] = None
