"""Per-topic history of already reported listing identifiers.

Each topic owns one JSON file holding an ordered list of identifiers, oldest
first. The list only grows by appending newly seen identifiers and only
shrinks through FIFO eviction once it exceeds the configured cap; an
identifier missing from the current page is kept, so a delisted-then-relisted
item is not reported twice.

Only the topic's own worker writes its file, so a plain read-modify-write of
the whole file is sufficient.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Iterable, List

from models import DedupResult

logger = logging.getLogger(__name__)


def slugify(topic: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", topic.lower()).strip("-")


class HistoryStore:
    def __init__(self, data_dir: str, max_items: int):
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self.data_dir = Path(data_dir)
        self.max_items = max_items

    def path_for(self, topic: str) -> Path:
        return self.data_dir / f"{slugify(topic)}.json"

    def load(self, topic: str) -> List[str]:
        path = self.path_for(topic)
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error loading history %s: %s", path, exc)
            return []
        if not isinstance(data, list):
            logger.error("History %s is not a list, ignoring it", path)
            return []
        return [str(item) for item in data]

    def save(self, topic: str, identifiers: List[str]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(topic)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(identifiers, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, path)

    def count(self, topic: str) -> int:
        return len(self.load(topic))

    def check_and_update(self, topic: str, current_identifiers: Iterable[str]) -> DedupResult:
        """Reconcile the identifiers seen on the page with the stored history.

        Returns the identifiers not present in history, in page order. All of
        them are appended; if that pushes the history over ``max_items`` the
        oldest entries are evicted. An identifier evicted this way is treated
        as unseen if it shows up again later.
        """
        history = self.load(topic)
        known = set(history)

        new_identifiers: List[str] = []
        for identifier in current_identifiers:
            if identifier in known:
                continue
            known.add(identifier)
            history.append(identifier)
            new_identifiers.append(identifier)

        if not new_identifiers:
            return DedupResult(new_identifiers=[], changed=False)

        excess = len(history) - self.max_items
        if excess > 0:
            history = history[excess:]
            logger.info("Trimmed %s old items to maintain limit of %s", excess, self.max_items)

        self.save(topic, history)
        logger.info("Updated %s: +%s new, %s total", topic, len(new_identifiers), len(history))
        return DedupResult(new_identifiers=new_identifiers, changed=True)
