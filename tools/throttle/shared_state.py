"""Small typed file records shared between worker processes.

Records are whole-file, last-write-wins: no locking, a writer simply replaces
the file. Readers that hit a missing or corrupt file get ``ThrottleIOError``
and callers decide how to degrade.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

from core.errors import ThrottleIOError


class SharedRecord:
    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read_text(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ThrottleIOError(f"Cannot read {self.path}: {exc}") from exc

    def write_text(self, content: str) -> None:
        tmp_path = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise ThrottleIOError(f"Cannot write {self.path}: {exc}") from exc

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            # another worker got there first
            pass
        except OSError as exc:
            raise ThrottleIOError(f"Cannot delete {self.path}: {exc}") from exc


class TimestampRecord(SharedRecord):
    def read(self) -> float:
        content = self.read_text()
        try:
            return float(content)
        except ValueError as exc:
            raise ThrottleIOError(f"Malformed timestamp in {self.path}: {content!r}") from exc

    def write(self, timestamp: float) -> None:
        self.write_text(repr(timestamp))


class JsonRecord(SharedRecord):
    def read(self) -> Dict[str, Any]:
        content = self.read_text()
        try:
            data = json.loads(content)
        except ValueError as exc:
            raise ThrottleIOError(f"Malformed JSON in {self.path}") from exc
        if not isinstance(data, dict):
            raise ThrottleIOError(f"Unexpected JSON shape in {self.path}")
        return data

    def write(self, data: Dict[str, Any]) -> None:
        self.write_text(json.dumps(data))
