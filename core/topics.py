"""Read-only registry of monitored topics backed by the projects JSON file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import validators
from pydantic import BaseModel, Field, ValidationError

from core.config import settings
from core.errors import ConfigError
from tools.storage.history import slugify

logger = logging.getLogger(__name__)


class Topic(BaseModel):
    name: str = Field(alias="topic")
    url: str
    disabled: bool = False

    model_config = {"populate_by_name": True}

    @property
    def enabled(self) -> bool:
        return not self.disabled


class TopicRegistry:
    """Topics keyed by their unique name, plus the file-level history cap."""

    def __init__(self, topics: List[Topic], max_saved_items: Optional[int] = None):
        self._topics: Dict[str, Topic] = {}
        slugs: Dict[str, str] = {}
        for topic in topics:
            if topic.name in self._topics:
                raise ConfigError(f'Duplicate topic "{topic.name}" in projects file')
            if not validators.url(topic.url):
                raise ConfigError(f'Topic "{topic.name}" has an invalid URL: {topic.url}')
            # history, PID and log files are named after the slug
            slug = slugify(topic.name)
            if not slug:
                raise ConfigError(f'Topic name "{topic.name}" has no usable characters')
            if slug in slugs:
                raise ConfigError(
                    f'Topics "{slugs[slug]}" and "{topic.name}" would share the file name "{slug}"'
                )
            slugs[slug] = topic.name
            self._topics[topic.name] = topic

        if max_saved_items is None:
            max_saved_items = settings.MAX_SAVED_ITEMS
        valid_int = isinstance(max_saved_items, int) and not isinstance(max_saved_items, bool)
        if not valid_int or max_saved_items < 1:
            raise ConfigError(f"maxSavedItems must be a positive integer, got {max_saved_items!r}")
        self.max_saved_items = max_saved_items

    @classmethod
    def load(cls, path: Optional[str] = None) -> "TopicRegistry":
        path = Path(path or settings.PROJECTS_FILE)
        if not path.exists():
            logger.warning("Projects file %s not found, no topics configured", path)
            return cls([])

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Cannot read projects file {path}: {exc}") from exc
        if not isinstance(raw, dict) or not isinstance(raw.get("projects", []), list):
            raise ConfigError(f'Projects file {path} must be an object with a "projects" list')

        try:
            topics = [Topic.model_validate(p) for p in raw.get("projects", [])]
        except ValidationError as exc:
            raise ConfigError(f"Invalid topic in projects file {path}: {exc}") from exc
        return cls(topics, max_saved_items=raw.get("maxSavedItems"))

    def all(self) -> List[Topic]:
        return list(self._topics.values())

    def enabled(self) -> List[Topic]:
        return [t for t in self._topics.values() if t.enabled]

    def get(self, name: str) -> Topic:
        topic = self._topics.get(name)
        if topic is None:
            raise ConfigError(f'Topic "{name}" not found in config')
        return topic

    def require_enabled(self, name: str) -> Topic:
        topic = self.get(name)
        if not topic.enabled:
            raise ConfigError(f'Topic "{name}" is disabled')
        return topic
