"""JSON document storage.

Each document is loaded once (missing or unreadable files start empty) and
rewritten in full on every mutation.
"""

import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class JsonDocument:
    """A persisted ``str -> value`` mapping backed by one JSON file."""

    def __init__(self, path: Path):
        self.path = path
        self.data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {self.path.name}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Ignoring {self.path.name}: expected an object, got {type(data).__name__}")
            return {}
        return data

    def save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self.data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to save {self.path.name}: {e}")

    # ==================== Mapping helpers ====================

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value
        self.save()

    def pop(self, key: str) -> Any:
        """Remove *key*, saving only when something was removed."""
        if key not in self.data:
            return None
        value = self.data.pop(key)
        self.save()
        return value

    def remove_many(self, keys: list[str]) -> int:
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                removed += 1
        if removed:
            self.save()
        return removed

    def keys(self) -> list[str]:
        return list(self.data.keys())

    def items(self) -> list[tuple[str, Any]]:
        return list(self.data.items())

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self.data))

    def __len__(self) -> int:
        return len(self.data)
