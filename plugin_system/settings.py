"""Key/value settings stores.

The plugin manager persists its per-plugin settings as one JSON object under
the ``pluginSettings`` key. Any object with ``get``/``set`` works as a store;
two implementations are provided.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class SettingsStore(Protocol):
    """Minimal key/value store used for persisted plugin settings."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemorySettingsStore:
    """In-process store. Values are deep-copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self._data.get(key, default))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class JsonFileSettingsStore:
    """Store backed by a single JSON file.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace`` so the file is never partially written.

    Example:
        >>> store = JsonFileSettingsStore(Path("~/.plugin-system/settings.json"))
        >>> store.set("pluginSettings", {"acme": {"autoUpdateEnabled": True}})
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid settings file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Settings file must hold a JSON object: {self.path}")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._write(json.dumps(data, indent=2, sort_keys=True))

    def _write(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        logger.debug("Wrote settings to %s", self.path)
