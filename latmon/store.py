"""Key/value persistence stores for latmon settings."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class StoreError(OSError):
    """Raised when a store cannot be read or written."""


class Store(Protocol):
    """Protocol for durable key/value storage."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default when absent."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key."""
        ...


class MemoryStore:
    """Store kept in a dict; nothing survives the process."""

    def __init__(self, data: dict | None = None):
        self._data = dict(data) if data else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class JsonFileStore:
    """Store that keeps every key in a single JSON document on disk.

    The document is read lazily on first access and rewritten in full on
    every set(). Writes go to a temporary file in the same directory which is
    then renamed over the target, so a crash never leaves a truncated file.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._data: dict | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        try:
            data = dict(self._load())
        except StoreError as e:
            logger.warning("Replacing unreadable store %s: %s", self.path, e)
            data = {}
        data[key] = value
        self._write(data)
        self._data = data

    def _load(self) -> dict:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            logger.debug("Store file absent, starting empty: %s", self.path)
            self._data = {}
            return self._data

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read store {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreError(f"Store {self.path} does not contain a JSON object")

        self._data = data
        return self._data

    def _write(self, data: dict):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StoreError(f"Cannot write store {self.path}: {e}") from e

        logger.debug("Store written: %s (keys: %d)", self.path, len(data))
