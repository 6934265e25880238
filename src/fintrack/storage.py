"""
Key-value stores — where the ledger, recurring definitions, categories,
and investments are persisted.

Each collection lives under its own key as a JSON value. Stores never raise
for missing or unreadable data: ``get`` returns ``None`` and ``set`` returns
``False`` on failure.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger("fintrack.storage")

TRANSACTIONS_KEY = "fintrack_transactions"
RECURRING_KEY = "fintrack_recurring"
CATEGORIES_KEY = "fintrack_categories"
INVESTMENTS_KEY = "fintrack_investments"

ALL_KEYS = (TRANSACTIONS_KEY, RECURRING_KEY, CATEGORIES_KEY, INVESTMENTS_KEY)


class KeyValueStore(ABC):
    """Abstract JSON key-value store.

    To add a backend, subclass this and implement ``get``, ``set`` and
    ``delete``.
    """

    name: str = "base"

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value stored under ``key``, or ``None``."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> bool:
        """Store a JSON-serializable value. Returns ``False`` on failure."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns ``False`` on failure."""
        ...


class MemoryStore(KeyValueStore):
    """Dict-backed store. Values are deep-copied in and out."""

    name = "memory"

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> bool:
        self._data[key] = copy.deepcopy(value)
        return True

    async def delete(self, key: str) -> bool:
        self._data.pop(key, None)
        return True


class JsonFileStore(KeyValueStore):
    """All keys in a single JSON document on disk.

    Writes are serialized with a lock and land atomically via a temporary
    file in the same directory.
    """

    name = "json"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: top-level value is not an object", self.path)
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".fintrack-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def get(self, key: str) -> Any | None:
        return self._read().get(key)

    async def set(self, key: str, value: Any) -> bool:
        async with self._lock:
            data = self._read()
            data[key] = value
            try:
                self._write(data)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Failed to save %s to %s: %s", key, self.path, e)
                return False
        logger.debug("Saved %s", key)
        return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            data = self._read()
            if key not in data:
                return True
            del data[key]
            try:
                self._write(data)
            except OSError as e:
                logger.error("Failed to delete %s from %s: %s", key, self.path, e)
                return False
        return True
