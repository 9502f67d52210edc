#  Copyright (c) 2025 Tom Villani, Ph.D.
"""Audit log of past searches, kept by the background context.

The log is a capped FIFO ring buffer stored as one list under a single storage
key. Storage offers only whole-value get/set, so every append is a
read-modify-write of the full list. Failures never propagate into search
handling: they are logged and the append is dropped.

Classes
-------
- StorageArea: protocol for key/value persistence
- MemoryStorage: in-process storage with JSON-copied values
- JsonFileStorage: a JSON document on disk, replaced atomically on write
- SearchLogStore: the ring buffer itself

"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from collections import deque
from pathlib import Path
from typing import Any, Protocol

from multifind.exceptions import ProtocolError, StorageError
from multifind.options.logstore import LogStoreOptions
from multifind.protocol import SearchLogEntry

logger = logging.getLogger(__name__)


class StorageArea(Protocol):
    """Key/value persistence offering whole-value reads and writes."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStorage:
    """Storage area held in memory. Values are JSON-copied in and out."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return copy.deepcopy(default)
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key!r} is not JSON-serializable", key=key, original_error=e) from e


class JsonFileStorage:
    """Storage area backed by a single JSON object on disk.

    Parameters
    ----------
    path : str or Path
        File holding the storage object; created on first write

    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in storage file {self.path}: {e}", original_error=e) from e
        except OSError as e:
            raise StorageError(f"Error reading storage file {self.path}: {e}", original_error=e) from e
        if not isinstance(data, dict):
            raise StorageError(f"Storage file {self.path} must contain an object, got {type(data).__name__}")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".multifind-", suffix=".json", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Error writing storage file {self.path}: {e}", key=key, original_error=e) from e


def create_storage(options: LogStoreOptions) -> StorageArea:
    """Return file-backed storage when ``options.storage_path`` is set, else memory storage."""
    if options.storage_path:
        return JsonFileStorage(options.storage_path)
    return MemoryStorage()


class SearchLogStore:
    """Capped, append-only log of past searches.

    Parameters
    ----------
    storage : StorageArea
        Backing key/value storage
    options : LogStoreOptions, optional
        Cap and storage key

    """

    def __init__(self, storage: StorageArea, options: LogStoreOptions | None = None) -> None:
        """Bind the store to its storage area."""
        self.storage = storage
        self.options = options or LogStoreOptions()

    @property
    def max_entries(self) -> int:
        return self.options.max_entries

    def initialize(self, reset: bool = False) -> None:
        """Create the empty log list, or wipe it when ``reset`` is set."""
        try:
            if reset or self.storage.get(self.options.storage_key) is None:
                self.storage.set(self.options.storage_key, [])
        except StorageError as e:
            logger.error("Could not initialize search log: %s", e)

    def append(self, entry: SearchLogEntry) -> bool:
        """Append ``entry``, evicting the oldest entries beyond the cap.

        Returns
        -------
        bool
            True if the entry was stored, False if storage failed

        """
        try:
            existing = self._read_raw()
            logs = deque(existing, maxlen=self.max_entries)
            logs.append(entry.to_dict())
            self.storage.set(self.options.storage_key, list(logs))
        except StorageError as e:
            logger.error("Error storing search log: %s", e)
            return False
        logger.debug("Search logged: %r (%d matches)", entry.query, entry.match_count)
        return True

    def entries(self, limit: int | None = None) -> list[SearchLogEntry]:
        """Return stored entries, oldest first; ``limit`` keeps only the most recent ones."""
        try:
            raw = self._read_raw()
        except StorageError as e:
            logger.error("Error reading search log: %s", e)
            return []

        decoded: list[SearchLogEntry] = []
        for item in raw:
            try:
                decoded.append(SearchLogEntry.from_dict(item))
            except ProtocolError as e:
                logger.warning("Skipping malformed search log entry: %s", e)
        if limit is not None:
            decoded = decoded[-limit:] if limit > 0 else []
        return decoded

    def clear(self) -> None:
        self.initialize(reset=True)

    def _read_raw(self) -> list[Any]:
        raw = self.storage.get(self.options.storage_key, [])
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise StorageError(
                f"Stored value for {self.options.storage_key!r} must be a list, got {type(raw).__name__}",
                key=self.options.storage_key,
            )
        return raw


__all__ = ["StorageArea", "MemoryStorage", "JsonFileStorage", "create_storage", "SearchLogStore"]
