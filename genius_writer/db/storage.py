"""Key/value storage media for local persistence.

Everything the writer persists locally goes through a synchronous string
key/value store with a finite capacity. Writes that would exceed the
capacity fail with StorageError and leave the stored value untouched.
"""

import json
import os
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Iterator, Protocol

from genius_writer.core.config import get_settings
from genius_writer.core.errors import StorageError
from genius_writer.core.logging import get_logger

logger = get_logger(__name__)


class KeyValueStorage(Protocol):
    """Synchronous string key/value store."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class MemoryStorage:
    """In-memory storage with a byte quota."""

    def __init__(self, capacity_bytes: int = 5_000_000):
        self.capacity_bytes = capacity_bytes
        self._items: dict[str, str] = {}

    def _used_without(self, key: str) -> int:
        return sum(_entry_size(k, v) for k, v in self._items.items() if k != key)

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        needed = self._used_without(key) + _entry_size(key, value)
        if needed > self.capacity_bytes:
            raise StorageError(
                f"Quota exceeded writing {key}: {needed} > {self.capacity_bytes} bytes"
            )
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._items))


class FileStorage(MemoryStorage):
    """
    Storage persisted as a single JSON object on disk.

    Every write rewrites the whole file through a temp file and os.replace,
    so a crash mid-write leaves the previous file intact.
    """

    def __init__(self, path: Path, capacity_bytes: int = 5_000_000):
        super().__init__(capacity_bytes=capacity_bytes)
        self.path = Path(path)
        self._items = self._load()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read storage file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Storage file {self.path} does not hold a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _flush(self, items: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write storage file {self.path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        previous = self._items.get(key)
        super().set_item(key, value)
        try:
            self._flush(self._items)
        except StorageError:
            if previous is None:
                self._items.pop(key, None)
            else:
                self._items[key] = previous
            raise

    def remove_item(self, key: str) -> None:
        if key not in self._items:
            return
        previous = self._items.pop(key)
        try:
            self._flush(self._items)
        except StorageError:
            self._items[key] = previous
            raise


def read_json(storage: KeyValueStorage, key: str, default):
    """Read and decode a JSON value; a corrupt value is logged and treated as missing."""
    raw = storage.get_item(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Corrupt JSON under storage key {key}: {e}")
        return default


def write_json(storage: KeyValueStorage, key: str, value) -> None:
    storage.set_item(key, json.dumps(value))


@lru_cache(maxsize=1)
def get_storage() -> FileStorage:
    """
    Get the file-backed storage (cached singleton).

    Returns:
        FileStorage at STORAGE_PATH
    """
    settings = get_settings()
    return FileStorage(settings.STORAGE_PATH, capacity_bytes=settings.STORAGE_CAPACITY_BYTES)
