"""Key-value persistence backends.

`JsonFileKeyValueStore` keeps the whole key space in one JSON object on disk
and rewrites it atomically on every change. `MemoryKeyValueStore` is the
in-process variant used by tests.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
import tempfile
import threading

from loguru import logger

from core.errors import StorageUnavailable


class JsonFileKeyValueStore:
    """String key-value store backed by a single JSON document."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        """Location of the backing file."""
        return self._path

    def get(self, key: str) -> str | None:
        """Return the value for `key`, or None when absent."""
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        """Store `value` under `key` and flush the document."""
        if not isinstance(value, str):
            raise TypeError(f"value for {key!r} must be str, got {type(value).__name__}")
        with self._lock:
            data = dict(self._load())
            data[key] = value
            self._flush(data)

    def remove(self, key: str) -> None:
        """Delete `key`; no-op when absent."""
        with self._lock:
            data = self._load()
            if key not in data:
                return
            data = dict(data)
            del data[key]
            self._flush(data)

    def keys(self) -> list[str]:
        """All stored keys."""
        with self._lock:
            return list(self._load())

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data
        if not self._path.exists():
            self._data = {}
            return self._data
        try:
            with self._path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except OSError as ex:
            logger.error("Read key-value file failed {}: {}", self._path, ex)
            raise StorageUnavailable(f"cannot read {self._path}: {ex}") from ex
        except json.JSONDecodeError as ex:
            logger.error("Key-value file is not valid JSON {}: {}", self._path, ex)
            raise StorageUnavailable(f"{self._path} is not valid JSON") from ex
        if not isinstance(raw, dict):
            raise StorageUnavailable(f"{self._path} does not hold a JSON object")
        self._data = {str(k): str(v) for k, v in raw.items()}
        return self._data

    def _flush(self, data: dict[str, str]) -> None:
        """Write `data` to a temp file next to the target, then swap it in."""
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=str(self._path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as ex:
            logger.error("Write key-value file failed {}: {}", self._path, ex)
            raise StorageUnavailable(f"cannot write {self._path}: {ex}") from ex
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        self._data = data


class MemoryKeyValueStore:
    """Dict-backed key-value store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> str | None:
        """Return the value for `key`, or None when absent."""
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        """Store `value` under `key`."""
        if not isinstance(value, str):
            raise TypeError(f"value for {key!r} must be str, got {type(value).__name__}")
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        """Delete `key`; no-op when absent."""
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        """All stored keys."""
        with self._lock:
            return list(self._data)
