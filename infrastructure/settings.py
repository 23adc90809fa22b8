"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any

DEFAULT_SETTINGS: dict[str, Any] = {
    "app": {"version": "1.2.0"},
    "storage": {
        "data_dir": "~/.medicare",
        "images_dir_name": "medicine_images",
        "store_file": "store.json",
        "backup_file": "backup.json",
    },
    "images": {"filename_prefix": "medicine", "default_extension": "jpg"},
    "backup": {"auto_interval_hours": 24},
    "export": {"dir": "~/.medicare/exports"},
    "logging": {"dir": "~/.medicare/logs", "level": "INFO"},
}


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively overlay `override` onto a copy of `base`."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class JsonSettings:
    """JSON settings reader with dotted-key access over built-in defaults."""

    def __init__(
        self, settings_path: str | Path | None = None, defaults: dict[str, Any] | None = None
    ) -> None:
        base = DEFAULT_SETTINGS if defaults is None else defaults
        self._path = Path(settings_path) if settings_path is not None else None
        loaded: dict[str, Any] = {}
        if self._path is not None:
            if not self._path.exists():
                raise FileNotFoundError(f"settings.json not found: {self._path}")
            with self._path.open("r", encoding="utf-8") as f:
                loaded = json.load(f)
            if not isinstance(loaded, dict):
                raise ValueError(f"settings file must hold a JSON object: {self._path}")
        self._data = _merge(base, loaded)

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def get_path(self, key: str, default: str | None = None) -> Path | None:
        """Return dotted `key` as a path with `~` and environment variables expanded."""
        raw = self.get(key, default)
        if not isinstance(raw, str) or not raw:
            return None
        return Path(os.path.expanduser(os.path.expandvars(raw)))

    def get_float(self, key: str, default: float) -> float:
        """Return dotted `key` as a float, falling back to `default` when invalid."""
        try:
            return float(self.get(key, default))
        except (ValueError, TypeError):
            return default
