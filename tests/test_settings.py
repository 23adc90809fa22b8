from __future__ import annotations

import json
from pathlib import Path

import pytest

from infrastructure.settings import JsonSettings


def test_defaults_without_file():
    settings = JsonSettings()
    assert settings.get("images.filename_prefix") == "medicine"
    assert settings.get("backup.auto_interval_hours") == 24
    assert settings.get("missing.key", "fallback") == "fallback"


def test_file_overrides_are_merged(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"backup": {"auto_interval_hours": 6}}), encoding="utf-8")

    settings = JsonSettings(path)

    assert settings.get("backup.auto_interval_hours") == 6
    assert settings.get("storage.store_file") == "store.json"


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        JsonSettings(tmp_path / "nope.json")


def test_non_object_file_raises(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("[1]", encoding="utf-8")
    with pytest.raises(ValueError):
        JsonSettings(path)


def test_get_path_expands_home_and_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MEDICARE_TEST_ROOT", str(tmp_path))
    settings = JsonSettings(
        defaults={"a": {"home": "~/x"}, "b": {"env": "$MEDICARE_TEST_ROOT/data"}}
    )
    assert settings.get_path("a.home") == Path.home() / "x"
    assert settings.get_path("b.env") == tmp_path / "data"
    assert settings.get_path("c.none") is None


def test_get_float_falls_back_on_garbage():
    settings = JsonSettings(defaults={"backup": {"auto_interval_hours": "often"}})
    assert settings.get_float("backup.auto_interval_hours", 24.0) == 24.0


def test_repo_settings_file_loads():
    settings = JsonSettings(Path(__file__).resolve().parents[1] / "settings.json")
    assert settings.get("app.version") == "1.2.0"
