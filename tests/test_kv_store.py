from __future__ import annotations

import json

import pytest

from core.errors import StorageUnavailable
from infrastructure.kv_store import JsonFileKeyValueStore, MemoryKeyValueStore


def test_file_store_persists_across_instances(tmp_path):
    path = tmp_path / "data" / "store.json"
    first = JsonFileKeyValueStore(path)
    first.set("records", "[]")
    first.set("device_id", "device_1_abc")

    second = JsonFileKeyValueStore(path)

    assert second.get("records") == "[]"
    assert sorted(second.keys()) == ["device_id", "records"]
    assert json.loads(path.read_text(encoding="utf-8"))["device_id"] == "device_1_abc"


def test_file_store_missing_file_is_empty(tmp_path):
    store = JsonFileKeyValueStore(tmp_path / "absent.json")
    assert store.get("anything") is None
    assert not (tmp_path / "absent.json").exists()


def test_file_store_remove(tmp_path):
    store = JsonFileKeyValueStore(tmp_path / "store.json")
    store.set("a", "1")
    store.remove("a")
    store.remove("never-set")
    assert store.get("a") is None
    assert JsonFileKeyValueStore(tmp_path / "store.json").get("a") is None


def test_file_store_leaves_no_temp_files(tmp_path):
    store = JsonFileKeyValueStore(tmp_path / "store.json")
    for i in range(5):
        store.set(f"k{i}", str(i))
    assert [p.name for p in tmp_path.iterdir()] == ["store.json"]


def test_file_store_corrupt_file_raises(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(StorageUnavailable):
        JsonFileKeyValueStore(path).get("records")


def test_file_store_rejects_non_object(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(StorageUnavailable):
        JsonFileKeyValueStore(path).get("records")


@pytest.mark.parametrize("factory", [MemoryKeyValueStore, None])
def test_values_must_be_strings(factory, tmp_path):
    store = factory() if factory else JsonFileKeyValueStore(tmp_path / "store.json")
    with pytest.raises(TypeError):
        store.set("count", 3)


def test_memory_store_initial_values():
    store = MemoryKeyValueStore({"a": "1"})
    assert store.get("a") == "1"
    store.remove("a")
    assert store.keys() == []
