from __future__ import annotations

import copy
import json

from infrastructure.settings import DEFAULT_SETTINGS, JsonSettings
from main import build_services


def _settings(tmp_path) -> JsonSettings:
    defaults = copy.deepcopy(DEFAULT_SETTINGS)
    defaults["storage"]["data_dir"] = str(tmp_path / "data")
    defaults["export"]["dir"] = str(tmp_path / "exports")
    return JsonSettings(defaults=defaults)


def test_build_services_wires_file_backed_stores(tmp_path, draft_factory):
    services = build_services(_settings(tmp_path))

    assert (tmp_path / "data" / "medicine_images").is_dir()
    assert services.export_dir == tmp_path / "exports"

    services.vm.add(draft_factory(images=1))
    result = services.updates.reconcile_on_startup()

    assert result.backed_up is True
    store_doc = json.loads((tmp_path / "data" / "store.json").read_text(encoding="utf-8"))
    backup_doc = json.loads((tmp_path / "data" / "backup.json").read_text(encoding="utf-8"))
    assert "records" in store_doc
    assert "backup_snapshot" not in store_doc
    assert "backup_snapshot" in backup_doc
    assert services.updates.backup_stats().backup_record_count == 1


def test_services_survive_restart(tmp_path, draft_factory):
    first = build_services(_settings(tmp_path))
    first.records.create(draft_factory("Kept", images=2))

    second = build_services(_settings(tmp_path))

    records = second.records.list_all()
    assert [r.name for r in records] == ["Kept"]
    assert all(second.blobs.exists(ref) for ref in records[0].images)
