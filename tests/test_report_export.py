from __future__ import annotations

from datetime import datetime, timezone

from core.models import Category, Record, Snapshot, SnapshotEntry, SnapshotImage
from infrastructure.report_export import SnapshotReportRenderer

EXPORTED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _snapshot(count: int) -> Snapshot:
    entries = []
    for i in range(count):
        remedy = i % 2 == 1
        record = Record(
            id=str(i),
            name=f"Entry {i}",
            animal_type="Goat",
            details="Long details " * 30,
            category=Category.HOME_REMEDY if remedy else Category.MEDICINE,
            created_at=EXPORTED_AT,
            preparation_method="Grind and mix" if remedy else None,
            purpose="Fever",
        )
        images = [SnapshotImage(base64="AAAA", filename="a.jpg", original_reference="/a.jpg")]
        entries.append(SnapshotEntry(record=record, images=images if i % 3 == 0 else []))
    return Snapshot(
        device_id="device_1717243200000_abcdefghi",
        timestamp=EXPORTED_AT,
        app_version="1.2.0",
        schema_version="1.0",
        entries=entries,
        total_count=count,
    )


def test_render_writes_pdf(tmp_path):
    target = tmp_path / "out" / "report.pdf"

    path = SnapshotReportRenderer().render(_snapshot(2), target, EXPORTED_AT)

    assert path == target
    assert path.read_bytes().startswith(b"%PDF")


def test_render_empty_collection(tmp_path):
    path = SnapshotReportRenderer().render(_snapshot(0), tmp_path / "empty.pdf", EXPORTED_AT)
    assert path.stat().st_size > 0


def test_render_spills_onto_more_pages(tmp_path):
    renderer = SnapshotReportRenderer(page_size=(620, 877))
    small = renderer.render(_snapshot(1), tmp_path / "small.pdf", EXPORTED_AT)
    large = renderer.render(_snapshot(40), tmp_path / "large.pdf", EXPORTED_AT)
    assert large.stat().st_size > small.stat().st_size
