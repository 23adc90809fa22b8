from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.models import Category, PermanentRef, Record, RecordPatch
from core.services.record_merge import merge_record

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def record() -> Record:
    return Record(
        id="r1",
        name="Albendazole",
        animal_type="Sheep",
        details="Dewormer",
        category=Category.MEDICINE,
        created_at=NOW - timedelta(days=3),
        images=[PermanentRef("/images/medicine_1_a.jpg")],
        purpose="Worms",
    )


def test_only_patched_fields_change(record):
    merged = merge_record(record, RecordPatch(details="Give after meals"), now=NOW)

    assert merged.details == "Give after meals"
    assert merged.name == record.name
    assert merged.purpose == "Worms"
    assert merged.images == record.images
    assert merged.updated_at == NOW
    assert record.updated_at is None


def test_category_change_keeps_other_fields(record):
    merged = merge_record(record, RecordPatch(category=Category.HOME_REMEDY), now=NOW)
    assert merged.category is Category.HOME_REMEDY
    assert merged.purpose == "Worms"


def test_false_is_applied_for_favorite(record):
    favorite = merge_record(record, RecordPatch(is_favorite=True), now=NOW)
    merged = merge_record(favorite, RecordPatch(is_favorite=False), now=NOW)
    assert merged.is_favorite is False


def test_images_require_reconciled_list(record):
    with pytest.raises(ValueError):
        merge_record(record, RecordPatch(images=[]), now=NOW)

    merged = merge_record(record, RecordPatch(images=[]), now=NOW, images=[])
    assert merged.images == []
