"""Apply a `RecordPatch` to a `Record`.

All field-level update rules live here so the store only has to deal with
image persistence and the write itself.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from core.models import Category, PermanentRef, Record, RecordPatch


def merge_record(
    record: Record,
    patch: RecordPatch,
    *,
    now: datetime,
    images: list[PermanentRef] | None = None,
) -> Record:
    """Return a new record with `patch` applied and `updated_at` set to `now`.

    Args:
        record: The stored record. Never mutated.
        patch: Fields to change; `None` leaves the field as it is.
        now: Timestamp for `updated_at`.
        images: Already reconciled permanent images. Required when
            `patch.images` is set, ignored otherwise.
    """
    if patch.images is not None and images is None:
        raise ValueError("patch changes images but no reconciled images were given")

    changes: dict[str, object] = {"updated_at": now}
    for name in (
        "name",
        "animal_type",
        "details",
        "preparation_method",
        "purpose",
        "is_favorite",
    ):
        value = getattr(patch, name)
        if value is not None:
            changes[name] = value
    if patch.category is not None:
        changes["category"] = Category.parse(patch.category)
    if patch.images is not None:
        changes["images"] = list(images or [])

    return replace(record, **changes)
