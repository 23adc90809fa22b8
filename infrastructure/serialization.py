"""JSON document mapping for records and backup snapshots.

Records are stored with camelCase keys. Decoding accepts documents written by
older versions of the app (`animal`, `howToMake`, `desi_totka`, `medicines`,
`originalUri`).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger

from core.errors import CorruptSnapshot
from core.models import (
    Category,
    ImageRef,
    Record,
    Snapshot,
    SnapshotEntry,
    SnapshotImage,
    TransientRef,
)
from infrastructure.utils import format_iso, parse_iso, utc_now

SCHEMA_VERSION = "1.0"


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def record_to_dict(record: Record, images: list[Any] | None = None) -> dict[str, Any]:
    """Encode `record`; `images` overrides the encoded image list."""
    doc: dict[str, Any] = {
        "id": record.id,
        "name": record.name,
        "animalType": record.animal_type,
        "details": record.details,
        "category": record.category.value,
        "images": images if images is not None else [ref.path for ref in record.images],
        "isFavorite": bool(record.is_favorite),
        "createdAt": format_iso(record.created_at),
    }
    if record.preparation_method is not None:
        doc["preparationMethod"] = record.preparation_method
    if record.purpose is not None:
        doc["purpose"] = record.purpose
    if record.updated_at is not None:
        doc["updatedAt"] = format_iso(record.updated_at)
    return doc


def record_from_dict(
    doc: dict[str, Any], adopt: Callable[[str], ImageRef] | None = None
) -> Record:
    """Decode a stored record.

    Args:
        doc: The JSON object.
        adopt: Classifies a stored image path. Without it every path is
            treated as unverified (`TransientRef`).

    Raises:
        ValueError: required fields are missing or malformed.
    """
    if not isinstance(doc, dict):
        raise ValueError(f"record must be an object, got {type(doc).__name__}")
    record_id = _opt_str(doc.get("id"))
    name = _opt_str(doc.get("name"))
    if not record_id or not name:
        raise ValueError("record requires id and name")
    created_at = parse_iso(doc.get("createdAt")) or parse_iso(doc.get("updatedAt"))
    if created_at is None:
        raise ValueError(f"record {record_id} has no valid createdAt")

    images: list[ImageRef] = []
    for raw in doc.get("images") or []:
        if not isinstance(raw, str) or not raw:
            continue
        images.append(adopt(raw) if adopt is not None else TransientRef(raw))

    return Record(
        id=record_id,
        name=name,
        animal_type=str(doc.get("animalType") or doc.get("animal") or ""),
        details=str(doc.get("details") or ""),
        category=Category.parse(doc.get("category")),
        created_at=created_at,
        images=images,
        preparation_method=_opt_str(doc.get("preparationMethod") or doc.get("howToMake")),
        purpose=_opt_str(doc.get("purpose")),
        is_favorite=bool(doc.get("isFavorite", False)),
        updated_at=parse_iso(doc.get("updatedAt")),
    )


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    """Encode `snapshot` as a JSON-ready object."""
    records = []
    for entry in snapshot.entries:
        images = [
            {
                "base64": img.base64,
                "filename": img.filename,
                "originalReference": img.original_reference,
            }
            for img in entry.images
        ]
        records.append(record_to_dict(entry.record, images=images))
    return {
        "deviceId": snapshot.device_id,
        "timestamp": format_iso(snapshot.timestamp),
        "appVersion": snapshot.app_version,
        "schemaVersion": snapshot.schema_version,
        "records": records,
        "totalCount": snapshot.total_count,
    }


def _image_from_dict(raw: Any) -> SnapshotImage | None:
    if not isinstance(raw, dict):
        return None
    data = raw.get("base64")
    if not isinstance(data, str) or not data:
        return None
    original = raw.get("originalReference") or raw.get("originalUri") or ""
    filename = raw.get("filename") or str(original).rsplit("/", 1)[-1] or "image.jpg"
    return SnapshotImage(base64=data, filename=str(filename), original_reference=str(original))


def _entry_from_dict(raw: Any) -> SnapshotEntry:
    if not isinstance(raw, dict):
        raise ValueError(f"snapshot record must be an object, got {type(raw).__name__}")
    doc = dict(raw)
    raw_images = doc.pop("images", None) or []
    doc["images"] = []
    # Restore mints new ids, so a missing one is not an error
    if not doc.get("id"):
        doc["id"] = "unassigned"
    record = record_from_dict(doc)
    images = [img for img in (_image_from_dict(r) for r in raw_images) if img is not None]
    return SnapshotEntry(record=record, images=images)


def snapshot_from_dict(doc: Any) -> Snapshot:
    """Decode a snapshot.

    Records that fail to decode are skipped and counted in `rejected_count`.

    Raises:
        CorruptSnapshot: `doc` is not an object or `records` is not a list.
    """
    if not isinstance(doc, dict):
        raise CorruptSnapshot("backup payload must be a JSON object")
    raw_records = doc.get("records", doc.get("medicines"))
    if not isinstance(raw_records, list):
        raise CorruptSnapshot("backup payload has no records list")
    entries: list[SnapshotEntry] = []
    rejected = 0
    for raw in raw_records:
        try:
            entries.append(_entry_from_dict(raw))
        except ValueError as ex:
            rejected += 1
            logger.warning("Skipping undecodable snapshot record: {}", ex)
    timestamp = parse_iso(doc.get("timestamp")) or utc_now()
    total = doc.get("totalCount")
    return Snapshot(
        device_id=str(doc.get("deviceId") or ""),
        timestamp=timestamp,
        app_version=str(doc.get("appVersion") or ""),
        schema_version=str(doc.get("schemaVersion") or doc.get("version") or SCHEMA_VERSION),
        entries=entries,
        total_count=total if isinstance(total, int) else len(raw_records),
        rejected_count=rejected,
    )
