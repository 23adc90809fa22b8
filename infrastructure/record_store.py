"""Record persistence over a single key-value slot.

The whole collection is one JSON array under the `records` key; every
mutation reads it, changes it and writes it back. A re-entrant lock
serializes those cycles together with their image side effects.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
import json
from pathlib import Path
import threading
from typing import Any

from loguru import logger

from core.errors import NotFound, SourceUnreadable, StorageUnavailable
from core.models import (
    Category,
    ImageRef,
    PermanentRef,
    Record,
    RecordDraft,
    RecordPatch,
    TransientRef,
)
from core.services.interfaces import KeyValueStore
from core.services.record_merge import merge_record
from infrastructure.blob_store import BlobStore
from infrastructure.serialization import record_from_dict, record_to_dict
from infrastructure.utils import generate_record_id, utc_now

RECORDS_KEY = "records"


class RecordStore:
    """CRUD over the medicine/remedy collection."""

    def __init__(
        self,
        kv: KeyValueStore,
        blobs: BlobStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._kv = kv
        self._blobs = blobs
        self._clock = clock
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Mutation lock shared with batch operations such as restore."""
        return self._lock

    @property
    def blobs(self) -> BlobStore:
        """The image store used for record images."""
        return self._blobs

    # Slot IO
    def _read_slot(self) -> tuple[list[Record], list[Any]]:
        """Return (decoded records, raw rows that failed to decode).

        Undecodable rows are carried through every write unchanged, so a bad
        row is never erased by an unrelated mutation.
        """
        raw = self._kv.get(RECORDS_KEY)
        if not raw:
            return [], []
        try:
            rows = json.loads(raw)
        except json.JSONDecodeError as ex:
            logger.error("Records slot is not valid JSON: {}", ex)
            raise StorageUnavailable("records slot is not valid JSON") from ex
        if not isinstance(rows, list):
            raise StorageUnavailable("records slot does not hold a list")
        records: list[Record] = []
        unreadable: list[Any] = []
        for row in rows:
            try:
                records.append(record_from_dict(row, adopt=self._blobs.adopt))
            except (ValueError, TypeError) as ex:
                logger.error("Record row error: {} | row={}", ex, row)
                unreadable.append(row)
        return records, unreadable

    def _load(self) -> list[Record]:
        return self._read_slot()[0]

    def _save(self, records: list[Record], unreadable: list[Any]) -> None:
        rows = [record_to_dict(r) for r in records]
        rows.extend(unreadable)
        self._kv.set(RECORDS_KEY, json.dumps(rows, ensure_ascii=False))

    @staticmethod
    def _index_of(records: list[Record], record_id: str) -> int:
        for i, rec in enumerate(records):
            if rec.id == record_id:
                return i
        return -1

    def _new_id(self, records: list[Record], unreadable: list[Any]) -> str:
        taken = {r.id for r in records}
        taken.update(str(row.get("id")) for row in unreadable if isinstance(row, dict))
        record_id = generate_record_id()
        while record_id in taken:
            record_id = generate_record_id()
        return record_id

    # Queries
    def list_all(self) -> list[Record]:
        """All records in creation order."""
        with self._lock:
            return self._load()

    def get(self, record_id: str) -> Record:
        """Return the record with `record_id`.

        Raises:
            NotFound: no such record.
        """
        with self._lock:
            records = self._load()
        idx = self._index_of(records, record_id)
        if idx < 0:
            raise NotFound(record_id)
        return records[idx]

    def list_favorites(self) -> list[Record]:
        """Records marked as favorite, in creation order."""
        return [r for r in self.list_all() if r.is_favorite]

    def find(
        self,
        category: Category | str | None = None,
        animal_type: str | None = None,
        text: str | None = None,
    ) -> list[Record]:
        """Filter records by category, animal and a case-insensitive search text."""
        wanted_category = Category.parse(category) if category else None
        needle = (text or "").strip().lower()
        result: list[Record] = []
        for rec in self.list_all():
            if wanted_category is not None and rec.category is not wanted_category:
                continue
            if animal_type and rec.animal_type != animal_type:
                continue
            if needle:
                haystack = " ".join(
                    part or "" for part in (rec.name, rec.details, rec.purpose)
                ).lower()
                if needle not in haystack:
                    continue
            result.append(rec)
        return result

    def count(self) -> int:
        """Number of stored records."""
        return len(self.list_all())

    def is_empty(self) -> bool:
        """True if no records are stored."""
        return self.count() == 0

    def latest_activity(self) -> datetime | None:
        """Newest `created_at`/`updated_at` across all records."""
        records = self.list_all()
        if not records:
            return None
        return max(r.last_activity for r in records)

    def referenced_filenames(self) -> set[str]:
        """File names of every image referenced by any stored row.

        Rows that fail to decode still count, so their files are never
        treated as orphans.
        """
        with self._lock:
            records, unreadable = self._read_slot()
        names = {ref_name for r in records for ref_name in _filenames(r.images)}
        for row in unreadable:
            names.update(_raw_filenames(row))
        return names

    # Mutations
    def create(self, draft: RecordDraft) -> Record:
        """Persist the draft's images and append a new record.

        Images that cannot be read are dropped; the record is still saved.
        """
        with self._lock:
            records, unreadable = self._read_slot()
            images = self._blobs.persist_all(draft.images)
            record = Record(
                id=self._new_id(records, unreadable),
                name=draft.name,
                animal_type=draft.animal_type,
                details=draft.details,
                category=Category.parse(draft.category),
                created_at=self._clock(),
                images=list(images),
                preparation_method=draft.preparation_method,
                purpose=draft.purpose,
                is_favorite=bool(draft.is_favorite),
            )
            records.append(record)
            self._save_or_discard(records, unreadable, images)
        logger.info("Record created: {} ({} images)", record.id, len(images))
        return record

    def restore_record(self, record: Record, image_refs: Iterable[TransientRef | str]) -> Record:
        """Append a record decoded from a snapshot.

        A fresh id is assigned and images are persisted under new names;
        every other field is kept as captured.
        """
        with self._lock:
            records, unreadable = self._read_slot()
            images = self._blobs.persist_all(image_refs)
            restored = replace(record, id=self._new_id(records, unreadable), images=list(images))
            records.append(restored)
            self._save_or_discard(records, unreadable, images)
        logger.debug("Record restored: {} ({} images)", restored.id, len(images))
        return restored

    def _save_or_discard(
        self, records: list[Record], unreadable: list[Any], new_images: list[PermanentRef]
    ) -> None:
        try:
            self._save(records, unreadable)
        except StorageUnavailable:
            self._blobs.remove_all(new_images)
            raise

    def update(self, record_id: str, patch: RecordPatch) -> Record:
        """Merge `patch` into the record and stamp `updated_at`.

        When the patch carries images, new picker references are persisted and
        permanent images no longer listed are deleted once the write succeeds.

        Raises:
            NotFound: no such record.
        """
        with self._lock:
            records, unreadable = self._read_slot()
            idx = self._index_of(records, record_id)
            if idx < 0:
                raise NotFound(record_id)
            old = records[idx]
            images: list[PermanentRef] | None = None
            added: list[PermanentRef] = []
            if patch.images is not None:
                images, added = self._reconcile_images(patch.images)
            updated = merge_record(old, patch, now=self._clock(), images=images)
            records[idx] = updated
            self._save_or_discard(records, unreadable, added)
            if images is not None:
                keep = {ref.path for ref in images}
                dropped = [
                    ref
                    for ref in old.images
                    if isinstance(ref, PermanentRef) and ref.path not in keep
                ]
                self._blobs.remove_all(dropped)
        logger.info("Record updated: {}", record_id)
        return updated

    def _reconcile_images(
        self, refs: list[ImageRef]
    ) -> tuple[list[PermanentRef], list[PermanentRef]]:
        """Return (final image list, newly persisted images) for a patch."""
        final: list[PermanentRef] = []
        added: list[PermanentRef] = []
        for ref in refs:
            if isinstance(ref, PermanentRef) and self._blobs.is_managed(ref):
                final.append(ref)
                continue
            try:
                saved = self._blobs.persist(ref.path)
            except SourceUnreadable as ex:
                logger.warning("Dropping image that could not be saved: {}", ex)
                continue
            final.append(saved)
            added.append(saved)
        return final, added

    def delete(self, record_id: str) -> bool:
        """Delete the record and its images; False if the id is unknown."""
        with self._lock:
            records, unreadable = self._read_slot()
            idx = self._index_of(records, record_id)
            if idx < 0:
                logger.debug("Delete skipped, record not found: {}", record_id)
                return False
            removed = records.pop(idx)
            result = self._blobs.remove_all(removed.images)
            if result.failed:
                logger.warning("Record {}: {} images not deleted", record_id, len(result.failed))
            self._save(records, unreadable)
        logger.info("Record deleted: {}", record_id)
        return True

    def toggle_favorite(self, record_id: str) -> Record | None:
        """Flip `is_favorite`; returns None if the id is unknown."""
        with self._lock:
            records, unreadable = self._read_slot()
            idx = self._index_of(records, record_id)
            if idx < 0:
                logger.debug("Toggle favorite skipped, record not found: {}", record_id)
                return None
            current = records[idx]
            updated = merge_record(
                current, RecordPatch(is_favorite=not current.is_favorite), now=self._clock()
            )
            records[idx] = updated
            self._save(records, unreadable)
        return updated

    def clear(self) -> None:
        """Drop the whole collection. Image files are left for orphan cleanup."""
        with self._lock:
            self._kv.remove(RECORDS_KEY)
        logger.info("All records cleared")

    # Repair
    def cleanup_orphan_images(self) -> int:
        """Delete managed images that no record references."""
        with self._lock:
            return self._blobs.cleanup_orphans(self.referenced_filenames())

    def migrate_images(self) -> int:
        """Copy images that are not live managed files into the image directory.

        Returns the number of records rewritten.
        """
        changed = 0
        with self._lock:
            records, unreadable = self._read_slot()
            for i, rec in enumerate(records):
                if all(self._blobs.exists(ref) for ref in rec.images):
                    continue
                migrated = self._blobs.migrate(rec.images)
                records[i] = replace(rec, images=list(migrated))
                changed += 1
            if changed:
                self._save(records, unreadable)
        if changed:
            logger.info("Migrated images for {} records", changed)
        return changed


def _filenames(refs: Iterable[ImageRef]) -> set[str]:
    return {Path(ref.path).name for ref in refs}


def _raw_filenames(row: Any) -> set[str]:
    if not isinstance(row, dict) or not isinstance(row.get("images"), list):
        return set()
    return {Path(path).name for path in row["images"] if isinstance(path, str) and path}
