"""Snapshot creation, restore, import and export.

A snapshot inlines every record image as base64 so it does not depend on the
file system. Restore decodes the images into a scratch directory and feeds
them through the normal persist path, so restored images always get new
names in the managed directory.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Callable
from datetime import datetime
import json
from pathlib import Path
import shutil
import tempfile

from loguru import logger

from core.errors import (
    CorruptSnapshot,
    PartialRestoreFailure,
    SourceUnreadable,
    StorageError,
    StorageUnavailable,
)
from core.models import Snapshot, SnapshotEntry, SnapshotImage
from core.services.interfaces import ExportResult, RestoreMode, RestoreResult
from infrastructure.backup_state import BackupState
from infrastructure.blob_store import BlobStore
from infrastructure.record_store import RecordStore
from infrastructure.report_export import SnapshotReportRenderer
from infrastructure.serialization import SCHEMA_VERSION, snapshot_from_dict, snapshot_to_dict
from infrastructure.utils import utc_now


class BackupCodec:
    """Encodes the record collection into snapshots and back."""

    def __init__(
        self,
        records: RecordStore,
        blobs: BlobStore,
        state: BackupState,
        app_version: str,
        renderer: SnapshotReportRenderer | None = None,
        temp_dir: str | Path | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Create a codec.

        Args:
            records: Store whose collection is captured and restored.
            blobs: Image store the record images live in.
            state: Provides the device id stamped on snapshots.
            app_version: Running build version recorded in snapshots.
            renderer: PDF renderer for `export_human_readable`.
            temp_dir: Parent for restore scratch directories (system default
                when omitted).
            clock: Source of snapshot timestamps.
        """
        self._records = records
        self._blobs = blobs
        self._state = state
        self._app_version = app_version
        self._renderer = renderer or SnapshotReportRenderer()
        self._temp_dir = str(temp_dir) if temp_dir is not None else None
        self._clock = clock

    # Snapshot
    def snapshot(self) -> Snapshot:
        """Capture every record with its images inlined.

        Unreadable images are left out of their record with a warning.
        """
        # list_all copies the collection under the store lock; encoding runs outside it
        records = self._records.list_all()
        entries: list[SnapshotEntry] = []
        for rec in records:
            images: list[SnapshotImage] = []
            for ref in rec.images:
                try:
                    data = self._blobs.read_bytes(ref)
                except SourceUnreadable as ex:
                    logger.warning("Could not convert image to base64: {}", ex)
                    continue
                images.append(
                    SnapshotImage(
                        base64=base64.b64encode(data).decode("ascii"),
                        filename=Path(ref.path).name,
                        original_reference=ref.path,
                    )
                )
            entries.append(SnapshotEntry(record=rec, images=images))
        return Snapshot(
            device_id=self._state.device_id(),
            timestamp=self._clock(),
            app_version=self._app_version,
            schema_version=SCHEMA_VERSION,
            entries=entries,
            total_count=len(records),
        )

    # Restore
    def restore(self, snapshot: Snapshot, mode: RestoreMode = RestoreMode.REPLACE) -> RestoreResult:
        """Write the snapshot's records back into the store.

        REPLACE clears the collection first; MERGE appends to it without any
        deduplication. Records that fail are counted and skipped. Orphaned
        images are cleaned up afterwards.

        Raises:
            StorageUnavailable: the scratch directory or the store cannot be written.
        """
        result = RestoreResult(
            error_count=snapshot.rejected_count,
            total_count=len(snapshot.entries) + snapshot.rejected_count,
        )
        logger.info("Starting data restoration ({} records, {})", result.total_count, mode.value)
        try:
            scratch = Path(tempfile.mkdtemp(prefix="restore_", dir=self._temp_dir))
        except OSError as ex:
            logger.error("Create restore scratch directory failed: {}", ex)
            raise StorageUnavailable(f"cannot create restore scratch directory: {ex}") from ex
        try:
            with self._records.lock:
                if mode is RestoreMode.REPLACE:
                    self._records.clear()
                for index, entry in enumerate(snapshot.entries):
                    try:
                        self._restore_entry(entry, scratch / str(index))
                        result.restored_count += 1
                    except PartialRestoreFailure as ex:
                        logger.error("{}", ex)
                        result.error_count += 1
                self._records.cleanup_orphan_images()
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
        logger.info(
            "Restoration complete: {} restored, {} errors",
            result.restored_count,
            result.error_count,
        )
        return result

    def _restore_entry(self, entry: SnapshotEntry, work_dir: Path) -> None:
        name = entry.record.name
        try:
            work_dir.mkdir(parents=True, exist_ok=True)
            temp_refs: list[str] = []
            for i, image in enumerate(entry.images):
                try:
                    data = base64.b64decode("".join(image.base64.split()), validate=True)
                except (binascii.Error, ValueError) as ex:
                    logger.warning("Could not restore image {}: {}", image.filename, ex)
                    continue
                temp_path = work_dir / f"temp_{i}_{Path(image.filename).name}"
                temp_path.write_bytes(data)
                temp_refs.append(str(temp_path))
            self._records.restore_record(entry.record, temp_refs)
        except (OSError, StorageError) as ex:
            raise PartialRestoreFailure(name, ex) from ex

    # Files
    def export_snapshot_file(self, target: str | Path) -> ExportResult:
        """Write a machine-readable snapshot that `import_from_file` accepts."""
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        snapshot = self.snapshot()
        with path.open("w", encoding="utf-8") as f:
            json.dump(snapshot_to_dict(snapshot), f, ensure_ascii=False)
        logger.info("Snapshot exported: {} ({} records)", path, snapshot.total_count)
        return ExportResult(file_path=str(path), file_name=path.name)

    def export_human_readable(self, output_dir: str | Path) -> ExportResult:
        """Render the current collection into a PDF report in `output_dir`."""
        snapshot = self.snapshot()
        exported_at = self._clock()
        file_name = f"medicare_export_{exported_at:%Y-%m-%d}.pdf"
        path = self._renderer.render(snapshot, Path(output_dir) / file_name, exported_at)
        return ExportResult(file_path=str(path), file_name=file_name)

    def read_snapshot_file(self, source: str | Path) -> Snapshot:
        """Parse a snapshot file.

        Raises:
            CorruptSnapshot: the file is unreadable, not JSON, or has no records list.
        """
        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as ex:
            raise CorruptSnapshot(f"cannot read {path}: {ex}") from ex
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as ex:
            raise CorruptSnapshot(f"{path.name} is not valid JSON") from ex
        return snapshot_from_dict(doc)

    def import_from_file(
        self, source: str | Path, mode: RestoreMode = RestoreMode.REPLACE
    ) -> RestoreResult:
        """Restore from a snapshot file; failures are reported, not raised."""
        try:
            snapshot = self.read_snapshot_file(source)
        except CorruptSnapshot as ex:
            logger.error("Import failed: {}", ex)
            return RestoreResult(success=False, error=str(ex))
        try:
            return self.restore(snapshot, mode)
        except StorageError as ex:
            logger.error("Import failed: {}", ex)
            return RestoreResult(success=False, error=str(ex), total_count=snapshot.total_count)
