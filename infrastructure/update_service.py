"""Startup reconciliation and scheduled backups.

On every start the app asks this service to notice version changes, replay
the local backup into a store that lost its data, and take an automatic
backup when one is due. Nothing here is allowed to break startup: every step
is logged and absorbed at the `reconcile_on_startup` boundary.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from loguru import logger

from core.errors import CorruptSnapshot, StorageError
from core.models import Snapshot
from core.services.interfaces import (
    BackupStats,
    ReconcileResult,
    RestoreMode,
    VersionChange,
    VersionChangeKind,
)
from infrastructure.backup_codec import BackupCodec
from infrastructure.backup_state import BackupState
from infrastructure.record_store import RecordStore
from infrastructure.utils import utc_now

AUTO_BACKUP_INTERVAL = timedelta(hours=24)


class UpdateService:
    """Coordinates version detection, backup scheduling and restore-on-start."""

    def __init__(
        self,
        records: RecordStore,
        codec: BackupCodec,
        state: BackupState,
        app_version: str,
        clock: Callable[[], datetime] = utc_now,
        backup_interval: timedelta = AUTO_BACKUP_INTERVAL,
    ) -> None:
        self._records = records
        self._codec = codec
        self._state = state
        self._app_version = app_version
        self._clock = clock
        self._interval = backup_interval

    def check_version_change(self) -> VersionChange:
        """Compare the running version to the one seen last time and store it."""
        previous = self._state.seen_app_version()
        current = self._app_version
        if previous != current:
            self._state.remember_app_version(current)
        if previous is None:
            return VersionChange(kind=VersionChangeKind.FIRST_LAUNCH, current=current)
        if previous != current:
            logger.info("App updated from {} to {}", previous, current)
            return VersionChange(
                kind=VersionChangeKind.UPDATED, current=current, previous=previous
            )
        return VersionChange(kind=VersionChangeKind.UNCHANGED, current=current, previous=previous)

    def is_backup_due(self) -> bool:
        """True if there is no backup yet or the last one is older than the interval."""
        last = self._state.last_backup_time()
        if last is None:
            return True
        return self._clock() - last > self._interval

    def backup_now(self) -> Snapshot:
        """Take a snapshot, store it in the backup slot and stamp the backup time."""
        snapshot = self._codec.snapshot()
        self._state.save_snapshot(snapshot)
        self._state.mark_backup(snapshot.timestamp)
        return snapshot

    def auto_backup_if_due(self, force: bool = False) -> bool:
        """Back up when due (or when `force` is set); returns True if one was taken."""
        if not force and not self.is_backup_due():
            return False
        logger.info("Performing auto backup...")
        self.backup_now()
        logger.info("Auto backup completed")
        return True

    def should_restore(self, snapshot: Snapshot) -> bool:
        """Decide whether `snapshot` should replace the live collection.

        An empty store always takes the backup. Otherwise the backup must be
        newer than the newest local change and must itself contain a change
        newer than that, so a backup taken from the current data (or a
        collection just restored from it) never triggers another restore.
        """
        if not snapshot.entries:
            return False
        local_latest = self._records.latest_activity()
        if local_latest is None:
            return True
        if snapshot.timestamp <= local_latest:
            return False
        captured_latest = snapshot.newest_activity()
        return captured_latest is not None and captured_latest > local_latest

    def reconcile_on_startup(self) -> ReconcileResult:
        """Run the startup sequence; never raises."""
        logger.info("Checking for app update data preservation...")
        result = ReconcileResult(message="App update check completed")

        try:
            result.version_change = self.check_version_change()
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Version check failed: {}", ex)

        try:
            snapshot = self._state.load_snapshot()
            if snapshot is not None and self.should_restore(snapshot):
                logger.info("Restoring data from local backup...")
                restored = self._codec.restore(snapshot, RestoreMode.REPLACE)
                result.restored_count = restored.restored_count
                result.message = f"Successfully restored {restored.restored_count} records"
                if restored.error_count:
                    result.message += f" ({restored.error_count} could not be restored)"
                logger.info(result.message)
        except CorruptSnapshot as ex:
            logger.error("Local backup is unreadable, skipping restore: {}", ex)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Restore on startup failed: {}", ex)
            result.message = "Failed to restore data from backup"

        try:
            result.backed_up = self.auto_backup_if_due()
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Auto backup failed: {}", ex)

        return result

    def backup_stats(self) -> BackupStats:
        """Summarize backup state for display."""
        try:
            snapshot = self._state.load_snapshot()
        except CorruptSnapshot as ex:
            logger.warning("Backup slot unreadable: {}", ex)
            snapshot = None
        last = snapshot.timestamp if snapshot is not None else self._state.last_backup_time()
        try:
            image_count, image_bytes = self._records.blobs.usage()
        except StorageError as ex:
            logger.warning("Image usage unavailable: {}", ex)
            image_count, image_bytes = 0, 0
        return BackupStats(
            has_backup=snapshot is not None,
            last_backup_time=last,
            backup_record_count=snapshot.total_count if snapshot is not None else 0,
            current_record_count=self._records.count(),
            needs_backup=self.is_backup_due(),
            image_count=image_count,
            image_bytes=image_bytes,
        )
