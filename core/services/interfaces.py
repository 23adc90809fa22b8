"""Core service interfaces and shared result structures.

The storage core consumes a key-value persistence port and reports the
outcome of batch operations through the plain dataclasses below, so the UI
layer only ever sees summaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol


class KeyValueStore(Protocol):
    """String key to string value persistence primitive."""

    def get(self, key: str) -> str | None:
        """Return the value for `key`, or None when absent."""
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        """Store `value` under `key`, replacing any previous value."""
        raise NotImplementedError

    def remove(self, key: str) -> None:
        """Delete `key`; no-op when absent."""
        raise NotImplementedError


class RestoreMode(str, Enum):
    """How a snapshot is applied to the live collection."""

    REPLACE = "replace"
    MERGE = "merge"


@dataclass
class BlobRemoveResult:
    """Outcome of removing several managed images.

    Attributes:
        removed: Paths that were deleted.
        failed: Tuples of (path, reason) for deletions that raised.
    """

    removed: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class RestoreResult:
    """Summary of a restore or import.

    Attributes:
        restored_count: Records written back into the store.
        error_count: Records skipped because they failed to restore.
        total_count: Records present in the snapshot.
        success: False only when the payload could not be processed at all.
        error: Reason for an overall failure.
    """

    restored_count: int = 0
    error_count: int = 0
    total_count: int = 0
    success: bool = True
    error: str | None = None


@dataclass
class ExportResult:
    """A generated export artifact."""

    file_path: str
    file_name: str


class VersionChangeKind(str, Enum):
    """Result of comparing the running build to the last seen version."""

    FIRST_LAUNCH = "first_launch"
    UNCHANGED = "unchanged"
    UPDATED = "updated"


@dataclass
class VersionChange:
    """Outcome of a version check.

    `previous` is None on first launch.
    """

    kind: VersionChangeKind
    current: str
    previous: str | None = None

    @property
    def is_update(self) -> bool:
        """True if the installed version changed since the last launch."""
        return self.kind is VersionChangeKind.UPDATED


@dataclass
class ReconcileResult:
    """Outcome of the startup reconciliation."""

    message: str
    restored_count: int | None = None
    version_change: VersionChange | None = None
    backed_up: bool = False


@dataclass
class BackupStats:
    """Backup state summary for display."""

    has_backup: bool
    last_backup_time: datetime | None
    backup_record_count: int
    current_record_count: int
    needs_backup: bool
    image_count: int = 0
    image_bytes: int = 0


@dataclass
class RecordStats:
    """Collection summary shown above the record list."""

    total: int
    animals: int
    recent: int
    medicines: int
    home_remedies: int
    favorites: int
