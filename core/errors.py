"""Typed failures raised by the storage and backup layers.

Callers that need a retryable signal catch `StorageUnavailable`; batch
operations absorb `SourceUnreadable` and `PartialRestoreFailure` per item and
report counts instead.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base class for all storage/backup failures."""


class StorageUnavailable(StorageError):
    """The key-value slot or the image directory cannot be accessed."""


class SourceUnreadable(StorageError):
    """An image reference could not be read when copying or encoding it."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        msg = f"Image source unreadable: {path}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class NotFound(StorageError):
    """No record exists with the requested id."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class CorruptSnapshot(StorageError):
    """A backup payload failed structural validation."""


class PartialRestoreFailure(StorageError):
    """A single snapshot entry could not be restored."""

    def __init__(self, name: str, cause: Exception) -> None:
        self.name = name
        self.cause = cause
        super().__init__(f"Could not restore record {name!r}: {cause}")
