"""Small persisted key space for backup bookkeeping.

Holds the device id, the single backup snapshot slot, the last backup time
and the last app version seen at startup.
"""

from __future__ import annotations

from datetime import datetime
import json

from loguru import logger

from core.errors import CorruptSnapshot
from core.models import Snapshot
from core.services.interfaces import KeyValueStore
from infrastructure.serialization import snapshot_from_dict, snapshot_to_dict
from infrastructure.utils import format_iso, generate_device_id, parse_iso

BACKUP_SNAPSHOT_KEY = "backup_snapshot"
DEVICE_ID_KEY = "device_id"
LAST_BACKUP_KEY = "last_backup_timestamp"
APP_VERSION_KEY = "app_version_seen"


class BackupState:
    """Typed accessors over the backup keys of a `KeyValueStore`."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    def device_id(self) -> str:
        """Return the install's device id, generating it on first use."""
        device_id = self._kv.get(DEVICE_ID_KEY)
        if not device_id:
            device_id = generate_device_id()
            self._kv.set(DEVICE_ID_KEY, device_id)
            logger.info("Generated device id {}", device_id)
        return device_id

    def has_snapshot(self) -> bool:
        """True if the backup slot holds anything."""
        return bool(self._kv.get(BACKUP_SNAPSHOT_KEY))

    def load_snapshot(self) -> Snapshot | None:
        """Return the stored snapshot, or None when the slot is empty.

        Raises:
            CorruptSnapshot: the slot holds something that is not a snapshot.
        """
        raw = self._kv.get(BACKUP_SNAPSHOT_KEY)
        if not raw:
            return None
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as ex:
            raise CorruptSnapshot(f"backup slot is not valid JSON: {ex}") from ex
        return snapshot_from_dict(doc)

    def save_snapshot(self, snapshot: Snapshot) -> None:
        """Overwrite the backup slot with `snapshot`."""
        payload = json.dumps(snapshot_to_dict(snapshot), ensure_ascii=False)
        self._kv.set(BACKUP_SNAPSHOT_KEY, payload)
        logger.info("Backup saved locally ({} records)", snapshot.total_count)

    def clear_snapshot(self) -> None:
        """Empty the backup slot."""
        self._kv.remove(BACKUP_SNAPSHOT_KEY)

    def last_backup_time(self) -> datetime | None:
        """When the last backup was written."""
        return parse_iso(self._kv.get(LAST_BACKUP_KEY))

    def mark_backup(self, when: datetime) -> None:
        """Record `when` as the last backup time."""
        self._kv.set(LAST_BACKUP_KEY, format_iso(when) or "")

    def seen_app_version(self) -> str | None:
        """App version recorded on the previous startup."""
        return self._kv.get(APP_VERSION_KEY) or None

    def remember_app_version(self, version: str) -> None:
        """Record the running app version."""
        self._kv.set(APP_VERSION_KEY, version)
