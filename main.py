from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from loguru import logger

from app.viewmodels.medicine_vm import MedicineVM
from core.errors import StorageError
from infrastructure.backup_codec import BackupCodec
from infrastructure.backup_state import BackupState
from infrastructure.blob_store import BlobStore
from infrastructure.kv_store import JsonFileKeyValueStore
from infrastructure.logging import find_latest_log_file, init_logging
from infrastructure.record_store import RecordStore
from infrastructure.settings import JsonSettings
from infrastructure.update_service import UpdateService

BASE_DIR = Path(__file__).parent


@dataclass
class Services:
    """Everything the UI layer talks to."""

    records: RecordStore
    blobs: BlobStore
    codec: BackupCodec
    updates: UpdateService
    vm: MedicineVM
    export_dir: Path


def build_services(settings: JsonSettings) -> Services:
    """Wire stores, codec and orchestrator from `settings`."""
    data_dir = settings.get_path("storage.data_dir") or Path.home() / ".medicare"
    images_dir = data_dir / str(settings.get("storage.images_dir_name", "medicine_images"))
    store_file = data_dir / str(settings.get("storage.store_file", "store.json"))
    backup_file = data_dir / str(settings.get("storage.backup_file", "backup.json"))
    app_version = str(settings.get("app.version", "0.0.0"))

    kv = JsonFileKeyValueStore(store_file)
    blobs = BlobStore(
        images_dir,
        prefix=str(settings.get("images.filename_prefix", "medicine")),
        default_extension=str(settings.get("images.default_extension", "jpg")),
    )
    blobs.ensure_directory()
    records = RecordStore(kv, blobs)
    # Separate file: the backup slot holds inlined images
    state = BackupState(JsonFileKeyValueStore(backup_file))
    codec = BackupCodec(records, blobs, state, app_version)
    interval = timedelta(hours=settings.get_float("backup.auto_interval_hours", 24.0))
    updates = UpdateService(records, codec, state, app_version, backup_interval=interval)
    return Services(
        records=records,
        blobs=blobs,
        codec=codec,
        updates=updates,
        vm=MedicineVM(records),
        export_dir=settings.get_path("export.dir") or data_dir / "exports",
    )


def main() -> int:
    settings_file = BASE_DIR / "settings.json"
    settings = JsonSettings(settings_file if settings_file.exists() else None)
    log_dir = settings.get_path("logging.dir")
    level = str(settings.get("logging.level", "INFO"))
    init_logging(str(log_dir) if log_dir else None, level=level)

    services = build_services(settings)
    try:
        services.records.migrate_images()
    except StorageError as ex:
        logger.error("Image migration failed: {}", ex)
    result = services.updates.reconcile_on_startup()
    logger.info("Startup: {}", result.message)

    services.vm.reload()
    stats = services.updates.backup_stats()
    logger.info(
        "Ready: {} records, backup={} ({} records), {} images",
        stats.current_record_count,
        stats.has_backup,
        stats.backup_record_count,
        stats.image_count,
    )
    latest = find_latest_log_file(str(log_dir) if log_dir else None)
    if latest is not None:
        print(f"{result.message}. Log: {latest}")
    else:
        print(result.message)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
