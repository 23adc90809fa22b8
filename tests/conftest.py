from __future__ import annotations

from datetime import datetime, timedelta, timezone
import os
from pathlib import Path

import pytest

from core.models import Category, RecordDraft, TransientRef
from infrastructure.backup_codec import BackupCodec
from infrastructure.backup_state import BackupState
from infrastructure.blob_store import BlobStore
from infrastructure.kv_store import MemoryKeyValueStore
from infrastructure.record_store import RecordStore
from infrastructure.update_service import UpdateService

APP_VERSION = "1.2.0"


class FakeClock:
    """Deterministic clock; every reading advances by `step`."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def images_dir(tmp_path: Path) -> Path:
    return tmp_path / "medicine_images"


@pytest.fixture
def blobs(images_dir: Path) -> BlobStore:
    return BlobStore(images_dir)


@pytest.fixture
def store(kv, blobs, clock) -> RecordStore:
    return RecordStore(kv, blobs, clock=clock)


@pytest.fixture
def state(kv) -> BackupState:
    return BackupState(kv)


@pytest.fixture
def codec(store, blobs, state, clock, tmp_path: Path) -> BackupCodec:
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return BackupCodec(store, blobs, state, APP_VERSION, temp_dir=scratch, clock=clock)


@pytest.fixture
def updates(store, codec, state, clock) -> UpdateService:
    return UpdateService(store, codec, state, APP_VERSION, clock=clock)


@pytest.fixture
def picker(tmp_path: Path):
    """Factory writing a file into a fake picker cache and returning its reference."""
    cache = tmp_path / "picker_cache"
    cache.mkdir()

    def _make(name: str = "photo.jpg", data: bytes | None = None) -> TransientRef:
        path = cache / name
        path.write_bytes(data if data is not None else os.urandom(256))
        return TransientRef(str(path))

    return _make


@pytest.fixture
def draft_factory(picker):
    def _make(name: str = "Oxytetracycline", images: int = 0, **kwargs) -> RecordDraft:
        refs = [picker(f"{name.lower()}_{i}.jpg") for i in range(images)]
        kwargs.setdefault("animal_type", "Cow")
        kwargs.setdefault("details", f"{name} details")
        kwargs.setdefault("category", Category.MEDICINE)
        return RecordDraft(name=name, images=refs, **kwargs)

    return _make
