"""Core domain models for medicine/remedy records and backup snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

ANIMAL_TYPES = ("Cow", "Goat", "Heifer", "Buffalo", "Sheep")


class Category(str, Enum):
    """Kind of entry; home remedies carry a preparation method."""

    MEDICINE = "medicine"
    HOME_REMEDY = "home_remedy"

    @classmethod
    def parse(cls, value: str | Category | None) -> Category:
        """Decode a stored category, accepting the legacy `desi_totka` label."""
        if isinstance(value, Category):
            return value
        raw = str(value or "").strip().lower()
        if raw in {"desi_totka", "home_remedy", "remedy"}:
            return cls.HOME_REMEDY
        if raw == "medicine" or not raw:
            return cls.MEDICINE
        raise ValueError(f"Unknown category: {value}")

    @property
    def label(self) -> str:
        """Human readable label used in exported reports."""
        return "Medicine" if self is Category.MEDICINE else "Home Remedy"


@dataclass(frozen=True)
class TransientRef:
    """A file handed over by the image picker; may vanish at any time."""

    path: str


@dataclass(frozen=True)
class PermanentRef:
    """A file inside the managed image directory.

    Only `BlobStore` creates these.
    """

    path: str

    @property
    def filename(self) -> str:
        """Base name of the managed file."""
        return Path(self.path).name


ImageRef = TransientRef | PermanentRef


@dataclass
class Record:
    """A single medicine or home-remedy entry."""

    id: str
    name: str
    animal_type: str
    details: str
    category: Category
    created_at: datetime
    # Permanent once saved; legacy rows may still hold transient paths until migrated
    images: list[ImageRef] = field(default_factory=list)
    preparation_method: str | None = None
    purpose: str | None = None
    is_favorite: bool = False
    updated_at: datetime | None = None

    @property
    def last_activity(self) -> datetime:
        """Newest of `created_at` and `updated_at`."""
        if self.updated_at is not None and self.updated_at > self.created_at:
            return self.updated_at
        return self.created_at


@dataclass
class RecordDraft:
    """Input for creating a record; images are still picker references."""

    name: str
    animal_type: str
    details: str
    category: Category = Category.MEDICINE
    images: list[TransientRef] = field(default_factory=list)
    preparation_method: str | None = None
    purpose: str | None = None
    is_favorite: bool = False


@dataclass
class RecordPatch:
    """Partial update; `None` means "leave unchanged"."""

    name: str | None = None
    animal_type: str | None = None
    details: str | None = None
    category: Category | None = None
    images: list[ImageRef] | None = None
    preparation_method: str | None = None
    purpose: str | None = None
    is_favorite: bool | None = None


@dataclass
class SnapshotImage:
    """An image inlined into a snapshot."""

    base64: str
    filename: str
    original_reference: str


@dataclass
class SnapshotEntry:
    """One record inside a snapshot.

    `record.images` is not encoded; the inlined `images` replace it.
    """

    record: Record
    images: list[SnapshotImage] = field(default_factory=list)


@dataclass
class Snapshot:
    """Self-contained encoding of the full record collection."""

    device_id: str
    timestamp: datetime
    app_version: str
    schema_version: str
    entries: list[SnapshotEntry] = field(default_factory=list)
    total_count: int = 0
    # Records dropped while decoding; never encoded
    rejected_count: int = 0

    def newest_activity(self) -> datetime | None:
        """Newest `created_at`/`updated_at` across the captured records."""
        if not self.entries:
            return None
        return max(e.record.last_activity for e in self.entries)
