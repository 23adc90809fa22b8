"""ViewModel exposing the record store to list, favorites and detail screens."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from loguru import logger

from core.models import Category, Record, RecordDraft, RecordPatch
from core.services.interfaces import RecordStats
from infrastructure.record_store import RecordStore
from infrastructure.utils import utc_now

ALL = "All"
RECENT_WINDOW = timedelta(days=7)


class MedicineVM:
    """Main record list view-model.

    Keeps a cached copy of the collection plus the active filters, and routes
    mutations through the `RecordStore` before refreshing the cache.
    """

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = utc_now) -> None:
        """Create a MedicineVM.

        Args:
            store: Record store backing the screens.
            clock: Used for the "added recently" count.
        """
        self._store = store
        self._clock = clock
        self.records: list[Record] = []
        self.selected_category: str = ALL
        self.selected_animal: str = ALL

    def reload(self) -> None:
        """Reload the cached records from the store."""
        self.records = self._store.list_all()
        logger.debug("Loaded {} records", len(self.records))

    def set_filters(self, category: str = ALL, animal: str = ALL) -> None:
        """Set the category ("medicine"/"home_remedy") and animal filters."""
        self.selected_category = category or ALL
        self.selected_animal = animal or ALL

    @property
    def filtered(self) -> list[Record]:
        """Cached records matching the active filters."""
        items = self.records
        if self.selected_category != ALL:
            wanted = Category.parse(self.selected_category)
            items = [r for r in items if r.category is wanted]
        if self.selected_animal != ALL:
            items = [r for r in items if r.animal_type == self.selected_animal]
        return items

    @property
    def favorites(self) -> list[Record]:
        """Cached favorite records."""
        return [r for r in self.records if r.is_favorite]

    def animal_options(self) -> list[str]:
        """Filter choices: "All" followed by each animal in first-seen order."""
        seen: list[str] = []
        for rec in self.records:
            if rec.animal_type and rec.animal_type not in seen:
                seen.append(rec.animal_type)
        return [ALL, *seen]

    def stats(self) -> RecordStats:
        """Counts shown in the list header."""
        now = self._clock()
        return RecordStats(
            total=len(self.records),
            animals=len({r.animal_type for r in self.records}),
            recent=sum(1 for r in self.records if now - r.created_at <= RECENT_WINDOW),
            medicines=sum(1 for r in self.records if r.category is Category.MEDICINE),
            home_remedies=sum(1 for r in self.records if r.category is Category.HOME_REMEDY),
            favorites=len(self.favorites),
        )

    def add(self, draft: RecordDraft) -> Record:
        """Create a record and refresh the cache."""
        record = self._store.create(draft)
        self.reload()
        return record

    def edit(self, record_id: str, patch: RecordPatch) -> Record:
        """Update a record and refresh the cache."""
        record = self._store.update(record_id, patch)
        self.reload()
        return record

    def remove(self, record_id: str) -> bool:
        """Delete a record (and its images) and refresh the cache."""
        deleted = self._store.delete(record_id)
        if deleted:
            self.reload()
        return deleted

    def toggle_favorite(self, record_id: str) -> Record | None:
        """Flip a record's favorite flag in the store and in the cache."""
        updated = self._store.toggle_favorite(record_id)
        if updated is not None:
            self.records = [updated if r.id == record_id else r for r in self.records]
        return updated

    @property
    def record_count(self) -> int:
        """Number of records currently cached."""
        return len(self.records)
