"""Permanent image storage.

Copies picker-provided files into a dedicated directory under collision
resistant names, and deletes, checks, migrates and garbage-collects the files
in that directory. Records only ever hold `PermanentRef` values minted here.
"""

from __future__ import annotations

from collections.abc import Iterable
import os
from pathlib import Path
import shutil

from loguru import logger

from core.errors import SourceUnreadable, StorageUnavailable
from core.models import ImageRef, PermanentRef, TransientRef
from core.services.interfaces import BlobRemoveResult
from infrastructure.utils import epoch_ms, random_base36

DEFAULT_PREFIX = "medicine"
DEFAULT_EXTENSION = "jpg"


def _ref_path(ref: ImageRef | str) -> str:
    return ref if isinstance(ref, str) else ref.path


class BlobStore:
    """Manages the directory of permanent image files."""

    def __init__(
        self,
        images_dir: str | Path,
        prefix: str = DEFAULT_PREFIX,
        default_extension: str = DEFAULT_EXTENSION,
    ) -> None:
        self._dir = Path(images_dir)
        self._prefix = prefix or DEFAULT_PREFIX
        self._default_ext = (default_extension or DEFAULT_EXTENSION).lstrip(".").lower()

    @property
    def directory(self) -> Path:
        """The managed directory."""
        return self._dir

    def ensure_directory(self) -> Path:
        """Create the managed directory if missing (idempotent)."""
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as ex:
            logger.error("Create images directory failed {}: {}", self._dir, ex)
            raise StorageUnavailable(f"cannot create {self._dir}: {ex}") from ex
        if not self._dir.is_dir():
            raise StorageUnavailable(f"{self._dir} exists and is not a directory")
        return self._dir

    # Naming
    def _extension_for(self, source: str) -> str:
        ext = Path(source).suffix.lstrip(".").lower()
        if ext and ext.isalnum() and len(ext) <= 5:
            return ext
        return self._default_ext

    def _new_filename(self, source: str) -> str:
        return f"{self._prefix}_{epoch_ms()}_{random_base36(9)}.{self._extension_for(source)}"

    # Namespace checks
    def is_managed(self, ref: ImageRef | str) -> bool:
        """True if `ref` names a file directly inside the managed directory."""
        path = _ref_path(ref)
        if not path:
            return False
        try:
            return Path(path).resolve().parent == self._dir.resolve()
        except (OSError, RuntimeError):
            return False

    def adopt(self, path: str) -> ImageRef:
        """Classify a stored path as a permanent or transient reference."""
        if self.is_managed(path):
            return PermanentRef(str(Path(path)))
        return TransientRef(path)

    def exists(self, ref: ImageRef | str) -> bool:
        """True if `ref` is inside the managed directory and the file is present."""
        if not self.is_managed(ref):
            return False
        return Path(_ref_path(ref)).is_file()

    # Persist
    def persist(self, ref: TransientRef | str) -> PermanentRef:
        """Copy the file at `ref` into the managed directory.

        Raises:
            SourceUnreadable: the source is missing or cannot be read.
            StorageUnavailable: the managed directory cannot be written.
        """
        source = _ref_path(ref)
        src_path = Path(source)
        if not source or not src_path.is_file():
            raise SourceUnreadable(source, "file does not exist")
        self.ensure_directory()
        target = self._dir / self._new_filename(source)
        try:
            with src_path.open("rb") as src:
                with target.open("xb") as dst:
                    shutil.copyfileobj(src, dst)
        except FileExistsError as ex:
            raise StorageUnavailable(f"name collision for {target.name}") from ex
        except FileNotFoundError as ex:
            raise SourceUnreadable(source, str(ex)) from ex
        except PermissionError as ex:
            self._discard(target)
            if not os.access(source, os.R_OK):
                raise SourceUnreadable(source, str(ex)) from ex
            raise StorageUnavailable(f"cannot write {target}: {ex}") from ex
        except OSError as ex:
            self._discard(target)
            raise SourceUnreadable(source, str(ex)) from ex
        logger.info("Image saved permanently: {}", target.name)
        return PermanentRef(str(target))

    def persist_all(self, refs: Iterable[TransientRef | str]) -> list[PermanentRef]:
        """Persist each reference in order, skipping unreadable sources.

        Files already copied are kept when a later one fails.
        """
        saved: list[PermanentRef] = []
        for ref in refs:
            try:
                saved.append(self.persist(ref))
            except SourceUnreadable as ex:
                logger.warning("Dropping image that could not be saved: {}", ex)
        return saved

    def read_bytes(self, ref: ImageRef | str) -> bytes:
        """Return the content of `ref`."""
        path = _ref_path(ref)
        try:
            return Path(path).read_bytes()
        except OSError as ex:
            raise SourceUnreadable(path, str(ex)) from ex

    # Remove
    def remove(self, ref: ImageRef | str) -> bool:
        """Delete `ref` if it is a managed file.

        Missing files and paths outside the managed directory count as success.
        Returns False only when an existing managed file could not be deleted.
        """
        path = _ref_path(ref)
        if not self.is_managed(path):
            logger.debug("Skipping delete - not a permanent image: {}", path)
            return True
        try:
            Path(path).unlink()
            logger.info("Deleted image: {}", Path(path).name)
        except FileNotFoundError:
            logger.debug("Image file does not exist: {}", path)
        except OSError as ex:
            logger.error("Delete image failed {}: {}", path, ex)
            return False
        return True

    def remove_all(self, refs: Iterable[ImageRef | str]) -> BlobRemoveResult:
        """Delete every managed reference in `refs` and report per-path results."""
        result = BlobRemoveResult()
        for ref in refs:
            path = _ref_path(ref)
            if self.remove(path):
                result.removed.append(path)
            else:
                result.failed.append((path, "delete failed"))
        return result

    def _discard(self, target: Path) -> None:
        try:
            target.unlink()
        except OSError:
            pass

    # Inventory
    def list_files(self) -> list[str]:
        """Names of all regular files in the managed directory."""
        if not self._dir.is_dir():
            return []
        try:
            return sorted(p.name for p in self._dir.iterdir() if p.is_file())
        except OSError as ex:
            raise StorageUnavailable(f"cannot list {self._dir}: {ex}") from ex

    def usage(self) -> tuple[int, int]:
        """Return (file_count, total_bytes) for the managed directory."""
        count = 0
        total = 0
        for name in self.list_files():
            try:
                total += (self._dir / name).stat().st_size
                count += 1
            except OSError as ex:
                logger.debug("stat failed for {}: {}", name, ex)
        return count, total

    def cleanup_orphans(self, referenced: Iterable[ImageRef | str]) -> int:
        """Delete managed files whose names are not in `referenced`.

        `referenced` must cover every image of every surviving record.
        Returns the number of files deleted.
        """
        self.ensure_directory()
        keep = {Path(_ref_path(r)).name for r in referenced}
        deleted = 0
        for name in self.list_files():
            if name in keep:
                continue
            try:
                (self._dir / name).unlink()
                deleted += 1
                logger.info("Deleted orphaned image: {}", name)
            except FileNotFoundError:
                continue
            except OSError as ex:
                logger.warning("Could not delete orphaned image {}: {}", name, ex)
        logger.info("Cleanup complete. Deleted {} orphaned images.", deleted)
        return deleted

    def migrate(self, old_refs: Iterable[ImageRef | str]) -> list[PermanentRef]:
        """Bring references from older storage schemes into the managed directory.

        Live managed files are kept as they are; anything else is copied in.
        References that cannot be read are dropped with a warning.
        """
        migrated: list[PermanentRef] = []
        for ref in old_refs:
            path = _ref_path(ref)
            if self.exists(path):
                migrated.append(PermanentRef(path))
                continue
            try:
                migrated.append(self.persist(path))
            except SourceUnreadable as ex:
                logger.warning("Could not migrate image {}: {}", path, ex)
        return migrated
