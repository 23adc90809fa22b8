from __future__ import annotations

from pathlib import Path
import re

import pytest

from core.errors import SourceUnreadable, StorageUnavailable
from core.models import PermanentRef, TransientRef
from infrastructure.blob_store import BlobStore

NAME_RE = re.compile(r"^medicine_\d{13}_[0-9a-z]{9}\.(\w+)$")


def test_ensure_directory_is_idempotent(blobs, images_dir):
    blobs.ensure_directory()
    blobs.ensure_directory()
    assert images_dir.is_dir()


def test_ensure_directory_fails_when_path_is_a_file(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    with pytest.raises(StorageUnavailable):
        BlobStore(blocker).ensure_directory()


def test_persist_copies_bytes_under_generated_name(blobs, images_dir, picker):
    src = picker("cow.PNG", b"\x89PNG-data")
    ref = blobs.persist(src)

    assert isinstance(ref, PermanentRef)
    path = Path(ref.path)
    assert path.parent == images_dir
    match = NAME_RE.match(path.name)
    assert match and match.group(1) == "png"
    assert path.read_bytes() == b"\x89PNG-data"
    # Source is left untouched
    assert Path(src.path).read_bytes() == b"\x89PNG-data"


def test_persist_defaults_extension(blobs, picker):
    ref = blobs.persist(picker("noext", b"abc"))
    assert ref.filename.endswith(".jpg")


def test_persist_gives_unique_names(blobs, picker):
    src = picker("a.jpg")
    names = {blobs.persist(src).filename for _ in range(20)}
    assert len(names) == 20


def test_persist_missing_source_raises(blobs, tmp_path):
    with pytest.raises(SourceUnreadable):
        blobs.persist(TransientRef(str(tmp_path / "gone.jpg")))


def test_persist_all_skips_unreadable(blobs, picker, tmp_path):
    good1 = picker("one.jpg")
    good2 = picker("two.jpg")
    missing = TransientRef(str(tmp_path / "missing.jpg"))

    saved = blobs.persist_all([good1, missing, good2])

    assert len(saved) == 2
    assert all(blobs.exists(ref) for ref in saved)


def test_remove_is_idempotent(blobs, picker):
    ref = blobs.persist(picker())
    assert blobs.remove(ref) is True
    assert not Path(ref.path).exists()
    assert blobs.remove(ref) is True


def test_remove_ignores_files_outside_managed_directory(blobs, picker):
    outside = picker("keep.jpg")
    assert blobs.remove(outside) is True
    assert Path(outside.path).exists()


def test_exists_is_false_outside_namespace(blobs, picker):
    outside = picker("elsewhere.jpg")
    assert blobs.exists(outside) is False
    inside = blobs.persist(outside)
    assert blobs.exists(inside) is True


def test_adopt_classifies_paths(blobs, picker):
    inside = blobs.persist(picker())
    assert isinstance(blobs.adopt(inside.path), PermanentRef)
    assert isinstance(blobs.adopt("/tmp/cache/picked.jpg"), TransientRef)


def test_remove_all_reports_results(blobs, picker):
    refs = [blobs.persist(picker(f"{i}.jpg")) for i in range(3)]
    result = blobs.remove_all(refs)
    assert len(result.removed) == 3
    assert result.failed == []
    assert blobs.list_files() == []


def test_cleanup_orphans_keeps_referenced_files(blobs, picker):
    keep = [blobs.persist(picker(f"k{i}.jpg")) for i in range(2)]
    orphans = [blobs.persist(picker(f"o{i}.jpg")) for i in range(3)]

    deleted = blobs.cleanup_orphans(keep)

    assert deleted == 3
    assert sorted(blobs.list_files()) == sorted(ref.filename for ref in keep)
    assert not any(Path(ref.path).exists() for ref in orphans)


def test_cleanup_orphans_second_run_deletes_nothing(blobs, picker):
    keep = [blobs.persist(picker("k.jpg"))]
    blobs.persist(picker("o.jpg"))
    referenced = {ref.filename for ref in keep}

    assert blobs.cleanup_orphans(referenced) == 1
    assert blobs.cleanup_orphans(referenced) == 0


def test_migrate_copies_outside_refs_and_drops_missing(blobs, picker, tmp_path):
    managed = blobs.persist(picker("m.jpg"))
    legacy = picker("legacy.jpg", b"legacy-bytes")
    missing = str(tmp_path / "vanished.jpg")

    migrated = blobs.migrate([managed, legacy.path, missing])

    assert len(migrated) == 2
    assert migrated[0] == managed
    assert blobs.exists(migrated[1])
    assert Path(migrated[1].path).read_bytes() == b"legacy-bytes"


def test_usage_counts_files_and_bytes(blobs, picker):
    blobs.persist(picker("a.jpg", b"12345"))
    blobs.persist(picker("b.jpg", b"123"))
    assert blobs.usage() == (2, 8)
