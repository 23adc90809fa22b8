from __future__ import annotations

import os

from loguru import logger
import pytest

from infrastructure.logging import find_latest_log_file, init_logging


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger.remove()


def test_init_logging_writes_rotating_file(tmp_path):
    log_dir = tmp_path / "logs"

    returned = init_logging(str(log_dir), level="DEBUG")
    logger.info("Backup saved locally ({} records)", 3)
    logger.remove()

    assert returned == log_dir
    latest = find_latest_log_file(str(log_dir))
    assert latest is not None
    assert latest.name.startswith("app_")
    assert "Backup saved locally (3 records)" in latest.read_text(encoding="utf-8")


def test_find_latest_log_file_picks_newest(tmp_path):
    old = tmp_path / "app_20240101.log"
    new = tmp_path / "app_20240102.log"
    old.write_text("old")
    new.write_text("new")
    os.utime(old, (1_000_000, 1_000_000))
    os.utime(new, (2_000_000, 2_000_000))

    assert find_latest_log_file(str(tmp_path)) == new


def test_find_latest_log_file_without_logs(tmp_path):
    assert find_latest_log_file(str(tmp_path / "absent")) is None
    assert find_latest_log_file(str(tmp_path)) is None
