"""Utilities for timestamps and generated identifiers.

Timestamps are stored as UTC ISO-8601 strings with a trailing `Z`. Parsing is
best-effort and will not raise; callers should expect `None` when a stored
value is missing or malformed.
"""

from __future__ import annotations

from datetime import datetime, timezone
import secrets
import string
import time

from loguru import logger

_BASE36 = string.digits + string.ascii_lowercase


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def epoch_ms(dt: datetime | None = None) -> int:
    """Milliseconds since the epoch for `dt` (defaults to now)."""
    if dt is None:
        return int(time.time() * 1000)
    return int(dt.timestamp() * 1000)


def random_base36(length: int = 9) -> str:
    """Random lower-case base36 string of `length` characters."""
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_record_id() -> str:
    """Opaque record id: epoch milliseconds followed by 9 random characters."""
    return f"{epoch_ms()}{random_base36(9)}"


def generate_device_id() -> str:
    """Device id generated once per install."""
    return f"device_{epoch_ms()}_{random_base36(9)}"


def format_iso(dt: datetime | None) -> str | None:
    """Format `dt` as UTC ISO-8601 with a `Z` suffix; None stays None."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Returns None if the value is empty or invalid.
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except (ValueError, TypeError):
        logger.warning("Invalid timestamp: {}", value)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
