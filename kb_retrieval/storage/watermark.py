"""Durable storage of the sync watermark."""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class WatermarkStore(Protocol):
    def read(self) -> datetime:
        """Return the last successful sync cutoff, or the epoch."""

    def write(self, value: datetime) -> None:
        """Persist a new cutoff."""


def atomic_write_text(path: Path | str, text: str, encoding: str = "utf-8") -> None:
    """Atomically write ``text`` to ``path`` using a temporary file."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(prefix=target.name, dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as tmp_file:
            tmp_file.write(text.encode(encoding))
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        os.replace(tmp_path, target)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) as aware UTC."""

    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class FileWatermarkStore:
    """Keep the watermark as one ISO-8601 line in a file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def read(self) -> datetime:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return EPOCH
        parsed = parse_timestamp(raw)
        if parsed is None:
            logger.warning("Ignoring unparseable sync watermark in %s: %r", self.path, raw[:64])
            return EPOCH
        return parsed

    def write(self, value: datetime) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        atomic_write_text(self.path, value.astimezone(timezone.utc).isoformat())


class MemoryWatermarkStore:
    """Non-durable watermark for tests."""

    def __init__(self, value: datetime = EPOCH) -> None:
        self.value = value
        self.writes = 0

    def read(self) -> datetime:
        return self.value

    def write(self, value: datetime) -> None:
        self.value = value
        self.writes += 1


__all__ = [
    "EPOCH",
    "FileWatermarkStore",
    "MemoryWatermarkStore",
    "WatermarkStore",
    "atomic_write_text",
    "parse_timestamp",
]
