from __future__ import annotations

from datetime import datetime, timedelta, timezone

from kb_retrieval.storage import EPOCH, FileWatermarkStore
from kb_retrieval.storage.watermark import parse_timestamp


def test_missing_file_reads_as_epoch(tmp_path):
    assert FileWatermarkStore(tmp_path / "missing").read() == EPOCH


def test_write_then_read_round_trips_in_utc(tmp_path):
    store = FileWatermarkStore(tmp_path / "state" / ".vectordb_last_sync")
    value = datetime(2024, 5, 1, 12, 30, tzinfo=timezone(timedelta(hours=2)))

    store.write(value)

    assert store.read() == value
    assert store.path.read_text(encoding="utf-8") == "2024-05-01T10:30:00+00:00"
    assert [path.name for path in store.path.parent.iterdir()] == [".vectordb_last_sync"]


def test_unparseable_file_reads_as_epoch(tmp_path, caplog):
    path = tmp_path / "watermark"
    path.write_text("yesterday", encoding="utf-8")

    assert FileWatermarkStore(path).read() == EPOCH
    assert "unparseable" in caplog.text


def test_parse_timestamp_accepts_z_suffix_and_naive_values():
    assert parse_timestamp("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-02T03:04:05") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_timestamp("  ") is None
