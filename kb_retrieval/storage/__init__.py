"""Source-of-truth records, stores and the sync watermark."""

from .records import ArticleRecord, DocumentRecord, ImageRecord, normalize_access_level
from .source_store import InMemorySourceStore, SourceRecord, SourceStore
from .watermark import EPOCH, FileWatermarkStore, MemoryWatermarkStore, WatermarkStore

__all__ = [
    "ArticleRecord",
    "DocumentRecord",
    "EPOCH",
    "FileWatermarkStore",
    "ImageRecord",
    "InMemorySourceStore",
    "MemoryWatermarkStore",
    "SourceRecord",
    "SourceStore",
    "WatermarkStore",
    "normalize_access_level",
]
