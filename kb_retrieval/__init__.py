"""Hybrid retrieval core for the knowledge-base chat assistant."""

from __future__ import annotations

from .config import RetrievalConfig
from .engine import RetrievalEngine
from .exceptions import (
    ConfigError,
    DatabaseError,
    EmbeddingError,
    LLMError,
    ParseError,
    RetrievalError,
    SyncError,
    VectorStoreError,
)
from .models import (
    AccessFilter,
    AccessLevel,
    Chunk,
    ChunkMetadata,
    SearchResult,
    SourceType,
    SyncStats,
    allowed_levels_for_role,
)
from .sync import SyncEngine

__all__ = [
    "AccessFilter",
    "AccessLevel",
    "Chunk",
    "ChunkMetadata",
    "ConfigError",
    "DatabaseError",
    "EmbeddingError",
    "LLMError",
    "ParseError",
    "RetrievalConfig",
    "RetrievalEngine",
    "RetrievalError",
    "SearchResult",
    "SourceType",
    "SyncEngine",
    "SyncError",
    "SyncStats",
    "VectorStoreError",
    "allowed_levels_for_role",
]
