"""Vector backends and the embedding-aware store that fronts them."""

from .base import MetadataFilter, VectorBackend, VectorHit
from .chroma import ChromaBackend
from .factory import create_backend
from .memory import InMemoryBackend
from .null import NullBackend
from .store import VectorStore
from .weaviate import WeaviateBackend

__all__ = [
    "ChromaBackend",
    "InMemoryBackend",
    "MetadataFilter",
    "NullBackend",
    "VectorBackend",
    "VectorHit",
    "VectorStore",
    "WeaviateBackend",
    "create_backend",
]
