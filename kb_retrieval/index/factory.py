from __future__ import annotations

from typing import Any, Mapping, Optional

from kb_retrieval.config import RetrievalConfig
from kb_retrieval.exceptions import ConfigError

from .base import VectorBackend
from .chroma import ChromaBackend
from .memory import InMemoryBackend
from .null import NullBackend
from .weaviate import WeaviateBackend


def create_backend(
    config: RetrievalConfig, *, signature: Optional[Mapping[str, Any]] = None
) -> VectorBackend:
    """Build the backend selected by ``config.vector_db_type`` once at startup."""

    backend_type = config.vector_db_type
    if backend_type == "chroma":
        if not config.chroma_url:
            raise ConfigError("vector_db_type 'chroma' requires chroma_url")
        return ChromaBackend(config.chroma_url, config.chroma_collection, signature=signature)
    if backend_type == "weaviate":
        if not config.weaviate_url:
            raise ConfigError("vector_db_type 'weaviate' requires weaviate_url")
        return WeaviateBackend(
            config.weaviate_url,
            config.weaviate_collection,
            api_key=config.weaviate_api_key,
            signature=signature,
        )
    if backend_type == "memory":
        return InMemoryBackend(dimension=config.embedding_dimension)
    if backend_type == "none":
        return NullBackend()
    raise ConfigError(f"Unknown vector_db_type: {backend_type!r}")


__all__ = ["create_backend"]
