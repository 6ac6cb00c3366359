"""Wrapper around the ``chromadb`` HTTP client."""

from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlparse

from kb_retrieval.exceptions import ConfigError, VectorStoreError
from kb_retrieval.models import Chunk, ChunkMetadata

from .base import (
    MetadataFilter,
    VectorBackend,
    VectorHit,
    check_vectors,
    enforce_signature,
    ids_for,
)

logger = logging.getLogger(__name__)


class ChromaBackend(VectorBackend):
    """Store chunks in a remote ChromaDB collection using cosine distance.

    The ``chromadb`` dependency is imported when the backend is constructed;
    a missing package raises :class:`VectorStoreError` with installation
    instructions.
    """

    name = "chroma"

    def __init__(
        self,
        chroma_url: str,
        collection_name: str,
        *,
        signature: Optional[Mapping[str, Any]] = None,
        client: Any | None = None,
    ) -> None:
        if not chroma_url and client is None:
            raise ConfigError("ChromaDB backend requires a chroma_url")
        self.chroma_url = chroma_url
        self.collection_name = collection_name
        self.signature = dict(signature or {})
        self._client = client if client is not None else self._connect(chroma_url)
        self._collection = self._get_collection()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def add(self, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> None:
        check_vectors(chunks, vectors)
        if not chunks:
            return
        self._collection.add(
            ids=ids_for(chunks),
            embeddings=[list(vector) for vector in vectors],
            documents=[chunk.content for chunk in chunks],
            metadatas=[chunk.metadata.to_dict() for chunk in chunks],
        )

    def delete(self, where: MetadataFilter) -> None:
        if where.is_empty():
            raise ValueError("Refusing to delete with an empty filter; use reset()")
        self._collection.delete(where=to_chroma_where(where))

    def query(
        self, vector: Sequence[float], k: int, where: Optional[MetadataFilter] = None
    ) -> List[VectorHit]:
        if k <= 0:
            return []
        kwargs: Dict[str, Any] = {
            "query_embeddings": [list(vector)],
            "n_results": k,
            "include": ["documents", "metadatas", "distances"],
        }
        if where is not None and not where.is_empty():
            kwargs["where"] = to_chroma_where(where)
        results = self._collection.query(**kwargs)

        documents: Sequence[str] = _first(results.get("documents"))
        metadatas: Sequence[Mapping[str, Any]] = _first(results.get("metadatas"))
        distances: Sequence[float] = _first(results.get("distances"))
        if not (len(documents) == len(metadatas) == len(distances)):
            raise VectorStoreError("ChromaDB returned result lists of different lengths")

        hits: List[VectorHit] = []
        for document, metadata, distance in zip(documents, metadatas, distances):
            # Cosine distance to similarity in [-1, 1].
            similarity = 1.0 - float(distance) if distance is not None else 0.0
            chunk = Chunk(content=document or "", metadata=ChunkMetadata.from_dict(metadata))
            hits.append((chunk, similarity))
        return hits

    def reset(self) -> None:
        try:
            self._client.delete_collection(self.collection_name)
        except Exception as exc:  # collection may not exist yet
            logger.debug("Chroma delete_collection(%s) failed: %s", self.collection_name, exc)
        self._collection = self._get_collection()
        logger.info("Cleared Chroma collection %s", self.collection_name)

    def count(self) -> int:
        return int(self._collection.count())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _connect(self, chroma_url: str) -> Any:
        chromadb = self._import_chromadb()
        parsed = urlparse(chroma_url)
        if not parsed.hostname:
            raise ConfigError(f"Invalid chroma_url: {chroma_url!r}")
        ssl = parsed.scheme == "https"
        port = parsed.port or (443 if ssl else 8000)
        client = chromadb.HttpClient(host=parsed.hostname, port=port, ssl=ssl)
        logger.info("Connected to ChromaDB at %s", chroma_url)
        return client

    def _get_collection(self) -> Any:
        metadata = {"hnsw:space": "cosine", **self.signature}
        collection = self._client.get_or_create_collection(
            name=self.collection_name, metadata=metadata
        )
        enforce_signature(self.collection_name, getattr(collection, "metadata", None), self.signature)
        return collection

    @staticmethod
    def _import_chromadb():
        try:
            return importlib.import_module("chromadb")
        except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
            raise VectorStoreError(
                "ChromaDB backend requires the 'chromadb' package. Install with "
                "`pip install chromadb`."
            ) from exc


def to_chroma_where(where: MetadataFilter) -> Dict[str, Any]:
    """Translate a :class:`MetadataFilter` into Chroma's ``where`` syntax."""

    clauses: List[Dict[str, Any]] = [{key: value} for key, value in where.equals.items()]
    if where.access_levels is not None:
        clauses.append({"access_level": {"$in": sorted(where.access_levels)}})
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _first(value: Any) -> Sequence[Any]:
    if not value:
        return []
    return value[0] or []


__all__ = ["ChromaBackend", "to_chroma_where"]
