from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import numpy as np

from kb_retrieval.models import Chunk

from .base import MetadataFilter, VectorBackend, VectorHit, check_vectors


class InMemoryBackend(VectorBackend):
    """Process-local cosine-similarity backend built on numpy."""

    name = "memory"

    def __init__(self, *, dimension: Optional[int] = None) -> None:
        self._dim = dimension
        self._chunks: Dict[str, Chunk] = {}
        self._vectors: Dict[str, np.ndarray] = {}

    def add(self, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> None:
        check_vectors(chunks, vectors)
        for chunk, vector in zip(chunks, vectors):
            array = np.asarray(vector, dtype="float32")
            if self._dim is None:
                self._dim = array.shape[0]
            elif array.shape[0] != self._dim:
                raise ValueError(
                    f"Embedding dimension mismatch: expected {self._dim}, got {array.shape[0]}"
                )
            self._chunks[chunk.chunk_id] = chunk
            self._vectors[chunk.chunk_id] = array

    def delete(self, where: MetadataFilter) -> None:
        doomed = [
            chunk_id
            for chunk_id, chunk in self._chunks.items()
            if where.matches(chunk.metadata.to_dict())
        ]
        for chunk_id in doomed:
            del self._chunks[chunk_id]
            del self._vectors[chunk_id]

    def query(
        self, vector: Sequence[float], k: int, where: Optional[MetadataFilter] = None
    ) -> List[VectorHit]:
        candidates = [
            chunk_id
            for chunk_id, chunk in self._chunks.items()
            if where is None or where.matches(chunk.metadata.to_dict())
        ]
        if not candidates or k <= 0:
            return []

        query = np.asarray(vector, dtype="float32")
        matrix = np.stack([self._vectors[chunk_id] for chunk_id in candidates])
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        similarities = matrix @ query / norms

        order = np.argsort(-similarities, kind="stable")[:k]
        return [(self._chunks[candidates[idx]], float(similarities[idx])) for idx in order]

    def reset(self) -> None:
        self._chunks.clear()
        self._vectors.clear()

    def count(self) -> int:
        return len(self._chunks)


__all__ = ["InMemoryBackend"]
