from __future__ import annotations

from typing import List, Optional, Sequence

from kb_retrieval.models import Chunk

from .base import MetadataFilter, VectorBackend, VectorHit


class NullBackend(VectorBackend):
    """Backend used when the vector database is switched off."""

    name = "none"
    enabled = False

    def add(self, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> None:
        return None

    def delete(self, where: MetadataFilter) -> None:
        return None

    def query(
        self, vector: Sequence[float], k: int, where: Optional[MetadataFilter] = None
    ) -> List[VectorHit]:
        return []

    def reset(self) -> None:
        return None


__all__ = ["NullBackend"]
