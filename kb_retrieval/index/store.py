from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Type, TypeVar

from kb_retrieval.exceptions import EmbeddingError, RetrievalError, VectorStoreError
from kb_retrieval.models import Chunk

from .base import MetadataFilter, VectorBackend, VectorHit

if TYPE_CHECKING:  # pragma: no cover
    from kb_retrieval.hybrid.embeddings import Embedder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VectorStore:
    """Embed chunks and queries, then delegate storage and search to a backend.

    Every embedding and backend call runs in a worker thread and is bounded by
    ``timeout`` seconds; a timeout surfaces as the matching
    :class:`~kb_retrieval.exceptions.RetrievalError` subclass.
    """

    def __init__(
        self,
        backend: VectorBackend,
        embedder: Embedder,
        *,
        batch_size: int = 100,
        timeout: float = 30.0,
    ) -> None:
        self.backend = backend
        self.embedder = embedder
        self.batch_size = batch_size
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.backend.enabled

    async def add_documents(self, chunks: Sequence[Chunk]) -> int:
        """Embed and insert ``chunks`` in fixed-size batches; returns the number stored."""

        if not self.enabled or not chunks:
            return 0
        stored = 0
        for start in range(0, len(chunks), self.batch_size):
            batch = list(chunks[start : start + self.batch_size])
            vectors = await self._call(
                self.embedder.embed_documents, [chunk.content for chunk in batch], error=EmbeddingError
            )
            await self._call(self.backend.add, batch, vectors)
            stored += len(batch)
        return stored

    async def delete(self, where: MetadataFilter) -> None:
        if not self.enabled:
            return
        await self._call(self.backend.delete, where)

    async def similarity_search_with_score(
        self, query: str, k: int, where: Optional[MetadataFilter] = None
    ) -> List[VectorHit]:
        if not self.enabled or k <= 0:
            return []
        if where is not None and where.access_levels is not None and not where.access_levels:
            return []
        vector = await self._call(self.embedder.embed_query, query, error=EmbeddingError)
        return await self._call(self.backend.query, vector, k, where)

    async def reset(self) -> None:
        if not self.enabled:
            return
        await self._call(self.backend.reset)

    async def count(self) -> int:
        return await self._call(self.backend.count)

    async def _call(
        self,
        fn: Callable[..., T],
        *args: Any,
        error: Type[RetrievalError] = VectorStoreError,
    ) -> T:
        name = getattr(fn, "__qualname__", repr(fn))
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise error(f"{name} timed out after {self.timeout:.1f}s") from exc
        except RetrievalError:
            raise
        except Exception as exc:
            raise error(f"{name} failed: {exc}") from exc


__all__ = ["VectorStore"]
