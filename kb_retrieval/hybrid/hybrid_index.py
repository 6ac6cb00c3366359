from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from kb_retrieval.index.base import MetadataFilter
from kb_retrieval.index.store import VectorStore
from kb_retrieval.models import AccessFilter, SearchResult, SourceType

from .bm25_index import BM25Index

logger = logging.getLogger(__name__)


@dataclass
class HybridRetrievalConfig:
    rrf_k: int = 60
    min_similarity: float = 0.7
    enabled: bool = True
    candidate_multiplier: int = 3
    min_candidates: int = 10

    def candidate_count(self, k: int) -> int:
        return max(k * self.candidate_multiplier, self.min_candidates)


def reciprocal_rank_fusion(
    ranked_lists: Sequence[Sequence[SearchResult]], *, rrf_k: int = 60
) -> List[SearchResult]:
    """Fuse ranked lists keyed by exact chunk content.

    A result at 0-based rank ``r`` contributes ``1 / (r + rrf_k)``; results
    found by several lists accumulate every contribution. Ties keep the order
    in which contents were first seen.
    """

    fused: Dict[str, SearchResult] = {}
    for results in ranked_lists:
        for rank, result in enumerate(results):
            contribution = 1.0 / (rank + rrf_k)
            existing = fused.get(result.content)
            if existing is None:
                fused[result.content] = SearchResult(
                    content=result.content, metadata=result.metadata, score=contribution
                )
            else:
                existing.score += contribution

    return sorted(fused.values(), key=lambda item: item.score, reverse=True)


class HybridRetriever:
    """Combine vector similarity search with BM25 keyword search."""

    def __init__(
        self,
        vector_store: VectorStore,
        bm25_index: BM25Index,
        *,
        config: Optional[HybridRetrievalConfig] = None,
    ) -> None:
        self.vector = vector_store
        self.bm25 = bm25_index
        self.config = config or HybridRetrievalConfig()

    async def similarity_search(
        self,
        query: str,
        k: int,
        access_filter: Optional[AccessFilter] = None,
        *,
        source_type: Optional[SourceType] = None,
    ) -> List[SearchResult]:
        """Vector-only search; backend failures degrade to an empty list."""

        try:
            return await self._vector_search(query, k, access_filter, source_type=source_type)
        except Exception as exc:
            logger.warning("Similarity search failed: %s", exc)
            return []

    async def hybrid_search(
        self, query: str, k: int, access_filter: Optional[AccessFilter] = None
    ) -> List[SearchResult]:
        if k <= 0:
            return []
        if not self.config.enabled or len(self.bm25) == 0:
            return await self.similarity_search(query, k, access_filter)

        candidates = self.config.candidate_count(k)
        try:
            vector_hits = await self._vector_search(query, candidates, access_filter)
            keyword_hits = self.bm25.search(query, k=candidates, access_filter=access_filter)
            fused = reciprocal_rank_fusion(
                [vector_hits, keyword_hits], rrf_k=self.config.rrf_k
            )
        except Exception as exc:
            logger.warning("Hybrid search failed, falling back to vector search: %s", exc)
            return await self.similarity_search(query, k, access_filter)

        logger.debug(
            "Hybrid search fused %d vector and %d keyword hits into %d results",
            len(vector_hits),
            len(keyword_hits),
            len(fused),
        )
        return fused[:k]

    async def _vector_search(
        self,
        query: str,
        k: int,
        access_filter: Optional[AccessFilter],
        *,
        source_type: Optional[SourceType] = None,
    ) -> List[SearchResult]:
        equals = {"source": source_type.value} if source_type is not None else {}
        where = MetadataFilter.for_access(access_filter, **equals)
        hits = await self.vector.similarity_search_with_score(
            query, k, None if where.is_empty() else where
        )
        return [
            SearchResult.from_chunk(chunk, score)
            for chunk, score in hits
            if score >= self.config.min_similarity
        ]


__all__ = ["HybridRetrievalConfig", "HybridRetriever", "reciprocal_rank_fusion"]
