from __future__ import annotations

import asyncio
from typing import Sequence

import pytest

from kb_retrieval.hybrid import (
    BM25Index,
    HybridRetrievalConfig,
    HybridRetriever,
    reciprocal_rank_fusion,
)
from kb_retrieval.index import InMemoryBackend, VectorStore
from kb_retrieval.models import AccessFilter, Chunk, ChunkMetadata, SearchResult, SourceType


class KeywordEmbedder:
    """Map texts to fixed vectors by the first keyword they contain."""

    dimension = 2

    def __init__(self, mapping: dict[str, Sequence[float]], default: Sequence[float]):
        self.mapping = mapping
        self.default = default

    def _vector(self, text: str) -> list[float]:
        lowered = text.lower()
        for key, vector in self.mapping.items():
            if key in lowered:
                return list(vector)
        return list(self.default)

    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._vector(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._vector(text)


class FailingVectorStore:
    def __init__(self):
        self.calls = 0

    async def similarity_search_with_score(self, query, k, where=None):
        self.calls += 1
        raise RuntimeError("backend unreachable")


class ExplodingBM25(BM25Index):
    def search(self, query, *, k=10, access_filter=None):
        raise RuntimeError("keyword index corrupted")


def _result(content: str, score: float = 1.0) -> SearchResult:
    return SearchResult(
        content=content,
        metadata=ChunkMetadata(source_type=SourceType.HEADLINE, source_id=1, access_level="public"),
        score=score,
    )


def _chunk(text: str, source_id: int, access_level: str = "public") -> Chunk:
    return Chunk(
        content=text,
        metadata=ChunkMetadata(
            source_type=SourceType.HEADLINE, source_id=source_id, access_level=access_level
        ),
    )


def _store(chunks: list[Chunk], embedder: KeywordEmbedder) -> VectorStore:
    store = VectorStore(InMemoryBackend(), embedder, timeout=5)
    asyncio.run(store.add_documents(chunks))
    return store


def test_rrf_example_ties_documents_found_by_both_lists():
    vector = [_result("A"), _result("B"), _result("C")]
    keyword = [_result("B"), _result("A"), _result("D")]

    fused = reciprocal_rank_fusion([vector, keyword], rrf_k=60)

    scores = {item.content: item.score for item in fused}
    assert scores["A"] == pytest.approx(1 / 60 + 1 / 61)
    assert scores["B"] == pytest.approx(1 / 61 + 1 / 60)
    assert scores["A"] == pytest.approx(0.03279, abs=1e-5)
    assert [item.content for item in fused[:2]] == ["A", "B"]
    assert scores["C"] == pytest.approx(1 / 62)
    assert scores["D"] == pytest.approx(1 / 62)
    assert set(item.content for item in fused[2:]) == {"C", "D"}


def test_rrf_orders_by_rank_not_magnitude():
    vector = [_result("semantic", 0.99), _result("lexical", 0.01)]
    keyword = [_result("lexical", 1000.0)]

    fused = reciprocal_rank_fusion([vector, keyword], rrf_k=60)

    assert fused[0].content == "lexical"


def test_candidate_count_has_floor():
    config = HybridRetrievalConfig()

    assert config.candidate_count(1) == 10
    assert config.candidate_count(5) == 15


def test_hybrid_search_prefers_chunks_found_by_both_signals():
    chunks = [
        _chunk("Heart attack treatment guide", 1),
        _chunk("Myocardial infarction overview", 2),
        _chunk("Treatment of the common cold", 3),
    ]
    embedder = KeywordEmbedder(
        {"heart": [1.0, 0.0], "myocardial": [0.95, 0.3], "cold": [0.0, 1.0]},
        default=[0.0, 1.0],
    )
    bm25 = BM25Index()
    bm25.add_many(chunks)
    retriever = HybridRetriever(_store(chunks, embedder), bm25)

    results = asyncio.run(retriever.hybrid_search("heart attack treatment", 2))

    assert [r.metadata.source_id for r in results] == [1, 2]


def test_min_similarity_drops_weak_vector_hits():
    chunks = [_chunk("Heart health", 1), _chunk("Cold weather", 2)]
    embedder = KeywordEmbedder({"heart": [1.0, 0.0], "cold": [0.0, 1.0]}, default=[0.6, 0.8])
    retriever = HybridRetriever(
        _store(chunks, embedder), BM25Index(), config=HybridRetrievalConfig(min_similarity=0.7)
    )

    results = asyncio.run(retriever.similarity_search("heart", 5))

    assert [r.metadata.source_id for r in results] == [1]


def test_vector_only_when_keyword_index_is_empty():
    chunks = [_chunk("Heart health", 1)]
    embedder = KeywordEmbedder({"heart": [1.0, 0.0]}, default=[0.0, 1.0])
    retriever = HybridRetriever(_store(chunks, embedder), BM25Index())

    results = asyncio.run(retriever.hybrid_search("heart", 3))

    assert [r.content for r in results] == ["Heart health"]


def test_access_filter_applies_to_both_paths():
    chunks = [_chunk("Budget plan public summary", 1), _chunk("Budget plan internal details", 2, "manager")]
    embedder = KeywordEmbedder({"budget": [1.0, 0.0]}, default=[0.0, 1.0])
    bm25 = BM25Index()
    bm25.add_many(chunks)
    retriever = HybridRetriever(_store(chunks, embedder), bm25)

    results = asyncio.run(retriever.hybrid_search("budget plan", 5, AccessFilter(["public"])))

    assert [r.metadata.source_id for r in results] == [1]


def test_hybrid_falls_back_to_vector_search_on_keyword_error():
    chunks = [_chunk("Heart health", 1)]
    embedder = KeywordEmbedder({"heart": [1.0, 0.0]}, default=[0.0, 1.0])
    bm25 = ExplodingBM25()
    bm25.add_many(chunks)
    retriever = HybridRetriever(_store(chunks, embedder), bm25)

    results = asyncio.run(retriever.hybrid_search("heart", 3))

    assert [r.content for r in results] == ["Heart health"]


def test_backend_failure_degrades_to_empty_list():
    bm25 = BM25Index()
    bm25.add_many([_chunk("Heart health", 1)])
    store = FailingVectorStore()
    retriever = HybridRetriever(store, bm25)

    results = asyncio.run(retriever.hybrid_search("heart", 3))

    assert results == []
    assert store.calls == 2


def test_disabled_hybrid_uses_vector_path_only():
    chunks = [_chunk("Heart health", 1), _chunk("Heart rate zones", 2)]
    embedder = KeywordEmbedder({"zones": [0.0, 1.0], "heart": [1.0, 0.0]}, default=[0.5, 0.5])
    bm25 = BM25Index()
    bm25.add_many(chunks)
    retriever = HybridRetriever(
        _store(chunks, embedder), bm25, config=HybridRetrievalConfig(enabled=False)
    )

    results = asyncio.run(retriever.hybrid_search("heart", 5))

    assert [r.metadata.source_id for r in results] == [1]
    assert results[0].score == pytest.approx(1.0)
