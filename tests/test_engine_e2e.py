from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Sequence

import pytest

from kb_retrieval import AccessFilter, RetrievalConfig, RetrievalEngine
from kb_retrieval.index import InMemoryBackend
from kb_retrieval.storage import ArticleRecord, ImageRecord, InMemorySourceStore, MemoryWatermarkStore

STAMP = datetime(2024, 3, 1, tzinfo=timezone.utc)


class TopicEmbedder:
    """Two-dimensional embeddings: texts mentioning "test" point one way, all others the other."""

    dimension = 2

    def _vector(self, text: str) -> list[float]:
        return [1.0, 0.0] if "test" in text.lower() else [0.0, 1.0]

    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._vector(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._vector(text)


class ScriptedLLM:
    def __init__(self, reply: str):
        self.reply = reply
        self.calls = 0

    async def acomplete(self, system, user, *, temperature=0.0, max_tokens=200):
        self.calls += 1
        return self.reply


def _config(tmp_path, **overrides) -> RetrievalConfig:
    return RetrievalConfig(
        vector_db_type="memory",
        embedding_dimension=2,
        uploads_dir=tmp_path,
        watermark_path=tmp_path / ".vectordb_last_sync",
        _env_file=None,
        **overrides,
    )


def _engine(tmp_path, articles, *, llm=None, **overrides) -> RetrievalEngine:
    return RetrievalEngine(
        _config(tmp_path, **overrides),
        source_store=InMemorySourceStore(articles=articles),
        embedder=TopicEmbedder(),
        backend=InMemoryBackend(),
        watermark=MemoryWatermarkStore(),
        llm=llm,
    )


def _article(record_id: int, body: str, access_level: str) -> ArticleRecord:
    return ArticleRecord(
        id=record_id,
        title=f"Article {record_id}",
        description=body,
        access_level=access_level,
        updated_at=STAMP,
    )


def test_public_user_only_sees_public_chunks(tmp_path):
    engine = _engine(
        tmp_path,
        [
            _article(1, "This public test article explains exam dates.", "public"),
            _article(2, "The internal test protocol for staff.", "employee"),
        ],
    )
    asyncio.run(engine.sync_from_db())

    results = asyncio.run(engine.hybrid_search("test", 5, AccessFilter(["public"])))

    assert results
    assert {result.metadata.source_id for result in results} == {1}
    assert all(result.metadata.access_level == "public" for result in results)


def test_no_match_in_public_content_returns_empty_list(tmp_path):
    engine = _engine(
        tmp_path,
        [
            _article(1, "Cafeteria opening hours.", "public"),
            _article(2, "The internal test protocol for staff.", "employee"),
        ],
    )
    asyncio.run(engine.sync_from_db())

    assert asyncio.run(engine.hybrid_search("test", 5, AccessFilter(["public"]))) == []


def test_retrieve_uses_role_access_levels(tmp_path):
    engine = _engine(
        tmp_path,
        [
            _article(1, "Public test schedule.", "public"),
            _article(2, "Employee test handbook.", "employee"),
        ],
    )
    asyncio.run(engine.sync_from_db())

    guest = asyncio.run(engine.retrieve("test", role="guest"))
    employee = asyncio.run(engine.retrieve("test", role="employee"))

    assert {r.metadata.source_id for r in guest} == {1}
    assert {r.metadata.source_id for r in employee} == {1, 2}


def test_retrieve_reranks_when_enabled(tmp_path):
    llm = ScriptedLLM("[1, 9]")
    engine = _engine(
        tmp_path,
        [
            _article(1, "Test dates for the first semester.", "public"),
            _article(2, "Test dates for the second semester.", "public"),
        ],
        llm=llm,
        reranker_enabled=True,
        retrieve_k=1,
    )
    asyncio.run(engine.sync_from_db())

    results = asyncio.run(engine.retrieve("test", role="public"))

    assert llm.calls == 1
    assert len(results) == 1
    assert results[0].rerank_score == 9.0


def test_start_warms_keyword_index_for_existing_vectors(tmp_path):
    engine = _engine(tmp_path, [_article(1, "Public test schedule.", "public")])

    asyncio.run(engine.start())

    assert len(engine.bm25_index) == 1


def test_image_chunks_only_returns_images(tmp_path):
    store = InMemorySourceStore(
        articles=[_article(1, "Test article", "public")],
        images=[ImageRecord(1, "test.png", "Test setup photo", "public", STAMP)],
    )
    engine = RetrievalEngine(
        _config(tmp_path),
        source_store=store,
        embedder=TopicEmbedder(),
        backend=InMemoryBackend(),
        watermark=MemoryWatermarkStore(),
    )
    asyncio.run(engine.sync_from_db())

    images = asyncio.run(engine.image_chunks("test", 5, AccessFilter(["public"])))

    assert [r.content for r in images] == ["Image: test.png\nTest setup photo"]


def test_search_survives_backend_outage(tmp_path):
    class DownBackend(InMemoryBackend):
        def query(self, vector, k, where=None):
            raise ConnectionError("vector db down")

    engine = RetrievalEngine(
        _config(tmp_path),
        source_store=InMemorySourceStore(articles=[_article(1, "Public test schedule.", "public")]),
        embedder=TopicEmbedder(),
        backend=DownBackend(),
        watermark=MemoryWatermarkStore(),
    )
    asyncio.run(engine.sync_from_db())

    assert asyncio.run(engine.hybrid_search("test", 3, AccessFilter(["public"]))) == []
    assert asyncio.run(engine.similarity_search("test", 3)) == []


@pytest.mark.parametrize("command", ["drop", "init"])
def test_lifecycle_commands_round_trip(tmp_path, command):
    engine = _engine(tmp_path, [_article(1, "Public test schedule.", "public")])
    asyncio.run(engine.sync_from_db())

    if command == "drop":
        asyncio.run(engine.drop_vector_db())
        assert engine.backend.count() == 0
    else:
        stats = asyncio.run(engine.init_vector_db())
        assert stats.headlines == 1
        assert engine.backend.count() == 1
    asyncio.run(engine.close())
