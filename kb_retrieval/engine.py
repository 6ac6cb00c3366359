"""Primary entrypoint for the retrieval core."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from kb_retrieval.clients import ChatCompletionClient, CompletionClient
from kb_retrieval.config import RetrievalConfig
from kb_retrieval.hybrid import (
    BM25Index,
    Embedder,
    HybridRetrievalConfig,
    HybridRetriever,
    SentenceTransformerEmbedder,
    embedding_signature,
)
from kb_retrieval.index import VectorBackend, VectorStore, create_backend
from kb_retrieval.models import AccessFilter, SearchResult, SourceType, SyncStats
from kb_retrieval.rerank import LLMReranker
from kb_retrieval.storage import FileWatermarkStore, SourceStore, WatermarkStore
from kb_retrieval.sync import SyncEngine

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Owns the vector store, keyword index, watermark and sync engine.

    Construct one per process and pass it to the query and sync entrypoints.
    Search methods never raise for backend-availability reasons; sync methods
    do, since a failed pass needs operator attention.
    """

    def __init__(
        self,
        config: RetrievalConfig,
        *,
        source_store: SourceStore,
        embedder: Optional[Embedder] = None,
        backend: Optional[VectorBackend] = None,
        watermark: Optional[WatermarkStore] = None,
        llm: Optional[CompletionClient] = None,
    ) -> None:
        self.config = config
        self.embedder = embedder or SentenceTransformerEmbedder(
            config.embedding_model,
            dimension=config.embedding_dimension,
            pooling=config.embedding_pooling,
            normalize=config.embedding_normalize,
        )
        self.backend = backend or create_backend(
            config, signature=embedding_signature(self.embedder)
        )
        self.vector_store = VectorStore(
            self.backend,
            self.embedder,
            batch_size=config.sync_batch_size,
            timeout=config.request_timeout_s,
        )
        self.bm25_index = BM25Index()
        self.watermark = watermark or FileWatermarkStore(config.watermark_path)
        self.retriever = HybridRetriever(
            self.vector_store,
            self.bm25_index,
            config=HybridRetrievalConfig(
                rrf_k=config.rrf_k,
                min_similarity=config.min_similarity,
                enabled=config.hybrid_enabled,
            ),
        )
        self.sync_engine = SyncEngine(
            source_store,
            self.vector_store,
            self.bm25_index,
            self.watermark,
            uploads_dir=config.uploads_dir,
            article_max_tokens=config.article_max_tokens,
            document_max_tokens=config.document_max_tokens,
            overlap_tokens=config.chunk_overlap_tokens,
            concurrency=config.sync_concurrency,
            hybrid_enabled=config.hybrid_enabled,
        )
        self._llm = llm
        self._reranker: Optional[LLMReranker] = None
        logger.info(
            "Retrieval engine configured (backend=%s, hybrid=%s, reranker=%s)",
            self.backend.name,
            config.hybrid_enabled,
            config.reranker_enabled,
        )

    async def start(self) -> None:
        """Load the embedding model and warm the keyword index.

        Configuration errors such as an embedding dimension mismatch are
        raised here, before any traffic is served.
        """

        load = getattr(self.embedder, "load", None)
        if callable(load):
            await asyncio.to_thread(load)
        await self.sync_engine.warm_keyword_index()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    async def hybrid_search(
        self, query: str, k: int, access_filter: Optional[AccessFilter] = None
    ) -> List[SearchResult]:
        return await self.retriever.hybrid_search(query, k, access_filter)

    async def similarity_search(
        self, query: str, k: int, access_filter: Optional[AccessFilter] = None
    ) -> List[SearchResult]:
        return await self.retriever.similarity_search(query, k, access_filter)

    async def image_chunks(
        self, query: str, k: int, access_filter: Optional[AccessFilter] = None
    ) -> List[SearchResult]:
        """Vector search restricted to image captions."""

        return await self.retriever.similarity_search(
            query, k, access_filter, source_type=SourceType.IMAGE
        )

    async def rerank_documents(
        self, query: str, candidates: Sequence[SearchResult], top_k: int
    ) -> List[SearchResult]:
        return await self.reranker.rerank(query, candidates, top_k)

    async def retrieve(self, query: str, role: Optional[str] = None) -> List[SearchResult]:
        """Fetch the passages handed to the chat layer for a user with ``role``."""

        access_filter = AccessFilter.for_role(role)
        top_k = self.config.retrieve_k
        if not self.config.reranker_enabled:
            return await self.hybrid_search(query, top_k, access_filter)

        candidates = await self.hybrid_search(
            query, max(self.config.reranker_candidates, top_k), access_filter
        )
        return await self.rerank_documents(query, candidates, top_k)

    @property
    def reranker(self) -> LLMReranker:
        if self._reranker is None:
            llm = self._llm or ChatCompletionClient(
                self.config.llm_base_url,
                self.config.llm_model,
                api_key=self.config.llm_api_key,
                timeout=self.config.llm_timeout_s,
            )
            self._reranker = LLMReranker(
                llm,
                snippet_chars=self.config.reranker_snippet_chars,
                timeout=self.config.llm_timeout_s,
            )
        return self._reranker

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def sync_from_db(self) -> SyncStats:
        return await self.sync_engine.sync_from_db()

    async def init_vector_db(self) -> SyncStats:
        return await self.sync_engine.init_vector_db()

    async def drop_vector_db(self) -> None:
        await self.sync_engine.drop_vector_db()

    async def close(self) -> None:
        await asyncio.to_thread(self.backend.close)
        llm = self._reranker.llm if self._reranker is not None else self._llm
        llm_close = getattr(llm, "close", None)
        if callable(llm_close):
            llm_close()


__all__ = ["RetrievalEngine"]
