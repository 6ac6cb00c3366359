"""Incremental synchronization of the source-of-truth store into the indexes."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from kb_retrieval.chunking import StructuralChunker
from kb_retrieval.exceptions import ParseError, SyncError
from kb_retrieval.hybrid.bm25_index import BM25Index
from kb_retrieval.index import MetadataFilter, VectorStore
from kb_retrieval.models import Chunk, ChunkMetadata, SyncStats
from kb_retrieval.parsing import load_document, sanitize_html
from kb_retrieval.storage import (
    EPOCH,
    ArticleRecord,
    DocumentRecord,
    ImageRecord,
    SourceRecord,
    SourceStore,
    WatermarkStore,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """Bring the vector store and keyword index in line with the source store.

    Each changed record is handled as delete, then re-chunk, then embed and
    insert; records run concurrently up to ``concurrency`` at a time. The
    watermark only moves forward once every record of a pass succeeded.
    """

    def __init__(
        self,
        source_store: SourceStore,
        vector_store: VectorStore,
        bm25_index: BM25Index,
        watermark: WatermarkStore,
        *,
        uploads_dir: Path | str,
        article_max_tokens: int = 500,
        document_max_tokens: int = 300,
        overlap_tokens: int = 50,
        concurrency: int = 4,
        hybrid_enabled: bool = True,
        clock=utcnow,
    ) -> None:
        self.source_store = source_store
        self.vector_store = vector_store
        self.bm25_index = bm25_index
        self.watermark = watermark
        self.uploads_dir = Path(uploads_dir)
        self.article_chunker = StructuralChunker(article_max_tokens, overlap_tokens)
        self.document_chunker = StructuralChunker(document_max_tokens, overlap_tokens)
        self.concurrency = concurrency
        self.hybrid_enabled = hybrid_enabled
        self._clock = clock

    # ------------------------------------------------------------------
    # Sync passes
    # ------------------------------------------------------------------
    async def sync_from_db(self, since: Optional[datetime] = None) -> SyncStats:
        """Process every record changed after ``since`` (default: the stored watermark).

        Source-store failures and vector-store failures raise and leave the
        watermark untouched; unreadable documents are logged and skipped.
        """

        return await self._run_pass(since)

    async def init_vector_db(self) -> SyncStats:
        """Clear the vector store, then rebuild both indexes from every source record.

        The keyword index keeps serving its previous contents until the pass
        ends and is then replaced in one step, so a search never sees it
        half-cleared.
        """

        await self.vector_store.reset()
        return await self._run_pass(EPOCH, full_rebuild=True)

    async def drop_vector_db(self) -> None:
        self.bm25_index.clear()
        await self.vector_store.reset()
        logger.info("Vector store and keyword index cleared")

    async def _run_pass(
        self, since: Optional[datetime], *, full_rebuild: bool = False
    ) -> SyncStats:
        started = self._clock()
        previous = self.watermark.read()
        cutoff = previous if since is None else since
        logger.info(
            "%s sync starting (changes since %s)",
            "Full" if full_rebuild else "Incremental",
            cutoff.isoformat(),
        )

        articles, documents, images = await asyncio.gather(
            self.source_store.changed_articles(cutoff),
            self.source_store.changed_documents(cutoff),
            self.source_store.changed_images(cutoff),
        )
        records: List[SourceRecord] = [*articles, *documents, *images]

        stats = SyncStats()
        collected: Optional[List[Chunk]] = [] if full_rebuild else None
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _guarded(record: SourceRecord) -> None:
            async with semaphore:
                await self._sync_record(record, stats, collected)

        try:
            outcomes = await asyncio.gather(
                *(_guarded(record) for record in records), return_exceptions=True
            )
        finally:
            if collected is not None and self.hybrid_enabled:
                self.bm25_index.rebuild(collected)

        failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        if failures:
            for failure in failures:
                logger.error("Sync record failed: %s", failure)
            raise SyncError(
                f"{len(failures)} of {len(records)} records failed; watermark kept at "
                f"{previous.isoformat()}",
                failures,
            )

        self.watermark.write(max(started, previous))
        logger.info(
            "Sync finished in %.2fs: %s",
            (self._clock() - started).total_seconds(),
            stats.to_dict(),
        )
        return stats

    async def warm_keyword_index(self) -> int:
        """Rebuild the keyword index from all active records without embedding."""

        if not self.hybrid_enabled:
            return 0
        started = time.perf_counter()
        articles, documents, images = await asyncio.gather(
            self.source_store.changed_articles(EPOCH),
            self.source_store.changed_documents(EPOCH),
            self.source_store.changed_images(EPOCH),
        )
        chunks: List[Chunk] = []
        for record in [*articles, *documents, *images]:
            if not record.is_active:
                continue
            try:
                chunks.extend(await self.build_chunks(record))
            except ParseError as exc:
                logger.warning("Keyword warm-up skipped %s %s: %s", record.source_type.value, record.id, exc)
        self.bm25_index.rebuild(chunks)
        logger.info(
            "Keyword index warmed with %d chunks in %.2fs",
            len(chunks),
            time.perf_counter() - started,
        )
        return len(chunks)

    # ------------------------------------------------------------------
    # Per-record processing
    # ------------------------------------------------------------------
    async def _sync_record(
        self,
        record: SourceRecord,
        stats: SyncStats,
        collected: Optional[List[Chunk]] = None,
    ) -> None:
        """Replace one record's chunks; ``collected`` defers keyword indexing."""

        source_type = record.source_type
        await self.vector_store.delete(MetadataFilter.for_source(source_type, record.id))

        if not record.is_active:
            if collected is None:
                self.bm25_index.remove_source(source_type, record.id)
            logger.debug("Removed inactive %s %s", source_type.value, record.id)
            return

        try:
            chunks = await self.build_chunks(record)
        except ParseError as exc:
            if collected is None:
                self.bm25_index.remove_source(source_type, record.id)
            stats.skipped += 1
            logger.warning("Skipping %s %s: %s", source_type.value, record.id, exc)
            return

        await self.vector_store.add_documents(chunks)
        if collected is not None:
            collected.extend(chunks)
        elif self.hybrid_enabled:
            self.bm25_index.remove_source(source_type, record.id)
            self.bm25_index.add_many(chunks)

        stats.chunks += len(chunks)
        if isinstance(record, ArticleRecord):
            stats.headlines += 1
        elif isinstance(record, DocumentRecord):
            stats.count_document(record.file_type)
        else:
            stats.images += 1

    async def build_chunks(self, record: SourceRecord) -> List[Chunk]:
        """Chunk the current content of ``record``; documents are read from disk."""

        if isinstance(record, ArticleRecord):
            return self._article_chunks(record)
        if isinstance(record, DocumentRecord):
            return await self._document_chunks(record)
        if isinstance(record, ImageRecord):
            return self._image_chunks(record)
        raise TypeError(f"Unsupported record type: {type(record).__name__}")

    def _article_chunks(self, record: ArticleRecord) -> List[Chunk]:
        texts = self.article_chunker.split(
            sanitize_html(record.text_content), context_prefix=record.context_prefix
        )
        return [
            Chunk(
                content=text,
                metadata=ChunkMetadata(
                    source_type=record.source_type,
                    source_id=record.id,
                    access_level=record.access_level,
                    chunk_index=index,
                ),
            )
            for index, text in enumerate(texts)
        ]

    async def _document_chunks(self, record: DocumentRecord) -> List[Chunk]:
        path = self.uploads_dir / record.filepath
        pages = await asyncio.to_thread(load_document, path, record.file_type)
        intro = sanitize_html(record.text_content)

        chunks: List[Chunk] = []
        for page in pages:
            body = "\n\n".join(part for part in (intro, page.text) if part)
            texts = self.document_chunker.split(body, context_prefix=record.context_prefix)
            for index, text in enumerate(texts):
                chunks.append(
                    Chunk(
                        content=text,
                        metadata=ChunkMetadata(
                            source_type=record.source_type,
                            source_id=record.id,
                            access_level=record.access_level,
                            chunk_index=index,
                            document_id=record.id,
                            article_id=record.article_id,
                            file_type=record.file_type,
                            page=page.page,
                        ),
                    )
                )
        return chunks

    def _image_chunks(self, record: ImageRecord) -> List[Chunk]:
        return [
            Chunk(
                content=text,
                metadata=ChunkMetadata(
                    source_type=record.source_type,
                    source_id=record.id,
                    access_level=record.access_level,
                    chunk_index=index,
                ),
            )
            for index, text in enumerate(self.article_chunker.split(record.text_content))
        ]


__all__ = ["SyncEngine", "SyncError", "utcnow"]
