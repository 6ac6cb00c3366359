from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Protocol, TypeVar, Union

from .records import ArticleRecord, DocumentRecord, ImageRecord

SourceRecord = Union[ArticleRecord, DocumentRecord, ImageRecord]

R = TypeVar("R", ArticleRecord, DocumentRecord, ImageRecord)


class SourceStore(Protocol):
    """Source-of-truth reads needed by the sync engine."""

    async def changed_articles(self, since: datetime) -> List[ArticleRecord]:
        """Articles with ``updated_at > since``."""

    async def changed_documents(self, since: datetime) -> List[DocumentRecord]:
        """Documents with ``updated_at > since``."""

    async def changed_images(self, since: datetime) -> List[ImageRecord]:
        """Images with ``updated_at > since``."""


class InMemorySourceStore:
    """Dictionary-backed source store for tests and embedding the engine."""

    def __init__(
        self,
        *,
        articles: Iterable[ArticleRecord] = (),
        documents: Iterable[DocumentRecord] = (),
        images: Iterable[ImageRecord] = (),
    ) -> None:
        self.articles: Dict[int, ArticleRecord] = {record.id: record for record in articles}
        self.documents: Dict[int, DocumentRecord] = {record.id: record for record in documents}
        self.images: Dict[int, ImageRecord] = {record.id: record for record in images}

    def upsert(self, record: SourceRecord) -> None:
        if isinstance(record, ArticleRecord):
            self.articles[record.id] = record
        elif isinstance(record, DocumentRecord):
            self.documents[record.id] = record
        elif isinstance(record, ImageRecord):
            self.images[record.id] = record
        else:
            raise TypeError(f"Unsupported record type: {type(record).__name__}")

    async def changed_articles(self, since: datetime) -> List[ArticleRecord]:
        return _changed(self.articles.values(), since)

    async def changed_documents(self, since: datetime) -> List[DocumentRecord]:
        return _changed(self.documents.values(), since)

    async def changed_images(self, since: datetime) -> List[ImageRecord]:
        return _changed(self.images.values(), since)


def _changed(records: Iterable[R], since: datetime) -> List[R]:
    return sorted(
        (record for record in records if record.updated_at > since),
        key=lambda record: record.id,
    )


__all__ = ["InMemorySourceStore", "SourceRecord", "SourceStore"]
