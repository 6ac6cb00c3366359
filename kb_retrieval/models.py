from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional


class SourceType(str, Enum):
    """Kind of SourceRecord a chunk was derived from."""

    HEADLINE = "headline"
    DOCUMENT = "document"
    IMAGE = "image"


class AccessLevel(str, Enum):
    """Visibility tier of a SourceRecord, ordered from least to most restricted."""

    PUBLIC = "public"
    INTERN = "intern"
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ACCESS_ORDER.index(self)

    @classmethod
    def parse(cls, value: Optional[str], default: "AccessLevel | None" = None) -> "AccessLevel":
        """Return the level named by ``value``; unknown or empty values use ``default``."""

        fallback = default or cls.EMPLOYEE
        if not value:
            return fallback
        try:
            return cls(value.strip().lower())
        except ValueError:
            return fallback

    def levels_up_to(self) -> tuple["AccessLevel", ...]:
        return _ACCESS_ORDER[: self.rank + 1]


_ACCESS_ORDER = (
    AccessLevel.PUBLIC,
    AccessLevel.INTERN,
    AccessLevel.EMPLOYEE,
    AccessLevel.MANAGER,
    AccessLevel.ADMIN,
)

_ROLE_CEILINGS: Dict[str, AccessLevel] = {
    "admin": AccessLevel.ADMIN,
    "entwickler": AccessLevel.ADMIN,
    "manager": AccessLevel.MANAGER,
    "employee": AccessLevel.EMPLOYEE,
    "editor": AccessLevel.EMPLOYEE,
    "intern": AccessLevel.INTERN,
    "public": AccessLevel.PUBLIC,
}


def allowed_levels_for_role(role: Optional[str]) -> tuple[str, ...]:
    """Map a chat user role to the access levels it may read.

    Unknown or missing roles only see public content.
    """

    ceiling = _ROLE_CEILINGS.get((role or "").strip().lower(), AccessLevel.PUBLIC)
    return tuple(level.value for level in ceiling.levels_up_to())


@dataclass(frozen=True)
class AccessFilter:
    """Set of access levels a caller is allowed to retrieve."""

    allowed_levels: FrozenSet[str]

    def __init__(self, allowed_levels: Iterable[str]) -> None:
        levels = frozenset(str(getattr(level, "value", level)) for level in allowed_levels)
        object.__setattr__(self, "allowed_levels", levels)

    @classmethod
    def for_role(cls, role: Optional[str]) -> "AccessFilter":
        return cls(allowed_levels_for_role(role))

    def allows(self, level: str) -> bool:
        return level in self.allowed_levels


@dataclass(frozen=True)
class ChunkMetadata:
    """Structured metadata attached to every chunk.

    ``access_level`` is copied from the SourceRecord when the chunk is built
    and is never looked up again at query time.
    """

    source_type: SourceType
    source_id: int
    access_level: str
    chunk_index: int = 0
    document_id: Optional[int] = None
    article_id: Optional[int] = None
    file_type: Optional[str] = None
    page: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into primitive values; ``None`` fields are omitted."""

        data = asdict(self)
        data["source"] = self.source_type.value
        del data["source_type"]
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChunkMetadata":
        def _optional_int(key: str) -> Optional[int]:
            value = data.get(key)
            return int(value) if value is not None else None

        return cls(
            source_type=SourceType(data["source"]),
            source_id=int(data["source_id"]),
            access_level=str(data.get("access_level") or AccessLevel.EMPLOYEE.value),
            chunk_index=int(data.get("chunk_index") or 0),
            document_id=_optional_int("document_id"),
            article_id=_optional_int("article_id"),
            file_type=data.get("file_type"),
            page=_optional_int("page"),
        )


@dataclass(frozen=True)
class Chunk:
    """A unit of retrievable text; superseded rather than mutated."""

    content: str
    metadata: ChunkMetadata

    @property
    def chunk_id(self) -> str:
        meta = self.metadata
        page = f"-p{meta.page}" if meta.page is not None else ""
        return f"{meta.source_type.value}-{meta.source_id}{page}-{meta.chunk_index}"

    @property
    def source_key(self) -> tuple[SourceType, int]:
        return (self.metadata.source_type, self.metadata.source_id)


@dataclass
class SearchResult:
    """Ranked passage returned by the keyword, vector and hybrid searches."""

    content: str
    metadata: ChunkMetadata
    score: float
    rerank_score: Optional[float] = None

    @classmethod
    def from_chunk(cls, chunk: Chunk, score: float) -> "SearchResult":
        return cls(content=chunk.content, metadata=chunk.metadata, score=score)

    def with_rerank_score(self, rerank_score: float) -> "SearchResult":
        return replace(self, rerank_score=rerank_score)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "content": self.content,
            "metadata": self.metadata.to_dict(),
            "score": self.score,
        }
        if self.rerank_score is not None:
            payload["rerank_score"] = self.rerank_score
        return payload


@dataclass
class SyncStats:
    """Counters reported by a sync pass."""

    headlines: int = 0
    documents: Dict[str, int] = field(default_factory=dict)
    images: int = 0
    chunks: int = 0
    skipped: int = 0

    def count_document(self, file_type: str) -> None:
        self.documents[file_type] = self.documents.get(file_type, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headlines": self.headlines,
            "documents": dict(self.documents),
            "images": self.images,
            "chunks": self.chunks,
            "skipped": self.skipped,
        }


__all__ = [
    "AccessFilter",
    "AccessLevel",
    "Chunk",
    "ChunkMetadata",
    "SearchResult",
    "SourceType",
    "SyncStats",
    "allowed_levels_for_role",
]
