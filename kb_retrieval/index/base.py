"""Uniform interface over the pluggable similarity-search backends."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from kb_retrieval.exceptions import ConfigError
from kb_retrieval.models import AccessFilter, Chunk, SourceType

logger = logging.getLogger(__name__)

VectorHit = Tuple[Chunk, float]


@dataclass(frozen=True)
class MetadataFilter:
    """Conjunction of exact-match metadata predicates plus an optional access clause."""

    equals: Mapping[str, Any] = field(default_factory=dict)
    access_levels: Optional[FrozenSet[str]] = None

    @classmethod
    def for_source(cls, source_type: SourceType, source_id: int) -> "MetadataFilter":
        """Select every chunk belonging to one SourceRecord."""

        return cls(equals={"source": source_type.value, "source_id": int(source_id)})

    @classmethod
    def for_access(
        cls, access_filter: Optional[AccessFilter], **equals: Any
    ) -> "MetadataFilter":
        levels = access_filter.allowed_levels if access_filter is not None else None
        return cls(equals=dict(equals), access_levels=levels)

    def is_empty(self) -> bool:
        return not self.equals and self.access_levels is None

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        for key, expected in self.equals.items():
            if metadata.get(key) != expected:
                return False
        if self.access_levels is not None:
            return metadata.get("access_level") in self.access_levels
        return True


class VectorBackend(ABC):
    """Storage and nearest-neighbour search for embedded chunks.

    Implementations are synchronous; :class:`~kb_retrieval.index.store.VectorStore`
    moves every call off the event loop and applies timeouts.
    """

    name = "abstract"
    enabled = True

    @abstractmethod
    def add(self, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> None:
        """Store ``chunks`` with their precomputed ``vectors``."""

    @abstractmethod
    def delete(self, where: MetadataFilter) -> None:
        """Remove every stored chunk matching ``where``."""

    @abstractmethod
    def query(
        self, vector: Sequence[float], k: int, where: Optional[MetadataFilter] = None
    ) -> List[VectorHit]:
        """Return up to ``k`` ``(chunk, similarity)`` pairs, most similar first."""

    @abstractmethod
    def reset(self) -> None:
        """Physically remove every stored chunk."""

    def count(self) -> int:
        return 0

    def close(self) -> None:
        return None


def check_vectors(chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> None:
    if len(chunks) != len(vectors):
        raise ValueError(f"Got {len(vectors)} vectors for {len(chunks)} chunks")


def signature_mismatches(
    stored: Optional[Mapping[str, Any]], expected: Mapping[str, Any]
) -> Dict[str, Tuple[Any, Any]]:
    """Return ``{key: (stored, expected)}`` for signature keys that differ."""

    if not stored:
        return {}
    return {
        key: (stored[key], value)
        for key, value in expected.items()
        if key in stored and stored[key] != value
    }


def enforce_signature(
    collection_name: str, stored: Optional[Mapping[str, Any]], expected: Mapping[str, Any]
) -> None:
    """Raise on a stored dimension mismatch; warn about other embedding settings."""

    for key, (stored_value, expected_value) in signature_mismatches(stored, expected).items():
        if key == "embedding_dimension":
            raise ConfigError(
                f"Collection {collection_name} stores {stored_value}-dimensional vectors "
                f"but the embedder produces {expected_value}"
            )
        logger.warning(
            "Collection %s was built with %s=%s but the embedder uses %s; "
            "run a full rebuild before mixing vectors",
            collection_name,
            key,
            stored_value,
            expected_value,
        )


def ids_for(chunks: Iterable[Chunk]) -> List[str]:
    return [chunk.chunk_id for chunk in chunks]


__all__ = [
    "MetadataFilter",
    "VectorBackend",
    "VectorHit",
    "check_vectors",
    "enforce_signature",
    "ids_for",
    "signature_mismatches",
]
