from __future__ import annotations

import math
import re
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import AbstractSet, Callable, Dict, Iterable, List, Optional

from kb_retrieval.models import AccessFilter, Chunk, SearchResult, SourceType

from .stopwords import DEFAULT_STOPWORDS

TokenizeFn = Callable[[str], List[str]]

_SPLIT_RE = re.compile(r"[\W_]+")


def default_tokenizer(
    text: str, *, stopwords: AbstractSet[str] | None = DEFAULT_STOPWORDS
) -> List[str]:
    """Lowercase, split on non-alphanumerics, drop one-letter tokens and stop words.

    ``\\W`` is Unicode aware, so umlauts and ``ß`` stay inside their words.
    """

    tokens = [token for token in _SPLIT_RE.split(text.lower()) if len(token) > 1]
    if stopwords:
        tokens = [token for token in tokens if token not in stopwords]
    return tokens


@dataclass
class _Entry:
    chunk: Chunk
    term_freq: Counter[str]
    length: int


class BM25Index:
    """In-memory BM25 ranking over knowledge-base chunks with access filtering."""

    def __init__(
        self,
        *,
        tokenizer: TokenizeFn | None = None,
        stopwords: AbstractSet[str] | None = DEFAULT_STOPWORDS,
        k1: float = 1.5,
        b: float = 0.75,
    ) -> None:
        self.tokenizer: TokenizeFn = tokenizer or (
            lambda text: default_tokenizer(text, stopwords=stopwords)
        )
        self.k1 = k1
        self.b = b
        self._entries: List[_Entry] = []
        self._doc_freqs: Dict[str, int] = defaultdict(int)
        self._avg_doc_len: float = 0.0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def avg_doc_len(self) -> float:
        return self._avg_doc_len

    def doc_freq(self, term: str) -> int:
        return self._doc_freqs.get(term, 0)

    def add(self, chunk: Chunk) -> None:
        self._index(chunk)
        self._recompute_avg_len()

    def add_many(self, chunks: Iterable[Chunk]) -> None:
        """Index a batch, recomputing the average length once at the end."""

        for chunk in chunks:
            self._index(chunk)
        self._recompute_avg_len()

    def remove_source(self, source_type: SourceType, source_id: int) -> int:
        """Drop every entry derived from one SourceRecord; returns the number removed."""

        key = (source_type, source_id)
        kept: List[_Entry] = []
        removed = 0
        for entry in self._entries:
            if entry.chunk.source_key == key:
                removed += 1
                for term in entry.term_freq:
                    self._doc_freqs[term] -= 1
                    if self._doc_freqs[term] <= 0:
                        del self._doc_freqs[term]
            else:
                kept.append(entry)
        if removed:
            self._entries = kept
            self._recompute_avg_len()
        return removed

    def clear(self) -> None:
        """Reset documents, document frequencies and average length together."""

        self._entries = []
        self._doc_freqs = defaultdict(int)
        self._avg_doc_len = 0.0

    def rebuild(self, chunks: Iterable[Chunk]) -> None:
        """Replace the whole corpus in one step."""

        chunk_list = list(chunks)
        self.clear()
        self.add_many(chunk_list)

    def search(
        self,
        query: str,
        *,
        k: int = 10,
        access_filter: Optional[AccessFilter] = None,
    ) -> List[SearchResult]:
        if not query or not self._entries or k <= 0:
            return []

        query_terms = sorted(set(self.tokenizer(query)))
        if not query_terms:
            return []

        scored: List[SearchResult] = []
        for entry in self._entries:
            # Corpus statistics stay global; filtering only hides candidates.
            if access_filter is not None and not access_filter.allows(
                entry.chunk.metadata.access_level
            ):
                continue
            score = 0.0
            for term in query_terms:
                score += self._score_term(term, entry)
            if score > 0:
                scored.append(SearchResult.from_chunk(entry.chunk, score))

        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[:k]

    def _index(self, chunk: Chunk) -> None:
        tokens = self.tokenizer(chunk.content)
        term_freq = Counter(tokens)
        self._entries.append(_Entry(chunk=chunk, term_freq=term_freq, length=len(tokens)))
        for term in term_freq:
            self._doc_freqs[term] += 1

    def _recompute_avg_len(self) -> None:
        if not self._entries:
            self._avg_doc_len = 0.0
            return
        self._avg_doc_len = sum(entry.length for entry in self._entries) / len(self._entries)

    def _score_term(self, term: str, entry: _Entry) -> float:
        tf = entry.term_freq.get(term, 0)
        if tf == 0:
            return 0.0

        df = self._doc_freqs.get(term, 0)
        if df == 0:
            return 0.0

        idf = math.log((len(self._entries) - df + 0.5) / (df + 0.5) + 1)
        avg_len = self._avg_doc_len or 1.0
        denom = tf + self.k1 * (1 - self.b + self.b * entry.length / avg_len)
        return idf * (tf * (self.k1 + 1)) / denom


__all__ = ["BM25Index", "TokenizeFn", "default_tokenizer"]
