"""Hybrid lexical + vector retrieval components."""

from .bm25_index import BM25Index, default_tokenizer
from .embeddings import Embedder, SentenceTransformerEmbedder, embedding_signature
from .hybrid_index import HybridRetrievalConfig, HybridRetriever, reciprocal_rank_fusion
from .stopwords import DEFAULT_STOPWORDS

__all__ = [
    "BM25Index",
    "DEFAULT_STOPWORDS",
    "Embedder",
    "HybridRetrievalConfig",
    "HybridRetriever",
    "SentenceTransformerEmbedder",
    "default_tokenizer",
    "embedding_signature",
    "reciprocal_rank_fusion",
]
