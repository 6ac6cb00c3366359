from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, List, Protocol, Sequence

from kb_retrieval.exceptions import ConfigError, EmbeddingError

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Embedding interface for pluggable feature-extraction models."""

    dimension: int

    def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        """Return one vector per input text."""

    def embed_query(self, text: str) -> List[float]:
        """Return the vector for a single query."""


class SentenceTransformerEmbedder:
    """Feature-extraction embeddings backed by ``sentence-transformers``.

    The model is assembled from a transformer module and an explicit pooling
    module so the pooling strategy is a configuration choice. Vectors written
    with one pooling/normalization setting are not comparable with vectors
    written with another; changing either requires a full rebuild.
    """

    def __init__(
        self,
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        *,
        dimension: int = 384,
        pooling: str = "mean",
        normalize: bool = True,
        batch_size: int = 32,
    ) -> None:
        self.model_name = model_name
        self.dimension = dimension
        self.pooling = pooling
        self.normalize = normalize
        self.batch_size = batch_size
        self._model: Any | None = None

    def load(self) -> None:
        """Load the model and verify its output dimension."""

        if self._model is not None:
            return

        SentenceTransformer, models = _load_sentence_transformers()
        word_model = models.Transformer(self.model_name)
        pooling_model = models.Pooling(
            word_model.get_word_embedding_dimension(), pooling_mode=self.pooling
        )
        model = SentenceTransformer(modules=[word_model, pooling_model])

        actual = model.get_sentence_embedding_dimension()
        if actual != self.dimension:
            raise ConfigError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {actual} "
                f"from model '{self.model_name}'"
            )
        self._model = model
        logger.info(
            "Loaded embedding model %s (pooling=%s, normalize=%s, dim=%d)",
            self.model_name,
            self.pooling,
            self.normalize,
            actual,
        )

    def signature(self) -> Dict[str, Any]:
        """Settings that must match between every vector in one collection."""

        return embedding_signature(self)

    def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        self.load()
        try:
            matrix = self._model.encode(
                list(texts),
                batch_size=self.batch_size,
                normalize_embeddings=self.normalize,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as exc:
            raise EmbeddingError(f"Embedding failed: {exc}") from exc
        return matrix.tolist()

    def embed_query(self, text: str) -> List[float]:
        return self.embed_documents([text])[0]


def embedding_signature(embedder: Any) -> Dict[str, Any]:
    """Describe an embedder for collection metadata; missing attributes are skipped."""

    signature: Dict[str, Any] = {"embedding_dimension": int(embedder.dimension)}
    for attr, key in (
        ("model_name", "embedding_model"),
        ("pooling", "embedding_pooling"),
        ("normalize", "embedding_normalize"),
    ):
        value = getattr(embedder, attr, None)
        if value is not None:
            signature[key] = value
    return signature


def _load_sentence_transformers():
    try:
        sentence_transformers = importlib.import_module("sentence_transformers")
        models = importlib.import_module("sentence_transformers.models")
        return sentence_transformers.SentenceTransformer, models
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
        raise ConfigError(
            "Embeddings require the 'sentence-transformers' package. Install it with "
            "`pip install sentence-transformers`."
        ) from exc


__all__ = ["Embedder", "SentenceTransformerEmbedder", "embedding_signature"]
