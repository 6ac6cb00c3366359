"""Application configuration for the retrieval core."""

from __future__ import annotations

import importlib
import importlib.util
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VectorDbType = Literal["chroma", "weaviate", "memory", "none"]
PoolingMode = Literal["mean", "cls", "max"]


class RetrievalConfig(BaseSettings):  # type: ignore[misc]
    """Settings controlling backends, chunk budgets and ranking behavior."""

    vector_db_type: VectorDbType = Field(
        "chroma", description="Vector backend: chroma, weaviate, memory or none"
    )
    chroma_url: Optional[str] = Field(None, description="HTTP endpoint of the Chroma server")
    chroma_collection: str = Field("htw-kb", description="Chroma collection name")
    weaviate_url: Optional[str] = Field(None, description="HTTP endpoint of the Weaviate server")
    weaviate_api_key: Optional[str] = Field(None, description="Optional Weaviate API key")
    weaviate_collection: str = Field("HtwKb", description="Weaviate collection name")

    embedding_model: str = Field(
        "sentence-transformers/all-MiniLM-L6-v2",
        description="Feature-extraction model used for embeddings",
    )
    embedding_dimension: int = Field(384, description="Expected embedding dimension")
    embedding_pooling: PoolingMode = Field("mean", description="Token pooling strategy")
    embedding_normalize: bool = Field(True, description="L2-normalize embeddings")

    article_max_tokens: int = Field(500, description="Token budget for article chunks")
    document_max_tokens: int = Field(300, description="Token budget for document page chunks")
    chunk_overlap_tokens: int = Field(50, description="Overlap between sliding windows")

    sync_batch_size: int = Field(100, description="Chunks per embed/insert batch")
    sync_concurrency: int = Field(4, description="Records processed concurrently during sync")
    request_timeout_s: float = Field(
        30.0, description="Timeout (in seconds) for embedding and vector-store calls"
    )

    min_similarity: float = Field(0.7, description="Vector similarity floor")
    retrieve_k: int = Field(3, description="Passages handed to the chat layer")
    rrf_k: int = Field(60, description="Reciprocal Rank Fusion constant")
    hybrid_enabled: bool = Field(True, description="Fuse BM25 and vector rankings")

    reranker_enabled: bool = Field(False, description="Apply the LLM reranking pass")
    reranker_candidates: int = Field(10, description="Candidates fetched for reranking")
    reranker_snippet_chars: int = Field(300, description="Characters per candidate in the prompt")

    watermark_path: Path = Field(
        Path(".vectordb_last_sync"), description="File holding the last sync timestamp"
    )
    uploads_dir: Path = Field(
        Path("uploads/documents"), description="Directory containing uploaded documents"
    )
    db_dsn: Optional[str] = Field(None, description="PostgreSQL DSN of the source-of-truth store")

    llm_base_url: str = Field(
        "https://chat-ai.academiccloud.de/v1", description="OpenAI-compatible API base URL"
    )
    llm_api_key: Optional[str] = Field(None, description="API key for the completion service")
    llm_model: str = Field("meta-llama-3.1-8b-instruct", description="Model used for reranking")
    llm_timeout_s: float = Field(30.0, description="Timeout (in seconds) for LLM calls")

    model_config = SettingsConfigDict(env_prefix="RAG_", env_file=".env", extra="ignore")

    def model_post_init(self, __context: Any) -> None:
        """Normalize paths to absolute locations."""

        self.watermark_path = self.watermark_path.expanduser().resolve()
        self.uploads_dir = self.uploads_dir.expanduser().resolve()

    @field_validator(
        "article_max_tokens",
        "document_max_tokens",
        "sync_batch_size",
        "sync_concurrency",
        "embedding_dimension",
        "rrf_k",
    )
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @field_validator("chunk_overlap_tokens")
    @classmethod
    def validate_overlap(cls, value: int) -> int:
        if value < 0:
            raise ValueError("chunk_overlap_tokens must not be negative")
        return value

    @model_validator(mode="after")
    def validate_backend(self) -> "RetrievalConfig":
        if self.vector_db_type == "chroma" and not self.chroma_url:
            raise ValueError("chroma_url is required when vector_db_type is 'chroma'")
        if self.vector_db_type == "weaviate" and not self.weaviate_url:
            raise ValueError("weaviate_url is required when vector_db_type is 'weaviate'")
        for budget in (self.article_max_tokens, self.document_max_tokens):
            if self.chunk_overlap_tokens >= budget:
                raise ValueError("chunk_overlap_tokens must be smaller than every token budget")
        return self


def load_dotenv_from_root(override: bool = False) -> None:
    """Optionally load environment variables from a ``.env`` file.

    This helper is opt-in so importing the package never mutates the
    environment.
    """

    if importlib.util.find_spec("dotenv") is None:
        raise ImportError("python-dotenv is required to load .env files")

    dotenv = importlib.import_module("dotenv")
    dotenv.load_dotenv(dotenv_path=".env", override=override)


__all__ = ["PoolingMode", "RetrievalConfig", "VectorDbType", "load_dotenv_from_root"]
