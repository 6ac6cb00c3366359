"""Custom exception hierarchy for the knowledge-base retrieval core."""


class RetrievalError(Exception):
    """Base exception for retrieval core errors."""


class ConfigError(RetrievalError):
    """Raised when configuration is invalid or incomplete."""


class DatabaseError(RetrievalError):
    """Raised when the source-of-truth store cannot be read."""


class ParseError(RetrievalError):
    """Raised when a source document cannot be loaded or extracted."""


class VectorStoreError(RetrievalError):
    """Raised when a vector backend operation fails."""


class EmbeddingError(RetrievalError):
    """Raised when the embedding model cannot produce vectors."""


class LLMError(RetrievalError):
    """Raised when the text-completion service fails."""


class SyncError(RetrievalError):
    """Raised when a sync pass could not write every changed record."""

    def __init__(self, message: str, failures=()) -> None:
        super().__init__(message)
        self.failures = list(failures)
