"""Typed error taxonomy for the RAG engine and the analytics framework.

Every failure that leaves the core is one of these classes so callers can
render an actionable message from the engine/operation/reason fields.
"""

from __future__ import annotations


class NoteAIError(Exception):
    """Base class for all errors raised by this package."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NoteAIError):
    """Invalid configuration; surfaced immediately and never retried."""


class ChunkingConfigError(ConfigurationError, ValueError):
    """Chunk window parameters are inconsistent (e.g. overlap >= max size)."""


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


class EmbeddingError(NoteAIError):
    """Base class for embedding failures."""


class NoCredentialError(ConfigurationError):
    """A remote service was selected but no credential is configured."""

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"No API key configured for provider '{provider_id}'")


class UnsupportedModelError(EmbeddingError, ConfigurationError):
    """No backend is available for the requested model."""

    def __init__(self, model: str) -> None:
        self.model = model
        super().__init__(f"Unsupported embedding model: {model}")


class EmbeddingBackendError(EmbeddingError):
    """The embedding backend failed (transport error, non-2xx, bad payload)."""

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)


# ---------------------------------------------------------------------------
# RAG
# ---------------------------------------------------------------------------


class RAGError(NoteAIError):
    """Base class for retrieval and generation failures."""


class IndexingError(RAGError):
    """Content could not be indexed; any partial vector write was rolled back."""

    def __init__(self, index_id: str, reason: str) -> None:
        self.index_id = index_id
        self.reason = reason
        super().__init__(f"Indexing of '{index_id}' failed: {reason}")


class StorageError(RAGError):
    """A vector or content store call failed outside of indexing."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage operation '{operation}' failed: {reason}")


class KnowledgeBaseNotFoundError(RAGError):
    """No knowledge base exists for the requested key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Knowledge base not found: {key}")


class LLMError(RAGError):
    """The language-model capability failed or returned an unusable reply."""

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class AnalyticsEngineError(NoteAIError):
    """Base class for analytics framework failures."""


class ExecutionFailedError(AnalyticsEngineError):
    def __init__(self, engine: str, operation: str, reason: str) -> None:
        self.engine = engine
        self.operation = operation
        self.reason = reason
        super().__init__(f"{engine}.{operation} failed: {reason}")


class InvalidInputError(AnalyticsEngineError):
    def __init__(self, engine: str, reason: str) -> None:
        self.engine = engine
        self.reason = reason
        super().__init__(f"Invalid input for {engine}: {reason}")


class InsufficientDataError(AnalyticsEngineError):
    def __init__(self, engine: str, required: int, available: int) -> None:
        self.engine = engine
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient data for {engine}: required {required}, available {available}"
        )


class ConcurrencyLimitExceededError(AnalyticsEngineError):
    def __init__(self, engine: str, max_concurrent: int) -> None:
        self.engine = engine
        self.max_concurrent = max_concurrent
        super().__init__(
            f"{engine} is already running {max_concurrent} concurrent operations"
        )


class AnalyticsConfigurationError(AnalyticsEngineError, ConfigurationError):
    def __init__(self, engine: str, reason: str) -> None:
        self.engine = engine
        self.reason = reason
        super().__init__(f"Configuration error in {engine}: {reason}")


class ComprehensiveAnalysisError(AnalyticsEngineError):
    """A multi-engine analysis failed in one of its component engines."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Comprehensive analysis failed: {reason}")
