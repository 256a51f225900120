"""Process-wide service container and error translation for the API."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import HTTPException, Request

from noteai_rag.analytics.service import AdvancedAnalyticsService
from noteai_rag.config import Settings
from noteai_rag.errors import (
    ConcurrencyLimitExceededError,
    ConfigurationError,
    EmbeddingBackendError,
    IndexingError,
    InsufficientDataError,
    InvalidInputError,
    KnowledgeBaseNotFoundError,
    LLMError,
    NoCredentialError,
    NoteAIError,
    StorageError,
    UnsupportedModelError,
)
from noteai_rag.ingestion.embedding_cache import EmbeddingCache
from noteai_rag.ingestion.embeddings import (
    EmbeddingConfig,
    EmbeddingModel,
    EmbeddingProvider,
    SettingsCredentialStore,
)
from noteai_rag.ingestion.storage import (
    ContentRepository,
    ContentStore,
    InMemoryContentRepository,
    InMemoryContentStore,
    InMemoryVectorStore,
    SupabaseContentRepository,
    SupabaseContentStore,
    SupabaseVectorStore,
    VectorStore,
    get_supabase_client,
)
from noteai_rag.pipeline_config import ChunkingConfig, VectorBackend
from noteai_rag.retrieval.generation import AnswerSynthesizer, AnthropicChatModel, LanguageModel
from noteai_rag.retrieval.search import RetrievalCoordinator

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Long-lived collaborators, built once at startup and shared by all requests."""

    settings: Settings
    embeddings: EmbeddingProvider
    coordinator: RetrievalCoordinator
    analytics: AdvancedAnalyticsService
    llm: LanguageModel | None = None

    def synthesizer(self) -> AnswerSynthesizer:
        if self.llm is None:
            raise NoCredentialError("anthropic")
        return AnswerSynthesizer(self.llm, self.settings.llm_model)


def _embedding_model(name: str) -> EmbeddingModel:
    try:
        return EmbeddingModel(name)
    except ValueError as exc:
        raise UnsupportedModelError(name) from exc


def _stores(settings: Settings) -> tuple[VectorStore, ContentStore, ContentRepository]:
    if VectorBackend(settings.vector_backend) is VectorBackend.SUPABASE:
        client = get_supabase_client(settings)
        return (
            SupabaseVectorStore(client),
            SupabaseContentStore(client),
            SupabaseContentRepository(client),
        )
    return InMemoryVectorStore(), InMemoryContentStore(), InMemoryContentRepository()


def build_container(settings: Settings) -> Container:
    """Wire the RAG engine and analytics service from settings."""
    credentials = SettingsCredentialStore(
        openai_api_key=settings.openai_api_key,
        anthropic_api_key=settings.anthropic_api_key,
    )
    embeddings = EmbeddingProvider(
        credentials,
        EmbeddingCache(max_entries=settings.embedding_cache_max_entries),
        EmbeddingConfig(
            model=_embedding_model(settings.embedding_model),
            batch_size=settings.embedding_batch_size,
            timeout=settings.embedding_timeout,
            cache_expiration=settings.embedding_cache_ttl,
        ),
    )
    vector_store, content_store, repository = _stores(settings)
    coordinator = RetrievalCoordinator(
        embeddings,
        vector_store,
        content_store,
        repository,
        chunking=ChunkingConfig(max_size=settings.chunk_size, overlap=settings.chunk_overlap),
    )
    llm: LanguageModel | None = None
    if settings.anthropic_api_key:
        llm = AnthropicChatModel(
            settings.anthropic_api_key,
            input_cost_per_mtok=settings.llm_input_cost_per_mtok,
            output_cost_per_mtok=settings.llm_output_cost_per_mtok,
        )
    else:
        logger.warning("ANTHROPIC_API_KEY is not set; /api/query will return 501")
    analytics = AdvancedAnalyticsService(
        max_concurrent_operations=settings.analytics_max_concurrent,
        cache_ttl=settings.analytics_cache_ttl,
    )
    logger.info(
        "Container ready (vector backend=%s, embedding model=%s)",
        settings.vector_backend,
        settings.embedding_model,
    )
    return Container(
        settings=settings,
        embeddings=embeddings,
        coordinator=coordinator,
        analytics=analytics,
        llm=llm,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


def http_error(exc: NoteAIError) -> HTTPException:
    """Map an error from the core taxonomy to an HTTP response."""
    if isinstance(exc, KnowledgeBaseNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConcurrencyLimitExceededError):
        return HTTPException(status_code=429, detail=str(exc))
    if isinstance(exc, (InvalidInputError, InsufficientDataError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=501, detail=str(exc))
    if isinstance(exc, (EmbeddingBackendError, LLMError, IndexingError, StorageError)):
        # Upstream failure; a JSON 503 keeps CORS headers on the response.
        return HTTPException(status_code=503, detail=str(exc))
    logger.error("Unhandled %s: %s", type(exc).__name__, exc)
    return HTTPException(status_code=500, detail=str(exc))
