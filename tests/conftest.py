"""Shared fakes and fixtures. Nothing here talks to the network."""

from __future__ import annotations

import pytest

from noteai_rag.ingestion.embedding_cache import EmbeddingCache
from noteai_rag.ingestion.embeddings import (
    EmbeddingConfig,
    EmbeddingModel,
    EmbeddingProvider,
    SettingsCredentialStore,
)
from noteai_rag.ingestion.storage import (
    InMemoryContentRepository,
    InMemoryContentStore,
    InMemoryVectorStore,
)
from noteai_rag.pipeline_config import ChunkingConfig
from noteai_rag.retrieval.search import RetrievalCoordinator


def keyword_vector(text: str) -> list[float]:
    """3-d vector keyed on which fruit a text mentions, so similarity is predictable."""
    lowered = text.lower()
    if "apple" in lowered:
        return [1.0, 0.0, 0.0]
    if "banana" in lowered:
        return [0.0, 1.0, 0.0]
    return [0.0, 0.0, 1.0]


class KeywordEmbeddingBackend:
    """Remote backend double that records every batch it receives."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.error: Exception | None = None

    async def embed(
        self, texts: list[str], model: EmbeddingModel, api_key: str, config: EmbeddingConfig
    ) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        return [keyword_vector(t) for t in texts]


class SequentialIds:
    def __init__(self, prefix: str = "idx") -> None:
        self._prefix = prefix
        self._n = 0

    def __call__(self) -> str:
        self._n += 1
        return f"{self._prefix}-{self._n}"


@pytest.fixture
def backend() -> KeywordEmbeddingBackend:
    return KeywordEmbeddingBackend()


@pytest.fixture
def embeddings(backend: KeywordEmbeddingBackend) -> EmbeddingProvider:
    return EmbeddingProvider(
        SettingsCredentialStore(openai_api_key="test-key"),
        EmbeddingCache(),
        EmbeddingConfig(),
        remote_backend=backend,
    )


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def content_store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture
def repository() -> InMemoryContentRepository:
    return InMemoryContentRepository()


@pytest.fixture
def coordinator(
    embeddings: EmbeddingProvider,
    vector_store: InMemoryVectorStore,
    content_store: InMemoryContentStore,
    repository: InMemoryContentRepository,
) -> RetrievalCoordinator:
    return RetrievalCoordinator(
        embeddings,
        vector_store,
        content_store,
        repository,
        chunking=ChunkingConfig(max_size=100, overlap=20),
        id_factory=SequentialIds(),
    )
