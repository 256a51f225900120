"""Data models for search, context assembly, knowledge bases and answers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from noteai_rag.ingestion.models import Chunk, ContentMetadata
from noteai_rag.pipeline_config import (
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_TOP_K,
    ContentType,
    RetrievalMethod,
)

KNOWLEDGE_BASE_VERSION = "1.0.0"


@dataclass(frozen=True)
class SearchFilters:
    """Caller-facing search filters."""

    project_ids: list[str] | None = None
    content_types: list[ContentType] | None = None
    languages: list[str] | None = None
    tags: list[str] | None = None
    date_range: tuple[datetime, datetime] | None = None
    min_similarity_score: float | None = None

    def to_vector_filters(self) -> dict[str, list[str]] | None:
        """Translate into the vector store's filter dict, or None if nothing applies."""
        filters: dict[str, list[str]] = {}
        if self.project_ids is not None:
            filters["project_ids"] = list(self.project_ids)
        if self.content_types is not None:
            filters["content_types"] = [t.value for t in self.content_types]
        if self.languages is not None:
            filters["languages"] = list(self.languages)
        if self.tags is not None:
            filters["tags"] = list(self.tags)
        return filters or None


@dataclass(frozen=True)
class SearchOptions:
    top_k: int = DEFAULT_TOP_K
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    include_chunks: bool = True
    include_embeddings: bool = False
    max_context_length: int = 4000
    enable_reranking: bool = False
    enable_suggestions: bool = True


@dataclass(frozen=True)
class VectorSearchHit:
    """Raw hit returned by a vector store."""

    id: str
    content: str
    score: float
    chunk_index: int | None = None


@dataclass(frozen=True)
class SemanticSearchResult:
    id: str
    content: str
    metadata: ContentMetadata
    similarity_score: float
    chunks: list[Chunk] = field(default_factory=list)


@dataclass(frozen=True)
class SemanticSearchResponse:
    query: str
    results: list[SemanticSearchResult]
    total_results: int
    search_time: float
    used_filters: SearchFilters | None = None
    suggestions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SourceReference:
    id: str
    title: str
    type: ContentType
    relevance_score: float
    chunk_ids: list[str]
    project_id: str


@dataclass(frozen=True)
class RAGContext:
    """Token-bounded bundle of retrieved chunks for one query."""

    query: str
    relevant_chunks: list[Chunk]
    total_tokens: int
    sources: list[SourceReference]
    confidence: float
    retrieval_method: RetrievalMethod = RetrievalMethod.SEMANTIC

    @classmethod
    def empty(cls, query: str) -> RAGContext:
        return cls(query=query, relevant_chunks=[], total_tokens=0, sources=[], confidence=0.0)


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    estimated_cost: float | None = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class RAGResponseMetadata:
    retrieval_method: RetrievalMethod
    reranking_used: bool
    context_truncated: bool
    additional_sources: int
    query_expansions: list[str] | None = None


@dataclass(frozen=True)
class RAGResponse:
    question: str
    answer: str
    confidence: float
    sources: list[SourceReference]
    context: RAGContext
    response_time: float
    model: str
    token_usage: TokenUsage
    metadata: RAGResponseMetadata


@dataclass(frozen=True)
class KnowledgeBaseStatistics:
    average_chunk_size: int
    total_vectors: int
    index_size: int
    average_similarity: float | None = None
    last_optimized: datetime | None = None


@dataclass(frozen=True)
class KnowledgeBaseMetadata:
    content_types: frozenset[ContentType]
    languages: frozenset[str]
    tags: frozenset[str]
    statistics: KnowledgeBaseStatistics


@dataclass(frozen=True)
class KnowledgeBase:
    """Durable project-level aggregate of indexed content."""

    id: str
    project_id: str
    name: str
    description: str
    total_documents: int
    total_chunks: int
    total_tokens: int
    metadata: KnowledgeBaseMetadata
    created_at: datetime
    last_updated: datetime
    version: str = KNOWLEDGE_BASE_VERSION

    def to_dict(self) -> dict[str, Any]:
        stats = self.metadata.statistics
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "total_documents": self.total_documents,
            "total_chunks": self.total_chunks,
            "total_tokens": self.total_tokens,
            "metadata": {
                "content_types": sorted(t.value for t in self.metadata.content_types),
                "languages": sorted(self.metadata.languages),
                "tags": sorted(self.metadata.tags),
                "statistics": {
                    "average_chunk_size": stats.average_chunk_size,
                    "total_vectors": stats.total_vectors,
                    "index_size": stats.index_size,
                    "average_similarity": stats.average_similarity,
                    "last_optimized": (
                        stats.last_optimized.isoformat() if stats.last_optimized else None
                    ),
                },
            },
            "created_at": self.created_at.isoformat(),
            "last_updated": self.last_updated.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnowledgeBase:
        meta = data["metadata"]
        stats = dict(meta["statistics"])
        if stats.get("last_optimized"):
            stats["last_optimized"] = datetime.fromisoformat(stats["last_optimized"])
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            name=data["name"],
            description=data["description"],
            total_documents=data["total_documents"],
            total_chunks=data["total_chunks"],
            total_tokens=data["total_tokens"],
            metadata=KnowledgeBaseMetadata(
                content_types=frozenset(ContentType(t) for t in meta["content_types"]),
                languages=frozenset(meta["languages"]),
                tags=frozenset(meta["tags"]),
                statistics=KnowledgeBaseStatistics(**stats),
            ),
            created_at=datetime.fromisoformat(data["created_at"]),
            last_updated=datetime.fromisoformat(data["last_updated"]),
            version=data.get("version", KNOWLEDGE_BASE_VERSION),
        )


@dataclass(frozen=True)
class TagFrequency:
    tag: str
    count: int
    percentage: float


@dataclass(frozen=True)
class ContentTypeCount:
    type: ContentType
    count: int
    percentage: float


@dataclass(frozen=True)
class KnowledgeBaseSummary:
    knowledge_base: KnowledgeBase
    recent_content: list[ContentMetadata]
    top_tags: list[TagFrequency]
    content_distribution: list[ContentTypeCount]
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
