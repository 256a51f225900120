"""Pipeline configuration: content/retrieval enums and immutable policy dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from noteai_rag.errors import ChunkingConfigError

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200


class ContentType(str, Enum):
    """Kinds of content that can be indexed."""

    TRANSCRIPTION = "transcription"
    DOCUMENT = "document"
    SUMMARY = "summary"
    NOTE = "note"
    WEBPAGE = "webpage"


class RetrievalMethod(str, Enum):
    """How a RAG context was retrieved."""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"
    DENSE = "dense"
    SPARSE = "sparse"


class VectorBackend(str, Enum):
    """Available vector/content store backends."""

    MEMORY = "memory"
    SUPABASE = "supabase"


@dataclass(frozen=True)
class ChunkingConfig:
    """Immutable chunk window configuration.

    Invalid combinations are rejected on construction so a bad overlap
    never reaches the chunker at runtime.
    """

    max_size: int = DEFAULT_CHUNK_SIZE
    overlap: int = DEFAULT_CHUNK_OVERLAP

    def __post_init__(self) -> None:
        if self.max_size <= 0:
            msg = f"max_size must be positive, got {self.max_size}"
            raise ChunkingConfigError(msg)
        if self.overlap < 0:
            msg = f"overlap must be non-negative, got {self.overlap}"
            raise ChunkingConfigError(msg)
        if self.overlap >= self.max_size:
            msg = f"overlap ({self.overlap}) must be smaller than max_size ({self.max_size})"
            raise ChunkingConfigError(msg)

    @property
    def stride(self) -> int:
        return self.max_size - self.overlap


@dataclass(frozen=True)
class SearchPolicy:
    """Fixed search parameters used when assembling a RAG context."""

    top_k: int = 20
    threshold: float = 0.6
    include_chunks: bool = True
    enable_reranking: bool = True


DEFAULT_TOP_K = 10
DEFAULT_SIMILARITY_THRESHOLD = 0.7
CONTEXT_SEARCH_POLICY = SearchPolicy()
