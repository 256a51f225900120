"""Data models for indexing: chunks and content metadata."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from noteai_rag.pipeline_config import ContentType

DEFAULT_LANGUAGE = "ja"


@dataclass(frozen=True)
class TextChunk:
    """A window of source text produced by the chunker (no embedding yet)."""

    text: str
    start_index: int
    end_index: int
    chunk_number: int
    total_chunks: int


@dataclass(frozen=True)
class ChunkMetadata:
    """Position of a chunk within its parent content."""

    chunk_number: int
    total_chunks: int
    start_time: float | None = None
    end_time: float | None = None
    speaker: str | None = None


@dataclass(frozen=True)
class Chunk:
    """An indexed chunk, immutable once stored."""

    id: str
    text: str
    start_index: int
    end_index: int
    chunk_metadata: ChunkMetadata
    embedding: list[float] | None = None

    def with_embedding(self, embedding: list[float]) -> Chunk:
        return replace(self, embedding=embedding)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Chunk:
        meta = data.get("chunk_metadata") or {}
        return cls(
            id=str(data["id"]),
            text=data["text"],
            start_index=int(data["start_index"]),
            end_index=int(data["end_index"]),
            chunk_metadata=ChunkMetadata(**meta),
            embedding=data.get("embedding"),
        )


@dataclass(frozen=True)
class SourceInfo:
    """Where an indexed unit came from."""

    title: str | None = None
    author: str | None = None
    url: str | None = None
    file_path: str | None = None
    page_number: int | None = None
    duration: float | None = None


@dataclass(frozen=True)
class ContentMetadata:
    """Metadata for one indexed unit. Replaced on re-index, never mutated."""

    id: str
    type: ContentType
    project_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    language: str = DEFAULT_LANGUAGE
    tags: frozenset[str] = frozenset()
    source_info: SourceInfo = field(default_factory=SourceInfo)
    recording_id: str | None = None
    document_id: str | None = None

    @classmethod
    def placeholder(cls, index_id: str) -> ContentMetadata:
        """Stand-in metadata for a vector hit whose metadata row is missing."""
        return cls(id=index_id, type=ContentType.TRANSCRIPTION, project_id="")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "project_id": self.project_id,
            "timestamp": self.timestamp.isoformat(),
            "language": self.language,
            "tags": sorted(self.tags),
            "source_info": asdict(self.source_info),
            "recording_id": self.recording_id,
            "document_id": self.document_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentMetadata:
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            id=str(data["id"]),
            type=ContentType(data["type"]),
            project_id=str(data.get("project_id") or ""),
            timestamp=timestamp or datetime.now(UTC),
            language=data.get("language") or DEFAULT_LANGUAGE,
            tags=frozenset(data.get("tags") or ()),
            source_info=SourceInfo(**(data.get("source_info") or {})),
            recording_id=data.get("recording_id"),
            document_id=data.get("document_id"),
        )


@dataclass(frozen=True)
class Transcription:
    """A recording transcript as exposed by the recording repository."""

    id: str
    project_id: str
    title: str
    text: str
    language: str = DEFAULT_LANGUAGE
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None
    audio_file_path: str | None = None
    duration: float | None = None


@dataclass(frozen=True)
class Document:
    """A document as exposed by the document repository."""

    id: str
    project_id: str
    title: str
    content: str
    language: str = DEFAULT_LANGUAGE
    tags: frozenset[str] = frozenset()
    author: str | None = None
    file_name: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_modified: datetime | None = None


@dataclass(frozen=True)
class ContentItem:
    """An indexed unit of content together with its chunks."""

    id: str
    content: str
    metadata: ContentMetadata
    chunks: list[Chunk] = field(default_factory=list)
    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class IndexedDocument:
    """Result of indexing a document under its own id."""

    id: str
    document: Document
    chunks: list[Chunk]
    indexed_at: datetime
    vector_count: int
    index_status: str = "completed"
