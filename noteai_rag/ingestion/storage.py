"""Vector and content storage: protocols plus in-memory and Supabase backends."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, cast

import numpy as np
from supabase import Client, create_client

from noteai_rag.ingestion.models import (
    DEFAULT_LANGUAGE,
    Chunk,
    ContentMetadata,
    Document,
    Transcription,
)
from noteai_rag.retrieval.models import KnowledgeBase, VectorSearchHit

if TYPE_CHECKING:
    from noteai_rag.config import Settings

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 50

VectorFilters = dict[str, list[str]]


def get_supabase_client(settings: Settings) -> Client:
    """Create and return a Supabase client from application settings."""
    return create_client(settings.supabase_url, settings.supabase_key)


def cosine_similarity(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of *query* against each row of *matrix* (0 for zero vectors)."""
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return scores


def _matches_filters(metadata: ContentMetadata, filters: VectorFilters | None) -> bool:
    if not filters:
        return True
    if "project_ids" in filters and metadata.project_id not in filters["project_ids"]:
        return False
    if "content_types" in filters and metadata.type.value not in filters["content_types"]:
        return False
    if "languages" in filters and metadata.language not in filters["languages"]:
        return False
    if "tags" in filters and not metadata.tags.intersection(filters["tags"]):
        return False
    return True


def _best_hit_per_document(hits: list[VectorSearchHit]) -> list[VectorSearchHit]:
    best: dict[str, VectorSearchHit] = {}
    for hit in hits:
        current = best.get(hit.id)
        if current is None or hit.score > current.score:
            best[hit.id] = hit
    return list(best.values())


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class VectorStore(Protocol):
    async def store(
        self,
        id: str,
        embeddings: list[list[float]],
        metadata: ContentMetadata,
        chunks: list[Chunk],
    ) -> None: ...

    async def search(
        self,
        embedding: list[float],
        top_k: int,
        threshold: float,
        filters: VectorFilters | None = None,
    ) -> list[VectorSearchHit]: ...

    async def remove(self, id: str) -> None: ...


class ContentStore(Protocol):
    """Persistence for content metadata, chunks and knowledge bases, keyed by index id."""

    async def save(self, index_id: str, metadata: ContentMetadata, chunks: list[Chunk]) -> None: ...

    async def get_metadata(self, index_id: str) -> ContentMetadata | None: ...

    async def get_chunks(self, index_id: str) -> list[Chunk]: ...

    async def remove(self, index_id: str) -> None: ...

    async def list_metadata(self, project_id: str) -> list[ContentMetadata]: ...

    async def save_knowledge_base(self, knowledge_base: KnowledgeBase) -> None: ...

    async def get_knowledge_base(self, project_id: str) -> KnowledgeBase | None: ...

    async def get_knowledge_base_by_id(self, knowledge_base_id: str) -> KnowledgeBase | None: ...


class ContentRepository(Protocol):
    """Enumerates a project's transcriptions and documents."""

    async def list_transcriptions(self, project_id: str) -> list[Transcription]: ...

    async def list_documents(self, project_id: str) -> list[Document]: ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


@dataclass
class _VectorEntry:
    metadata: ContentMetadata
    matrix: np.ndarray
    contents: list[str]


class InMemoryVectorStore:
    """Brute-force cosine search over per-chunk vectors held in memory."""

    def __init__(self) -> None:
        self._entries: dict[str, _VectorEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def store(
        self,
        id: str,
        embeddings: list[list[float]],
        metadata: ContentMetadata,
        chunks: list[Chunk],
    ) -> None:
        if len(embeddings) != len(chunks):
            msg = f"Got {len(embeddings)} embeddings for {len(chunks)} chunks"
            raise ValueError(msg)
        if embeddings:
            matrix = np.asarray(embeddings, dtype=np.float64)
        else:
            matrix = np.empty((0, 0), dtype=np.float64)
        self._entries[id] = _VectorEntry(
            metadata=metadata, matrix=matrix, contents=[c.text for c in chunks]
        )

    async def search(
        self,
        embedding: list[float],
        top_k: int,
        threshold: float,
        filters: VectorFilters | None = None,
    ) -> list[VectorSearchHit]:
        query = np.asarray(embedding, dtype=np.float64)
        hits: list[VectorSearchHit] = []
        for doc_id, entry in self._entries.items():
            if not entry.contents or not _matches_filters(entry.metadata, filters):
                continue
            if entry.matrix.shape[1] != query.shape[0]:
                logger.warning(
                    "Skipping %s: dimension %d != query dimension %d",
                    doc_id,
                    entry.matrix.shape[1],
                    query.shape[0],
                )
                continue
            scores = cosine_similarity(query, entry.matrix)
            for idx, score in enumerate(scores):
                if score >= threshold:
                    hits.append(
                        VectorSearchHit(
                            id=doc_id,
                            content=entry.contents[idx],
                            score=float(score),
                            chunk_index=idx,
                        )
                    )
        ranked = sorted(_best_hit_per_document(hits), key=lambda h: h.score, reverse=True)
        return ranked[:top_k]

    async def remove(self, id: str) -> None:
        self._entries.pop(id, None)


class InMemoryContentStore:
    def __init__(self) -> None:
        self._metadata: dict[str, ContentMetadata] = {}
        self._chunks: dict[str, list[Chunk]] = {}
        self._knowledge_bases: dict[str, KnowledgeBase] = {}

    async def save(self, index_id: str, metadata: ContentMetadata, chunks: list[Chunk]) -> None:
        self._metadata[index_id] = metadata
        self._chunks[index_id] = list(chunks)

    async def get_metadata(self, index_id: str) -> ContentMetadata | None:
        return self._metadata.get(index_id)

    async def get_chunks(self, index_id: str) -> list[Chunk]:
        return list(self._chunks.get(index_id, []))

    async def remove(self, index_id: str) -> None:
        self._metadata.pop(index_id, None)
        self._chunks.pop(index_id, None)

    async def list_metadata(self, project_id: str) -> list[ContentMetadata]:
        return [m for m in self._metadata.values() if m.project_id == project_id]

    async def save_knowledge_base(self, knowledge_base: KnowledgeBase) -> None:
        self._knowledge_bases[knowledge_base.id] = knowledge_base

    async def get_knowledge_base(self, project_id: str) -> KnowledgeBase | None:
        candidates = [kb for kb in self._knowledge_bases.values() if kb.project_id == project_id]
        return max(candidates, key=lambda kb: kb.last_updated, default=None)

    async def get_knowledge_base_by_id(self, knowledge_base_id: str) -> KnowledgeBase | None:
        return self._knowledge_bases.get(knowledge_base_id)


class InMemoryContentRepository:
    def __init__(
        self,
        transcriptions: list[Transcription] | None = None,
        documents: list[Document] | None = None,
    ) -> None:
        self.transcriptions = list(transcriptions or [])
        self.documents = list(documents or [])

    async def list_transcriptions(self, project_id: str) -> list[Transcription]:
        return [t for t in self.transcriptions if t.project_id == project_id]

    async def list_documents(self, project_id: str) -> list[Document]:
        return [d for d in self.documents if d.project_id == project_id]


# ---------------------------------------------------------------------------
# Supabase implementations
# ---------------------------------------------------------------------------


class SupabaseVectorStore:
    """pgvector-backed store; similarity search runs in the ``match_content_chunks`` RPC.

    The blocking Supabase SDK is called from worker threads.
    """

    def __init__(self, client: Client, table: str = "vector_chunks") -> None:
        self._client = client
        self._table = table

    async def store(
        self,
        id: str,
        embeddings: list[list[float]],
        metadata: ContentMetadata,
        chunks: list[Chunk],
    ) -> None:
        rows: list[dict[str, object]] = [
            {
                "document_id": id,
                "chunk_id": chunk.id,
                "chunk_index": idx,
                "content": chunk.text,
                "embedding": embedding,
                "project_id": metadata.project_id,
                "content_type": metadata.type.value,
                "language": metadata.language,
                "tags": sorted(metadata.tags),
            }
            for idx, (chunk, embedding) in enumerate(zip(chunks, embeddings, strict=True))
        ]
        await asyncio.to_thread(self._insert_rows, rows)

    def _insert_rows(self, rows: list[dict[str, object]]) -> None:
        for i in range(0, len(rows), INSERT_BATCH_SIZE):
            self._client.table(self._table).insert(rows[i : i + INSERT_BATCH_SIZE]).execute()

    async def search(
        self,
        embedding: list[float],
        top_k: int,
        threshold: float,
        filters: VectorFilters | None = None,
    ) -> list[VectorSearchHit]:
        filters = filters or {}
        params = {
            "query_embedding": embedding,
            "match_threshold": threshold,
            # Over-fetch: several chunks of one document may match
            "match_count": top_k * 3,
            "filter_project_ids": filters.get("project_ids"),
            "filter_content_types": filters.get("content_types"),
            "filter_languages": filters.get("languages"),
            "filter_tags": filters.get("tags"),
        }
        result = await asyncio.to_thread(
            lambda: self._client.rpc("match_content_chunks", params).execute()
        )
        rows = cast(list[dict[str, Any]], result.data)
        hits = [
            VectorSearchHit(
                id=str(row["document_id"]),
                content=row["content"],
                score=float(row["similarity"]),
                chunk_index=row.get("chunk_index"),
            )
            for row in rows
        ]
        ranked = sorted(_best_hit_per_document(hits), key=lambda h: h.score, reverse=True)
        return ranked[:top_k]

    async def remove(self, id: str) -> None:
        await asyncio.to_thread(
            lambda: self._client.table(self._table).delete().eq("document_id", id).execute()
        )


class SupabaseContentStore:
    """Content metadata, chunks and knowledge bases persisted as JSON rows."""

    def __init__(self, client: Client) -> None:
        self._client = client

    async def save(self, index_id: str, metadata: ContentMetadata, chunks: list[Chunk]) -> None:
        await asyncio.to_thread(self._save_sync, index_id, metadata, chunks)

    def _save_sync(self, index_id: str, metadata: ContentMetadata, chunks: list[Chunk]) -> None:
        self._client.table("content_metadata").upsert(
            {
                "index_id": index_id,
                "project_id": metadata.project_id,
                "timestamp": metadata.timestamp.isoformat(),
                "metadata": metadata.to_dict(),
            }
        ).execute()
        rows: list[dict[str, object]] = [
            {
                "index_id": index_id,
                "chunk_number": c.chunk_metadata.chunk_number,
                # Embeddings live in the vector store
                "chunk": replace(c, embedding=None).to_dict(),
            }
            for c in chunks
        ]
        for i in range(0, len(rows), INSERT_BATCH_SIZE):
            self._client.table("content_chunks").insert(rows[i : i + INSERT_BATCH_SIZE]).execute()

    async def get_metadata(self, index_id: str) -> ContentMetadata | None:
        result = await asyncio.to_thread(
            lambda: self._client.table("content_metadata")
            .select("metadata")
            .eq("index_id", index_id)
            .execute()
        )
        rows = cast(list[dict[str, Any]], result.data)
        return ContentMetadata.from_dict(rows[0]["metadata"]) if rows else None

    async def get_chunks(self, index_id: str) -> list[Chunk]:
        result = await asyncio.to_thread(
            lambda: self._client.table("content_chunks")
            .select("chunk")
            .eq("index_id", index_id)
            .order("chunk_number")
            .execute()
        )
        return [Chunk.from_dict(r["chunk"]) for r in cast(list[dict[str, Any]], result.data)]

    async def remove(self, index_id: str) -> None:
        def _remove() -> None:
            self._client.table("content_chunks").delete().eq("index_id", index_id).execute()
            self._client.table("content_metadata").delete().eq("index_id", index_id).execute()

        await asyncio.to_thread(_remove)

    async def list_metadata(self, project_id: str) -> list[ContentMetadata]:
        result = await asyncio.to_thread(
            lambda: self._client.table("content_metadata")
            .select("metadata")
            .eq("project_id", project_id)
            .execute()
        )
        return [
            ContentMetadata.from_dict(r["metadata"])
            for r in cast(list[dict[str, Any]], result.data)
        ]

    async def save_knowledge_base(self, knowledge_base: KnowledgeBase) -> None:
        await asyncio.to_thread(
            lambda: self._client.table("knowledge_bases")
            .upsert(
                {
                    "id": knowledge_base.id,
                    "project_id": knowledge_base.project_id,
                    "last_updated": knowledge_base.last_updated.isoformat(),
                    "data": knowledge_base.to_dict(),
                }
            )
            .execute()
        )

    async def get_knowledge_base(self, project_id: str) -> KnowledgeBase | None:
        result = await asyncio.to_thread(
            lambda: self._client.table("knowledge_bases")
            .select("data")
            .eq("project_id", project_id)
            .order("last_updated", desc=True)
            .limit(1)
            .execute()
        )
        rows = cast(list[dict[str, Any]], result.data)
        return KnowledgeBase.from_dict(rows[0]["data"]) if rows else None

    async def get_knowledge_base_by_id(self, knowledge_base_id: str) -> KnowledgeBase | None:
        result = await asyncio.to_thread(
            lambda: self._client.table("knowledge_bases")
            .select("data")
            .eq("id", knowledge_base_id)
            .execute()
        )
        rows = cast(list[dict[str, Any]], result.data)
        return KnowledgeBase.from_dict(rows[0]["data"]) if rows else None


def _parse_timestamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SupabaseContentRepository:
    """Reads project transcriptions and documents from their Supabase tables."""

    def __init__(self, client: Client) -> None:
        self._client = client

    async def list_transcriptions(self, project_id: str) -> list[Transcription]:
        rows = await self._select("transcriptions", project_id)
        return [
            Transcription(
                id=str(r["id"]),
                project_id=project_id,
                title=r.get("title") or "",
                text=r.get("text") or "",
                language=r.get("language") or DEFAULT_LANGUAGE,
                created_at=_parse_timestamp(r.get("created_at")) or datetime.now(UTC),
                updated_at=_parse_timestamp(r.get("updated_at")),
                audio_file_path=r.get("audio_file_path"),
                duration=r.get("duration"),
            )
            for r in rows
        ]

    async def list_documents(self, project_id: str) -> list[Document]:
        rows = await self._select("documents", project_id)
        return [
            Document(
                id=str(r["id"]),
                project_id=project_id,
                title=r.get("title") or "",
                content=r.get("content") or "",
                language=r.get("language") or DEFAULT_LANGUAGE,
                tags=frozenset(r.get("tags") or []),
                author=r.get("author"),
                file_name=r.get("file_name"),
                created_at=_parse_timestamp(r.get("created_at")) or datetime.now(UTC),
                last_modified=_parse_timestamp(r.get("last_modified")),
            )
            for r in rows
        ]

    async def _select(self, table: str, project_id: str) -> list[dict[str, Any]]:
        result = await asyncio.to_thread(
            lambda: self._client.table(table)
            .select("*")
            .eq("project_id", project_id)
            .order("created_at")
            .execute()
        )
        return cast(list[dict[str, Any]], result.data)
