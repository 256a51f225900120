"""Tests for the vector/content stores and the Supabase adapters (client mocked)."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock

import numpy as np
import pytest

from noteai_rag.ingestion.models import Chunk, ChunkMetadata, ContentMetadata, SourceInfo
from noteai_rag.ingestion.storage import (
    InMemoryContentStore,
    InMemoryVectorStore,
    SupabaseContentRepository,
    SupabaseVectorStore,
    cosine_similarity,
)
from noteai_rag.pipeline_config import ContentType
from noteai_rag.retrieval.models import (
    KnowledgeBase,
    KnowledgeBaseMetadata,
    KnowledgeBaseStatistics,
)


def _metadata(
    index_id: str,
    project_id: str = "p1",
    tags: frozenset[str] = frozenset(),
    content_type: ContentType = ContentType.NOTE,
) -> ContentMetadata:
    return ContentMetadata(id=index_id, type=content_type, project_id=project_id, tags=tags)


def _chunks(index_id: str, texts: list[str]) -> list[Chunk]:
    return [
        Chunk(
            id=f"{index_id}_{i + 1}",
            text=text,
            start_index=0,
            end_index=len(text),
            chunk_metadata=ChunkMetadata(chunk_number=i + 1, total_chunks=len(texts)),
        )
        for i, text in enumerate(texts)
    ]


def _knowledge_base(kb_id: str, project_id: str, last_updated: datetime) -> KnowledgeBase:
    return KnowledgeBase(
        id=kb_id,
        project_id=project_id,
        name="KB",
        description="",
        total_documents=0,
        total_chunks=0,
        total_tokens=0,
        metadata=KnowledgeBaseMetadata(
            content_types=frozenset(),
            languages=frozenset(),
            tags=frozenset(),
            statistics=KnowledgeBaseStatistics(average_chunk_size=0, total_vectors=0, index_size=0),
        ),
        created_at=last_updated,
        last_updated=last_updated,
    )


class TestCosineSimilarity:
    def test_identical_and_orthogonal(self) -> None:
        scores = cosine_similarity(
            np.array([1.0, 0.0]), np.array([[2.0, 0.0], [0.0, 3.0], [1.0, 1.0]])
        )
        assert scores[0] == pytest.approx(1.0)
        assert scores[1] == pytest.approx(0.0)
        assert scores[2] == pytest.approx(2**-0.5)

    def test_zero_vector_scores_zero(self) -> None:
        scores = cosine_similarity(np.array([1.0, 0.0]), np.array([[0.0, 0.0]]))
        assert scores[0] == 0.0


class TestInMemoryVectorStore:
    @pytest.mark.asyncio
    async def test_best_hit_per_document(self) -> None:
        store = InMemoryVectorStore()
        await store.store(
            "doc", [[1.0, 0.0], [0.8, 0.6]], _metadata("doc"), _chunks("doc", ["a", "b"])
        )
        hits = await store.search([1.0, 0.0], top_k=10, threshold=0.5)
        assert len(hits) == 1
        assert hits[0].id == "doc"
        assert hits[0].content == "a"
        assert hits[0].chunk_index == 0

    @pytest.mark.asyncio
    async def test_threshold_and_ordering(self) -> None:
        store = InMemoryVectorStore()
        await store.store("a", [[1.0, 0.0]], _metadata("a"), _chunks("a", ["x"]))
        await store.store("b", [[0.8, 0.6]], _metadata("b"), _chunks("b", ["y"]))
        await store.store("c", [[0.0, 1.0]], _metadata("c"), _chunks("c", ["z"]))
        hits = await store.search([1.0, 0.0], top_k=10, threshold=0.7)
        assert [h.id for h in hits] == ["a", "b"]
        hits = await store.search([1.0, 0.0], top_k=1, threshold=0.0)
        assert [h.id for h in hits] == ["a"]

    @pytest.mark.asyncio
    async def test_filters(self) -> None:
        store = InMemoryVectorStore()
        await store.store(
            "a", [[1.0]], _metadata("a", "p1", frozenset({"x"})), _chunks("a", ["t"])
        )
        await store.store(
            "b", [[1.0]], _metadata("b", "p2", frozenset({"y"})), _chunks("b", ["t"])
        )
        hits = await store.search([1.0], 10, 0.0, {"project_ids": ["p2"]})
        assert [h.id for h in hits] == ["b"]
        hits = await store.search([1.0], 10, 0.0, {"tags": ["x", "z"]})
        assert [h.id for h in hits] == ["a"]
        hits = await store.search([1.0], 10, 0.0, {"content_types": ["document"]})
        assert hits == []

    @pytest.mark.asyncio
    async def test_skips_dimension_mismatch(self) -> None:
        store = InMemoryVectorStore()
        await store.store("a", [[1.0, 0.0, 0.0]], _metadata("a"), _chunks("a", ["t"]))
        assert await store.search([1.0, 0.0], 10, 0.0) == []

    @pytest.mark.asyncio
    async def test_mismatched_lengths_rejected(self) -> None:
        store = InMemoryVectorStore()
        with pytest.raises(ValueError):
            await store.store("a", [[1.0]], _metadata("a"), _chunks("a", ["t", "u"]))

    @pytest.mark.asyncio
    async def test_remove_and_unknown_id(self) -> None:
        store = InMemoryVectorStore()
        await store.store("a", [[1.0]], _metadata("a"), _chunks("a", ["t"]))
        await store.remove("a")
        await store.remove("missing")
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_empty_content_never_matches(self) -> None:
        store = InMemoryVectorStore()
        await store.store("a", [], _metadata("a"), [])
        assert await store.search([1.0], 10, 0.0) == []


class TestInMemoryContentStore:
    @pytest.mark.asyncio
    async def test_save_and_get(self) -> None:
        store = InMemoryContentStore()
        await store.save("a", _metadata("a"), _chunks("a", ["one", "two"]))
        metadata = await store.get_metadata("a")
        assert metadata is not None and metadata.id == "a"
        assert [c.text for c in await store.get_chunks("a")] == ["one", "two"]
        assert await store.get_chunks("missing") == []

    @pytest.mark.asyncio
    async def test_list_by_project(self) -> None:
        store = InMemoryContentStore()
        await store.save("a", _metadata("a", "p1"), [])
        await store.save("b", _metadata("b", "p2"), [])
        assert [m.id for m in await store.list_metadata("p1")] == ["a"]

    @pytest.mark.asyncio
    async def test_latest_knowledge_base_for_project(self) -> None:
        store = InMemoryContentStore()
        old = _knowledge_base("old", "p1", datetime(2024, 1, 1, tzinfo=UTC))
        new = _knowledge_base("new", "p1", datetime(2024, 6, 1, tzinfo=UTC))
        await store.save_knowledge_base(old)
        await store.save_knowledge_base(new)
        latest = await store.get_knowledge_base("p1")
        assert latest is not None and latest.id == "new"
        assert await store.get_knowledge_base("p2") is None
        by_id = await store.get_knowledge_base_by_id("old")
        assert by_id is not None and by_id.project_id == "p1"


class TestModelSerialization:
    def test_content_metadata_round_trip(self) -> None:
        original = ContentMetadata(
            id="a",
            type=ContentType.TRANSCRIPTION,
            project_id="p1",
            timestamp=datetime(2024, 3, 1, 12, 0, tzinfo=UTC),
            language="en",
            tags=frozenset({"b", "a"}),
            source_info=SourceInfo(title="Standup", duration=120.0),
            recording_id="rec-1",
        )
        data = original.to_dict()
        assert data["tags"] == ["a", "b"]
        assert ContentMetadata.from_dict(data) == original

    def test_knowledge_base_round_trip(self) -> None:
        kb = _knowledge_base("kb", "p1", datetime(2024, 1, 1, tzinfo=UTC))
        assert KnowledgeBase.from_dict(kb.to_dict()) == kb


class TestSupabaseAdapters:
    @pytest.mark.asyncio
    async def test_vector_search_collapses_rows(self) -> None:
        client = MagicMock()
        client.rpc.return_value.execute.return_value.data = [
            {"document_id": "d1", "content": "x", "similarity": 0.9, "chunk_index": 0},
            {"document_id": "d1", "content": "y", "similarity": 0.95, "chunk_index": 1},
            {"document_id": "d2", "content": "z", "similarity": 0.8, "chunk_index": 0},
        ]
        hits = await SupabaseVectorStore(client).search(
            [0.1, 0.2], top_k=5, threshold=0.7, filters={"project_ids": ["p1"]}
        )
        assert [(h.id, h.content) for h in hits] == [("d1", "y"), ("d2", "z")]
        name, params = client.rpc.call_args.args
        assert name == "match_content_chunks"
        assert params["match_count"] == 15
        assert params["filter_project_ids"] == ["p1"]
        assert params["filter_tags"] is None

    @pytest.mark.asyncio
    async def test_vector_store_inserts_rows(self) -> None:
        client = MagicMock()
        await SupabaseVectorStore(client).store(
            "d1", [[1.0], [0.5]], _metadata("d1"), _chunks("d1", ["a", "b"])
        )
        client.table.assert_called_with("vector_chunks")
        rows = client.table.return_value.insert.call_args.args[0]
        assert [r["chunk_index"] for r in rows] == [0, 1]
        assert rows[0]["document_id"] == "d1"
        assert rows[0]["content_type"] == "note"

    @pytest.mark.asyncio
    async def test_repository_lists_documents(self) -> None:
        client = MagicMock()
        query = client.table.return_value.select.return_value.eq.return_value.order.return_value
        query.execute.return_value.data = [
            {
                "id": 7,
                "title": "Design notes",
                "content": "body",
                "language": "en",
                "tags": ["x"],
                "created_at": "2024-01-01T00:00:00+00:00",
            }
        ]
        docs = await SupabaseContentRepository(client).list_documents("p1")
        client.table.assert_called_with("documents")
        assert len(docs) == 1
        assert docs[0].id == "7"
        assert docs[0].tags == frozenset({"x"})
        assert docs[0].created_at == datetime(2024, 1, 1, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_repository_lists_transcriptions_with_defaults(self) -> None:
        client = MagicMock()
        query = client.table.return_value.select.return_value.eq.return_value.order.return_value
        query.execute.return_value.data = [{"id": "t1", "text": "hello"}]
        transcriptions = await SupabaseContentRepository(client).list_transcriptions("p1")
        assert transcriptions[0].language == "ja"
        assert transcriptions[0].title == ""
        assert transcriptions[0].project_id == "p1"
