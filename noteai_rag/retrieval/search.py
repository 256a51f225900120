"""RAG engine: indexing, semantic search, context assembly and knowledge bases."""

from __future__ import annotations

import logging
import time
import unicodedata
import uuid
from collections import Counter
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime
from typing import Protocol

from noteai_rag.errors import (
    ConfigurationError,
    IndexingError,
    KnowledgeBaseNotFoundError,
    NoteAIError,
    StorageError,
)
from noteai_rag.ingestion.chunking import chunk_text, estimate_tokens
from noteai_rag.ingestion.embeddings import EmbeddingProvider
from noteai_rag.ingestion.models import (
    Chunk,
    ChunkMetadata,
    ContentItem,
    ContentMetadata,
    Document,
    IndexedDocument,
    SourceInfo,
    Transcription,
)
from noteai_rag.ingestion.storage import ContentRepository, ContentStore, VectorStore
from noteai_rag.pipeline_config import (
    CONTEXT_SEARCH_POLICY,
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_TOP_K,
    ChunkingConfig,
    ContentType,
    RetrievalMethod,
)
from noteai_rag.retrieval.models import (
    ContentTypeCount,
    KnowledgeBase,
    KnowledgeBaseMetadata,
    KnowledgeBaseStatistics,
    KnowledgeBaseSummary,
    RAGContext,
    SearchFilters,
    SearchOptions,
    SemanticSearchResponse,
    SemanticSearchResult,
    SourceReference,
    TagFrequency,
)

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3
MIN_SUGGESTION_LENGTH = 3
SUMMARY_RECENT_LIMIT = 10
SUMMARY_TAG_LIMIT = 10
UNTITLED = "Untitled"


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Re-raise store and repository failures as :class:`StorageError`."""
    try:
        yield
    except NoteAIError:
        raise
    except Exception as exc:
        logger.error("Storage operation %s failed: %s", operation, exc)
        raise StorageError(operation, f"{type(exc).__name__}: {exc}") from exc


class Reranker(Protocol):
    async def rerank(
        self, query: str, results: list[SemanticSearchResult]
    ) -> list[SemanticSearchResult]: ...


class ScoreReranker:
    """Stable sort by descending similarity score."""

    async def rerank(
        self, query: str, results: list[SemanticSearchResult]
    ) -> list[SemanticSearchResult]:
        return sorted(results, key=lambda r: r.similarity_score, reverse=True)


def _strip_punctuation(word: str) -> str:
    start, end = 0, len(word)
    while start < end and unicodedata.category(word[start]).startswith("P"):
        start += 1
    while end > start and unicodedata.category(word[end - 1]).startswith("P"):
        end -= 1
    return word[start:end]


def extract_common_terms(results: list[SemanticSearchResult]) -> list[str]:
    """Content words longer than two characters, most frequent first.

    Ties keep the order in which the words were first seen.
    """
    frequency: Counter[str] = Counter()
    for result in results:
        for word in result.content.split():
            clean = _strip_punctuation(word)
            if len(clean) >= MIN_SUGGESTION_LENGTH:
                frequency[clean] += 1
    return [term for term, _ in frequency.most_common()]


class RetrievalCoordinator:
    """Orchestrates chunk -> embed -> store on the way in, and embed -> search ->
    hydrate -> rerank -> context on the way out.

    The vector store and the content store are written one after the other.
    If the content write fails the just-written vector entry is removed, but
    there is no transaction spanning both stores: a crash between the two
    writes leaves an orphaned vector.
    """

    def __init__(
        self,
        embeddings: EmbeddingProvider,
        vector_store: VectorStore,
        content_store: ContentStore,
        content_repository: ContentRepository | None = None,
        chunking: ChunkingConfig | None = None,
        reranker: Reranker | None = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._embeddings = embeddings
        self._vector_store = vector_store
        self._content_store = content_store
        self._repository = content_repository
        self._chunking = chunking or ChunkingConfig()
        self._reranker: Reranker = reranker or ScoreReranker()
        self._new_id = id_factory

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    async def generate_embedding(self, text: str) -> list[float]:
        return await self._embeddings.embed(text)

    async def index_content(self, text: str, metadata: ContentMetadata) -> str:
        """Chunk, embed and store *text* under a fresh index id.

        Returns:
            The new index id.

        Raises:
            EmbeddingError: If embedding any chunk fails (nothing is stored).
            IndexingError: If either store write fails.
        """
        index_id = self._new_id()
        await self._index(index_id, text, metadata)
        return index_id

    async def index_document(self, document: Document) -> IndexedDocument:
        """Index a document under its own id, replacing any previous index."""
        indexed_at = datetime.now(UTC)
        metadata = ContentMetadata(
            id=document.id,
            type=ContentType.DOCUMENT,
            project_id=document.project_id,
            timestamp=indexed_at,
            language=document.language,
            tags=document.tags,
            source_info=SourceInfo(
                title=document.title, author=document.author, file_path=document.file_name
            ),
            document_id=document.id,
        )
        # The previous index stays in place until the new chunks are embedded.
        vectors, chunks = await self._embed_chunks(document.id, document.content)
        await self.remove_index(document.id)
        await self._store_chunks(document.id, vectors, metadata, chunks)
        return IndexedDocument(
            id=document.id,
            document=document,
            chunks=chunks,
            indexed_at=indexed_at,
            vector_count=len(chunks),
        )

    async def _index(self, index_id: str, text: str, metadata: ContentMetadata) -> list[Chunk]:
        vectors, chunks = await self._embed_chunks(index_id, text)
        await self._store_chunks(index_id, vectors, metadata, chunks)
        return chunks

    async def _embed_chunks(
        self, index_id: str, text: str
    ) -> tuple[list[list[float]], list[Chunk]]:
        pieces = chunk_text(text, self._chunking.max_size, self._chunking.overlap)
        vectors = await self._embeddings.embed_batch([p.text for p in pieces])
        chunks = [
            Chunk(
                id=f"{index_id}_{p.chunk_number}",
                text=p.text,
                start_index=p.start_index,
                end_index=p.end_index,
                chunk_metadata=ChunkMetadata(
                    chunk_number=p.chunk_number, total_chunks=p.total_chunks
                ),
                embedding=vector,
            )
            for p, vector in zip(pieces, vectors, strict=True)
        ]
        return vectors, chunks

    async def _store_chunks(
        self,
        index_id: str,
        vectors: list[list[float]],
        metadata: ContentMetadata,
        chunks: list[Chunk],
    ) -> None:
        started = time.perf_counter()
        try:
            await self._vector_store.store(index_id, vectors, metadata, chunks)
        except Exception as exc:
            logger.error("Vector store write failed for %s: %s", index_id, exc)
            raise IndexingError(index_id, f"vector store write failed: {exc}") from exc

        try:
            await self._content_store.save(index_id, metadata, chunks)
        except Exception as exc:
            logger.error("Content store write failed for %s, rolling back vectors", index_id)
            await self._vector_store.remove(index_id)
            raise IndexingError(index_id, f"content store write failed: {exc}") from exc

        logger.info(
            "Stored %s (%d chunks) in %.3fs", index_id, len(chunks), time.perf_counter() - started
        )

    async def remove_index(self, index_id: str) -> None:
        """Delete an index from both stores. Removing an unknown id is a no-op."""
        with _storage_errors("remove_index"):
            await self._vector_store.remove(index_id)
            await self._content_store.remove(index_id)
        logger.debug("Removed index %s", index_id)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def semantic_search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
    ) -> SemanticSearchResponse:
        options = options or SearchOptions()
        started = time.perf_counter()

        threshold = options.threshold
        if filters is not None and filters.min_similarity_score is not None:
            threshold = max(threshold, filters.min_similarity_score)

        embedding = await self._embeddings.embed(query)
        with _storage_errors("vector_search"):
            hits = await self._vector_store.search(
                embedding,
                options.top_k,
                threshold,
                filters.to_vector_filters() if filters is not None else None,
            )

        results: list[SemanticSearchResult] = []
        for hit in hits:
            with _storage_errors("get_metadata"):
                metadata = await self._content_store.get_metadata(hit.id)
            if metadata is None:
                logger.warning("No metadata stored for index %s; using defaults", hit.id)
                metadata = ContentMetadata.placeholder(hit.id)
            if filters is not None and filters.date_range is not None:
                begin, end = filters.date_range
                if not begin <= metadata.timestamp <= end:
                    continue
            chunks: list[Chunk] = []
            if options.include_chunks:
                with _storage_errors("get_chunks"):
                    chunks = await self._content_store.get_chunks(hit.id)
                if not options.include_embeddings:
                    chunks = [replace(c, embedding=None) for c in chunks]
            results.append(
                SemanticSearchResult(
                    id=hit.id,
                    content=hit.content,
                    metadata=metadata,
                    similarity_score=hit.score,
                    chunks=chunks,
                )
            )

        if options.enable_reranking:
            results = await self._reranker.rerank(query, results)

        suggestions = (
            extract_common_terms(results)[:MAX_SUGGESTIONS] if options.enable_suggestions else []
        )
        search_time = time.perf_counter() - started
        logger.info("Semantic search returned %d results in %.3fs", len(results), search_time)
        return SemanticSearchResponse(
            query=query,
            results=results,
            total_results=len(results),
            search_time=search_time,
            used_filters=filters,
            suggestions=suggestions,
        )

    async def search_similar_content(
        self,
        query: str,
        project_id: str | None = None,
        top_k: int = DEFAULT_TOP_K,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> list[SemanticSearchResult]:
        filters = SearchFilters(project_ids=[project_id]) if project_id else None
        options = SearchOptions(top_k=top_k, threshold=threshold, enable_suggestions=False)
        response = await self.semantic_search(query, filters, options)
        return response.results

    async def get_relevant_context(
        self,
        query: str,
        project_id: str | None = None,
        max_tokens: int = 4000,
    ) -> RAGContext:
        """Assemble a token-bounded context for *query*.

        Whole chunks are admitted greedily in result order, then chunk order.
        The first chunk that does not fit ends that result's chunks, and
        admission stops entirely once the budget is reached. Zero matches is
        not an error: the context is simply empty with confidence 0.
        """
        policy = CONTEXT_SEARCH_POLICY
        filters = SearchFilters(
            project_ids=[project_id] if project_id else None,
            min_similarity_score=policy.threshold,
        )
        options = SearchOptions(
            top_k=policy.top_k,
            threshold=policy.threshold,
            include_chunks=policy.include_chunks,
            max_context_length=max_tokens,
            enable_reranking=policy.enable_reranking,
            enable_suggestions=False,
        )
        response = await self.semantic_search(query, filters, options)
        if not response.results:
            return RAGContext.empty(query)

        relevant: list[Chunk] = []
        total_tokens = 0
        for result in response.results:
            for chunk in result.chunks:
                tokens = estimate_tokens(chunk.text)
                if total_tokens + tokens > max_tokens:
                    break
                relevant.append(chunk)
                total_tokens += tokens
            if total_tokens >= max_tokens:
                break

        sources = [
            SourceReference(
                id=r.id,
                title=r.metadata.source_info.title or UNTITLED,
                type=r.metadata.type,
                relevance_score=r.similarity_score,
                chunk_ids=[c.id for c in r.chunks],
                project_id=r.metadata.project_id,
            )
            for r in response.results
        ]
        confidence = sum(r.similarity_score for r in response.results) / len(response.results)
        return RAGContext(
            query=query,
            relevant_chunks=relevant,
            total_tokens=total_tokens,
            sources=sources,
            confidence=confidence,
            retrieval_method=RetrievalMethod.SEMANTIC,
        )

    # ------------------------------------------------------------------
    # Knowledge bases
    # ------------------------------------------------------------------

    async def build_knowledge_base(
        self,
        project_id: str,
        include_transcriptions: bool = True,
        include_documents: bool = True,
    ) -> KnowledgeBase:
        """Index every transcription and/or document of a project and persist
        the aggregate.

        Raises:
            ConfigurationError: If no content repository was supplied.
        """
        if self._repository is None:
            msg = "A content repository is required to build a knowledge base"
            raise ConfigurationError(msg)

        started_at = datetime.now(UTC)
        all_chunks: list[Chunk] = []
        total_documents = 0
        total_tokens = 0
        content_types: set[ContentType] = set()
        languages: set[str] = set()
        tags: set[str] = set()

        if include_transcriptions:
            with _storage_errors("list_transcriptions"):
                transcriptions = await self._repository.list_transcriptions(project_id)
            for transcription in transcriptions:
                metadata = self._transcription_metadata(transcription)
                chunks = await self._index(self._new_id(), transcription.text, metadata)
                all_chunks.extend(chunks)
                total_documents += 1
                total_tokens += estimate_tokens(transcription.text)
                content_types.add(ContentType.TRANSCRIPTION)
                languages.add(metadata.language)

        if include_documents:
            with _storage_errors("list_documents"):
                documents = await self._repository.list_documents(project_id)
            for document in documents:
                indexed = await self.index_document(document)
                all_chunks.extend(indexed.chunks)
                total_documents += 1
                total_tokens += estimate_tokens(document.content)
                content_types.add(ContentType.DOCUMENT)
                languages.add(document.language)
                tags.update(document.tags)

        total_chunk_chars = sum(len(c.text) for c in all_chunks)
        statistics = KnowledgeBaseStatistics(
            average_chunk_size=total_chunk_chars // len(all_chunks) if all_chunks else 0,
            total_vectors=len(all_chunks),
            index_size=total_tokens * 4,
            last_optimized=started_at,
        )
        knowledge_base = KnowledgeBase(
            id=self._new_id(),
            project_id=project_id,
            name="Project Knowledge Base",
            description="Auto-generated knowledge base for project",
            total_documents=total_documents,
            total_chunks=len(all_chunks),
            total_tokens=total_tokens,
            metadata=KnowledgeBaseMetadata(
                content_types=frozenset(content_types),
                languages=frozenset(languages),
                tags=frozenset(tags),
                statistics=statistics,
            ),
            created_at=started_at,
            last_updated=started_at,
        )
        with _storage_errors("save_knowledge_base"):
            await self._content_store.save_knowledge_base(knowledge_base)
        logger.info(
            "Built knowledge base %s for project %s: %d documents, %d chunks",
            knowledge_base.id,
            project_id,
            total_documents,
            len(all_chunks),
        )
        return knowledge_base

    @staticmethod
    def _transcription_metadata(transcription: Transcription) -> ContentMetadata:
        return ContentMetadata(
            id=transcription.id,
            type=ContentType.TRANSCRIPTION,
            project_id=transcription.project_id,
            timestamp=transcription.created_at,
            language=transcription.language,
            source_info=SourceInfo(
                title=transcription.title,
                file_path=transcription.audio_file_path,
                duration=transcription.duration,
            ),
            recording_id=transcription.id,
        )

    async def update_knowledge_base(
        self, knowledge_base_id: str, new_content: list[ContentItem]
    ) -> KnowledgeBase:
        """Re-index only the given content items and refresh ``last_updated``.

        Each item is indexed under a fresh id before its previous index is
        removed, so the item stays searchable throughout.
        """
        with _storage_errors("get_knowledge_base"):
            knowledge_base = await self._content_store.get_knowledge_base_by_id(knowledge_base_id)
        if knowledge_base is None:
            raise KnowledgeBaseNotFoundError(knowledge_base_id)

        for item in new_content:
            new_index_id = await self.index_content(item.content, item.metadata)
            if new_index_id != item.id:
                await self.remove_index(item.id)

        updated = replace(knowledge_base, last_updated=datetime.now(UTC))
        with _storage_errors("save_knowledge_base"):
            await self._content_store.save_knowledge_base(updated)
        return updated

    async def get_knowledge_base_summary(self, project_id: str) -> KnowledgeBaseSummary:
        with _storage_errors("get_knowledge_base"):
            knowledge_base = await self._content_store.get_knowledge_base(project_id)
        if knowledge_base is None:
            raise KnowledgeBaseNotFoundError(project_id)

        with _storage_errors("list_metadata"):
            items = await self._content_store.list_metadata(project_id)
        recent = sorted(items, key=lambda m: m.timestamp, reverse=True)[:SUMMARY_RECENT_LIMIT]

        tag_counts: Counter[str] = Counter(tag for m in items for tag in sorted(m.tags))
        total_tags = sum(tag_counts.values())
        top_tags = [
            TagFrequency(tag=tag, count=count, percentage=count / total_tags * 100)
            for tag, count in tag_counts.most_common(SUMMARY_TAG_LIMIT)
        ]

        type_counts: Counter[ContentType] = Counter(m.type for m in items)
        distribution = [
            ContentTypeCount(type=t, count=count, percentage=count / len(items) * 100)
            for t, count in type_counts.most_common()
        ]
        return KnowledgeBaseSummary(
            knowledge_base=knowledge_base,
            recent_content=recent,
            top_tags=top_tags,
            content_distribution=distribution,
        )
