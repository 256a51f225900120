"""Search and query endpoints: semantic search and grounded answers."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from noteai_rag.api.dependencies import Container, get_container, http_error
from noteai_rag.api.models import (
    QueryRequest,
    QueryResponse,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
    SourceItem,
)
from noteai_rag.errors import NoteAIError
from noteai_rag.retrieval.generation import answer_question
from noteai_rag.retrieval.models import SearchFilters, SearchOptions

router = APIRouter()


@router.post("/api/search", response_model=SearchResponse)
async def search(
    request: SearchRequest, container: Annotated[Container, Depends(get_container)]
) -> SearchResponse:
    filters = SearchFilters(
        project_ids=request.project_ids,
        content_types=request.content_types,
        languages=request.languages,
        tags=request.tags,
        min_similarity_score=request.min_similarity_score,
    )
    options = SearchOptions(
        top_k=request.top_k,
        threshold=request.threshold,
        include_chunks=request.include_chunks,
        enable_reranking=request.enable_reranking,
    )
    try:
        response = await container.coordinator.semantic_search(request.query, filters, options)
    except NoteAIError as exc:
        raise http_error(exc) from exc

    return SearchResponse(
        query=response.query,
        results=[
            SearchResultItem(
                id=r.id,
                content=r.content,
                similarity_score=r.similarity_score,
                title=r.metadata.source_info.title,
                type=r.metadata.type,
                project_id=r.metadata.project_id,
                chunk_count=len(r.chunks),
            )
            for r in response.results
        ],
        total_results=response.total_results,
        search_time=response.search_time,
        suggestions=response.suggestions,
    )


@router.post("/api/query", response_model=QueryResponse)
async def query(
    request: QueryRequest, container: Annotated[Container, Depends(get_container)]
) -> QueryResponse:
    """Answer a question from retrieved context.

    Context is assembled within the token budget and passed to Claude; the
    answer is grounded only in that context.
    """
    max_tokens = request.max_tokens or container.settings.context_max_tokens
    try:
        synthesizer = container.synthesizer()
        result = await answer_question(
            container.coordinator,
            synthesizer,
            request.question,
            project_id=request.project_id,
            max_tokens=max_tokens,
        )
    except NoteAIError as exc:
        raise http_error(exc) from exc

    usage = result.token_usage
    return QueryResponse(
        answer=result.answer,
        confidence=result.confidence,
        sources=[
            SourceItem(
                id=s.id,
                title=s.title,
                type=s.type,
                relevance_score=s.relevance_score,
                chunk_ids=s.chunk_ids,
                project_id=s.project_id,
            )
            for s in result.sources
        ],
        model=result.model,
        response_time=result.response_time,
        context_tokens=result.context.total_tokens,
        context_truncated=result.metadata.context_truncated,
        usage={
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
            "estimated_cost": usage.estimated_cost,
        },
    )
