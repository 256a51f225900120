"""Knowledge base endpoints: build a project aggregate and summarize it."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from noteai_rag.api.dependencies import Container, get_container, http_error
from noteai_rag.api.models import (
    ContentTypeCountItem,
    KnowledgeBaseRequest,
    KnowledgeBaseResponse,
    KnowledgeBaseSummaryResponse,
    RecentContentItem,
    TagFrequencyItem,
)
from noteai_rag.errors import NoteAIError
from noteai_rag.retrieval.models import KnowledgeBase

router = APIRouter()


def _knowledge_base_response(kb: KnowledgeBase) -> KnowledgeBaseResponse:
    return KnowledgeBaseResponse(
        id=kb.id,
        project_id=kb.project_id,
        name=kb.name,
        description=kb.description,
        total_documents=kb.total_documents,
        total_chunks=kb.total_chunks,
        total_tokens=kb.total_tokens,
        content_types=sorted(kb.metadata.content_types, key=lambda t: t.value),
        languages=sorted(kb.metadata.languages),
        tags=sorted(kb.metadata.tags),
        created_at=kb.created_at,
        last_updated=kb.last_updated,
        version=kb.version,
    )


@router.post("/api/knowledge-bases", response_model=KnowledgeBaseResponse)
async def build_knowledge_base(
    request: KnowledgeBaseRequest, container: Annotated[Container, Depends(get_container)]
) -> KnowledgeBaseResponse:
    """Index all of a project's transcriptions and documents and persist the aggregate."""
    try:
        kb = await container.coordinator.build_knowledge_base(
            request.project_id,
            include_transcriptions=request.include_transcriptions,
            include_documents=request.include_documents,
        )
    except NoteAIError as exc:
        raise http_error(exc) from exc
    return _knowledge_base_response(kb)


@router.get(
    "/api/knowledge-bases/{project_id}/summary", response_model=KnowledgeBaseSummaryResponse
)
async def knowledge_base_summary(
    project_id: str, container: Annotated[Container, Depends(get_container)]
) -> KnowledgeBaseSummaryResponse:
    try:
        summary = await container.coordinator.get_knowledge_base_summary(project_id)
    except NoteAIError as exc:
        raise http_error(exc) from exc

    return KnowledgeBaseSummaryResponse(
        knowledge_base=_knowledge_base_response(summary.knowledge_base),
        recent_content=[
            RecentContentItem(
                id=m.id, type=m.type, title=m.source_info.title, timestamp=m.timestamp
            )
            for m in summary.recent_content
        ],
        top_tags=[
            TagFrequencyItem(tag=t.tag, count=t.count, percentage=t.percentage)
            for t in summary.top_tags
        ],
        content_distribution=[
            ContentTypeCountItem(type=c.type, count=c.count, percentage=c.percentage)
            for c in summary.content_distribution
        ],
        generated_at=summary.generated_at,
    )
