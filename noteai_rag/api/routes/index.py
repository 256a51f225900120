"""Index endpoints: add content to, and remove it from, the RAG index."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends

from noteai_rag.api.dependencies import Container, get_container, http_error
from noteai_rag.api.models import IndexRequest, IndexResponse
from noteai_rag.errors import NoteAIError
from noteai_rag.ingestion.models import ContentMetadata, Document, SourceInfo
from noteai_rag.pipeline_config import ContentType

router = APIRouter()


@router.post("/api/index", response_model=IndexResponse)
async def index(
    request: IndexRequest, container: Annotated[Container, Depends(get_container)]
) -> IndexResponse:
    """Chunk, embed and store content.

    Documents are keyed by their document id so re-posting a document
    replaces its previous index.
    """
    coordinator = container.coordinator
    try:
        if request.content_type is ContentType.DOCUMENT:
            indexed = await coordinator.index_document(
                Document(
                    id=request.document_id or str(uuid.uuid4()),
                    project_id=request.project_id,
                    title=request.title,
                    content=request.content,
                    language=request.language,
                    tags=frozenset(request.tags),
                    author=request.author,
                    file_name=request.file_name,
                )
            )
            return IndexResponse(
                index_id=indexed.id,
                chunk_count=len(indexed.chunks),
                status=indexed.index_status,
            )

        index_id = await coordinator.index_content(
            request.content,
            ContentMetadata(
                id=request.document_id or str(uuid.uuid4()),
                type=request.content_type,
                project_id=request.project_id,
                language=request.language,
                tags=frozenset(request.tags),
                source_info=SourceInfo(title=request.title or None, author=request.author),
            ),
        )
    except NoteAIError as exc:
        raise http_error(exc) from exc
    return IndexResponse(index_id=index_id)


@router.delete("/api/index/{index_id}", status_code=204)
async def remove_index(
    index_id: str, container: Annotated[Container, Depends(get_container)]
) -> None:
    """Remove an index from both stores. Unknown ids are a no-op."""
    try:
        await container.coordinator.remove_index(index_id)
    except NoteAIError as exc:
        raise http_error(exc) from exc
