from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from noteai_rag.api.dependencies import build_container
from noteai_rag.api.routes.analytics import router as analytics_router
from noteai_rag.api.routes.index import router as index_router
from noteai_rag.api.routes.knowledge_base import router as knowledge_base_router
from noteai_rag.api.routes.query import router as query_router
from noteai_rag.config import get_settings
from noteai_rag.logging_config import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    setup_logging(settings.log_level)
    app.state.container = build_container(settings)
    yield


app = FastAPI(
    title="NoteAI RAG API",
    description="Retrieval-augmented answers and project analytics over notes and transcripts",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_origin_regex=r"https://.*\.vercel\.app|http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(index_router)
app.include_router(query_router)
app.include_router(knowledge_base_router)
app.include_router(analytics_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


def run() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
