"""Pydantic request/response schemas for the NoteAI RAG API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from noteai_rag.analytics.anomaly import AnomalyDetectionType, AnomalySensitivity
from noteai_rag.analytics.clustering import ClusteringType, FeatureType
from noteai_rag.analytics.correlation import CorrelationType, VariableType
from noteai_rag.analytics.impact import ChangeType, ImpactScope
from noteai_rag.analytics.predictive import PredictionType
from noteai_rag.analytics.service import ComprehensiveAnalysisScope
from noteai_rag.pipeline_config import DEFAULT_SIMILARITY_THRESHOLD, DEFAULT_TOP_K, ContentType

# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------


class IndexRequest(BaseModel):
    """Request body for the /api/index endpoint.

    Documents are indexed under ``document_id`` (replacing any previous
    index of the same document); other content types get a fresh index id.
    """

    project_id: str
    content: str = Field(min_length=1)
    title: str = ""
    content_type: ContentType = ContentType.DOCUMENT
    document_id: str | None = None
    language: str = "ja"
    tags: list[str] = []
    author: str | None = None
    file_name: str | None = None


class IndexResponse(BaseModel):
    index_id: str
    chunk_count: int | None = None
    status: str = "completed"


# ---------------------------------------------------------------------------
# Search and query
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    project_ids: list[str] | None = None
    content_types: list[ContentType] | None = None
    languages: list[str] | None = None
    tags: list[str] | None = None
    min_similarity_score: float | None = None
    top_k: int = Field(default=DEFAULT_TOP_K, ge=1, le=100)
    threshold: float = Field(default=DEFAULT_SIMILARITY_THRESHOLD, ge=0.0, le=1.0)
    include_chunks: bool = False
    enable_reranking: bool = False


class SearchResultItem(BaseModel):
    id: str
    content: str
    similarity_score: float
    title: str | None = None
    type: ContentType
    project_id: str
    chunk_count: int = 0


class SearchResponse(BaseModel):
    query: str
    results: list[SearchResultItem]
    total_results: int
    search_time: float
    suggestions: list[str] = []


class QueryRequest(BaseModel):
    """Request body for the /api/query endpoint."""

    question: str = Field(min_length=1)
    project_id: str | None = None
    max_tokens: int | None = Field(default=None, ge=1)


class SourceItem(BaseModel):
    id: str
    title: str
    type: ContentType
    relevance_score: float
    chunk_ids: list[str]
    project_id: str


class QueryResponse(BaseModel):
    """Response body for the /api/query endpoint."""

    answer: str
    confidence: float
    sources: list[SourceItem]
    model: str | None = None
    response_time: float
    context_tokens: int
    context_truncated: bool
    usage: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Knowledge bases
# ---------------------------------------------------------------------------


class KnowledgeBaseRequest(BaseModel):
    project_id: str
    include_transcriptions: bool = True
    include_documents: bool = True


class KnowledgeBaseResponse(BaseModel):
    id: str
    project_id: str
    name: str
    description: str
    total_documents: int
    total_chunks: int
    total_tokens: int
    content_types: list[ContentType]
    languages: list[str]
    tags: list[str]
    created_at: datetime
    last_updated: datetime
    version: str


class RecentContentItem(BaseModel):
    id: str
    type: ContentType
    title: str | None = None
    timestamp: datetime


class TagFrequencyItem(BaseModel):
    tag: str
    count: int
    percentage: float


class ContentTypeCountItem(BaseModel):
    type: ContentType
    count: int
    percentage: float


class KnowledgeBaseSummaryResponse(BaseModel):
    knowledge_base: KnowledgeBaseResponse
    recent_content: list[RecentContentItem]
    top_tags: list[TagFrequencyItem]
    content_distribution: list[ContentTypeCountItem]
    generated_at: datetime


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class TimeRangeModel(BaseModel):
    start: datetime
    end: datetime


class PredictiveRequest(BaseModel):
    project_id: str
    prediction_type: PredictionType
    time_horizon_days: float
    confidence: float = 0.8


class AnomalyRequest(BaseModel):
    project_id: str
    detection_type: AnomalyDetectionType
    sensitivity: AnomalySensitivity = AnomalySensitivity.MEDIUM
    time_range: TimeRangeModel | None = None


class VariableModel(BaseModel):
    name: str
    type: VariableType = VariableType.CONTINUOUS
    description: str = ""
    unit: str | None = None


class CorrelationRequest(BaseModel):
    project_id: str
    variables: list[VariableModel]
    correlation_type: CorrelationType = CorrelationType.PEARSON
    time_range: TimeRangeModel | None = None


class FeatureModel(BaseModel):
    name: str
    type: FeatureType = FeatureType.NUMERICAL
    weight: float = 1.0
    description: str = ""


class ClusteringRequest(BaseModel):
    project_id: str
    clustering_type: ClusteringType = ClusteringType.K_MEANS
    features: list[FeatureModel]
    target_clusters: int | None = None


class ChangeScenarioModel(BaseModel):
    id: str
    name: str
    type: ChangeType
    timeline: TimeRangeModel
    description: str = ""
    parameters: dict[str, str] = {}


class ImpactRequest(BaseModel):
    project_id: str
    change_scenario: ChangeScenarioModel
    impact_scope: ImpactScope = ImpactScope.PROJECT


class ComprehensiveRequest(BaseModel):
    project_id: str
    scope: ComprehensiveAnalysisScope = ComprehensiveAnalysisScope.BASIC


class AnalyticsWarningItem(BaseModel):
    level: str
    message: str
    recommendation: str | None = None
    affected_metrics: list[str] = []


class AnalyticsResponse(BaseModel):
    engine: str
    data: dict[str, Any]
    confidence: float
    processing_time: float | None = None
    quality_metrics: dict[str, Any] | None = None
    warnings: list[AnalyticsWarningItem] = []
    cache_key: str | None = None


class OperationStats(BaseModel):
    count: int
    successes: int
    failures: int
    cached: int
    average_duration: float
    success_rate: float
