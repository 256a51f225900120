"""Analytics endpoints: one route per engine plus multi-engine analysis."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder

from noteai_rag.analytics.clustering import ClusteringFeature
from noteai_rag.analytics.correlation import AnalysisVariable
from noteai_rag.analytics.framework import SECONDS_PER_DAY, AnalyticsResult, TimeRange
from noteai_rag.analytics.impact import ChangeScenario
from noteai_rag.api.dependencies import Container, get_container, http_error
from noteai_rag.api.models import (
    AnalyticsResponse,
    AnalyticsWarningItem,
    AnomalyRequest,
    ClusteringRequest,
    ComprehensiveRequest,
    CorrelationRequest,
    ImpactRequest,
    OperationStats,
    PredictiveRequest,
    TimeRangeModel,
)
from noteai_rag.errors import NoteAIError

router = APIRouter(prefix="/api/analytics")


def _time_range(model: TimeRangeModel | None) -> TimeRange | None:
    if model is None:
        return None
    return TimeRange(start=model.start, end=model.end)


def _analytics_response(result: AnalyticsResult[Any]) -> AnalyticsResponse:
    quality = result.quality_metrics
    return AnalyticsResponse(
        engine=result.metadata.engine_name,
        data=jsonable_encoder(result.data),
        confidence=result.confidence,
        processing_time=result.processing_time,
        quality_metrics={
            "data_completeness": quality.data_completeness,
            "data_accuracy": quality.data_accuracy,
            "result_reliability": quality.result_reliability,
            "statistical_significance": quality.statistical_significance,
            "overall_quality": quality.overall_quality,
        },
        warnings=[
            AnalyticsWarningItem(
                level=w.level.value,
                message=w.message,
                recommendation=w.recommendation,
                affected_metrics=list(w.affected_metrics),
            )
            for w in result.metadata.warnings
        ],
        cache_key=result.cache_key,
    )


@router.post("/predictive", response_model=AnalyticsResponse)
async def predictive(
    request: PredictiveRequest, container: Annotated[Container, Depends(get_container)]
) -> AnalyticsResponse:
    try:
        result = await container.analytics.generate_predictive_analysis(
            request.project_id,
            request.prediction_type,
            request.time_horizon_days * SECONDS_PER_DAY,
            request.confidence,
        )
    except NoteAIError as exc:
        raise http_error(exc) from exc
    return _analytics_response(result)


@router.post("/anomaly", response_model=AnalyticsResponse)
async def anomaly(
    request: AnomalyRequest, container: Annotated[Container, Depends(get_container)]
) -> AnalyticsResponse:
    try:
        result = await container.analytics.detect_anomalies(
            request.project_id,
            request.detection_type,
            request.sensitivity,
            _time_range(request.time_range),
        )
    except NoteAIError as exc:
        raise http_error(exc) from exc
    return _analytics_response(result)


@router.post("/correlation", response_model=AnalyticsResponse)
async def correlation(
    request: CorrelationRequest, container: Annotated[Container, Depends(get_container)]
) -> AnalyticsResponse:
    variables = tuple(
        AnalysisVariable(name=v.name, type=v.type, description=v.description, unit=v.unit)
        for v in request.variables
    )
    try:
        result = await container.analytics.analyze_correlations(
            request.project_id,
            variables,
            request.correlation_type,
            _time_range(request.time_range),
        )
    except NoteAIError as exc:
        raise http_error(exc) from exc
    return _analytics_response(result)


@router.post("/clustering", response_model=AnalyticsResponse)
async def clustering(
    request: ClusteringRequest, container: Annotated[Container, Depends(get_container)]
) -> AnalyticsResponse:
    features = tuple(
        ClusteringFeature(name=f.name, type=f.type, weight=f.weight, description=f.description)
        for f in request.features
    )
    try:
        result = await container.analytics.perform_clustering_analysis(
            request.project_id,
            request.clustering_type,
            features,
            request.target_clusters,
        )
    except NoteAIError as exc:
        raise http_error(exc) from exc
    return _analytics_response(result)


@router.post("/impact", response_model=AnalyticsResponse)
async def impact(
    request: ImpactRequest, container: Annotated[Container, Depends(get_container)]
) -> AnalyticsResponse:
    scenario = request.change_scenario
    change = ChangeScenario(
        id=scenario.id,
        name=scenario.name,
        type=scenario.type,
        timeline=TimeRange(start=scenario.timeline.start, end=scenario.timeline.end),
        description=scenario.description,
        parameters=tuple(sorted(scenario.parameters.items())),
    )
    try:
        result = await container.analytics.analyze_impact(
            request.project_id, change, request.impact_scope
        )
    except NoteAIError as exc:
        raise http_error(exc) from exc
    return _analytics_response(result)


@router.post("/comprehensive", response_model=AnalyticsResponse)
async def comprehensive(
    request: ComprehensiveRequest, container: Annotated[Container, Depends(get_container)]
) -> AnalyticsResponse:
    """Run several engines concurrently; the scope decides which ones."""
    try:
        result = await container.analytics.perform_comprehensive_analysis(
            request.project_id, request.scope
        )
    except NoteAIError as exc:
        raise http_error(exc) from exc
    return AnalyticsResponse(
        engine="AdvancedAnalyticsService",
        data=jsonable_encoder(result),
        confidence=result.overall_confidence,
    )


@router.get("/stats", response_model=dict[str, OperationStats])
async def stats(
    container: Annotated[Container, Depends(get_container)],
) -> dict[str, OperationStats]:
    return {
        operation: OperationStats(
            count=s.count,
            successes=s.successes,
            failures=s.failures,
            cached=s.cached,
            average_duration=s.average_duration,
            success_rate=s.success_rate,
        )
        for operation, s in container.analytics.monitor.summary().items()
    }
