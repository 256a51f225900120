"""Facade over the analytics engines, including multi-engine analysis."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from noteai_rag.analytics.anomaly import (
    AnomalyDetectionEngine,
    AnomalyDetectionInput,
    AnomalyDetectionResult,
    AnomalyDetectionType,
    AnomalySensitivity,
)
from noteai_rag.analytics.clustering import (
    ClusteringAnalysisEngine,
    ClusteringAnalysisInput,
    ClusteringAnalysisResult,
    ClusteringFeature,
    ClusteringType,
)
from noteai_rag.analytics.correlation import (
    AnalysisVariable,
    CorrelationAnalysisEngine,
    CorrelationAnalysisInput,
    CorrelationAnalysisResult,
    CorrelationType,
)
from noteai_rag.analytics.framework import (
    DEFAULT_CACHE_TTL,
    DEFAULT_MAX_CONCURRENT_OPERATIONS,
    SECONDS_PER_DAY,
    AnalyticsDataSource,
    AnalyticsResult,
    EngineOptions,
    PerformanceMonitor,
    ResultCache,
    TimeRange,
)
from noteai_rag.analytics.impact import (
    ChangeScenario,
    ImpactAnalysisEngine,
    ImpactAnalysisInput,
    ImpactAnalysisResult,
    ImpactScope,
)
from noteai_rag.analytics.predictive import (
    PredictionType,
    PredictiveAnalysisInput,
    PredictiveAnalysisResult,
    PredictiveAnalyticsEngine,
)
from noteai_rag.errors import ComprehensiveAnalysisError

logger = logging.getLogger(__name__)

COMPREHENSIVE_OPERATION = "performComprehensiveAnalysis"
DEFAULT_TIME_HORIZON = 30 * SECONDS_PER_DAY
DEFAULT_ANOMALY_WINDOW_DAYS = 30

DEFAULT_VARIABLES = (
    AnalysisVariable(name="activity_frequency", description="Activities per day", unit="per day"),
    AnalysisVariable(name="participant_count", description="Active participants", unit="people"),
)
DEFAULT_FEATURES = (
    ClusteringFeature(name="activity_pattern", weight=1.0, description="Activity over time"),
    ClusteringFeature(
        name="communication_frequency",
        weight=0.8,
        description="Communication between participants",
    ),
)


class ComprehensiveAnalysisScope(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    COMPREHENSIVE = "comprehensive"

    @property
    def includes_correlation(self) -> bool:
        return self is not ComprehensiveAnalysisScope.BASIC

    @property
    def includes_clustering(self) -> bool:
        return self in (
            ComprehensiveAnalysisScope.ADVANCED,
            ComprehensiveAnalysisScope.COMPREHENSIVE,
        )


@dataclass(frozen=True)
class ComprehensiveAnalysisResult:
    project_id: str
    analysis_scope: ComprehensiveAnalysisScope
    predictive_results: PredictiveAnalysisResult | None
    anomaly_results: AnomalyDetectionResult | None
    correlation_results: CorrelationAnalysisResult | None
    clustering_results: ClusteringAnalysisResult | None
    overall_confidence: float
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def overall_confidence(scores: list[float]) -> float:
    """Mean of the positive scores; components that did not run count as 0."""
    valid = [s for s in scores if s > 0]
    if not valid:
        return 0.0
    return sum(valid) / len(valid)


class AdvancedAnalyticsService:
    """Owns one instance of each engine, sharing a result cache and monitor."""

    def __init__(
        self,
        data_source: AnalyticsDataSource | None = None,
        cache: ResultCache | None = None,
        monitor: PerformanceMonitor | None = None,
        max_concurrent_operations: int = DEFAULT_MAX_CONCURRENT_OPERATIONS,
        cache_ttl: float = DEFAULT_CACHE_TTL,
    ) -> None:
        self.cache = cache or ResultCache()
        self.monitor = monitor or PerformanceMonitor()
        shared: EngineOptions = {
            "data_source": data_source,
            "cache": self.cache,
            "monitor": self.monitor,
            "max_concurrent_operations": max_concurrent_operations,
            "cache_ttl": cache_ttl,
        }
        self.predictive = PredictiveAnalyticsEngine(**shared)
        self.anomaly = AnomalyDetectionEngine(**shared)
        self.correlation = CorrelationAnalysisEngine(**shared)
        self.clustering = ClusteringAnalysisEngine(**shared)
        self.impact = ImpactAnalysisEngine(**shared)

    async def generate_predictive_analysis(
        self,
        project_id: str,
        prediction_type: PredictionType,
        time_horizon: float,
        confidence: float = 0.8,
    ) -> AnalyticsResult[PredictiveAnalysisResult]:
        return await self.predictive.execute(
            PredictiveAnalysisInput(
                project_id=project_id,
                prediction_type=prediction_type,
                time_horizon=time_horizon,
                confidence=confidence,
            )
        )

    async def detect_anomalies(
        self,
        project_id: str,
        detection_type: AnomalyDetectionType,
        sensitivity: AnomalySensitivity = AnomalySensitivity.MEDIUM,
        time_range: TimeRange | None = None,
    ) -> AnalyticsResult[AnomalyDetectionResult]:
        return await self.anomaly.execute(
            AnomalyDetectionInput(
                project_id=project_id,
                detection_type=detection_type,
                sensitivity=sensitivity,
                time_range=time_range,
            )
        )

    async def analyze_correlations(
        self,
        project_id: str,
        variables: tuple[AnalysisVariable, ...],
        correlation_type: CorrelationType = CorrelationType.PEARSON,
        time_range: TimeRange | None = None,
    ) -> AnalyticsResult[CorrelationAnalysisResult]:
        return await self.correlation.execute(
            CorrelationAnalysisInput(
                project_id=project_id,
                variables=variables,
                correlation_type=correlation_type,
                time_range=time_range,
            )
        )

    async def perform_clustering_analysis(
        self,
        project_id: str,
        clustering_type: ClusteringType,
        features: tuple[ClusteringFeature, ...],
        target_clusters: int | None = None,
    ) -> AnalyticsResult[ClusteringAnalysisResult]:
        return await self.clustering.execute(
            ClusteringAnalysisInput(
                project_id=project_id,
                clustering_type=clustering_type,
                features=features,
                target_clusters=target_clusters,
            )
        )

    async def analyze_impact(
        self,
        project_id: str,
        change_scenario: ChangeScenario,
        impact_scope: ImpactScope = ImpactScope.PROJECT,
    ) -> AnalyticsResult[ImpactAnalysisResult]:
        return await self.impact.execute(
            ImpactAnalysisInput(
                project_id=project_id,
                change_scenario=change_scenario,
                impact_scope=impact_scope,
            )
        )

    async def perform_comprehensive_analysis(
        self, project_id: str, scope: ComprehensiveAnalysisScope
    ) -> ComprehensiveAnalysisResult:
        """Run the engines covered by ``scope`` concurrently.

        Any component failure aborts the whole analysis with
        :class:`ComprehensiveAnalysisError`.
        """
        logger.info("Starting comprehensive analysis for %s (%s)", project_id, scope.value)
        started = time.perf_counter()
        try:
            predictive, anomaly, correlation, clustering = await asyncio.gather(
                self._predictive_for_scope(project_id),
                self._anomaly_for_scope(project_id),
                self._correlation_for_scope(project_id, scope),
                self._clustering_for_scope(project_id, scope),
            )
        except Exception as exc:
            self.monitor.record(
                COMPREHENSIVE_OPERATION, time.perf_counter() - started, success=False
            )
            logger.error("Comprehensive analysis for %s failed: %s", project_id, exc)
            raise ComprehensiveAnalysisError(str(exc)) from exc

        confidence = overall_confidence(
            [
                predictive.data.confidence if predictive else 0.0,
                anomaly.data.detection_accuracy if anomaly else 0.0,
                correlation.data.data_quality.accuracy if correlation else 0.0,
                clustering.data.quality_metrics.silhouette_score if clustering else 0.0,
            ]
        )
        completed = sum(r is not None for r in (predictive, anomaly, correlation, clustering))
        duration = time.perf_counter() - started
        self.monitor.record(
            COMPREHENSIVE_OPERATION,
            duration,
            success=True,
            metadata={"scope": scope.value, "analyses_completed": completed},
        )
        logger.info(
            "Comprehensive analysis for %s completed in %.2fs (confidence=%.2f)",
            project_id,
            duration,
            confidence,
        )
        return ComprehensiveAnalysisResult(
            project_id=project_id,
            analysis_scope=scope,
            predictive_results=predictive.data if predictive else None,
            anomaly_results=anomaly.data if anomaly else None,
            correlation_results=correlation.data if correlation else None,
            clustering_results=clustering.data if clustering else None,
            overall_confidence=confidence,
        )

    async def _predictive_for_scope(
        self, project_id: str
    ) -> AnalyticsResult[PredictiveAnalysisResult]:
        return await self.generate_predictive_analysis(
            project_id, PredictionType.ACTIVITY_LEVEL, DEFAULT_TIME_HORIZON
        )

    async def _anomaly_for_scope(self, project_id: str) -> AnalyticsResult[AnomalyDetectionResult]:
        return await self.detect_anomalies(
            project_id,
            AnomalyDetectionType.ACTIVITY_PATTERNS,
            AnomalySensitivity.MEDIUM,
            TimeRange.last_days(DEFAULT_ANOMALY_WINDOW_DAYS),
        )

    async def _correlation_for_scope(
        self, project_id: str, scope: ComprehensiveAnalysisScope
    ) -> AnalyticsResult[CorrelationAnalysisResult] | None:
        if not scope.includes_correlation:
            return None
        return await self.analyze_correlations(project_id, DEFAULT_VARIABLES)

    async def _clustering_for_scope(
        self, project_id: str, scope: ComprehensiveAnalysisScope
    ) -> AnalyticsResult[ClusteringAnalysisResult] | None:
        if not scope.includes_clustering:
            return None
        return await self.perform_clustering_analysis(
            project_id, ClusteringType.K_MEANS, DEFAULT_FEATURES
        )
