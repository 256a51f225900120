"""Tests for the five analytics engines."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import pytest

from noteai_rag.analytics.anomaly import (
    AnomalyDetectionEngine,
    AnomalyDetectionInput,
    AnomalyDetectionType,
    AnomalySensitivity,
)
from noteai_rag.analytics.clustering import (
    ClusteringAnalysisEngine,
    ClusteringAnalysisInput,
    ClusteringFeature,
    ClusteringType,
)
from noteai_rag.analytics.correlation import (
    AnalysisVariable,
    CorrelationAnalysisEngine,
    CorrelationAnalysisInput,
    CorrelationDirection,
    CorrelationStrength,
    CorrelationType,
)
from noteai_rag.analytics.framework import DataPoint, FeatureVector, TimeRange, WarningLevel
from noteai_rag.analytics.impact import (
    ChangeScenario,
    ChangeType,
    ImpactAnalysisEngine,
    ImpactAnalysisInput,
    ImpactScope,
)
from noteai_rag.analytics.predictive import (
    PredictionType,
    PredictiveAnalysisInput,
    PredictiveAnalyticsEngine,
)
from noteai_rag.errors import InsufficientDataError, InvalidInputError

DAY = 86400
NOW = datetime(2024, 6, 1, tzinfo=UTC)


class _SeriesSource:
    """Data source returning *points* synthetic observations for any metric."""

    def __init__(self, points: int, baseline: dict[str, float] | None = None) -> None:
        self.points = points
        self.baseline = baseline or {}

    async def time_series(
        self, project_id: str, metric: str, time_range: TimeRange
    ) -> list[DataPoint]:
        return [
            DataPoint(timestamp=time_range.start + timedelta(hours=i), value=float(i))
            for i in range(self.points)
        ]

    async def feature_vectors(
        self, project_id: str, features: Sequence[str]
    ) -> list[FeatureVector]:
        return [
            FeatureVector(id=f"v{i}", features=tuple(float(i) for _ in features))
            for i in range(self.points)
        ]

    async def baseline_metrics(self, project_id: str, scope: str) -> dict[str, float]:
        return dict(self.baseline)


def _days(days: float) -> TimeRange:
    return TimeRange(start=NOW, end=NOW + timedelta(days=days))


def _variables(count: int) -> tuple[AnalysisVariable, ...]:
    return tuple(AnalysisVariable(name=f"v{i}") for i in range(count))


def _features(count: int) -> tuple[ClusteringFeature, ...]:
    return tuple(ClusteringFeature(name=f"f{i}") for i in range(count))


def _scenario(days: float, change_type: ChangeType = ChangeType.PROCESS_CHANGE) -> ChangeScenario:
    return ChangeScenario(id="s1", name="Adopt standups", type=change_type, timeline=_days(days))


# ---------------------------------------------------------------------------
# Predictive
# ---------------------------------------------------------------------------


class TestPredictiveEngine:
    @pytest.mark.asyncio
    async def test_rejects_non_positive_horizon(self) -> None:
        engine = PredictiveAnalyticsEngine()
        with pytest.raises(InvalidInputError, match="Time horizon must be positive"):
            await engine.execute(PredictiveAnalysisInput("p1", PredictionType.ACTIVITY_LEVEL, 0))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confidence", [0.05, 1.5])
    async def test_rejects_confidence_out_of_range(self, confidence: float) -> None:
        engine = PredictiveAnalyticsEngine()
        with pytest.raises(InvalidInputError):
            await engine.execute(
                PredictiveAnalysisInput("p1", PredictionType.ACTIVITY_LEVEL, DAY, confidence)
            )

    def test_estimate(self) -> None:
        engine = PredictiveAnalyticsEngine()
        estimate = engine.estimate_execution_time(
            PredictiveAnalysisInput("p1", PredictionType.RISK_FACTORS, DAY)
        )
        assert estimate == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_no_history(self) -> None:
        engine = PredictiveAnalyticsEngine()
        result = await engine.execute(
            PredictiveAnalysisInput("p1", PredictionType.ACTIVITY_LEVEL, 30 * DAY, 0.5)
        )
        assert result.data.historical_data_points == 0
        assert result.data.metadata.data_quality == 0.0
        assert result.quality_metrics.data_completeness == 0.0
        assert result.confidence == pytest.approx(0.3)
        messages = [w.message for w in result.metadata.warnings]
        assert any("Insufficient history" in m for m in messages)
        assert any("confidence is low" in m for m in messages)

    @pytest.mark.asyncio
    async def test_with_history(self) -> None:
        engine = PredictiveAnalyticsEngine(data_source=_SeriesSource(30))
        result = await engine.execute(
            PredictiveAnalysisInput("p1", PredictionType.TEAM_ENGAGEMENT, 7 * DAY)
        )
        assert result.data.historical_data_points == 30
        assert result.data.metadata.data_quality == pytest.approx(0.85)
        assert result.quality_metrics.data_completeness == 1.0
        assert result.quality_metrics.statistical_significance == 0.05
        assert result.metadata.warnings == ()

    def test_operation_name(self) -> None:
        engine = PredictiveAnalyticsEngine()
        assert engine.operation_for(
            PredictiveAnalysisInput("p1", PredictionType.ACTIVITY_LEVEL, DAY)
        ) == "generateTrendPrediction"


# ---------------------------------------------------------------------------
# Anomaly
# ---------------------------------------------------------------------------


class TestAnomalyEngine:
    @pytest.mark.asyncio
    async def test_requires_time_range(self) -> None:
        engine = AnomalyDetectionEngine()
        with pytest.raises(InvalidInputError):
            await engine.execute(
                AnomalyDetectionInput("p1", AnomalyDetectionType.ACTIVITY_PATTERNS)
            )

    @pytest.mark.asyncio
    async def test_rejects_range_over_a_year(self) -> None:
        engine = AnomalyDetectionEngine()
        with pytest.raises(InvalidInputError, match="max 1 year"):
            await engine.execute(
                AnomalyDetectionInput(
                    "p1", AnomalyDetectionType.ACTIVITY_PATTERNS, time_range=_days(366)
                )
            )

    @pytest.mark.asyncio
    async def test_accepts_exactly_a_year(self) -> None:
        engine = AnomalyDetectionEngine()
        result = await engine.execute(
            AnomalyDetectionInput(
                "p1", AnomalyDetectionType.ACTIVITY_PATTERNS, time_range=_days(365)
            )
        )
        assert result.data.detection_accuracy == 0.85

    def test_estimate(self) -> None:
        engine = AnomalyDetectionEngine()
        estimate = engine.estimate_execution_time(
            AnomalyDetectionInput(
                "p1",
                AnomalyDetectionType.TIMELINE_DEVIATIONS,
                AnomalySensitivity.VERY_HIGH,
                _days(1),
            )
        )
        assert estimate == pytest.approx(3.0 * 1.6 * 1.5)

    @pytest.mark.asyncio
    async def test_quality_and_warnings_without_anomalies(self) -> None:
        engine = AnomalyDetectionEngine(data_source=_SeriesSource(25))
        result = await engine.execute(
            AnomalyDetectionInput(
                "p1", AnomalyDetectionType.RESOURCE_USAGE, time_range=_days(30)
            )
        )
        assert result.data.total_data_points == 25
        assert result.data.anomalies == ()
        assert result.quality_metrics.data_completeness == pytest.approx(0.5)
        assert result.quality_metrics.statistical_significance is None
        levels = {w.level for w in result.metadata.warnings}
        assert levels == {WarningLevel.WARNING, WarningLevel.INFO}
        assert any(w.message == "No anomalies detected" for w in result.metadata.warnings)

    def test_sensitivity_thresholds(self) -> None:
        assert AnomalySensitivity.LOW.threshold == 3.0
        assert AnomalySensitivity.VERY_HIGH.threshold == 1.5


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------


class TestCorrelationEngine:
    @pytest.mark.asyncio
    async def test_requires_two_variables(self) -> None:
        engine = CorrelationAnalysisEngine(data_source=_SeriesSource(50))
        with pytest.raises(InvalidInputError, match="At least 2 variables"):
            await engine.execute(CorrelationAnalysisInput("p1", _variables(1)))

    @pytest.mark.asyncio
    async def test_rejects_more_than_twenty(self) -> None:
        engine = CorrelationAnalysisEngine(data_source=_SeriesSource(50))
        with pytest.raises(InvalidInputError, match="max 20"):
            await engine.execute(CorrelationAnalysisInput("p1", _variables(21)))

    @pytest.mark.asyncio
    async def test_insufficient_samples(self) -> None:
        engine = CorrelationAnalysisEngine(data_source=_SeriesSource(10))
        with pytest.raises(InsufficientDataError) as exc_info:
            await engine.execute(CorrelationAnalysisInput("p1", _variables(2)))
        assert exc_info.value.required == 30
        assert exc_info.value.available == 10

    @pytest.mark.asyncio
    async def test_empty_source_is_insufficient(self) -> None:
        with pytest.raises(InsufficientDataError):
            await CorrelationAnalysisEngine().execute(CorrelationAnalysisInput("p1", _variables(2)))

    @pytest.mark.asyncio
    async def test_pairwise_matrix(self) -> None:
        engine = CorrelationAnalysisEngine(data_source=_SeriesSource(30))
        result = await engine.execute(
            CorrelationAnalysisInput("p1", _variables(3), CorrelationType.SPEARMAN)
        )
        assert len(result.data.correlation_matrix) == 3
        assert len(result.data.significance_tests) == 3
        assert result.quality_metrics.result_reliability == 1.0
        assert result.quality_metrics.statistical_significance == pytest.approx(0.05)
        assert result.confidence == pytest.approx(0.3 * 0.9 + 0.3 * 0.8 + 0.4 * 1.0)
        assert any("No strong correlations" in w.message for w in result.metadata.warnings)

    @pytest.mark.asyncio
    async def test_many_comparisons_warning(self) -> None:
        engine = CorrelationAnalysisEngine(data_source=_SeriesSource(30))
        result = await engine.execute(CorrelationAnalysisInput("p1", _variables(5)))
        assert not any("pairwise comparisons" in w.message for w in result.metadata.warnings)
        result = await engine.execute(CorrelationAnalysisInput("p1", _variables(6)))
        assert any("pairwise comparisons (15)" in w.message for w in result.metadata.warnings)

    def test_estimate_and_operation(self) -> None:
        engine = CorrelationAnalysisEngine()
        data = CorrelationAnalysisInput("p1", _variables(4), CorrelationType.KENDALL)
        assert engine.estimate_execution_time(data) == pytest.approx(2.0 * 4.0 * 1.5)
        assert engine.operation_for(data) == "calculateKendallTau"

    @pytest.mark.parametrize(
        ("coefficient", "strength", "direction"),
        [
            (0.05, CorrelationStrength.NEGLIGIBLE, CorrelationDirection.NONE),
            (-0.2, CorrelationStrength.WEAK, CorrelationDirection.NEGATIVE),
            (0.5, CorrelationStrength.STRONG, CorrelationDirection.POSITIVE),
            (0.9, CorrelationStrength.VERY_STRONG, CorrelationDirection.POSITIVE),
        ],
    )
    def test_classification(
        self,
        coefficient: float,
        strength: CorrelationStrength,
        direction: CorrelationDirection,
    ) -> None:
        assert CorrelationStrength.from_coefficient(coefficient) is strength
        assert CorrelationDirection.from_coefficient(coefficient) is direction


# ---------------------------------------------------------------------------
# Clustering
# ---------------------------------------------------------------------------


class TestClusteringEngine:
    @pytest.mark.asyncio
    async def test_requires_features(self) -> None:
        with pytest.raises(InvalidInputError):
            await ClusteringAnalysisEngine().execute(
                ClusteringAnalysisInput("p1", ClusteringType.K_MEANS, ())
            )

    @pytest.mark.asyncio
    async def test_rejects_too_many_features(self) -> None:
        with pytest.raises(InvalidInputError, match="max 50"):
            await ClusteringAnalysisEngine().execute(
                ClusteringAnalysisInput("p1", ClusteringType.K_MEANS, _features(51))
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", [1, 21])
    async def test_rejects_target_clusters_out_of_range(self, target: int) -> None:
        with pytest.raises(InvalidInputError):
            await ClusteringAnalysisEngine().execute(
                ClusteringAnalysisInput("p1", ClusteringType.K_MEANS, _features(2), target)
            )

    def test_estimate_and_operation(self) -> None:
        engine = ClusteringAnalysisEngine()
        data = ClusteringAnalysisInput("p1", ClusteringType.HIERARCHICAL, _features(4), 10)
        assert engine.estimate_execution_time(data) == pytest.approx(4.0 * 2.0 * 1.5 * 2.0)
        assert engine.operation_for(data) == "performHierarchicalClustering"

    @pytest.mark.asyncio
    async def test_result_and_warnings(self) -> None:
        engine = ClusteringAnalysisEngine(data_source=_SeriesSource(25))
        result = await engine.execute(
            ClusteringAnalysisInput("p1", ClusteringType.DBSCAN, _features(12))
        )
        assert result.data.data_points == 25
        assert result.data.quality_metrics.silhouette_score == 0.7
        assert result.quality_metrics.data_completeness == pytest.approx(0.5)
        assert result.quality_metrics.data_accuracy == 0.7
        messages = [w.message for w in result.metadata.warnings]
        assert any("Few data points" in m for m in messages)
        assert any("High-dimensional" in m for m in messages)


# ---------------------------------------------------------------------------
# Impact
# ---------------------------------------------------------------------------


class TestImpactEngine:
    @pytest.mark.asyncio
    async def test_rejects_empty_timeline(self) -> None:
        with pytest.raises(InvalidInputError):
            await ImpactAnalysisEngine().execute(ImpactAnalysisInput("p1", _scenario(0)))

    @pytest.mark.asyncio
    async def test_rejects_timeline_over_two_years(self) -> None:
        with pytest.raises(InvalidInputError, match="max 2 years"):
            await ImpactAnalysisEngine().execute(ImpactAnalysisInput("p1", _scenario(731)))

    def test_estimate_caps_months(self) -> None:
        engine = ImpactAnalysisEngine()
        short = ImpactAnalysisInput(
            "p1", _scenario(60, ChangeType.TEAM_RESTRUCTURE), ImpactScope.TEAM
        )
        long = ImpactAnalysisInput("p1", _scenario(700), ImpactScope.TASK)
        assert engine.estimate_execution_time(short) == pytest.approx(6.0 * 2.0 * 1.3 * 1.2)
        assert engine.estimate_execution_time(long) == pytest.approx(6.0 * 1.0 * 1.0 * 2.2)

    @pytest.mark.asyncio
    async def test_without_baseline(self) -> None:
        result = await ImpactAnalysisEngine().execute(ImpactAnalysisInput("p1", _scenario(90)))
        assert result.data.confidence_level == 0.8
        assert result.data.overall_impact == 0.0
        assert result.quality_metrics.data_completeness == 0.5
        assert result.quality_metrics.statistical_significance is None
        assert result.metadata.warnings == ()

    @pytest.mark.asyncio
    async def test_with_baseline_and_long_timeline(self) -> None:
        engine = ImpactAnalysisEngine(data_source=_SeriesSource(0, {"velocity": 10.0}))
        result = await engine.execute(ImpactAnalysisInput("p1", _scenario(400)))
        assert result.data.baseline.metrics == {"velocity": 10.0}
        assert result.quality_metrics.data_completeness == 0.9
        assert any("Long-running scenario" in w.message for w in result.metadata.warnings)
