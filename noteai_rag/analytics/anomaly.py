"""Statistical anomaly detection over project time series."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Unpack

from noteai_rag.analytics.framework import (
    SECONDS_PER_DAY,
    AnalyticsEngineBase,
    AnalyticsWarning,
    DataPoint,
    EngineOptions,
    QualityMetrics,
    TimeRange,
    WarningLevel,
    completeness,
)

logger = logging.getLogger(__name__)

MAX_ANALYSIS_PERIOD = 365 * SECONDS_PER_DAY
DEFAULT_RESULT_WINDOW_DAYS = 30
MIN_RECOMMENDED_DATA_POINTS = 100
HIGH_SENSITIVITY_ANOMALY_LIMIT = 50


class AnomalyDetectionType(str, Enum):
    ACTIVITY_PATTERNS = "activity_patterns"
    COMMUNICATION_FREQUENCY = "communication_frequency"
    PRODUCTIVITY_METRICS = "productivity_metrics"
    QUALITY_INDICATORS = "quality_indicators"
    RESOURCE_USAGE = "resource_usage"
    TIMELINE_DEVIATIONS = "timeline_deviations"

    @property
    def complexity_multiplier(self) -> float:
        return _DETECTION_COMPLEXITY[self]


_DETECTION_COMPLEXITY = {
    AnomalyDetectionType.ACTIVITY_PATTERNS: 1.0,
    AnomalyDetectionType.COMMUNICATION_FREQUENCY: 1.1,
    AnomalyDetectionType.PRODUCTIVITY_METRICS: 1.3,
    AnomalyDetectionType.QUALITY_INDICATORS: 1.2,
    AnomalyDetectionType.RESOURCE_USAGE: 1.4,
    AnomalyDetectionType.TIMELINE_DEVIATIONS: 1.5,
}


class AnomalySensitivity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @property
    def threshold(self) -> float:
        """Deviation, in standard deviations, that counts as anomalous."""
        return {"low": 3.0, "medium": 2.5, "high": 2.0, "very_high": 1.5}[self.value]

    @property
    def execution_multiplier(self) -> float:
        return {"low": 0.8, "medium": 1.0, "high": 1.3, "very_high": 1.6}[self.value]


class AnomalySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def priority(self) -> int:
        return {"low": 1, "medium": 2, "high": 3, "critical": 4}[self.value]


class AnomalyType(str, Enum):
    SPIKE = "spike"
    DROP = "drop"
    PLATEAU = "plateau"
    OSCILLATION = "oscillation"
    TREND = "trend"


class AnomalyDetectionAlgorithm(str, Enum):
    STATISTICAL = "statistical"
    ISOLATION_FOREST = "isolation_forest"
    LOCAL_OUTLIER_FACTOR = "lof"
    AUTOENCODER = "autoencoder"


class CauseCategory(str, Enum):
    TECHNICAL = "technical"
    PROCESS = "process"
    HUMAN = "human"
    EXTERNAL = "external"


@dataclass(frozen=True)
class AnomalyDetectionInput:
    project_id: str
    detection_type: AnomalyDetectionType
    sensitivity: AnomalySensitivity = AnomalySensitivity.MEDIUM
    time_range: TimeRange | None = None


@dataclass(frozen=True)
class AnomalyDetectionConfig:
    algorithm: AnomalyDetectionAlgorithm = AnomalyDetectionAlgorithm.STATISTICAL
    minimum_data_points: int = 50
    outlier_threshold: float = 2.5
    enable_seasonality_detection: bool = True
    max_anomalies_per_period: int = 100


@dataclass(frozen=True)
class Anomaly:
    id: str
    timestamp: datetime
    value: float
    severity: AnomalySeverity
    deviation_score: float
    type: AnomalyType
    description: str
    affected_metrics: tuple[str, ...] = ()
    potential_causes: tuple[str, ...] = ()


@dataclass(frozen=True)
class PatternSignature:
    type: str
    parameters: dict[str, float]
    confidence: float


@dataclass(frozen=True)
class BaselinePattern:
    mean: float
    standard_deviation: float
    patterns: tuple[PatternSignature, ...] = ()


@dataclass(frozen=True)
class ProbableCause:
    cause: str
    probability: float
    evidence: tuple[str, ...]
    category: CauseCategory


@dataclass(frozen=True)
class RootCauseAnalysis:
    anomaly_id: str
    probable_causes: tuple[ProbableCause, ...]
    investigation_steps: tuple[str, ...]
    recommended_actions: tuple[str, ...]


@dataclass(frozen=True)
class AnomalyDetectionResult:
    project_id: str
    detection_type: AnomalyDetectionType
    time_range: TimeRange
    anomalies: tuple[Anomaly, ...]
    baseline: BaselinePattern
    sensitivity: AnomalySensitivity
    root_cause_analysis: tuple[RootCauseAnalysis, ...]
    total_data_points: int
    detection_accuracy: float
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class AnomalyDetectionEngine(
    AnalyticsEngineBase[AnomalyDetectionInput, AnomalyDetectionResult, AnomalyDetectionConfig]
):
    engine_name = "AnomalyDetectionEngine"
    supported_operations = (
        "detectStatisticalAnomalies",
        "identifyPatternBreaks",
        "analyzeOutliers",
        "performRootCauseAnalysis",
    )

    def __init__(
        self,
        configuration: AnomalyDetectionConfig | None = None,
        **kwargs: Unpack[EngineOptions],
    ) -> None:
        super().__init__(configuration or AnomalyDetectionConfig(), **kwargs)

    def operation_for(self, input_data: AnomalyDetectionInput) -> str:
        return "detectStatisticalAnomalies"

    async def validate_input(self, input_data: AnomalyDetectionInput) -> None:
        time_range = input_data.time_range
        if time_range is None or time_range.duration <= 0:
            raise self._invalid("Time range must be specified and positive")
        if time_range.duration > MAX_ANALYSIS_PERIOD:
            raise self._invalid("Time range too large (max 1 year)")

    def estimate_execution_time(self, input_data: AnomalyDetectionInput) -> float:
        return (
            3.0
            * input_data.sensitivity.execution_multiplier
            * input_data.detection_type.complexity_multiplier
        )

    async def perform_analysis(
        self, input_data: AnomalyDetectionInput, configuration: AnomalyDetectionConfig
    ) -> AnomalyDetectionResult:
        time_range = input_data.time_range or TimeRange.last_days(DEFAULT_RESULT_WINDOW_DAYS)
        series = await self.data_source.time_series(
            input_data.project_id, input_data.detection_type.value, time_range
        )
        baseline = self._establish_baseline(series, configuration)
        anomalies = self._detect_anomalies(series, baseline, input_data.sensitivity, configuration)
        prioritized = sorted(anomalies, key=lambda a: a.severity.priority, reverse=True)
        logger.debug(
            "Anomaly detection for %s: %d points, %d anomalies",
            input_data.project_id,
            len(series),
            len(prioritized),
        )
        return AnomalyDetectionResult(
            project_id=input_data.project_id,
            detection_type=input_data.detection_type,
            time_range=time_range,
            anomalies=tuple(prioritized),
            baseline=baseline,
            sensitivity=input_data.sensitivity,
            root_cause_analysis=tuple(self._root_causes(prioritized, series)),
            total_data_points=len(series),
            detection_accuracy=0.85,
        )

    async def calculate_quality_metrics(
        self,
        input_data: AnomalyDetectionInput,
        output: AnomalyDetectionResult,
        configuration: AnomalyDetectionConfig,
    ) -> QualityMetrics:
        return QualityMetrics(
            data_completeness=completeness(
                output.total_data_points, configuration.minimum_data_points
            ),
            data_accuracy=output.detection_accuracy,
            result_reliability=0.8,
            statistical_significance=0.01 if output.anomalies else None,
        )

    async def identify_warnings(
        self, input_data: AnomalyDetectionInput, output: AnomalyDetectionResult
    ) -> list[AnalyticsWarning]:
        warnings: list[AnalyticsWarning] = []
        if output.total_data_points < MIN_RECOMMENDED_DATA_POINTS:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.WARNING,
                    message=(
                        "Too few data points for reliable detection "
                        f"({output.total_data_points})"
                    ),
                    recommendation="Widen the time range or collect more data",
                    affected_metrics=("detectionAccuracy", "falsePositiveRate"),
                )
            )
        if (
            input_data.sensitivity is AnomalySensitivity.HIGH
            and len(output.anomalies) > HIGH_SENSITIVITY_ANOMALY_LIMIT
        ):
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.INFO,
                    message=f"Many anomalies at high sensitivity ({len(output.anomalies)})",
                    recommendation="Lower the sensitivity to reduce false positives",
                    affected_metrics=("falsePositiveRate",),
                )
            )
        if not output.anomalies:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.INFO,
                    message="No anomalies detected",
                    recommendation="Raise the sensitivity or try another detection type",
                    affected_metrics=("coverage",),
                )
            )
        return warnings

    # Detection extension points.

    def _establish_baseline(
        self, series: list[DataPoint], configuration: AnomalyDetectionConfig
    ) -> BaselinePattern:
        return BaselinePattern(mean=0.0, standard_deviation=1.0)

    def _detect_anomalies(
        self,
        series: list[DataPoint],
        baseline: BaselinePattern,
        sensitivity: AnomalySensitivity,
        configuration: AnomalyDetectionConfig,
    ) -> list[Anomaly]:
        return []

    def _root_causes(
        self, anomalies: list[Anomaly], series: list[DataPoint]
    ) -> list[RootCauseAnalysis]:
        return []
