"""Trend-based prediction of project metrics."""

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

MIN_RECOMMENDED_DATA_POINTS = 30
LOW_CONFIDENCE_THRESHOLD = 0.6


class PredictionType(str, Enum):
    ACTIVITY_LEVEL = "activity_level"
    TEAM_ENGAGEMENT = "team_engagement"
    PROJECT_COMPLETION = "project_completion"
    RESOURCE_REQUIREMENT = "resource_requirement"
    QUALITY_METRICS = "quality_metrics"
    RISK_FACTORS = "risk_factors"

    @property
    def complexity_multiplier(self) -> float:
        return _PREDICTION_COMPLEXITY[self]


_PREDICTION_COMPLEXITY = {
    PredictionType.ACTIVITY_LEVEL: 1.0,
    PredictionType.TEAM_ENGAGEMENT: 1.2,
    PredictionType.PROJECT_COMPLETION: 1.5,
    PredictionType.RESOURCE_REQUIREMENT: 1.8,
    PredictionType.QUALITY_METRICS: 1.3,
    PredictionType.RISK_FACTORS: 2.0,
}


class PredictionScenario(str, Enum):
    OPTIMISTIC = "optimistic"
    REALISTIC = "realistic"
    PESSIMISTIC = "pessimistic"


class TrendType(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    LOGARITHMIC = "logarithmic"
    POLYNOMIAL = "polynomial"
    SEASONAL = "seasonal"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class FactorCategory(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
    TEMPORAL = "temporal"
    RESOURCE = "resource"
    QUALITY = "quality"


@dataclass(frozen=True)
class PredictiveAnalysisInput:
    project_id: str
    prediction_type: PredictionType
    time_horizon: float
    """Seconds into the future to predict."""
    confidence: float = 0.8


@dataclass(frozen=True)
class PredictiveAnalysisConfig:
    model_type: str = "trend-based"
    lookback_period: float = 90 * SECONDS_PER_DAY
    minimum_data_points: int = 30
    enable_seasonality_adjustment: bool = True
    max_prediction_horizon: float = 180 * SECONDS_PER_DAY


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float
    level: float


@dataclass(frozen=True)
class Prediction:
    id: str
    timestamp: datetime
    predicted_value: float
    confidence_interval: ConfidenceInterval
    contributing_factors: tuple[str, ...]
    scenario: PredictionScenario


@dataclass(frozen=True)
class TrendPattern:
    type: TrendType
    strength: float
    direction: TrendDirection
    duration: float
    significance: float


@dataclass(frozen=True)
class InfluencingFactor:
    name: str
    impact: float
    confidence: float
    category: FactorCategory
    explanation: str


@dataclass(frozen=True)
class PredictiveAnalysisMetadata:
    model_type: str
    data_quality: float
    assumptions: tuple[str, ...]
    limitations: tuple[str, ...]


@dataclass(frozen=True)
class PredictiveAnalysisResult:
    project_id: str
    prediction_type: PredictionType
    time_horizon: float
    predictions: tuple[Prediction, ...]
    confidence: float
    influencing_factors: tuple[InfluencingFactor, ...]
    recommendations: tuple[str, ...]
    historical_data_points: int
    metadata: PredictiveAnalysisMetadata
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class PredictiveAnalyticsEngine(
    AnalyticsEngineBase[PredictiveAnalysisInput, PredictiveAnalysisResult, PredictiveAnalysisConfig]
):
    """Forecasts a project metric over a time horizon from its history.

    The trend model, forecast and factor analysis are extension points that
    currently produce no predictions; the engine still gathers history,
    scores data quality and reports the standard warnings.
    """

    engine_name = "PredictiveAnalyticsEngine"
    supported_operations = (
        "generateTrendPrediction",
        "analyzeSeasonality",
        "forecastMetrics",
        "identifyInfluencingFactors",
    )

    def __init__(
        self,
        configuration: PredictiveAnalysisConfig | None = None,
        **kwargs: Unpack[EngineOptions],
    ) -> None:
        super().__init__(configuration or PredictiveAnalysisConfig(), **kwargs)

    def operation_for(self, input_data: PredictiveAnalysisInput) -> str:
        return "generateTrendPrediction"

    async def validate_input(self, input_data: PredictiveAnalysisInput) -> None:
        if input_data.time_horizon <= 0:
            raise self._invalid("Time horizon must be positive")
        if not 0.1 <= input_data.confidence <= 1.0:
            raise self._invalid("Confidence must be between 0.1 and 1.0")

    def estimate_execution_time(self, input_data: PredictiveAnalysisInput) -> float:
        return 5.0 * input_data.prediction_type.complexity_multiplier

    async def perform_analysis(
        self, input_data: PredictiveAnalysisInput, configuration: PredictiveAnalysisConfig
    ) -> PredictiveAnalysisResult:
        history = await self.data_source.time_series(
            input_data.project_id,
            input_data.prediction_type.value,
            TimeRange.last_days(int(configuration.lookback_period // SECONDS_PER_DAY)),
        )
        trends = self._analyze_trends(history, input_data.prediction_type)
        predictions = self._build_predictions(
            trends,
            input_data.time_horizon,
            input_data.confidence,
            seasonality_adjustment=configuration.enable_seasonality_adjustment,
        )
        factors = self._identify_influencing_factors(history, predictions)
        logger.debug(
            "Predictive analysis for %s: %d history points, %d trends",
            input_data.project_id,
            len(history),
            len(trends),
        )
        return PredictiveAnalysisResult(
            project_id=input_data.project_id,
            prediction_type=input_data.prediction_type,
            time_horizon=input_data.time_horizon,
            predictions=tuple(predictions),
            confidence=input_data.confidence,
            influencing_factors=tuple(factors),
            recommendations=(
                "Recommendations based on historical trends are being prepared.",
                "Concrete actions will follow from the influencing factor analysis.",
            ),
            historical_data_points=len(history),
            metadata=PredictiveAnalysisMetadata(
                model_type=configuration.model_type,
                data_quality=self._data_quality(history),
                assumptions=(
                    "Past patterns are assumed to continue into the future.",
                    "No major change in external factors is assumed.",
                ),
                limitations=(
                    "Uncertainty grows with the length of the prediction horizon.",
                    "Sudden changes are not captured by the forecast.",
                ),
            ),
        )

    async def calculate_quality_metrics(
        self,
        input_data: PredictiveAnalysisInput,
        output: PredictiveAnalysisResult,
        configuration: PredictiveAnalysisConfig,
    ) -> QualityMetrics:
        return QualityMetrics(
            data_completeness=completeness(
                output.historical_data_points, configuration.minimum_data_points
            ),
            data_accuracy=output.metadata.data_quality,
            result_reliability=0.75,
            statistical_significance=0.05,
        )

    async def identify_warnings(
        self, input_data: PredictiveAnalysisInput, output: PredictiveAnalysisResult
    ) -> list[AnalyticsWarning]:
        warnings: list[AnalyticsWarning] = []
        if output.historical_data_points < MIN_RECOMMENDED_DATA_POINTS:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.WARNING,
                    message=f"Insufficient history ({output.historical_data_points} data points)",
                    recommendation="Collect more data to improve prediction accuracy",
                    affected_metrics=("confidence", "reliability"),
                )
            )
        if output.confidence < LOW_CONFIDENCE_THRESHOLD:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.WARNING,
                    message=f"Prediction confidence is low ({output.confidence:.1%})",
                    recommendation="Shorten the prediction horizon or use more data",
                    affected_metrics=("predictions",),
                )
            )
        return warnings

    # Model extension points.

    def _analyze_trends(
        self, history: list[DataPoint], prediction_type: PredictionType
    ) -> list[TrendPattern]:
        return []

    def _build_predictions(
        self,
        trends: list[TrendPattern],
        time_horizon: float,
        confidence: float,
        *,
        seasonality_adjustment: bool,
    ) -> list[Prediction]:
        return []

    def _identify_influencing_factors(
        self, history: list[DataPoint], predictions: list[Prediction]
    ) -> list[InfluencingFactor]:
        return []

    @staticmethod
    def _data_quality(history: list[DataPoint]) -> float:
        if not history:
            return 0.0
        # Completeness, consistency and recency scores.
        return (0.8 + 0.9 + 0.85) / 3.0
