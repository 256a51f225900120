"""Pairwise correlation analysis between project variables."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from itertools import combinations
from typing import Unpack

from noteai_rag.analytics.framework import (
    AnalyticsEngineBase,
    AnalyticsWarning,
    DataPoint,
    EngineOptions,
    QualityMetrics,
    TimeRange,
    WarningLevel,
)
from noteai_rag.errors import InsufficientDataError

logger = logging.getLogger(__name__)

MIN_VARIABLES = 2
MAX_VARIABLES = 20
MULTIPLE_COMPARISON_LIMIT = 10
STRONG_CORRELATION = 0.7
MIN_COMPLETENESS = 0.8
DEFAULT_RESULT_WINDOW_DAYS = 30
# Placeholder coefficient reported until a real estimator is plugged in.
PLACEHOLDER_COEFFICIENT = 0.5


class CorrelationType(str, Enum):
    PEARSON = "pearson"
    SPEARMAN = "spearman"
    KENDALL = "kendall"
    PARTIAL = "partial"

    @property
    def complexity_multiplier(self) -> float:
        return {"pearson": 1.0, "spearman": 1.2, "kendall": 1.5, "partial": 1.8}[self.value]

    @property
    def operation_name(self) -> str:
        return {
            "pearson": "calculatePearsonCorrelation",
            "spearman": "calculateSpearmanCorrelation",
            "kendall": "calculateKendallTau",
            "partial": "calculatePartialCorrelation",
        }[self.value]


class VariableType(str, Enum):
    CONTINUOUS = "continuous"
    ORDINAL = "ordinal"
    CATEGORICAL = "categorical"
    BINARY = "binary"


class CorrelationStrength(str, Enum):
    NEGLIGIBLE = "negligible"
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    VERY_STRONG = "very_strong"

    @classmethod
    def from_coefficient(cls, coefficient: float) -> CorrelationStrength:
        magnitude = abs(coefficient)
        if magnitude < 0.1:
            return cls.NEGLIGIBLE
        if magnitude < 0.3:
            return cls.WEAK
        if magnitude < 0.5:
            return cls.MODERATE
        if magnitude < 0.7:
            return cls.STRONG
        return cls.VERY_STRONG


class CorrelationDirection(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NONE = "none"

    @classmethod
    def from_coefficient(cls, coefficient: float) -> CorrelationDirection:
        if coefficient > 0.05:
            return cls.POSITIVE
        if coefficient < -0.05:
            return cls.NEGATIVE
        return cls.NONE


class MultipleTestingCorrection(str, Enum):
    BONFERRONI = "bonferroni"
    BENJAMINI_HOCHBERG = "benjamini_hochberg"
    HOLM = "holm"
    NONE = "none"


class InsightPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AnalysisVariable:
    name: str
    type: VariableType = VariableType.CONTINUOUS
    description: str = ""
    unit: str | None = None


@dataclass(frozen=True)
class CorrelationAnalysisInput:
    project_id: str
    variables: tuple[AnalysisVariable, ...]
    correlation_type: CorrelationType = CorrelationType.PEARSON
    time_range: TimeRange | None = None


@dataclass(frozen=True)
class CorrelationAnalysisConfig:
    minimum_sample_size: int = 30
    significance_level: float = 0.05
    enable_multiple_testing_correction: bool = True
    correction_method: MultipleTestingCorrection = MultipleTestingCorrection.BONFERRONI
    include_non_linear_correlations: bool = False


@dataclass(frozen=True)
class CorrelationPair:
    variable1: AnalysisVariable
    variable2: AnalysisVariable
    coefficient: float
    strength: CorrelationStrength
    direction: CorrelationDirection


@dataclass(frozen=True)
class SignificanceTest:
    correlation_pair: CorrelationPair
    p_value: float
    is_significant: bool
    confidence_level: float


@dataclass(frozen=True)
class CausalHypothesis:
    cause: AnalysisVariable
    effect: AnalysisVariable
    likelihood: float
    supporting_evidence: tuple[str, ...] = ()
    alternative_explanations: tuple[str, ...] = ()


@dataclass(frozen=True)
class CorrelationInsight:
    title: str
    description: str
    actionable: bool
    priority: InsightPriority
    related_variables: tuple[AnalysisVariable, ...] = ()


@dataclass(frozen=True)
class DataQualityMetrics:
    completeness: float
    accuracy: float
    consistency: float


@dataclass(frozen=True)
class CorrelationAnalysisResult:
    project_id: str
    variables: tuple[AnalysisVariable, ...]
    correlation_type: CorrelationType
    time_range: TimeRange
    correlation_matrix: tuple[CorrelationPair, ...]
    significance_tests: tuple[SignificanceTest, ...]
    causal_hypotheses: tuple[CausalHypothesis, ...]
    insights: tuple[CorrelationInsight, ...]
    data_quality: DataQualityMetrics
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class CorrelationAnalysisEngine(
    AnalyticsEngineBase[
        CorrelationAnalysisInput, CorrelationAnalysisResult, CorrelationAnalysisConfig
    ]
):
    engine_name = "CorrelationAnalysisEngine"
    supported_operations = (
        "calculatePearsonCorrelation",
        "calculateSpearmanCorrelation",
        "calculateKendallTau",
        "performSignificanceTest",
        "generateCausalHypotheses",
    )

    def __init__(
        self,
        configuration: CorrelationAnalysisConfig | None = None,
        **kwargs: Unpack[EngineOptions],
    ) -> None:
        super().__init__(configuration or CorrelationAnalysisConfig(), **kwargs)

    def operation_for(self, input_data: CorrelationAnalysisInput) -> str:
        return input_data.correlation_type.operation_name

    async def validate_input(self, input_data: CorrelationAnalysisInput) -> None:
        count = len(input_data.variables)
        if count < MIN_VARIABLES:
            raise self._invalid("At least 2 variables required for correlation analysis")
        if count > MAX_VARIABLES:
            raise self._invalid("Too many variables (max 20)")

    def estimate_execution_time(self, input_data: CorrelationAnalysisInput) -> float:
        count = len(input_data.variables)
        return 2.0 * (count * count / 4.0) * input_data.correlation_type.complexity_multiplier

    async def perform_analysis(
        self, input_data: CorrelationAnalysisInput, configuration: CorrelationAnalysisConfig
    ) -> CorrelationAnalysisResult:
        time_range = input_data.time_range or TimeRange.last_days(DEFAULT_RESULT_WINDOW_DAYS)
        samples: dict[AnalysisVariable, list[DataPoint]] = {}
        for variable in input_data.variables:
            samples[variable] = await self.data_source.time_series(
                input_data.project_id, variable.name, time_range
            )

        for variable, points in samples.items():
            if len(points) < configuration.minimum_sample_size:
                logger.info(
                    "Variable %r has %d samples, %d required",
                    variable.name,
                    len(points),
                    configuration.minimum_sample_size,
                )
                raise InsufficientDataError(
                    self.engine_name, configuration.minimum_sample_size, len(points)
                )

        matrix = self._correlation_matrix(samples, input_data.correlation_type)
        tests = self._significance_tests(matrix, configuration)
        return CorrelationAnalysisResult(
            project_id=input_data.project_id,
            variables=input_data.variables,
            correlation_type=input_data.correlation_type,
            time_range=time_range,
            correlation_matrix=tuple(matrix),
            significance_tests=tuple(tests),
            causal_hypotheses=(),
            insights=(),
            data_quality=DataQualityMetrics(completeness=0.9, accuracy=0.8, consistency=0.85),
        )

    async def calculate_quality_metrics(
        self,
        input_data: CorrelationAnalysisInput,
        output: CorrelationAnalysisResult,
        configuration: CorrelationAnalysisConfig,
    ) -> QualityMetrics:
        tests = output.significance_tests
        reliability = sum(t.is_significant for t in tests) / len(tests) if tests else 0.0
        average_p = sum(t.p_value for t in tests) / len(tests) if tests else None
        return QualityMetrics(
            data_completeness=output.data_quality.completeness,
            data_accuracy=output.data_quality.accuracy,
            result_reliability=reliability,
            statistical_significance=average_p,
        )

    async def identify_warnings(
        self, input_data: CorrelationAnalysisInput, output: CorrelationAnalysisResult
    ) -> list[AnalyticsWarning]:
        warnings: list[AnalyticsWarning] = []
        count = len(input_data.variables)
        comparisons = count * (count - 1) // 2
        if comparisons > MULTIPLE_COMPARISON_LIMIT:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.WARNING,
                    message=f"Many pairwise comparisons ({comparisons}) inflate false discoveries",
                    recommendation="Apply a multiple testing correction or reduce the variables",
                    affected_metrics=("falseDiscoveryRate", "significance"),
                )
            )
        if not any(abs(p.coefficient) > STRONG_CORRELATION for p in output.correlation_matrix):
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.INFO,
                    message="No strong correlations were found",
                    recommendation="Consider other variables or a non-linear correlation type",
                    affected_metrics=("correlationStrength",),
                )
            )
        if output.data_quality.completeness < MIN_COMPLETENESS:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.WARNING,
                    message=f"Data completeness is low ({output.data_quality.completeness:.1%})",
                    recommendation="Fill missing observations before interpreting results",
                    affected_metrics=("reliability", "accuracy"),
                )
            )
        return warnings

    # Estimator extension points.

    def _correlation_matrix(
        self,
        samples: dict[AnalysisVariable, list[DataPoint]],
        correlation_type: CorrelationType,
    ) -> list[CorrelationPair]:
        pairs = []
        for first, second in combinations(samples, 2):
            coefficient = PLACEHOLDER_COEFFICIENT
            pairs.append(
                CorrelationPair(
                    variable1=first,
                    variable2=second,
                    coefficient=coefficient,
                    strength=CorrelationStrength.from_coefficient(coefficient),
                    direction=CorrelationDirection.from_coefficient(coefficient),
                )
            )
        return pairs

    def _significance_tests(
        self, matrix: list[CorrelationPair], configuration: CorrelationAnalysisConfig
    ) -> list[SignificanceTest]:
        return [
            SignificanceTest(
                correlation_pair=pair,
                p_value=0.05,
                is_significant=True,
                confidence_level=0.95,
            )
            for pair in matrix
        ]
