"""Simulated impact of a proposed change on a project."""

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
    EngineOptions,
    QualityMetrics,
    TimeRange,
    WarningLevel,
)

logger = logging.getLogger(__name__)

MAX_TIMELINE = 2 * 365 * SECONDS_PER_DAY
SECONDS_PER_MONTH = 30 * SECONDS_PER_DAY
MAX_TIMELINE_MULTIPLIER = 12.0
LOW_CONFIDENCE_THRESHOLD = 0.6
RIPPLE_EFFECT_LIMIT = 10
LONG_TIMELINE_MONTHS = 12


class ChangeType(str, Enum):
    TEAM_RESTRUCTURE = "team_restructure"
    PROCESS_CHANGE = "process_change"
    TECHNOLOGY_ADOPTION = "technology_adoption"
    RESOURCE_REALLOCATION = "resource_reallocation"
    SCOPE_MODIFICATION = "scope_modification"
    TIMELINE_ADJUSTMENT = "timeline_adjustment"

    @property
    def complexity_multiplier(self) -> float:
        return {
            "process_change": 1.0,
            "team_restructure": 1.3,
            "technology_adoption": 1.5,
            "resource_reallocation": 1.2,
            "scope_modification": 1.4,
            "timeline_adjustment": 1.1,
        }[self.value]


class ImpactScope(str, Enum):
    TASK = "task"
    PROJECT = "project"
    TEAM = "team"
    ORGANIZATION = "organization"
    STAKEHOLDERS = "stakeholders"

    @property
    def complexity_multiplier(self) -> float:
        return {
            "task": 1.0,
            "project": 1.5,
            "team": 2.0,
            "organization": 3.0,
            "stakeholders": 3.5,
        }[self.value]


class ImpactMagnitude(str, Enum):
    NEGLIGIBLE = "negligible"
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    SEVERE = "severe"

    @property
    def numeric_value(self) -> float:
        return {
            "negligible": 0.05,
            "minor": 0.15,
            "moderate": 0.30,
            "major": 0.50,
            "severe": 0.75,
        }[self.value]


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskCategory(str, Enum):
    OPERATIONAL = "operational"
    STRATEGIC = "strategic"
    FINANCIAL = "financial"
    TECHNICAL = "technical"
    HUMAN = "human"


class OpportunityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXCEPTIONAL = "exceptional"


class MitigationCost(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class RiskTolerance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnalysisDepth(str, Enum):
    SHALLOW = "shallow"
    STANDARD = "standard"
    DEEP = "deep"


@dataclass(frozen=True)
class ChangeScenario:
    id: str
    name: str
    type: ChangeType
    timeline: TimeRange
    description: str = ""
    parameters: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class ImpactAnalysisInput:
    project_id: str
    change_scenario: ChangeScenario
    impact_scope: ImpactScope = ImpactScope.PROJECT


@dataclass(frozen=True)
class ImpactAnalysisConfig:
    simulation_iterations: int = 1000
    confidence_interval: float = 0.95
    include_secondary_effects: bool = True
    risk_tolerance: RiskTolerance = RiskTolerance.MEDIUM
    analysis_depth: AnalysisDepth = AnalysisDepth.STANDARD


@dataclass(frozen=True)
class ImpactBaseline:
    metrics: dict[str, float]
    timestamp: datetime


@dataclass(frozen=True)
class SimulationResult:
    projected_metrics: dict[str, float]
    confidence: float


@dataclass(frozen=True)
class DirectImpact:
    metric: str
    baseline_value: float
    projected_value: float
    percentage_change: float
    impact_magnitude: ImpactMagnitude
    time_to_effect: float


@dataclass(frozen=True)
class RippleEffect:
    source: DirectImpact
    affected_area: str
    propagation_delay: float
    amplification_factor: float
    description: str


@dataclass(frozen=True)
class IdentifiedRisk:
    name: str
    probability: float
    impact: ImpactMagnitude
    category: RiskCategory
    description: str
    triggers: tuple[str, ...] = ()


@dataclass(frozen=True)
class RiskAssessment:
    risks: tuple[IdentifiedRisk, ...]
    overall_risk_level: RiskLevel


@dataclass(frozen=True)
class IdentifiedOpportunity:
    name: str
    likelihood: float
    benefit: ImpactMagnitude
    description: str
    requirements: tuple[str, ...] = ()


@dataclass(frozen=True)
class OpportunityAssessment:
    opportunities: tuple[IdentifiedOpportunity, ...]
    overall_opportunity_level: OpportunityLevel


@dataclass(frozen=True)
class MitigationStrategy:
    risk: IdentifiedRisk
    strategy: str
    effectiveness: float
    cost: MitigationCost
    timeline: float
    resources: tuple[str, ...] = ()


@dataclass(frozen=True)
class ImpactAnalysisResult:
    project_id: str
    change_scenario: ChangeScenario
    impact_scope: ImpactScope
    baseline: ImpactBaseline
    direct_impacts: tuple[DirectImpact, ...]
    ripple_effects: tuple[RippleEffect, ...]
    risk_assessment: RiskAssessment
    opportunity_assessment: OpportunityAssessment
    mitigation_strategies: tuple[MitigationStrategy, ...]
    confidence_level: float
    overall_impact: float = 0.0
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ImpactAnalysisEngine(
    AnalyticsEngineBase[ImpactAnalysisInput, ImpactAnalysisResult, ImpactAnalysisConfig]
):
    engine_name = "ImpactAnalysisEngine"
    supported_operations = (
        "simulateChangeImpact",
        "analyzeRippleEffects",
        "assessRisks",
        "proposeMitigationStrategies",
    )

    def __init__(
        self,
        configuration: ImpactAnalysisConfig | None = None,
        **kwargs: Unpack[EngineOptions],
    ) -> None:
        super().__init__(configuration or ImpactAnalysisConfig(), **kwargs)

    def operation_for(self, input_data: ImpactAnalysisInput) -> str:
        return "simulateChangeImpact"

    async def validate_input(self, input_data: ImpactAnalysisInput) -> None:
        duration = input_data.change_scenario.timeline.duration
        if duration <= 0:
            raise self._invalid("Change scenario timeline must be positive")
        if duration > MAX_TIMELINE:
            raise self._invalid("Timeline too long (max 2 years)")

    def estimate_execution_time(self, input_data: ImpactAnalysisInput) -> float:
        scenario = input_data.change_scenario
        months = min(scenario.timeline.duration / SECONDS_PER_MONTH, MAX_TIMELINE_MULTIPLIER)
        return (
            6.0
            * input_data.impact_scope.complexity_multiplier
            * scenario.type.complexity_multiplier
            * (1.0 + months * 0.1)
        )

    async def perform_analysis(
        self, input_data: ImpactAnalysisInput, configuration: ImpactAnalysisConfig
    ) -> ImpactAnalysisResult:
        metrics = await self.data_source.baseline_metrics(
            input_data.project_id, input_data.impact_scope.value
        )
        baseline = ImpactBaseline(metrics=dict(metrics), timestamp=datetime.now(UTC))
        simulation = self._simulate(baseline, input_data.change_scenario, configuration)
        direct = self._direct_impacts(baseline, simulation, input_data.change_scenario)
        ripples = (
            self._ripple_effects(direct, input_data.impact_scope)
            if configuration.include_secondary_effects
            else []
        )
        risks = RiskAssessment(risks=(), overall_risk_level=RiskLevel.MEDIUM)
        opportunities = OpportunityAssessment(
            opportunities=(), overall_opportunity_level=OpportunityLevel.MEDIUM
        )
        logger.debug(
            "Impact analysis for %s: %d baseline metrics, %d direct impacts",
            input_data.project_id,
            len(metrics),
            len(direct),
        )
        return ImpactAnalysisResult(
            project_id=input_data.project_id,
            change_scenario=input_data.change_scenario,
            impact_scope=input_data.impact_scope,
            baseline=baseline,
            direct_impacts=tuple(direct),
            ripple_effects=tuple(ripples),
            risk_assessment=risks,
            opportunity_assessment=opportunities,
            mitigation_strategies=tuple(self._mitigations(risks)),
            confidence_level=simulation.confidence,
        )

    async def calculate_quality_metrics(
        self,
        input_data: ImpactAnalysisInput,
        output: ImpactAnalysisResult,
        configuration: ImpactAnalysisConfig,
    ) -> QualityMetrics:
        return QualityMetrics(
            data_completeness=0.9 if output.baseline.metrics else 0.5,
            data_accuracy=output.confidence_level,
            result_reliability=0.75,
            statistical_significance=0.05 if output.direct_impacts else None,
        )

    async def identify_warnings(
        self, input_data: ImpactAnalysisInput, output: ImpactAnalysisResult
    ) -> list[AnalyticsWarning]:
        warnings: list[AnalyticsWarning] = []
        if output.confidence_level < LOW_CONFIDENCE_THRESHOLD:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.WARNING,
                    message=f"Impact analysis confidence is low ({output.confidence_level:.1%})",
                    recommendation="Simplify the scenario or collect more baseline data",
                    affected_metrics=("accuracy", "reliability"),
                )
            )
        risk_level = output.risk_assessment.overall_risk_level
        if risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.CRITICAL,
                    message=f"High-risk impact detected ({risk_level.value})",
                    recommendation="Plan mitigations before implementing the change",
                    affected_metrics=("projectStability", "successProbability"),
                )
            )
        if len(output.ripple_effects) > RIPPLE_EFFECT_LIMIT:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.INFO,
                    message=f"Many ripple effects predicted ({len(output.ripple_effects)})",
                    recommendation="Prioritise the effects and roll the change out in stages",
                    affected_metrics=("complexity", "manageability"),
                )
            )
        months = input_data.change_scenario.timeline.duration / SECONDS_PER_MONTH
        if months > LONG_TIMELINE_MONTHS:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.INFO,
                    message=f"Long-running scenario increases uncertainty ({months:.1f} months)",
                    recommendation="Set intermediate milestones and review regularly",
                    affected_metrics=("longTermAccuracy", "adaptability"),
                )
            )
        return warnings

    # Simulation extension points.

    def _simulate(
        self,
        baseline: ImpactBaseline,
        scenario: ChangeScenario,
        configuration: ImpactAnalysisConfig,
    ) -> SimulationResult:
        return SimulationResult(projected_metrics={}, confidence=0.8)

    def _direct_impacts(
        self, baseline: ImpactBaseline, simulation: SimulationResult, scenario: ChangeScenario
    ) -> list[DirectImpact]:
        return []

    def _ripple_effects(
        self, direct: list[DirectImpact], scope: ImpactScope
    ) -> list[RippleEffect]:
        return []

    def _mitigations(self, risks: RiskAssessment) -> list[MitigationStrategy]:
        return []
