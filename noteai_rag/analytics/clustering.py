"""Clustering of project entities by behavioural features."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Unpack

from noteai_rag.analytics.framework import (
    AnalyticsEngineBase,
    AnalyticsWarning,
    EngineOptions,
    FeatureVector,
    QualityMetrics,
    WarningLevel,
    completeness,
)

logger = logging.getLogger(__name__)

MAX_FEATURES = 50
MIN_TARGET_CLUSTERS = 2
MAX_TARGET_CLUSTERS = 20
DEFAULT_TARGET_CLUSTERS = 5
MIN_RECOMMENDED_DATA_POINTS = 100
MIN_SILHOUETTE = 0.5
HIGH_DIMENSION_FEATURES = 10


class ClusteringType(str, Enum):
    K_MEANS = "k_means"
    HIERARCHICAL = "hierarchical"
    DBSCAN = "dbscan"
    GAUSSIAN_MIXTURE = "gaussian_mixture"

    @property
    def complexity_multiplier(self) -> float:
        return _CLUSTERING_COMPLEXITY[self][0]

    @property
    def operation_name(self) -> str:
        return _CLUSTERING_COMPLEXITY[self][1]


_CLUSTERING_COMPLEXITY = {
    ClusteringType.K_MEANS: (1.0, "performKMeansClustering"),
    ClusteringType.HIERARCHICAL: (1.5, "performHierarchicalClustering"),
    ClusteringType.DBSCAN: (1.2, "performDBSCANClustering"),
    ClusteringType.GAUSSIAN_MIXTURE: (1.8, "performGaussianMixtureClustering"),
}


class FeatureType(str, Enum):
    NUMERICAL = "numerical"
    CATEGORICAL = "categorical"
    BOOLEAN = "boolean"
    TEXT = "text"


class NormalizationMethod(str, Enum):
    STANDARDIZATION = "standardization"
    MIN_MAX_SCALING = "min_max_scaling"
    ROBUST_SCALING = "robust_scaling"
    UNIT_VECTOR = "unit_vector"


class DimensionalityReductionMethod(str, Enum):
    PCA = "pca"
    TSNE = "tsne"
    UMAP = "umap"
    ICA = "ica"


class BusinessRelevance(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ClusteringFeature:
    name: str
    type: FeatureType = FeatureType.NUMERICAL
    weight: float = 1.0
    description: str = ""


@dataclass(frozen=True)
class ClusteringAnalysisInput:
    project_id: str
    clustering_type: ClusteringType
    features: tuple[ClusteringFeature, ...]
    target_clusters: int | None = None


@dataclass(frozen=True)
class ClusteringAnalysisConfig:
    minimum_data_points: int = 50
    max_clusters: int = 20
    normalization_method: NormalizationMethod = NormalizationMethod.STANDARDIZATION
    enable_dimensionality_reduction: bool = False
    dimensionality_reduction_method: DimensionalityReductionMethod = (
        DimensionalityReductionMethod.PCA
    )
    convergence_tolerance: float = 1e-4
    max_iterations: int = 300


@dataclass(frozen=True)
class NormalizedFeatureVector:
    id: str
    normalized_features: tuple[float, ...]
    original_features: tuple[float, ...]


@dataclass(frozen=True)
class ClusterMember:
    id: str
    data_point: tuple[float, ...]
    distance_to_center: float
    membership_probability: float | None = None


@dataclass(frozen=True)
class Cluster:
    id: str
    label: str
    centroid: tuple[float, ...]
    members: tuple[ClusterMember, ...]
    cohesion: float
    separation: float

    @property
    def size(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class ClusterQualityMetrics:
    silhouette_score: float
    inertia: float
    calinski_harabasz: float


@dataclass(frozen=True)
class ClusterCharacteristic:
    cluster_id: str
    feature: ClusteringFeature
    average_value: float
    variance: float
    distinctiveness: float


@dataclass(frozen=True)
class ClusteringInsight:
    title: str
    description: str
    clusters_involved: tuple[str, ...]
    business_relevance: BusinessRelevance
    recommended_actions: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClusteringAnalysisResult:
    project_id: str
    clustering_type: ClusteringType
    features: tuple[ClusteringFeature, ...]
    clusters: tuple[Cluster, ...]
    quality_metrics: ClusterQualityMetrics
    characteristics: tuple[ClusterCharacteristic, ...]
    insights: tuple[ClusteringInsight, ...]
    data_points: int
    optimal_cluster_count: int
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ClusteringAnalysisEngine(
    AnalyticsEngineBase[ClusteringAnalysisInput, ClusteringAnalysisResult, ClusteringAnalysisConfig]
):
    """Groups project entities by feature similarity.

    Normalization, dimensionality reduction and the clustering algorithms
    are extension points selected by ``ClusteringType`` and the config; the
    quality scores are fixed reference values until an algorithm is plugged
    in.
    """

    engine_name = "ClusteringAnalysisEngine"
    supported_operations = (
        "performKMeansClustering",
        "performHierarchicalClustering",
        "performDBSCANClustering",
        "performGaussianMixtureClustering",
    )

    def __init__(
        self,
        configuration: ClusteringAnalysisConfig | None = None,
        **kwargs: Unpack[EngineOptions],
    ) -> None:
        super().__init__(configuration or ClusteringAnalysisConfig(), **kwargs)

    def operation_for(self, input_data: ClusteringAnalysisInput) -> str:
        return input_data.clustering_type.operation_name

    async def validate_input(self, input_data: ClusteringAnalysisInput) -> None:
        if not input_data.features:
            raise self._invalid("At least one feature required for clustering")
        if len(input_data.features) > MAX_FEATURES:
            raise self._invalid("Too many features (max 50)")
        target = input_data.target_clusters
        if target is not None and not MIN_TARGET_CLUSTERS <= target <= MAX_TARGET_CLUSTERS:
            raise self._invalid("Target clusters must be between 2 and 20")

    def estimate_execution_time(self, input_data: ClusteringAnalysisInput) -> float:
        feature_complexity = len(input_data.features) * 0.5
        target = input_data.target_clusters or DEFAULT_TARGET_CLUSTERS
        return (
            4.0
            * feature_complexity
            * input_data.clustering_type.complexity_multiplier
            * (target * 0.2)
        )

    async def perform_analysis(
        self, input_data: ClusteringAnalysisInput, configuration: ClusteringAnalysisConfig
    ) -> ClusteringAnalysisResult:
        vectors = await self.data_source.feature_vectors(
            input_data.project_id, [f.name for f in input_data.features]
        )
        normalized = self._normalize(vectors, configuration.normalization_method)
        if configuration.enable_dimensionality_reduction:
            normalized = self._reduce_dimensions(
                normalized, configuration.dimensionality_reduction_method
            )
        clusters = self._cluster(
            normalized, input_data.clustering_type, input_data.target_clusters, configuration
        )
        quality = ClusterQualityMetrics(silhouette_score=0.7, inertia=100.0, calinski_harabasz=50.0)
        logger.debug(
            "Clustering %s: %d vectors into %d clusters",
            input_data.project_id,
            len(vectors),
            len(clusters),
        )
        return ClusteringAnalysisResult(
            project_id=input_data.project_id,
            clustering_type=input_data.clustering_type,
            features=input_data.features,
            clusters=tuple(clusters),
            quality_metrics=quality,
            characteristics=(),
            insights=(),
            data_points=len(vectors),
            optimal_cluster_count=len(clusters),
        )

    async def calculate_quality_metrics(
        self,
        input_data: ClusteringAnalysisInput,
        output: ClusteringAnalysisResult,
        configuration: ClusteringAnalysisConfig,
    ) -> QualityMetrics:
        silhouette = output.quality_metrics.silhouette_score
        return QualityMetrics(
            data_completeness=completeness(output.data_points, configuration.minimum_data_points),
            data_accuracy=silhouette,
            result_reliability=silhouette,
            statistical_significance=0.05,
        )

    async def identify_warnings(
        self, input_data: ClusteringAnalysisInput, output: ClusteringAnalysisResult
    ) -> list[AnalyticsWarning]:
        warnings: list[AnalyticsWarning] = []
        if output.data_points < MIN_RECOMMENDED_DATA_POINTS:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.WARNING,
                    message=f"Few data points; clusters may be unstable ({output.data_points})",
                    recommendation="Collect more data before acting on the clusters",
                    affected_metrics=("stability", "reliability"),
                )
            )
        silhouette = output.quality_metrics.silhouette_score
        if silhouette < MIN_SILHOUETTE:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.WARNING,
                    message=f"Cluster quality is low (silhouette score {silhouette:.2f})",
                    recommendation="Try a different cluster count or feature selection",
                    affected_metrics=("silhouetteScore", "separation"),
                )
            )
        if len(input_data.features) > HIGH_DIMENSION_FEATURES:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.INFO,
                    message=f"High-dimensional data ({len(input_data.features)} features)",
                    recommendation="Enable dimensionality reduction",
                    affected_metrics=("distanceMetrics",),
                )
            )
        if len(output.clusters) == 1:
            warnings.append(
                AnalyticsWarning(
                    level=WarningLevel.WARNING,
                    message="Only one cluster was formed",
                    recommendation="Review the features or lower the density threshold",
                    affected_metrics=("clusterCount",),
                )
            )
        return warnings

    # Algorithm extension points.

    def _normalize(
        self, vectors: list[FeatureVector], method: NormalizationMethod
    ) -> list[NormalizedFeatureVector]:
        return []

    def _reduce_dimensions(
        self,
        vectors: list[NormalizedFeatureVector],
        method: DimensionalityReductionMethod,
    ) -> list[NormalizedFeatureVector]:
        return vectors

    def _cluster(
        self,
        vectors: list[NormalizedFeatureVector],
        clustering_type: ClusteringType,
        target_clusters: int | None,
        configuration: ClusteringAnalysisConfig,
    ) -> list[Cluster]:
        return []
