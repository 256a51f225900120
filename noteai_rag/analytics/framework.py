"""Shared execution framework for the analytics engines.

Every engine call goes through :class:`AnalyticsExecutor`, which enforces a
per-engine admission limit, consults a TTL result cache, validates input,
runs the engine's analysis, scores it and attaches advisory warnings. The
executor is built from explicitly injected collaborators (cache, monitor)
so one process can share them across engines without module globals.
"""

from __future__ import annotations

import hashlib
import logging
import platform
import resource
import threading
import time
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Generic, Protocol, TypedDict, TypeVar, Unpack

from noteai_rag.errors import (
    AnalyticsEngineError,
    ConcurrencyLimitExceededError,
    ExecutionFailedError,
    InvalidInputError,
)

logger = logging.getLogger(__name__)

MODEL_VERSION = "1.0.0"
DEFAULT_MAX_CONCURRENT_OPERATIONS = 3
DEFAULT_CACHE_TTL = 3600.0
DEFAULT_ESTIMATED_SECONDS = 5.0
MAX_RECORDED_METRICS = 1000
SECONDS_PER_DAY = 86400

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
ConfigT = TypeVar("ConfigT")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class WarningLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AnalyticsWarning:
    level: WarningLevel
    message: str
    recommendation: str | None = None
    affected_metrics: tuple[str, ...] = ()


@dataclass(frozen=True)
class QualityMetrics:
    """Four-number scorecard an engine reports alongside its result.

    Completeness, accuracy and reliability lie in ``[0, 1]``;
    ``statistical_significance`` is a p-value when the engine has one.
    """

    data_completeness: float
    data_accuracy: float
    result_reliability: float
    statistical_significance: float | None = None

    @property
    def overall_quality(self) -> float:
        return (
            0.3 * self.data_completeness
            + 0.3 * self.data_accuracy
            + 0.4 * self.result_reliability
        )


@dataclass(frozen=True)
class ExecutionEnvironment:
    system_info: str
    memory_usage: int
    cpu_usage: float
    network_latency: float | None = None

    @classmethod
    def capture(cls) -> ExecutionEnvironment:
        usage = resource.getrusage(resource.RUSAGE_SELF)
        return cls(
            system_info=f"{platform.system()} {platform.release()} ({platform.machine()})",
            # ru_maxrss is reported in kilobytes on Linux.
            memory_usage=usage.ru_maxrss * 1024,
            cpu_usage=usage.ru_utime + usage.ru_stime,
        )


@dataclass(frozen=True)
class AnalyticsResultMetadata:
    engine_name: str
    model_version: str
    parameter_hash: str
    execution_environment: ExecutionEnvironment
    timestamp: datetime
    warnings: tuple[AnalyticsWarning, ...] = ()
    debug_info: dict[str, str] | None = None


@dataclass(frozen=True)
class AnalyticsResult(Generic[OutputT]):
    data: OutputT
    confidence: float
    processing_time: float
    quality_metrics: QualityMetrics
    metadata: AnalyticsResultMetadata
    cache_key: str | None = None


# ---------------------------------------------------------------------------
# Input data shared by the engines
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    @property
    def duration(self) -> float:
        """Length of the range in seconds."""
        return (self.end - self.start).total_seconds()

    @classmethod
    def last_days(cls, days: int, now: datetime | None = None) -> TimeRange:
        end = now or datetime.now(UTC)
        return cls(start=end - timedelta(days=days), end=end)


@dataclass(frozen=True)
class DataPoint:
    timestamp: datetime
    value: float
    quality: float = 1.0
    category: str = ""


@dataclass(frozen=True)
class FeatureVector:
    id: str
    features: tuple[float, ...]
    metadata: dict[str, str] = field(default_factory=dict)


class AnalyticsDataSource(Protocol):
    """Supplies project measurements to the engines."""

    async def time_series(
        self, project_id: str, metric: str, time_range: TimeRange
    ) -> list[DataPoint]: ...

    async def feature_vectors(
        self, project_id: str, features: Sequence[str]
    ) -> list[FeatureVector]: ...

    async def baseline_metrics(self, project_id: str, scope: str) -> dict[str, float]: ...


class EmptyDataSource:
    """Data source for deployments with no project metrics wired in."""

    async def time_series(
        self, project_id: str, metric: str, time_range: TimeRange
    ) -> list[DataPoint]:
        return []

    async def feature_vectors(
        self, project_id: str, features: Sequence[str]
    ) -> list[FeatureVector]:
        return []

    async def baseline_metrics(self, project_id: str, scope: str) -> dict[str, float]:
        return {}


# ---------------------------------------------------------------------------
# Cache and telemetry
# ---------------------------------------------------------------------------


def stable_hash(value: object) -> str:
    return hashlib.sha256(repr(value).encode("utf-8")).hexdigest()[:16]


def build_cache_key(engine: str, operation: str, input_data: object, config: object) -> str:
    return f"{engine}_{operation}_{stable_hash(input_data)}_{stable_hash(config)}_{MODEL_VERSION}"


class ResultCache:
    """Mutex-guarded map of cache key to analytics result with per-entry TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at < self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


@dataclass(frozen=True)
class OperationMetric:
    operation: str
    duration: float
    success: bool
    recorded_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class OperationSummary:
    count: int = 0
    successes: int = 0
    failures: int = 0
    cached: int = 0
    total_duration: float = 0.0

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.count if self.count else 0.0

    @property
    def success_rate(self) -> float:
        return self.successes / self.count if self.count else 0.0


class PerformanceMonitor:
    """In-memory record of recent operation timings."""

    def __init__(self, max_records: int = MAX_RECORDED_METRICS) -> None:
        self._records: deque[OperationMetric] = deque(maxlen=max_records)
        self._lock = threading.Lock()

    def record(
        self,
        operation: str,
        duration: float,
        *,
        success: bool,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        metric = OperationMetric(
            operation=operation,
            duration=duration,
            success=success,
            recorded_at=datetime.now(UTC),
            metadata=metadata or {},
        )
        with self._lock:
            self._records.append(metric)
        logger.debug(
            "metric %s success=%s duration=%.3fs %s",
            operation,
            success,
            duration,
            metric.metadata,
        )

    def records(self, operation: str | None = None) -> list[OperationMetric]:
        with self._lock:
            snapshot = list(self._records)
        if operation is None:
            return snapshot
        return [m for m in snapshot if m.operation == operation]

    def summary(self) -> dict[str, OperationSummary]:
        summaries: dict[str, OperationSummary] = {}
        for metric in self.records():
            entry = summaries.setdefault(metric.operation, OperationSummary())
            entry.count += 1
            entry.total_duration += metric.duration
            if metric.success:
                entry.successes += 1
            else:
                entry.failures += 1
            if metric.metadata.get("cached"):
                entry.cached += 1
        return summaries


# ---------------------------------------------------------------------------
# Engine contract
# ---------------------------------------------------------------------------


class AnalyticsEngine(Protocol[InputT, OutputT, ConfigT]):
    engine_name: str
    supported_operations: tuple[str, ...]

    @property
    def default_configuration(self) -> ConfigT: ...

    async def validate_input(self, input_data: InputT) -> None: ...

    async def perform_analysis(self, input_data: InputT, configuration: ConfigT) -> OutputT: ...

    async def calculate_quality_metrics(
        self, input_data: InputT, output: OutputT, configuration: ConfigT
    ) -> QualityMetrics: ...

    async def identify_warnings(
        self, input_data: InputT, output: OutputT
    ) -> list[AnalyticsWarning]: ...

    def estimate_execution_time(self, input_data: InputT) -> float: ...


class AnalyticsExecutor(Generic[InputT, OutputT, ConfigT]):
    """Runs one engine's operations through admission, cache, validation and scoring."""

    def __init__(
        self,
        engine: AnalyticsEngine[InputT, OutputT, ConfigT],
        cache: ResultCache,
        monitor: PerformanceMonitor,
        max_concurrent_operations: int = DEFAULT_MAX_CONCURRENT_OPERATIONS,
        cache_ttl: float = DEFAULT_CACHE_TTL,
    ) -> None:
        if max_concurrent_operations <= 0:
            msg = f"max_concurrent_operations must be positive, got {max_concurrent_operations}"
            raise ValueError(msg)
        self._engine = engine
        self._cache = cache
        self._monitor = monitor
        self.max_concurrent_operations = max_concurrent_operations
        self.cache_ttl = cache_ttl
        self._active_operations = 0

    @property
    def active_operations(self) -> int:
        return self._active_operations

    async def execute_with_framework(
        self,
        input_data: InputT,
        configuration: ConfigT | None,
        operation: str,
    ) -> AnalyticsResult[OutputT]:
        engine_name = self._engine.engine_name
        # Check and increment happen before the first await so concurrent
        # callers on the same event loop observe a consistent count.
        if self._active_operations >= self.max_concurrent_operations:
            logger.warning(
                "%s rejected %s: %d operations already running",
                engine_name,
                operation,
                self._active_operations,
            )
            raise ConcurrencyLimitExceededError(engine_name, self.max_concurrent_operations)
        self._active_operations += 1

        started = time.perf_counter()
        started_at = datetime.now(UTC)
        metric_name = f"{engine_name}_{operation}"
        config = configuration if configuration is not None else self._engine.default_configuration
        cache_key = build_cache_key(engine_name, operation, input_data, config)

        try:
            cached: AnalyticsResult[OutputT] | None = self._cache.get(cache_key)
            if cached is not None:
                logger.debug("Cache hit for %s (%s)", metric_name, cache_key)
                self._monitor.record(
                    metric_name,
                    time.perf_counter() - started,
                    success=True,
                    metadata={"cached": True},
                )
                return cached

            result = await self._run(input_data, config, operation, cache_key, started, started_at)
        except AnalyticsEngineError as exc:
            self._monitor.record(metric_name, time.perf_counter() - started, success=False)
            logger.error("Analytics operation %s failed: %s", metric_name, exc)
            raise
        finally:
            self._active_operations -= 1

        self._cache.set(cache_key, result, self.cache_ttl)
        self._monitor.record(
            metric_name,
            result.processing_time,
            success=True,
            metadata={
                "confidence": result.confidence,
                "quality_score": result.quality_metrics.overall_quality,
            },
        )
        logger.info(
            "Analytics operation %s completed (confidence=%.2f, %.3fs)",
            metric_name,
            result.confidence,
            result.processing_time,
        )
        return result

    async def _run(
        self,
        input_data: InputT,
        config: ConfigT,
        operation: str,
        cache_key: str,
        started: float,
        started_at: datetime,
    ) -> AnalyticsResult[OutputT]:
        engine = self._engine
        try:
            await engine.validate_input(input_data)
        except AnalyticsEngineError:
            raise
        except Exception as exc:
            raise InvalidInputError(engine.engine_name, str(exc)) from exc

        logger.info("Starting analytics operation %s.%s", engine.engine_name, operation)
        try:
            output = await engine.perform_analysis(input_data, config)
            quality = await engine.calculate_quality_metrics(input_data, output, config)
            warnings = await engine.identify_warnings(input_data, output)
        except AnalyticsEngineError:
            raise
        except Exception as exc:
            raise ExecutionFailedError(engine.engine_name, operation, str(exc)) from exc

        metadata = AnalyticsResultMetadata(
            engine_name=engine.engine_name,
            model_version=MODEL_VERSION,
            parameter_hash=stable_hash(config),
            execution_environment=ExecutionEnvironment.capture(),
            timestamp=started_at,
            warnings=tuple(warnings),
        )
        return AnalyticsResult(
            data=output,
            confidence=quality.overall_quality,
            processing_time=time.perf_counter() - started,
            quality_metrics=quality,
            metadata=metadata,
            cache_key=cache_key,
        )


class EngineOptions(TypedDict, total=False):
    """Collaborators a concrete engine forwards to :class:`AnalyticsEngineBase`."""

    data_source: AnalyticsDataSource | None
    cache: ResultCache | None
    monitor: PerformanceMonitor | None
    max_concurrent_operations: int
    cache_ttl: float


class AnalyticsEngineBase(Generic[InputT, OutputT, ConfigT]):
    """Default hooks for concrete engines.

    Subclasses set ``engine_name``, ``supported_operations`` and implement
    :meth:`perform_analysis`; everything else has a usable default. Each
    instance owns one :class:`AnalyticsExecutor`, so the admission limit is
    per engine instance.
    """

    engine_name: str = "AnalyticsEngine"
    supported_operations: tuple[str, ...] = ()

    def __init__(
        self,
        default_configuration: ConfigT,
        data_source: AnalyticsDataSource | None = None,
        cache: ResultCache | None = None,
        monitor: PerformanceMonitor | None = None,
        max_concurrent_operations: int = DEFAULT_MAX_CONCURRENT_OPERATIONS,
        cache_ttl: float = DEFAULT_CACHE_TTL,
    ) -> None:
        self._default_configuration = default_configuration
        self.data_source: AnalyticsDataSource = data_source or EmptyDataSource()
        self.executor: AnalyticsExecutor[InputT, OutputT, ConfigT] = AnalyticsExecutor(
            self,
            cache or ResultCache(),
            monitor or PerformanceMonitor(),
            max_concurrent_operations=max_concurrent_operations,
            cache_ttl=cache_ttl,
        )

    @property
    def default_configuration(self) -> ConfigT:
        return self._default_configuration

    def operation_for(self, input_data: InputT) -> str:
        return "execute"

    async def execute(
        self, input_data: InputT, configuration: ConfigT | None = None
    ) -> AnalyticsResult[OutputT]:
        return await self.executor.execute_with_framework(
            input_data, configuration, self.operation_for(input_data)
        )

    async def validate_input(self, input_data: InputT) -> None:
        return None

    async def perform_analysis(self, input_data: InputT, configuration: ConfigT) -> OutputT:
        raise NotImplementedError

    async def calculate_quality_metrics(
        self, input_data: InputT, output: OutputT, configuration: ConfigT
    ) -> QualityMetrics:
        return QualityMetrics(
            data_completeness=0.8,
            data_accuracy=0.8,
            result_reliability=0.8,
        )

    async def identify_warnings(
        self, input_data: InputT, output: OutputT
    ) -> list[AnalyticsWarning]:
        return []

    def estimate_execution_time(self, input_data: InputT) -> float:
        return DEFAULT_ESTIMATED_SECONDS

    def _invalid(self, reason: str) -> InvalidInputError:
        return InvalidInputError(self.engine_name, reason)


def completeness(data_points: int, minimum_required: int) -> float:
    if minimum_required <= 0:
        return 1.0
    return min(data_points / minimum_required, 1.0)
