"""Typed result and option models for the fog engine.

- ``GeometryComplexity``: vertex/ring metrics of a polygon feature
- ``OperationMetrics`` / ``GeometryOperationResult``: outcome of one algebra call
- ``SpatialQueryResult`` / ``MemoryStats``: spatial index outputs
- ``FogCalculationOptions``: per-request fog configuration surface
- ``FogCalculationResult``: always-present fog output with diagnostics

Design notes:
- Result models are frozen dataclasses; each is produced once per call.
- Times are milliseconds, memory is bytes, distances are degrees.
- ``to_dict()`` gives a JSON-safe payload for logging and transport.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from cartographer_fog.core.constants import (
    DEFAULT_MAX_RESULTS,
    DEFAULT_ZOOM_LEVEL,
    FALLBACK_STRATEGIES,
    PERFORMANCE_MODES,
)
from cartographer_fog.core.exceptions import FogEngineError

if TYPE_CHECKING:
    from cartographer_fog.core.config import FogEngineConfig
    from cartographer_fog.models.geometry import BBox


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ModelValidationError(ValueError, FogEngineError):
    """Raised when a model is constructed with invalid field values.

    Attributes:
        model: Name of the model class that failed validation.
        field_name: The field that violated the invariant.
        value: The invalid value.
    """

    default_stage = "model_validation"
    default_code = "MODEL_VALIDATION_FAILED"

    def __init__(self, model: str, field_name: str, value: object, message: str) -> None:
        self.model = model
        self.field_name = field_name
        self.value = value
        formatted = f"{model}.{field_name}={value!r}: {message}"
        FogEngineError.__init__(self, formatted)


# ---------------------------------------------------------------------------
# Geometry algebra
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GeometryComplexity:
    """Vertex and ring metrics used for performance monitoring.

    Attributes:
        total_vertices: Positions across all rings (closing positions included).
        ring_count: Exterior rings plus holes.
        max_ring_vertices: Largest single ring.
        average_ring_vertices: ``total_vertices / ring_count`` (0 when empty).
        complexity_level: ``"LOW"``, ``"MEDIUM"`` (>500) or ``"HIGH"`` (>1000).
    """

    total_vertices: int = 0
    ring_count: int = 0
    max_ring_vertices: int = 0
    average_ring_vertices: float = 0.0
    complexity_level: str = "LOW"

    def to_dict(self) -> dict[str, object]:
        return {
            "total_vertices": self.total_vertices,
            "ring_count": self.ring_count,
            "max_ring_vertices": self.max_ring_vertices,
            "average_ring_vertices": self.average_ring_vertices,
            "complexity_level": self.complexity_level,
        }


@dataclass(frozen=True, slots=True)
class OperationMetrics:
    """Timing and outcome flags for one geometry operation."""

    operation_type: str
    execution_time_ms: float
    had_errors: bool = False
    fallback_used: bool = False
    input_complexity: GeometryComplexity = field(default_factory=GeometryComplexity)
    output_complexity: GeometryComplexity | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "operation_type": self.operation_type,
            "execution_time_ms": self.execution_time_ms,
            "had_errors": self.had_errors,
            "fallback_used": self.fallback_used,
            "input_complexity": self.input_complexity.to_dict(),
            "output_complexity": (
                self.output_complexity.to_dict() if self.output_complexity else None
            ),
        }


@dataclass(frozen=True, slots=True)
class GeometryOperationResult:
    """Structured outcome of ``union``, ``difference`` or ``buffer``.

    Always returned, never raised: ``result`` is ``None`` when the
    operation produced nothing usable (or, for difference, when the
    minuend is completely covered).

    Attributes:
        result: A GeoJSON Feature dict, ``None``, or (difference only) an
            unvalidated engine value passed through as-is.
        errors: Problems that degraded the result.
        warnings: Non-fatal observations (e.g. full coverage).
        metrics: Timing and fallback flags.
    """

    result: Any
    metrics: OperationMetrics
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "result": self.result,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "metrics": self.metrics.to_dict(),
        }


# ---------------------------------------------------------------------------
# Spatial index
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SpatialQueryResult:
    """Features matching a viewport query plus query metadata.

    Attributes:
        features: Matching GeoJSON features (possibly simplified).
        total_features: Features held by the index at query time.
        returned_features: ``len(features)``.
        query_time_ms: Query execution time.
        level_of_detail_applied: Whether any returned geometry was simplified.
        query_bounds: Bounds actually searched (after buffer expansion).
        matched_features: Matches before truncation to ``max_results``.
    """

    features: list[dict[str, Any]]
    total_features: int
    returned_features: int
    query_time_ms: float
    level_of_detail_applied: bool
    query_bounds: BBox
    matched_features: int = 0

    @property
    def truncated(self) -> bool:
        return self.matched_features > self.returned_features

    def to_dict(self) -> dict[str, object]:
        return {
            "total_features": self.total_features,
            "returned_features": self.returned_features,
            "matched_features": self.matched_features,
            "query_time_ms": self.query_time_ms,
            "level_of_detail_applied": self.level_of_detail_applied,
            "query_bounds": list(self.query_bounds),
        }


@dataclass(frozen=True, slots=True)
class MemoryStats:
    """Estimated memory footprint of a spatial index.

    ``recommendation`` is ``"optimal"``, ``"consider_cleanup"`` (above
    70 % of the threshold) or ``"cleanup_required"`` (above threshold).
    """

    estimated_memory_usage: int
    feature_count: int
    average_complexity: float
    memory_per_feature: float
    recommendation: str

    def to_dict(self) -> dict[str, object]:
        return {
            "estimated_memory_usage": self.estimated_memory_usage,
            "feature_count": self.feature_count,
            "average_complexity": self.average_complexity,
            "memory_per_feature": self.memory_per_feature,
            "recommendation": self.recommendation,
        }


# ---------------------------------------------------------------------------
# Fog calculation
# ---------------------------------------------------------------------------

_OPTION_ALIASES: dict[str, str] = {
    "viewportBounds": "viewport_bounds",
    "useSpatialIndexing": "use_spatial_indexing",
    "maxSpatialResults": "max_spatial_results",
    "performanceMode": "performance_mode",
    "fallbackStrategy": "fallback_strategy",
    "useLevelOfDetail": "use_level_of_detail",
    "zoomLevel": "zoom_level",
    "useCache": "use_cache",
}


@dataclass(frozen=True, slots=True)
class FogCalculationOptions:
    """Per-request configuration for ``calculate_spatial_fog``.

    Attributes:
        viewport_bounds: ``(min_lng, min_lat, max_lng, max_lat)``; ``None``
            means the whole world.
        use_spatial_indexing: Try the in-memory index before the store.
        max_spatial_results: Upper bound on features unioned per request.
        performance_mode: ``"accurate"`` or ``"fast"``.
        fallback_strategy: ``"viewport"`` or ``"world"``.
        use_level_of_detail: Allow simplification of query results.
        zoom_level: Map zoom used to pick the simplification tolerance.
        use_cache: Consult and populate the fog result cache.
    """

    viewport_bounds: BBox | None = None
    use_spatial_indexing: bool = True
    max_spatial_results: int = DEFAULT_MAX_RESULTS
    performance_mode: str = "accurate"
    fallback_strategy: str = "viewport"
    use_level_of_detail: bool = True
    zoom_level: float = DEFAULT_ZOOM_LEVEL
    use_cache: bool = True

    def __post_init__(self) -> None:
        if self.max_spatial_results <= 0:
            raise ModelValidationError(
                "FogCalculationOptions",
                "max_spatial_results",
                self.max_spatial_results,
                "must be > 0",
            )
        if self.performance_mode not in PERFORMANCE_MODES:
            raise ModelValidationError(
                "FogCalculationOptions",
                "performance_mode",
                self.performance_mode,
                f"must be one of {sorted(PERFORMANCE_MODES)}",
            )
        if self.fallback_strategy not in FALLBACK_STRATEGIES:
            raise ModelValidationError(
                "FogCalculationOptions",
                "fallback_strategy",
                self.fallback_strategy,
                f"must be one of {sorted(FALLBACK_STRATEGIES)}",
            )
        if self.viewport_bounds is not None:
            bounds = self.viewport_bounds
            if not isinstance(bounds, list | tuple) or len(bounds) != 4:
                raise ModelValidationError(
                    "FogCalculationOptions",
                    "viewport_bounds",
                    bounds,
                    "must be a 4-item sequence [min_lng, min_lat, max_lng, max_lat]",
                )
            object.__setattr__(self, "viewport_bounds", tuple(bounds))

    @classmethod
    def from_config(cls, config: FogEngineConfig, **overrides: Any) -> FogCalculationOptions:
        """Build options from engine configuration, then apply *overrides*."""
        base = cls(
            use_spatial_indexing=config.use_spatial_indexing,
            max_spatial_results=config.max_spatial_results,
            performance_mode=config.performance_mode,
            fallback_strategy=config.fallback_strategy,
        )
        return replace(base, **overrides) if overrides else base

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        *,
        defaults: FogCalculationOptions | None = None,
    ) -> FogCalculationOptions:
        """Build options from a dict, accepting camelCase or snake_case keys.

        Unknown keys are ignored.

        Raises:
            ModelValidationError: If a recognised value is out of range.
        """
        valid = set(cls.__dataclass_fields__)
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _OPTION_ALIASES.get(key, key)
            if name in valid:
                kwargs[name] = value
        return replace(defaults or cls(), **kwargs)


@dataclass(frozen=True, slots=True)
class DataSourceStats:
    """Where the unioned revealed areas came from."""

    from_spatial_index: int = 0
    from_database: int = 0

    @property
    def total_processed(self) -> int:
        return self.from_spatial_index + self.from_database

    def to_dict(self) -> dict[str, int]:
        return {
            "from_spatial_index": self.from_spatial_index,
            "from_database": self.from_database,
            "total_processed": self.total_processed,
        }


@dataclass(frozen=True, slots=True)
class FogPerformanceMetrics:
    """Timing and outcome summary of one fog request.

    Attributes:
        operation_type: ``"spatial_index"``, ``"database"``, ``"emergency"`` or ``"cache"``.
        execution_time_ms: End-to-end request time.
        had_errors: Whether any error was recorded.
        fallback_used: Whether a lower tier or degraded fog shape was used.
        geometry_complexity: Complexity of the emitted fog geometry.
        performance_level: ``"FAST"`` (<=50 ms), ``"MODERATE"`` (<=100 ms) or ``"SLOW"``.
    """

    operation_type: str
    execution_time_ms: float
    had_errors: bool
    fallback_used: bool
    geometry_complexity: GeometryComplexity = field(default_factory=GeometryComplexity)
    performance_level: str = "FAST"

    def to_dict(self) -> dict[str, object]:
        return {
            "operation_type": self.operation_type,
            "execution_time_ms": self.execution_time_ms,
            "had_errors": self.had_errors,
            "fallback_used": self.fallback_used,
            "geometry_complexity": self.geometry_complexity.to_dict(),
            "performance_level": self.performance_level,
        }


@dataclass(frozen=True, slots=True)
class FogCalculationResult:
    """Fog to render for one viewport, with full diagnostic context.

    ``fog_geojson`` is always a valid GeoJSON FeatureCollection; an empty
    ``features`` list means nothing is fogged.
    """

    fog_geojson: dict[str, Any]
    used_spatial_indexing: bool
    data_source_stats: DataSourceStats
    performance_metrics: FogPerformanceMetrics
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    spatial_query_result: SpatialQueryResult | None = None
    from_cache: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "fog_geojson": self.fog_geojson,
            "used_spatial_indexing": self.used_spatial_indexing,
            "data_source_stats": self.data_source_stats.to_dict(),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "performance_metrics": self.performance_metrics.to_dict(),
            "spatial_query_result": (
                self.spatial_query_result.to_dict() if self.spatial_query_result else None
            ),
            "from_cache": self.from_cache,
        }
