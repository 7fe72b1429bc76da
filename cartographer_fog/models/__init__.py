"""Data models and schemas.

Defines the data structures used throughout the fog engine:
- PolygonGeometry / MultiPolygonGeometry: closed tagged union parsed at the boundary
- GeometryOperationResult: structured outcome of every algebra call
- SpatialQueryResult / MemoryStats: spatial index outputs
- FogCalculationOptions / FogCalculationResult: orchestrator input and output
"""

from cartographer_fog.models.geometry import (
    BBox,
    MultiPolygonGeometry,
    PolygonGeometry,
    RevealedGeometry,
)
from cartographer_fog.models.results import (
    DataSourceStats,
    FogCalculationOptions,
    FogCalculationResult,
    FogPerformanceMetrics,
    GeometryComplexity,
    GeometryOperationResult,
    MemoryStats,
    ModelValidationError,
    OperationMetrics,
    SpatialQueryResult,
)

__all__ = [
    "BBox",
    "DataSourceStats",
    "FogCalculationOptions",
    "FogCalculationResult",
    "FogPerformanceMetrics",
    "GeometryComplexity",
    "GeometryOperationResult",
    "MemoryStats",
    "ModelValidationError",
    "MultiPolygonGeometry",
    "OperationMetrics",
    "PolygonGeometry",
    "RevealedGeometry",
    "SpatialQueryResult",
]
