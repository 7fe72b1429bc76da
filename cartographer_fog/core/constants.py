"""Shared fog-engine constants (single source of truth).

Centralises coordinate limits, sanitizer precision, level-of-detail and
memory-estimation defaults, and the user-visible diagnostic strings that
callers (and tests) match on.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# WGS 84 coordinate limits
# ---------------------------------------------------------------------------

MIN_LONGITUDE: float = -180.0
MAX_LONGITUDE: float = 180.0
MIN_LATITUDE: float = -90.0
MAX_LATITUDE: float = 90.0

WORLD_BOUNDS: tuple[float, float, float, float] = (
    MIN_LONGITUDE,
    MIN_LATITUDE,
    MAX_LONGITUDE,
    MAX_LATITUDE,
)
"""Full extent ``(min_lng, min_lat, max_lng, max_lat)`` of the world polygon."""

# ---------------------------------------------------------------------------
# Sanitizer
# ---------------------------------------------------------------------------

DEFAULT_COORDINATE_PRECISION: int = 6
"""Decimal places kept by the sanitizer (~0.1 m at the equator)."""

MIN_RING_POSITIONS: int = 4
"""A closed linear ring needs 3 distinct positions plus the closing one."""

POLYGON_TYPES: frozenset[str] = frozenset({"Polygon", "MultiPolygon"})

# ---------------------------------------------------------------------------
# Complexity classification
# ---------------------------------------------------------------------------

MEDIUM_COMPLEXITY_VERTICES: int = 500
HIGH_COMPLEXITY_VERTICES: int = 1000
RING_WARNING_VERTICES: int = 1000

# ---------------------------------------------------------------------------
# Spatial index
# ---------------------------------------------------------------------------

DEFAULT_MAX_RESULTS: int = 1000
DEFAULT_ZOOM_LEVEL: float = 10.0
DEFAULT_LOD_VERTEX_BUDGET: int = 50_000
DEFAULT_ADD_BATCH_SIZE: int = 250

FULL_DETAIL_ZOOM: float = 12.0
MEDIUM_DETAIL_ZOOM: float = 8.0
MEDIUM_DETAIL_TOLERANCE: float = 0.001
"""Simplification tolerance in degrees (~100 m)."""
LOW_DETAIL_TOLERANCE: float = 0.005
"""Simplification tolerance in degrees (~500 m)."""
LOD_MIN_VERTICES: int = 16
"""Features at or below this vertex count are never simplified."""

# Memory estimation
BASE_BYTES_PER_FEATURE: int = 1024
BYTES_PER_VERTEX: int = 64
DEFAULT_MEMORY_THRESHOLD_BYTES: int = 50 * 1024 * 1024
CONSIDER_CLEANUP_RATIO: float = 0.7

RECOMMENDATION_OPTIMAL = "optimal"
RECOMMENDATION_CONSIDER_CLEANUP = "consider_cleanup"
RECOMMENDATION_CLEANUP_REQUIRED = "cleanup_required"

# ---------------------------------------------------------------------------
# Fog calculation
# ---------------------------------------------------------------------------

PERFORMANCE_MODES: frozenset[str] = frozenset({"accurate", "fast"})
FALLBACK_STRATEGIES: frozenset[str] = frozenset({"viewport", "world"})
FAST_MODE_UNION_TOLERANCE: float = 0.0005
DEFAULT_CACHE_MAX_ENTRIES: int = 32

# ---------------------------------------------------------------------------
# Diagnostic messages
# ---------------------------------------------------------------------------

MSG_NO_POLYGONS_FOR_UNION = "No polygons provided for union operation"
MSG_DIFFERENCE_COVERED = "Difference operation returned null - area may be completely covered"
MSG_EMERGENCY_FALLBACK = "Using emergency world fog fallback"
