"""Validation and normalisation of untrusted GeoJSON polygon features.

Responsibilities:
- Parse duck-typed GeoJSON into the ``PolygonGeometry | MultiPolygonGeometry``
  tagged union, rejecting anything else at the boundary
- Coordinate checks (numeric, finite, WGS 84 range)
- Ring normalisation: fixed precision, duplicate removal, closure
- Complexity metrics and debug summaries for diagnostics

Public functions never raise for bad input: ``is_valid_feature`` returns
``False`` and ``sanitize`` returns ``None``.  ``parse_polygon_geometry``
is the one strict entry point and raises ``GeometryValidationError``.
"""

from __future__ import annotations

import copy
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from numbers import Real
from typing import Any

from cartographer_fog.core.constants import (
    DEFAULT_COORDINATE_PRECISION,
    HIGH_COMPLEXITY_VERTICES,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MEDIUM_COMPLEXITY_VERTICES,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    MIN_RING_POSITIONS,
    POLYGON_TYPES,
    RING_WARNING_VERTICES,
)
from cartographer_fog.core.exceptions import GeometryValidationError
from cartographer_fog.models.geometry import (
    BBox,
    MultiPolygonGeometry,
    PolygonGeometry,
    PolygonRings,
    Position,
    RevealedGeometry,
    Ring,
    geometry_bbox,
    iter_rings,
)
from cartographer_fog.models.results import GeometryComplexity

logger = logging.getLogger("cartographer_fog.geometry.sanitizer")


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Detailed validation outcome for diagnostics.

    Attributes:
        is_valid: Whether the value passes every structural check.
        errors: One message per problem found (ring-level detail).
        warnings: Performance observations for valid geometry.
        complexity: Metrics, only present when ``is_valid``.
    """

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    complexity: GeometryComplexity | None = None


# ---------------------------------------------------------------------------
# Parsing (strict)
# ---------------------------------------------------------------------------


def parse_polygon_geometry(feature: object) -> RevealedGeometry:
    """Parse a GeoJSON Feature into the polygon tagged union.

    Positions with a third (altitude) element are accepted; the extra
    elements are dropped.

    Raises:
        GeometryValidationError: If *feature* is not a Feature whose
            geometry is a well-formed Polygon or MultiPolygon.
    """
    if not isinstance(feature, Mapping):
        msg = f"Expected a Feature mapping, got {type(feature).__name__}"
        raise GeometryValidationError(msg)
    if feature.get("type") != "Feature":
        msg = f"Expected Feature type, got {feature.get('type')!r}"
        raise GeometryValidationError(msg)

    geometry = feature.get("geometry")
    if not isinstance(geometry, Mapping):
        msg = "Missing geometry property"
        raise GeometryValidationError(msg)

    geometry_type = geometry.get("type")
    if geometry_type not in POLYGON_TYPES:
        msg = f"Unsupported geometry type: {geometry_type!r}"
        raise GeometryValidationError(msg)

    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list | tuple) or not coordinates:
        msg = "Invalid or empty coordinates"
        raise GeometryValidationError(msg)

    if geometry_type == "Polygon":
        return PolygonGeometry(rings=_parse_polygon(coordinates, None))

    polygons: list[PolygonRings] = []
    for polygon_index, polygon in enumerate(coordinates):
        if not isinstance(polygon, list | tuple) or not polygon:
            msg = f"Invalid polygon at index {polygon_index} in MultiPolygon"
            raise GeometryValidationError(msg)
        polygons.append(_parse_polygon(polygon, polygon_index))
    return MultiPolygonGeometry(polygons=tuple(polygons))


def _parse_polygon(rings: list[Any] | tuple[Any, ...], polygon_index: int | None) -> PolygonRings:
    return tuple(_parse_ring(ring, i, polygon_index) for i, ring in enumerate(rings))


def _parse_ring(ring: object, ring_index: int, polygon_index: int | None) -> Ring:
    context = _ring_context(ring_index, polygon_index)
    if not isinstance(ring, list | tuple):
        msg = f"Ring at {context} is not an array"
        raise GeometryValidationError(msg)
    if len(ring) < MIN_RING_POSITIONS:
        msg = (
            f"Ring at {context} has insufficient coordinates "
            f"({len(ring)}, minimum {MIN_RING_POSITIONS} required)"
        )
        raise GeometryValidationError(msg)
    return tuple(_parse_position(p, context, j) for j, p in enumerate(ring))


def _parse_position(position: object, context: str, index: int) -> Position:
    if not isinstance(position, list | tuple) or len(position) < 2:
        msg = f"Invalid coordinate format at {context}, coordinate {index}"
        raise GeometryValidationError(msg)
    lng, lat = position[0], position[1]
    if not _is_number(lng) or not _is_number(lat):
        msg = f"Non-numeric coordinate at {context}, coordinate {index}: [{lng!r}, {lat!r}]"
        raise GeometryValidationError(msg)
    lng, lat = float(lng), float(lat)
    if not (math.isfinite(lng) and math.isfinite(lat)):
        msg = f"Non-finite coordinate at {context}, coordinate {index}: [{lng}, {lat}]"
        raise GeometryValidationError(msg)
    if not MIN_LONGITUDE <= lng <= MAX_LONGITUDE:
        msg = f"Longitude out of range at {context}, coordinate {index}: {lng} (must be -180 to 180)"
        raise GeometryValidationError(msg)
    if not MIN_LATITUDE <= lat <= MAX_LATITUDE:
        msg = f"Latitude out of range at {context}, coordinate {index}: {lat} (must be -90 to 90)"
        raise GeometryValidationError(msg)
    return (lng, lat)


def _is_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _ring_context(ring_index: int, polygon_index: int | None) -> str:
    if polygon_index is None:
        return f"ring {ring_index}"
    return f"polygon {polygon_index}, ring {ring_index}"


# ---------------------------------------------------------------------------
# Validation (never raises)
# ---------------------------------------------------------------------------


def is_valid_feature(feature: object) -> bool:
    """Return ``True`` if *feature* is a structurally usable polygon Feature.

    Requires ``type == "Feature"``, a Polygon or MultiPolygon geometry,
    at least 4 positions per ring, and numeric, finite, in-range
    coordinates.  Ring closure is not required; ``sanitize`` enforces it.
    """
    try:
        parse_polygon_geometry(feature)
    except GeometryValidationError as exc:
        logger.debug("Geometry validation failed | reason=%s", exc.message)
        return False
    return True


def validate_geometry(feature: object) -> ValidationReport:
    """Validate *feature* and report every problem found.

    Unlike ``is_valid_feature`` this also flags unclosed rings and adds
    performance warnings for very complex geometry.
    """
    try:
        geometry = parse_polygon_geometry(feature)
    except GeometryValidationError as exc:
        return ValidationReport(is_valid=False, errors=[exc.message])

    errors: list[str] = []
    warnings: list[str] = []
    for polygon_index, polygon in enumerate(geometry.polygons):
        label = polygon_index if isinstance(geometry, MultiPolygonGeometry) else None
        for ring_index, ring in enumerate(polygon):
            context = _ring_context(ring_index, label)
            if ring[0] != ring[-1]:
                errors.append(
                    f"Ring at {context} is not closed "
                    f"(first: [{ring[0][0]}, {ring[0][1]}], last: [{ring[-1][0]}, {ring[-1][1]}])"
                )
            if len(ring) > RING_WARNING_VERTICES:
                warnings.append(
                    f"Ring at {context} has {len(ring)} vertices, which may impact performance"
                )

    if errors:
        return ValidationReport(is_valid=False, errors=errors, warnings=warnings)

    complexity = _complexity_of(geometry)
    if complexity.complexity_level == "HIGH":
        warnings.append(
            f"High complexity geometry with {complexity.total_vertices} vertices "
            "may impact performance"
        )
    return ValidationReport(is_valid=True, warnings=warnings, complexity=complexity)


# ---------------------------------------------------------------------------
# Sanitisation
# ---------------------------------------------------------------------------


def sanitize(
    feature: object,
    *,
    precision: int = DEFAULT_COORDINATE_PRECISION,
) -> dict[str, Any] | None:
    """Return a normalised copy of *feature*, or ``None`` if it is unusable.

    Every coordinate is rounded to *precision* decimal places, exact
    duplicate consecutive positions are removed, and each ring is closed
    by appending its first position when needed.  Rings left with fewer
    than 4 positions are dropped (a polygon whose exterior is dropped is
    dropped whole).  ``properties`` and a top-level ``id`` are deep-copied
    unchanged.

    Idempotent: ``sanitize(sanitize(f)) == sanitize(f)``.
    """
    try:
        geometry = parse_polygon_geometry(feature)
    except GeometryValidationError as exc:
        logger.debug("Cannot sanitize invalid geometry | reason=%s", exc.message)
        return None

    cleaned = sanitize_geometry(geometry, precision=precision)
    if cleaned is None:
        logger.debug("No valid rings remaining after sanitization")
        return None

    source: Mapping[str, Any] = feature  # type: ignore[assignment]
    properties = source.get("properties")
    sanitized: dict[str, Any] = {
        "type": "Feature",
        "properties": copy.deepcopy(properties) if properties is not None else {},
        "geometry": cleaned.to_geojson(),
    }
    if "id" in source:
        sanitized["id"] = copy.deepcopy(source["id"])
    return sanitized


def sanitize_geometry(
    geometry: RevealedGeometry,
    *,
    precision: int = DEFAULT_COORDINATE_PRECISION,
) -> RevealedGeometry | None:
    """Normalise every ring of an already-parsed geometry."""
    polygons: list[PolygonRings] = []
    for polygon in geometry.polygons:
        exterior = _sanitize_ring(polygon[0], precision)
        if len(exterior) < MIN_RING_POSITIONS:
            continue
        holes = [_sanitize_ring(hole, precision) for hole in polygon[1:]]
        polygons.append((exterior, *(h for h in holes if len(h) >= MIN_RING_POSITIONS)))

    if not polygons:
        return None
    if isinstance(geometry, PolygonGeometry):
        return PolygonGeometry(rings=polygons[0])
    return MultiPolygonGeometry(polygons=tuple(polygons))


def _sanitize_ring(ring: Ring, precision: int) -> Ring:
    cleaned: list[Position] = []
    for lng, lat in ring:
        # Adding 0.0 folds -0.0 into 0.0 so equal positions compare and serialise alike.
        point = (round(lng, precision) + 0.0, round(lat, precision) + 0.0)
        if not cleaned or cleaned[-1] != point:
            cleaned.append(point)

    if len(cleaned) >= 3 and cleaned[0] != cleaned[-1]:
        cleaned.append(cleaned[0])
    return tuple(cleaned)


# ---------------------------------------------------------------------------
# Metrics and diagnostics
# ---------------------------------------------------------------------------


def get_polygon_complexity(feature: object) -> GeometryComplexity:
    """Return vertex/ring metrics for *feature* (zeros when unusable)."""
    try:
        geometry = parse_polygon_geometry(feature)
    except GeometryValidationError:
        return GeometryComplexity()
    return _complexity_of(geometry)


def ring_lengths(feature: object) -> list[int]:
    """Return the position count of every ring of *feature* (empty when unusable)."""
    try:
        geometry = parse_polygon_geometry(feature)
    except GeometryValidationError:
        return []
    return [len(ring) for ring in iter_rings(geometry)]


def _complexity_of(geometry: RevealedGeometry) -> GeometryComplexity:
    return combine_complexity([len(ring) for ring in iter_rings(geometry)])


def combine_complexity(ring_lengths: list[int]) -> GeometryComplexity:
    """Build complexity metrics from the vertex count of every ring."""
    lengths = ring_lengths
    total = sum(lengths)
    ring_count = len(lengths)
    if total > HIGH_COMPLEXITY_VERTICES:
        level = "HIGH"
    elif total > MEDIUM_COMPLEXITY_VERTICES:
        level = "MEDIUM"
    else:
        level = "LOW"
    return GeometryComplexity(
        total_vertices=total,
        ring_count=ring_count,
        max_ring_vertices=max(lengths, default=0),
        average_ring_vertices=total / ring_count if ring_count else 0.0,
        complexity_level=level,
    )


def compute_bbox(feature: object) -> BBox | None:
    """Return ``(min_lng, min_lat, max_lng, max_lat)`` or ``None`` if unusable."""
    try:
        return geometry_bbox(parse_polygon_geometry(feature))
    except GeometryValidationError:
        return None


def describe_geometry(feature: object) -> dict[str, object]:
    """Return a JSON-safe structural summary of *feature* for debug logs."""
    geometry = feature.get("geometry") if isinstance(feature, Mapping) else None
    coordinates = geometry.get("coordinates") if isinstance(geometry, Mapping) else None
    first_ring = None
    if isinstance(coordinates, list | tuple) and coordinates:
        first_ring = coordinates[0]
        if isinstance(geometry, Mapping) and geometry.get("type") == "MultiPolygon":
            first_ring = first_ring[0] if isinstance(first_ring, list | tuple) and first_ring else None

    summary: dict[str, object] = {
        "type": feature.get("type") if isinstance(feature, Mapping) else type(feature).__name__,
        "geometry_type": geometry.get("type") if isinstance(geometry, Mapping) else None,
        "part_count": len(coordinates) if isinstance(coordinates, list | tuple) else 0,
        "first_ring_length": len(first_ring) if isinstance(first_ring, list | tuple) else 0,
        "is_valid": is_valid_feature(feature),
    }
    if summary["is_valid"]:
        summary["complexity"] = get_polygon_complexity(feature).to_dict()
    return summary
