"""Never-raising polygon algebra: union, difference and point buffer.

Every public function returns a ``GeometryOperationResult`` and never
lets an exception cross its boundary.  Inputs are sanitised first;
failures of the underlying ``BooleanEngine`` are wrapped in
``GeometryOperationError`` internally and then converted into the
result's ``errors`` list with a fallback geometry where one exists.

Outcomes:
- ``union``: best accumulated polygon, ``fallback_used`` when any
  pairwise step failed (raised or returned nothing).
- ``difference``: ``result=None`` with a warning (not an error) when the
  minuend is completely covered.
- ``buffer_point``: ``result=None`` plus a specific error for every kind
  of invalid input.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from numbers import Real
from typing import Any

from cartographer_fog.core.constants import (
    DEFAULT_COORDINATE_PRECISION,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    MSG_DIFFERENCE_COVERED,
    MSG_NO_POLYGONS_FOR_UNION,
)
from cartographer_fog.core.exceptions import GeometryOperationError
from cartographer_fog.geometry.engine import UNIT_METRES, BooleanEngine
from cartographer_fog.geometry.sanitizer import (
    combine_complexity,
    describe_geometry,
    get_polygon_complexity,
    ring_lengths,
    sanitize,
    validate_geometry,
)
from cartographer_fog.models.results import (
    GeometryComplexity,
    GeometryOperationResult,
    OperationMetrics,
)
from cartographer_fog.utils.timing import elapsed_ms, now

logger = logging.getLogger("cartographer_fog.geometry.operations")

_default_engine = BooleanEngine()


def _engine_or_default(engine: BooleanEngine | None) -> BooleanEngine:
    return engine if engine is not None else _default_engine


def _is_feature(value: object) -> bool:
    return isinstance(value, Mapping) and value.get("type") == "Feature"


def _geometry_type(value: object) -> str:
    if isinstance(value, Mapping):
        geometry = value.get("geometry")
        if isinstance(geometry, Mapping):
            return str(geometry.get("type", ""))
    return ""


def _run_engine(
    operation: str,
    primitive: Callable[..., Any],
    *args: Any,
    geometry_type: str = "",
) -> Any:
    """Call an engine primitive, wrapping any failure in ``GeometryOperationError``."""
    try:
        return primitive(*args)
    except Exception as exc:
        msg = str(exc) or type(exc).__name__
        raise GeometryOperationError(
            msg, operation=operation, geometry_type=geometry_type, fallback_used=True
        ) from exc


def _build_result(
    operation: str,
    start: float,
    result: Any,
    *,
    errors: list[str] | None = None,
    warnings: list[str] | None = None,
    fallback_used: bool = False,
    input_complexity: GeometryComplexity | None = None,
) -> GeometryOperationResult:
    errors = errors or []
    output_complexity = get_polygon_complexity(result) if _is_feature(result) else None
    metrics = OperationMetrics(
        operation_type=operation,
        execution_time_ms=elapsed_ms(start),
        had_errors=bool(errors),
        fallback_used=fallback_used,
        input_complexity=input_complexity or GeometryComplexity(),
        output_complexity=output_complexity,
    )
    return GeometryOperationResult(
        result=result, metrics=metrics, errors=errors, warnings=warnings or []
    )


# ---------------------------------------------------------------------------
# Union
# ---------------------------------------------------------------------------


def union_polygons(
    features: Sequence[Any] | None,
    *,
    engine: BooleanEngine | None = None,
    precision: int = DEFAULT_COORDINATE_PRECISION,
) -> GeometryOperationResult:
    """Union a list of polygon features into one feature.

    Inputs that fail sanitisation are skipped with an error.  A failed
    pairwise step keeps the polygon accumulated so far and continues
    with the next input, marking the result ``fallback_used``.
    Validation warnings (e.g. high complexity) for each input and for
    the merged result are passed through.
    """
    start = now()
    operation = "union"
    if isinstance(features, str | bytes | Mapping) or not isinstance(features, Sequence):
        features = []
    if not features:
        return _build_result(operation, start, None, errors=[MSG_NO_POLYGONS_FOR_UNION])

    errors: list[str] = []
    warnings: list[str] = []
    valid: list[dict[str, Any]] = []
    for i, feature in enumerate(features):
        cleaned = sanitize(feature, precision=precision)
        if cleaned is None:
            errors.append(f"Failed to sanitize polygon {i}")
            logger.debug("Union input rejected | index=%d | summary=%s", i, describe_geometry(feature))
            continue
        warnings.extend(f"Polygon {i}: {w}" for w in validate_geometry(cleaned).warnings)
        valid.append(cleaned)

    input_complexity = combine_complexity([n for f in valid for n in ring_lengths(f)])
    if not valid:
        return _build_result(operation, start, None, errors=errors, warnings=warnings)
    if len(valid) == 1:
        return _build_result(
            operation,
            start,
            valid[0],
            errors=errors,
            warnings=warnings,
            input_complexity=input_complexity,
        )

    engine = _engine_or_default(engine)
    fallback_used = False
    accumulated = valid[0]
    for i, feature in enumerate(valid[1:], start=1):
        try:
            merged = _run_engine(
                operation,
                engine.union,
                accumulated,
                feature,
                geometry_type=_geometry_type(feature),
            )
        except GeometryOperationError as exc:
            logger.error(
                "Union primitive failed | index=%d | geometry_type=%s | error=%s",
                i,
                exc.geometry_type,
                exc.message,
            )
            errors.append(f"Union error for polygon {i}: {exc.message}")
            fallback_used = True
            continue

        if not _is_feature(merged):
            logger.warning("Union primitive returned no feature | index=%d", i)
            errors.append(f"Union operation failed for polygon {i}")
            fallback_used = True
            continue
        accumulated = merged

    result = sanitize(accumulated, precision=precision) or accumulated
    warnings.extend(f"Union result: {w}" for w in validate_geometry(result).warnings)
    logger.debug(
        "Union complete | inputs=%d | valid=%d | fallback=%s | errors=%d",
        len(features),
        len(valid),
        fallback_used,
        len(errors),
    )
    return _build_result(
        operation,
        start,
        result,
        errors=errors,
        warnings=warnings,
        fallback_used=fallback_used,
        input_complexity=input_complexity,
    )


# ---------------------------------------------------------------------------
# Difference
# ---------------------------------------------------------------------------


def perform_robust_difference(
    minuend: Any,
    subtrahend: Any,
    *,
    engine: BooleanEngine | None = None,
    precision: int = DEFAULT_COORDINATE_PRECISION,
) -> GeometryOperationResult:
    """Return ``minuend - subtrahend`` as a structured result.

    When only one operand is usable the result is that operand.  A
    ``None`` engine result means the minuend is completely covered and
    is reported as a warning, not an error.  A non-Feature engine value
    is passed through unchanged with a warning; callers must validate it.
    """
    start = now()
    operation = "difference"
    clean_minuend = sanitize(minuend, precision=precision)
    clean_subtrahend = sanitize(subtrahend, precision=precision)

    errors: list[str] = []
    if clean_minuend is None:
        errors.append("Invalid minuend geometry")
    if clean_subtrahend is None:
        errors.append("Invalid subtrahend geometry")
    if clean_minuend is None or clean_subtrahend is None:
        fallback = clean_minuend if clean_minuend is not None else clean_subtrahend
        logger.warning(
            "Difference operand invalid | minuend_valid=%s | subtrahend_valid=%s",
            clean_minuend is not None,
            clean_subtrahend is not None,
        )
        return _build_result(
            operation,
            start,
            fallback,
            errors=errors,
            fallback_used=fallback is not None,
            input_complexity=get_polygon_complexity(fallback),
        )

    input_complexity = combine_complexity(
        ring_lengths(clean_minuend) + ring_lengths(clean_subtrahend)
    )
    engine = _engine_or_default(engine)
    try:
        remainder = _run_engine(
            operation,
            engine.difference,
            clean_minuend,
            clean_subtrahend,
            geometry_type=_geometry_type(clean_minuend),
        )
    except GeometryOperationError as exc:
        logger.error(
            "Difference primitive failed | geometry_type=%s | error=%s | minuend=%s",
            exc.geometry_type,
            exc.message,
            describe_geometry(clean_minuend),
        )
        return _build_result(
            operation,
            start,
            clean_minuend,
            errors=[f"Difference operation exception: {exc.message}"],
            fallback_used=True,
            input_complexity=input_complexity,
        )

    if remainder is None:
        logger.debug("Difference result empty | minuend fully covered")
        return _build_result(
            operation,
            start,
            None,
            warnings=[MSG_DIFFERENCE_COVERED],
            input_complexity=input_complexity,
        )

    if not _is_feature(remainder):
        logger.warning(
            "Difference primitive returned a non-Feature value | type=%s",
            type(remainder).__name__,
        )
        return _build_result(
            operation,
            start,
            remainder,
            warnings=["Difference operation returned a non-Feature value; passed through unvalidated"],
            input_complexity=input_complexity,
        )

    return _build_result(
        operation,
        start,
        sanitize(remainder, precision=precision) or remainder,
        input_complexity=input_complexity,
    )


# ---------------------------------------------------------------------------
# Buffer
# ---------------------------------------------------------------------------


def _point_coordinates(point: object) -> object:
    """Return the raw coordinates of a Point Feature or Point geometry, else ``None``."""
    if not isinstance(point, Mapping):
        return None
    geometry = point.get("geometry") if point.get("type") == "Feature" else point
    if not isinstance(geometry, Mapping) or geometry.get("type") != "Point":
        return None
    return geometry.get("coordinates")


def _is_finite_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def create_buffer_with_validation(
    point: Any,
    distance: Any,
    units: str = "meters",
    *,
    engine: BooleanEngine | None = None,
    precision: int = DEFAULT_COORDINATE_PRECISION,
) -> GeometryOperationResult:
    """Buffer a Point feature into a circular polygon.

    Args:
        point: GeoJSON Point Feature (or bare Point geometry).
        distance: Positive, finite buffer radius.
        units: ``"meters"``, ``"kilometers"`` or ``"miles"``.
    """
    start = now()
    operation = "buffer"

    coordinates = _point_coordinates(point)
    if coordinates is None:
        return _build_result(operation, start, None, errors=["Invalid point geometry provided"])
    if (
        not isinstance(coordinates, list | tuple)
        or len(coordinates) < 2
        or not _is_finite_number(coordinates[0])
        or not _is_finite_number(coordinates[1])
    ):
        return _build_result(operation, start, None, errors=["Invalid point coordinates"])

    lng, lat = coordinates[0], coordinates[1]
    if not (MIN_LONGITUDE <= lng <= MAX_LONGITUDE and MIN_LATITUDE <= lat <= MAX_LATITUDE):
        return _build_result(
            operation,
            start,
            None,
            errors=[f"Point coordinates out of valid range: [{lng}, {lat}]"],
        )
    if not _is_finite_number(distance) or distance <= 0:
        return _build_result(operation, start, None, errors=[f"Invalid buffer distance: {distance}"])
    if units not in UNIT_METRES:
        return _build_result(operation, start, None, errors=[f"Unsupported buffer units: {units}"])

    feature = {
        "type": "Feature",
        "properties": dict(point.get("properties") or {}) if point.get("type") == "Feature" else {},
        "geometry": {"type": "Point", "coordinates": [float(lng), float(lat)]},
    }
    engine = _engine_or_default(engine)
    try:
        buffered = _run_engine(operation, engine.buffer, feature, distance, units, geometry_type="Point")
    except GeometryOperationError as exc:
        logger.error("Buffer primitive failed | point=[%s, %s] | error=%s", lng, lat, exc.message)
        return _build_result(
            operation, start, None, errors=[f"Buffer operation exception: {exc.message}"]
        )

    if not _is_feature(buffered):
        return _build_result(operation, start, None, errors=["Buffer operation returned null"])
    return _build_result(operation, start, sanitize(buffered, precision=precision) or buffered)


# Short names matching the public vocabulary of the fog engine.
union = union_polygons
difference = perform_robust_difference
buffer_point = create_buffer_with_validation
