"""Boolean-algebra primitives over GeoJSON features.

``BooleanEngine`` is the thin layer between GeoJSON dicts and shapely.
Each primitive takes and returns GeoJSON Feature dicts; ``None`` means
the result is empty.  Primitives may raise (shapely/GEOS and pyproj
errors propagate); the never-raising contract lives one level up in
``cartographer_fog.geometry.operations``.

Invalid input shapes (self-intersections, bow-ties) are repaired with
``make_valid()`` before any overlay, and only the polygonal part of a
result is kept.

The point buffer is computed in a local azimuthal-equidistant projection
centred on the point, so the distance is true metres on the WGS 84
ellipsoid rather than degrees.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from cartographer_fog.core.constants import WORLD_BOUNDS

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np
    from pyproj import Transformer
    from shapely.geometry.base import BaseGeometry

logger = logging.getLogger("cartographer_fog.geometry.engine")

# Metres per supported buffer unit
UNIT_METRES: dict[str, float] = {
    "meters": 1.0,
    "metres": 1.0,
    "kilometers": 1000.0,
    "kilometres": 1000.0,
    "miles": 1609.344,
}

#: Segments per quarter circle for point buffers.
BUFFER_QUAD_SEGMENTS = 16


class BooleanEngine:
    """Union, difference, buffer and simplify over GeoJSON Feature dicts."""

    def union(self, first: dict[str, Any], second: dict[str, Any]) -> dict[str, Any] | None:
        """Return the union of two polygon features, or ``None`` if empty."""
        merged = _to_shape(first).union(_to_shape(second))
        return _to_feature(merged, first.get("properties"))

    def difference(
        self, minuend: dict[str, Any], subtrahend: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Return ``minuend - subtrahend``, or ``None`` when fully covered."""
        remainder = _to_shape(minuend).difference(_to_shape(subtrahend))
        return _to_feature(remainder, minuend.get("properties"))

    def buffer(
        self, point: dict[str, Any], distance: float, units: str = "meters"
    ) -> dict[str, Any] | None:
        """Return a geodesic circle of *distance* around a Point feature.

        Raises:
            ValueError: If *units* is not a supported unit name.
        """
        import shapely
        from pyproj import Transformer
        from shapely.geometry import Point, box
        from shapely.validation import make_valid

        if units not in UNIT_METRES:
            msg = f"Unsupported buffer units {units!r}; expected one of {sorted(UNIT_METRES)}"
            raise ValueError(msg)
        lng, lat = (float(c) for c in point["geometry"]["coordinates"][:2])
        metres = distance * UNIT_METRES[units]

        local_crs = f"+proj=aeqd +lat_0={lat} +lon_0={lng} +datum=WGS84 +units=m"
        to_wgs = Transformer.from_crs(local_crs, "EPSG:4326", always_xy=True)

        circle = Point(0.0, 0.0).buffer(metres, quad_segs=BUFFER_QUAD_SEGMENTS)
        projected = shapely.transform(circle, _reprojector(to_wgs))
        if not projected.is_valid:
            # Circles crossing the antimeridian or a pole come back self-intersecting.
            projected = _polygonal(make_valid(projected))
        clipped = projected.intersection(box(*WORLD_BOUNDS))
        return _to_feature(clipped, point.get("properties"))

    def simplify(self, feature: dict[str, Any], tolerance: float) -> dict[str, Any] | None:
        """Return a topology-preserving simplification of *feature*."""
        simplified = _to_shape(feature).simplify(tolerance, preserve_topology=True)
        return _to_feature(simplified, feature.get("properties"))


# ---------------------------------------------------------------------------
# Shapely conversion helpers
# ---------------------------------------------------------------------------


def _to_shape(feature: dict[str, Any]) -> BaseGeometry:
    from shapely.geometry import shape
    from shapely.validation import make_valid

    geom = shape(feature["geometry"])
    if not geom.is_valid:
        logger.debug("Repairing invalid geometry with make_valid() | type=%s", geom.geom_type)
        geom = make_valid(geom)
    return _polygonal(geom)


def _reprojector(transformer: Transformer) -> Callable[[np.ndarray], np.ndarray]:
    """Adapt a pyproj transformer to ``shapely.transform``'s (N, 2) coordinate arrays."""

    def apply(coords: np.ndarray) -> np.ndarray:
        out = coords.copy()
        out[:, 0], out[:, 1] = transformer.transform(coords[:, 0], coords[:, 1])
        return out

    return apply


def _polygonal(geom: BaseGeometry) -> BaseGeometry:
    """Keep only the Polygon/MultiPolygon part of *geom*."""
    from shapely.geometry import MultiPolygon, Polygon
    from shapely.ops import unary_union

    if isinstance(geom, Polygon | MultiPolygon):
        return geom
    parts = [g for g in getattr(geom, "geoms", []) if isinstance(g, Polygon | MultiPolygon)]
    if not parts:
        return Polygon()
    return unary_union(parts)


def _to_feature(geom: BaseGeometry, properties: object) -> dict[str, Any] | None:
    from shapely.geometry import mapping

    geom = _polygonal(geom)
    if geom.is_empty:
        return None
    return {
        "type": "Feature",
        "properties": dict(properties) if isinstance(properties, dict) else {},
        "geometry": _listify(mapping(geom)),
    }


def _listify(geometry: dict[str, Any]) -> dict[str, Any]:
    """Convert shapely's nested coordinate tuples to GeoJSON lists."""

    def _convert(value: Any) -> Any:
        if isinstance(value, list | tuple) and value and isinstance(value[0], list | tuple):
            return [_convert(v) for v in value]
        if isinstance(value, list | tuple):
            return [float(v) for v in value]
        return value

    return {"type": geometry["type"], "coordinates": _convert(geometry["coordinates"])}
