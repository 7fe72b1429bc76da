"""Typed polygon geometry parsed from untrusted GeoJSON.

Revealed areas arrive as duck-typed GeoJSON from the store.  The
sanitizer parses them into this closed tagged union before any other
component touches them, and serialises back to GeoJSON on the way out.

Coordinates are ``(lng, lat)`` tuples in WGS 84 (EPSG:4326).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from numbers import Real
from typing import TYPE_CHECKING, ClassVar

from cartographer_fog.core.constants import (
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
)
from cartographer_fog.core.exceptions import InvalidViewportError

if TYPE_CHECKING:
    from collections.abc import Iterator

Position = tuple[float, float]
Ring = tuple[Position, ...]
PolygonRings = tuple[Ring, ...]
BBox = tuple[float, float, float, float]


@dataclass(frozen=True, slots=True)
class PolygonGeometry:
    """A single polygon: exterior ring followed by zero or more holes."""

    geometry_type: ClassVar[str] = "Polygon"

    rings: PolygonRings

    @property
    def polygons(self) -> tuple[PolygonRings, ...]:
        return (self.rings,)

    def to_geojson(self) -> dict[str, object]:
        """Serialise to a GeoJSON geometry object."""
        return {
            "type": self.geometry_type,
            "coordinates": [[[x, y] for x, y in ring] for ring in self.rings],
        }


@dataclass(frozen=True, slots=True)
class MultiPolygonGeometry:
    """A collection of polygons, each an exterior ring plus holes."""

    geometry_type: ClassVar[str] = "MultiPolygon"

    polygons: tuple[PolygonRings, ...]

    def to_geojson(self) -> dict[str, object]:
        """Serialise to a GeoJSON geometry object."""
        return {
            "type": self.geometry_type,
            "coordinates": [
                [[[x, y] for x, y in ring] for ring in polygon] for polygon in self.polygons
            ],
        }


RevealedGeometry = PolygonGeometry | MultiPolygonGeometry


def iter_rings(geometry: RevealedGeometry) -> Iterator[Ring]:
    """Yield every ring (exteriors and holes) of *geometry*."""
    for polygon in geometry.polygons:
        yield from polygon


def geometry_bbox(geometry: RevealedGeometry) -> BBox:
    """Return ``(min_lng, min_lat, max_lng, max_lat)`` over all rings."""
    xs = [x for ring in iter_rings(geometry) for x, _ in ring]
    ys = [y for ring in iter_rings(geometry) for _, y in ring]
    return (min(xs), min(ys), max(xs), max(ys))


def bboxes_intersect(a: BBox, b: BBox) -> bool:
    """Closed-interval intersection test for two bounding boxes."""
    return not (a[2] < b[0] or a[0] > b[2] or a[3] < b[1] or a[1] > b[3])


def parse_bounds(bounds: object) -> BBox:
    """Parse ``[min_lng, min_lat, max_lng, max_lat]`` into a clamped ``BBox``.

    Values beyond the WGS 84 extent are clamped to it (map viewports
    routinely overshoot the antimeridian and the poles).

    Raises:
        InvalidViewportError: If *bounds* is not four finite numbers with
            ``min <= max`` on both axes.
    """
    if not isinstance(bounds, list | tuple) or len(bounds) != 4:
        msg = f"Viewport bounds must be [min_lng, min_lat, max_lng, max_lat], got {bounds!r}"
        raise InvalidViewportError(msg)
    values: list[float] = []
    for value in bounds:
        if not isinstance(value, Real) or isinstance(value, bool) or not math.isfinite(value):
            msg = f"Viewport bounds must be finite numbers, got {bounds!r}"
            raise InvalidViewportError(msg)
        values.append(float(value))

    min_lng, min_lat, max_lng, max_lat = values
    if min_lng > max_lng or min_lat > max_lat:
        msg = f"Viewport bounds are inverted: {bounds!r}"
        raise InvalidViewportError(msg)
    return (
        max(min_lng, MIN_LONGITUDE),
        max(min_lat, MIN_LATITUDE),
        min(max_lng, MAX_LONGITUDE),
        min(max_lat, MAX_LATITUDE),
    )


def expand_bounds(bounds: BBox, distance: float) -> BBox:
    """Grow *bounds* by *distance* degrees on every side, clamped to the world."""
    return (
        max(bounds[0] - distance, MIN_LONGITUDE),
        max(bounds[1] - distance, MIN_LATITUDE),
        min(bounds[2] + distance, MAX_LONGITUDE),
        min(bounds[3] + distance, MAX_LATITUDE),
    )
