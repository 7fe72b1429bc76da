"""World and viewport fog polygons.

``fog = world - union(revealed)``: the world polygon is the minuend of
every fog calculation, and the degraded results of the orchestrator are
either the whole world or the viewport rectangle.
"""

from __future__ import annotations

from typing import Any

from cartographer_fog.core.constants import WORLD_BOUNDS
from cartographer_fog.models.geometry import BBox, parse_bounds


def _rectangle(bounds: BBox) -> list[list[float]]:
    min_lng, min_lat, max_lng, max_lat = bounds
    return [
        [min_lng, min_lat],
        [max_lng, min_lat],
        [max_lng, max_lat],
        [min_lng, max_lat],
        [min_lng, min_lat],
    ]


def create_world_fog_polygon() -> dict[str, Any]:
    """Return a Feature covering ``[-180, -90]`` to ``[180, 90]``."""
    return {
        "type": "Feature",
        "properties": {"type": "fog"},
        "geometry": {"type": "Polygon", "coordinates": [_rectangle(WORLD_BOUNDS)]},
    }


def create_viewport_fog_polygon(bounds: object) -> dict[str, Any]:
    """Return a Feature covering the viewport rectangle.

    Raises:
        InvalidViewportError: If *bounds* are malformed.
    """
    return {
        "type": "Feature",
        "properties": {"type": "fog", "scope": "viewport"},
        "geometry": {"type": "Polygon", "coordinates": [_rectangle(parse_bounds(bounds))]},
    }


def feature_collection(features: list[dict[str, Any]]) -> dict[str, Any]:
    return {"type": "FeatureCollection", "features": features}


def create_world_fog_collection() -> dict[str, Any]:
    """Return the "everything is fog" FeatureCollection."""
    return feature_collection([create_world_fog_polygon()])


def validate_viewport_bounds(bounds: object) -> BBox:
    """Return normalised viewport bounds (world bounds when *bounds* is ``None``).

    Raises:
        InvalidViewportError: If *bounds* are malformed.
    """
    if bounds is None:
        return WORLD_BOUNDS
    return parse_bounds(bounds)
