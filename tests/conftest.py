"""Shared pytest fixtures for the fog engine test suite."""

from __future__ import annotations

import math
from typing import Any

import pytest

from cartographer_fog.fog.manager import reset_global_spatial_fog_manager
from cartographer_fog.persistence.store import InMemoryRevealedAreaStore

# ---------------------------------------------------------------------------
# Feature builders
# ---------------------------------------------------------------------------


def _make_square(
    min_lng: float,
    min_lat: float,
    size: float = 1.0,
    *,
    feature_id: object = None,
    closed: bool = True,
) -> dict[str, Any]:
    """Return an axis-aligned square Polygon feature."""
    ring = [
        [min_lng, min_lat],
        [min_lng + size, min_lat],
        [min_lng + size, min_lat + size],
        [min_lng, min_lat + size],
    ]
    if closed:
        ring.append([min_lng, min_lat])
    properties: dict[str, Any] = {"source": "test"}
    if feature_id is not None:
        properties["id"] = feature_id
    return {
        "type": "Feature",
        "properties": properties,
        "geometry": {"type": "Polygon", "coordinates": [ring]},
    }


def _make_regular_polygon(
    center_lng: float, center_lat: float, radius: float, vertices: int
) -> dict[str, Any]:
    """Return a regular polygon with *vertices* corners (many-vertex test input)."""
    ring = [
        [
            center_lng + radius * math.cos(2 * math.pi * i / vertices),
            center_lat + radius * math.sin(2 * math.pi * i / vertices),
        ]
        for i in range(vertices)
    ]
    ring.append(ring[0])
    return {
        "type": "Feature",
        "properties": {},
        "geometry": {"type": "Polygon", "coordinates": [ring]},
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_square() -> Any:
    """Factory for square Polygon features: ``make_square(min_lng, min_lat, size)``."""
    return _make_square


@pytest.fixture()
def make_regular_polygon() -> Any:
    """Factory for many-vertex polygons: ``make_regular_polygon(lng, lat, radius, n)``."""
    return _make_regular_polygon


@pytest.fixture()
def unit_square() -> dict[str, Any]:
    """Square from (0, 0) to (1, 1)."""
    return _make_square(0.0, 0.0)


@pytest.fixture()
def small_square() -> dict[str, Any]:
    """Square wholly inside the (-1, -1, 1, 1) viewport."""
    return _make_square(-0.5, -0.5, 0.5, feature_id=1)


@pytest.fixture()
def disjoint_squares() -> list[dict[str, Any]]:
    """Ten pairwise-disjoint 0.5-degree squares along the equator."""
    return [_make_square(float(i), 0.0, 0.5, feature_id=i) for i in range(10)]


@pytest.fixture()
def memory_store(small_square: dict[str, Any]) -> InMemoryRevealedAreaStore:
    """Store holding one revealed area inside (-1, -1, 1, 1)."""
    return InMemoryRevealedAreaStore([small_square])


@pytest.fixture(autouse=True)
def _reset_global_state() -> Any:
    """Isolate the process-wide manager and index between tests."""
    reset_global_spatial_fog_manager()
    yield
    reset_global_spatial_fog_manager()
