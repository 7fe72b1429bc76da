"""Tests for the shapely/pyproj boolean engine primitives."""

from __future__ import annotations

import warnings
from typing import Any

import pytest

from cartographer_fog.geometry.engine import BooleanEngine
from cartographer_fog.geometry.sanitizer import compute_bbox, is_valid_feature


class TestBooleanEngine:
    def test_union_returns_geojson_lists(self, make_square: Any) -> None:
        merged = BooleanEngine().union(make_square(0, 0), make_square(1, 0))
        assert merged is not None
        assert isinstance(merged["geometry"]["coordinates"][0], list)
        assert isinstance(merged["geometry"]["coordinates"][0][0], list)
        assert compute_bbox(merged) == (0.0, 0.0, 2.0, 1.0)

    def test_union_keeps_first_properties(self, make_square: Any) -> None:
        merged = BooleanEngine().union(make_square(0, 0, feature_id=1), make_square(5, 5))
        assert merged is not None
        assert merged["properties"]["id"] == 1

    def test_difference_fully_covered_is_none(self, unit_square: dict[str, Any]) -> None:
        assert BooleanEngine().difference(unit_square, unit_square) is None

    def test_self_intersecting_input_repaired(self) -> None:
        bowtie = {
            "type": "Feature",
            "properties": {},
            "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 1], [1, 0], [0, 1], [0, 0]]]},
        }
        result = BooleanEngine().difference(bowtie, {
            "type": "Feature",
            "properties": {},
            "geometry": {"type": "Polygon", "coordinates": [[[5, 5], [6, 5], [6, 6], [5, 5]]]},
        })
        assert result is not None
        assert is_valid_feature(result)

    def test_buffer_in_miles(self) -> None:
        point = {"type": "Feature", "properties": {"name": "cafe"}, "geometry": {"type": "Point", "coordinates": [0, 0]}}
        result = BooleanEngine().buffer(point, 1, "miles")
        assert result is not None
        assert result["properties"] == {"name": "cafe"}
        bbox = compute_bbox(result)
        assert bbox is not None
        # 1 mile at the equator is roughly 0.01446 degrees.
        assert 0.0143 < bbox[2] < 0.0146

    def test_buffer_uses_current_shapely_api(self) -> None:
        point = {"type": "Feature", "properties": {}, "geometry": {"type": "Point", "coordinates": [10, 45]}}
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            result = BooleanEngine().buffer(point, 500)
        assert result is not None
        assert is_valid_feature(result)

    def test_buffer_unknown_units(self) -> None:
        point = {"type": "Feature", "properties": {}, "geometry": {"type": "Point", "coordinates": [0, 0]}}
        with pytest.raises(ValueError, match="Unsupported buffer units"):
            BooleanEngine().buffer(point, 1, "leagues")

    def test_simplify_reduces_vertices(self, make_regular_polygon: Any) -> None:
        result = BooleanEngine().simplify(make_regular_polygon(0, 0, 1, 200), 0.05)
        assert result is not None
        assert len(result["geometry"]["coordinates"][0]) < 201
