"""Tests for the geometry sanitizer.

Covers:
- Structural validation (never raises)
- Strict parsing into the polygon tagged union
- Normalisation: precision, duplicate removal, closure, idempotence
- Complexity metrics and debug summaries
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from cartographer_fog.core.exceptions import GeometryValidationError
from cartographer_fog.geometry.sanitizer import (
    compute_bbox,
    describe_geometry,
    get_polygon_complexity,
    is_valid_feature,
    parse_polygon_geometry,
    sanitize,
    validate_geometry,
)
from cartographer_fog.models.geometry import MultiPolygonGeometry, PolygonGeometry


def _polygon(coordinates: Any, geometry_type: str = "Polygon") -> dict[str, Any]:
    return {"type": "Feature", "properties": {}, "geometry": {"type": geometry_type, "coordinates": coordinates}}


class TestIsValidFeature:
    """Structural validation never raises."""

    def test_valid_square(self, unit_square: dict[str, Any]) -> None:
        assert is_valid_feature(unit_square) is True

    def test_unclosed_ring_still_valid(self, make_square: Any) -> None:
        assert is_valid_feature(make_square(0, 0, closed=False)) is True

    @pytest.mark.parametrize(
        "value",
        [
            None,
            42,
            "Feature",
            {},
            {"type": "FeatureCollection", "features": []},
            {"type": "Feature", "geometry": None},
            _polygon([[0, 0]], "Point"),
            _polygon([]),
            _polygon([[[0, 0], [1, 0], [0, 0]]]),
            _polygon([[[0, 0], [1, 0], [1, "x"], [0, 0]]]),
            _polygon([[[0, 0], [1, 0], [1, float("inf")], [0, 0]]]),
            _polygon([[[0, 0], [181, 0], [1, 1], [0, 0]]]),
            _polygon([[[0, 0], [1, 0], [1, 91], [0, 0]]]),
            _polygon([[[0, 0], [1, 0], [True, 1], [0, 0]]]),
            _polygon([[]], "MultiPolygon"),
        ],
    )
    def test_invalid_inputs(self, value: object) -> None:
        assert is_valid_feature(value) is False


class TestParsePolygonGeometry:
    def test_polygon(self, unit_square: dict[str, Any]) -> None:
        geometry = parse_polygon_geometry(unit_square)
        assert isinstance(geometry, PolygonGeometry)
        assert geometry.rings[0][0] == (0.0, 0.0)

    def test_multipolygon(self, unit_square: dict[str, Any]) -> None:
        ring = unit_square["geometry"]["coordinates"]
        geometry = parse_polygon_geometry(_polygon([ring, ring], "MultiPolygon"))
        assert isinstance(geometry, MultiPolygonGeometry)
        assert len(geometry.polygons) == 2

    def test_altitude_dropped(self) -> None:
        geometry = parse_polygon_geometry(_polygon([[[0, 0, 5], [1, 0, 5], [1, 1, 5], [0, 0, 5]]]))
        assert geometry.rings[0][0] == (0.0, 0.0)

    def test_error_names_location(self) -> None:
        with pytest.raises(GeometryValidationError, match="ring 1"):
            parse_polygon_geometry(_polygon([[[0, 0], [1, 0], [1, 1], [0, 0]], [[0, 0]]]))


class TestSanitize:
    def test_none_returns_none(self) -> None:
        assert sanitize(None) is None

    def test_invalid_returns_none(self) -> None:
        assert sanitize({"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}}) is None

    def test_closes_ring(self, make_square: Any) -> None:
        result = sanitize(make_square(0, 0, closed=False))
        assert result is not None
        ring = result["geometry"]["coordinates"][0]
        assert ring[0] == ring[-1]
        assert len(ring) == 5

    def test_rounds_coordinates(self) -> None:
        result = sanitize(_polygon([[[0.1234567891, 0], [1, 0], [1, 1], [0, 1]]]))
        assert result is not None
        assert result["geometry"]["coordinates"][0][0] == [0.123457, 0.0]

    def test_custom_precision(self) -> None:
        result = sanitize(_polygon([[[0.126, 0], [1, 0], [1, 1], [0, 1]]]), precision=2)
        assert result is not None
        assert result["geometry"]["coordinates"][0][0] == [0.13, 0.0]

    def test_removes_consecutive_duplicates(self) -> None:
        result = sanitize(_polygon([[[0, 0], [0, 0], [1, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]))
        assert result is not None
        assert result["geometry"]["coordinates"][0] == [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]

    def test_degenerate_ring_after_dedup_is_dropped(self) -> None:
        assert sanitize(_polygon([[[0, 0], [0, 0], [1, 1], [1, 1]]])) is None

    def test_degenerate_hole_dropped(self, unit_square: dict[str, Any]) -> None:
        exterior = unit_square["geometry"]["coordinates"][0]
        hole = [[0.5, 0.5], [0.5, 0.5], [0.5, 0.5], [0.5, 0.5]]
        result = sanitize(_polygon([exterior, hole]))
        assert result is not None
        assert len(result["geometry"]["coordinates"]) == 1

    def test_properties_and_id_preserved(self, unit_square: dict[str, Any]) -> None:
        unit_square["properties"] = {"nested": {"a": 1}}
        unit_square["id"] = 7
        result = sanitize(unit_square)
        assert result is not None
        assert result["properties"] == {"nested": {"a": 1}}
        assert result["id"] == 7
        result["properties"]["nested"]["a"] = 2
        assert unit_square["properties"]["nested"]["a"] == 1

    def test_input_not_mutated(self, make_square: Any) -> None:
        feature = make_square(0, 0, closed=False)
        original = copy.deepcopy(feature)
        sanitize(feature)
        assert feature == original

    @pytest.mark.parametrize(
        "coordinates",
        [
            [[[0.1234567891, 0.9876543219], [1, 0], [1, 1], [0, 1]]],
            [[[-0.0, 0], [1, 0], [1, 0], [1, 1], [0, 1], [-0.0, 0]]],
            [[[10, 10], [20, 10], [20, 20], [10, 20]], [[12, 12], [13, 12], [13, 13], [12, 12]]],
        ],
    )
    def test_idempotent(self, coordinates: Any) -> None:
        once = sanitize(_polygon(coordinates))
        assert once is not None
        assert sanitize(once) == once

    def test_every_ring_closed_for_multipolygon(self, make_square: Any) -> None:
        a = make_square(0, 0, closed=False)["geometry"]["coordinates"]
        b = make_square(5, 5, closed=False)["geometry"]["coordinates"]
        result = sanitize(_polygon([a, b], "MultiPolygon"))
        assert result is not None
        for polygon in result["geometry"]["coordinates"]:
            for ring in polygon:
                assert ring[0] == ring[-1]


class TestValidateGeometry:
    def test_reports_unclosed_ring(self, make_square: Any) -> None:
        report = validate_geometry(make_square(0, 0, closed=False))
        assert report.is_valid is False
        assert "not closed" in report.errors[0]

    def test_valid_has_complexity(self, unit_square: dict[str, Any]) -> None:
        report = validate_geometry(unit_square)
        assert report.is_valid is True
        assert report.complexity is not None
        assert report.complexity.total_vertices == 5

    def test_high_complexity_warning(self, make_regular_polygon: Any) -> None:
        report = validate_geometry(make_regular_polygon(0, 0, 1, 1200))
        assert report.is_valid is True
        assert any("may impact performance" in w for w in report.warnings)

    def test_invalid_reason(self) -> None:
        report = validate_geometry(None)
        assert report.is_valid is False
        assert report.errors


class TestMetrics:
    def test_complexity_levels(self, make_regular_polygon: Any) -> None:
        assert get_polygon_complexity(make_regular_polygon(0, 0, 1, 10)).complexity_level == "LOW"
        assert get_polygon_complexity(make_regular_polygon(0, 0, 1, 600)).complexity_level == "MEDIUM"
        assert get_polygon_complexity(make_regular_polygon(0, 0, 1, 1200)).complexity_level == "HIGH"

    def test_invalid_complexity_is_zero(self) -> None:
        assert get_polygon_complexity("nope").total_vertices == 0

    def test_compute_bbox(self, make_square: Any) -> None:
        assert compute_bbox(make_square(2, 3, 0.5)) == (2.0, 3.0, 2.5, 3.5)
        assert compute_bbox(None) is None

    def test_describe_geometry(self, unit_square: dict[str, Any]) -> None:
        summary = describe_geometry(unit_square)
        assert summary["geometry_type"] == "Polygon"
        assert summary["first_ring_length"] == 5
        assert summary["is_valid"] is True
        assert describe_geometry(None)["is_valid"] is False
