"""Tests for the revealed-area store interface and row coercion."""

from __future__ import annotations

import json
from typing import Any

import pytest

from cartographer_fog.core.exceptions import InvalidViewportError, PersistenceError
from cartographer_fog.persistence.store import (
    InMemoryRevealedAreaStore,
    RevealedAreaStore,
    coerce_revealed_area_rows,
)


class TestCoerceRows:
    def test_features_pass_through(self, unit_square: dict[str, Any]) -> None:
        assert coerce_revealed_area_rows([unit_square]) == [unit_square]

    def test_json_strings_parsed(self, unit_square: dict[str, Any]) -> None:
        rows = [json.dumps(unit_square), {"id": 3, "geojson": json.dumps(unit_square)}]
        assert coerce_revealed_area_rows(rows) == [unit_square, unit_square]

    def test_unparseable_rows_dropped(self, unit_square: dict[str, Any]) -> None:
        rows = ["{not json", 42, None, {"geojson": "[1, 2"}, unit_square]
        assert coerce_revealed_area_rows(rows) == [unit_square]

    def test_none_is_empty(self) -> None:
        assert coerce_revealed_area_rows(None) == []

    @pytest.mark.parametrize("rows", ["rows", {"type": "FeatureCollection"}, 7])
    def test_non_list_raises(self, rows: object) -> None:
        with pytest.raises(PersistenceError):
            coerce_revealed_area_rows(rows)


class TestInMemoryStore:
    def test_is_a_store(self) -> None:
        assert isinstance(InMemoryRevealedAreaStore(), RevealedAreaStore)

    @pytest.mark.asyncio()
    async def test_get_revealed_areas(self, disjoint_squares: list[dict[str, Any]]) -> None:
        store = InMemoryRevealedAreaStore(disjoint_squares[:2])
        store.add(disjoint_squares[2])
        assert await store.get_revealed_areas() == disjoint_squares[:3]

    @pytest.mark.asyncio()
    async def test_viewport_query_filters_and_limits(
        self, disjoint_squares: list[dict[str, Any]]
    ) -> None:
        store = InMemoryRevealedAreaStore(disjoint_squares)
        matches = await store.get_revealed_areas_in_viewport((2.6, -1, 5.1, 1), 2)
        assert [m["properties"]["id"] for m in matches] == [3, 4]

    @pytest.mark.asyncio()
    async def test_viewport_query_rejects_bad_bounds(self) -> None:
        with pytest.raises(InvalidViewportError):
            await InMemoryRevealedAreaStore().get_revealed_areas_in_viewport((1, 1, 0, 0), 5)
