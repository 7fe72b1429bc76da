"""Tests for the fog engine exception taxonomy.

Validates:
- FogEngineError hierarchy and structured attributes
- Category classification (validation, transient, permanent, contract)
- ``to_error_dict()`` produces stable payload keys
- Concrete errors carry their default stage and code
"""

from __future__ import annotations

from typing import ClassVar

import pytest

from cartographer_fog.core.config import ConfigValidationError
from cartographer_fog.core.exceptions import (
    FogCalculationError,
    FogEngineError,
    GeometryOperationError,
    GeometryValidationError,
    InvalidViewportError,
    PermanentError,
    PersistenceError,
    SpatialIndexError,
    TransientError,
    ValidationError,
)
from cartographer_fog.models.results import ModelValidationError


class TestFogEngineErrorBase:
    """FogEngineError base class behavior."""

    def test_default_attributes(self) -> None:
        err = FogEngineError("boom")
        assert err.message == "boom"
        assert err.stage == ""
        assert err.code == ""
        assert err.retryable is False
        assert err.correlation_id == ""

    def test_custom_attributes(self) -> None:
        err = FogEngineError(
            "fail",
            stage="spatial_index",
            code="QUERY_FAILED",
            retryable=True,
            correlation_id="abc-123",
        )
        assert err.stage == "spatial_index"
        assert err.code == "QUERY_FAILED"
        assert err.retryable is True
        assert err.correlation_id == "abc-123"

    def test_str_is_message(self) -> None:
        assert str(FogEngineError("human-readable error")) == "human-readable error"

    def test_uncategorised_error_follows_retryable(self) -> None:
        assert FogEngineError("x", retryable=True).category == "transient"
        assert FogEngineError("x").category == "permanent"


class TestCategories:
    """Category base classes set category and retry defaults."""

    @pytest.mark.parametrize(
        ("cls", "category", "retryable"),
        [
            (ValidationError, "validation", False),
            (TransientError, "transient", True),
            (PermanentError, "permanent", False),
        ],
    )
    def test_category_defaults(self, cls: type[FogEngineError], category: str, retryable: bool) -> None:
        err = cls("x")
        assert err.category == category
        assert err.retryable is retryable

    def test_every_error_falls_in_a_used_category(self) -> None:
        import cartographer_fog.core.exceptions as exceptions_module

        classes = [
            obj
            for obj in vars(exceptions_module).values()
            if isinstance(obj, type) and issubclass(obj, FogEngineError) and obj is not FogEngineError
        ]
        categories = {
            cls("x", operation="union").category if cls is GeometryOperationError else cls("x").category
            for cls in classes
        }
        assert categories == {"validation", "transient", "permanent"}
        assert not hasattr(exceptions_module, "ContractError")

    def test_to_error_dict_keys(self) -> None:
        payload = PersistenceError("store down").to_error_dict()
        assert payload == {
            "category": "transient",
            "code": "PERSISTENCE_UNAVAILABLE",
            "stage": "persistence",
            "message": "store down",
            "retryable": True,
            "correlation_id": "",
        }


class TestConcreteErrors:
    """Every domain error is a FogEngineError with a stable code."""

    EXPECTED: ClassVar[dict[type[FogEngineError], tuple[str, str]]] = {
        GeometryValidationError: ("validation", "GEOMETRY_INVALID"),
        InvalidViewportError: ("validation", "VIEWPORT_INVALID"),
        SpatialIndexError: ("permanent", "SPATIAL_INDEX_FAILED"),
        PersistenceError: ("transient", "PERSISTENCE_UNAVAILABLE"),
        FogCalculationError: ("permanent", "FOG_TIER_FAILED"),
    }

    def test_categories_and_codes(self) -> None:
        for cls, (category, code) in self.EXPECTED.items():
            err = cls("x")
            assert isinstance(err, FogEngineError)
            assert err.category == category, cls.__name__
            assert err.code == code, cls.__name__

    def test_geometry_operation_error_fields(self) -> None:
        err = GeometryOperationError(
            "TopologyException", operation="union", geometry_type="Polygon", fallback_used=True
        )
        assert err.operation == "union"
        assert err.geometry_type == "Polygon"
        assert err.fallback_used is True
        assert err.category == "permanent"
        assert err.stage == "geometry_operations"

    def test_config_validation_error(self) -> None:
        err = ConfigValidationError("FOG_MAX_SPATIAL_RESULTS", 0, "must be > 0")
        assert isinstance(err, FogEngineError)
        assert err.key == "FOG_MAX_SPATIAL_RESULTS"
        assert "FOG_MAX_SPATIAL_RESULTS=0" in err.message

    def test_model_validation_error_is_value_error(self) -> None:
        err = ModelValidationError("FogCalculationOptions", "zoom_level", -1, "bad")
        assert isinstance(err, ValueError)
        assert isinstance(err, FogEngineError)
        assert err.field_name == "zoom_level"
        assert err.code == "MODEL_VALIDATION_FAILED"
