"""Fog engine configuration loaded from environment variables.

All configuration values have sensible defaults.  Host applications may
construct ``FogEngineConfig`` directly or call ``from_env()`` at startup.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any value is out
    of its valid range.  This catches bad configuration at startup rather
    than on the first fog request.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from cartographer_fog.core.constants import (
    DEFAULT_ADD_BATCH_SIZE,
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_COORDINATE_PRECISION,
    DEFAULT_LOD_VERTEX_BUDGET,
    DEFAULT_MAX_RESULTS,
    DEFAULT_MEMORY_THRESHOLD_BYTES,
    FALLBACK_STRATEGIES,
    PERFORMANCE_MODES,
)
from cartographer_fog.core.exceptions import FogEngineError

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


class ConfigValidationError(FogEngineError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class FogEngineConfig:
    """Immutable fog engine configuration.

    Attributes:
        use_spatial_indexing: Whether fog requests query the in-memory index first.
        max_spatial_results: Upper bound on features fed into one union.
        performance_mode: ``"accurate"`` or ``"fast"`` (simplified union).
        fallback_strategy: ``"viewport"`` or ``"world"`` degraded fog shape.
        coordinate_precision: Decimal places kept by the sanitizer.
        memory_threshold_bytes: Estimated index size that triggers a cleanup recommendation.
        lod_vertex_budget: Returned vertex count above which level of detail kicks in.
        add_batch_size: Features sanitised per chunk before yielding to the event loop.
        cache_max_entries: Fog result cache size (0 disables caching).
    """

    use_spatial_indexing: bool = True
    max_spatial_results: int = DEFAULT_MAX_RESULTS
    performance_mode: str = "accurate"
    fallback_strategy: str = "viewport"
    coordinate_precision: int = DEFAULT_COORDINATE_PRECISION
    memory_threshold_bytes: int = DEFAULT_MEMORY_THRESHOLD_BYTES
    lod_vertex_budget: int = DEFAULT_LOD_VERTEX_BUDGET
    add_batch_size: int = DEFAULT_ADD_BATCH_SIZE
    cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES

    @classmethod
    def from_env(cls) -> FogEngineConfig:
        """Load and validate configuration from ``FOG_*`` environment variables.

        Raises:
            ConfigValidationError: If a value is out of range or a boolean
                flag is not recognisable.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``FOG_MAX_SPATIAL_RESULTS=abc``).
        """
        config = cls(
            use_spatial_indexing=_parse_bool(
                "FOG_USE_SPATIAL_INDEXING", os.getenv("FOG_USE_SPATIAL_INDEXING", "true")
            ),
            max_spatial_results=int(os.getenv("FOG_MAX_SPATIAL_RESULTS", str(DEFAULT_MAX_RESULTS))),
            performance_mode=os.getenv("FOG_PERFORMANCE_MODE", "accurate").strip().lower(),
            fallback_strategy=os.getenv("FOG_FALLBACK_STRATEGY", "viewport").strip().lower(),
            coordinate_precision=int(
                os.getenv("FOG_COORDINATE_PRECISION", str(DEFAULT_COORDINATE_PRECISION))
            ),
            memory_threshold_bytes=int(
                os.getenv("FOG_MEMORY_THRESHOLD_BYTES", str(DEFAULT_MEMORY_THRESHOLD_BYTES))
            ),
            lod_vertex_budget=int(
                os.getenv("FOG_LOD_VERTEX_BUDGET", str(DEFAULT_LOD_VERTEX_BUDGET))
            ),
            add_batch_size=int(os.getenv("FOG_ADD_BATCH_SIZE", str(DEFAULT_ADD_BATCH_SIZE))),
            cache_max_entries=int(
                os.getenv("FOG_CACHE_MAX_ENTRIES", str(DEFAULT_CACHE_MAX_ENTRIES))
            ),
        )
        validate_config(config)
        return config


def validate_config(config: FogEngineConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if config.max_spatial_results <= 0:
        raise ConfigValidationError(
            "FOG_MAX_SPATIAL_RESULTS", config.max_spatial_results, "must be > 0"
        )

    if config.performance_mode not in PERFORMANCE_MODES:
        raise ConfigValidationError(
            "FOG_PERFORMANCE_MODE",
            config.performance_mode,
            f"must be one of {sorted(PERFORMANCE_MODES)}",
        )

    if config.fallback_strategy not in FALLBACK_STRATEGIES:
        raise ConfigValidationError(
            "FOG_FALLBACK_STRATEGY",
            config.fallback_strategy,
            f"must be one of {sorted(FALLBACK_STRATEGIES)}",
        )

    if not 0 <= config.coordinate_precision <= 15:
        raise ConfigValidationError(
            "FOG_COORDINATE_PRECISION",
            config.coordinate_precision,
            "must be between 0 and 15 (decimal places)",
        )

    if config.memory_threshold_bytes <= 0:
        raise ConfigValidationError(
            "FOG_MEMORY_THRESHOLD_BYTES", config.memory_threshold_bytes, "must be > 0 (bytes)"
        )

    if config.lod_vertex_budget <= 0:
        raise ConfigValidationError(
            "FOG_LOD_VERTEX_BUDGET", config.lod_vertex_budget, "must be > 0 (vertices)"
        )

    if config.add_batch_size <= 0:
        raise ConfigValidationError("FOG_ADD_BATCH_SIZE", config.add_batch_size, "must be > 0")

    if config.cache_max_entries < 0:
        raise ConfigValidationError(
            "FOG_CACHE_MAX_ENTRIES", config.cache_max_entries, "must be >= 0 (0 disables)"
        )


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigValidationError(key, raw, "must be a boolean (true/false)")
