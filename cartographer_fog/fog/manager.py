"""Fog orchestration over the spatial index and the revealed-area store.

``SpatialFogManager.calculate_spatial_fog`` never raises.  It tries, in
order:

1. **Spatial index** - query the in-memory index for the viewport,
   union the matches and subtract them from the world polygon.
2. **Store query** - when indexing is disabled, the index is empty or
   tier 1 failed: fetch the viewport's revealed areas straight from the
   store and compute the fog the same way.
3. **Emergency** - when tier 2 also failed: the whole world is fog.

Every tier transition is logged at ``warning`` and recorded in the
result's ``warnings``; every failure is kept in ``errors``.

Bootstrap and write paths (``initialize``, ``add_revealed_areas``,
``refresh_index``) propagate their exceptions: a lost write must be
visible to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from cartographer_fog.core.config import FogEngineConfig
from cartographer_fog.core.constants import FAST_MODE_UNION_TOLERANCE, MSG_EMERGENCY_FALLBACK
from cartographer_fog.core.exceptions import FogCalculationError, FogEngineError, PersistenceError
from cartographer_fog.fog.cache import FogResultCache, make_cache_key
from cartographer_fog.fog.world import (
    create_viewport_fog_polygon,
    create_world_fog_collection,
    create_world_fog_polygon,
    feature_collection,
    validate_viewport_bounds,
)
from cartographer_fog.geometry.engine import BooleanEngine
from cartographer_fog.geometry.operations import perform_robust_difference, union_polygons
from cartographer_fog.geometry.sanitizer import combine_complexity, ring_lengths
from cartographer_fog.index.spatial_index import (
    SpatialIndex,
    get_global_spatial_index,
    reset_global_spatial_index,
)
from cartographer_fog.models.results import (
    DataSourceStats,
    FogCalculationOptions,
    FogCalculationResult,
    FogPerformanceMetrics,
    GeometryComplexity,
    MemoryStats,
    SpatialQueryResult,
)
from cartographer_fog.persistence.store import RevealedAreaStore, coerce_revealed_area_rows
from cartographer_fog.utils.timing import elapsed_ms, now, performance_level

logger = logging.getLogger("cartographer_fog.fog.manager")


@dataclass(slots=True)
class _FogOutcome:
    """Fog geometry computed by one tier, before result assembly."""

    fog_geojson: dict[str, Any]
    source_count: int
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    fallback_used: bool = False
    query: SpatialQueryResult | None = None


class SpatialFogManager:
    """Computes fog for a viewport from an owned spatial index and a store.

    Args:
        store: Revealed-area store; ``None`` runs on the index alone.
        index: Spatial index to own (a new one by default).
        config: Engine configuration (``FogEngineConfig()`` by default).
        engine: Boolean engine shared by the index and the algebra.
    """

    def __init__(
        self,
        store: RevealedAreaStore | None = None,
        *,
        index: SpatialIndex | None = None,
        config: FogEngineConfig | None = None,
        engine: BooleanEngine | None = None,
    ) -> None:
        self._config = config or FogEngineConfig()
        self._store = store
        self._engine = engine or BooleanEngine()
        self._index = index if index is not None else SpatialIndex(self._config, engine=self._engine)
        self._cache = FogResultCache(self._config.cache_max_entries)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def store(self) -> RevealedAreaStore | None:
        return self._store

    @property
    def index(self) -> SpatialIndex:
        return self._index

    @property
    def cache(self) -> FogResultCache:
        return self._cache

    @property
    def initialized(self) -> bool:
        return self._initialized

    # -- bootstrap / write paths ---------------------------------------------

    async def initialize(self, force_reload: bool = False) -> None:
        """Load the reveal history into the index (once, unless forced).

        Raises:
            PersistenceError: If the store cannot be read.
            SpatialIndexError: If the index rejects the loaded rows.
        """
        async with self._init_lock:
            if self._initialized and not force_reload:
                return
            if self._store is None:
                logger.info(
                    "Spatial fog manager initialised without a store | features=%d",
                    self._index.get_feature_count(),
                )
                self._initialized = True
                return

            start = now()
            try:
                rows = await self._store.get_revealed_areas()
                features = coerce_revealed_area_rows(rows)
            except FogEngineError as exc:
                logger.error("Failed to load revealed areas | error=%s", exc)
                raise
            except Exception as exc:
                logger.error("Failed to load revealed areas | error=%s", exc)
                msg = f"Failed to load revealed areas: {exc}"
                raise PersistenceError(msg) from exc

            if force_reload:
                await self._index.clear()
            added = await self._index.add_features(features)
            self._initialized = True
            logger.info(
                "Spatial fog manager initialised | loaded=%d | indexed=%d | forced=%s | elapsed=%.2f ms",
                len(features),
                added,
                force_reload,
                elapsed_ms(start),
            )

    async def add_revealed_areas(self, features: Iterable[Any]) -> int:
        """Index newly revealed areas; return how many were stored.

        Raises:
            PersistenceError: If lazy initialisation cannot read the store.
            SpatialIndexError: If *features* cannot be indexed.
        """
        if not self._initialized:
            await self.initialize()
        return await self._index.add_features(features)

    async def refresh_index(self) -> None:
        """Clear the index and reload it from the store."""
        await self.initialize(force_reload=True)

    # -- pass-throughs -------------------------------------------------------------

    def get_memory_stats(self) -> MemoryStats:
        return self._index.get_memory_stats()

    def get_feature_count(self) -> int:
        return self._index.get_feature_count()

    def is_empty(self) -> bool:
        return self._index.is_empty()

    async def optimize_memory(self, aggressive: bool = False) -> MemoryStats:
        return await self._index.optimize_memory(aggressive)

    # -- fog calculation -----------------------------------------------------------

    def _resolve_options(
        self, options: FogCalculationOptions | Mapping[str, Any] | None, overrides: dict[str, Any]
    ) -> FogCalculationOptions:
        defaults = FogCalculationOptions.from_config(self._config)
        if options is None:
            resolved = defaults
        elif isinstance(options, FogCalculationOptions):
            resolved = options
        elif isinstance(options, Mapping):
            resolved = FogCalculationOptions.from_mapping(options, defaults=defaults)
        else:
            msg = f"Fog options must be FogCalculationOptions or a mapping, got {type(options).__name__}"
            raise FogCalculationError(msg)
        if overrides:
            resolved = FogCalculationOptions.from_mapping(overrides, defaults=resolved)
        return resolved

    async def calculate_spatial_fog(
        self,
        options: FogCalculationOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> FogCalculationResult:
        """Compute the fog for a viewport.  Never raises.

        Args:
            options: ``FogCalculationOptions`` or a mapping of option names
                (camelCase accepted); ``None`` uses the engine config.
            **overrides: Individual option values applied on top.
        """
        start = now()
        errors: list[str] = []
        warnings: list[str] = []
        try:
            resolved = self._resolve_options(options, overrides)
        except (FogEngineError, TypeError, ValueError) as exc:
            errors.append(f"Invalid fog options: {exc}")
            return self._emergency_result(start, errors, warnings)

        try:
            return await self._calculate(resolved, start, errors, warnings)
        except Exception as exc:
            logger.exception("Unexpected fog calculation failure")
            errors.append(f"Unexpected fog calculation failure: {exc}")
            return self._emergency_result(start, errors, warnings)

    async def _calculate(
        self,
        options: FogCalculationOptions,
        start: float,
        errors: list[str],
        warnings: list[str],
    ) -> FogCalculationResult:
        reason = "Spatial indexing disabled"
        index_ready = False
        if options.use_spatial_indexing:
            try:
                if not self._initialized:
                    await self.initialize()
                index_ready = True
            except Exception as exc:
                logger.warning("Spatial index bootstrap failed | error=%s", exc)
                errors.append(f"Spatial index calculation failed: {exc}")
                reason = "Spatial index calculation failed"

        # Keyed on the revision after bootstrap, which itself bumps it.
        cache_key = None
        if index_ready and options.use_cache and self._cache.enabled:
            try:
                bounds = validate_viewport_bounds(options.viewport_bounds)
            except FogEngineError:
                bounds = None
            if bounds is not None:
                cache_key = make_cache_key(
                    bounds, options, self._index.revision, precision=self._config.coordinate_precision
                )
                cached = self._cache.get(cache_key)
                if cached is not None:
                    logger.debug("Fog cache hit | bounds=%s", bounds)
                    return replace(cached, from_cache=True)

        if index_ready:
            try:
                if self._index.is_empty():
                    reason = "Spatial index is empty"
                else:
                    revision = self._index.revision
                    outcome = self._calculate_from_spatial_index(options)
                    result = self._assemble(
                        start, outcome, errors, warnings, used_spatial_indexing=True
                    )
                    if cache_key is not None and not result.errors and revision == self._index.revision:
                        self._cache.put(cache_key, result)
                    return result
            except Exception as exc:
                logger.warning("Spatial index tier failed | error=%s", exc)
                errors.append(f"Spatial index calculation failed: {exc}")
                reason = "Spatial index calculation failed"

        logger.warning("Falling back to store query | reason=%s", reason)
        warnings.append(f"Using database fallback: {reason}")
        try:
            outcome = await self._calculate_from_database(options)
            return self._assemble(
                start, outcome, errors, warnings, used_spatial_indexing=False, tier_fallback=True
            )
        except Exception as exc:
            logger.error("Store query tier failed | error=%s", exc)
            errors.append(f"Database calculation failed: {exc}")

        return self._emergency_result(start, errors, warnings)

    def _calculate_from_spatial_index(self, options: FogCalculationOptions) -> _FogOutcome:
        bounds = validate_viewport_bounds(options.viewport_bounds)
        query = self._index.query_viewport(
            bounds,
            max_results=options.max_spatial_results,
            use_level_of_detail=options.use_level_of_detail or options.performance_mode == "fast",
            zoom_level=options.zoom_level,
        )
        outcome = self._compute_fog(query.features, bounds, options)
        outcome.query = query
        if query.truncated:
            outcome.warnings.insert(
                0,
                f"Viewport matched {query.matched_features} revealed areas; "
                f"using the first {query.returned_features}",
            )
        return outcome

    async def _calculate_from_database(self, options: FogCalculationOptions) -> _FogOutcome:
        if self._store is None:
            msg = "No revealed-area store configured"
            raise FogCalculationError(msg)
        bounds = validate_viewport_bounds(options.viewport_bounds)
        rows = await self._store.get_revealed_areas_in_viewport(bounds, options.max_spatial_results)
        features = coerce_revealed_area_rows(rows)[: options.max_spatial_results]
        return self._compute_fog(features, bounds, options)

    def _compute_fog(
        self,
        features: list[dict[str, Any]],
        bounds: tuple[float, float, float, float],
        options: FogCalculationOptions,
    ) -> _FogOutcome:
        """``world - union(features)`` with the configured degraded shapes."""
        if not features:
            return _FogOutcome(create_world_fog_collection(), source_count=0)

        precision = self._config.coordinate_precision
        merged = union_polygons(features, engine=self._engine, precision=precision)
        outcome = _FogOutcome(
            feature_collection([]),
            source_count=len(features),
            errors=list(merged.errors),
            warnings=list(merged.warnings),
            fallback_used=merged.metrics.fallback_used,
        )
        revealed = merged.result
        if revealed is None:
            outcome.fog_geojson = create_world_fog_collection()
            return outcome

        if options.performance_mode == "fast":
            revealed = self._simplify_revealed(revealed, outcome)

        fog = perform_robust_difference(
            create_world_fog_polygon(), revealed, engine=self._engine, precision=precision
        )
        outcome.errors.extend(fog.errors)
        outcome.warnings.extend(fog.warnings)

        if fog.result is None and not fog.errors:
            # Revealed areas cover the whole world.
            return outcome
        if _is_feature(fog.result) and not fog.metrics.fallback_used:
            fog.result.setdefault("properties", {})["type"] = "fog"
            outcome.fog_geojson = feature_collection([fog.result])
            return outcome

        strategy = options.fallback_strategy
        logger.warning("Fog difference unusable | strategy=%s", strategy)
        outcome.warnings.append(f"Fog difference unusable; using {strategy} fog fallback")
        outcome.fallback_used = True
        if strategy == "viewport":
            outcome.fog_geojson = feature_collection([create_viewport_fog_polygon(bounds)])
        else:
            outcome.fog_geojson = create_world_fog_collection()
        return outcome

    def _simplify_revealed(self, revealed: dict[str, Any], outcome: _FogOutcome) -> dict[str, Any]:
        try:
            simplified = self._engine.simplify(revealed, FAST_MODE_UNION_TOLERANCE)
        except Exception as exc:
            outcome.warnings.append(f"Fast-mode simplification skipped: {exc}")
            return revealed
        return simplified if _is_feature(simplified) else revealed

    def _assemble(
        self,
        start: float,
        outcome: _FogOutcome,
        errors: list[str],
        warnings: list[str],
        *,
        used_spatial_indexing: bool,
        tier_fallback: bool = False,
    ) -> FogCalculationResult:
        errors = errors + outcome.errors
        warnings = warnings + outcome.warnings
        elapsed = elapsed_ms(start)
        if used_spatial_indexing:
            stats = DataSourceStats(from_spatial_index=outcome.source_count)
        else:
            stats = DataSourceStats(from_database=outcome.source_count)
        metrics = FogPerformanceMetrics(
            operation_type="spatial_index" if used_spatial_indexing else "database",
            execution_time_ms=elapsed,
            had_errors=bool(errors),
            fallback_used=tier_fallback or outcome.fallback_used,
            geometry_complexity=_fog_complexity(outcome.fog_geojson),
            performance_level=performance_level(elapsed),
        )
        logger.info(
            "Fog calculated | source=%s | areas=%d | fog_features=%d | errors=%d | elapsed=%.2f ms",
            metrics.operation_type,
            outcome.source_count,
            len(outcome.fog_geojson["features"]),
            len(errors),
            elapsed,
        )
        return FogCalculationResult(
            fog_geojson=outcome.fog_geojson,
            used_spatial_indexing=used_spatial_indexing,
            data_source_stats=stats,
            performance_metrics=metrics,
            errors=errors,
            warnings=warnings,
            spatial_query_result=outcome.query,
        )

    def _emergency_result(
        self, start: float, errors: list[str], warnings: list[str]
    ) -> FogCalculationResult:
        logger.error("Using emergency world fog | errors=%s", errors)
        fog = create_world_fog_collection()
        elapsed = elapsed_ms(start)
        return FogCalculationResult(
            fog_geojson=fog,
            used_spatial_indexing=False,
            data_source_stats=DataSourceStats(),
            performance_metrics=FogPerformanceMetrics(
                operation_type="emergency",
                execution_time_ms=elapsed,
                had_errors=True,
                fallback_used=True,
                geometry_complexity=_fog_complexity(fog),
                performance_level=performance_level(elapsed),
            ),
            errors=list(errors),
            warnings=[*warnings, MSG_EMERGENCY_FALLBACK],
        )


def _is_feature(value: object) -> bool:
    return isinstance(value, dict) and value.get("type") == "Feature"


def _fog_complexity(collection: dict[str, Any]) -> GeometryComplexity:
    return combine_complexity([n for f in collection["features"] for n in ring_lengths(f)])


# ---------------------------------------------------------------------------
# Process-wide convenience wrapper
# ---------------------------------------------------------------------------

_global_manager: SpatialFogManager | None = None
_global_lock = threading.Lock()


def get_global_spatial_fog_manager(
    store: RevealedAreaStore | None = None,
    *,
    config: FogEngineConfig | None = None,
) -> SpatialFogManager:
    """Return the process-wide manager, creating it on first use.

    The manager owns the process-wide spatial index.  *store* and
    *config* only apply to the first call.
    """
    global _global_manager
    with _global_lock:
        if _global_manager is None:
            _global_manager = SpatialFogManager(
                store, index=get_global_spatial_index(config), config=config
            )
        elif store is not None and store is not _global_manager.store:
            logger.warning("Global fog manager already exists; ignoring new store")
        return _global_manager


def reset_global_spatial_fog_manager() -> None:
    """Forget the process-wide manager and its index (test isolation)."""
    global _global_manager
    with _global_lock:
        _global_manager = None
    reset_global_spatial_index()


async def calculate_spatial_fog(
    viewport_bounds: Any = None, **options: Any
) -> FogCalculationResult:
    """Compute fog with the process-wide manager.  Never raises."""
    manager = get_global_spatial_fog_manager()
    return await manager.calculate_spatial_fog({"viewport_bounds": viewport_bounds, **options})
