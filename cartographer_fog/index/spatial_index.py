"""In-memory spatial index over revealed-area polygons.

Holds sanitised features with a precomputed bounding box and vertex
count, and answers viewport queries through a shapely ``STRtree`` built
lazily over the boxes.  The tree is discarded on every mutation and
rebuilt by the next query.

Lifecycle: ``Empty -> Populated`` via ``add_features``; a refresh is
``clear()`` followed by ``add_features``.

Concurrency:
    Mutable state (entry list, totals, tree, revision) is guarded by a
    re-entrant lock.  ``add_features`` sanitises a chunk outside the lock
    and applies it under the lock, yielding to the event loop between
    chunks, so a concurrent query sees whole chunks, never half of one.

Truncation:
    When a query matches more than ``max_results`` entries the first
    ``max_results`` in insertion order are returned.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import math
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from numbers import Real
from typing import TYPE_CHECKING, Any

from cartographer_fog.core.config import FogEngineConfig
from cartographer_fog.core.constants import (
    BASE_BYTES_PER_FEATURE,
    BYTES_PER_VERTEX,
    CONSIDER_CLEANUP_RATIO,
    DEFAULT_MAX_RESULTS,
    DEFAULT_ZOOM_LEVEL,
    FULL_DETAIL_ZOOM,
    LOD_MIN_VERTICES,
    LOW_DETAIL_TOLERANCE,
    MEDIUM_DETAIL_TOLERANCE,
    MEDIUM_DETAIL_ZOOM,
    RECOMMENDATION_CLEANUP_REQUIRED,
    RECOMMENDATION_CONSIDER_CLEANUP,
    RECOMMENDATION_OPTIMAL,
)
from cartographer_fog.core.exceptions import InvalidViewportError, SpatialIndexError
from cartographer_fog.geometry.engine import BooleanEngine
from cartographer_fog.geometry.sanitizer import compute_bbox, ring_lengths, sanitize, validate_geometry
from cartographer_fog.models.geometry import BBox, bboxes_intersect, expand_bounds, parse_bounds
from cartographer_fog.models.results import MemoryStats, SpatialQueryResult
from cartographer_fog.utils.timing import elapsed_ms, now

if TYPE_CHECKING:
    from shapely import STRtree

logger = logging.getLogger("cartographer_fog.index.spatial_index")


@dataclass(frozen=True, slots=True)
class IndexedFeature:
    """A sanitised feature plus its precomputed query metadata.

    Attributes:
        entry_id: Index-local sequence number (insertion order).
        feature: Sanitised GeoJSON Feature owned by the index.
        bbox: ``(min_lng, min_lat, max_lng, max_lat)``.
        vertex_count: Positions across all rings (complexity score).
        feature_id: ``properties.id`` or top-level ``id`` when present.
    """

    entry_id: int
    feature: dict[str, Any]
    bbox: BBox
    vertex_count: int
    feature_id: object = None

    @property
    def bbox_area(self) -> float:
        return (self.bbox[2] - self.bbox[0]) * (self.bbox[3] - self.bbox[1])


def feature_identity(feature: Mapping[str, Any]) -> object:
    """Return ``properties.id`` if present, else the top-level ``id``."""
    properties = feature.get("properties")
    if isinstance(properties, Mapping) and properties.get("id") is not None:
        return properties["id"]
    return feature.get("id")


def lod_tolerance(zoom_level: float) -> float | None:
    """Simplification tolerance in degrees for *zoom_level* (``None`` = full detail)."""
    if zoom_level >= FULL_DETAIL_ZOOM:
        return None
    if zoom_level >= MEDIUM_DETAIL_ZOOM:
        return MEDIUM_DETAIL_TOLERANCE
    return LOW_DETAIL_TOLERANCE


class SpatialIndex:
    """Incrementally updatable bounding-box index of revealed areas."""

    def __init__(
        self,
        config: FogEngineConfig | None = None,
        *,
        engine: BooleanEngine | None = None,
    ) -> None:
        config = config or FogEngineConfig()
        self._precision = config.coordinate_precision
        self._memory_threshold = config.memory_threshold_bytes
        self._lod_vertex_budget = config.lod_vertex_budget
        self._batch_size = config.add_batch_size
        self._engine = engine or BooleanEngine()

        self._entries: list[IndexedFeature] = []
        self._total_vertices = 0
        self._next_entry_id = 0
        self._revision = 0
        self._tree: STRtree | None = None
        self._lock = threading.RLock()

    # -- state ---------------------------------------------------------------

    @property
    def revision(self) -> int:
        """Counter bumped by every mutation; used to key cached fog results."""
        return self._revision

    def is_empty(self) -> bool:
        return not self._entries

    def get_feature_count(self) -> int:
        return len(self._entries)

    def _replace_entries(self, entries: list[IndexedFeature]) -> None:
        """Swap in a new entry list.  Caller holds the lock."""
        self._entries = entries
        self._total_vertices = sum(e.vertex_count for e in entries)
        self._tree = None
        self._revision += 1

    # -- mutation --------------------------------------------------------------

    async def clear(self) -> None:
        """Drop every entry.  Safe to call on an empty index."""
        with self._lock:
            removed = len(self._entries)
            self._replace_entries([])
        logger.debug("Spatial index cleared | removed=%d", removed)

    async def add_features(self, features: Iterable[Any]) -> int:
        """Sanitise and insert *features*; return how many were stored.

        Invalid features are skipped and logged.  Duplicates are stored
        again (the reveal history is append-only).

        Raises:
            SpatialIndexError: If *features* is not an iterable of features.
        """
        if features is None or isinstance(features, str | bytes | Mapping):
            msg = f"add_features expects an iterable of features, got {type(features).__name__}"
            raise SpatialIndexError(msg)
        try:
            items = list(features)
        except TypeError as exc:
            msg = f"add_features expects an iterable of features, got {type(features).__name__}"
            raise SpatialIndexError(msg) from exc

        added = 0
        skipped = 0
        start = now()
        for offset in range(0, len(items), self._batch_size):
            if offset:
                await asyncio.sleep(0)
            chunk = items[offset : offset + self._batch_size]
            prepared: list[tuple[dict[str, Any], BBox, int]] = []
            for position, raw in enumerate(chunk, start=offset):
                entry = self._prepare(raw)
                if entry is None:
                    skipped += 1
                    report = validate_geometry(raw)
                    logger.warning(
                        "Skipping invalid feature | index=%d | reason=%s",
                        position,
                        "; ".join(report.errors) or "no usable rings after sanitization",
                    )
                    continue
                prepared.append(entry)

            with self._lock:
                for feature, bbox, vertex_count in prepared:
                    self._entries.append(
                        IndexedFeature(
                            entry_id=self._next_entry_id,
                            feature=feature,
                            bbox=bbox,
                            vertex_count=vertex_count,
                            feature_id=feature_identity(feature),
                        )
                    )
                    self._next_entry_id += 1
                    self._total_vertices += vertex_count
                if prepared:
                    self._tree = None
                    self._revision += 1
            added += len(prepared)

        logger.info(
            "Features indexed | added=%d | skipped=%d | total=%d | elapsed=%.2f ms",
            added,
            skipped,
            len(self._entries),
            elapsed_ms(start),
        )
        return added

    def _prepare(self, raw: object) -> tuple[dict[str, Any], BBox, int] | None:
        feature = sanitize(raw, precision=self._precision)
        if feature is None:
            return None
        bbox = compute_bbox(feature)
        if bbox is None:
            return None
        return feature, bbox, sum(ring_lengths(feature))

    def remove_feature(self, feature_id: object) -> int:
        """Remove every entry whose identity equals *feature_id*; return the count."""
        if feature_id is None:
            return 0
        with self._lock:
            kept = [e for e in self._entries if e.feature_id != feature_id]
            removed = len(self._entries) - len(kept)
            if removed:
                self._replace_entries(kept)
        logger.debug("Feature removed | feature_id=%s | entries=%d", feature_id, removed)
        return removed

    # -- queries ---------------------------------------------------------------

    def _snapshot(self) -> tuple[list[IndexedFeature], STRtree | None]:
        from shapely import STRtree
        from shapely.geometry import box

        with self._lock:
            if self._entries and self._tree is None:
                self._tree = STRtree([box(*e.bbox) for e in self._entries])
            return list(self._entries), self._tree

    def query_viewport(
        self,
        bounds: object,
        *,
        max_results: int = DEFAULT_MAX_RESULTS,
        use_level_of_detail: bool = True,
        zoom_level: float = DEFAULT_ZOOM_LEVEL,
        buffer_distance: float = 0.0,
    ) -> SpatialQueryResult:
        """Return features whose bounding box intersects *bounds*.

        Never raises: malformed bounds produce an empty result.

        Args:
            bounds: ``[min_lng, min_lat, max_lng, max_lat]``.
            max_results: Truncate to the first N matches in insertion order.
            use_level_of_detail: Allow simplification when the match count
                exceeds ``max_results`` or the returned vertex total exceeds
                the configured budget.
            zoom_level: Picks the simplification tolerance.
            buffer_distance: Degrees added to every side of *bounds*.
        """
        start = now()
        try:
            query_bounds = expand_bounds(parse_bounds(bounds), max(0.0, float(buffer_distance)))
        except (InvalidViewportError, TypeError, ValueError) as exc:
            logger.warning("Viewport query rejected | bounds=%s | error=%s", bounds, exc)
            return self._empty_result(start, (0.0, 0.0, 0.0, 0.0))

        try:
            matched = self._match(query_bounds)
            limit = max(1, int(max_results))
            selected = matched[:limit]
            lod_applied = False
            if use_level_of_detail:
                returned_vertices = sum(e.vertex_count for e in selected)
                if len(matched) > limit or returned_vertices > self._lod_vertex_budget:
                    features, lod_applied = self._apply_lod(selected, zoom_level)
                else:
                    features = [copy.deepcopy(e.feature) for e in selected]
            else:
                features = [copy.deepcopy(e.feature) for e in selected]
        except Exception:
            logger.exception("Viewport query failed | bounds=%s", query_bounds)
            return self._empty_result(start, query_bounds)

        elapsed = elapsed_ms(start)
        logger.debug(
            "Viewport query | matches=%d | returned=%d | lod=%s | elapsed=%.2f ms",
            len(matched),
            len(features),
            lod_applied,
            elapsed,
        )
        return SpatialQueryResult(
            features=features,
            total_features=self.get_feature_count(),
            returned_features=len(features),
            query_time_ms=elapsed,
            level_of_detail_applied=lod_applied,
            query_bounds=query_bounds,
            matched_features=len(matched),
        )

    def query_radius(
        self,
        center: object,
        radius_degrees: float,
        *,
        max_results: int = DEFAULT_MAX_RESULTS,
        use_level_of_detail: bool = True,
        zoom_level: float = DEFAULT_ZOOM_LEVEL,
    ) -> SpatialQueryResult:
        """Return features within *radius_degrees* of a ``[lng, lat]`` point.

        The bounding-box candidates are refined by planar distance from
        *center* to each geometry.  Never raises.
        """
        from shapely.geometry import Point, shape

        start = now()
        if (
            not isinstance(center, list | tuple)
            or len(center) < 2
            or not all(_finite(v) for v in center[:2])
            or not _finite(radius_degrees)
            or radius_degrees < 0
        ):
            logger.warning("Radius query rejected | center=%s | radius=%s", center, radius_degrees)
            return self._empty_result(start, (0.0, 0.0, 0.0, 0.0))

        lng, lat = float(center[0]), float(center[1])
        bounds = expand_bounds((lng, lat, lng, lat), float(radius_degrees))
        try:
            origin = Point(lng, lat)
            matched = [
                e
                for e in self._match(bounds)
                if origin.distance(shape(e.feature["geometry"])) <= radius_degrees
            ]
            limit = max(1, int(max_results))
            selected = matched[:limit]
            if use_level_of_detail and len(matched) > limit:
                features, lod_applied = self._apply_lod(selected, zoom_level)
            else:
                features, lod_applied = [copy.deepcopy(e.feature) for e in selected], False
        except Exception:
            logger.exception("Radius query failed | center=[%s, %s]", lng, lat)
            return self._empty_result(start, bounds)

        return SpatialQueryResult(
            features=features,
            total_features=self.get_feature_count(),
            returned_features=len(features),
            query_time_ms=elapsed_ms(start),
            level_of_detail_applied=lod_applied,
            query_bounds=bounds,
            matched_features=len(matched),
        )

    def _match(self, query_bounds: BBox) -> list[IndexedFeature]:
        from shapely.geometry import box

        entries, tree = self._snapshot()
        if tree is None:
            return []
        candidates = sorted(int(i) for i in tree.query(box(*query_bounds)))
        return [entries[i] for i in candidates if bboxes_intersect(entries[i].bbox, query_bounds)]

    def _apply_lod(
        self, selected: list[IndexedFeature], zoom_level: float
    ) -> tuple[list[dict[str, Any]], bool]:
        tolerance = lod_tolerance(zoom_level)
        if tolerance is None:
            return [copy.deepcopy(e.feature) for e in selected], False

        applied = False
        features: list[dict[str, Any]] = []
        for entry in selected:
            simplified = None
            if entry.vertex_count > LOD_MIN_VERTICES:
                simplified = self._simplify(entry.feature, tolerance)
            if simplified is None or sum(ring_lengths(simplified)) >= entry.vertex_count:
                features.append(copy.deepcopy(entry.feature))
                continue
            features.append(simplified)
            applied = True
        return features, applied

    def _simplify(self, feature: dict[str, Any], tolerance: float) -> dict[str, Any] | None:
        """Simplify and re-sanitise *feature*; ``None`` if it degenerates."""
        try:
            simplified = self._engine.simplify(feature, tolerance)
        except Exception as exc:
            logger.debug("Simplification failed | tolerance=%s | error=%s", tolerance, exc)
            return None
        if simplified is None:
            return None
        if "id" in feature:
            simplified["id"] = copy.deepcopy(feature["id"])
        simplified["properties"] = copy.deepcopy(feature.get("properties") or {})
        return sanitize(simplified, precision=self._precision)

    def _empty_result(self, start: float, query_bounds: BBox) -> SpatialQueryResult:
        return SpatialQueryResult(
            features=[],
            total_features=self.get_feature_count(),
            returned_features=0,
            query_time_ms=elapsed_ms(start),
            level_of_detail_applied=False,
            query_bounds=query_bounds,
        )

    # -- memory ----------------------------------------------------------------

    def get_memory_stats(self) -> MemoryStats:
        """Estimate the index footprint from feature and vertex counts."""
        with self._lock:
            count = len(self._entries)
            vertices = self._total_vertices
        estimated = count * BASE_BYTES_PER_FEATURE + vertices * BYTES_PER_VERTEX
        if estimated > self._memory_threshold:
            recommendation = RECOMMENDATION_CLEANUP_REQUIRED
        elif estimated > self._memory_threshold * CONSIDER_CLEANUP_RATIO:
            recommendation = RECOMMENDATION_CONSIDER_CLEANUP
        else:
            recommendation = RECOMMENDATION_OPTIMAL
        return MemoryStats(
            estimated_memory_usage=estimated,
            feature_count=count,
            average_complexity=vertices / count if count else 0.0,
            memory_per_feature=estimated / count if count else 0.0,
            recommendation=recommendation,
        )

    async def optimize_memory(self, aggressive: bool = False) -> MemoryStats:
        """Shrink the index and return the resulting memory stats.

        Always merges entries with identical geometry and identity, and
        drops the cached tree.  ``aggressive`` also simplifies stored
        geometries (lossy).

        Writes that land while the compaction yields are kept: entries
        added after the snapshot are appended, and entries removed since
        are not restored.
        """
        before = self.get_memory_stats()
        with self._lock:
            entries = list(self._entries)
            snapshot_next_id = self._next_entry_id

        seen: set[str] = set()
        unique: list[IndexedFeature] = []
        for entry in entries:
            key = json.dumps(
                [entry.feature_id, entry.feature["geometry"]], sort_keys=True, default=str
            )
            if key in seen:
                continue
            seen.add(key)
            unique.append(entry)

        if aggressive:
            compacted: list[IndexedFeature] = []
            for position, entry in enumerate(unique):
                if position and position % self._batch_size == 0:
                    await asyncio.sleep(0)
                compacted.append(self._compact(entry))
            unique = compacted

        with self._lock:
            live = {e.entry_id for e in self._entries}
            merged = [e for e in unique if e.entry_id in live]
            merged.extend(e for e in self._entries if e.entry_id >= snapshot_next_id)
            self._replace_entries(merged)
        after = self.get_memory_stats()
        logger.info(
            "Spatial index optimised | aggressive=%s | features=%d->%d | bytes=%d->%d",
            aggressive,
            before.feature_count,
            after.feature_count,
            before.estimated_memory_usage,
            after.estimated_memory_usage,
        )
        return after

    def _compact(self, entry: IndexedFeature) -> IndexedFeature:
        if entry.vertex_count <= LOD_MIN_VERTICES:
            return entry
        simplified = self._simplify(entry.feature, MEDIUM_DETAIL_TOLERANCE)
        if simplified is None:
            return entry
        vertex_count = sum(ring_lengths(simplified))
        bbox = compute_bbox(simplified)
        if bbox is None or vertex_count >= entry.vertex_count:
            return entry
        return IndexedFeature(
            entry_id=entry.entry_id,
            feature=simplified,
            bbox=bbox,
            vertex_count=vertex_count,
            feature_id=entry.feature_id,
        )


def _finite(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


# ---------------------------------------------------------------------------
# Process-wide convenience instance
# ---------------------------------------------------------------------------

_global_index: SpatialIndex | None = None
_global_lock = threading.Lock()


def get_global_spatial_index(config: FogEngineConfig | None = None) -> SpatialIndex:
    """Return the process-wide index, creating it on first use."""
    global _global_index
    with _global_lock:
        if _global_index is None:
            _global_index = SpatialIndex(config)
        return _global_index


def reset_global_spatial_index() -> None:
    """Forget the process-wide index (test isolation)."""
    global _global_index
    with _global_lock:
        _global_index = None
