"""Bounded LRU cache of fog calculation results.

Keys combine the viewport bounds (rounded to the sanitizer precision),
the options that change the output, and the spatial index revision.
Any index mutation bumps the revision, so stale entries are never hit
and simply age out.

Eviction policy:
    Least-recently-used.  On insert, if the cache exceeds ``maxsize``
    the entry that was least recently read or written is evicted.
    ``maxsize=0`` disables caching.

Stored and returned results are deep copies, so a caller that mutates
its fog GeoJSON never changes what later hits see.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections import OrderedDict
from typing import TYPE_CHECKING

from cartographer_fog.core.constants import DEFAULT_CACHE_MAX_ENTRIES, DEFAULT_COORDINATE_PRECISION

if TYPE_CHECKING:
    from cartographer_fog.models.geometry import BBox
    from cartographer_fog.models.results import FogCalculationOptions, FogCalculationResult

logger = logging.getLogger("cartographer_fog.fog.cache")

CacheKey = tuple[object, ...]


def make_cache_key(
    bounds: BBox,
    options: FogCalculationOptions,
    revision: int,
    *,
    precision: int = DEFAULT_COORDINATE_PRECISION,
) -> CacheKey:
    """Build a hashable key for one fog request."""
    return (
        tuple(round(v, precision) for v in bounds),
        options.use_spatial_indexing,
        options.max_spatial_results,
        options.performance_mode,
        options.fallback_strategy,
        options.use_level_of_detail,
        options.zoom_level,
        revision,
    )


class FogResultCache:
    """Thread-safe LRU mapping of ``CacheKey`` to ``FogCalculationResult``."""

    def __init__(self, maxsize: int = DEFAULT_CACHE_MAX_ENTRIES) -> None:
        self._maxsize = maxsize
        self._data: OrderedDict[CacheKey, FogCalculationResult] = OrderedDict()
        self._eviction_count = 0
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._maxsize > 0

    def get(self, key: CacheKey) -> FogCalculationResult | None:
        with self._lock:
            value = self._data.get(key)
            if value is None:
                self._misses += 1
                return None
            self._data.move_to_end(key)
            self._hits += 1
            return _detached(value)

    def put(self, key: CacheKey, value: FogCalculationResult) -> None:
        if not self.enabled:
            return
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = _detached(value)
            while len(self._data) > self._maxsize:
                evicted_key, _ = self._data.popitem(last=False)
                self._eviction_count += 1
                logger.debug(
                    "Fog cache eviction | revision=%s | size=%d | total_evictions=%d",
                    evicted_key[-1],
                    len(self._data),
                    self._eviction_count,
                )

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    @property
    def eviction_count(self) -> int:
        """Total number of entries evicted since construction."""
        return self._eviction_count

    def stats(self) -> dict[str, int]:
        return {
            "size": len(self._data),
            "max_size": self._maxsize,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._eviction_count,
        }


def _detached(result: FogCalculationResult) -> FogCalculationResult:
    return copy.deepcopy(result)
