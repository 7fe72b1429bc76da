"""Revealed-area store interface consumed by the fog engine.

The engine never persists anything itself.  It reads the full reveal
history at bootstrap and, when the spatial index cannot answer, a
bounded viewport query.  Host applications implement
``RevealedAreaStore`` over their database; ``InMemoryRevealedAreaStore``
serves tests and embedded use.

Stores may return rows whose geometry is JSON-encoded text (a whole
Feature as a string, or ``{"geojson": "..."}``).
``coerce_revealed_area_rows`` parses these leniently and drops rows
it cannot read.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any

from cartographer_fog.core.exceptions import PersistenceError
from cartographer_fog.geometry.sanitizer import compute_bbox
from cartographer_fog.models.geometry import BBox, bboxes_intersect, parse_bounds

logger = logging.getLogger("cartographer_fog.persistence.store")


class RevealedAreaStore(ABC):
    """Read-only access to persisted revealed areas."""

    @abstractmethod
    async def get_revealed_areas(self) -> list[Any]:
        """Return the full reveal history as GeoJSON features (or encoded rows)."""

    @abstractmethod
    async def get_revealed_areas_in_viewport(self, bounds: BBox, limit: int) -> list[Any]:
        """Return at most *limit* revealed areas intersecting *bounds*."""


class InMemoryRevealedAreaStore(RevealedAreaStore):
    """List-backed store; viewport filtering uses bounding boxes."""

    def __init__(self, features: Iterable[Any] | None = None) -> None:
        self._features: list[Any] = list(features or [])

    def add(self, *features: Any) -> None:
        self._features.extend(features)

    async def get_revealed_areas(self) -> list[Any]:
        return list(self._features)

    async def get_revealed_areas_in_viewport(self, bounds: BBox, limit: int) -> list[Any]:
        query = parse_bounds(bounds)
        matches: list[Any] = []
        for feature in coerce_revealed_area_rows(self._features):
            bbox = compute_bbox(feature)
            if bbox is not None and bboxes_intersect(bbox, query):
                matches.append(feature)
                if len(matches) >= limit:
                    break
        return matches


def coerce_revealed_area_rows(rows: object) -> list[dict[str, Any]]:
    """Turn store rows into GeoJSON Feature dicts.

    Accepts Feature dicts, JSON strings of Features, and mappings with a
    ``geojson`` key holding either.  Unreadable rows are logged and
    dropped; structural validity is left to the sanitizer.

    Raises:
        PersistenceError: If *rows* is not a list-like result at all.
    """
    if rows is None:
        return []
    if isinstance(rows, str | bytes | Mapping) or not isinstance(rows, Iterable):
        msg = f"Store returned {type(rows).__name__}, expected a list of revealed areas"
        raise PersistenceError(msg)

    features: list[dict[str, Any]] = []
    for i, row in enumerate(rows):
        value = row.get("geojson", row) if isinstance(row, Mapping) and "geojson" in row else row
        if isinstance(value, str | bytes):
            try:
                value = json.loads(value)
            except ValueError as exc:
                logger.warning("Dropping unparseable revealed area | row=%d | error=%s", i, exc)
                continue
        if not isinstance(value, Mapping):
            logger.warning("Dropping revealed area of type %s | row=%d", type(value).__name__, i)
            continue
        features.append(dict(value))
    return features
