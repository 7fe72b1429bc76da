"""Shared timing helpers used by the algebra, index and orchestrator."""

from __future__ import annotations

import time

#: Floor for reported durations so fast operations never report zero.
MIN_REPORTED_MS = 0.001


def now() -> float:
    """Return a monotonic timestamp in seconds."""
    return time.perf_counter()


def elapsed_ms(start: float) -> float:
    """Return milliseconds since *start* (from ``now()``), never below 0.001."""
    return max(MIN_REPORTED_MS, (time.perf_counter() - start) * 1000.0)


def performance_level(execution_time_ms: float) -> str:
    """Classify an end-to-end duration as ``FAST``, ``MODERATE`` or ``SLOW``."""
    if execution_time_ms > 100:
        return "SLOW"
    if execution_time_ms > 50:
        return "MODERATE"
    return "FAST"
