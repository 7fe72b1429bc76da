"""Unified fog-engine exception taxonomy.

Provides a shared base exception hierarchy for the sanitizer, the
geometry algebra, the spatial index and the fog orchestrator.  Every
domain exception inherits from ``FogEngineError`` and carries structured
context fields that enable consistent retry decisions and diagnostics.

Taxonomy categories
-------------------
- ``ValidationError`` : malformed geometry or bounds, never retryable.
- ``TransientError``  : temporary failures (store unreachable), retryable.
- ``PermanentError``  : unrecoverable domain failures, not retryable.

Read paths (algebra, queries, fog calculation) convert these into the
``errors`` list of a result object.  Only the bootstrap and write paths
of the index let them propagate.

Every exception exposes ``to_error_dict()`` for a stable structured
error payload suitable for logging.
"""

from __future__ import annotations


class FogEngineError(Exception):
    """Base exception for all fog-engine errors.

    Attributes:
        message: Human-readable error description.
        stage: Component where the error occurred
            (e.g. ``"geometry_operations"``, ``"spatial_index"``).
        code: Machine-readable error code (e.g. ``"GEOMETRY_INVALID"``).
        retryable: Whether the caller may retry the operation.
        correlation_id: Request correlation identifier.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        correlation_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.correlation_id = correlation_id
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(FogEngineError):
    """Input or domain-model validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(FogEngineError):
    """Temporary failure that may succeed on retry."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(FogEngineError):
    """Unrecoverable domain failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Concrete errors
# ---------------------------------------------------------------------------


class GeometryValidationError(ValidationError):
    """Raised when a GeoJSON value is not a usable polygon feature."""

    default_stage = "sanitizer"
    default_code = "GEOMETRY_INVALID"


class InvalidViewportError(ValidationError):
    """Raised when viewport bounds are malformed or out of range."""

    default_stage = "viewport"
    default_code = "VIEWPORT_INVALID"


class GeometryOperationError(PermanentError):
    """A boolean-algebra primitive failed.

    Only raised inside the geometry operations module; every public
    operation catches it and records it in the result's ``errors``.

    Attributes:
        operation: Operation name (``"union"``, ``"difference"``, ``"buffer"``).
        geometry_type: GeoJSON geometry type of the offending operand, if known.
        fallback_used: Whether a fallback geometry was substituted.
    """

    default_stage = "geometry_operations"
    default_code = "GEOMETRY_OPERATION_FAILED"

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        geometry_type: str = "",
        fallback_used: bool = False,
    ) -> None:
        self.operation = operation
        self.geometry_type = geometry_type
        self.fallback_used = fallback_used
        super().__init__(message)


class SpatialIndexError(PermanentError):
    """Raised when the spatial index cannot apply a mutation."""

    default_stage = "spatial_index"
    default_code = "SPATIAL_INDEX_FAILED"


class PersistenceError(TransientError):
    """Raised when the revealed-area store cannot be read."""

    default_stage = "persistence"
    default_code = "PERSISTENCE_UNAVAILABLE"


class FogCalculationError(PermanentError):
    """A fog calculation tier failed and the next tier must take over."""

    default_stage = "fog_calculation"
    default_code = "FOG_TIER_FAILED"
