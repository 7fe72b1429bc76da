"""Cartographer spatial fog engine.

Tracks which parts of the world map have been revealed and computes the
inverse ("fog") for a map viewport.  Revealed-area polygons live in an
in-memory spatial index; ``fog.manager`` subtracts them from the world
polygon with a three-tier fallback that always yields renderable fog.
"""

__version__ = "0.1.0"
