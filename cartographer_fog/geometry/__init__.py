"""Geometry sanitizer and robust polygon boolean algebra.

- sanitizer: validate and normalise untrusted GeoJSON polygon features
- engine: shapely/pyproj-backed union, difference and buffer primitives
- operations: never-raising union / difference / buffer with diagnostics
"""
