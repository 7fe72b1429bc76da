"""Fog orchestration: world polygons, result cache and the fog manager."""
