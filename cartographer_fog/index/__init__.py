"""Spatial indexing of revealed areas."""
