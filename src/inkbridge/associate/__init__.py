"""Spatial estimation of line-to-stroke association."""

from .spatial import SpatialAssociator, points_in_band

__all__ = ["SpatialAssociator", "points_in_band"]
