"""Spatial association of recognized lines with input strokes.

The recognizer reports text and approximate vertical bounds only, so the
strokes behind a line are estimated from geometry: a stroke is a candidate
for a line when at least one of its points falls inside the line's
vertical band widened by a fixed tolerance.

Public API
----------
SpatialAssociator   – candidate stroke sets for lines / bands
points_in_band      – per-point band membership test shared with splitting
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional

import numpy as np

from ..config import ReconcileConfig
from ..models import Bounds, RecognitionLine, Stroke

log = logging.getLogger(__name__)

_EMPTY: FrozenSet[str] = frozenset()


def points_in_band(stroke: Stroke, lo: float, hi: float) -> np.ndarray:
    """Boolean mask of the stroke's points whose Y lies in ``[lo, hi]``."""
    if len(stroke.points) == 0:
        return np.zeros(0, dtype=bool)
    ys = stroke.ys
    return (ys >= lo) & (ys <= hi)


class SpatialAssociator:
    """Estimate which strokes produced a recognized line."""

    def __init__(self, cfg: Optional[ReconcileConfig] = None) -> None:
        self.cfg = cfg or ReconcileConfig()

    @property
    def tolerance(self) -> float:
        return self.cfg.line_tolerance

    def band(self, bounds: Optional[Bounds]) -> Optional[Bounds]:
        """Widened search band for *bounds*, or None when bounds are empty."""
        if bounds is None or bounds.is_empty():
            return None
        return bounds.expanded(self.tolerance)

    def candidates_in_bounds(
        self, bounds: Optional[Bounds], strokes: Iterable[Stroke]
    ) -> FrozenSet[str]:
        """Ids of strokes with at least one point inside the widened band."""
        band = self.band(bounds)
        if band is None:
            return _EMPTY
        hits = [
            s.stroke_id
            for s in strokes
            if bool(points_in_band(s, band.min_y, band.max_y).any())
        ]
        return frozenset(hits)

    def candidates(
        self, line: RecognitionLine, strokes: Iterable[Stroke]
    ) -> FrozenSet[str]:
        return self.candidates_in_bounds(line.bounds, strokes)

    def candidates_for_lines(
        self, lines: List[RecognitionLine], strokes: Iterable[Stroke]
    ) -> Dict[int, FrozenSet[str]]:
        """Candidate sets keyed by each line's position in *lines*."""
        pool = list(strokes)
        out: Dict[int, FrozenSet[str]] = {}
        for pos, line in enumerate(lines):
            out[pos] = self.candidates(line, pool)
            log.debug(
                "line %d %r: %d candidate strokes",
                line.index,
                line.text,
                len(out[pos]),
            )
        return out

    def bounds_of(self, strokes: Iterable[Stroke]) -> Optional[Bounds]:
        """Vertical extent covered by *strokes* (None if they have no points)."""
        return Bounds.union_all(s.y_range() for s in strokes)
