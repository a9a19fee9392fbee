"""Stroke storage format helpers.

Raw pen strokes carry pressure, tilt and colour per dot; only the
geometry and timing are kept for storage (``[x, y, t]`` per point).

Page storage object
-------------------
::

    {
      "version": "1.0",
      "pageInfo": {"section": 3, "owner": 27, "book": 3017, "page": 42},
      "strokes": [ {Stroke.to_record()} or tombstone, ... ],
      "metadata": {"lastUpdated": <ms>, "strokeCount": 12,
                   "bounds": {"minX", "maxX", "minY", "maxY"}}
    }
"""

from __future__ import annotations

import time
from typing import Any, Dict, Iterable, List, Optional

from ..models import Stroke, stroke_id_for
from .store import StrokeStore

STORAGE_VERSION = "1.0"


def format_page_name(book: int, page: int) -> str:
    """Block-store page holding one notebook page (``Smartpen Data/B3/P7``)."""
    return f"Smartpen Data/B{book}/P{page}"


def stroke_from_pen(raw: Dict[str, Any]) -> Stroke:
    """Convert a raw pen stroke (``dotArray`` of dots) to a :class:`Stroke`."""
    start = int(raw["startTime"])
    dots = raw.get("dotArray") or []
    points = [
        [float(d["x"]), float(d["y"]), float(d.get("timestamp", start))] for d in dots
    ]
    return Stroke(
        stroke_id=stroke_id_for(start),
        start_time=start,
        end_time=int(raw.get("endTime", start)),
        points=points,
        block_ref=raw.get("blockUuid") or raw.get("blockRef") or None,
    )


def calculate_bounds(strokes: Iterable[Stroke]) -> Dict[str, float]:
    """Bounding box over every point; all zeros when there are none."""
    boxes = [s.bbox() for s in strokes if len(s.points)]
    if not boxes:
        return {"minX": 0.0, "maxX": 0.0, "minY": 0.0, "maxY": 0.0}
    return {
        "minX": min(b[0] for b in boxes),
        "maxX": max(b[2] for b in boxes),
        "minY": min(b[1] for b in boxes),
        "maxY": max(b[3] for b in boxes),
    }


def merge_stroke_sources(*sources: Iterable[Stroke]) -> List[Stroke]:
    """Merge stroke lists from several sources, deduplicating by stroke id.

    The first source holding an id provides its geometry.  A ``block_ref``
    found in any source is kept when the winning copy has none, so
    associations stored remotely survive a merge with fresh local captures.
    """
    merged: Dict[str, Stroke] = {}
    for source in sources:
        for s in source:
            have = merged.get(s.stroke_id)
            if have is None:
                merged[s.stroke_id] = s
            elif have.block_ref is None and s.block_ref is not None:
                merged[s.stroke_id] = have.with_block(s.block_ref)
    return sorted(merged.values(), key=lambda s: (s.start_time, s.stroke_id))


def deduplicate_strokes(
    existing: Iterable[Stroke], incoming: Iterable[Stroke]
) -> List[Stroke]:
    """Strokes from *incoming* whose ids are not already in *existing*."""
    seen = {s.stroke_id for s in existing}
    return [s for s in incoming if s.stroke_id not in seen]


def build_page_storage_object(
    page_info: Dict[str, Any],
    store: StrokeStore,
    now_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """Serialize a page's strokes (tombstones included) with metadata."""
    live = store.all()
    return {
        "version": STORAGE_VERSION,
        "pageInfo": {
            k: page_info.get(k) for k in ("section", "owner", "book", "page")
        },
        "strokes": store.to_records(),
        "metadata": {
            "lastUpdated": int(time.time() * 1000) if now_ms is None else now_ms,
            "strokeCount": len(live),
            "bounds": calculate_bounds(live),
        },
    }


def parse_page_storage_object(data: Dict[str, Any]) -> StrokeStore:
    """Rebuild a :class:`StrokeStore` from a page storage object."""
    version = str(data.get("version", STORAGE_VERSION))
    if version.split(".")[0] != STORAGE_VERSION.split(".")[0]:
        raise ValueError(f"unsupported stroke storage version {version!r}")
    return StrokeStore.from_records(data.get("strokes") or [])
