"""Stroke collection, association bookkeeping and storage format."""

from .storage import (
    build_page_storage_object,
    calculate_bounds,
    deduplicate_strokes,
    format_page_name,
    merge_stroke_sources,
    parse_page_storage_object,
    stroke_from_pen,
)
from .store import StrokeStore, StrokeStoreError

__all__ = [
    "StrokeStore",
    "StrokeStoreError",
    "build_page_storage_object",
    "calculate_bounds",
    "deduplicate_strokes",
    "format_page_name",
    "merge_stroke_sources",
    "parse_page_storage_object",
    "stroke_from_pen",
]
