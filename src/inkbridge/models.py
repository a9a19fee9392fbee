from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

# Property keys carried by every transcript block in the block store.
BOUNDS_PROPERTY = "stroke-y-bounds"
CANONICAL_PROPERTY = "canonical-transcript"

_BOUNDS_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*-\s*(-?\d+(?:\.\d+)?)\s*$")


def stroke_id_for(start_time: int) -> str:
    """Stable stroke id derived from the capture start time (``"s<ms>"``)."""
    return f"s{int(start_time)}"


@dataclass(frozen=True)
class Bounds:
    """Vertical extent ``[min_y, max_y]`` in stroke coordinates."""

    min_y: float
    max_y: float

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def is_empty(self) -> bool:
        """True for inverted bounds and for the ``0-0`` placeholder."""
        if self.max_y < self.min_y:
            return True
        return self.min_y == 0 and self.max_y == 0

    def expanded(self, margin: float) -> "Bounds":
        return Bounds(self.min_y - margin, self.max_y + margin)

    def overlap(self, other: "Bounds") -> float:
        """Length of the shared vertical interval (negative when disjoint)."""
        return min(self.max_y, other.max_y) - max(self.min_y, other.min_y)

    def overlaps(self, other: "Bounds", min_overlap: float = 0.0) -> bool:
        """Closed-interval overlap test; touching intervals overlap."""
        if self.is_empty() or other.is_empty():
            return False
        return self.overlap(other) >= min_overlap

    def union(self, other: "Bounds") -> "Bounds":
        return Bounds(min(self.min_y, other.min_y), max(self.max_y, other.max_y))

    def to_property(self, precision: int = 2) -> str:
        """Format as the ``stroke-y-bounds`` property value (``"12.5-30"``)."""
        return f"{_fmt(self.min_y, precision)}-{_fmt(self.max_y, precision)}"

    @classmethod
    def from_property(cls, value: Optional[str]) -> Optional["Bounds"]:
        """Parse a ``stroke-y-bounds`` value; None when missing or malformed."""
        if not value or not isinstance(value, str):
            return None
        m = _BOUNDS_RE.match(value)
        if not m:
            return None
        b = cls(float(m.group(1)), float(m.group(2)))
        return None if b.is_empty() else b

    @classmethod
    def union_all(cls, items: Iterable[Optional["Bounds"]]) -> Optional["Bounds"]:
        """Union of every non-empty bounds in *items*; None if there are none."""
        out: Optional[Bounds] = None
        for b in items:
            if b is None or b.is_empty():
                continue
            out = b if out is None else out.union(b)
        return out


def _fmt(value: float, precision: int) -> str:
    text = f"{round(value, precision):.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


@dataclass
class Stroke:
    """One pen-down to pen-up path.

    ``points`` is a read-only ``(N, 3)`` float array of ``(x, y, t)`` rows.
    Geometry never changes after capture; ``block_ref`` is the only
    mutable field and names the block the stroke currently belongs to.
    """

    stroke_id: str
    start_time: int
    end_time: int
    points: np.ndarray = field(compare=False, repr=False)
    block_ref: Optional[str] = None

    def __post_init__(self) -> None:
        pts = np.asarray(self.points, dtype=float)
        if pts.size == 0:
            pts = pts.reshape(0, 3)
        elif pts.ndim != 2 or pts.shape[1] not in (2, 3):
            raise ValueError(
                f"stroke {self.stroke_id}: points must be (N, 2) or (N, 3), "
                f"got {pts.shape}"
            )
        if pts.shape[1] == 2:
            pts = np.column_stack([pts, np.zeros(len(pts))])
        pts = pts.copy()
        pts.setflags(write=False)
        self.points = pts

    @classmethod
    def from_points(
        cls,
        start_time: int,
        points: Sequence[Sequence[float]],
        end_time: Optional[int] = None,
        block_ref: Optional[str] = None,
    ) -> "Stroke":
        """Build a stroke whose id is derived from *start_time*."""
        if end_time is None:
            end_time = start_time
            if len(points) and len(points[-1]) > 2:
                end_time = int(points[-1][2])
        return cls(
            stroke_id=stroke_id_for(start_time),
            start_time=int(start_time),
            end_time=int(end_time),
            points=np.asarray(points, dtype=float),
            block_ref=block_ref,
        )

    @property
    def ys(self) -> np.ndarray:
        return self.points[:, 1]

    def y_range(self) -> Optional[Bounds]:
        """Vertical extent of the stroke, or None when it has no points."""
        if len(self.points) == 0:
            return None
        ys = self.ys
        return Bounds(float(ys.min()), float(ys.max()))

    def bbox(self) -> Tuple[float, float, float, float]:
        """Bounding box as ``(x0, y0, x1, y1)``; zeros for an empty stroke."""
        if len(self.points) == 0:
            return (0.0, 0.0, 0.0, 0.0)
        xs, ys = self.points[:, 0], self.points[:, 1]
        return (float(xs.min()), float(ys.min()), float(xs.max()), float(ys.max()))

    def with_block(self, block_ref: Optional[str]) -> "Stroke":
        """Copy of this stroke pointing at *block_ref* (geometry shared)."""
        return replace(self, block_ref=block_ref)

    def to_record(self) -> dict:
        """Serialize to the compact stroke storage record."""
        return {
            "id": self.stroke_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "points": [
                [round(float(x), 3), round(float(y), 3), int(t)]
                for x, y, t in self.points
            ],
            "blockRef": self.block_ref,
        }

    @classmethod
    def from_record(cls, d: dict) -> "Stroke":
        """Deserialize a record produced by :meth:`to_record`.

        Records written before stroke ids existed only carry ``startTime``;
        the id is derived from it.
        """
        start = int(d.get("startTime", 0))
        return cls(
            stroke_id=d.get("id") or stroke_id_for(start),
            start_time=start,
            end_time=int(d.get("endTime", start)),
            points=np.asarray(d.get("points", []), dtype=float),
            block_ref=d.get("blockRef") or None,
        )


@dataclass(frozen=True)
class RecognitionLine:
    """One line of recognized text for the current stroke batch."""

    text: str
    canonical: str
    bounds: Optional[Bounds]
    indent_x: float = 0.0
    indent_level: int = 0
    parent_index: Optional[int] = None  # index of the parent line, if nested
    index: int = 0  # position in the recognizer's output

    def sort_key(self) -> Tuple[float, int]:
        """Top-to-bottom page order; lines without bounds sort last."""
        if self.bounds is None:
            return (float("inf"), self.index)
        return (self.bounds.min_y, self.index)


@dataclass
class AnnotationBlock:
    """A persisted, user-editable transcript block."""

    block_id: str
    content: str = ""
    canonical_snapshot: str = ""
    bounds_hint: Optional[Bounds] = None
    parent_id: Optional[str] = None

    def properties(self, precision: int = 2) -> Dict[str, str]:
        """Block-store properties (bounds hint + canonical snapshot)."""
        props = {CANONICAL_PROPERTY: self.canonical_snapshot}
        if self.bounds_hint is not None:
            props[BOUNDS_PROPERTY] = self.bounds_hint.to_property(precision)
        return props

    @classmethod
    def from_properties(
        cls,
        block_id: str,
        content: str,
        properties: Optional[dict],
        parent_id: Optional[str] = None,
    ) -> "AnnotationBlock":
        props = properties or {}
        return cls(
            block_id=block_id,
            content=content,
            canonical_snapshot=str(props.get(CANONICAL_PROPERTY) or ""),
            bounds_hint=Bounds.from_property(props.get(BOUNDS_PROPERTY)),
            parent_id=parent_id,
        )

    def to_dict(self) -> dict:
        d: dict = {
            "id": self.block_id,
            "content": self.content,
            "properties": self.properties(),
        }
        if self.parent_id is not None:
            d["parent"] = self.parent_id
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "AnnotationBlock":
        return cls.from_properties(
            d["id"], d.get("content", ""), d.get("properties"), d.get("parent")
        )


class BlockArena:
    """Blocks indexed by id, kept in creation order.

    Hierarchy is stored only as each block's ``parent_id``; children lists
    are rebuilt on demand.
    """

    def __init__(self, blocks: Iterable[AnnotationBlock] = ()) -> None:
        self._blocks: Dict[str, AnnotationBlock] = {}
        for b in blocks:
            self.add(b)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[AnnotationBlock]:
        return iter(list(self._blocks.values()))

    def add(self, block: AnnotationBlock) -> None:
        if block.block_id in self._blocks:
            raise KeyError(f"duplicate block id {block.block_id!r}")
        self._blocks[block.block_id] = block

    def get(self, block_id: str) -> AnnotationBlock:
        return self._blocks[block_id]

    def replace(self, block: AnnotationBlock) -> None:
        """Swap in a new version of an existing block, keeping its position."""
        if block.block_id not in self._blocks:
            raise KeyError(block.block_id)
        self._blocks[block.block_id] = block

    def remove(
        self, block_id: str, reparent_to: Optional[str] = None
    ) -> AnnotationBlock:
        """Drop *block_id*; its children move under *reparent_to*."""
        block = self._blocks.pop(block_id)
        for child in self.children(block_id):
            self._blocks[child.block_id] = replace(child, parent_id=reparent_to)
        return block

    def ids(self) -> List[str]:
        return list(self._blocks)

    def ordered(self) -> List[AnnotationBlock]:
        """Blocks in creation order."""
        return list(self._blocks.values())

    def children(self, parent_id: Optional[str]) -> List[AnnotationBlock]:
        return [b for b in self._blocks.values() if b.parent_id == parent_id]
