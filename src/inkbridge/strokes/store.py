"""Per-page stroke collection and stroke-to-block association bookkeeping.

Each live stroke carries a nullable ``block_ref``.  Together with the set
of unassociated strokes, the per-block stroke sets form a disjoint
partition of the page's live strokes.

Strokes removed by the user leave a tombstone that remembers which block
they belonged to.  That is what lets a pass tell a block whose strokes were
all erased (an orphan, to be deleted) apart from a block that never had
recorded strokes at all (a legacy block, to be matched by position).
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set

from ..models import Stroke

log = logging.getLogger(__name__)


class StrokeStoreError(KeyError):
    """Raised for operations on stroke ids the store does not hold."""


class StrokeStore:
    """Live strokes for one page plus tombstones of deleted strokes."""

    def __init__(
        self,
        strokes: Iterable[Stroke] = (),
        tombstones: Optional[Dict[str, Optional[str]]] = None,
    ) -> None:
        self._strokes: Dict[str, Stroke] = {}
        self._tombstones: Dict[str, Optional[str]] = dict(tombstones or {})
        self._touched: Set[str] = set()
        for s in strokes:
            self.add(s)

    # ── Collection protocol ───────────────────────────────────────────

    def __contains__(self, stroke_id: object) -> bool:
        return stroke_id in self._strokes

    def __len__(self) -> int:
        return len(self._strokes)

    def __iter__(self) -> Iterator[Stroke]:
        return iter(self.all())

    def get(self, stroke_id: str) -> Stroke:
        try:
            return self._strokes[stroke_id]
        except KeyError:
            raise StrokeStoreError(f"unknown stroke {stroke_id!r}") from None

    def all(self) -> List[Stroke]:
        """Live strokes in capture order."""
        return sorted(
            self._strokes.values(), key=lambda s: (s.start_time, s.stroke_id)
        )

    def copy(self) -> "StrokeStore":
        out = StrokeStore(tombstones=self._tombstones)
        out._strokes = dict(self._strokes)
        return out

    # ── Mutation ──────────────────────────────────────────────────────

    def add(self, stroke: Stroke) -> bool:
        """Add *stroke* unless its id is already live or was deleted.

        When the id is already live and only the incoming copy carries an
        association, the association is adopted.
        """
        sid = stroke.stroke_id
        if sid in self._tombstones:
            log.debug("ignoring re-import of deleted stroke %s", sid)
            return False
        existing = self._strokes.get(sid)
        if existing is not None:
            if existing.block_ref is None and stroke.block_ref is not None:
                self._strokes[sid] = existing.with_block(stroke.block_ref)
            return False
        self._strokes[sid] = stroke
        return True

    def add_many(self, strokes: Iterable[Stroke]) -> int:
        """Add several strokes; returns how many were new."""
        return sum(1 for s in strokes if self.add(s))

    def assign_block(self, stroke_id: str, block_id: Optional[str]) -> None:
        """Point *stroke_id* at *block_id* (None clears the association)."""
        stroke = self.get(stroke_id)
        if stroke.block_ref == block_id:
            return
        self._strokes[stroke_id] = stroke.with_block(block_id)
        self._touched.add(stroke_id)

    def reassign(self, from_block: str, to_block: Optional[str]) -> List[str]:
        """Move every live stroke of *from_block* to *to_block*.

        Tombstones follow as well so orphan detection keeps working for
        the receiving block.
        """
        moved = [s.stroke_id for s in self.all() if s.block_ref == from_block]
        for sid in moved:
            self.assign_block(sid, to_block)
        for sid, ref in list(self._tombstones.items()):
            if ref == from_block:
                self._tombstones[sid] = to_block
        return moved

    def delete_stroke(self, stroke_id: str) -> Stroke:
        """Remove a live stroke, leaving a tombstone with its association."""
        stroke = self._strokes.pop(stroke_id, None)
        if stroke is None:
            raise StrokeStoreError(f"unknown stroke {stroke_id!r}")
        self._tombstones[stroke_id] = stroke.block_ref
        self._touched.add(stroke_id)
        return stroke

    def purge_tombstones(self, block_id: str) -> int:
        """Forget tombstones of *block_id* once that block is gone."""
        dead = [sid for sid, ref in self._tombstones.items() if ref == block_id]
        for sid in dead:
            del self._tombstones[sid]
            self._touched.add(sid)
        return len(dead)

    # ── Queries ───────────────────────────────────────────────────────

    def strokes_for_block(self, block_id: str) -> List[Stroke]:
        return [s for s in self.all() if s.block_ref == block_id]

    def stroke_ids_for_block(self, block_id: str) -> FrozenSet[str]:
        return frozenset(
            s.stroke_id for s in self._strokes.values() if s.block_ref == block_id
        )

    def tombstoned_ids_for_block(self, block_id: str) -> FrozenSet[str]:
        return frozenset(
            sid for sid, ref in self._tombstones.items() if ref == block_id
        )

    def unassociated_strokes(self) -> List[Stroke]:
        """Strokes belonging to no block; the input of the next recognition."""
        return [s for s in self.all() if s.block_ref is None]

    def existing_stroke_ids(self) -> FrozenSet[str]:
        return frozenset(self._strokes)

    def deleted_stroke_ids(self) -> FrozenSet[str]:
        return frozenset(self._tombstones)

    def partition(self) -> Dict[Optional[str], FrozenSet[str]]:
        """Live stroke ids grouped by block (``None`` = unassociated)."""
        groups: Dict[Optional[str], Set[str]] = {}
        for s in self._strokes.values():
            groups.setdefault(s.block_ref, set()).add(s.stroke_id)
        return {k: frozenset(v) for k, v in groups.items()}

    def dangling_stroke_ids(self, known_block_ids: Iterable[str]) -> List[str]:
        """Live strokes that point at a block not in *known_block_ids*."""
        known = set(known_block_ids)
        return [
            s.stroke_id
            for s in self.all()
            if s.block_ref is not None and s.block_ref not in known
        ]

    def touched_ids(self) -> FrozenSet[str]:
        """Stroke ids whose association changed since :meth:`clear_touched`."""
        return frozenset(self._touched)

    def clear_touched(self) -> None:
        self._touched.clear()

    # ── Storage round-trip ────────────────────────────────────────────

    def to_records(self) -> List[dict]:
        """Stroke records for persistence, tombstones included."""
        records = [s.to_record() for s in self.all()]
        for sid, ref in sorted(self._tombstones.items()):
            records.append({"id": sid, "deleted": True, "blockRef": ref})
        return records

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "StrokeStore":
        store = cls()
        for rec in records:
            if rec.get("deleted"):
                store._tombstones[rec["id"]] = rec.get("blockRef") or None
                store._strokes.pop(rec["id"], None)
            else:
                store.add(Stroke.from_record(rec))
        return store
