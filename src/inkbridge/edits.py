"""User-initiated block merges and splits.

Both operations work by bulk-reassigning stroke associations, so the next
reconciliation pass sees the new block structure through stroke overlap
alone:

* after ``merge(A, B)`` every line that used to match A or B overlaps A's
  stroke set and is recombined into A;
* after ``split(A, y)`` the lines above *y* overlap A and the lines below
  overlap the new block.

The reconciler changes the in-memory :class:`BlockArena` and
:class:`StrokeStore` only; :func:`inkbridge.pipeline.commit_edit` writes
the result to a block store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from .associate.spatial import SpatialAssociator, points_in_band
from .config import ReconcileConfig
from .models import AnnotationBlock, BlockArena, Bounds
from .strokes.store import StrokeStore
from .text import combine_text

log = logging.getLogger(__name__)


class EditError(ValueError):
    """Raised when a merge or split refers to unknown or invalid blocks."""


@dataclass
class EditResult:
    """Consistent in-memory outcome of a merge or split."""

    kind: str  # "merge" | "split"
    survivor: AnnotationBlock
    created: Optional[AnnotationBlock] = None
    removed_id: Optional[str] = None
    reassigned: Dict[str, Optional[str]] = field(default_factory=dict)


class EditReconciler:
    """Apply merges and splits to a block arena and its stroke store."""

    def __init__(
        self,
        cfg: Optional[ReconcileConfig] = None,
        associator: Optional[SpatialAssociator] = None,
    ) -> None:
        self.cfg = cfg or ReconcileConfig()
        self.associator = associator or SpatialAssociator(self.cfg)

    def _extent(self, block: AnnotationBlock, store: StrokeStore) -> Optional[Bounds]:
        found = self.associator.bounds_of(store.strokes_for_block(block.block_id))
        return found if found is not None else block.bounds_hint

    def merge(
        self,
        arena: BlockArena,
        store: StrokeStore,
        survivor_id: str,
        absorbed_id: str,
        content: Optional[str] = None,
    ) -> EditResult:
        """Fold *absorbed_id* into *survivor_id*.

        The survivor's canonical snapshot becomes both snapshots joined in
        page order, which is exactly what a later pass recombines from the
        two original lines, so re-recognition of unchanged handwriting is
        a SKIP.  *content* is the user's merged text; by default both
        contents are joined the same way.
        """
        if survivor_id == absorbed_id:
            raise EditError("cannot merge a block with itself")
        for bid in (survivor_id, absorbed_id):
            if bid not in arena:
                raise EditError(f"unknown block {bid!r}")
        survivor = arena.get(survivor_id)
        absorbed = arena.get(absorbed_id)

        ext_s = self._extent(survivor, store)
        ext_a = self._extent(absorbed, store)
        pair = [survivor, absorbed]
        if ext_s is not None and ext_a is not None and ext_a.min_y < ext_s.min_y:
            pair.reverse()

        sep = self.cfg.combine_separator
        merged = replace(
            survivor,
            content=(
                content
                if content is not None
                else combine_text([b.content for b in pair], sep)
            ),
            canonical_snapshot=combine_text([b.canonical_snapshot for b in pair], sep),
            bounds_hint=Bounds.union_all([ext_s, ext_a]),
        )

        moved = store.reassign(absorbed_id, survivor_id)
        arena.replace(merged)
        arena.remove(absorbed_id, reparent_to=survivor_id)
        log.info(
            "merged block %s into %s (%d strokes moved)",
            absorbed_id,
            survivor_id,
            len(moved),
        )
        return EditResult(
            kind="merge",
            survivor=merged,
            removed_id=absorbed_id,
            reassigned={sid: survivor_id for sid in moved},
        )

    def split(
        self,
        arena: BlockArena,
        store: StrokeStore,
        block_id: str,
        boundary_y: float,
        new_block_id: str,
        upper_content: Optional[str] = None,
        lower_content: str = "",
        upper_canonical: str = "",
        lower_canonical: str = "",
    ) -> EditResult:
        """Split *block_id* at *boundary_y*.

        Strokes above the boundary stay with *block_id*; strokes below move
        to a new block *new_block_id* created as a sibling.  A stroke that
        crosses the boundary goes to the side holding most of its points
        (ties stay above).  Canonical snapshots default to empty so the
        next pass regenerates both halves from recognition.
        """
        if block_id not in arena:
            raise EditError(f"unknown block {block_id!r}")
        if new_block_id in arena:
            raise EditError(f"block id {new_block_id!r} already exists")
        original = arena.get(block_id)

        lower_ids = []
        for stroke in store.strokes_for_block(block_id):
            n = len(stroke.points)
            if n == 0:
                continue
            above = int(points_in_band(stroke, float("-inf"), boundary_y).sum())
            if above * 2 < n:
                lower_ids.append(stroke.stroke_id)

        lower = AnnotationBlock(
            block_id=new_block_id,
            content=lower_content,
            canonical_snapshot=lower_canonical,
            parent_id=original.parent_id,
        )
        arena.add(lower)
        for sid in lower_ids:
            store.assign_block(sid, new_block_id)

        upper = replace(
            original,
            content=original.content if upper_content is None else upper_content,
            canonical_snapshot=upper_canonical,
            bounds_hint=self.associator.bounds_of(store.strokes_for_block(block_id)),
        )
        lower = replace(
            lower,
            bounds_hint=self.associator.bounds_of(
                store.strokes_for_block(new_block_id)
            ),
        )
        arena.replace(upper)
        arena.replace(lower)
        log.info(
            "split block %s at y=%.2f (%d strokes to %s)",
            block_id,
            boundary_y,
            len(lower_ids),
            new_block_id,
        )
        return EditResult(
            kind="split",
            survivor=upper,
            created=lower,
            reassigned={sid: new_block_id for sid in lower_ids},
        )
