"""Incremental reconciliation of recognized lines against persisted blocks.

Given the page's existing blocks, its strokes (with their ``block_ref``)
and a fresh list of recognized lines, decide per block whether to SKIP,
UPDATE, PRESERVE or DELETE it, and which leftover lines become new blocks
(CREATE).  The engine only plans: it performs no I/O and never mutates its
inputs.  :mod:`inkbridge.reconcile.apply` commits a plan.

Matching
--------
1. **Stroke overlap** – a line matches a block when the line's candidate
   stroke set (see :class:`~inkbridge.associate.SpatialAssociator`)
   intersects the block's current stroke set.
2. **Bounds fallback** – only for legacy blocks with no recorded strokes
   (live or deleted): the block's stored bounds hint is compared with the
   line bounds.  Exactly one overlapping line is a match; zero or several
   leave the block untouched.

Blocks are visited in creation order and each line is consumed by the
first block that matches it.  Several lines matching one block are joined
top-to-bottom, which is how merged blocks are recomposed.

A leftover line is only created when it can claim at least one unassociated
stroke; the rest are listed in :attr:`ReconcilePlan.unplaced`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from ..associate.spatial import SpatialAssociator
from ..config import ReconcileConfig
from ..models import AnnotationBlock, BlockArena, Bounds, RecognitionLine, Stroke
from ..strokes.store import StrokeStore
from ..text import combine_text, preserve_decorations

log = logging.getLogger(__name__)

PROVISIONAL_PREFIX = "new-"


class ActionType(str, Enum):
    """What a pass does to one block."""

    create = "create"
    update = "update"
    skip = "skip"
    preserve = "preserve"
    delete = "delete"


@dataclass
class BlockAction:
    """One planned change to the block store.

    ``block_id`` is a provisional ``"new-<n>"`` id for CREATE actions; the
    applier swaps it for the id the store assigns.  ``claim_stroke_ids``
    lists the unassociated strokes that will point at the block once the
    action has been committed.
    """

    action: ActionType
    block_id: str
    line_positions: Tuple[int, ...] = ()
    text: str = ""
    canonical: str = ""
    content: Optional[str] = None
    bounds: Optional[Bounds] = None
    claim_stroke_ids: FrozenSet[str] = frozenset()
    parent_ref: Optional[str] = None
    reason: str = ""

    def to_dict(self) -> dict:
        d: dict = {
            "action": self.action.value,
            "block_id": self.block_id,
            "reason": self.reason,
        }
        if self.line_positions:
            d["lines"] = list(self.line_positions)
        if self.canonical:
            d["canonical"] = self.canonical
        if self.content is not None:
            d["content"] = self.content
        if self.bounds is not None:
            d["bounds"] = self.bounds.to_property()
        if self.claim_stroke_ids:
            d["claim_stroke_ids"] = sorted(self.claim_stroke_ids)
        if self.parent_ref is not None:
            d["parent_ref"] = self.parent_ref
        return d


@dataclass
class ReconcilePlan:
    """Every action of one pass, in evaluation order."""

    actions: List[BlockAction] = field(default_factory=list)
    candidates: Dict[int, FrozenSet[str]] = field(default_factory=dict)
    # Positions of leftover lines no stroke could be claimed for.
    unplaced: List[int] = field(default_factory=list)

    def by_type(self, action: ActionType) -> List[BlockAction]:
        return [a for a in self.actions if a.action is action]

    def counts(self) -> Dict[str, int]:
        out = {t.value: 0 for t in ActionType}
        for a in self.actions:
            out[a.action.value] += 1
        return out

    def commit_order(self) -> List[BlockAction]:
        """Actions ordered for commit: all DELETEs go last."""
        keep = [a for a in self.actions if a.action is not ActionType.delete]
        return keep + self.by_type(ActionType.delete)

    def is_noop(self) -> bool:
        """True when the plan changes no block and claims no stroke."""
        return all(
            a.action in (ActionType.skip, ActionType.preserve)
            and not a.claim_stroke_ids
            for a in self.actions
        )


class ReconciliationEngine:
    """Plan block actions for one reconciliation pass."""

    def __init__(
        self,
        cfg: Optional[ReconcileConfig] = None,
        associator: Optional[SpatialAssociator] = None,
    ) -> None:
        self.cfg = cfg or ReconcileConfig()
        self.associator = associator or SpatialAssociator(self.cfg)

    def plan(
        self,
        blocks: BlockArena | Iterable[AnnotationBlock],
        store: StrokeStore,
        lines: Sequence[RecognitionLine],
        scope: Optional[Iterable[Stroke]] = None,
    ) -> ReconcilePlan:
        """Compute the actions for *lines* against *blocks*.

        *scope* is the stroke set that was sent to the recognizer; it
        defaults to every live stroke.  Candidate stroke sets are computed
        against it, so a "new content only" pass never reaches into
        strokes already owned by a block.
        """
        ordered = blocks.ordered() if isinstance(blocks, BlockArena) else list(blocks)
        lines = list(lines)
        pool = list(scope) if scope is not None else store.all()
        candidates = self.associator.candidates_for_lines(lines, pool)

        plan = ReconcilePlan(candidates=candidates)
        consumed: Set[int] = set()
        claimed: Set[str] = set()
        line_block: Dict[int, str] = {}

        for block in ordered:
            action = self._evaluate_block(
                block, store, lines, candidates, consumed, claimed
            )
            for pos in action.line_positions:
                consumed.add(pos)
                line_block[lines[pos].index] = block.block_id
            claimed |= action.claim_stroke_ids
            plan.actions.append(action)
            log.debug(
                "block %s: %s (%s)", block.block_id, action.action.value, action.reason
            )

        leftovers = sorted(
            (pos for pos in range(len(lines)) if pos not in consumed),
            key=lambda pos: lines[pos].sort_key(),
        )
        n = 0
        for pos in leftovers:
            line = lines[pos]
            if not line.canonical.strip():
                log.debug("line %d is blank; not creating a block", line.index)
                continue
            claim = self._claimable(candidates.get(pos, frozenset()), store, claimed)
            if not claim:
                # Every created block owns at least one stroke.
                log.warning(
                    "line %d (%r) has no unassociated strokes; not creating a block",
                    line.index,
                    line.text,
                )
                plan.unplaced.append(pos)
                continue
            claimed |= claim
            provisional = f"{PROVISIONAL_PREFIX}{n}"
            n += 1
            parent_ref = None
            if line.parent_index is not None:
                parent_ref = line_block.get(line.parent_index)
            line_block[line.index] = provisional
            plan.actions.append(
                BlockAction(
                    action=ActionType.create,
                    block_id=provisional,
                    line_positions=(pos,),
                    text=line.text.strip(),
                    canonical=line.canonical,
                    content=line.text.strip(),
                    bounds=line.bounds,
                    claim_stroke_ids=claim,
                    parent_ref=parent_ref,
                    reason="unmatched-line",
                )
            )

        counts = plan.counts()
        log.info(
            "planned %d actions: %s",
            len(plan.actions),
            ", ".join(f"{k}={v}" for k, v in counts.items() if v),
        )
        return plan

    # ── Per-block evaluation ──────────────────────────────────────────

    def _evaluate_block(
        self,
        block: AnnotationBlock,
        store: StrokeStore,
        lines: List[RecognitionLine],
        candidates: Dict[int, FrozenSet[str]],
        consumed: Set[int],
        claimed: Set[str],
    ) -> BlockAction:
        live = store.stroke_ids_for_block(block.block_id)
        if live:
            matched = [
                pos
                for pos in range(len(lines))
                if pos not in consumed and candidates.get(pos, frozenset()) & live
            ]
            if not matched:
                return BlockAction(
                    ActionType.preserve, block.block_id, reason="strokes-present"
                )
            return self._match(block, store, lines, matched, candidates, claimed)

        if store.tombstoned_ids_for_block(block.block_id):
            return BlockAction(ActionType.delete, block.block_id, reason="orphaned")

        # Legacy block: no stroke was ever recorded for it.
        if block.bounds_hint is None:
            return BlockAction(
                ActionType.preserve, block.block_id, reason="legacy-no-bounds"
            )
        matched = [
            pos
            for pos in range(len(lines))
            if pos not in consumed
            and lines[pos].bounds is not None
            and block.bounds_hint.overlaps(
                lines[pos].bounds, self.cfg.bounds_overlap_min
            )
        ]
        if len(matched) != 1:
            if matched:
                log.warning(
                    "legacy block %s overlaps %d lines; left untouched",
                    block.block_id,
                    len(matched),
                )
            return BlockAction(
                ActionType.preserve, block.block_id, reason="ambiguous-legacy-match"
            )
        return self._match(block, store, lines, matched, candidates, claimed)

    def _match(
        self,
        block: AnnotationBlock,
        store: StrokeStore,
        lines: List[RecognitionLine],
        matched: List[int],
        candidates: Dict[int, FrozenSet[str]],
        claimed: Set[str],
    ) -> BlockAction:
        matched = sorted(matched, key=lambda pos: lines[pos].sort_key())
        sep = self.cfg.combine_separator
        text = combine_text([lines[p].text for p in matched], sep)
        canonical = combine_text([lines[p].canonical for p in matched], sep)

        pool: Set[str] = set()
        for pos in matched:
            pool |= candidates.get(pos, frozenset())
        claim = self._claimable(pool, store, claimed)

        if canonical == block.canonical_snapshot:
            return BlockAction(
                ActionType.skip,
                block.block_id,
                line_positions=tuple(matched),
                text=text,
                canonical=canonical,
                claim_stroke_ids=claim,
                reason="canonical-unchanged",
            )

        bounds = Bounds.union_all(lines[p].bounds for p in matched)
        return BlockAction(
            ActionType.update,
            block.block_id,
            line_positions=tuple(matched),
            text=text,
            canonical=canonical,
            content=preserve_decorations(block.content, text),
            bounds=bounds if bounds is not None else block.bounds_hint,
            claim_stroke_ids=claim,
            reason="canonical-changed",
        )

    @staticmethod
    def _claimable(
        pool: Iterable[str], store: StrokeStore, claimed: Set[str]
    ) -> FrozenSet[str]:
        """Unassociated live strokes in *pool* not already claimed this pass."""
        out = set()
        for sid in pool:
            if sid in claimed or sid not in store:
                continue
            if store.get(sid).block_ref is None:
                out.add(sid)
        return frozenset(out)
