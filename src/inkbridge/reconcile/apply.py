"""Commit a :class:`~inkbridge.reconcile.engine.ReconcilePlan`.

The applier is the single writer of stroke associations during a pass.
Actions are committed one at a time in plan commit order (every DELETE
after every CREATE / UPDATE / SKIP / PRESERVE).  A stroke's ``block_ref``
changes only after its action's block-store write succeeded, so a failed
action leaves its block and strokes exactly as they were.  Stroke records
are written once, after all actions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from ..config import ReconcileConfig
from ..gateway.base import GatewayWriteFailure, PersistenceGateway
from ..models import AnnotationBlock, BlockArena
from ..strokes.store import StrokeStore
from .engine import PROVISIONAL_PREFIX, ActionType, BlockAction, ReconcilePlan

log = logging.getLogger(__name__)

# Report keys, one per action type plus failures.
_COUNT_KEYS = {
    ActionType.create: "created",
    ActionType.update: "updated",
    ActionType.skip: "skipped",
    ActionType.preserve: "preserved",
    ActionType.delete: "deleted",
}


@dataclass
class ActionOutcome:
    """Result of committing one planned action."""

    action: ActionType
    block_id: str
    planned_id: str
    status: str = "success"  # "success" | "failed"
    claimed_stroke_ids: List[str] = field(default_factory=list)
    error: Optional[Dict[str, str]] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "action": self.action.value,
            "block_id": self.block_id,
            "status": self.status,
        }
        if self.planned_id != self.block_id:
            d["planned_id"] = self.planned_id
        if self.claimed_stroke_ids:
            d["claimed_stroke_ids"] = list(self.claimed_stroke_ids)
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass
class ApplyResult:
    """Per-action outcomes of a committed plan."""

    outcomes: List[ActionOutcome] = field(default_factory=list)
    id_map: Dict[str, str] = field(default_factory=dict)
    strokes_written: bool = False
    stroke_write_error: Optional[Dict[str, str]] = None

    def failed(self) -> List[ActionOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def counts(self) -> Dict[str, int]:
        out = {key: 0 for key in _COUNT_KEYS.values()}
        out["failed"] = 0
        for o in self.outcomes:
            if o.ok:
                out[_COUNT_KEYS[o.action]] += 1
            else:
                out["failed"] += 1
        return out


def _error_dict(exc: BaseException) -> Dict[str, str]:
    return {"type": type(exc).__name__, "message": str(exc)}


class ActionApplier:
    """Commit plan actions through a persistence gateway."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        page_id: str,
        cfg: Optional[ReconcileConfig] = None,
    ) -> None:
        self.gateway = gateway
        self.page_id = page_id
        self.cfg = cfg or ReconcileConfig()

    def apply(
        self, plan: ReconcilePlan, arena: BlockArena, store: StrokeStore
    ) -> ApplyResult:
        """Commit *plan*, updating *arena* and *store* as actions succeed."""
        result = ApplyResult()
        for action in plan.commit_order():
            outcome = ActionOutcome(
                action=action.action,
                block_id=action.block_id,
                planned_id=action.block_id,
            )
            try:
                self._commit(action, arena, store, result, outcome)
            except GatewayWriteFailure as exc:
                outcome.status = "failed"
                outcome.error = _error_dict(exc)
                log.warning(
                    "%s of block %s failed: %s",
                    action.action.value,
                    action.block_id,
                    exc,
                )
            result.outcomes.append(outcome)

        self._write_strokes(store, result)
        log.info(
            "applied plan on %s: %s",
            self.page_id,
            ", ".join(f"{k}={v}" for k, v in result.counts().items() if v),
        )
        return result

    # ── Individual commits ────────────────────────────────────────────

    def _commit(
        self,
        action: BlockAction,
        arena: BlockArena,
        store: StrokeStore,
        result: ApplyResult,
        outcome: ActionOutcome,
    ) -> None:
        precision = self.cfg.bounds_precision
        if action.action is ActionType.create:
            draft = AnnotationBlock(
                block_id=action.block_id,
                content=action.content or action.text,
                canonical_snapshot=action.canonical,
                bounds_hint=action.bounds,
                parent_id=self._resolve_parent(action.parent_ref, arena, result),
            )
            created = self.gateway.create_block(
                self.page_id,
                draft.parent_id,
                draft.content,
                draft.properties(precision),
            )
            block = replace(draft, block_id=created.block_id)
            arena.add(block)
            result.id_map[action.block_id] = block.block_id
            outcome.block_id = block.block_id
            self._claim(action, block.block_id, store, outcome)

        elif action.action is ActionType.update:
            current = arena.get(action.block_id)
            updated = replace(
                current,
                content=action.content if action.content is not None else action.text,
                canonical_snapshot=action.canonical,
                bounds_hint=action.bounds,
            )
            self.gateway.update_block_content(
                updated.block_id, updated.content, updated.properties(precision)
            )
            arena.replace(updated)
            self._claim(action, updated.block_id, store, outcome)

        elif action.action is ActionType.skip:
            self._claim(action, action.block_id, store, outcome)

        elif action.action is ActionType.delete:
            self.gateway.delete_block(action.block_id)
            if action.block_id in arena:
                arena.remove(action.block_id)
            store.purge_tombstones(action.block_id)

    @staticmethod
    def _claim(
        action: BlockAction,
        block_id: str,
        store: StrokeStore,
        outcome: ActionOutcome,
    ) -> None:
        for sid in sorted(action.claim_stroke_ids):
            if sid in store and store.get(sid).block_ref is None:
                store.assign_block(sid, block_id)
                outcome.claimed_stroke_ids.append(sid)

    @staticmethod
    def _resolve_parent(
        parent_ref: Optional[str], arena: BlockArena, result: ApplyResult
    ) -> Optional[str]:
        if parent_ref is None:
            return None
        if parent_ref.startswith(PROVISIONAL_PREFIX):
            # None when the parent's own CREATE failed.
            return result.id_map.get(parent_ref)
        return parent_ref if parent_ref in arena else None

    def _write_strokes(self, store: StrokeStore, result: ApplyResult) -> None:
        if not store.touched_ids():
            return
        try:
            self.gateway.write_strokes(self.page_id, store)
        except GatewayWriteFailure as exc:
            result.stroke_write_error = _error_dict(exc)
            log.error(
                "writing %d stroke associations for %s failed: %s",
                len(store.touched_ids()),
                self.page_id,
                exc,
            )
            return
        result.strokes_written = True
        store.clear_touched()
