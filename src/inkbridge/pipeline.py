"""Reconciliation passes: locking, timing and pass-result recording.

Two entry points run a full pass against a page:

    read blocks + strokes → recognize → plan → apply → report

* :func:`transcribe_new_content` recognizes only the page's unassociated
  strokes, so blocks that already own strokes are never reached.
* :func:`refresh_full_page` merges remote, cached and freshly captured
  strokes and re-recognizes everything on the page.

Both return a :class:`PassReport`.  Oracle and read failures are fatal to
the pass and raised before anything is written; per-action write failures
are recorded in the report.  :func:`commit_edit` persists the in-memory
result of a merge or split.

Only one pass may run per page at a time; :class:`PageLockRegistry`
serializes them.
"""

from __future__ import annotations

import logging
import threading
import time
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Iterable, List, Optional

from .config import ReconcileConfig
from .edits import EditResult
from .gateway.base import GatewayWriteFailure, PersistenceGateway
from .models import BlockArena, Stroke
from .oracle.base import RecognitionOracle
from .reconcile.apply import ActionApplier, ApplyResult
from .reconcile.engine import ReconciliationEngine
from .strokes.storage import merge_stroke_sources
from .strokes.store import StrokeStore

logger = logging.getLogger("inkbridge.pipeline")

MODE_NEW = "new"
MODE_REFRESH = "refresh"


class PassInFlightError(RuntimeError):
    """Another pass already holds the page."""


# ── Per-page locking ───────────────────────────────────────────────────


class PageLockRegistry:
    """One lock per page id, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, page_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(page_id)
            if lock is None:
                lock = self._locks[page_id] = threading.Lock()
            return lock

    def is_locked(self, page_id: str) -> bool:
        return self._lock_for(page_id).locked()

    @contextmanager
    def acquire(
        self, page_id: str, blocking: bool = True
    ) -> Generator[None, None, None]:
        """Hold the page's lock for the duration of the ``with`` block.

        With ``blocking=False`` a page that is already held raises
        :class:`PassInFlightError` instead of waiting.
        """
        lock = self._lock_for(page_id)
        if not lock.acquire(blocking):
            raise PassInFlightError(f"a pass is already running for {page_id!r}")
        try:
            yield
        finally:
            lock.release()


_default_locks = PageLockRegistry()


# ── Pass result ────────────────────────────────────────────────────────


@dataclass
class PassReport:
    """Outcome record for one reconciliation pass."""

    mode: str
    page_id: str
    status: str = "skipped"  # "success" | "partial" | "skipped" | "failed"
    duration_ms: int = 0
    strokes_total: int = 0
    strokes_recognized: int = 0
    lines_recognized: int = 0
    lines_unplaced: List[str] = field(default_factory=list)
    strokes_released: int = 0
    plan_counts: Dict[str, int] = field(default_factory=dict)
    actions: List[Dict[str, Any]] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    outcomes: List[Dict[str, Any]] = field(default_factory=list)
    id_map: Dict[str, str] = field(default_factory=dict)
    strokes_written: bool = False
    stroke_write_error: Optional[Dict[str, str]] = None
    error: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the report to a JSON-compatible dict."""
        d: Dict[str, Any] = {
            "mode": self.mode,
            "page_id": self.page_id,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "strokes_total": self.strokes_total,
            "strokes_recognized": self.strokes_recognized,
            "lines_recognized": self.lines_recognized,
        }
        if self.lines_unplaced:
            d["lines_unplaced"] = self.lines_unplaced
        if self.strokes_released:
            d["strokes_released"] = self.strokes_released
        if self.plan_counts:
            d["plan_counts"] = self.plan_counts
        if self.actions:
            d["actions"] = self.actions
        if self.counts:
            d["counts"] = self.counts
        if self.outcomes:
            d["outcomes"] = self.outcomes
        if self.id_map:
            d["id_map"] = self.id_map
        d["strokes_written"] = self.strokes_written
        if self.stroke_write_error is not None:
            d["stroke_write_error"] = self.stroke_write_error
        if self.error is not None:
            d["error"] = self.error
        return d


@contextmanager
def run_pass(mode: str, page_id: str) -> Generator[PassReport, None, None]:
    """Time a pass and record a failure before re-raising it.

    Usage::

        with run_pass("new", page_id) as report:
            # … do the work …
            report.status = "success"
    """
    report = PassReport(mode=mode, page_id=page_id)
    t0 = time.perf_counter()
    try:
        yield report
    except Exception as exc:
        report.status = "failed"
        report.error = {
            "type": type(exc).__name__,
            "message": str(exc),
            "stack": traceback.format_exc(),
        }
        logger.error("%s pass on %s failed: %s", mode, page_id, exc)
        raise
    finally:
        report.duration_ms = int((time.perf_counter() - t0) * 1000)


def _record(report: PassReport, result: ApplyResult) -> None:
    report.counts = result.counts()
    report.outcomes = [o.to_dict() for o in result.outcomes]
    report.id_map = dict(result.id_map)
    report.strokes_written = result.strokes_written
    report.stroke_write_error = result.stroke_write_error
    partial = result.failed() or result.stroke_write_error is not None
    report.status = "partial" if partial else "success"


def _release_dangling(
    report: PassReport, arena: BlockArena, store: StrokeStore
) -> None:
    """Unassociate strokes whose block is no longer in the block store."""
    dangling = store.dangling_stroke_ids(arena.ids())
    for sid in dangling:
        store.assign_block(sid, None)
    report.strokes_released = len(dangling)
    if dangling:
        logger.warning(
            "%s: %d strokes pointed at missing blocks; returned to the pool",
            report.page_id,
            len(dangling),
        )


def _reconcile(
    report: PassReport,
    page_id: str,
    gateway: PersistenceGateway,
    oracle: RecognitionOracle,
    arena: BlockArena,
    store: StrokeStore,
    scope: List[Stroke],
    cfg: ReconcileConfig,
) -> ApplyResult:
    report.strokes_total = len(store)
    report.strokes_recognized = len(scope)
    # Recognition happens before any mutation; a failure leaves the page as is.
    lines = oracle.recognize(scope) if scope else []
    report.lines_recognized = len(lines)

    plan = ReconciliationEngine(cfg).plan(arena, store, lines, scope=scope)
    report.plan_counts = plan.counts()
    report.actions = [a.to_dict() for a in plan.actions]
    report.lines_unplaced = [lines[pos].text for pos in plan.unplaced]
    if plan.is_noop():
        logger.info("%s: recognition changes no block", page_id)
    result = ActionApplier(gateway, page_id, cfg).apply(plan, arena, store)
    _record(report, result)
    return result


# ── Passes ─────────────────────────────────────────────────────────────


def transcribe_new_content(
    page_id: str,
    gateway: PersistenceGateway,
    oracle: RecognitionOracle,
    store: Optional[StrokeStore] = None,
    cfg: Optional[ReconcileConfig] = None,
    locks: Optional[PageLockRegistry] = None,
) -> PassReport:
    """Recognize the page's unassociated strokes and reconcile the result.

    *store* is the caller's copy of the page strokes; when omitted they
    are read from *gateway*.  With nothing unassociated the recognizer is
    not called, and the pass only settles orphaned blocks.  Strokes that
    point at a block missing from the store count as unassociated.
    """
    cfg = cfg or ReconcileConfig()
    locks = locks or _default_locks
    with locks.acquire(page_id, blocking=False):
        with run_pass(MODE_NEW, page_id) as report:
            arena = BlockArena(gateway.list_blocks(page_id))
            if store is None:
                store = gateway.read_strokes(page_id)
            _release_dangling(report, arena, store)
            scope = store.unassociated_strokes()
            logger.info(
                "transcribing %d new strokes on %s (%d blocks)",
                len(scope),
                page_id,
                len(arena),
            )
            _reconcile(report, page_id, gateway, oracle, arena, store, scope, cfg)
    return report


def refresh_full_page(
    page_id: str,
    gateway: PersistenceGateway,
    oracle: RecognitionOracle,
    cached: Iterable[Stroke] = (),
    captured: Iterable[Stroke] = (),
    cfg: Optional[ReconcileConfig] = None,
    locks: Optional[PageLockRegistry] = None,
) -> PassReport:
    """Re-recognize every live stroke on the page and reconcile the result.

    Remote strokes (with their associations and tombstones) come first,
    then *cached* and *captured* strokes fill in whatever the remote copy
    lacks.  Strokes added this way are written back even if no action
    claims them.  Strokes whose block no longer exists are
    unassociated before recognition so they can be claimed again.
    """
    cfg = cfg or ReconcileConfig()
    locks = locks or _default_locks
    with locks.acquire(page_id, blocking=False):
        with run_pass(MODE_REFRESH, page_id) as report:
            arena = BlockArena(gateway.list_blocks(page_id))
            store = gateway.read_strokes(page_id).copy()
            added = store.add_many(merge_stroke_sources(cached, captured))
            _release_dangling(report, arena, store)
            logger.info(
                "refreshing %s: %d strokes (%d not yet stored), %d blocks",
                page_id,
                len(store),
                added,
                len(arena),
            )
            result = _reconcile(
                report, page_id, gateway, oracle, arena, store, store.all(), cfg
            )
            if added and not result.strokes_written and not report.stroke_write_error:
                try:
                    gateway.write_strokes(page_id, store)
                    report.strokes_written = True
                except GatewayWriteFailure as exc:
                    report.stroke_write_error = {
                        "type": type(exc).__name__,
                        "message": str(exc),
                    }
                    report.status = "partial"
                    logger.error("storing new strokes for %s failed: %s", page_id, exc)
    return report


# ── Edit persistence ───────────────────────────────────────────────────


def commit_edit(
    gateway: PersistenceGateway,
    page_id: str,
    edit: EditResult,
    store: StrokeStore,
    cfg: Optional[ReconcileConfig] = None,
) -> Dict[str, str]:
    """Persist a merge or split made by :class:`~inkbridge.edits.EditReconciler`.

    Block content is written first, then the reassigned stroke records,
    and for a merge the absorbed block is removed last, so the stored
    strokes never point at a block that does not exist.  A split's lower
    block is created in the store; its stroke records are rewritten to
    the id the store assigns, which is returned as ``{provisional: real}``.
    Any :class:`~inkbridge.gateway.GatewayError` propagates.
    """
    cfg = cfg or ReconcileConfig()
    precision = cfg.bounds_precision
    id_map: Dict[str, str] = {}

    if edit.kind == "split" and edit.created is not None:
        lower = edit.created
        stored = gateway.create_block(
            page_id, lower.parent_id, lower.content, lower.properties(precision)
        )
        if stored.block_id != lower.block_id:
            store.reassign(lower.block_id, stored.block_id)
            id_map[lower.block_id] = stored.block_id

    survivor = edit.survivor
    gateway.update_block_content(
        survivor.block_id, survivor.content, survivor.properties(precision)
    )
    gateway.write_strokes(page_id, store)
    store.clear_touched()

    if edit.kind == "merge" and edit.removed_id is not None:
        gateway.delete_block(edit.removed_id)

    logger.info(
        "committed %s on %s (%d strokes reassigned)",
        edit.kind,
        page_id,
        len(edit.reassigned),
    )
    return id_map
