"""Tests for inkbridge.edits — merge / split by stroke reassignment."""

import pytest

from conftest import (
    buy_milk_strokes,
    call_sam_strokes,
    make_block,
    make_stroke,
    two_lines,
)
from inkbridge.edits import EditError, EditReconciler
from inkbridge.models import BlockArena, Bounds
from inkbridge.reconcile.engine import ActionType, ReconciliationEngine
from inkbridge.strokes.store import StrokeStore


@pytest.fixture
def page():
    arena = BlockArena(
        [
            make_block("a", "Buy milk", bounds=(0, 10)),
            make_block("b", "Call Sam", bounds=(20, 30)),
            make_block("c", "soy", bounds=(32, 38), parent_id="b"),
        ]
    )
    store = StrokeStore(
        [s.with_block("a") for s in buy_milk_strokes()]
        + [s.with_block("b") for s in call_sam_strokes()]
        + [make_stroke(5000, 32, 38, block_ref="c")]
    )
    return arena, store


class TestMerge:
    def test_reassigns_all_strokes(self, page):
        arena, store = page
        result = EditReconciler().merge(arena, store, "a", "b")
        assert store.stroke_ids_for_block("b") == frozenset()
        assert len(store.stroke_ids_for_block("a")) == 9
        assert set(result.reassigned) == {s.stroke_id for s in call_sam_strokes()}
        assert result.removed_id == "b"
        assert "b" not in arena

    def test_snapshot_and_content_joined_in_page_order(self, page):
        arena, store = page
        # Survivor is the lower block; text still reads top to bottom.
        result = EditReconciler().merge(arena, store, "b", "a")
        assert result.survivor.canonical_snapshot == "Buy milk Call Sam"
        assert result.survivor.content == "Buy milk Call Sam"
        assert result.survivor.bounds_hint == Bounds(0, 30)

    def test_user_content_kept(self, page):
        arena, store = page
        result = EditReconciler().merge(
            arena, store, "a", "b", content="Buy milk and call Sam"
        )
        assert arena.get("a").content == "Buy milk and call Sam"
        assert result.survivor.canonical_snapshot == "Buy milk Call Sam"

    def test_children_move_to_survivor(self, page):
        arena, store = page
        EditReconciler().merge(arena, store, "a", "b")
        assert arena.get("c").parent_id == "a"

    def test_tombstones_follow(self, page):
        arena, store = page
        store.delete_stroke(call_sam_strokes()[0].stroke_id)
        EditReconciler().merge(arena, store, "a", "b")
        assert store.tombstoned_ids_for_block("a") == {call_sam_strokes()[0].stroke_id}

    def test_self_merge_rejected(self, page):
        arena, store = page
        with pytest.raises(EditError, match="itself"):
            EditReconciler().merge(arena, store, "a", "a")

    def test_unknown_block(self, page):
        arena, store = page
        with pytest.raises(EditError, match="unknown"):
            EditReconciler().merge(arena, store, "a", "zz")

    def test_no_loss_on_merge(self, page):
        arena, store = page
        EditReconciler().merge(arena, store, "a", "b", content="Buy milk and call Sam")
        plan = ReconciliationEngine().plan(arena, store, two_lines())
        actions = {a.block_id: a for a in plan.actions}
        assert actions["a"].action is ActionType.skip
        assert actions["a"].line_positions == (0, 1)
        assert not plan.by_type(ActionType.create)
        assert not plan.by_type(ActionType.delete)


class TestSplit:
    def _merged(self):
        arena = BlockArena([make_block("m", "Buy milk Call Sam", parent_id="p")])
        store = StrokeStore(
            [s.with_block("m") for s in buy_milk_strokes() + call_sam_strokes()]
        )
        return arena, store

    def test_strokes_divided_at_boundary(self):
        arena, store = self._merged()
        result = EditReconciler().split(arena, store, "m", 15.0, "m2")
        assert store.stroke_ids_for_block("m") == {
            s.stroke_id for s in buy_milk_strokes()
        }
        assert store.stroke_ids_for_block("m2") == {
            s.stroke_id for s in call_sam_strokes()
        }
        assert len(result.reassigned) == 4
        assert result.created.parent_id == "p"
        assert arena.ids() == ["m", "m2"]

    def test_snapshots_cleared_for_regeneration(self):
        arena, store = self._merged()
        result = EditReconciler().split(
            arena, store, "m", 15.0, "m2", upper_content="Buy milk"
        )
        assert result.survivor.canonical_snapshot == ""
        assert result.created.canonical_snapshot == ""
        assert result.survivor.content == "Buy milk"
        assert result.survivor.bounds_hint == Bounds(0, 10)
        assert result.created.bounds_hint == Bounds(20, 30)

    def test_crossing_stroke_goes_to_majority_side(self):
        arena, store = self._merged()
        mostly_below = make_stroke(4000, 12, 28, n=5)  # ys 12, 16, 20, 24, 28
        mostly_above = make_stroke(4100, 2, 18, n=5)  # ys 2, 6, 10, 14, 18
        store.add_many([mostly_below.with_block("m"), mostly_above.with_block("m")])
        EditReconciler().split(arena, store, "m", 15.0, "m2")
        assert store.get("s4000").block_ref == "m2"
        assert store.get("s4100").block_ref == "m"

    def test_tie_stays_above(self):
        arena, store = self._merged()
        store.add(make_stroke(4000, 10, 20, n=2).with_block("m"))  # ys 10, 20
        EditReconciler().split(arena, store, "m", 15.0, "m2")
        assert store.get("s4000").block_ref == "m"

    def test_existing_id_rejected(self):
        arena, store = self._merged()
        with pytest.raises(EditError, match="already exists"):
            EditReconciler().split(arena, store, "m", 15.0, "m")

    def test_split_then_pass_updates_both_halves(self):
        arena, store = self._merged()
        EditReconciler().split(arena, store, "m", 15.0, "m2")
        plan = ReconciliationEngine().plan(arena, store, two_lines())
        actions = {a.block_id: a for a in plan.actions}
        assert actions["m"].action is ActionType.update
        assert actions["m"].canonical == "Buy milk"
        assert actions["m2"].action is ActionType.update
        assert actions["m2"].canonical == "Call Sam"
        assert not plan.by_type(ActionType.create)
