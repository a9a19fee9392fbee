"""Tests for inkbridge.export.overlay — association overlay rendering."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from inkbridge.export.overlay import (
    BLOCK_COLORS,
    UNASSOCIATED_COLOR,
    draw_association_overlay,
)
from inkbridge.models import AnnotationBlock, Bounds, RecognitionLine, Stroke
from inkbridge.strokes.store import StrokeStore


def _stroke(start, y0, y1, x0=0.0, block_ref=None) -> Stroke:
    points = [[x0 + i, y0 + (y1 - y0) * i / 4, start + i] for i in range(5)]
    return Stroke.from_points(start, points, block_ref=block_ref)


@pytest.fixture
def store() -> StrokeStore:
    return StrokeStore(
        [
            _stroke(1000, 0, 10, block_ref="b1"),
            _stroke(1100, 0, 10, x0=20, block_ref="b1"),
            _stroke(2000, 20, 30),
        ]
    )


@pytest.fixture
def blocks() -> list[AnnotationBlock]:
    return [
        AnnotationBlock(
            block_id="b1",
            content="Buy milk",
            canonical_snapshot="Buy milk",
            bounds_hint=Bounds(0.0, 10.0),
        ),
        AnnotationBlock(block_id="b2", content="legacy"),
    ]


class TestDrawAssociationOverlay:
    def test_canvas_covers_strokes(self, store, blocks, tmp_path):
        out = draw_association_overlay(store, blocks, tmp_path / "ov.png")
        assert out.exists()
        with Image.open(out) as img:
            # x 0–24, y 0–30 at scale 4 plus a 20 px margin on each side
            assert img.size == (24 * 4 + 40 + 1, 30 * 4 + 40 + 1)

    def test_stroke_colours(self, store, blocks, tmp_path):
        out = draw_association_overlay(store, blocks, tmp_path / "ov.png", scale=4)
        with Image.open(out) as img:
            rgb = img.convert("RGB")
            # last point of the unassociated stroke, at (4, 30)
            unassoc = rgb.getpixel((4 * 4 + 20, 30 * 4 + 20))
            assert unassoc != (255, 255, 255)
            assert unassoc[0] == unassoc[1] == unassoc[2]
            # middle of the first b1 stroke, at (2, 5)
            r, g, b = rgb.getpixel((2 * 4 + 20, 5 * 4 + 20))
            assert r > g and r > b

    def test_creates_parent_dirs(self, store, blocks, tmp_path):
        out = draw_association_overlay(
            store, blocks, str(tmp_path / "nested" / "dir" / "ov.png")
        )
        assert isinstance(out, Path)
        assert out.exists()

    def test_empty_store(self, blocks, tmp_path):
        out = draw_association_overlay(StrokeStore(), blocks, tmp_path / "e.png")
        with Image.open(out) as img:
            assert img.size[0] > 0 and img.size[1] > 0

    def test_line_bands_and_background(self, store, blocks, tmp_path):
        lines = [
            RecognitionLine(
                text="Call Sam", canonical="Call Sam", bounds=Bounds(20.0, 30.0)
            ),
            RecognitionLine(text="?", canonical="?", bounds=None),
        ]
        bg = Image.new("RGB", (10, 10), (0, 0, 0))
        out = draw_association_overlay(
            store, blocks, tmp_path / "bg.png", lines=lines, background=bg
        )
        with Image.open(out) as img:
            rgb = img.convert("RGB")
            # outside every band the black background shows through
            assert rgb.getpixel((img.size[0] - 1, 0)) == (0, 0, 0)

    def test_palette_constants(self):
        assert UNASSOCIATED_COLOR not in BLOCK_COLORS
        assert len(set(BLOCK_COLORS)) == len(BLOCK_COLORS)
