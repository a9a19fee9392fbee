"""Shared test fixtures for inkbridge."""

from typing import Optional

import pytest

from inkbridge.config import ReconcileConfig
from inkbridge.gateway.memory import InMemoryGateway
from inkbridge.models import AnnotationBlock, Bounds, RecognitionLine, Stroke
from inkbridge.strokes.store import StrokeStore
from inkbridge.text import canonicalize

PAGE = "Smartpen Data/B3017/P42"

# ── Helpers ────────────────────────────────────────────────────────────


def make_stroke(
    start_time: int,
    y0: float,
    y1: float,
    x0: float = 0.0,
    n: int = 5,
    block_ref: Optional[str] = None,
) -> Stroke:
    """Stroke of *n* points running from (x0, y0) to (x0 + n - 1, y1)."""
    step = (y1 - y0) / (n - 1) if n > 1 else 0.0
    points = [[x0 + i, y0 + i * step, start_time + i] for i in range(n)]
    return Stroke.from_points(start_time, points, block_ref=block_ref)


def make_line(
    text: str,
    min_y: Optional[float],
    max_y: Optional[float],
    index: int = 0,
    indent_level: int = 0,
    parent_index: Optional[int] = None,
) -> RecognitionLine:
    """RecognitionLine with canonical text derived from *text*."""
    bounds = None if min_y is None else Bounds(min_y, max_y)
    return RecognitionLine(
        text=text,
        canonical=canonicalize(text),
        bounds=bounds,
        indent_level=indent_level,
        parent_index=parent_index,
        index=index,
    )


def make_block(
    block_id: str,
    content: str = "",
    canonical: Optional[str] = None,
    bounds: Optional[tuple] = None,
    parent_id: Optional[str] = None,
) -> AnnotationBlock:
    """AnnotationBlock whose snapshot defaults to its canonical content."""
    return AnnotationBlock(
        block_id=block_id,
        content=content,
        canonical_snapshot=canonicalize(content) if canonical is None else canonical,
        bounds_hint=Bounds(*bounds) if bounds is not None else None,
        parent_id=parent_id,
    )


def buy_milk_strokes() -> list[Stroke]:
    """S1–S5 spanning Y 0–10."""
    return [make_stroke(1000 + i * 100, 0.0, 10.0, x0=i * 6) for i in range(5)]


def call_sam_strokes() -> list[Stroke]:
    """S6–S9 spanning Y 20–30."""
    return [make_stroke(2000 + i * 100, 20.0, 30.0, x0=i * 6) for i in range(4)]


def email_bob_strokes() -> list[Stroke]:
    """S10–S12 spanning Y 40–50."""
    return [make_stroke(3000 + i * 100, 40.0, 50.0, x0=i * 6) for i in range(3)]


def two_lines() -> list[RecognitionLine]:
    return [make_line("Buy milk", 0, 10, 0), make_line("Call Sam", 20, 30, 1)]


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def default_cfg() -> ReconcileConfig:
    """Return a default ReconcileConfig."""
    return ReconcileConfig()


@pytest.fixture
def page_store() -> StrokeStore:
    """Unassociated strokes for the "Buy milk" / "Call Sam" page."""
    return StrokeStore(buy_milk_strokes() + call_sam_strokes())


@pytest.fixture
def gateway(page_store) -> InMemoryGateway:
    """In-memory block store seeded with the page's unassociated strokes."""
    gw = InMemoryGateway()
    gw.seed_strokes(PAGE, page_store)
    return gw
