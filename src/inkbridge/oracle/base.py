"""Recognition oracle contract and response parsing.

The recognizer turns strokes into lines of text with approximate bounds.
It does not say which strokes produced which line; that is estimated
later by :class:`~inkbridge.associate.SpatialAssociator`.

Public API
----------
OracleFailure               – recognition failed; the pass must not mutate
RecognitionOracle           – interface (``recognize(strokes) -> lines``)
ReplayOracle                – returns prepared lines (CLI replays, tests)
RequestFrame                – maps recognizer pixels back to stroke units
parse_recognition_response  – JIIX-style payload → RecognitionLine list
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from statistics import median
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..config import ReconcileConfig
from ..models import Bounds, RecognitionLine, Stroke
from ..text import canonicalize

log = logging.getLogger(__name__)


class OracleFailure(Exception):
    """The recognizer could not be reached or returned an unusable result."""


class RecognitionOracle:
    """Interface every recognizer implements."""

    def recognize(self, strokes: Sequence[Stroke]) -> List[RecognitionLine]:
        raise NotImplementedError


class ReplayOracle(RecognitionOracle):
    """Oracle returning prepared lines instead of calling a recognizer.

    *lines* is either a fixed list or a callable receiving the strokes.
    Every batch passed in is recorded in :attr:`requests`.
    """

    def __init__(
        self,
        lines: Union[
            Sequence[RecognitionLine],
            Callable[[Sequence[Stroke]], List[RecognitionLine]],
        ] = (),
    ) -> None:
        self._lines = lines
        self.requests: List[List[str]] = []

    def recognize(self, strokes: Sequence[Stroke]) -> List[RecognitionLine]:
        self.requests.append([s.stroke_id for s in strokes])
        if callable(self._lines):
            return list(self._lines(strokes))
        return list(self._lines)


@dataclass(frozen=True)
class RequestFrame:
    """Affine map between stroke coordinates and recognizer pixels.

    ``pixel = (value - origin) * scale + padding``
    """

    min_x: float = 0.0
    min_y: float = 0.0
    scale: float = 1.0
    padding: float = 0.0

    def to_stroke_x(self, px: float) -> float:
        return (px - self.padding) / self.scale + self.min_x

    def to_stroke_y(self, py: float) -> float:
        return (py - self.padding) / self.scale + self.min_y


def _word_box(word: Dict[str, Any]) -> Optional[Dict[str, float]]:
    box = word.get("bounding-box")
    if not isinstance(box, dict):
        return None
    try:
        return {k: float(box[k]) for k in ("x", "y", "width", "height")}
    except (KeyError, TypeError, ValueError):
        return None


def parse_recognition_response(
    payload: Dict[str, Any],
    frame: Optional[RequestFrame] = None,
    cfg: Optional[ReconcileConfig] = None,
) -> List[RecognitionLine]:
    """Build recognition lines from a JIIX-style text export.

    ``payload["label"]`` holds the full text with ``\\n`` line breaks and
    ``payload["words"]`` the word boxes in reading order (whitespace
    entries carry no box and are skipped).  Each line's bounds cover its
    word boxes, its indent anchor is its left-most word, and its indent
    level counts steps of ``median word height * indent_unit_mult`` from
    the left-most line.  Parents are assigned with an indentation stack.
    """
    cfg = cfg or ReconcileConfig()
    frame = frame or RequestFrame()
    text = payload.get("label") or ""
    words = []
    for w in payload.get("words") or []:
        if not isinstance(w, dict) or not (w.get("label") or "").strip():
            continue
        box = _word_box(w)
        if box is not None:
            words.append((w, box))

    raw: List[Dict[str, Any]] = []
    cursor = 0
    for line_text in text.split("\n"):
        if not line_text.strip():
            continue
        tokens = line_text.split()
        line_words = words[cursor : cursor + len(tokens)]
        cursor += len(line_words)
        raw.append({"text": line_text.strip(), "boxes": [b for _, b in line_words]})

    heights = [b["height"] for _, b in words]
    word_h = median(heights) if heights else cfg.default_word_height
    indent_unit = max(word_h * cfg.indent_unit_mult, 1e-6)
    xs = [min(b["x"] for b in r["boxes"]) for r in raw if r["boxes"]]
    base_x = min(xs) if xs else 0.0

    lines: List[RecognitionLine] = []
    stack: List[tuple] = []  # (indent_level, line index)
    for idx, r in enumerate(raw):
        boxes = r["boxes"]
        if boxes:
            left = min(b["x"] for b in boxes)
            bounds: Optional[Bounds] = Bounds(
                frame.to_stroke_y(min(b["y"] for b in boxes)),
                frame.to_stroke_y(max(b["y"] + b["height"] for b in boxes)),
            )
            level = max(0, int(round((left - base_x) / indent_unit)))
            indent_x = frame.to_stroke_x(left)
        else:
            bounds, level, indent_x = None, 0, 0.0

        while stack and stack[-1][0] >= level:
            stack.pop()
        parent = stack[-1][1] if stack else None
        stack.append((level, idx))

        lines.append(
            RecognitionLine(
                text=r["text"],
                canonical=canonicalize(r["text"]),
                bounds=bounds,
                indent_x=indent_x,
                indent_level=level,
                parent_index=parent,
                index=idx,
            )
        )

    if cursor < len(words):
        log.debug("%d recognized words not matched to a line", len(words) - cursor)
    return lines
