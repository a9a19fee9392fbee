"""Debug overlay of stroke-to-block associations.

Public API
----------
draw_association_overlay  – render strokes coloured by owning block
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..models import AnnotationBlock, RecognitionLine
from ..strokes.store import StrokeStore

log = logging.getLogger(__name__)

# Palette cycled over blocks in creation order
BLOCK_COLORS = [
    (255, 0, 0, 200),  # Red
    (0, 0, 255, 200),  # Blue
    (0, 180, 0, 200),  # Green
    (255, 165, 0, 200),  # Orange
    (128, 0, 128, 200),  # Purple
    (0, 200, 200, 200),  # Cyan
    (255, 105, 180, 200),  # Pink
    (139, 69, 19, 200),  # Brown
]
UNASSOCIATED_COLOR = (150, 150, 150, 200)
LINE_BOUNDS_COLOR = (0, 120, 255, 90)


def draw_association_overlay(
    store: StrokeStore,
    blocks: Iterable[AnnotationBlock],
    out_path: Path | str,
    scale: float = 4.0,
    margin: float = 20.0,
    lines: Sequence[RecognitionLine] = (),
    background: Optional[Image.Image] = None,
) -> Path:
    """Render the page's strokes with one colour per owning block.

    Colour key
    ----------
    * **Palette colour** – strokes associated to a block; the block's bounds
      hint is outlined in the same colour and labelled with its id.
    * **Grey** – unassociated strokes.
    * **Light blue band** – bounds of recognized *lines*, when given.

    Coordinates are stroke units multiplied by *scale*, shifted so the
    top-left stroke point lands at *margin* pixels.
    """
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    blocks = list(blocks)
    strokes = store.all()

    boxes = [s.bbox() for s in strokes if len(s.points)]
    if boxes:
        min_x = min(b[0] for b in boxes)
        min_y = min(b[1] for b in boxes)
        max_x = max(b[2] for b in boxes)
        max_y = max(b[3] for b in boxes)
    else:
        min_x = min_y = 0.0
        max_x = max_y = 1.0

    canvas_w = int((max_x - min_x) * scale + 2 * margin) + 1
    canvas_h = int((max_y - min_y) * scale + 2 * margin) + 1

    if background is not None:
        base = background.copy().convert("RGBA")
        if base.size != (canvas_w, canvas_h):
            base = base.resize((canvas_w, canvas_h), Image.LANCZOS)
    else:
        base = Image.new("RGBA", (canvas_w, canvas_h), (255, 255, 255, 255))

    overlay = Image.new("RGBA", (canvas_w, canvas_h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    try:
        font = ImageFont.truetype("arial.ttf", max(10, int(3 * scale)))
    except OSError:
        font = ImageFont.load_default()

    def _pt(x: float, y: float) -> Tuple[float, float]:
        return ((x - min_x) * scale + margin, (y - min_y) * scale + margin)

    colors: Dict[str, tuple] = {
        b.block_id: BLOCK_COLORS[i % len(BLOCK_COLORS)] for i, b in enumerate(blocks)
    }

    # Layer 1: recognized line bands
    for line in lines:
        if line.bounds is None:
            continue
        y0 = _pt(min_x, line.bounds.min_y)[1]
        y1 = _pt(min_x, line.bounds.max_y)[1]
        draw.rectangle((0, y0, canvas_w - 1, y1), fill=LINE_BOUNDS_COLOR)

    # Layer 2: strokes
    for s in strokes:
        if not len(s.points):
            continue
        color = colors.get(s.block_ref, UNASSOCIATED_COLOR)
        pts = [_pt(float(x), float(y)) for x, y in s.points[:, :2]]
        if len(pts) == 1:
            x, y = pts[0]
            draw.ellipse((x - 1, y - 1, x + 1, y + 1), fill=color)
        else:
            draw.line(pts, fill=color, width=max(1, int(scale / 2)))

    # Layer 3: block bounds hints + labels
    for b in blocks:
        if b.bounds_hint is None or b.bounds_hint.is_empty():
            continue
        color = colors[b.block_id]
        y0 = _pt(min_x, b.bounds_hint.min_y)[1]
        y1 = _pt(min_x, b.bounds_hint.max_y)[1]
        draw.rectangle((2, y0, canvas_w - 3, y1), outline=color, width=1)
        draw.text((4, y0 + 1), b.block_id[:12], fill=color, font=font)

    composed = Image.alpha_composite(base, overlay).convert("RGB")
    composed.save(out_path)
    log.info(
        "association overlay: %d strokes, %d blocks -> %s",
        len(strokes),
        len(blocks),
        out_path,
    )
    return out_path
