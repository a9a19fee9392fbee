"""Replay a reconciliation pass against a JSON page snapshot.

The snapshot holds the page's blocks and stroke records::

    {"page_id": "Smartpen Data/B3017/P42",
     "blocks": [{"id": "...", "content": "...", "properties": {...}}],
     "strokes": [{"id": "s1000", "startTime": 1000, "endTime": 1100,
                  "points": [[x, y, t], ...], "blockRef": null}]}

The lines file is either a list of ``{"text", "min_y", "max_y"}`` objects
(optional ``indent_level`` / ``parent_index``) or a recognizer JIIX export
with ``label`` and ``words``.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from inkbridge import (
    Bounds,
    InMemoryGateway,
    RecognitionLine,
    ReconcileConfig,
    ReplayOracle,
    StrokeStore,
    canonicalize,
    refresh_full_page,
    transcribe_new_content,
)
from inkbridge.export import draw_association_overlay, write_pass_report
from inkbridge.models import AnnotationBlock
from inkbridge.oracle import parse_recognition_response


def load_snapshot(path: Path) -> tuple[str, InMemoryGateway]:
    data = json.loads(path.read_text(encoding="utf-8"))
    page_id = data.get("page_id") or path.stem
    gateway = InMemoryGateway()
    for d in data.get("blocks") or []:
        gateway.seed_block(page_id, AnnotationBlock.from_dict(d))
    gateway.seed_strokes(page_id, StrokeStore.from_records(data.get("strokes") or []))
    return page_id, gateway


def load_lines(path: Path, cfg: ReconcileConfig) -> list[RecognitionLine]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        return parse_recognition_response(data, cfg=cfg)
    lines = []
    for i, d in enumerate(data):
        bounds = None
        if d.get("min_y") is not None and d.get("max_y") is not None:
            bounds = Bounds(float(d["min_y"]), float(d["max_y"]))
        lines.append(
            RecognitionLine(
                text=d["text"],
                canonical=canonicalize(d["text"]),
                bounds=bounds,
                indent_level=int(d.get("indent_level", 0)),
                parent_index=d.get("parent_index"),
                index=i,
            )
        )
    return lines


def save_snapshot(path: Path, page_id: str, gateway: InMemoryGateway) -> None:
    data = {
        "page_id": page_id,
        "blocks": [b.to_dict() for b in gateway.list_blocks(page_id)],
        "strokes": gateway.read_strokes(page_id).to_records(),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run one reconciliation pass on a page snapshot"
    )
    parser.add_argument("--snapshot", type=Path, required=True, help="Page JSON")
    parser.add_argument(
        "--lines", type=Path, required=True, help="Recognized lines JSON"
    )
    parser.add_argument(
        "--mode",
        choices=["new", "refresh"],
        default="new",
        help="Transcribe unassociated strokes only, or re-recognize the page",
    )
    parser.add_argument("--overlay", type=Path, default=None, help="Overlay PNG")
    parser.add_argument("--report", type=Path, default=None, help="Report JSON")
    parser.add_argument(
        "--out", type=Path, default=None, help="Write the resulting snapshot"
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = ReconcileConfig()
    page_id, gateway = load_snapshot(args.snapshot)
    lines = load_lines(args.lines, cfg)
    oracle = ReplayOracle(lines)

    if args.mode == "new":
        report = transcribe_new_content(page_id, gateway, oracle, cfg=cfg)
    else:
        report = refresh_full_page(page_id, gateway, oracle, cfg=cfg)

    print(f"Page: {page_id}  mode={report.mode}  status={report.status}")
    for key, value in report.counts.items():
        print(f"  {key}: {value}")
    for text in report.lines_unplaced:
        print(f"  not placed: {text!r}")

    store = gateway.read_strokes(page_id)
    if args.overlay:
        draw_association_overlay(
            store, gateway.list_blocks(page_id), args.overlay, lines=lines
        )
        print(f"Overlay: {args.overlay}")
    if args.report:
        write_pass_report(report, args.report, store=store)
        print(f"Report: {args.report}")
    if args.out:
        save_snapshot(args.out, page_id, gateway)
        print(f"Snapshot: {args.out}")

    return 0 if report.status in ("success", "skipped") else 1


if __name__ == "__main__":
    sys.exit(main())
