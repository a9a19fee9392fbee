"""JSON reports for reconciliation passes.

The report carries the pass summary from :class:`~inkbridge.pipeline.PassReport`
plus, optionally, the planned actions and the page's stroke partition, so a
pass can be inspected after the fact without re-running the recognizer.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from ..pipeline import PassReport
    from ..reconcile.engine import ReconcilePlan
    from ..strokes.store import StrokeStore


def pass_report_to_dict(
    report: PassReport,
    plan: Optional[ReconcilePlan] = None,
    store: Optional[StrokeStore] = None,
) -> Dict[str, Any]:
    """Summary dict of *report*, with plan actions and stroke partition."""
    data = report.to_dict()
    if plan is not None:
        data["actions"] = [a.to_dict() for a in plan.actions]
    if store is not None:
        data["partition"] = {
            (block_id if block_id is not None else "unassociated"): sorted(ids)
            for block_id, ids in store.partition().items()
        }
        deleted = store.deleted_stroke_ids()
        if deleted:
            data["deleted_strokes"] = sorted(deleted)
    return data


def write_pass_report(
    report: PassReport,
    output_path: Optional[Path | str] = None,
    *,
    plan: Optional[ReconcilePlan] = None,
    store: Optional[StrokeStore] = None,
) -> str:
    """Serialize *report* to JSON, writing it to *output_path* when given.

    Returns the JSON string.
    """
    data = pass_report_to_dict(report, plan=plan, store=store)
    data["generated_at"] = datetime.now().isoformat()
    json_str = json.dumps(data, indent=2, default=str)

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_str, encoding="utf-8")

    return json_str
