"""Incremental reconciliation of handwriting recognition with editable blocks.

Frequently-used symbols are re-exported here for convenience.  For the
remote collaborators (Logseq, MyScript) and the debug exporters import
directly from the relevant submodule, e.g.::

    from inkbridge.gateway.logseq import LogseqGateway
    from inkbridge.oracle.myscript import MyScriptOracle
    from inkbridge.export import draw_association_overlay
"""

# ── Core models & config ──────────────────────────────────────────────

from .associate import SpatialAssociator
from .config import ConfigValidationError, ReconcileConfig, ServiceSettings
from .edits import EditError, EditReconciler, EditResult
from .gateway import (
    GatewayError,
    GatewayReadFailure,
    GatewayWriteFailure,
    InMemoryGateway,
    PersistenceGateway,
)
from .models import AnnotationBlock, BlockArena, Bounds, RecognitionLine, Stroke
from .oracle import OracleFailure, RecognitionOracle, ReplayOracle
from .pipeline import (
    PageLockRegistry,
    PassInFlightError,
    PassReport,
    commit_edit,
    refresh_full_page,
    transcribe_new_content,
)
from .reconcile import (
    ActionApplier,
    ActionOutcome,
    ActionType,
    ApplyResult,
    BlockAction,
    ReconcilePlan,
    ReconciliationEngine,
)
from .strokes import StrokeStore, StrokeStoreError
from .text import canonicalize, preserve_decorations

__all__ = [
    # Models & config
    "AnnotationBlock",
    "BlockArena",
    "Bounds",
    "ConfigValidationError",
    "RecognitionLine",
    "ReconcileConfig",
    "ServiceSettings",
    "Stroke",
    # Strokes & association
    "SpatialAssociator",
    "StrokeStore",
    "StrokeStoreError",
    # Reconciliation
    "ActionApplier",
    "ActionOutcome",
    "ActionType",
    "ApplyResult",
    "BlockAction",
    "ReconcilePlan",
    "ReconciliationEngine",
    "canonicalize",
    "preserve_decorations",
    # Edits
    "EditError",
    "EditReconciler",
    "EditResult",
    # Collaborators
    "GatewayError",
    "GatewayReadFailure",
    "GatewayWriteFailure",
    "InMemoryGateway",
    "OracleFailure",
    "PersistenceGateway",
    "RecognitionOracle",
    "ReplayOracle",
    # Passes
    "PageLockRegistry",
    "PassInFlightError",
    "PassReport",
    "commit_edit",
    "refresh_full_page",
    "transcribe_new_content",
]
