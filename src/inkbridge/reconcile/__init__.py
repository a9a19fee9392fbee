"""Block reconciliation: planning (engine) and committing (apply)."""

from .apply import ActionApplier, ActionOutcome, ApplyResult
from .engine import (
    ActionType,
    BlockAction,
    ReconcilePlan,
    ReconciliationEngine,
)

__all__ = [
    "ActionApplier",
    "ActionOutcome",
    "ActionType",
    "ApplyResult",
    "BlockAction",
    "ReconcilePlan",
    "ReconciliationEngine",
]
